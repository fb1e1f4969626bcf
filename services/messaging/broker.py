"""
Messaging — Redis Streams broker client

Redis Pub/Sub is fire-and-forget: a subscriber that is down loses every
event published meanwhile. Each delivery line here is a Redis *stream*
with one consumer group instead, which gives queue semantics: entries
are kept until acknowledged, and each entry goes to one consumer of the
group.

Deduplication is done by the broker. The publish script claims a
`dedup:<line>:<message_id>` marker with SET NX and appends the entry only
when the claim succeeds, so Redis itself drops a second publish with the
same id for as long as the marker lives.

  publisher ── EVALSHA (SET NX + XADD) ──▶ [ stream ] ──▶ XREADGROUP ──▶ handler
                                                              │
                               ack / nack  (XACK + XDEL)  ◀───┘

An entry that was read but never settled (the process stopped while its
handler ran) stays in the group's pending list. A client replays its own
pending entries on the first poll of each line, and claims entries that
other consumers left idle for `claim_idle_ms`. Delivery is therefore at
least once: a handler may see an entry again after a restart.
"""

import asyncio
import json
import logging
import re
import socket
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any
from uuid import uuid4

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import BrokerConnectionError, BrokerPublishError

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None]]

_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

# KEYS[1] = dedup marker, KEYS[2] = stream
# ARGV = ttl, message id, order id, body
PUBLISH_SCRIPT = """
if redis.call('SET', KEYS[1], '1', 'NX', 'EX', ARGV[1]) then
    return redis.call('XADD', KEYS[2], '*',
        'message_id', ARGV[2],
        'x-deduplication-header', ARGV[2],
        'x-order-id', ARGV[3],
        'body', ARGV[4])
end
return false
"""


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def _mask_url(url: str) -> str:
    return re.sub(r":[^:@/]+@", ":****@", url)


class BrokerClient:
    """
    Publish / consume over named delivery lines with manual acknowledgement.

    `state` only changes in connect(), close() and when a transport error
    reveals that the connection is gone. While disconnected, publish()
    and consume() are logged no-ops.
    """

    def __init__(
        self,
        url: str,
        lines: list[str],
        *,
        group: str = "fulfillment",
        consumer: str | None = None,
        dedup_ttl: int = 86400,
        prefetch: int = 10,
        claim_idle_ms: int = 60000,
        poll_interval: float = 0.1,
        required: bool = False,
        connection_factory: Callable[[], aioredis.Redis] | None = None,
    ) -> None:
        self.url = url
        self.lines = list(lines)
        self.group = group
        # stable across restarts so pending entries come back to the same consumer
        self.consumer = consumer or f"{group}-{socket.gethostname()}"
        self.dedup_ttl = dedup_ttl
        self.prefetch = prefetch
        self.claim_idle_ms = claim_idle_ms
        self.poll_interval = poll_interval
        self.required = required
        self._connection_factory = connection_factory or (
            lambda: aioredis.from_url(url, decode_responses=True)
        )
        self._redis: aioredis.Redis | None = None
        self._publish_script = None
        self._consumers: dict[str, asyncio.Task] = {}
        self._replayed: set[str] = set()
        self.state = ConnectionState.DISCONNECTED

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self._redis is not None

    # ── Connection ──────────────────────────────────

    async def connect(self) -> None:
        """Connect and declare every delivery line. No-op when already connected."""
        if self.connected:
            return
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        logger.info("Connecting to message broker at %s", _mask_url(self.url))
        redis = self._connection_factory()
        try:
            await redis.ping()
            for line in self.lines:
                await self._declare_line(redis, line)
        except (*_TRANSPORT_ERRORS, ResponseError) as exc:
            await redis.aclose()
            logger.error("Failed to connect to message broker: %s", exc)
            if self.required:
                raise BrokerConnectionError(str(exc)) from exc
            logger.warning("Continuing without message broker (degraded mode)")
            return

        self._redis = redis
        self._publish_script = redis.register_script(PUBLISH_SCRIPT)
        self._replayed.clear()
        self.state = ConnectionState.CONNECTED
        logger.info("Connected to message broker, lines: %s", ", ".join(self.lines))

    async def _declare_line(self, redis: aioredis.Redis, line: str) -> None:
        # start at id 0 so entries published before any consumer attached are kept
        try:
            await redis.xgroup_create(line, self.group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    def _on_connection_lost(self, exc: BaseException) -> None:
        if self.state is ConnectionState.CONNECTED:
            logger.error("Message broker connection lost: %s", exc)
        self.state = ConnectionState.DISCONNECTED

    async def close(self) -> None:
        """Stop consumers and release the connection. Safe to call repeatedly."""
        tasks = list(self._consumers.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumers.clear()
        self._replayed.clear()

        if self._redis is not None:
            await self._redis.aclose()
            logger.info("Message broker connection closed")
        self._redis = None
        self._publish_script = None
        self.state = ConnectionState.DISCONNECTED

    # ── Publish ─────────────────────────────────────

    async def publish(
        self,
        line: str,
        payload: dict[str, Any],
        *,
        order_id: str | None = None,
        message_id: str | None = None,
    ) -> str | None:
        """
        Append `payload` to `line` as a persistent entry.

        Returns the message id, or None when nothing was sent: either the
        client is disconnected or the broker suppressed a duplicate id.
        """
        if not self.connected:
            logger.warning(
                "Message broker not connected, skipping publish to %s (order_id=%s)",
                line, order_id,
            )
            return None

        message_id = message_id or str(uuid4())
        body = json.dumps(payload, default=str)
        try:
            entry_id = await self._publish_script(
                keys=[f"dedup:{line}:{message_id}", line],
                args=[self.dedup_ttl, message_id, order_id or "", body],
            )
        except _TRANSPORT_ERRORS as exc:
            self._on_connection_lost(exc)
            raise BrokerPublishError(f"Failed to publish to {line}: {exc}") from exc
        except ResponseError as exc:
            logger.error("Broker rejected message %s on %s: %s", message_id, line, exc)
            raise BrokerPublishError(f"Failed to publish to {line}: {exc}") from exc

        if entry_id is None:
            logger.info("Duplicate message %s suppressed on %s", message_id, line)
            return None

        logger.info("Published message %s to %s (order_id=%s)", message_id, line, order_id)
        return message_id

    # ── Consume ─────────────────────────────────────

    async def consume(self, line: str, handler: Handler) -> None:
        """Start a background loop that feeds every entry on `line` to `handler`."""
        if not self.connected:
            logger.warning("Message broker not connected, cannot consume %s", line)
            return
        running = self._consumers.get(line)
        if running is not None and not running.done():
            logger.warning("Already consuming %s", line)
            return

        self._consumers[line] = asyncio.create_task(
            self._consume_loop(line, handler), name=f"consume:{line}"
        )
        logger.info("Started consuming %s as %s/%s", line, self.group, self.consumer)

    async def _consume_loop(self, line: str, handler: Handler) -> None:
        while self.connected:
            try:
                handled = await self.consume_once(line, handler)
            except _TRANSPORT_ERRORS as exc:
                self._on_connection_lost(exc)
                break
            except ResponseError:
                logger.exception("Broker rejected read on %s", line)
                handled = 0
            if not handled:
                await asyncio.sleep(self.poll_interval)
        logger.info("Stopped consuming %s", line)

    async def consume_once(self, line: str, handler: Handler) -> int:
        """Read one batch from `line`, settle every entry, return how many were handled."""
        if not self.connected:
            return 0
        handled = 0
        if line not in self._replayed:
            handled += await self._replay_pending(line, handler)
            self._replayed.add(line)
        handled += await self._claim_idle(line, handler)

        response = await self._redis.xreadgroup(
            self.group, self.consumer, {line: ">"}, count=self.prefetch
        )
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                await self._dispatch(line, entry_id, fields or {}, handler)
                handled += 1
        return handled

    async def _replay_pending(self, line: str, handler: Handler) -> int:
        """Redeliver entries this consumer read before a restart but never settled."""
        handled = 0
        while True:
            # id 0 reads this consumer's pending list instead of new entries
            response = await self._redis.xreadgroup(
                self.group, self.consumer, {line: "0"}, count=self.prefetch
            )
            entries = [entry for _stream, batch in response or [] for entry in batch]
            if not entries:
                return handled
            logger.warning(
                "Replaying %d unsettled message(s) on %s for %s",
                len(entries), line, self.consumer,
            )
            for entry_id, fields in entries:
                await self._dispatch(line, entry_id, fields or {}, handler)
                handled += 1

    async def _claim_idle(self, line: str, handler: Handler) -> int:
        """Take over entries another consumer left unsettled for `claim_idle_ms`."""
        if self.claim_idle_ms <= 0:
            return 0
        result = await self._redis.xautoclaim(
            line, self.group, self.consumer, self.claim_idle_ms,
            start_id="0-0", count=self.prefetch,
        )
        handled = 0
        for entry_id, fields in result[1]:
            if entry_id is None:
                continue
            logger.warning("Claimed idle message %s on %s", entry_id, line)
            await self._dispatch(line, entry_id, fields or {}, handler)
            handled += 1
        return handled

    async def _dispatch(
        self,
        line: str,
        entry_id: str,
        fields: dict[str, str],
        handler: Handler,
    ) -> None:
        message_id = (
            fields.get("message_id")
            or fields.get("x-deduplication-header")
            or f"msg-{entry_id}"
        )
        try:
            payload = json.loads(fields["body"])
            if not isinstance(payload, dict):
                raise ValueError("message body is not a JSON object")
            logger.info(
                "Received message %s on %s (order_id=%s)",
                message_id, line, fields.get("x-order-id") or None,
            )
            await handler(payload)
        except Exception as exc:
            logger.error("Failed to process message %s on %s: %s", message_id, line, exc)
            await self._nack(line, entry_id, message_id)
            return
        await self._ack(line, entry_id)

    async def _settle(self, line: str, entry_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.xack(line, self.group, entry_id).xdel(line, entry_id).execute()

    async def _ack(self, line: str, entry_id: str) -> None:
        await self._settle(line, entry_id)

    async def _nack(self, line: str, entry_id: str, message_id: str) -> None:
        # no requeue and no dead-letter line: the entry is gone after this
        await self._settle(line, entry_id)
        logger.warning("Message %s dropped from %s without requeue", message_id, line)
