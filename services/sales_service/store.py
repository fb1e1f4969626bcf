"""
Sales Service — order store

Orders live in one keyed table; every status an order has held is
appended to `order_status_history`, which is never updated or deleted.

Each write is one transaction: the order row and its history entry are
committed together. An `UPDATE` holds the row lock until commit, so two
updates of the same order are applied one after the other, while updates
of different orders never wait on each other.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from .errors import ConflictError
from .models import Order, OrderItem, OrderStatus, StatusHistoryEntry
from .schema import metadata, order_status_history, orders

logger = logging.getLogger(__name__)


class OrderStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def create(self, order: Order) -> Order:
        """
        Insert a new order and its initial history entry.

        Raises ConflictError if the id is already taken; an existing
        order is never overwritten.
        """
        now = datetime.now(timezone.utc)
        async with self._session() as session:
            try:
                await session.execute(
                    insert(orders).values(
                        id=order.id,
                        customer_id=order.customer_id,
                        status=order.status.value,
                        items=[item.model_dump() for item in order.items],
                        total_amount=order.total_amount,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await session.execute(
                    insert(order_status_history).values(
                        order_id=order.id, status=order.status.value, changed_at=now
                    )
                )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.error("Order id collision: %s", order.id)
                raise ConflictError(f"Order {order.id} already exists") from exc

        logger.info("Order stored: %s", order.id)
        return order.model_copy(update={"created_at": now, "updated_at": now})

    async def get_by_id(self, order_id: str) -> Order | None:
        async with self._session() as session:
            result = await session.execute(select(orders).where(orders.c.id == order_id))
            row = result.fetchone()
        if not row:
            return None
        return Order(
            id=row.id,
            customer_id=row.customer_id,
            status=OrderStatus(row.status),
            items=[OrderItem(**item) for item in row.items],
            total_amount=row.total_amount,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def update_status(self, order_id: str, status: OrderStatus) -> bool:
        """Set a new status. Returns False when no such order exists."""
        now = datetime.now(timezone.utc)
        async with self._session() as session:
            result = await session.execute(
                update(orders)
                .where(orders.c.id == order_id)
                .values(status=status.value, updated_at=now)
            )
            if result.rowcount == 0:
                logger.warning("Order not found for status update: %s", order_id)
                return False
            await session.execute(
                insert(order_status_history).values(
                    order_id=order_id, status=status.value, changed_at=now
                )
            )
            await session.commit()

        logger.info("Order %s status set to %s", order_id, status.value)
        return True

    async def list_status_history(self, order_id: str) -> list[StatusHistoryEntry]:
        """History entries of one order, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(order_status_history)
                .where(order_status_history.c.order_id == order_id)
                .order_by(order_status_history.c.id)
            )
            rows = result.fetchall()
        return [
            StatusHistoryEntry(
                order_id=row.order_id,
                status=OrderStatus(row.status),
                changed_at=row.changed_at,
            )
            for row in rows
        ]

    async def count(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(orders))
            return result.scalar_one()
