import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from messaging import BrokerClient
from sales_service.coordinator import OrderCoordinator
from sales_service.models import AvailabilityResult, UnavailableItem
from sales_service.store import OrderStore

ORDER_CREATED = "order.created"
DELIVERY_UPDATES = "delivery.updates"


class FakeInventory:
    """Deterministic stand-in for the inventory gateway."""

    def __init__(self, stock=None, error=None):
        self.stock = {"p1": 10, "p2": 5} if stock is None else stock
        self.error = error
        self.calls = []

    async def check_availability(self, items):
        self.calls.append(list(items))
        if self.error is not None:
            raise self.error
        unavailable = [
            UnavailableItem(
                product_id=item.product_id,
                requested_quantity=item.quantity,
                available_quantity=self.stock.get(item.product_id, 0),
            )
            for item in items
            if self.stock.get(item.product_id, 0) < item.quantity
        ]
        return AvailabilityResult(available=not unavailable, unavailable_items=unavailable)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis(redis_server):
    client = fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def make_broker(redis_server):
    def _make(**kwargs):
        kwargs.setdefault("poll_interval", 0.01)
        return BrokerClient(
            "redis://localhost:6379",
            [ORDER_CREATED, DELIVERY_UPDATES],
            connection_factory=lambda: fakeredis.aioredis.FakeRedis(
                server=redis_server, decode_responses=True
            ),
            **kwargs,
        )

    return _make


@pytest_asyncio.fixture
async def broker(make_broker):
    client = make_broker()
    await client.connect()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sales.db'}")
    order_store = OrderStore(engine)
    await order_store.create_schema()
    yield order_store
    await engine.dispose()


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def coordinator(store, inventory, broker):
    return OrderCoordinator(store, inventory, broker, ORDER_CREATED)
