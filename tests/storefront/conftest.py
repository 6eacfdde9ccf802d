import asyncio

import pytest
from storefront.cart.cache import CartCache
from storefront.catalog.items import CatalogItem
from storefront.catalog.reader import CatalogReader
from storefront.config import StorefrontConfig
from storefront.identity.session import Identity, MemorySessionProvider
from storefront.notices import NoticeBoard
from storefront.order.tracker import OrderLifecycleTracker
from storefront.store.memory import InMemoryStore
from storefront.store.schemas import MenuRow

MENU_ROWS = [
    {"id": "house-blend", "menu_name": "House Blend Beans", "menu_price": "50.00", "menu_category": "coffee"},
    {"id": "brew-kit", "menu_name": "Pour Over Kit", "menu_price": "120.00", "menu_category": "gear"},
    {"id": "oat-latte", "menu_name": "Oat Latte", "menu_price": "4.50", "menu_category": "coffee"},
    {
        "id": "seasonal",
        "menu_name": "Pumpkin Spice",
        "menu_price": "6.00",
        "menu_category": "coffee",
        "available": False,
    },
]


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop

    pending = asyncio.all_tasks(loop)
    for task in pending:
        task.cancel()
    if pending:
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    loop.close()


@pytest.fixture
def run(loop):
    """Run a coroutine to completion on the test's event loop."""
    return loop.run_until_complete


@pytest.fixture
def settle():
    async def _settle(rounds: int = 100) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def config():
    return StorefrontConfig(environment="test")


@pytest.fixture
def store(config):
    store = InMemoryStore()
    store.seed(config.menu_collection, MENU_ROWS)
    return store


@pytest.fixture
def menu():
    return {row["id"]: CatalogItem.from_row(MenuRow.model_validate(row)) for row in MENU_ROWS}


@pytest.fixture
def identity():
    return Identity(id="user-1", email="ada@example.com")


@pytest.fixture
def provider(identity):
    return MemorySessionProvider(identity)


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def catalog(store, config):
    return CatalogReader(store, config)


@pytest.fixture
def cart(store, provider, catalog, notices, config):
    return CartCache(store, provider, catalog, notices, config)


@pytest.fixture
def tracker(store, provider, cart, catalog, notices, config):
    return OrderLifecycleTracker(store, provider, cart, catalog, notices, config)
