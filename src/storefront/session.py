"""Per-session wiring of the storefront caches."""

import structlog

from storefront.cart.cache import CartCache
from storefront.catalog.reader import CatalogReader
from storefront.config import StorefrontConfig
from storefront.identity.session import SessionProvider
from storefront.notices import NoticeBoard
from storefront.order.tracker import OrderLifecycleTracker
from storefront.store.port import RemoteStore
from storefront.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)


class StorefrontSession:
    """Owns one cart cache and one order tracker for a customer session.

    Use as an async context manager, or call ``start()`` and ``close()``::

        async with StorefrontSession(store, provider) as session:
            await session.cart.add(item)
            await session.orders.create_order()
    """

    def __init__(
        self,
        store: RemoteStore,
        identity_provider: SessionProvider,
        config: StorefrontConfig | None = None,
    ) -> None:
        self.config = config or StorefrontConfig()
        self.store = store
        self.identity_provider = identity_provider
        self.notices = NoticeBoard()
        self.catalog = CatalogReader(store, self.config)
        self.cart = CartCache(store, identity_provider, self.catalog, self.notices, self.config)
        self.orders = OrderLifecycleTracker(
            store, identity_provider, self.cart, self.catalog, self.notices, self.config
        )

    async def start(self) -> None:
        identity = self.identity_provider.current_identity()
        add_context(user_id=identity.id if identity else None)
        logger.info("Starting storefront session")
        await self.cart.start()
        await self.orders.start()

    async def close(self) -> None:
        await self.orders.close()
        await self.cart.close()
        logger.info("Storefront session closed")
        clear_context()

    async def __aenter__(self) -> "StorefrontSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
