"""Order lifecycle tracker.

Places orders from the cart and keeps a read model of the customer's orders
that follows status changes pushed by the store. The tracker never writes a
status itself.
"""

from collections.abc import Callable, Iterable

import structlog

from storefront.cart.cache import CartCache
from storefront.catalog.reader import CatalogReader
from storefront.config import StorefrontConfig
from storefront.exceptions import EmptyCart, RemoteReadFailed, RemoteWriteFailed, Unauthenticated
from storefront.identity.session import Identity, SessionProvider
from storefront.notices import NoticeBoard
from storefront.order.order import (
    Order,
    OrderProgress,
    OrderStatus,
    can_transition,
    menu_item_ids,
    order_items_from_cart,
    progress_for,
)
from storefront.reconciliation import ChangeFeed, MutationResult
from storefront.store.port import Ordering, RemoteStore, StoreError, eq
from storefront.store.schemas import NewOrderRow, OrderRow

logger = structlog.get_logger(__name__)

OrdersListener = Callable[[tuple[Order, ...]], None]


class OrderLifecycleTracker:
    def __init__(
        self,
        store: RemoteStore,
        identity_provider: SessionProvider,
        cart: CartCache,
        catalog: CatalogReader,
        notices: NoticeBoard | None = None,
        config: StorefrontConfig | None = None,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self.cart = cart
        self.catalog = catalog
        self.notices = notices or NoticeBoard()
        self.config = config or StorefrontConfig()
        self._orders: tuple[Order, ...] = ()
        self._current_id: str | None = None
        self._listeners: list[OrdersListener] = []
        self._loads_in_flight = 0
        self._feed: ChangeFeed | None = None
        self._closed = False

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    @property
    def orders(self) -> tuple[Order, ...]:
        """The customer's orders, newest first."""
        return self._orders

    @property
    def current_order(self) -> Order | None:
        return next((order for order in self._orders if order.id == self._current_id), None)

    @property
    def loading(self) -> bool:
        return self._loads_in_flight > 0

    @staticmethod
    def progress_for(status: OrderStatus | str) -> OrderProgress:
        return progress_for(status)

    def on_change(self, listener: OrdersListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self) -> None:
        await self.fetch_orders()
        identity = self.identity_provider.current_identity()
        if identity is None or self._feed is not None or self._closed:
            return
        self._feed = ChangeFeed(
            self.store,
            self.config.orders_collection,
            [eq("user_id", identity.id)],
            self.fetch_orders,
            name="orders",
        )
        await self._feed.start()

    async def close(self) -> None:
        self._closed = True
        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.stop()

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    async def create_order(self) -> MutationResult[str]:
        """Place an order for everything in the cart.

        The cart is cleared only after the store has confirmed the order. If
        the clear fails the order still stands and its id is returned.
        """
        identity = self._require_identity()
        snapshot = self.cart.snapshot
        if snapshot.is_empty:
            raise EmptyCart()

        items = order_items_from_cart(snapshot)
        payload = NewOrderRow(
            user_id=identity.id,
            status=OrderStatus.PENDING.value,
            total=snapshot.total,
            items=[item.row() for item in items],
        ).payload()

        try:
            row = await self.store.insert(self.config.orders_collection, payload)
        except StoreError as exc:
            error = RemoteWriteFailed("Failed to create order", details={"reason": exc.reason})
            logger.warning("Order creation failed", user_id=identity.id, error=str(exc))
            self.notices.error(error.message, error.code)
            return MutationResult.failed(error)

        order_id = row["id"]
        logger.info(
            "Order created",
            order_id=order_id,
            user_id=identity.id,
            total=str(snapshot.total),
            item_count=len(items),
        )

        cleared = await self.cart.clear()
        if cleared.rolled_back:
            logger.warning("Cart not cleared after order was placed", order_id=order_id)
            self.notices.error("Your order was placed but the cart could not be emptied", "CART_NOT_CLEARED")

        self._current_id = order_id
        await self.fetch_orders()
        self.notices.success("Order created successfully!")
        return MutationResult.succeeded(order_id)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def fetch_orders(self) -> MutationResult[tuple[Order, ...]]:
        if self._closed:
            return MutationResult.succeeded(self._orders)
        identity = self.identity_provider.current_identity()
        if identity is None:
            self._replace(())
            return MutationResult.succeeded(self._orders)

        self._loads_in_flight += 1
        try:
            rows = await self.store.select(
                self.config.orders_collection,
                [eq("user_id", identity.id)],
                order_by=[Ordering("created_at", descending=True)],
            )
            orders = await self._enrich([OrderRow.model_validate(row) for row in rows])
        except (StoreError, ValueError) as exc:
            return self._read_failed(identity, exc)
        finally:
            self._loads_in_flight -= 1

        self._replace(tuple(orders))
        return MutationResult.succeeded(self._orders)

    async def fetch_order_by_id(self, order_id: str) -> Order | None:
        """Load one of the customer's orders and make it the current order.

        Orders owned by someone else are treated as not found.
        """
        if self._closed:
            return None
        identity = self.identity_provider.current_identity()
        if identity is None:
            return None

        self._loads_in_flight += 1
        try:
            rows = await self.store.select(
                self.config.orders_collection,
                [eq("id", order_id), eq("user_id", identity.id)],
            )
            orders = await self._enrich([OrderRow.model_validate(row) for row in rows])
        except (StoreError, ValueError) as exc:
            self._read_failed(identity, exc)
            return None
        finally:
            self._loads_in_flight -= 1

        if not orders:
            logger.info("Order not found", order_id=order_id, user_id=identity.id)
            return None

        order = orders[0]
        merged = [existing for existing in self._orders if existing.id != order.id] + [order]
        merged.sort(key=lambda o: (o.created_at is not None, o.created_at), reverse=True)
        self._current_id = order.id
        self._replace(tuple(merged))
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    async def _enrich(self, rows: list[OrderRow]) -> list[Order]:
        catalog = await self.catalog.fetch_by_ids(menu_item_ids(rows))
        return [Order.from_row(row, catalog) for row in rows]

    def _replace(self, orders: tuple[Order, ...]) -> None:
        if self._closed:
            return
        self._observe(orders)
        self._orders = orders
        if self._current_id not in {order.id for order in orders}:
            self._current_id = orders[0].id if orders else None
        for listener in list(self._listeners):
            try:
                listener(orders)
            except Exception:
                logger.exception("Orders listener failed")

    def _observe(self, orders: Iterable[Order]) -> None:
        previous = {order.id: order.status for order in self._orders}
        for order in orders:
            before = previous.get(order.id)
            if before is None or before == order.status:
                continue
            if can_transition(before, order.status):
                logger.info(
                    "Order status changed",
                    order_id=order.id,
                    from_status=before.value,
                    to_status=order.status.value,
                )
            else:
                logger.warning(
                    "Unexpected order status transition",
                    order_id=order.id,
                    from_status=before.value,
                    to_status=order.status.value,
                )

    def _read_failed(self, identity: Identity, exc: Exception) -> MutationResult:
        error = RemoteReadFailed("Failed to load orders", details={"reason": str(exc)})
        logger.warning("Order load failed, keeping last known orders", user_id=identity.id, error=str(exc))
        if not self._closed:
            self.notices.error(error.message, error.code)
        return MutationResult.failed(error)

    def _require_identity(self) -> Identity:
        identity = self.identity_provider.current_identity()
        if identity is None:
            raise Unauthenticated("Please sign in to create an order")
        return identity
