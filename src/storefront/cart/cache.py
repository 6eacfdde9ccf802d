"""Client-side cart cache.

Every mutation is applied to the local snapshot first and then sent to the
store. A failed write rolls the snapshot back by reloading it from the store,
and a ``ChangeFeed`` reloads it whenever the store reports a change to the
customer's cart rows.

Adding an item with no line yet creates a temporary line whose insert is
"pending" until the store assigns an id. Edits to that line in the meantime
(another add, a quantity change, a removal) are folded into the pending
insert: its owner writes the accumulated quantity, or deletes the row, once
the id is known, and every caller that joined receives the owner's result.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from storefront.cart.lines import CartLine
from storefront.cart.snapshot import CartSnapshot
from storefront.catalog.items import CatalogItem, CatalogItemSnapshot
from storefront.catalog.reader import CatalogReader
from storefront.config import StorefrontConfig
from storefront.exceptions import (
    CartLineNotFound,
    InvalidQuantity,
    RemoteReadFailed,
    RemoteWriteFailed,
    Unauthenticated,
)
from storefront.identity.session import Identity, SessionProvider
from storefront.notices import NoticeBoard
from storefront.reconciliation import ChangeFeed, MutationResult
from storefront.store.port import Ordering, RemoteStore, StoreError, eq
from storefront.store.schemas import CartRow, NewCartRow

logger = structlog.get_logger(__name__)

CartListener = Callable[[CartSnapshot], None]


@dataclass
class PendingInsert:
    """A cart line whose insert has been issued but not yet folded back."""

    user_id: str
    menu_item_id: str
    temp_id: str
    item: CatalogItemSnapshot
    desired: int
    written: int
    done: asyncio.Future = field(repr=False)
    removed: bool = False
    # set while a clear() that swept this line awaits its bulk delete
    cleared: bool = False
    clearing: asyncio.Future | None = field(default=None, repr=False)

    @property
    def withdrawn(self) -> bool:
        return self.removed or self.cleared

    def line(self) -> CartLine:
        return CartLine(
            id=self.temp_id,
            user_id=self.user_id,
            menu_item_id=self.menu_item_id,
            quantity=self.desired,
            item=self.item,
        )


class CartCache:
    def __init__(
        self,
        store: RemoteStore,
        identity_provider: SessionProvider,
        catalog: CatalogReader,
        notices: NoticeBoard | None = None,
        config: StorefrontConfig | None = None,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self.catalog = catalog
        self.notices = notices or NoticeBoard()
        self.config = config or StorefrontConfig()
        self._snapshot = CartSnapshot.empty()
        self._pending: dict[str, PendingInsert] = {}
        self._listeners: list[CartListener] = []
        self._loads_in_flight = 0
        self._feed: ChangeFeed | None = None
        self._closed = False

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def loading(self) -> bool:
        return self._loads_in_flight > 0

    @property
    def closed(self) -> bool:
        return self._closed

    def on_change(self, listener: CartListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self) -> None:
        """Load the cart and follow the store's change feed for this customer."""
        await self.load()
        identity = self.identity_provider.current_identity()
        if identity is None or self._feed is not None or self._closed:
            return
        self._feed = ChangeFeed(
            self.store,
            self.config.cart_collection,
            [eq("user_id", identity.id)],
            self.load,
            name="cart",
        )
        await self._feed.start()

    async def close(self) -> None:
        self._closed = True
        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.stop()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def load(self) -> MutationResult[CartSnapshot]:
        """Replace local state with the store's view of the cart."""
        if self._closed:
            return MutationResult.succeeded(self._snapshot)
        identity = self.identity_provider.current_identity()
        if identity is None:
            self._apply(CartSnapshot.empty())
            return MutationResult.succeeded(self._snapshot)

        self._loads_in_flight += 1
        try:
            rows = await self.store.select(
                self.config.cart_collection,
                [eq("user_id", identity.id)],
                order_by=[Ordering("created_at", descending=True)],
            )
            cart_rows = [CartRow.model_validate(row) for row in rows]
            items = await self.catalog.fetch_by_ids(row.menu_item_id for row in cart_rows)
        except (StoreError, ValidationError) as exc:
            error = RemoteReadFailed(details={"reason": str(exc)})
            logger.warning("Cart load failed, keeping last known cart", user_id=identity.id, error=str(exc))
            if not self._closed:
                self.notices.error(error.message, error.code)
            return MutationResult.failed(error)
        finally:
            self._loads_in_flight -= 1

        self._apply(CartSnapshot.from_lines(self._merge(cart_rows, items)))
        return MutationResult.succeeded(self._snapshot)

    def _merge(self, rows: list[CartRow], items: dict[str, CatalogItem]) -> list[CartLine]:
        # unconfirmed inserts are newer than anything the store returned
        lines = [pending.line() for pending in self._pending.values() if not pending.withdrawn]
        for row in rows:
            if row.menu_item_id in self._pending:
                continue
            item = items.get(row.menu_item_id)
            if item is None:
                logger.warning("Dropping cart row for missing menu item", line_id=row.id, menu_item_id=row.menu_item_id)
                continue
            lines.append(
                CartLine(
                    id=row.id,
                    user_id=row.user_id,
                    menu_item_id=row.menu_item_id,
                    quantity=row.quantity,
                    item=item.snapshot(),
                )
            )
        return lines

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    async def add(self, item: CatalogItem, quantity: int = 1) -> MutationResult[CartSnapshot]:
        identity = self._require_identity("Please sign in to add items to cart")
        if quantity < 1:
            raise InvalidQuantity(details={"menu_item_id": item.id, "quantity": quantity})

        pending = self._pending.get(item.id)
        if pending is not None:
            if pending.withdrawn:
                # the pending row is on its way out; start over once it is settled
                await asyncio.shield(pending.done)
                return await self.add(item, quantity)
            pending.desired += quantity
            self._apply(self._snapshot.with_quantity(pending.temp_id, pending.desired))
            logger.debug("Add folded into pending insert", menu_item_id=item.id, quantity=pending.desired)
            return await asyncio.shield(pending.done)

        existing = self._snapshot.find_by_item(item.id)
        if existing is not None:
            return await self.set_quantity(existing.id, existing.quantity + quantity)

        line = CartLine.optimistic(identity.id, item.id, quantity, item.snapshot())
        pending = PendingInsert(
            user_id=identity.id,
            menu_item_id=item.id,
            temp_id=line.id,
            item=line.item,
            desired=quantity,
            written=quantity,
            done=asyncio.get_running_loop().create_future(),
        )
        self._pending[item.id] = pending
        self._apply(self._snapshot.with_line(line))
        return await self._own_insert(pending)

    async def set_quantity(self, line_id: str, quantity: int) -> MutationResult[CartSnapshot]:
        """Set a line's quantity. Quantities below one go through ``remove_from_cart``."""
        if quantity < 1:
            raise InvalidQuantity(details={"line_id": line_id, "quantity": quantity})
        line = self._require_line(line_id)

        self._apply(self._snapshot.with_quantity(line_id, quantity))
        pending = self._pending_for(line)
        if pending is not None:
            pending.desired = quantity
            return await asyncio.shield(pending.done)

        try:
            await self.store.update(self.config.cart_collection, [eq("id", line_id)], {"quantity": quantity})
        except StoreError as exc:
            return await self._roll_back("set_quantity", exc)
        return MutationResult.succeeded(self._snapshot)

    async def remove_from_cart(self, line_id: str) -> MutationResult[CartSnapshot]:
        line = self._require_line(line_id)

        self._apply(self._snapshot.without_line(line_id))
        pending = self._pending_for(line)
        if pending is not None:
            pending.removed = True
            return await asyncio.shield(pending.done)

        try:
            await self.store.delete(self.config.cart_collection, [eq("id", line_id)])
        except StoreError as exc:
            return await self._roll_back("remove_from_cart", exc)
        return MutationResult.succeeded(self._snapshot)

    async def clear(self) -> MutationResult[CartSnapshot]:
        """Empty the cart locally, then delete every row the customer owns.

        Lines whose insert is still in flight are swept too, but their owners
        wait for the bulk delete: if it fails they keep their rows.
        """
        identity = self._require_identity()

        outcome = asyncio.get_running_loop().create_future()
        swept = [pending for pending in self._pending.values() if not pending.removed]
        for pending in swept:
            pending.cleared = True
            pending.clearing = outcome
        self._apply(CartSnapshot.empty())

        try:
            await self.store.delete(self.config.cart_collection, [eq("user_id", identity.id)])
        except BaseException as exc:
            for pending in swept:
                if pending.clearing is outcome:
                    pending.cleared = False
            outcome.set_result(False)
            if isinstance(exc, StoreError):
                return await self._roll_back("clear", exc)
            raise
        outcome.set_result(True)
        return MutationResult.succeeded(self._snapshot)

    # -------------------------------------------------------------------
    # Pending inserts
    # -------------------------------------------------------------------
    async def _own_insert(self, pending: PendingInsert) -> MutationResult[CartSnapshot]:
        try:
            result = await self._write_pending(pending)
        except asyncio.CancelledError:
            self._drop_pending(pending)
            pending.done.cancel()
            raise
        except Exception as exc:
            self._drop_pending(pending)
            pending.done.set_exception(exc)
            raise
        pending.done.set_result(result)
        return result

    async def _write_pending(self, pending: PendingInsert) -> MutationResult[CartSnapshot]:
        collection = self.config.cart_collection
        payload = NewCartRow(
            user_id=pending.user_id,
            menu_item_id=pending.menu_item_id,
            quantity=pending.written,
        ).model_dump(mode="json")

        try:
            row = await self.store.insert(collection, payload)
        except StoreError as exc:
            self._drop_pending(pending)
            self._apply(self._snapshot.without_line(pending.temp_id))
            return await self._roll_back("add", exc)

        row_id = row["id"]
        try:
            while True:
                if pending.clearing is not None:
                    clearing, pending.clearing = pending.clearing, None
                    await asyncio.shield(clearing)
                    continue
                if pending.withdrawn:
                    await self.store.delete(collection, [eq("id", row_id)])
                    break
                if pending.desired == pending.written:
                    break
                quantity = pending.desired
                await self.store.update(collection, [eq("id", row_id)], {"quantity": quantity})
                pending.written = quantity
        except StoreError as exc:
            self._drop_pending(pending)
            return await self._roll_back("add", exc)

        self._drop_pending(pending)
        if not pending.withdrawn:
            self._apply(self._snapshot.with_line_id(pending.temp_id, row_id))
        logger.debug(
            "Pending insert settled",
            line_id=row_id,
            menu_item_id=pending.menu_item_id,
            quantity=pending.written,
            removed=pending.withdrawn,
        )
        await self.load()
        return MutationResult.succeeded(self._snapshot)

    def _pending_for(self, line: CartLine) -> PendingInsert | None:
        pending = self._pending.get(line.menu_item_id)
        if pending is not None and pending.temp_id == line.id:
            return pending
        return None

    def _drop_pending(self, pending: PendingInsert) -> None:
        if self._pending.get(pending.menu_item_id) is pending:
            del self._pending[pending.menu_item_id]

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _require_identity(self, message: str | None = None) -> Identity:
        identity = self.identity_provider.current_identity()
        if identity is None:
            raise Unauthenticated(message)
        return identity

    def _require_line(self, line_id: str) -> CartLine:
        line = self._snapshot.find(line_id)
        if line is None:
            raise CartLineNotFound(details={"line_id": line_id})
        return line

    async def _roll_back(self, operation: str, exc: StoreError) -> MutationResult[CartSnapshot]:
        error = RemoteWriteFailed(details={"operation": operation, "reason": exc.reason})
        if self._closed:
            logger.debug("Cart write failed after close", operation=operation, error=str(exc))
            return MutationResult.failed(error)
        logger.warning("Cart write failed, reloading", operation=operation, error=str(exc))
        self.notices.error(error.message, error.code)
        await self.load()
        return MutationResult.failed(error)

    def _apply(self, snapshot: CartSnapshot) -> None:
        if self._closed:
            return
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Cart listener failed")
