"""Configurable in-memory remote store for development and testing.

This adapter simulates the hosted data store without any network calls:

- rows live in per-collection tables and get an ``id`` and ``created_at``
  on insert, the way the hosted store assigns them
- every write publishes a ``ChangeEvent`` to matching subscriptions,
  including writes made by the subscriber's own session
- deleting a parent row cascades to the rows that reference it
- failures can be switched on per operation, and ``pause()`` holds every
  call at its suspension point so tests can observe optimistic state
"""

import asyncio
import copy
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from itertools import count
from uuid import uuid4

import structlog

from storefront.store.port import (
    ALL_CHANGES,
    ChangeEvent,
    ChangeKind,
    Filter,
    Ordering,
    RemoteStore,
    Row,
    StoreError,
    Subscription,
    Watch,
    in_,
    matches_all,
)

logger = structlog.get_logger(__name__)

WRITE_OPERATIONS = frozenset({"insert", "update", "delete"})

# menu rows own the cart rows that reference them
STOREFRONT_CASCADES: dict[str, list[tuple[str, str]]] = {
    "menu": [("cart", "menu_item_id")],
}

_CLOSED = object()


class MemorySubscription(Subscription):
    """Queue-backed change feed."""

    def __init__(self, store: "InMemoryStore", watch: Watch) -> None:
        self.watch = watch
        self._store = store
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, event: ChangeEvent) -> None:
        if not self.closed and self.watch.wants(event):
            self._queue.put_nowait(event)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is _CLOSED:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._detach(self)
        self._queue.put_nowait(_CLOSED)


class InMemoryStore(RemoteStore):
    """Configurable fake of the hosted data store."""

    def __init__(
        self,
        cascades: Mapping[str, Sequence[tuple[str, str]]] | None = None,
        latency: float = 0.0,
    ) -> None:
        self.cascades = dict(STOREFRONT_CASCADES if cascades is None else cascades)
        self.latency = latency
        self.calls: list[dict] = []
        self.should_succeed: bool = True
        self.failure_reason: str = "Remote store unavailable"
        self.failing_operations: frozenset[str] = WRITE_OPERATIONS
        self._tables: dict[str, dict[str, Row]] = {}
        self._sequence: dict[str, int] = {}
        self._counter = count()
        self._subscriptions: list[MemorySubscription] = []
        self._gate: asyncio.Event | None = None

    # -------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------
    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Remote store unavailable",
        operations: Iterable[str] | None = None,
    ) -> None:
        """Configure which operations fail. Defaults to every write."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failing_operations = WRITE_OPERATIONS if operations is None else frozenset(operations)

    def pause(self) -> None:
        """Hold every subsequent call at its suspension point until ``resume()``."""
        if self._gate is None:
            self._gate = asyncio.Event()

    def resume(self) -> None:
        gate, self._gate = self._gate, None
        if gate is not None:
            gate.set()

    def seed(self, collection: str, rows: Iterable[Row]) -> list[Row]:
        """Load rows directly, without publishing change events."""
        return [self._store_row(collection, dict(row)) for row in rows]

    def rows(self, collection: str) -> list[Row]:
        """Raw view of a table in insertion order, for assertions."""
        return [copy.deepcopy(row) for row in self._tables.get(collection, {}).values()]

    def calls_to(self, operation: str, collection: str | None = None) -> list[dict]:
        return [
            call
            for call in self.calls
            if call["method"] == operation and (collection is None or call["collection"] == collection)
        ]

    def reset(self) -> None:
        """Clear tables, recorded calls and failure settings."""
        self._tables.clear()
        self._sequence.clear()
        self.calls.clear()
        self.configure()
        self.resume()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # -------------------------------------------------------------------
    # RemoteStore
    # -------------------------------------------------------------------
    async def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Ordering] = (),
    ) -> list[Row]:
        await self._round_trip("select", collection, filters=list(filters))

        table = self._tables.get(collection, {})
        rows = [row for row in table.values() if matches_all(filters, row)]
        rows.sort(key=lambda row: self._sequence[row["id"]])
        for ordering in reversed(order_by):
            rows.sort(
                key=lambda row, column=ordering.column: (
                    row.get(column) is not None,
                    row.get(column),
                    self._sequence[row["id"]],
                ),
                reverse=ordering.descending,
            )
        return copy.deepcopy(rows)

    async def insert(self, collection: str, row: Row) -> Row:
        await self._round_trip("insert", collection, row=copy.deepcopy(row))

        stored = self._store_row(collection, copy.deepcopy(row))
        self._publish(ChangeEvent(ChangeKind.INSERT, collection, new=copy.deepcopy(stored)))
        return copy.deepcopy(stored)

    async def update(self, collection: str, filters: Sequence[Filter], patch: Row) -> int:
        await self._round_trip("update", collection, filters=list(filters), patch=copy.deepcopy(patch))

        changed = 0
        now = datetime.now(UTC)
        for row in self._tables.get(collection, {}).values():
            if not matches_all(filters, row):
                continue
            old = copy.deepcopy(row)
            row.update(copy.deepcopy(patch))
            row["updated_at"] = now
            changed += 1
            self._publish(ChangeEvent(ChangeKind.UPDATE, collection, new=copy.deepcopy(row), old=old))
        return changed

    async def delete(self, collection: str, filters: Sequence[Filter]) -> int:
        await self._round_trip("delete", collection, filters=list(filters))
        return self._delete_rows(collection, filters)

    async def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        kinds: Iterable[ChangeKind] = ALL_CHANGES,
    ) -> Subscription:
        await self._round_trip("subscribe", collection, filters=list(filters))

        subscription = MemorySubscription(self, Watch(collection, tuple(filters), frozenset(kinds)))
        self._subscriptions.append(subscription)
        return subscription

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    async def _round_trip(self, method: str, collection: str, **details) -> None:
        self.calls.append({"method": method, "collection": collection, **details})

        if self._gate is not None:
            await self._gate.wait()
        await asyncio.sleep(self.latency)

        if not self.should_succeed and method in self.failing_operations:
            logger.debug("Simulated store failure", method=method, collection=collection)
            raise StoreError(method, collection, self.failure_reason)

    def _store_row(self, collection: str, row: Row) -> Row:
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(UTC))
        self._tables.setdefault(collection, {})[row["id"]] = row
        self._sequence[row["id"]] = next(self._counter)
        return row

    def _delete_rows(self, collection: str, filters: Sequence[Filter]) -> int:
        table = self._tables.get(collection, {})
        doomed = [row for row in table.values() if matches_all(filters, row)]
        for row in doomed:
            del table[row["id"]]
            self._sequence.pop(row["id"], None)
            self._publish(ChangeEvent(ChangeKind.DELETE, collection, old=copy.deepcopy(row)))

        if doomed:
            ids = [row["id"] for row in doomed]
            for child, column in self.cascades.get(collection, []):
                removed = self._delete_rows(child, [in_(column, ids)])
                if removed:
                    logger.debug("Cascade delete", parent=collection, child=child, removed=removed)
        return len(doomed)

    def _publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription.push(event)

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
