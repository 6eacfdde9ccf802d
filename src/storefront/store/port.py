"""Remote store port (abstract interface).

Defines the contract every data store adapter implements: row reads and
writes against named collections, plus a change-notification feed. The cache
components only ever talk to this interface, so the in-memory adapter and a
hosted adapter are interchangeable.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

Row = dict[str, Any]


class StoreError(Exception):
    """Raised by adapters when a call is rejected or never completes."""

    def __init__(self, operation: str, collection: str, reason: str) -> None:
        self.operation = operation
        self.collection = collection
        self.reason = reason
        super().__init__(f"{operation} on {collection!r} failed: {reason}")


class ChangeKind(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


ALL_CHANGES = frozenset(ChangeKind)


@dataclass(frozen=True)
class Filter:
    """A column predicate. ``op`` is ``"eq"`` or ``"in"``."""

    column: str
    op: str
    value: Any

    def matches(self, row: Row) -> bool:
        if self.column not in row:
            return False
        if self.op == "eq":
            return row[self.column] == self.value
        if self.op == "in":
            return row[self.column] in self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def matches_all(filters: Sequence[Filter], row: Row) -> bool:
    return all(f.matches(row) for f in filters)


@dataclass(frozen=True)
class Ordering:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class ChangeEvent:
    """A row in a watched collection was inserted, updated or deleted by any party."""

    kind: ChangeKind
    collection: str
    new: Row | None = None
    old: Row | None = None

    @property
    def row(self) -> Row:
        return self.new if self.new is not None else (self.old or {})


class Subscription(ABC):
    """An open change feed. Iterate it for events; ``close()`` ends the iteration."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    @abstractmethod
    async def close(self) -> None: ...


@dataclass
class Watch:
    """What a subscription listens to."""

    collection: str
    filters: tuple[Filter, ...] = ()
    kinds: frozenset[ChangeKind] = field(default=ALL_CHANGES)

    def wants(self, event: ChangeEvent) -> bool:
        return (
            event.collection == self.collection
            and event.kind in self.kinds
            and matches_all(self.filters, event.row)
        )


class RemoteStore(ABC):
    """Abstract remote data store interface. Every call is a suspension point."""

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Ordering] = (),
    ) -> list[Row]:
        """Return copies of the rows matching every filter."""
        ...

    @abstractmethod
    async def insert(self, collection: str, row: Row) -> Row:
        """Insert a row and return it with its store-assigned ``id`` and ``created_at``."""
        ...

    @abstractmethod
    async def update(self, collection: str, filters: Sequence[Filter], patch: Row) -> int:
        """Apply ``patch`` to the matching rows and return how many changed."""
        ...

    @abstractmethod
    async def delete(self, collection: str, filters: Sequence[Filter]) -> int:
        """Delete the matching rows and return how many were removed."""
        ...

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        kinds: Iterable[ChangeKind] = ALL_CHANGES,
    ) -> Subscription:
        """Open a change feed scoped to ``collection`` and ``filters``."""
        ...
