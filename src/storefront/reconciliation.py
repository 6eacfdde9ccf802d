"""Shared reconciliation machinery for the caches.

``MutationResult`` is what every remote-touching operation returns once local
state has converged. ``ChangeFeed`` turns a store subscription into exactly one
reload per change event.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from storefront.exceptions import StorefrontError
from storefront.store.port import Filter, RemoteStore, Subscription

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """Outcome of a mutation: either ``ok`` with a value, or rolled back with an error."""

    value: T | None = None
    error: StorefrontError | None = None

    @classmethod
    def succeeded(cls, value: T | None = None) -> "MutationResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, error: StorefrontError) -> "MutationResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def rolled_back(self) -> bool:
        return self.error is not None


class ChangeFeed:
    """Background task that reloads a cache once per pushed change event."""

    def __init__(
        self,
        store: RemoteStore,
        collection: str,
        filters: Sequence[Filter],
        reload: Callable[[], Awaitable[Any]],
        name: str = "",
    ) -> None:
        self.store = store
        self.collection = collection
        self.filters = tuple(filters)
        self.reload = reload
        self.name = name or collection
        self.events_seen = 0
        self._subscription: Subscription | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._subscription = await self.store.subscribe(self.collection, self.filters)
        self._task = asyncio.create_task(self._pump(self._subscription), name=f"change-feed:{self.name}")
        logger.debug("Change feed started", feed=self.name, collection=self.collection)

    async def _pump(self, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                self.events_seen += 1
                logger.debug("Change event received", feed=self.name, kind=event.kind.value)
                try:
                    await self.reload()
                except Exception:
                    logger.exception("Reload after change event failed", feed=self.name)
        except Exception:
            logger.exception("Change feed subscription failed", feed=self.name)

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            await subscription.close()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("Change feed stopped", feed=self.name)
