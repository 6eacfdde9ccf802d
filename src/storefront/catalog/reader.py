"""Read-only access to the catalog collection."""

from collections.abc import Iterable

import structlog

from storefront.catalog.items import CatalogItem
from storefront.config import StorefrontConfig
from storefront.store.port import Filter, Ordering, RemoteStore, eq, in_
from storefront.store.schemas import MenuRow

logger = structlog.get_logger(__name__)


class CatalogReader:
    """Loads catalog items. Errors from the store propagate to the caller."""

    def __init__(self, store: RemoteStore, config: StorefrontConfig | None = None) -> None:
        self.store = store
        self.config = config or StorefrontConfig()

    async def fetch_items(
        self,
        category: str | None = None,
        available: bool | None = None,
    ) -> list[CatalogItem]:
        """Browse the catalog, ordered by category then name."""
        filters: list[Filter] = []
        if category is not None:
            filters.append(eq("menu_category", category))
        if available is not None:
            filters.append(eq("available", available))

        rows = await self.store.select(
            self.config.menu_collection,
            filters,
            order_by=[Ordering("menu_category"), Ordering("menu_name")],
        )
        items = [CatalogItem.from_row(MenuRow.model_validate(row)) for row in rows]
        logger.debug("Catalog fetched", category=category, available=available, count=len(items))
        return items

    async def fetch_by_ids(self, ids: Iterable[str]) -> dict[str, CatalogItem]:
        """Resolve items by id. Ids with no catalog row are absent from the result."""
        wanted = sorted(set(ids))
        if not wanted:
            return {}

        rows = await self.store.select(self.config.menu_collection, [in_("id", wanted)])
        items = (CatalogItem.from_row(MenuRow.model_validate(row)) for row in rows)
        return {item.id: item for item in items}
