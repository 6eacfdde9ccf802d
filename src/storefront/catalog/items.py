"""Catalog entities as the cache sees them."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from storefront.store.schemas import MenuRow


class CatalogItemSnapshot(BaseModel):
    """Catalog fields captured at the moment a cart line was last loaded."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit_price: Decimal
    image: str = ""
    available: bool = True


class CatalogItem(BaseModel):
    """A purchasable menu entry. Administrators own its lifecycle."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price: Decimal
    image: str = ""
    available: bool = True
    category: str | None = None
    featured: bool = False

    @classmethod
    def from_row(cls, row: MenuRow) -> "CatalogItem":
        return cls(
            id=row.id,
            name=row.menu_name,
            price=row.menu_price,
            image=row.menu_image,
            available=row.available,
            category=row.menu_category,
            featured=row.featured,
        )

    def snapshot(self) -> CatalogItemSnapshot:
        return CatalogItemSnapshot(
            name=self.name,
            unit_price=self.price,
            image=self.image,
            available=self.available,
        )
