"""Cart line value type."""

from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from storefront.catalog.items import CatalogItemSnapshot

TEMP_ID_PREFIX = "temp-"


class CartLine(BaseModel):
    """One menu item in a customer's cart.

    Lines applied optimistically carry a ``temp-`` id until the store confirms
    the insert and assigns the real one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    menu_item_id: str
    quantity: int = Field(ge=1)
    item: CatalogItemSnapshot

    @classmethod
    def optimistic(
        cls,
        user_id: str,
        menu_item_id: str,
        quantity: int,
        item: CatalogItemSnapshot,
        prefix: str = TEMP_ID_PREFIX,
    ) -> "CartLine":
        return cls(
            id=f"{prefix}{uuid4().hex}",
            user_id=user_id,
            menu_item_id=menu_item_id,
            quantity=quantity,
            item=item,
        )

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @property
    def subtotal(self) -> Decimal:
        return self.item.unit_price * self.quantity
