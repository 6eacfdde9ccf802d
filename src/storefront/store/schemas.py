"""Row contracts for the hosted store's collections.

Rows cross into the domain only through these models. Unknown columns are
ignored so the hosted schema can grow without breaking clients.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class MenuRow(_Row):
    id: str
    menu_name: str
    menu_price: Decimal = Field(ge=0)
    menu_image: str = ""
    available: bool = True
    menu_category: str | None = None
    featured: bool = False


class CartRow(_Row):
    id: str
    user_id: str
    menu_item_id: str
    quantity: int = Field(ge=1)
    created_at: datetime | None = None


class OrderItemRow(_Row):
    menu_item_id: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)


class OrderRow(_Row):
    id: str
    user_id: str
    status: str
    total: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemRow] = Field(default_factory=list)


class NewCartRow(_Row):
    """Insert payload for a cart line."""

    user_id: str
    menu_item_id: str
    quantity: int = Field(ge=1)


class NewOrderRow(_Row):
    """Insert payload for an order with its captured items."""

    user_id: str
    status: str
    total: Decimal
    items: list[OrderItemRow]

    def payload(self) -> dict:
        return self.model_dump(mode="json")
