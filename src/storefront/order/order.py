"""Order values and the order status lifecycle.

Statuses are assigned by the back office. This module only maps them: which
transitions are expected, and how far along the customer's order is.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict

from storefront.cart.snapshot import CartSnapshot
from storefront.catalog.items import CatalogItem
from storefront.store.schemas import OrderItemRow, OrderRow


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    BREWING = "brewing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.BREWING, OrderStatus.CANCELLED},
    OrderStatus.BREWING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_TERMINAL_STATES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

TOTAL_STEPS = 4

_STEPS = {
    OrderStatus.PENDING: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.BREWING: 3,
    OrderStatus.COMPLETED: 4,
    OrderStatus.CANCELLED: 0,
}

_DESCRIPTIONS = {
    OrderStatus.PENDING: "Your order has been received and is waiting to be processed.",
    OrderStatus.PROCESSING: "We're preparing your order now.",
    OrderStatus.BREWING: "Your coffee is brewing to perfection!",
    OrderStatus.COMPLETED: "Your order is ready for pickup. Enjoy!",
    OrderStatus.CANCELLED: "This order has been cancelled.",
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def is_terminal(status: OrderStatus) -> bool:
    return status in _TERMINAL_STATES


@dataclass(frozen=True)
class OrderProgress:
    status: OrderStatus
    step: int
    total_steps: int
    terminal: bool
    description: str

    @property
    def fraction(self) -> float:
        return self.step / self.total_steps


def progress_for(status: OrderStatus | str) -> OrderProgress:
    """Map a status to its position in the four-step lifecycle.

    Cancelled orders sit at step 0 and are terminal.
    """
    status = OrderStatus(status)
    return OrderProgress(
        status=status,
        step=_STEPS[status],
        total_steps=TOTAL_STEPS,
        terminal=is_terminal(status),
        description=_DESCRIPTIONS[status],
    )


class OrderItem(BaseModel):
    """A line captured from the cart when the order was placed.

    ``name`` and ``image`` are display fields filled from the current catalog
    and never affect the total.
    """

    model_config = ConfigDict(frozen=True)

    menu_item_id: str
    quantity: int
    unit_price: Decimal
    name: str = ""
    image: str = ""

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def row(self) -> OrderItemRow:
        return OrderItemRow(menu_item_id=self.menu_item_id, quantity=self.quantity, unit_price=self.unit_price)


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    status: OrderStatus
    total: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: tuple[OrderItem, ...] = ()

    @classmethod
    def from_row(cls, row: OrderRow, catalog: dict[str, CatalogItem] | None = None) -> "Order":
        catalog = catalog or {}
        items = []
        for item in row.items:
            known = catalog.get(item.menu_item_id)
            items.append(
                OrderItem(
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    name=known.name if known else "",
                    image=known.image if known else "",
                )
            )
        return cls(
            id=row.id,
            user_id=row.user_id,
            status=OrderStatus(row.status),
            total=row.total,
            created_at=row.created_at,
            updated_at=row.updated_at,
            items=tuple(items),
        )

    @property
    def progress(self) -> OrderProgress:
        return progress_for(self.status)

    @property
    def items_total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))


def order_items_from_cart(snapshot: CartSnapshot) -> list[OrderItem]:
    """Capture the cart's lines with the unit prices they were loaded at."""
    return [
        OrderItem(
            menu_item_id=line.menu_item_id,
            quantity=line.quantity,
            unit_price=line.item.unit_price,
            name=line.item.name,
            image=line.item.image,
        )
        for line in snapshot.lines
    ]


def menu_item_ids(orders: Iterable[OrderRow]) -> set[str]:
    return {item.menu_item_id for order in orders for item in order.items}
