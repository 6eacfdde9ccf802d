"""Immutable cart state with derived count and total.

``count`` and ``total`` are produced by a fold over the lines. Every transform
adjusts them by the delta of the line it touches, and because money is
``Decimal`` the adjusted values stay equal to a fresh fold.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from storefront.cart.lines import CartLine


@dataclass(frozen=True)
class CartSnapshot:
    lines: tuple[CartLine, ...] = ()
    count: int = 0
    total: Decimal = Decimal("0")

    @classmethod
    def from_lines(cls, lines: Iterable[CartLine]) -> "CartSnapshot":
        lines = tuple(lines)
        return cls(
            lines=lines,
            count=sum(line.quantity for line in lines),
            total=sum((line.subtotal for line in lines), Decimal("0")),
        )

    @classmethod
    def empty(cls) -> "CartSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def find(self, line_id: str) -> CartLine | None:
        return next((line for line in self.lines if line.id == line_id), None)

    def find_by_item(self, menu_item_id: str) -> CartLine | None:
        return next((line for line in self.lines if line.menu_item_id == menu_item_id), None)

    def with_line(self, line: CartLine) -> "CartSnapshot":
        """Add a new line in front, matching the newest-first load order."""
        return CartSnapshot(
            lines=(line,) + self.lines,
            count=self.count + line.quantity,
            total=self.total + line.subtotal,
        )

    def with_quantity(self, line_id: str, quantity: int) -> "CartSnapshot":
        line = self.find(line_id)
        if line is None:
            return self
        delta = quantity - line.quantity
        updated = line.model_copy(update={"quantity": quantity})
        return CartSnapshot(
            lines=tuple(updated if candidate.id == line_id else candidate for candidate in self.lines),
            count=self.count + delta,
            total=self.total + line.item.unit_price * delta,
        )

    def without_line(self, line_id: str) -> "CartSnapshot":
        line = self.find(line_id)
        if line is None:
            return self
        return CartSnapshot(
            lines=tuple(candidate for candidate in self.lines if candidate.id != line_id),
            count=self.count - line.quantity,
            total=self.total - line.subtotal,
        )

    def with_line_id(self, old_id: str, new_id: str) -> "CartSnapshot":
        """Promote a temporary line to its store-assigned id."""
        return replace(
            self,
            lines=tuple(
                line.model_copy(update={"id": new_id}) if line.id == old_id else line for line in self.lines
            ),
        )
