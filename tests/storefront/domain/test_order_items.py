from decimal import Decimal

from storefront.cart.lines import CartLine
from storefront.cart.snapshot import CartSnapshot
from storefront.catalog.items import CatalogItem, CatalogItemSnapshot
from storefront.order.order import Order, OrderStatus, order_items_from_cart
from storefront.store.schemas import OrderRow


def _make_row(**overrides):
    values = {
        "id": "order-1",
        "user_id": "user-1",
        "status": "pending",
        "total": "103.50",
        "created_at": "2026-01-05T09:30:00+00:00",
        "items": [
            {"menu_item_id": "house-blend", "quantity": 2, "unit_price": "50.00"},
            {"menu_item_id": "retired", "quantity": 1, "unit_price": "3.50"},
        ],
    }
    values.update(overrides)
    return OrderRow.model_validate(values)


class TestOrderFromRow:
    def test_enriches_items_from_catalog(self):
        catalog = {
            "house-blend": CatalogItem(id="house-blend", name="House Blend", price=Decimal("55.00"), image="hb.png")
        }

        order = Order.from_row(_make_row(), catalog)

        assert order.status == OrderStatus.PENDING
        assert order.items[0].name == "House Blend"
        assert order.items[0].image == "hb.png"
        # price stays the one captured at order time
        assert order.items[0].unit_price == Decimal("50.00")

    def test_items_missing_from_catalog_have_blank_display_fields(self):
        order = Order.from_row(_make_row(), {})
        assert order.items[1].name == ""
        assert order.items[1].image == ""

    def test_total_equals_item_sum(self):
        order = Order.from_row(_make_row())
        assert order.total == order.items_total == Decimal("103.50")

    def test_progress(self):
        order = Order.from_row(_make_row(status="brewing"))
        assert order.progress.step == 3


class TestOrderItemsFromCart:
    def test_captures_quantities_and_prices(self):
        snapshot = CartSnapshot.from_lines(
            [
                CartLine(
                    id="line-1",
                    user_id="user-1",
                    menu_item_id="brew-kit",
                    quantity=1,
                    item=CatalogItemSnapshot(name="Pour Over Kit", unit_price=Decimal("120.00")),
                ),
                CartLine(
                    id="line-2",
                    user_id="user-1",
                    menu_item_id="house-blend",
                    quantity=2,
                    item=CatalogItemSnapshot(name="House Blend", unit_price=Decimal("50.00")),
                ),
            ]
        )

        items = order_items_from_cart(snapshot)

        assert [(i.menu_item_id, i.quantity, i.unit_price) for i in items] == [
            ("brew-kit", 1, Decimal("120.00")),
            ("house-blend", 2, Decimal("50.00")),
        ]
        assert sum(item.subtotal for item in items) == snapshot.total

    def test_item_row_drops_display_fields(self):
        snapshot = CartSnapshot.from_lines(
            [
                CartLine(
                    id="line-1",
                    user_id="user-1",
                    menu_item_id="brew-kit",
                    quantity=1,
                    item=CatalogItemSnapshot(name="Pour Over Kit", unit_price=Decimal("120.00")),
                )
            ]
        )
        row = order_items_from_cart(snapshot)[0].row()
        assert row.model_dump(mode="json") == {"menu_item_id": "brew-kit", "quantity": 1, "unit_price": "120.00"}
