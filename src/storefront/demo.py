"""Demo: a scripted customer session against the in-memory store.

Seeds a small coffee menu, signs a customer in, fills the cart, places an
order and then plays the back office, moving the order through its statuses
while the tracker follows along through the change feed.

Usage:
    python -m storefront.demo
    python -m storefront.demo --cancel         # cancel instead of completing
    python -m storefront.demo --fail-writes    # watch optimistic rollback
"""

import argparse
import asyncio
from decimal import Decimal

from storefront.config import StorefrontConfig
from storefront.identity.session import Identity, session_provider
from storefront.order.order import OrderStatus
from storefront.session import StorefrontSession
from storefront.store.memory import InMemoryStore
from storefront.store.port import eq
from storefront.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

MENU = [
    {"id": "espresso", "menu_name": "Espresso", "menu_price": "3.00", "menu_category": "coffee", "featured": True},
    {"id": "latte", "menu_name": "Caffe Latte", "menu_price": "4.50", "menu_category": "coffee"},
    {"id": "cold-brew", "menu_name": "Cold Brew", "menu_price": "4.75", "menu_category": "coffee"},
    {"id": "croissant", "menu_name": "Butter Croissant", "menu_price": "3.25", "menu_category": "pastry"},
    {"id": "muffin", "menu_name": "Blueberry Muffin", "menu_price": "2.95", "menu_category": "pastry", "available": False},
]


def _print_cart(session: StorefrontSession) -> None:
    snapshot = session.cart.snapshot
    print(f"  cart: {snapshot.count} item(s), total {snapshot.total}")
    for line in snapshot.lines:
        print(f"    {line.quantity} x {line.item.name:<18} {line.item.unit_price:>6}  [{line.id}]")


async def _settle() -> None:
    # let the change feeds drain
    for _ in range(20):
        await asyncio.sleep(0)


async def run(cancel: bool = False, fail_writes: bool = False) -> None:
    config = StorefrontConfig.from_env()
    store = InMemoryStore()
    store.seed(config.menu_collection, MENU)
    provider = session_provider(config.session_file)
    if provider.current_identity() is None:
        provider.sign_in(Identity(id="customer-1", email="ada@example.com"))

    async with StorefrontSession(store, provider, config) as session:
        items = await session.catalog.fetch_items(available=True)
        print("Menu:")
        for item in items:
            print(f"  {item.category:<8} {item.name:<18} {item.price:>6}")

        by_id = {item.id: item for item in items}
        await asyncio.gather(
            session.cart.add(by_id["latte"]),
            session.cart.add(by_id["latte"]),
            session.cart.add(by_id["croissant"], 2),
        )
        print("\nAfter adding items:")
        _print_cart(session)

        if fail_writes:
            store.configure(should_succeed=False, failure_reason="network unreachable")
            line = session.cart.snapshot.find_by_item("latte")
            result = await session.cart.set_quantity(line.id, 5)
            print(f"\nQuantity change rolled back: {result.rolled_back} ({result.error.message})")
            _print_cart(session)
            store.configure()

        result = await session.orders.create_order()
        await _settle()
        order = session.orders.current_order
        print(f"\nOrder {result.value} placed, total {order.total}")
        _print_cart(session)

        path = [OrderStatus.PROCESSING, OrderStatus.CANCELLED] if cancel else [
            OrderStatus.PROCESSING,
            OrderStatus.BREWING,
            OrderStatus.COMPLETED,
        ]
        for status in path:
            await store.update(config.orders_collection, [eq("id", order.id)], {"status": status.value})
            await _settle()
            progress = session.orders.current_order.progress
            print(
                f"  {progress.status.value:<10} step {progress.step}/{progress.total_steps}"
                f" {progress.fraction:>5.0%}  {progress.description}"
            )

        for notice in session.notices.drain():
            print(f"  [{notice.level.value}] {notice.message}")


def main():
    parser = argparse.ArgumentParser(description="Run a scripted storefront session")
    parser.add_argument("--cancel", action="store_true", help="Cancel the order instead of completing it")
    parser.add_argument("--fail-writes", action="store_true", help="Fail one cart write to show the rollback")
    args = parser.parse_args()

    configure_logging()
    logger.info("Storefront demo starting", cancel=args.cancel, fail_writes=args.fail_writes)
    asyncio.run(run(cancel=args.cancel, fail_writes=args.fail_writes))


if __name__ == "__main__":
    main()
