import asyncio

import pytest
from storefront.store.memory import InMemoryStore
from storefront.store.port import ChangeKind, Ordering, StoreError, eq, in_


def _make_store():
    store = InMemoryStore()
    store.seed("menu", [{"id": "a", "menu_name": "A", "menu_price": "1.00"}, {"id": "b", "menu_name": "B", "menu_price": "2.00"}])
    return store


async def _drain(subscription):
    await subscription.close()
    return [event async for event in subscription]


class TestRows:
    def test_insert_assigns_id_and_created_at(self):
        store = _make_store()
        row = asyncio.run(store.insert("cart", {"user_id": "u1", "menu_item_id": "a", "quantity": 1}))
        assert row["id"]
        assert row["created_at"] is not None
        assert store.rows("cart") == [row]

    def test_select_filters_and_orders_newest_first(self):
        store = _make_store()

        async def scenario():
            first = await store.insert("cart", {"user_id": "u1", "menu_item_id": "a", "quantity": 1})
            await store.insert("cart", {"user_id": "u2", "menu_item_id": "a", "quantity": 1})
            second = await store.insert("cart", {"user_id": "u1", "menu_item_id": "b", "quantity": 1})
            rows = await store.select("cart", [eq("user_id", "u1")], [Ordering("created_at", descending=True)])
            return first, second, rows

        first, second, rows = asyncio.run(scenario())
        assert [row["id"] for row in rows] == [second["id"], first["id"]]

    def test_select_with_in_filter(self):
        store = _make_store()
        rows = asyncio.run(store.select("menu", [in_("id", ["b", "zzz"])]))
        assert [row["id"] for row in rows] == ["b"]

    def test_select_returns_copies(self):
        store = _make_store()
        rows = asyncio.run(store.select("menu"))
        rows[0]["menu_name"] = "changed"
        assert store.rows("menu")[0]["menu_name"] == "A"

    def test_update_and_delete_report_counts(self):
        store = _make_store()

        async def scenario():
            await store.insert("cart", {"user_id": "u1", "menu_item_id": "a", "quantity": 1})
            await store.insert("cart", {"user_id": "u1", "menu_item_id": "b", "quantity": 1})
            updated = await store.update("cart", [eq("menu_item_id", "a")], {"quantity": 4})
            deleted = await store.delete("cart", [eq("user_id", "u1")])
            return updated, deleted

        assert asyncio.run(scenario()) == (1, 2)
        assert store.rows("cart") == []

    def test_update_stamps_updated_at(self):
        store = _make_store()

        async def scenario():
            row = await store.insert("orders", {"user_id": "u1", "status": "pending"})
            await store.update("orders", [eq("id", row["id"])], {"status": "processing"})

        asyncio.run(scenario())
        row = store.rows("orders")[0]
        assert row["status"] == "processing"
        assert row["updated_at"] is not None

    def test_calls_are_recorded(self):
        store = _make_store()
        asyncio.run(store.select("menu", [eq("id", "a")]))
        assert store.calls == [{"method": "select", "collection": "menu", "filters": [eq("id", "a")]}]
        assert len(store.calls_to("select", "menu")) == 1
        assert store.calls_to("insert") == []


class TestFailures:
    def test_writes_fail_when_configured(self):
        store = _make_store()
        store.configure(should_succeed=False, failure_reason="offline")

        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.insert("cart", {"user_id": "u1"}))

        assert exc_info.value.reason == "offline"
        assert exc_info.value.operation == "insert"
        assert store.rows("cart") == []
        # reads are unaffected by default
        assert len(asyncio.run(store.select("menu"))) == 2

    def test_failing_operations_can_be_narrowed(self):
        store = _make_store()
        store.configure(should_succeed=False, operations={"select"})

        with pytest.raises(StoreError):
            asyncio.run(store.select("menu"))
        asyncio.run(store.insert("cart", {"user_id": "u1"}))
        assert len(store.rows("cart")) == 1

    def test_reset_restores_defaults(self):
        store = _make_store()
        store.configure(should_succeed=False)
        store.reset()
        assert store.should_succeed is True
        assert store.rows("menu") == []
        assert store.calls == []


class TestPause:
    def test_paused_calls_wait_for_resume(self):
        store = _make_store()

        async def scenario():
            store.pause()
            task = asyncio.create_task(store.insert("cart", {"user_id": "u1"}))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            held = store.rows("cart")
            store.resume()
            await task
            return held

        assert asyncio.run(scenario()) == []
        assert len(store.rows("cart")) == 1


class TestChangeEvents:
    def test_subscription_receives_matching_writes(self):
        store = _make_store()

        async def scenario():
            subscription = await store.subscribe("cart", [eq("user_id", "u1")])
            row = await store.insert("cart", {"user_id": "u1", "menu_item_id": "a", "quantity": 1})
            await store.insert("cart", {"user_id": "u2", "menu_item_id": "a", "quantity": 1})
            await store.update("cart", [eq("id", row["id"])], {"quantity": 2})
            await store.delete("cart", [eq("id", row["id"])])
            return await _drain(subscription)

        events = asyncio.run(scenario())
        assert [event.kind for event in events] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
        assert events[1].old["quantity"] == 1
        assert events[1].new["quantity"] == 2
        assert events[2].new is None
        assert events[2].row["user_id"] == "u1"

    def test_kinds_narrow_the_feed(self):
        store = _make_store()

        async def scenario():
            subscription = await store.subscribe("cart", kinds=[ChangeKind.DELETE])
            await store.insert("cart", {"user_id": "u1"})
            await store.delete("cart", [eq("user_id", "u1")])
            return await _drain(subscription)

        assert [event.kind for event in asyncio.run(scenario())] == [ChangeKind.DELETE]

    def test_seed_does_not_publish(self):
        store = _make_store()

        async def scenario():
            subscription = await store.subscribe("menu")
            store.seed("menu", [{"id": "c", "menu_name": "C", "menu_price": "3.00"}])
            return await _drain(subscription)

        assert asyncio.run(scenario()) == []

    def test_close_detaches_subscription(self):
        store = _make_store()

        async def scenario():
            subscription = await store.subscribe("cart")
            assert store.subscription_count == 1
            await subscription.close()
            await store.insert("cart", {"user_id": "u1"})
            return [event async for event in subscription]

        assert asyncio.run(scenario()) == []
        assert store.subscription_count == 0

    def test_menu_delete_cascades_to_cart(self):
        store = _make_store()

        async def scenario():
            await store.insert("cart", {"user_id": "u1", "menu_item_id": "a", "quantity": 1})
            await store.insert("cart", {"user_id": "u1", "menu_item_id": "b", "quantity": 1})
            subscription = await store.subscribe("cart", [eq("user_id", "u1")])
            await store.delete("menu", [eq("id", "a")])
            return await _drain(subscription)

        events = asyncio.run(scenario())
        assert [(event.kind, event.row["menu_item_id"]) for event in events] == [(ChangeKind.DELETE, "a")]
        assert [row["menu_item_id"] for row in store.rows("cart")] == ["b"]
