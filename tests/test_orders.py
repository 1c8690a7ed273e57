"""Tests for order records and their status transitions."""

import pytest

from conftest import make_product, make_user

PAST = "2000-01-01T00:00:00+00:00"


async def new_order(store, user_id=1001, amount=10000):
    product = await make_product(store, price=amount)
    result = await store.orders.create_order({
        "userId": user_id,
        "productId": product["productId"],
        "productName": product["name"],
        "amount": amount,
        "paymentMethod": "BALANCE",
        "userInfo": {"username": "buyer"},
    })
    assert result["ok"]
    return result["order"]


class TestCreate:
    @pytest.mark.asyncio
    async def test_new_order_is_pending_and_unpaid(self, store):
        order = await new_order(store)
        assert order["status"] == "pending"
        assert order["paymentStatus"] == "unpaid"
        assert order["deliveryStatus"] == "pending"
        assert order["orderId"].startswith("ORD-")
        assert order["metadata"]["userInfo"] == {"username": "buyer"}
        assert order["expiresAt"] > order["createdAt"]

    @pytest.mark.asyncio
    async def test_listing_and_filters(self, store):
        first = await new_order(store, user_id=1)
        await new_order(store, user_id=2)
        assert len(await store.orders.get_all_orders()) == 2
        user_orders = await store.orders.get_user_orders(1)
        assert [o["orderId"] for o in user_orders] == [first["orderId"]]
        assert await store.orders.get_all_orders({"status": "completed"}) == []


class TestTransitions:
    @pytest.mark.asyncio
    async def test_approve_then_complete(self, store):
        order = await new_order(store)
        approved = await store.orders.approve_order(order["orderId"], 999)
        assert approved["ok"]
        assert approved["order"]["status"] == "processing"
        assert approved["order"]["paymentStatus"] == "paid"
        assert approved["order"]["approvedBy"] == 999

        completed = await store.orders.complete_order(order["orderId"])
        assert completed["ok"]
        assert completed["order"]["status"] == "completed"
        assert completed["order"]["deliveryStatus"] == "delivered"

    @pytest.mark.asyncio
    async def test_complete_requires_processing(self, store):
        order = await new_order(store)
        result = await store.orders.complete_order(order["orderId"])
        assert result["ok"] is False
        assert "cannot be completed" in result["message"]

    @pytest.mark.asyncio
    async def test_terminal_states_reject_everything(self, store):
        order = await new_order(store)
        await store.orders.cancel_order(order["orderId"], "changed mind")
        for result in (
            await store.orders.approve_order(order["orderId"], 999),
            await store.orders.mark_paid(order["orderId"]),
            await store.orders.complete_order(order["orderId"]),
            await store.orders.reject_order(order["orderId"], "x", 999),
            await store.orders.cancel_order(order["orderId"], "again"),
        ):
            assert result["ok"] is False
        assert (await store.orders.get_order(order["orderId"]))["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_unpaid_order(self, store):
        order = await new_order(store)
        result = await store.orders.cancel_order(order["orderId"], "changed mind")
        assert result["ok"]
        assert result["was_paid"] is False
        assert result["order"]["paymentStatus"] == "unpaid"
        assert result["order"]["cancellationReason"] == "changed mind"

    @pytest.mark.asyncio
    async def test_reject_paid_order_marks_refund(self, store):
        order = await new_order(store)
        await store.orders.mark_paid(order["orderId"])
        result = await store.orders.reject_order(order["orderId"], "fraud", 999)
        assert result["ok"]
        assert result["was_paid"] is True
        assert result["order"]["status"] == "cancelled"
        assert result["order"]["paymentStatus"] == "refunded"
        assert result["order"]["rejectionReason"] == "fraud"

    @pytest.mark.asyncio
    async def test_missing_order(self, store):
        result = await store.orders.approve_order("ORD-NOPE", 999)
        assert result == {"ok": False, "message": "Order not found"}


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_orders_cancelled_once(self, store):
        stale = await new_order(store)
        fresh = await new_order(store)
        await store.orders.update_order(stale["orderId"], {"expiresAt": PAST})

        expired = await store.orders.cleanup_expired_orders()
        assert [r["order"]["orderId"] for r in expired] == [stale["orderId"]]
        assert expired[0]["order"]["cancellationReason"] == "Order expired"
        assert (await store.orders.get_order(fresh["orderId"]))["status"] == "pending"

        assert await store.orders.cleanup_expired_orders() == []

    @pytest.mark.asyncio
    async def test_processing_orders_do_not_expire(self, store):
        order = await new_order(store)
        await store.orders.mark_paid(order["orderId"])
        await store.orders.update_order(order["orderId"], {"expiresAt": PAST})
        assert await store.orders.cleanup_expired_orders() == []


class TestReporting:
    @pytest.mark.asyncio
    async def test_stats(self, store):
        done = await new_order(store, amount=20000)
        await new_order(store, amount=5000)
        await store.orders.approve_order(done["orderId"], 999)
        await store.orders.complete_order(done["orderId"])

        stats = await store.orders.get_order_stats()
        assert stats["total"] == 2
        assert stats["completed"] == 1
        assert stats["pending"] == 1
        assert stats["totalRevenue"] == 20000
        assert stats["averageOrderValue"] == 20000

    @pytest.mark.asyncio
    async def test_notes_search_and_receipt(self, store):
        await make_user(store)
        order = await new_order(store)
        assert await store.orders.add_order_note(order["orderId"], "checked proof")
        saved = await store.orders.get_order(order["orderId"])
        assert "checked proof" in saved["notes"]

        assert len(await store.orders.search_orders("python")) == 1
        receipt = await store.orders.get_order_receipt(order["orderId"])
        assert receipt["productName"] == "Python Course"
        assert receipt["amount"] == 10000
        assert await store.orders.get_order_receipt("missing") is None
