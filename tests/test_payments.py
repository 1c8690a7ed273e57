"""Tests for deposits and payment records."""

import pytest

from storebot.services.payments import AUTO_APPROVER, AUTO_METHOD

PAST = "2000-01-01T00:00:00+00:00"


async def manual_deposit(store, amount=50000, user_id=1001, method="DANA"):
    result = await store.payments.create_deposit({"userId": user_id, "amount": amount, "method": method})
    assert result["ok"], result
    return result["deposit"]


class TestMethods:
    def test_manual_and_auto_methods(self, store):
        codes = [m["code"] for m in store.payments.get_payment_methods()]
        assert "DANA" in codes
        assert codes[-1] == AUTO_METHOD

    def test_auto_method_needs_api_key(self, store):
        store.gateway.api_key = ""
        assert not store.payments.is_method_available(AUTO_METHOD)

    def test_disabled_method_hidden(self, store, config):
        config.manual_payment["OVO"] = {"enabled": False}
        assert not store.payments.is_method_available("OVO")


class TestCreateDeposit:
    @pytest.mark.asyncio
    async def test_manual_deposit(self, store):
        deposit = await manual_deposit(store, method="dana")
        assert deposit["method"] == "DANA"
        assert deposit["status"] == "pending"
        assert deposit["externalId"] is None
        store.gateway.create_payment.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [500, 10000001, "50000", None, True])
    async def test_invalid_amount(self, store, amount):
        result = await store.payments.create_deposit({"userId": 1, "amount": amount, "method": "DANA"})
        assert result["ok"] is False
        assert "between" in result["message"]

    @pytest.mark.asyncio
    async def test_unknown_method(self, store):
        result = await store.payments.create_deposit({"userId": 1, "amount": 50000, "method": "BITCOIN"})
        assert result["ok"] is False
        assert "not available" in result["message"]

    @pytest.mark.asyncio
    async def test_auto_deposit_uses_gateway(self, store):
        deposit = await manual_deposit(store, method=AUTO_METHOD)
        store.gateway.create_payment.assert_awaited_once_with(50000, deposit["depositId"])
        assert deposit["externalId"] == "TRX1"
        assert deposit["qrUrl"] == "https://qr.example/TRX1.png"
        assert deposit["paymentUrl"] == "https://pay.example/TRX1"

    @pytest.mark.asyncio
    async def test_gateway_failure_saves_nothing(self, store):
        store.gateway.create_payment.return_value = {"ok": False, "message": "down"}
        result = await store.payments.create_deposit({"userId": 1, "amount": 50000, "method": AUTO_METHOD})
        assert result["ok"] is False
        assert await store.payments.get_all_deposits() == []


class TestTransitions:
    @pytest.mark.asyncio
    async def test_approve_once(self, store):
        deposit = await manual_deposit(store)
        first = await store.payments.approve_deposit(deposit["depositId"], 999)
        assert first["ok"]
        assert first["deposit"]["status"] == "completed"
        second = await store.payments.approve_deposit(deposit["depositId"], 999)
        assert second["ok"] is False

    @pytest.mark.asyncio
    async def test_reject_only_pending(self, store):
        deposit = await manual_deposit(store)
        await store.payments.approve_deposit(deposit["depositId"], 999)
        result = await store.payments.reject_deposit(deposit["depositId"], "late", 999)
        assert result["ok"] is False
        assert (await store.payments.get_deposit(deposit["depositId"]))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_reject_records_reason(self, store):
        deposit = await manual_deposit(store)
        result = await store.payments.reject_deposit(deposit["depositId"], "blurry proof", 999)
        assert result["deposit"]["status"] == "rejected"
        assert result["deposit"]["rejectionReason"] == "blurry proof"

    @pytest.mark.asyncio
    async def test_cancel_auto_deposit_cancels_gateway_payment(self, store):
        deposit = await manual_deposit(store, method=AUTO_METHOD)
        result = await store.payments.cancel_deposit(deposit["depositId"])
        assert result["ok"]
        assert result["deposit"]["status"] == "cancelled"
        store.gateway.cancel_payment.assert_awaited_once_with("TRX1")

    @pytest.mark.asyncio
    async def test_cancel_survives_gateway_failure(self, store):
        store.gateway.cancel_payment.return_value = {"ok": False, "message": "down"}
        deposit = await manual_deposit(store, method=AUTO_METHOD)
        result = await store.payments.cancel_deposit(deposit["depositId"])
        assert result["ok"]

    @pytest.mark.asyncio
    async def test_attach_proof(self, store):
        deposit = await manual_deposit(store)
        result = await store.payments.attach_proof(deposit["depositId"], "https://cdn.example/proof.png")
        assert result["deposit"]["proofUrl"] == "https://cdn.example/proof.png"
        assert result["deposit"]["status"] == "pending"


class TestAutoCheck:
    @pytest.mark.asyncio
    async def test_pending_payment_is_left_alone(self, store):
        await manual_deposit(store, method=AUTO_METHOD)
        assert await store.payments.auto_check_qris_payments() == []

    @pytest.mark.asyncio
    async def test_paid_deposit_completed_once(self, store):
        deposit = await manual_deposit(store, method=AUTO_METHOD)
        await manual_deposit(store)
        store.gateway.check_status.return_value = {
            "ok": True, "status": "success", "paid": True, "raw": {"status": "success"},
        }

        completed = await store.payments.auto_check_qris_payments()
        assert [d["depositId"] for d in completed] == [deposit["depositId"]]
        assert completed[0]["approvedBy"] == AUTO_APPROVER
        assert completed[0]["metadata"]["statusData"] == {"status": "success"}
        store.gateway.check_status.assert_awaited_once_with("TRX1")

        assert await store.payments.auto_check_qris_payments() == []


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_deposits_move_once(self, store):
        manual = await manual_deposit(store)
        auto = await manual_deposit(store, method=AUTO_METHOD)
        fresh = await manual_deposit(store, amount=20000)
        for deposit in (manual, auto):
            await store.payments.update_deposit(deposit["depositId"], {"expiresAt": PAST})

        assert await store.payments.cleanup_expired_deposits() == 2
        assert (await store.payments.get_deposit(manual["depositId"]))["status"] == "expired"
        assert (await store.payments.get_deposit(fresh["depositId"]))["status"] == "pending"
        store.gateway.cancel_payment.assert_awaited_once_with("TRX1")

        assert await store.payments.cleanup_expired_deposits() == 0


class TestRecords:
    @pytest.mark.asyncio
    async def test_create_payment_defaults_to_pending(self, store):
        result = await store.payments.create_payment({"orderId": "ORD-1", "userId": 1, "amount": 100})
        assert result["payment"]["status"] == "pending"
        assert result["payment"]["paymentId"]

    @pytest.mark.asyncio
    async def test_stats(self, store):
        done = await manual_deposit(store, amount=30000)
        await manual_deposit(store, amount=10000)
        await store.payments.approve_deposit(done["depositId"], 999)

        stats = await store.payments.get_payment_stats()
        assert stats["totalDeposits"] == 2
        assert stats["completed"] == 1
        assert stats["pending"] == 1
        assert stats["totalAmount"] == 30000

    @pytest.mark.asyncio
    async def test_user_deposits(self, store):
        await manual_deposit(store, user_id=1)
        await manual_deposit(store, user_id=2)
        assert len(await store.payments.get_user_deposits(1)) == 1
