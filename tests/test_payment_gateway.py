"""Tests for the QRIS gateway client (HTTP layer mocked)."""

from unittest.mock import AsyncMock

import pytest

from storebot.services.payment_gateway import QrisGateway


@pytest.fixture
def client(config):
    gateway = QrisGateway(config)
    gateway._post = AsyncMock()
    return gateway


class TestCreatePayment:
    @pytest.mark.asyncio
    async def test_success(self, client, config):
        client._post.return_value = {
            "status": True,
            "data": {"trxid": "TRX9", "qr_url": "https://qr/9.png", "checkout_url": "https://pay/9"},
        }
        result = await client.create_payment(15000, "dep-1")

        assert result["ok"] is True
        assert result["external_id"] == "TRX9"
        assert result["qr_url"] == "https://qr/9.png"
        assert result["payment_url"] == "https://pay/9"
        client._post.assert_awaited_once_with(config.gateway_create_url, {
            "api_key": "test-key",
            "type": "ewallet",
            "nominal": 15000,
            "cust_no": "dep-1",
            "cust_name": "Customer",
        })

    @pytest.mark.asyncio
    async def test_gateway_refusal(self, client):
        client._post.return_value = {"status": False, "message": "Nominal too small"}
        result = await client.create_payment(10, "dep-1")
        assert result == {"ok": False, "message": "Nominal too small"}

    @pytest.mark.asyncio
    async def test_transport_failure(self, client):
        client._post.return_value = None
        result = await client.create_payment(15000, "dep-1")
        assert result["ok"] is False


class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_success_is_paid(self, client):
        client._post.return_value = {"status": True, "data": {"status": "SUCCESS"}}
        result = await client.check_status("TRX9")
        assert result["ok"] is True
        assert result["status"] == "success"
        assert result["paid"] is True

    @pytest.mark.asyncio
    async def test_missing_status_means_pending(self, client):
        client._post.return_value = {"status": False}
        result = await client.check_status("TRX9")
        assert result["ok"] is True
        assert result["status"] == "pending"
        assert result["paid"] is False

    @pytest.mark.asyncio
    async def test_unreachable(self, client):
        client._post.return_value = None
        assert (await client.check_status("TRX9"))["ok"] is False


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel(self, client, config):
        client._post.return_value = {"status": True}
        assert await client.cancel_payment("TRX9") == {"ok": True}
        client._post.assert_awaited_once_with(config.gateway_cancel_url, {"api_key": "test-key", "trxid": "TRX9"})

    @pytest.mark.asyncio
    async def test_cancel_refused(self, client):
        client._post.return_value = {"status": False, "message": "Already paid"}
        assert (await client.cancel_payment("TRX9"))["message"] == "Already paid"


class TestUnconfigured:
    @pytest.mark.asyncio
    async def test_every_call_short_circuits(self, client):
        client.api_key = ""
        assert not client.configured
        for result in (
            await client.create_payment(1000, "x"),
            await client.check_status("x"),
            await client.cancel_payment("x"),
        ):
            assert result == {"ok": False, "message": "QRIS gateway is not configured"}
        client._post.assert_not_awaited()
