import asyncio
from typing import Any, Dict, Optional

import aiohttp

from ..config import StoreConfig
from ..utils.logger import logger


class QrisGateway:
    """Client for the QRIS deposit gateway.

    Every call is a single JSON POST carrying the API key in the body. There
    are no retries; callers get ``{"ok": False, "message": ...}`` on any
    transport or gateway error.
    """

    def __init__(self, config: StoreConfig):
        self.api_key = config.gateway_api_key
        self.create_url = config.gateway_create_url
        self.status_url = config.gateway_status_url
        self.cancel_url = config.gateway_cancel_url
        self.timeout_seconds = config.gateway_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _post(self, url: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers={"Content-Type": "application/json"}) as response:
                    if response.status < 200 or response.status >= 300:
                        body = await response.text()
                        logger.error(f"QRIS gateway error {response.status} at {url}: {body[:300]}")
                        return None
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error(f"QRIS gateway request failed ({url}): {exc}")
            return None

        if not isinstance(data, dict):
            logger.error(f"QRIS gateway returned unexpected payload at {url}: {data!r}")
            return None
        return data

    async def create_payment(self, amount: int, reference: str) -> Dict[str, Any]:
        if not self.configured:
            return {"ok": False, "message": "QRIS gateway is not configured"}

        data = await self._post(self.create_url, {
            "api_key": self.api_key,
            "type": "ewallet",
            "nominal": amount,
            "cust_no": reference,
            "cust_name": "Customer",
        })
        if data is None:
            return {"ok": False, "message": "Failed to reach the QRIS gateway"}
        if data.get("status") is not True:
            return {"ok": False, "message": str(data.get("message") or "Failed to create QRIS payment")}

        details = data.get("data") or {}
        return {
            "ok": True,
            "qr_url": details.get("qr_url"),
            "payment_url": details.get("checkout_url"),
            "external_id": details.get("trxid"),
            "raw": details,
        }

    async def check_status(self, external_id: str) -> Dict[str, Any]:
        if not self.configured:
            return {"ok": False, "message": "QRIS gateway is not configured"}

        data = await self._post(self.status_url, {"api_key": self.api_key, "trxid": external_id})
        if data is None:
            return {"ok": False, "message": "Failed to check payment status"}

        details = data.get("data") or {}
        status = str(details.get("status") or "pending").lower()
        return {"ok": True, "status": status, "paid": status == "success", "raw": details}

    async def cancel_payment(self, external_id: str) -> Dict[str, Any]:
        if not self.configured:
            return {"ok": False, "message": "QRIS gateway is not configured"}

        data = await self._post(self.cancel_url, {"api_key": self.api_key, "trxid": external_id})
        if data is None:
            return {"ok": False, "message": "Failed to reach the QRIS gateway"}
        if data.get("status") is not True:
            return {"ok": False, "message": str(data.get("message") or "Failed to cancel payment")}
        return {"ok": True}
