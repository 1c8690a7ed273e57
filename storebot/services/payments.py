from typing import Any, Dict, Iterable, List, Optional

from ..config import StoreConfig
from ..utils.errors import InvalidStateError, NotFoundError, StoreError, ValidationError, failure
from ..utils.formatting import iso_now, parse_iso, utc_now
from ..utils.logger import logger
from ..utils.security import SecurityManager
from ..utils.validator import Validator
from .database import DatabaseManager
from .payment_gateway import QrisGateway

AUTO_METHOD = "QRIS_AUTO"
AUTO_APPROVER = "AUTO_SYSTEM"


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: parse_iso(r.get("createdAt")) or utc_now(), reverse=True)


class PaymentManager:
    """Deposits (balance top-ups) and payment records.

    A deposit leaves ``pending`` exactly once, to completed, rejected,
    expired or cancelled.
    """

    def __init__(self, db: DatabaseManager, security: SecurityManager, config: StoreConfig, gateway: QrisGateway):
        self.db = db
        self.security = security
        self.config = config
        self.gateway = gateway

    def get_payment_methods(self) -> List[Dict[str, Any]]:
        methods = [
            {"code": code, "name": code, **value, "type": "manual"}
            for code, value in self.config.manual_payment.items()
            if value.get("enabled")
        ]
        if self.gateway.configured:
            methods.append({"code": AUTO_METHOD, "name": "QRIS (Auto)", "enabled": True, "type": "auto"})
        return methods

    def is_method_available(self, method: str) -> bool:
        return Validator.is_valid_payment_method(method, [m["code"] for m in self.get_payment_methods()])

    async def create_deposit(self, deposit_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            amount = deposit_data.get("amount")
            method = str(deposit_data.get("method") or "").upper()
            if not isinstance(amount, (int, float)) or not Validator.is_valid_number(
                amount, self.config.min_deposit, self.config.max_deposit
            ):
                raise ValidationError(
                    f"Deposit amount must be between {self.config.min_deposit} and {self.config.max_deposit}"
                )
            if not self.is_method_available(method):
                raise ValidationError(f"Payment method {method or '(none)'} is not available")

            now = iso_now()
            deposit = {
                "depositId": self.security.generate_secure_token(16),
                "userId": deposit_data.get("userId"),
                "amount": amount,
                "method": method,
                "status": "pending",
                "qrUrl": None,
                "paymentUrl": None,
                "externalId": None,
                "proofUrl": None,
                "proofPath": None,
                "metadata": {},
                "createdAt": now,
                "updatedAt": now,
                "expiresAt": iso_now(self.config.deposit_expiry_seconds),
            }

            if method == AUTO_METHOD:
                result = await self.gateway.create_payment(amount, deposit["depositId"])
                if not result["ok"]:
                    raise StoreError(f"Failed to create QRIS payment: {result['message']}")
                deposit.update(
                    qrUrl=result.get("qr_url"),
                    paymentUrl=result.get("payment_url"),
                    externalId=result.get("external_id"),
                    metadata=result.get("raw") or {},
                )

            if await self.db.insert("deposits", deposit) is None:
                raise StoreError("Failed to save deposit")
        except StoreError as exc:
            logger.error(f"Error creating deposit: {exc}")
            return failure(exc)

        logger.info(f"Deposit created: {deposit['depositId']} - {deposit['amount']}")
        return {"ok": True, "deposit": deposit}

    async def update_deposit(self, deposit_id: str, updates: Dict[str, Any]) -> bool:
        updated = await self.db.update("deposits", {"depositId": deposit_id}, updates)
        if updated:
            logger.info(f"Deposit updated: {deposit_id}")
        return updated

    async def get_deposit(self, deposit_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.find_one("deposits", {"depositId": deposit_id})

    async def get_user_deposits(self, user_id: int) -> List[Dict[str, Any]]:
        return _newest_first(await self.db.find_many("deposits", {"userId": user_id}))

    async def get_all_deposits(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        deposits = await self.db.find_many("deposits")
        for key in ("status", "method", "userId"):
            if filters.get(key):
                deposits = [d for d in deposits if d.get(key) == filters[key]]
        return _newest_first(deposits)

    async def _transition(self, deposit_id: str, updates: Dict[str, Any], action: str,
                          allowed_from: Iterable[str] = ("pending",)) -> Dict[str, Any]:
        deposit = await self.get_deposit(deposit_id)
        if not deposit:
            raise NotFoundError("Deposit not found")
        if deposit.get("status") not in allowed_from:
            raise InvalidStateError(f"Deposit cannot be {action} (status: {deposit.get('status')})")
        if not await self.update_deposit(deposit_id, updates):
            raise StoreError("Failed to save deposit")
        return await self.get_deposit(deposit_id)

    async def approve_deposit(self, deposit_id: str, approved_by: Any) -> Dict[str, Any]:
        try:
            deposit = await self._transition(deposit_id, {
                "status": "completed",
                "approvedBy": approved_by,
                "approvedAt": iso_now(),
            }, "approved")
        except StoreError as exc:
            logger.error(f"Error approving deposit {deposit_id}: {exc}")
            return failure(exc)

        logger.info(f"Deposit approved: {deposit_id}")
        return {"ok": True, "deposit": deposit}

    async def reject_deposit(self, deposit_id: str, reason: str, rejected_by: Any) -> Dict[str, Any]:
        try:
            deposit = await self._transition(deposit_id, {
                "status": "rejected",
                "rejectedBy": rejected_by,
                "rejectionReason": reason,
                "rejectedAt": iso_now(),
            }, "rejected")
        except StoreError as exc:
            logger.error(f"Error rejecting deposit {deposit_id}: {exc}")
            return failure(exc)

        logger.info(f"Deposit rejected: {deposit_id}")
        return {"ok": True, "deposit": deposit}

    async def cancel_deposit(self, deposit_id: str, reason: str = "Cancelled by user") -> Dict[str, Any]:
        try:
            deposit = await self.get_deposit(deposit_id)
            if not deposit:
                raise NotFoundError("Deposit not found")
            if deposit.get("status") != "pending":
                raise InvalidStateError(f"Deposit cannot be cancelled (status: {deposit.get('status')})")
            if deposit.get("externalId"):
                result = await self.gateway.cancel_payment(deposit["externalId"])
                if not result["ok"]:
                    logger.warning(f"Gateway cancel failed for deposit {deposit_id}: {result['message']}")

            deposit = await self._transition(deposit_id, {
                "status": "cancelled",
                "cancellationReason": reason,
                "cancelledAt": iso_now(),
            }, "cancelled")
        except StoreError as exc:
            logger.error(f"Error cancelling deposit {deposit_id}: {exc}")
            return failure(exc)

        logger.info(f"Deposit cancelled: {deposit_id}")
        return {"ok": True, "deposit": deposit}

    async def attach_proof(self, deposit_id: str, proof_url: Optional[str], proof_path: Optional[str] = None) -> Dict[str, Any]:
        try:
            deposit = await self._transition(deposit_id, {
                "proofUrl": proof_url,
                "proofPath": proof_path,
                "proofUploadedAt": iso_now(),
            }, "updated")
        except StoreError as exc:
            logger.error(f"Error attaching proof to deposit {deposit_id}: {exc}")
            return failure(exc)

        return {"ok": True, "deposit": deposit}

    async def check_qris_status(self, external_id: str) -> Dict[str, Any]:
        return await self.gateway.check_status(external_id)

    async def complete_auto_deposit(self, deposit: Dict[str, Any], status_data: Any) -> Dict[str, Any]:
        try:
            completed = await self._transition(deposit["depositId"], {
                "status": "completed",
                "approvedBy": AUTO_APPROVER,
                "approvedAt": iso_now(),
                "metadata": {**(deposit.get("metadata") or {}), "statusData": status_data},
            }, "completed")
        except StoreError as exc:
            logger.error(f"Error completing deposit {deposit['depositId']}: {exc}")
            return failure(exc)

        logger.info(f"Auto approved deposit: {deposit['depositId']}")
        return {"ok": True, "deposit": completed}

    async def auto_check_qris_payments(self) -> List[Dict[str, Any]]:
        """Poll the gateway for pending auto deposits; returns the ones completed."""
        pending = await self.get_all_deposits({"status": "pending", "method": AUTO_METHOD})
        checked = 0
        completed = []
        for deposit in pending:
            if not deposit.get("externalId"):
                continue
            status = await self.check_qris_status(deposit["externalId"])
            checked += 1
            if not status["ok"] or not status.get("paid"):
                continue
            result = await self.complete_auto_deposit(deposit, status.get("raw"))
            if result["ok"]:
                completed.append(result["deposit"])

        if checked:
            logger.info(f"Checked {checked} QRIS payments, {len(completed)} completed")
        return completed

    async def create_payment(self, payment_data: Dict[str, Any]) -> Dict[str, Any]:
        now = iso_now()
        payment = {
            "paymentId": self.security.generate_secure_token(16),
            "orderId": payment_data.get("orderId"),
            "depositId": payment_data.get("depositId"),
            "userId": payment_data.get("userId"),
            "amount": payment_data.get("amount"),
            "method": payment_data.get("method"),
            "status": payment_data.get("status") or "pending",
            "proofUrl": payment_data.get("proofUrl"),
            "metadata": payment_data.get("metadata") or {},
            "createdAt": now,
            "updatedAt": now,
        }
        if await self.db.insert("payments", payment) is None:
            logger.error("Error creating payment: failed to save payment")
            return {"ok": False, "message": "Failed to save payment"}

        logger.info(f"Payment created: {payment['paymentId']}")
        return {"ok": True, "payment": payment}

    async def get_payment_stats(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        deposits = await self.get_all_deposits(filters)
        completed = [d for d in deposits if d.get("status") == "completed"]
        total = sum(d.get("amount") or 0 for d in completed)
        return {
            "totalDeposits": len(deposits),
            "pending": len([d for d in deposits if d.get("status") == "pending"]),
            "completed": len(completed),
            "rejected": len([d for d in deposits if d.get("status") == "rejected"]),
            "totalAmount": total,
            "averageDeposit": round(total / len(completed)) if completed else 0,
        }

    async def cleanup_expired_deposits(self) -> int:
        now = utc_now()
        cleaned = 0
        for deposit in await self.db.find_many("deposits", {"status": "pending"}):
            expires_at = parse_iso(deposit.get("expiresAt"))
            if expires_at is None or now <= expires_at:
                continue
            if deposit.get("externalId"):
                result = await self.gateway.cancel_payment(deposit["externalId"])
                if not result["ok"]:
                    logger.warning(f"Gateway cancel failed for expired deposit {deposit['depositId']}")
            try:
                await self._transition(deposit["depositId"], {"status": "expired", "expiredAt": iso_now()}, "expired")
            except StoreError as exc:
                logger.error(f"Error expiring deposit {deposit['depositId']}: {exc}")
                continue
            cleaned += 1

        if cleaned:
            logger.info(f"Cleaned {cleaned} expired deposits")
        return cleaned
