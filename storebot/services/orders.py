from typing import Any, Dict, Iterable, List, Optional

from ..config import StoreConfig
from ..utils.errors import InvalidStateError, NotFoundError, StoreError, failure
from ..utils.formatting import format_date, iso_now, parse_iso, utc_now
from ..utils.logger import logger
from ..utils.security import SecurityManager
from .database import DatabaseManager

OPEN_STATUSES = ("pending", "processing")


def _newest_first(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(orders, key=lambda o: parse_iso(o.get("createdAt")) or utc_now(), reverse=True)


class OrderManager:
    """Order records and their status transitions.

    pending -> processing -> completed, with pending/processing -> cancelled.
    completed and cancelled are terminal.
    """

    def __init__(self, db: DatabaseManager, security: SecurityManager, config: StoreConfig):
        self.db = db
        self.security = security
        self.config = config

    async def create_order(self, order_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            now = iso_now()
            order = {
                "orderId": self.security.generate_order_id(),
                "userId": order_data.get("userId"),
                "productId": order_data.get("productId"),
                "productName": order_data.get("productName"),
                "amount": order_data.get("amount"),
                "quantity": order_data.get("quantity") or 1,
                "paymentMethod": order_data.get("paymentMethod"),
                "status": "pending",
                "paymentStatus": "unpaid",
                "deliveryStatus": "pending",
                "notes": order_data.get("notes") or "",
                "metadata": {
                    "userInfo": order_data.get("userInfo") or {},
                    "productInfo": order_data.get("productInfo") or {},
                    "paymentInfo": {},
                },
                "createdAt": now,
                "updatedAt": now,
                "expiresAt": iso_now(self.config.order_expiry_seconds),
            }
            if await self.db.insert("orders", order) is None:
                raise StoreError("Failed to save order")
        except StoreError as exc:
            logger.error(f"Error creating order: {exc}")
            return failure(exc)

        logger.info(f"Order created: {order['orderId']}")
        return {"ok": True, "order": order}

    async def update_order(self, order_id: str, updates: Dict[str, Any]) -> bool:
        updated = await self.db.update("orders", {"orderId": order_id}, updates)
        if updated:
            logger.info(f"Order updated: {order_id}")
        return updated

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.find_one("orders", {"orderId": order_id})

    async def get_user_orders(self, user_id: int, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return await self.get_all_orders({**(filters or {}), "userId": user_id})

    async def get_all_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        orders = await self.db.find_many("orders")
        for key in ("status", "paymentStatus", "userId", "productId"):
            if filters.get(key):
                orders = [o for o in orders if o.get(key) == filters[key]]
        return _newest_first(orders)

    async def _transition(
        self,
        order_id: str,
        allowed_from: Iterable[str],
        updates: Dict[str, Any],
        action: str,
    ) -> Dict[str, Any]:
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.get("status") not in allowed_from:
            raise InvalidStateError(f"Order cannot be {action} (status: {order.get('status')})")
        if not await self.update_order(order_id, updates):
            raise StoreError("Failed to save order")
        return await self.get_order(order_id)

    async def approve_order(self, order_id: str, approved_by: int) -> Dict[str, Any]:
        try:
            order = await self._transition(order_id, ("pending",), {
                "status": "processing",
                "paymentStatus": "paid",
                "approvedBy": approved_by,
                "approvedAt": iso_now(),
            }, "approved")
        except StoreError as exc:
            logger.error(f"Error approving order {order_id}: {exc}")
            return failure(exc)

        logger.info(f"Order approved: {order_id}")
        return {"ok": True, "order": order}

    async def mark_paid(self, order_id: str) -> Dict[str, Any]:
        try:
            order = await self._transition(order_id, ("pending",), {
                "status": "processing",
                "paymentStatus": "paid",
                "paidAt": iso_now(),
            }, "marked as paid")
        except StoreError as exc:
            logger.error(f"Error marking order {order_id} paid: {exc}")
            return failure(exc)

        return {"ok": True, "order": order}

    async def reject_order(self, order_id: str, reason: str, rejected_by: int) -> Dict[str, Any]:
        try:
            current = await self.get_order(order_id)
            updates = {
                "status": "cancelled",
                "rejectedBy": rejected_by,
                "rejectionReason": reason,
                "rejectedAt": iso_now(),
            }
            if current and current.get("paymentStatus") == "paid":
                updates["paymentStatus"] = "refunded"
            order = await self._transition(order_id, OPEN_STATUSES, updates, "rejected")
        except StoreError as exc:
            logger.error(f"Error rejecting order {order_id}: {exc}")
            return failure(exc)

        logger.info(f"Order rejected: {order_id}")
        return {"ok": True, "order": order, "was_paid": updates.get("paymentStatus") == "refunded"}

    async def complete_order(self, order_id: str) -> Dict[str, Any]:
        try:
            order = await self._transition(order_id, ("processing",), {
                "status": "completed",
                "deliveryStatus": "delivered",
                "completedAt": iso_now(),
            }, "completed")
        except StoreError as exc:
            logger.error(f"Error completing order {order_id}: {exc}")
            return failure(exc)

        logger.info(f"Order completed: {order_id}")
        return {"ok": True, "order": order}

    async def cancel_order(self, order_id: str, reason: str) -> Dict[str, Any]:
        try:
            current = await self.get_order(order_id)
            updates = {"status": "cancelled", "cancellationReason": reason, "cancelledAt": iso_now()}
            if current and current.get("paymentStatus") == "paid":
                updates["paymentStatus"] = "refunded"
            order = await self._transition(order_id, OPEN_STATUSES, updates, "cancelled")
        except StoreError as exc:
            logger.error(f"Error cancelling order {order_id}: {exc}")
            return failure(exc)

        logger.info(f"Order cancelled: {order_id}")
        return {"ok": True, "order": order, "was_paid": updates.get("paymentStatus") == "refunded"}

    async def get_order_stats(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        orders = await self.get_all_orders(filters)
        completed = [o for o in orders if o.get("status") == "completed"]
        revenue = sum(o.get("amount") or 0 for o in completed)
        return {
            "total": len(orders),
            "pending": len([o for o in orders if o.get("status") == "pending"]),
            "processing": len([o for o in orders if o.get("status") == "processing"]),
            "completed": len(completed),
            "cancelled": len([o for o in orders if o.get("status") == "cancelled"]),
            "totalRevenue": revenue,
            "averageOrderValue": round(revenue / len(completed)) if completed else 0,
        }

    async def cleanup_expired_orders(self) -> List[Dict[str, Any]]:
        """Cancel pending orders past ``expiresAt``; returns the cancelled orders."""
        now = utc_now()
        expired = []
        for order in await self.db.find_many("orders", {"status": "pending"}):
            expires_at = parse_iso(order.get("expiresAt"))
            if expires_at is None or now <= expires_at:
                continue
            result = await self.cancel_order(order["orderId"], "Order expired")
            if result["ok"]:
                expired.append(result)

        if expired:
            logger.info(f"Cleaned {len(expired)} expired orders")
        return expired

    async def add_order_note(self, order_id: str, note: str) -> bool:
        order = await self.get_order(order_id)
        if not order:
            return False
        notes = f"{order.get('notes') or ''}\n[{iso_now()}] {note}"
        return await self.update_order(order_id, {"notes": notes})

    async def search_orders(self, query: str) -> List[Dict[str, Any]]:
        term = str(query or "").lower()
        return [
            o for o in await self.get_all_orders()
            if term in str(o.get("orderId") or "").lower()
            or term in str(o.get("productName") or "").lower()
            or term in str(o.get("userId"))
        ]

    async def get_order_receipt(self, order_id: str) -> Optional[Dict[str, Any]]:
        order = await self.get_order(order_id)
        if not order:
            return None
        return {
            "orderId": order["orderId"],
            "date": format_date(order.get("createdAt")),
            "productName": order.get("productName"),
            "quantity": order.get("quantity"),
            "amount": order.get("amount"),
            "paymentMethod": order.get("paymentMethod"),
            "status": order.get("status"),
            "paymentStatus": order.get("paymentStatus"),
        }
