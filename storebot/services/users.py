from typing import Any, Dict, List, Optional

from ..config import StoreConfig
from ..utils.errors import InsufficientBalanceError, NotFoundError, StoreError, ValidationError, failure
from ..utils.formatting import iso_now
from ..utils.logger import logger
from ..utils.security import SecurityManager
from ..utils.validator import Validator
from .database import DatabaseManager

BALANCE_OPERATIONS = ("add", "subtract", "set")


def _new_statistics() -> Dict[str, int]:
    return {
        "totalDeposits": 0,
        "totalOrders": 0,
        "totalSpent": 0,
        "completedOrders": 0,
        "cancelledOrders": 0,
    }


class UserManager:
    def __init__(self, db: DatabaseManager, security: SecurityManager, config: StoreConfig):
        self.db = db
        self.security = security
        self.config = config

    async def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            user_id = user_data.get("userId")
            if not Validator.is_valid_user_id(user_id):
                raise ValidationError("Invalid user ID")

            existing = await self.get_user(user_id)
            if existing:
                return {"ok": False, "message": "User already exists", "user": existing}

            now = iso_now()
            user = {
                "userId": user_id,
                "username": user_data.get("username") or "Unknown",
                "firstName": user_data.get("firstName") or "",
                "lastName": user_data.get("lastName") or "",
                "role": "user",
                "balance": 0,
                "totalSpent": 0,
                "totalOrders": 0,
                "status": "active",
                "isBlocked": False,
                "isBanned": False,
                "blockReason": None,
                "joinedAt": now,
                "lastActivity": now,
                "statistics": _new_statistics(),
            }
            if await self.db.insert("users", user) is None:
                raise StoreError("Failed to save user")
        except StoreError as exc:
            logger.error(f"Error creating user: {exc}")
            return failure(exc)

        logger.info(f"New user created: {user_id}")
        return {"ok": True, "message": "User created", "user": user}

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return await self.db.find_one("users", {"userId": user_id})

    async def update_user(self, user_id: int, updates: Dict[str, Any]) -> bool:
        updates = {**updates, "lastActivity": iso_now()}
        return await self.db.update("users", {"userId": user_id}, updates)

    async def update_balance(self, user_id: int, amount: float, operation: str = "add") -> Dict[str, Any]:
        try:
            if operation not in BALANCE_OPERATIONS:
                raise ValidationError(f"Unknown balance operation: {operation}")
            if not Validator.is_valid_number(amount, 0):
                raise ValidationError("Invalid amount")

            user = await self.get_user(user_id)
            if not user:
                raise NotFoundError("User not found")

            balance = user.get("balance") or 0
            if operation == "add":
                new_balance = balance + amount
            elif operation == "subtract":
                if balance < amount:
                    raise InsufficientBalanceError("Insufficient balance")
                new_balance = balance - amount
            else:
                new_balance = amount

            if not await self.update_user(user_id, {"balance": new_balance}):
                raise StoreError("Failed to save balance")
        except StoreError as exc:
            logger.error(f"Error updating balance for {user_id}: {exc}")
            return failure(exc)

        logger.info(f"Balance updated: {user_id} - {operation} {amount}")
        return {"ok": True, "new_balance": new_balance}

    async def block_user(self, user_id: int, reason: str) -> bool:
        updated = await self.update_user(user_id, {
            "isBlocked": True,
            "blockReason": reason,
            "blockedAt": iso_now(),
        })
        if updated:
            self.security.block_user(user_id, reason)
            logger.info(f"User blocked: {user_id}")
        return updated

    async def unblock_user(self, user_id: int) -> bool:
        updated = await self.update_user(user_id, {"isBlocked": False, "blockReason": None, "blockedAt": None})
        if updated:
            self.security.unblock_user(user_id)
            logger.info(f"User unblocked: {user_id}")
        return updated

    async def get_user_stats(self, user_id: int) -> Optional[Dict[str, Any]]:
        user = await self.get_user(user_id)
        if not user:
            return None

        orders = await self.db.find_many("orders", {"userId": user_id})
        deposits = await self.db.find_many("deposits", {"userId": user_id})
        completed = [o for o in orders if o.get("status") == "completed"]

        return {
            "userId": user["userId"],
            "username": user.get("username"),
            "balance": user.get("balance") or 0,
            "totalOrders": len(orders),
            "completedOrders": len(completed),
            "pendingOrders": len([o for o in orders if o.get("status") == "pending"]),
            "totalSpent": sum(o.get("amount") or 0 for o in completed),
            "totalDeposits": sum(d.get("amount") or 0 for d in deposits if d.get("status") == "completed"),
            "joinedAt": user.get("joinedAt"),
            "lastActivity": user.get("lastActivity"),
            "status": user.get("status"),
        }

    async def get_all_users(self) -> List[Dict[str, Any]]:
        return await self.db.find_many("users")

    async def search_users(self, query: str) -> List[Dict[str, Any]]:
        term = str(query or "").lower()
        return [
            user for user in await self.get_all_users()
            if term in str(user.get("username") or "").lower()
            or term in str(user.get("userId"))
            or term in str(user.get("firstName") or "").lower()
        ]

    async def user_exists(self, user_id: int) -> bool:
        return await self.get_user(user_id) is not None

    async def check_user_access(self, user_id: int) -> Dict[str, Any]:
        user = await self.get_user(user_id)
        if not user:
            return {"allowed": False, "reason": "User not found"}
        if user.get("isBlocked"):
            return {"allowed": False, "reason": "User is blocked"}
        if user.get("isBanned"):
            return {"allowed": False, "reason": "User is banned"}
        if self.security.is_blocked(user_id):
            return {"allowed": False, "reason": "Temporarily blocked"}
        return {"allowed": True}

    def is_owner(self, user_id: int) -> bool:
        return bool(self.config.owner_id) and user_id == self.config.owner_id

    async def increment_order_count(self, user_id: int) -> bool:
        user = await self.get_user(user_id)
        if not user:
            return False
        statistics = {**_new_statistics(), **(user.get("statistics") or {})}
        statistics["totalOrders"] += 1
        return await self.update_user(user_id, {
            "totalOrders": (user.get("totalOrders") or 0) + 1,
            "statistics": statistics,
        })

    async def record_order_outcome(self, user_id: int, amount: float, completed: bool) -> bool:
        """Bump spent/completed or cancelled counters once an order settles."""
        user = await self.get_user(user_id)
        if not user:
            return False
        statistics = {**_new_statistics(), **(user.get("statistics") or {})}
        updates: Dict[str, Any] = {}
        if completed:
            statistics["completedOrders"] += 1
            statistics["totalSpent"] += amount
            updates["totalSpent"] = (user.get("totalSpent") or 0) + amount
        else:
            statistics["cancelledOrders"] += 1
        updates["statistics"] = statistics
        return await self.update_user(user_id, updates)

    async def add_deposit_history(self, user_id: int, amount: float) -> bool:
        user = await self.get_user(user_id)
        if not user:
            return False
        statistics = {**_new_statistics(), **(user.get("statistics") or {})}
        statistics["totalDeposits"] += amount
        return await self.update_user(user_id, {"statistics": statistics})
