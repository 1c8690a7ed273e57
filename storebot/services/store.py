from typing import Any, Dict, List, Optional

from ..config import StoreConfig
from ..utils.errors import InsufficientBalanceError, InvalidStateError, NotFoundError, StoreError, failure
from ..utils.formatting import iso_now
from ..utils.logger import logger
from ..utils.security import SecurityManager
from .database import DatabaseManager
from .file_manager import FileManager
from .orders import OrderManager
from .payment_gateway import QrisGateway
from .payments import AUTO_METHOD, PaymentManager
from .products import ProductManager
from .users import UserManager

BALANCE_METHOD = "BALANCE"


class StoreService:
    """Wires the managers together and runs the flows that touch several of them.

    None of these flows are atomic: a failure half way leaves the earlier
    steps applied, and the failure is logged.
    """

    def __init__(
        self,
        config: StoreConfig,
        db: DatabaseManager,
        security: SecurityManager,
        files: FileManager,
        gateway: QrisGateway,
    ):
        self.config = config
        self.db = db
        self.security = security
        self.files = files
        self.gateway = gateway
        self.users = UserManager(db, security, config)
        self.products = ProductManager(db, files, security)
        self.orders = OrderManager(db, security, config)
        self.payments = PaymentManager(db, security, config, gateway)

    @classmethod
    def from_config(cls, config: StoreConfig) -> "StoreService":
        security = SecurityManager(config)
        return cls(
            config=config,
            db=DatabaseManager(config, security),
            security=security,
            files=FileManager(config),
            gateway=QrisGateway(config),
        )

    async def init(self) -> None:
        await self.db.init_database()
        self.files.init()

    async def ensure_user(self, user_id: int, username: str = "", first_name: str = "",
                          last_name: str = "") -> Optional[Dict[str, Any]]:
        """Return the user record, registering it on first contact."""
        user = await self.users.get_user(user_id)
        if user:
            await self.users.update_user(user_id, {})
            return user
        result = await self.users.create_user({
            "userId": user_id,
            "username": username,
            "firstName": first_name,
            "lastName": last_name,
        })
        return result.get("user")

    async def _refund(self, order: Dict[str, Any]) -> bool:
        result = await self.users.update_balance(order["userId"], order.get("amount") or 0, "add")
        if not result["ok"]:
            logger.error(f"Refund for order {order['orderId']} failed: {result['message']}")
            return False
        await self.payments.create_payment({
            "orderId": order["orderId"],
            "userId": order["userId"],
            "amount": order.get("amount"),
            "method": BALANCE_METHOD,
            "status": "refunded",
        })
        logger.info(f"Refunded {order.get('amount')} to {order['userId']} for order {order['orderId']}")
        return True

    async def _release_stock(self, order: Dict[str, Any]) -> None:
        if not order.get("stockReserved"):
            return
        restocked = await self.products.update_stock(order["productId"], order.get("quantity") or 1, "add")
        if not restocked["ok"]:
            logger.error(f"Restocking {order['productId']} for order {order['orderId']} failed: {restocked['message']}")
            return
        await self.orders.update_order(order["orderId"], {"stockReserved": False})

    async def _settle_cancelled(self, result: Dict[str, Any]) -> Dict[str, Any]:
        order = result["order"]
        refunded = await self._refund(order) if result.get("was_paid") else False
        await self._release_stock(order)
        await self.users.record_order_outcome(order["userId"], order.get("amount") or 0, completed=False)
        return {"ok": True, "order": order, "refunded": refunded}

    async def _deliver(self, order_id: str) -> Dict[str, Any]:
        result = await self.orders.complete_order(order_id)
        if not result["ok"]:
            return result
        order = result["order"]
        # Reserved units already left the stock at purchase time.
        await self.products.increment_sales_count(order["productId"], decrement_stock=not order.get("stockReserved"))
        await self.users.record_order_outcome(order["userId"], order.get("amount") or 0, completed=True)
        return result

    async def purchase_with_balance(self, user_id: int, product_id: str) -> Dict[str, Any]:
        try:
            user = await self.users.get_user(user_id)
            if not user:
                raise NotFoundError("User not found")
            product = await self.products.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")
            if product.get("status") != "active":
                raise InvalidStateError("Product is not available")
            if not await self.products.check_stock(product_id):
                raise InvalidStateError("Product is out of stock")
            price = product.get("price") or 0
            if (user.get("balance") or 0) < price:
                raise InsufficientBalanceError("Insufficient balance")

            created = await self.orders.create_order({
                "userId": user_id,
                "productId": product_id,
                "productName": product.get("name"),
                "amount": price,
                "paymentMethod": BALANCE_METHOD,
                "userInfo": {"username": user.get("username")},
                "productInfo": {"name": product.get("name"), "category": product.get("category")},
            })
            if not created["ok"]:
                raise StoreError(created["message"])
            order_id = created["order"]["orderId"]

            debit = await self.users.update_balance(user_id, price, "subtract")
            if not debit["ok"]:
                await self.orders.cancel_order(order_id, f"Payment failed: {debit['message']}")
                raise StoreError(debit["message"])

            reserved = await self.products.update_stock(product_id, 1, "subtract")
            if reserved["ok"]:
                await self.orders.update_order(order_id, {"stockReserved": True})
            else:
                logger.error(f"Reserving stock of {product_id} for order {order_id} failed: {reserved['message']}")

            await self.payments.create_payment({
                "orderId": order_id,
                "userId": user_id,
                "amount": price,
                "method": BALANCE_METHOD,
                "status": "completed",
            })
            await self.users.increment_order_count(user_id)

            paid = await self.orders.mark_paid(order_id)
            if not paid["ok"]:
                raise StoreError(paid["message"])
            order = paid["order"]
            if not self.config.require_approval:
                delivered = await self._deliver(order_id)
                if not delivered["ok"]:
                    raise StoreError(delivered["message"])
                order = delivered["order"]
        except StoreError as exc:
            logger.error(f"Purchase of {product_id} by {user_id} failed: {exc}")
            return failure(exc)

        logger.info(f"Order {order['orderId']} paid from balance by {user_id}")
        return {
            "ok": True,
            "order": order,
            "new_balance": debit["new_balance"],
            "requires_approval": self.config.require_approval,
        }

    async def approve_order(self, order_id: str, admin_id: int) -> Dict[str, Any]:
        order = await self.orders.get_order(order_id)
        if not order:
            return {"ok": False, "message": "Order not found"}

        if order.get("status") == "pending":
            approved = await self.orders.approve_order(order_id, admin_id)
            if not approved["ok"]:
                return approved
        elif order.get("status") == "processing":
            await self.orders.update_order(order_id, {"approvedBy": admin_id, "approvedAt": iso_now()})
        else:
            return {"ok": False, "message": f"Order cannot be approved (status: {order.get('status')})"}

        return await self._deliver(order_id)

    async def reject_order(self, order_id: str, reason: str, admin_id: int) -> Dict[str, Any]:
        result = await self.orders.reject_order(order_id, reason, admin_id)
        if not result["ok"]:
            return result
        return await self._settle_cancelled(result)

    async def cancel_order_for_user(self, user_id: int, order_id: str) -> Dict[str, Any]:
        order = await self.orders.get_order(order_id)
        if not order or order.get("userId") != user_id:
            return {"ok": False, "message": "Order not found"}
        result = await self.orders.cancel_order(order_id, "Cancelled by user")
        if not result["ok"]:
            return result
        return await self._settle_cancelled(result)

    async def _credit_deposit(self, deposit: Dict[str, Any]) -> Dict[str, Any]:
        credit = await self.users.update_balance(deposit["userId"], deposit.get("amount") or 0, "add")
        if not credit["ok"]:
            logger.error(f"Crediting deposit {deposit['depositId']} failed: {credit['message']}")
            return credit
        await self.users.add_deposit_history(deposit["userId"], deposit.get("amount") or 0)
        await self.payments.create_payment({
            "depositId": deposit["depositId"],
            "userId": deposit["userId"],
            "amount": deposit.get("amount"),
            "method": deposit.get("method"),
            "status": "completed",
            "proofUrl": deposit.get("proofUrl"),
        })
        return {"ok": True, "deposit": deposit, "new_balance": credit["new_balance"]}

    async def approve_deposit(self, deposit_id: str, admin_id: int) -> Dict[str, Any]:
        result = await self.payments.approve_deposit(deposit_id, admin_id)
        if not result["ok"]:
            return result
        return await self._credit_deposit(result["deposit"])

    async def reject_deposit(self, deposit_id: str, reason: str, admin_id: int) -> Dict[str, Any]:
        return await self.payments.reject_deposit(deposit_id, reason, admin_id)

    async def cancel_deposit_for_user(self, user_id: int, deposit_id: str) -> Dict[str, Any]:
        deposit = await self.payments.get_deposit(deposit_id)
        if not deposit or deposit.get("userId") != user_id:
            return {"ok": False, "message": "Deposit not found"}
        return await self.payments.cancel_deposit(deposit_id)

    async def attach_deposit_proof(self, user_id: int, deposit_id: str, data: bytes, file_name: str,
                                   proof_url: Optional[str] = None) -> Dict[str, Any]:
        """Store the proof image locally; Discord attachment links expire."""
        deposit = await self.payments.get_deposit(deposit_id)
        if not deposit or deposit.get("userId") != user_id:
            return {"ok": False, "message": "Deposit not found"}
        if deposit.get("status") != "pending":
            return {"ok": False, "message": f"Deposit cannot be updated (status: {deposit.get('status')})"}
        try:
            saved = await self.files.save_proof(data, file_name, deposit_id)
        except StoreError as exc:
            logger.error(f"Saving proof for deposit {deposit_id} failed: {exc}")
            return failure(exc)
        return await self.payments.attach_proof(deposit_id, proof_url, saved["path"])

    async def check_deposit(self, user_id: int, deposit_id: str) -> Dict[str, Any]:
        deposit = await self.payments.get_deposit(deposit_id)
        if not deposit or deposit.get("userId") != user_id:
            return {"ok": False, "message": "Deposit not found"}
        if deposit.get("status") != "pending":
            return {"ok": True, "status": deposit.get("status"), "credited": False, "deposit": deposit}
        if deposit.get("method") != AUTO_METHOD or not deposit.get("externalId"):
            return {"ok": True, "status": "pending", "credited": False, "deposit": deposit}

        status = await self.payments.check_qris_status(deposit["externalId"])
        if not status["ok"]:
            return status
        if not status.get("paid"):
            return {"ok": True, "status": "pending", "credited": False, "deposit": deposit}

        completed = await self.payments.complete_auto_deposit(deposit, status.get("raw"))
        if not completed["ok"]:
            return completed
        credited = await self._credit_deposit(completed["deposit"])
        if not credited["ok"]:
            return credited
        return {**credited, "status": "completed", "credited": True}

    async def cleanup_unused_files(self) -> int:
        """Sweep old storage folders that no product record refers to any more."""
        products = await self.db.read_data("products")
        return await self.files.cleanup_old_files(keep=[p.get("productId") for p in products])

    async def run_maintenance(self) -> Dict[str, Any]:
        expired_orders = await self.orders.cleanup_expired_orders()
        refunded = 0
        for result in expired_orders:
            settled = await self._settle_cancelled(result)
            refunded += int(settled["refunded"])

        expired_deposits = await self.payments.cleanup_expired_deposits()

        credited: List[Dict[str, Any]] = []
        for deposit in await self.payments.auto_check_qris_payments():
            result = await self._credit_deposit(deposit)
            if result["ok"]:
                credited.append(result)

        self.security.clean_sessions()
        return {
            "expired_orders": len(expired_orders),
            "refunded_orders": refunded,
            "expired_deposits": expired_deposits,
            "completed_deposits": len(credited),
            "credited": credited,
        }
