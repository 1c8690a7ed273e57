from typing import Any, Dict, List, Optional

from ..utils.errors import NotFoundError, StoreError, ValidationError, failure
from ..utils.formatting import iso_now
from ..utils.logger import logger
from ..utils.security import SecurityManager
from ..utils.validator import Validator
from .database import DatabaseManager
from .file_manager import FileManager

PRODUCT_SCHEMA: Dict[str, Dict[str, Any]] = {
    "name": {"required": True, "type": "string", "min_length": 3, "max_length": 100},
    "description": {"required": True, "type": "string", "min_length": 10, "max_length": 1000},
    "price": {"required": True, "type": "number", "min": 100, "max": 100000000},
    "category": {"required": True, "type": "string", "custom": Validator.is_valid_category},
    "sellerId": {"required": True, "type": "number"},
}

STOCK_OPERATIONS = ("add", "subtract", "set")
DEFAULT_STOCK = 999


def _sort_products(products: List[Dict[str, Any]], sort_by: str) -> List[Dict[str, Any]]:
    if sort_by == "price_asc":
        return sorted(products, key=lambda p: p.get("price") or 0)
    if sort_by == "price_desc":
        return sorted(products, key=lambda p: p.get("price") or 0, reverse=True)
    if sort_by == "newest":
        return sorted(products, key=lambda p: p.get("createdAt") or "", reverse=True)
    if sort_by == "popular":
        return sorted(products, key=lambda p: p.get("totalSales") or 0, reverse=True)
    return products


class ProductManager:
    def __init__(self, db: DatabaseManager, files: FileManager, security: SecurityManager):
        self.db = db
        self.files = files
        self.security = security

    async def create_product(self, product_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            validation = Validator.validate_schema(product_data, PRODUCT_SCHEMA)
            if not validation["valid"]:
                raise ValidationError(", ".join(validation["errors"]))

            stock = product_data.get("stock")
            if stock is None:
                stock = DEFAULT_STOCK
            if not Validator.is_valid_stock(stock):
                raise ValidationError("Stock must be a non-negative whole number")

            now = iso_now()
            product = {
                "productId": self.security.generate_secure_token(16),
                "name": Validator.sanitize(product_data["name"]),
                "description": Validator.sanitize(product_data["description"]),
                "price": product_data["price"],
                "category": product_data["category"].lower(),
                "sellerId": product_data["sellerId"],
                "stock": stock,
                "status": "active",
                "files": [],
                "images": [],
                "totalSales": 0,
                "totalViews": 0,
                "rating": 0,
                "reviews": [],
                "metadata": {"fileSize": 0, "fileCount": 0, "version": "1.0", "lastUpdate": now},
                "createdAt": now,
                "updatedAt": now,
            }
            if await self.db.insert("products", product) is None:
                raise StoreError("Failed to save product")
        except StoreError as exc:
            logger.error(f"Error creating product: {exc}")
            return failure(exc)

        logger.info(f"Product created: {product['name']} ({product['productId']})")
        return {"ok": True, "product": product}

    async def update_product(self, product_id: str, updates: Dict[str, Any]) -> bool:
        updates = dict(updates)
        for key in ("name", "description"):
            if updates.get(key):
                updates[key] = Validator.sanitize(updates[key])
        updated = await self.db.update("products", {"productId": product_id}, updates)
        if updated:
            logger.info(f"Product updated: {product_id}")
        return updated

    async def delete_product(self, product_id: str) -> bool:
        await self.files.delete_product_files(product_id)
        deleted = await self.db.delete("products", {"productId": product_id})
        if deleted:
            logger.info(f"Product deleted: {product_id}")
        return deleted

    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.find_one("products", {"productId": product_id})

    async def get_all_products(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        products = await self.db.find_many("products")

        if filters.get("status"):
            products = [p for p in products if p.get("status") == filters["status"]]
        if filters.get("category"):
            products = [p for p in products if p.get("category") == filters["category"]]
        if filters.get("sellerId"):
            products = [p for p in products if p.get("sellerId") == filters["sellerId"]]
        if filters.get("minPrice"):
            products = [p for p in products if (p.get("price") or 0) >= filters["minPrice"]]
        if filters.get("maxPrice"):
            products = [p for p in products if (p.get("price") or 0) <= filters["maxPrice"]]
        if filters.get("sortBy"):
            products = _sort_products(products, filters["sortBy"])
        return products

    async def search_products(self, query: str) -> List[Dict[str, Any]]:
        term = str(query or "").lower()
        return [
            p for p in await self.get_all_products({"status": "active"})
            if term in str(p.get("name") or "").lower()
            or term in str(p.get("description") or "").lower()
            or term in str(p.get("category") or "").lower()
        ]

    async def add_file_to_product(self, product_id: str, data: bytes, file_name: str) -> Dict[str, Any]:
        try:
            product = await self.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")

            file_info = await self.files.save_file(data, file_name, product_id)
            files = list(product.get("files") or []) + [file_info]
            metadata = dict(product.get("metadata") or {})
            metadata["fileSize"] = (metadata.get("fileSize") or 0) + file_info["size"]
            metadata["fileCount"] = len(files)
            metadata["lastUpdate"] = iso_now()

            if not await self.update_product(product_id, {"files": files, "metadata": metadata}):
                raise StoreError("Failed to save product file")
        except StoreError as exc:
            logger.error(f"Error adding file to product {product_id}: {exc}")
            return failure(exc)

        logger.info(f"File added to product: {product_id}")
        return {"ok": True, "file_info": file_info}

    async def add_image_to_product(self, product_id: str, data: bytes, image_name: str) -> Dict[str, Any]:
        try:
            product = await self.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")

            image_info = await self.files.save_file(data, image_name, product_id)
            images = list(product.get("images") or []) + [image_info]
            if not await self.update_product(product_id, {"images": images}):
                raise StoreError("Failed to save product image")
        except StoreError as exc:
            logger.error(f"Error adding image to product {product_id}: {exc}")
            return failure(exc)

        logger.info(f"Image added to product: {product_id}")
        return {"ok": True, "image_info": image_info}

    async def increment_view_count(self, product_id: str) -> bool:
        product = await self.get_product(product_id)
        if not product:
            return False
        return await self.update_product(product_id, {"totalViews": (product.get("totalViews") or 0) + 1})

    async def increment_sales_count(self, product_id: str, decrement_stock: bool = True) -> bool:
        product = await self.get_product(product_id)
        if not product:
            return False
        updates = {"totalSales": (product.get("totalSales") or 0) + 1}
        if decrement_stock:
            updates["stock"] = max(0, (product.get("stock") or 0) - 1)
        return await self.update_product(product_id, updates)

    async def get_categories(self) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = {}
        for product in await self.get_all_products():
            category = product.get("category")
            counts[category] = counts.get(category, 0) + 1
        return [{"name": name, "count": count} for name, count in counts.items()]

    async def get_product_stats(self, product_id: str) -> Optional[Dict[str, Any]]:
        product = await self.get_product(product_id)
        if not product:
            return None

        orders = await self.db.find_many("orders", {"productId": product_id})
        completed = [o for o in orders if o.get("status") == "completed"]
        return {
            "productId": product["productId"],
            "name": product.get("name"),
            "totalViews": product.get("totalViews") or 0,
            "totalSales": product.get("totalSales") or 0,
            "totalOrders": len(orders),
            "completedOrders": len(completed),
            "revenue": sum(o.get("amount") or 0 for o in completed),
            "rating": product.get("rating") or 0,
            "reviewCount": len(product.get("reviews") or []),
            "stock": product.get("stock"),
            "status": product.get("status"),
        }

    async def check_stock(self, product_id: str, quantity: int = 1) -> bool:
        product = await self.get_product(product_id)
        if not product:
            return False
        return (product.get("stock") or 0) >= quantity

    async def update_stock(self, product_id: str, quantity: int, operation: str = "set") -> Dict[str, Any]:
        try:
            if operation not in STOCK_OPERATIONS:
                raise ValidationError(f"Unknown stock operation: {operation}")
            if not Validator.is_valid_stock(quantity):
                raise ValidationError("Quantity must be a non-negative whole number")

            product = await self.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")

            stock = product.get("stock") or 0
            if operation == "add":
                new_stock = stock + quantity
            elif operation == "subtract":
                new_stock = max(0, stock - quantity)
            else:
                new_stock = quantity

            if not await self.update_product(product_id, {"stock": new_stock}):
                raise StoreError("Failed to save stock")
        except StoreError as exc:
            logger.error(f"Error updating stock for {product_id}: {exc}")
            return failure(exc)

        return {"ok": True, "new_stock": new_stock}
