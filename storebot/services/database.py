import json
import secrets
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import StoreConfig
from ..utils.errors import EncryptionError
from ..utils.formatting import iso_now
from ..utils.logger import logger
from ..utils.security import SecurityManager, to_base36

COLLECTIONS = ("users", "products", "orders", "payments", "deposits", "logs", "stats", "sessions")


def default_data(name: str) -> Any:
    if name == "stats":
        return {
            "totalUsers": 0,
            "totalProducts": 0,
            "totalOrders": 0,
            "totalRevenue": 0,
            "lastUpdate": iso_now(),
        }
    return []


def _matches(item: Dict[str, Any], query: Dict[str, Any]) -> bool:
    return all(item.get(key) == value for key, value in query.items())


class DatabaseManager:
    """JSON-file store with one file per collection.

    Every collection is read once and then served from an in-process cache;
    writes replace the whole file. When encryption is enabled the file holds a
    single JSON string with the hex ciphertext of the serialized collection.
    """

    def __init__(self, config: StoreConfig, security: SecurityManager):
        self.config = config
        self.security = security
        self.data_dir = Path(config.data_dir)
        self.backup_dir = Path(config.backup_dir)
        self.cache: Dict[str, Any] = {}
        self.files: Dict[str, Path] = {name: self.data_dir / f"{name}.json" for name in COLLECTIONS}

    @property
    def encryption_active(self) -> bool:
        return self.config.encryption_enabled and self.security.can_encrypt

    async def init_database(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        Path(self.config.storage_dir).mkdir(parents=True, exist_ok=True)

        if self.config.database_encryption and not self.encryption_active:
            logger.warning("DATABASE_ENCRYPTION is on but no valid key/IV is configured; storing plaintext.")

        for name, path in self.files.items():
            if not path.exists():
                if not await self.write_data(name, default_data(name)):
                    raise RuntimeError(f"Could not create {name} collection at {path}")
                logger.info(f"Created {name} database")

        logger.info("Database initialized successfully")

    async def read_data(self, name: str) -> Any:
        if name in self.cache:
            return self.cache[name]

        path = self.files.get(name)
        if path is None:
            logger.error(f"Error reading {name}: unknown collection")
            return default_data(name)
        if not path.exists():
            return default_data(name)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, str):
                data = json.loads(self.security.decrypt(data))
        except (OSError, ValueError, EncryptionError) as exc:
            logger.error(f"Error reading {name}: {exc}")
            return default_data(name)

        self.cache[name] = data
        return data

    async def write_data(self, name: str, data: Any) -> bool:
        path = self.files.get(name)
        if path is None:
            logger.error(f"Error writing {name}: unknown collection")
            return False

        try:
            payload: Any = data
            if self.encryption_active:
                payload = self.security.encrypt(json.dumps(data))
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError, EncryptionError) as exc:
            logger.error(f"Error writing {name}: {exc}")
            return False

        self.cache[name] = data
        return True

    async def find_one(self, name: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = await self.read_data(name)
        if not isinstance(data, list):
            return None
        return next((item for item in data if _matches(item, query)), None)

    async def find_many(self, name: str, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = await self.read_data(name)
        if not isinstance(data, list):
            return []
        if not query:
            return list(data)
        return [item for item in data if _matches(item, query)]

    async def insert(self, name: str, item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = await self.read_data(name)
        if not isinstance(data, list):
            logger.error(f"Error inserting to {name}: collection is not a list")
            return None

        item["id"] = item.get("id") or self.generate_id()
        item["createdAt"] = item.get("createdAt") or iso_now()
        item["updatedAt"] = iso_now()

        if not await self.write_data(name, data + [item]):
            return None
        return item

    async def update(self, name: str, query: Dict[str, Any], updates: Dict[str, Any]) -> bool:
        data = await self.read_data(name)
        if not isinstance(data, list):
            logger.error(f"Error updating {name}: collection is not a list")
            return False

        updated = False
        new_data = []
        for item in data:
            if _matches(item, query):
                updated = True
                item = {**item, **updates, "updatedAt": iso_now()}
            new_data.append(item)

        if not updated:
            return False
        return await self.write_data(name, new_data)

    async def delete(self, name: str, query: Dict[str, Any]) -> bool:
        data = await self.read_data(name)
        if not isinstance(data, list):
            logger.error(f"Error deleting from {name}: collection is not a list")
            return False

        new_data = [item for item in data if not _matches(item, query)]
        if len(new_data) == len(data):
            return False
        return await self.write_data(name, new_data)

    async def backup(self, name: Optional[str] = None) -> bool:
        timestamp = iso_now().replace(":", "-").replace(".", "-").replace("+", "_")
        names = [name] if name else list(self.files)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            for collection in names:
                if collection not in self.files:
                    raise ValueError(f"unknown collection {collection}")
                data = await self.read_data(collection)
                target = self.backup_dir / f"{collection}_{timestamp}.json"
                target.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except (OSError, ValueError) as exc:
            logger.error(f"Backup failed: {exc}")
            return False

        logger.info(f"Backup created: {name}" if name else "Full backup created")
        self.clean_old_backups()
        return True

    def clean_old_backups(self) -> int:
        try:
            backups = sorted(
                (p for p in self.backup_dir.glob("*.json") if p.is_file()),
                key=lambda p: p.stat().st_mtime,
                reverse=True,
            )
            stale = backups[max(0, self.config.max_backup_files):]
            for path in stale:
                path.unlink()
        except OSError as exc:
            logger.error(f"Error cleaning backups: {exc}")
            return 0

        if stale:
            logger.info(f"Cleaned {len(stale)} old backups")
        return len(stale)

    @staticmethod
    def generate_id() -> str:
        return to_base36(int(time.time() * 1000)) + to_base36(secrets.randbits(52))

    async def get_stats(self) -> Dict[str, Any]:
        users = await self.find_many("users")
        products = await self.find_many("products")
        orders = await self.find_many("orders")
        payments = await self.find_many("payments")

        completed = [o for o in orders if o.get("status") == "completed"]
        stats = {
            "totalUsers": len(users),
            "totalProducts": len(products),
            "totalOrders": len(orders),
            "completedOrders": len(completed),
            "pendingOrders": len([o for o in orders if o.get("status") == "pending"]),
            "totalRevenue": sum(o.get("amount") or 0 for o in completed),
            "totalPayments": len(payments),
            "lastUpdate": iso_now(),
        }
        await self.write_data("stats", stats)
        return stats

    def clear_cache(self, name: Optional[str] = None) -> None:
        if name:
            self.cache.pop(name, None)
        else:
            self.cache.clear()
