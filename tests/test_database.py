"""Tests for the JSON file store."""

import json

import pytest

from storebot.services.database import COLLECTIONS, DatabaseManager
from storebot.utils.security import SecurityManager

from conftest import TEST_IV, TEST_KEY


class TestInit:
    @pytest.mark.asyncio
    async def test_creates_every_collection(self, db, config):
        for name in COLLECTIONS:
            assert (config.data_dir / f"{name}.json").exists()

    @pytest.mark.asyncio
    async def test_stats_default_is_object(self, db):
        stats = await db.read_data("stats")
        assert stats["totalUsers"] == 0
        assert await db.read_data("users") == []

    @pytest.mark.asyncio
    async def test_existing_files_are_kept(self, db, config, security):
        await db.insert("users", {"userId": 1})
        again = DatabaseManager(config, security)
        await again.init_database()
        assert len(await again.find_many("users")) == 1


class TestCrud:
    @pytest.mark.asyncio
    async def test_insert_stamps_fields(self, db):
        item = await db.insert("products", {"productId": "p1", "name": "Ebook"})
        assert item["id"]
        assert item["createdAt"]
        assert item["updatedAt"]

    @pytest.mark.asyncio
    async def test_find_one_and_many(self, db):
        await db.insert("orders", {"orderId": "a", "userId": 1, "status": "pending"})
        await db.insert("orders", {"orderId": "b", "userId": 1, "status": "completed"})
        await db.insert("orders", {"orderId": "c", "userId": 2, "status": "pending"})

        assert (await db.find_one("orders", {"orderId": "b"}))["status"] == "completed"
        assert await db.find_one("orders", {"orderId": "missing"}) is None
        assert len(await db.find_many("orders", {"userId": 1})) == 2
        assert len(await db.find_many("orders", {"userId": 1, "status": "pending"})) == 1
        assert len(await db.find_many("orders")) == 3

    @pytest.mark.asyncio
    async def test_update_only_matching(self, db):
        await db.insert("users", {"userId": 1, "balance": 0})
        await db.insert("users", {"userId": 2, "balance": 0})

        assert await db.update("users", {"userId": 1}, {"balance": 500}) is True
        assert (await db.find_one("users", {"userId": 1}))["balance"] == 500
        assert (await db.find_one("users", {"userId": 2}))["balance"] == 0

    @pytest.mark.asyncio
    async def test_update_without_match_returns_false(self, db):
        assert await db.update("users", {"userId": 42}, {"balance": 1}) is False

    @pytest.mark.asyncio
    async def test_delete(self, db):
        await db.insert("products", {"productId": "p1"})
        assert await db.delete("products", {"productId": "p1"}) is True
        assert await db.delete("products", {"productId": "p1"}) is False
        assert await db.find_many("products") == []

    @pytest.mark.asyncio
    async def test_writes_reach_disk(self, db, config, security):
        await db.insert("users", {"userId": 7})
        fresh = DatabaseManager(config, security)
        users = await fresh.read_data("users")
        assert users[0]["userId"] == 7

    @pytest.mark.asyncio
    async def test_unknown_collection(self, db):
        assert await db.write_data("nope", []) is False
        assert await db.read_data("nope") == []


class TestEncryption:
    @pytest.mark.asyncio
    async def test_file_holds_ciphertext(self, config, clock):
        config.database_encryption = True
        config.encryption_key = TEST_KEY
        config.encryption_iv = TEST_IV
        security = SecurityManager(config, clock=clock)
        db = DatabaseManager(config, security)
        await db.init_database()
        assert db.encryption_active

        await db.insert("users", {"userId": 5, "username": "alice"})
        raw = json.loads((config.data_dir / "users.json").read_text())
        assert isinstance(raw, str)
        assert "alice" not in raw

        fresh = DatabaseManager(config, SecurityManager(config, clock=clock))
        users = await fresh.read_data("users")
        assert users[0]["username"] == "alice"

    @pytest.mark.asyncio
    async def test_missing_key_falls_back_to_plaintext(self, config, security):
        config.database_encryption = True
        db = DatabaseManager(config, security)
        await db.init_database()
        assert not db.encryption_active

        await db.insert("users", {"userId": 5})
        raw = json.loads((config.data_dir / "users.json").read_text())
        assert isinstance(raw, list)

    @pytest.mark.asyncio
    async def test_unreadable_file_returns_default(self, db, config, security):
        (config.data_dir / "orders.json").write_text("{not json")
        fresh = DatabaseManager(config, security)
        assert await fresh.read_data("orders") == []


class TestBackups:
    @pytest.mark.asyncio
    async def test_full_backup_writes_each_collection(self, db, config):
        assert await db.backup() is True
        names = {p.name.split("_")[0] for p in config.backup_dir.glob("*.json")}
        assert names == set(COLLECTIONS)

    @pytest.mark.asyncio
    async def test_single_collection_backup(self, db, config):
        assert await db.backup("users") is True
        assert len(list(config.backup_dir.glob("users_*.json"))) == 1

    @pytest.mark.asyncio
    async def test_old_backups_are_pruned(self, db, config):
        config.max_backup_files = 3
        for i in range(5):
            (config.backup_dir / f"users_{i}.json").write_text("[]")
        assert db.clean_old_backups() == 2
        assert len(list(config.backup_dir.glob("*.json"))) == 3


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_and_revenue(self, db):
        await db.insert("users", {"userId": 1})
        await db.insert("orders", {"orderId": "a", "status": "completed", "amount": 1000})
        await db.insert("orders", {"orderId": "b", "status": "pending", "amount": 500})

        stats = await db.get_stats()
        assert stats["totalUsers"] == 1
        assert stats["totalOrders"] == 2
        assert stats["pendingOrders"] == 1
        assert stats["totalRevenue"] == 1000
        assert (await db.read_data("stats"))["totalOrders"] == 2

    def test_generate_id_is_unique(self):
        assert len({DatabaseManager.generate_id() for _ in range(100)}) == 100
