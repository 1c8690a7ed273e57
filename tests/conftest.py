"""Shared fixtures: a store wired to a temporary data directory and a mocked QRIS gateway."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from storebot.config import StoreConfig
from storebot.services.database import DatabaseManager
from storebot.services.file_manager import FileManager
from storebot.services.payment_gateway import QrisGateway
from storebot.services.store import StoreService
from storebot.utils.security import SecurityManager

OWNER_ID = 999
TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
TEST_IV = "0102030405060708090a0b0c0d0e0f10"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config(tmp_path):
    return StoreConfig(
        owner_id=OWNER_ID,
        data_dir=tmp_path / "data",
        backup_dir=tmp_path / "backups",
        storage_dir=tmp_path / "storage",
        database_encryption=False,
        gateway_api_key="test-key",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def security(config, clock):
    return SecurityManager(config, clock=clock)


@pytest.fixture
def gateway(config):
    gateway = QrisGateway(config)
    gateway.create_payment = AsyncMock(return_value={
        "ok": True,
        "qr_url": "https://qr.example/TRX1.png",
        "payment_url": "https://pay.example/TRX1",
        "external_id": "TRX1",
        "raw": {"trxid": "TRX1"},
    })
    gateway.check_status = AsyncMock(return_value={"ok": True, "status": "pending", "paid": False, "raw": {}})
    gateway.cancel_payment = AsyncMock(return_value={"ok": True})
    return gateway


@pytest_asyncio.fixture
async def db(config, security):
    database = DatabaseManager(config, security)
    await database.init_database()
    return database


@pytest_asyncio.fixture
async def store(config, security, gateway):
    service = StoreService(
        config=config,
        db=DatabaseManager(config, security),
        security=security,
        files=FileManager(config),
        gateway=gateway,
    )
    await service.init()
    return service


async def make_user(store, user_id: int = 1001, balance: float = 0):
    user = await store.ensure_user(user_id, username=f"user{user_id}")
    if balance:
        await store.users.update_balance(user_id, balance, "set")
    return user


async def make_product(store, price: int = 10000, stock: int = 5, name: str = "Python Course"):
    result = await store.products.create_product({
        "name": name,
        "description": "A complete digital course for beginners.",
        "price": price,
        "category": "course",
        "sellerId": OWNER_ID,
        "stock": stock,
    })
    assert result["ok"], result
    return result["product"]
