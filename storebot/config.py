import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .utils.logger import logger


DEFAULT_MANUAL_PAYMENT: Dict[str, Dict[str, Any]] = {
    "QRIS": {"enabled": True, "image_url": "", "name": "QRIS All E-Wallet"},
    "DANA": {"enabled": True, "number": "", "name": ""},
    "OVO": {"enabled": True, "number": "", "name": ""},
    "GOPAY": {"enabled": True, "number": "", "name": ""},
    "BCA": {"enabled": True, "account_number": "", "account_name": ""},
    "MANDIRI": {"enabled": True, "account_number": "", "account_name": ""},
}

DEFAULT_ALLOWED_EXTENSIONS = [
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".rtf",
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp", ".ico",
    ".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv", ".webm", ".m4v",
    ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a",
    ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2",
    ".epub", ".mobi", ".azw", ".azw3",
    ".js", ".py", ".java", ".cpp", ".c", ".php", ".html", ".css",
    ".apk", ".exe", ".dmg", ".iso", ".torrent",
]

PRODUCT_CATEGORIES = [
    "ebook", "software", "template", "course", "music", "video", "photo", "document", "other",
]

QUICK_DEPOSIT_AMOUNTS = [10000, 25000, 50000, 100000, 250000, 500000]


@dataclass
class StoreConfig:
    bot_token: str = ""
    owner_id: int = 0
    bot_name: str = "Digital Store"
    bot_logo: str = ""

    data_dir: Path = Path("data")
    backup_dir: Path = Path("backups")
    storage_dir: Path = Path("storage/products")

    database_encryption: bool = True
    encryption_key: str = ""
    encryption_iv: str = ""
    max_backup_files: int = 100
    backup_interval_seconds: int = 3600

    manual_payment: Dict[str, Dict[str, Any]] = field(default_factory=lambda: dict(DEFAULT_MANUAL_PAYMENT))
    gateway_api_key: str = ""
    gateway_create_url: str = "https://ciaatopup.my.id/h2h/deposit/create"
    gateway_status_url: str = "https://ciaatopup.my.id/h2h/deposit/status"
    gateway_cancel_url: str = "https://ciaatopup.my.id/h2h/deposit/cancel"
    gateway_timeout_seconds: float = 30.0

    min_deposit: int = 1000
    max_deposit: int = 10000000
    order_expiry_seconds: int = 3600
    deposit_expiry_seconds: int = 3600
    require_approval: bool = True
    notify_owner_on_order: bool = True

    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0
    rate_limit_block_seconds: float = 300.0
    suspicious_activity_threshold: int = 3
    auto_ban_on_fraud: bool = True
    session_timeout_seconds: float = 3600.0

    max_file_size: int = 1024 * 1024 * 1024 * 1024
    allowed_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS))
    cleanup_old_files: bool = True
    cleanup_days: int = 90

    items_per_page: int = 8
    orders_per_page: int = 5
    maintenance_interval_seconds: float = 60.0

    @property
    def encryption_enabled(self) -> bool:
        return self.database_encryption and bool(self.encryption_key) and bool(self.encryption_iv)


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not str(value).strip():
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_manual_payment(raw: str) -> Dict[str, Dict[str, Any]]:
    if not raw:
        return dict(DEFAULT_MANUAL_PAYMENT)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid MANUAL_PAYMENT_METHODS_JSON value; expected JSON object.")
        return dict(DEFAULT_MANUAL_PAYMENT)
    if not isinstance(parsed, dict):
        logger.warning("Invalid MANUAL_PAYMENT_METHODS_JSON value; expected JSON object.")
        return dict(DEFAULT_MANUAL_PAYMENT)

    methods: Dict[str, Dict[str, Any]] = {}
    for code, value in parsed.items():
        if isinstance(value, dict):
            methods[str(code).upper()] = {"enabled": True, **value}
    return methods


def load_config() -> StoreConfig:
    load_dotenv()

    base_url = (os.getenv("GATEWAY_BASE_URL") or "https://ciaatopup.my.id").strip().rstrip("/")
    return StoreConfig(
        bot_token=(os.getenv("BOT_TOKEN") or os.getenv("DISCORD_TOKEN") or "").strip(),
        owner_id=_to_int(os.getenv("OWNER_ID"), default=0),
        bot_name=(os.getenv("BOT_NAME") or "Digital Store").strip(),
        bot_logo=(os.getenv("BOT_LOGO") or "").strip(),
        data_dir=Path(os.getenv("STORE_DATA_DIR", "data")),
        backup_dir=Path(os.getenv("STORE_BACKUP_DIR", "backups")),
        storage_dir=Path(os.getenv("STORE_STORAGE_DIR", "storage/products")),
        database_encryption=_to_bool(os.getenv("DATABASE_ENCRYPTION"), default=True),
        encryption_key=(os.getenv("ENCRYPTION_KEY") or "").strip(),
        encryption_iv=(os.getenv("ENCRYPTION_IV") or "").strip(),
        max_backup_files=_to_int(os.getenv("DATABASE_MAX_BACKUP_FILES"), default=100),
        backup_interval_seconds=_to_int(os.getenv("DATABASE_BACKUP_INTERVAL_SECONDS"), default=3600),
        manual_payment=_parse_manual_payment((os.getenv("MANUAL_PAYMENT_METHODS_JSON") or "").strip()),
        gateway_api_key=(os.getenv("GATEWAY_API_KEY") or os.getenv("CIAATOPUP_API_KEY") or "").strip(),
        gateway_create_url=os.getenv("GATEWAY_CREATE_URL", f"{base_url}/h2h/deposit/create"),
        gateway_status_url=os.getenv("GATEWAY_STATUS_URL", f"{base_url}/h2h/deposit/status"),
        gateway_cancel_url=os.getenv("GATEWAY_CANCEL_URL", f"{base_url}/h2h/deposit/cancel"),
        gateway_timeout_seconds=_to_float(os.getenv("GATEWAY_TIMEOUT_SECONDS"), default=30.0),
        min_deposit=_to_int(os.getenv("MIN_DEPOSIT"), default=1000),
        max_deposit=_to_int(os.getenv("MAX_DEPOSIT"), default=10000000),
        order_expiry_seconds=_to_int(os.getenv("ORDER_EXPIRY_SECONDS"), default=3600),
        deposit_expiry_seconds=_to_int(os.getenv("DEPOSIT_EXPIRY_SECONDS"), default=3600),
        require_approval=_to_bool(os.getenv("REQUIRE_APPROVAL"), default=True),
        notify_owner_on_order=_to_bool(os.getenv("NOTIFY_OWNER_ON_ORDER"), default=True),
        rate_limit_max_requests=_to_int(os.getenv("RATE_LIMIT_MAX_REQUESTS"), default=10),
        rate_limit_window_seconds=_to_float(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), default=60.0),
        rate_limit_block_seconds=_to_float(os.getenv("RATE_LIMIT_BLOCK_SECONDS"), default=300.0),
        suspicious_activity_threshold=_to_int(os.getenv("SUSPICIOUS_ACTIVITY_THRESHOLD"), default=3),
        auto_ban_on_fraud=_to_bool(os.getenv("AUTO_BAN_ON_FRAUD"), default=True),
        session_timeout_seconds=_to_float(os.getenv("SESSION_TIMEOUT_SECONDS"), default=3600.0),
        max_file_size=_to_int(os.getenv("STORAGE_MAX_FILE_SIZE"), default=1024 * 1024 * 1024 * 1024),
        cleanup_old_files=_to_bool(os.getenv("STORAGE_CLEANUP_OLD_FILES"), default=True),
        cleanup_days=_to_int(os.getenv("STORAGE_CLEANUP_DAYS"), default=90),
        items_per_page=_to_int(os.getenv("ITEMS_PER_PAGE"), default=8),
        orders_per_page=_to_int(os.getenv("ORDERS_PER_PAGE"), default=5),
        maintenance_interval_seconds=_to_float(os.getenv("MAINTENANCE_INTERVAL_SECONDS"), default=60.0),
    )
