import hashlib
import hmac
import secrets
import time
from typing import Any, Callable, Dict, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..config import StoreConfig
from .errors import EncryptionError
from .logger import logger
from .validator import Validator

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class SecurityManager:
    """In-memory security helpers shared by the store and the transport.

    Rate limits, blocks, activity counters and sessions live only in this
    process and are lost on restart.
    """

    SUSPICIOUS_WINDOW_SECONDS = 3600
    FRAUD_BLOCK_SECONDS = 24 * 3600

    def __init__(self, config: StoreConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock
        self.rate_limits: Dict[str, Dict[str, float]] = {}
        self.blocked: Dict[str, Dict[str, Any]] = {}
        self.activity: Dict[str, Dict[str, float]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}

        self._key: Optional[bytes] = None
        self._iv: Optional[bytes] = None
        if config.encryption_key and config.encryption_iv:
            try:
                self._key = bytes.fromhex(config.encryption_key)
                self._iv = bytes.fromhex(config.encryption_iv)
            except ValueError:
                logger.error("ENCRYPTION_KEY / ENCRYPTION_IV must be hex strings.")
                self._key = self._iv = None
            if self._key is not None and (len(self._key) != 32 or len(self._iv) != 16):
                logger.error("ENCRYPTION_KEY must be 32 bytes and ENCRYPTION_IV 16 bytes (hex encoded).")
                self._key = self._iv = None

    @property
    def can_encrypt(self) -> bool:
        return self._key is not None and self._iv is not None

    def _cipher(self) -> Cipher:
        if not self.can_encrypt:
            raise EncryptionError("Encryption key is not configured")
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def encrypt(self, text: str) -> str:
        try:
            padder = padding.PKCS7(128).padder()
            padded = padder.update(text.encode("utf-8")) + padder.finalize()
            encryptor = self._cipher().encryptor()
            return (encryptor.update(padded) + encryptor.finalize()).hex()
        except EncryptionError:
            raise
        except Exception as exc:
            logger.error(f"Encryption error: {exc}")
            raise EncryptionError("Failed to encrypt data") from exc

    def decrypt(self, encrypted: str) -> str:
        try:
            decryptor = self._cipher().decryptor()
            padded = decryptor.update(bytes.fromhex(encrypted)) + decryptor.finalize()
            unpadder = padding.PKCS7(128).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except EncryptionError:
            raise
        except Exception as exc:
            logger.error(f"Decryption error: {exc}")
            raise EncryptionError("Failed to decrypt data") from exc

    def check_rate_limit(self, user_id: Any) -> Dict[str, Any]:
        key = str(user_id)
        now = self.clock()
        window = self.config.rate_limit_window_seconds

        entry = self.rate_limits.get(key)
        if entry is None:
            self.rate_limits[key] = {"count": 1, "first_request": now, "blocked_until": 0.0}
            return {"allowed": True, "retry_after": 0}

        if entry["blocked_until"] > now:
            return {"allowed": False, "retry_after": int(entry["blocked_until"] - now) + 1}

        if now - entry["first_request"] > window:
            entry.update(count=1, first_request=now, blocked_until=0.0)
            return {"allowed": True, "retry_after": 0}

        entry["count"] += 1
        if entry["count"] > self.config.rate_limit_max_requests:
            block = self.config.rate_limit_block_seconds
            entry["blocked_until"] = now + block
            self.log_security_event("RATE_LIMIT_EXCEEDED", {"user_id": key, "count": entry["count"]})
            return {"allowed": False, "retry_after": int(block)}

        return {"allowed": True, "retry_after": 0}

    def block_user(self, user_id: Any, reason: str = "Security violation", duration: float = 0) -> None:
        key = str(user_id)
        now = self.clock()
        self.blocked[key] = {
            "reason": reason,
            "blocked_at": now,
            "expires_at": now + duration if duration > 0 else None,
        }
        self.log_security_event("USER_BLOCKED", {"user_id": key, "reason": reason, "duration": duration})

    def unblock_user(self, user_id: Any) -> None:
        if self.blocked.pop(str(user_id), None) is not None:
            self.log_security_event("USER_UNBLOCKED", {"user_id": str(user_id)})

    def is_blocked(self, user_id: Any) -> bool:
        key = str(user_id)
        entry = self.blocked.get(key)
        if entry is None:
            return False
        expires_at = entry.get("expires_at")
        if expires_at is not None and self.clock() > expires_at:
            del self.blocked[key]
            return False
        return True

    def track_activity(self, user_id: Any, activity_type: str) -> bool:
        """Count an activity; returns True when the threshold was reached."""
        key = f"{user_id}_{activity_type}"
        now = self.clock()
        entry = self.activity.get(key)
        if entry is None or now - entry["first_seen"] > self.SUSPICIOUS_WINDOW_SECONDS:
            entry = {"count": 0, "first_seen": now}
            self.activity[key] = entry
        entry["count"] += 1

        if entry["count"] < self.config.suspicious_activity_threshold:
            return False

        self.log_security_event(
            "SUSPICIOUS_ACTIVITY",
            {"user_id": str(user_id), "activity": activity_type, "count": entry["count"]},
        )
        if self.config.auto_ban_on_fraud:
            self.block_user(user_id, f"Suspicious activity: {activity_type}", self.FRAUD_BLOCK_SECONDS)
        return True

    def create_session(self, user_id: Any, data: Optional[Dict[str, Any]] = None) -> str:
        session_id = self.generate_secure_token(32)
        now = self.clock()
        self.sessions[session_id] = {
            "user_id": user_id,
            "data": dict(data or {}),
            "created_at": now,
            "last_activity": now,
        }
        return session_id

    def validate_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        now = self.clock()
        if now - session["last_activity"] > self.config.session_timeout_seconds:
            del self.sessions[session_id]
            return None
        session["last_activity"] = now
        return session

    def destroy_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None

    def clean_sessions(self) -> int:
        now = self.clock()
        expired = [
            sid for sid, session in self.sessions.items()
            if now - session["last_activity"] > self.config.session_timeout_seconds
        ]
        for sid in expired:
            del self.sessions[sid]
        return len(expired)

    @staticmethod
    def sanitize_input(value: Any) -> Any:
        return Validator.sanitize(value)

    def hash_password(self, password: str) -> str:
        return hashlib.sha256(f"{password}{self.config.encryption_key}".encode("utf-8")).hexdigest()

    def verify_password(self, password: str, hashed: str) -> bool:
        return hmac.compare_digest(self.hash_password(password), hashed)

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        return secrets.token_hex(length)

    def generate_order_id(self) -> str:
        stamp = to_base36(int(self.clock() * 1000))
        return f"ORD-{stamp}-{secrets.token_hex(4)}".upper()

    @staticmethod
    def log_security_event(event: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.warning(f"Security event {event}: {details or {}}")
