import hashlib
import mimetypes
import secrets
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import StoreConfig
from ..utils.errors import NotFoundError, ValidationError
from ..utils.formatting import format_size, iso_now
from ..utils.logger import logger

PROOF_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


class FileManager:
    """Product files on local disk, one folder per product."""

    def __init__(self, config: StoreConfig):
        self.config = config
        self.storage_dir = Path(config.storage_dir)
        self.proofs_dir = Path(config.data_dir) / "proofs"

    def init(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.proofs_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, file_path: str) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else self.storage_dir / path

    def validate_file(self, file_name: str, file_size: int) -> Dict[str, Any]:
        ext = Path(file_name).suffix.lower()
        allowed = {e.lower() for e in self.config.allowed_extensions}
        if ext not in allowed:
            return {"valid": False, "error": f"File extension {ext or '(none)'} is not allowed"}
        if file_size > self.config.max_file_size:
            return {
                "valid": False,
                "error": f"File exceeds the maximum size of {format_size(self.config.max_file_size)}",
            }
        return {"valid": True}

    @staticmethod
    def calculate_checksum(path: Path) -> str:
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                digest.update(chunk)
        return digest.hexdigest()

    async def save_file(self, data: bytes, file_name: str, product_id: str) -> Dict[str, Any]:
        validation = self.validate_file(file_name, len(data))
        if not validation["valid"]:
            raise ValidationError(validation["error"])

        ext = Path(file_name).suffix
        saved_name = f"{product_id}_{int(time.time() * 1000)}_{secrets.token_hex(8)}{ext}"
        product_dir = self.storage_dir / str(product_id)
        product_dir.mkdir(parents=True, exist_ok=True)
        target = product_dir / saved_name
        target.write_bytes(data)

        size = target.stat().st_size
        info = {
            "originalName": file_name,
            "savedName": saved_name,
            "path": str(target),
            "relativePath": target.relative_to(self.storage_dir).as_posix(),
            "size": size,
            "mimeType": mimetypes.guess_type(file_name)[0] or "application/octet-stream",
            "extension": ext,
            "uploadedAt": iso_now(),
            "checksum": self.calculate_checksum(target),
        }
        logger.info(f"File saved: {file_name} ({format_size(size)})")
        return info

    async def save_proof(self, data: bytes, file_name: str, deposit_id: str) -> Dict[str, Any]:
        """Keep a copy of a transfer proof image; returns its path and size."""
        ext = Path(file_name).suffix.lower()
        if ext not in PROOF_EXTENSIONS:
            raise ValidationError(f"Proof must be an image, got {ext or '(none)'}")
        if len(data) > self.config.max_file_size:
            raise ValidationError(f"Proof exceeds the maximum size of {format_size(self.config.max_file_size)}")

        self.proofs_dir.mkdir(parents=True, exist_ok=True)
        target = self.proofs_dir / f"{deposit_id}{ext}"
        target.write_bytes(data)
        logger.info(f"Proof saved for deposit {deposit_id}: {target.name}")
        return {"path": str(target), "name": target.name, "size": len(data)}

    async def read_file(self, file_path: str) -> bytes:
        path = self._resolve(file_path)
        if not path.is_file():
            raise NotFoundError("File not found")
        return path.read_bytes()

    async def delete_file(self, file_path: str) -> bool:
        path = self._resolve(file_path)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.error(f"Error deleting file {file_path}: {exc}")
            return False
        logger.info(f"File deleted: {file_path}")
        return True

    async def delete_product_files(self, product_id: str) -> bool:
        product_dir = self.storage_dir / str(product_id)
        if not product_dir.is_dir():
            return False
        try:
            shutil.rmtree(product_dir)
        except OSError as exc:
            logger.error(f"Error deleting product folder {product_id}: {exc}")
            return False
        logger.info(f"Product folder deleted: {product_id}")
        return True

    async def get_file_info(self, file_path: str) -> Optional[Dict[str, Any]]:
        path = self._resolve(file_path)
        if not path.exists():
            return None
        stats = path.stat()
        return {
            "name": path.name,
            "path": str(path),
            "size": stats.st_size,
            "sizeFormatted": format_size(stats.st_size),
            "mimeType": mimetypes.guess_type(path.name)[0] or "application/octet-stream",
            "extension": path.suffix,
            "modifiedAt": _mtime_iso(path),
            "isDirectory": path.is_dir(),
            "checksum": self.calculate_checksum(path) if path.is_file() else None,
        }

    async def list_files(self, directory: str) -> List[Dict[str, Any]]:
        dir_path = self.storage_dir / str(directory)
        if not dir_path.is_dir():
            return []
        files = []
        for path in sorted(dir_path.iterdir()):
            size = path.stat().st_size
            files.append({
                "name": path.name,
                "path": str(path),
                "relativePath": path.relative_to(self.storage_dir).as_posix(),
                "size": size,
                "sizeFormatted": format_size(size),
                "isDirectory": path.is_dir(),
                "modifiedAt": _mtime_iso(path),
            })
        return files

    async def get_storage_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"totalSize": 0, "totalFiles": 0, "products": {}}
        if self.storage_dir.is_dir():
            for product_dir in sorted(self.storage_dir.iterdir()):
                if not product_dir.is_dir():
                    continue
                files = await self.list_files(product_dir.name)
                product_size = sum(f["size"] for f in files)
                stats["products"][product_dir.name] = {
                    "fileCount": len(files),
                    "totalSize": product_size,
                    "formatted": format_size(product_size),
                }
                stats["totalSize"] += product_size
                stats["totalFiles"] += len(files)
        stats["totalSizeFormatted"] = format_size(stats["totalSize"])
        return stats

    async def cleanup_old_files(self, keep: Iterable[str] = ()) -> int:
        """Remove product folders older than the cleanup age, except those named in ``keep``."""
        if not self.config.cleanup_old_files or not self.storage_dir.is_dir():
            return 0

        kept = set(keep)
        max_age = self.config.cleanup_days * 24 * 3600
        now = time.time()
        deleted = 0
        for product_dir in self.storage_dir.iterdir():
            if product_dir.name in kept or not product_dir.is_dir():
                continue
            if now - product_dir.stat().st_mtime > max_age:
                try:
                    shutil.rmtree(product_dir)
                except OSError as exc:
                    logger.error(f"Error cleaning {product_dir}: {exc}")
                    continue
                deleted += 1

        if deleted:
            logger.info(f"Cleaned {deleted} old product folders")
        return deleted

    @staticmethod
    def format_size(size: int) -> str:
        return format_size(size)
