import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _build_logger() -> logging.Logger:
    log = logging.getLogger("storebot")
    if log.handlers:
        return log

    level_name = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    log.setLevel(getattr(logging, level_name, logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    log.addHandler(console)

    if (os.getenv("LOG_TO_FILE") or "false").strip().lower() in {"1", "true", "yes"}:
        log_file = Path(os.getenv("LOG_FILE") or "logs/storebot.log")
        log_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            max_bytes = int(os.getenv("LOG_MAX_BYTES") or 10 * 1024 * 1024)
        except ValueError:
            max_bytes = 10 * 1024 * 1024
        try:
            backup_count = int(os.getenv("LOG_BACKUP_COUNT") or 50)
        except ValueError:
            backup_count = 50
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)

    log.propagate = False
    return log


logger = _build_logger()
