"""
app/clients/json_store.py — Local JSON file storage
Files live under settings.data_dir. Writes go to a temp file and are renamed
into place so a crash never leaves a half-written file; a .backup copy of the
previous version is kept and used when the main file is corrupt.
"""
from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from app.config import get_settings

# Serialises read-modify-write cycles across request threads
store_lock = threading.RLock()


class StorageCorruptError(Exception):
    """A data file and its .backup are both unreadable."""


def _data_dir() -> Path:
    path = Path(get_settings().data_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json_file(filename: str) -> Optional[dict[str, Any]]:
    """
    Read a JSON file from the data directory.
    Returns None if the file does not exist.
    Falls back to the .backup file if the main file is corrupt.
    Raises StorageCorruptError if neither can be parsed, so callers never
    mistake a damaged file for an empty one.
    """
    path = _data_dir() / filename
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"JSON decode error for {filename}. Trying .backup.")
        backup = path.with_name(path.name + ".backup")
        if backup.exists():
            try:
                return json.loads(backup.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.error(f"Backup for {filename} is corrupt too.")
        raise StorageCorruptError(f"{filename} is corrupt and has no usable backup")


def _is_valid_json(path: Path) -> bool:
    try:
        json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return False
    return True


def write_json_file(filename: str, data: dict[str, Any]) -> None:
    """
    Atomically write JSON data to the data directory.
    Raises OSError on failure; callers decide whether that is fatal.
    """
    start = time.monotonic()
    path = _data_dir() / filename
    tmp_path = path.with_name(path.name + ".tmp")

    payload = json.dumps(data, default=str, indent=2)
    tmp_path.write_text(payload, encoding="utf-8")

    # Only a parseable previous version may replace the backup
    if path.exists() and _is_valid_json(path):
        backup = path.with_name(path.name + ".backup")
        backup.write_bytes(path.read_bytes())

    os.replace(tmp_path, path)
    latency_ms = (time.monotonic() - start) * 1000
    logger.debug(f"Wrote {filename} ({len(payload)} bytes) in {latency_ms:.1f}ms")
