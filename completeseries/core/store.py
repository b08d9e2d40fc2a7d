from __future__ import annotations

import copy
import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from completeseries.core.errors import InvalidInput, MalformedData, StorageError
from completeseries.core.models import REFRESH_IDLE, REFRESH_STATES
from completeseries.io.utils import atomic_write_json

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = "/data/completeseries.json"
SCHEMA_VERSION = 1
LEGACY_BOOKS_KEY = "seriesAllASIN"
SAVEABLE_KEYS = ("hiddenItems", "existingFirstBookASINs", "existingBookMetadata")

_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def default_snapshot() -> dict:
    return {
        "version": SCHEMA_VERSION,
        "lastUpdated": None,
        "hiddenItems": [],
        "existingFirstBookASINs": [],
        "existingBookMetadata": [],
        "serverConfig": {"lastRefresh": None, "refreshStatus": REFRESH_IDLE},
    }


def merge_with_defaults(data: dict) -> dict:
    out = default_snapshot()
    out.update(data)
    server_config = default_snapshot()["serverConfig"]
    if isinstance(data.get("serverConfig"), dict):
        server_config.update(data["serverConfig"])
    out["serverConfig"] = server_config
    # Older refreshes stored the per-book list under "seriesAllASIN".
    legacy = out.pop(LEGACY_BOOKS_KEY, None)
    if isinstance(legacy, list) and not out.get("existingBookMetadata"):
        out["existingBookMetadata"] = legacy
    return out


def _lock_for(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _PATH_LOCKS[key] = lock
        return lock


class SnapshotStore:
    """
    The persisted LibrarySnapshot document.

    Reads merge the file with defaults so every top-level key exists. Writes
    are atomic (temp file + rename). Read-modify-write through update() is
    serialized per path within this process; separate processes still race at
    the rename and the last one wins.
    """

    def __init__(self, path: str = DEFAULT_DATA_FILE) -> None:
        self.path = path
        self._lock = _lock_for(path)

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> dict:
        if not self.exists():
            return default_snapshot()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            raise StorageError(f"Failed to read data file {self.path}: {e}") from e
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedData(f"Invalid JSON in data file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise MalformedData(f"Data file {self.path} does not hold a JSON object")
        return merge_with_defaults(data)

    def load_or_default(self) -> dict:
        try:
            return self.load()
        except MalformedData as e:
            logger.warning("treating data file as absent | path=%s | err=%s", self.path, e)
            return default_snapshot()

    def save(self, doc: dict) -> None:
        atomic_write_json(doc, self.path)
        logger.debug("saved snapshot | path=%s", self.path)

    def update(self, mutator: Callable[[dict], Optional[dict]], *, tolerate_malformed: bool = False) -> dict:
        with self._lock:
            doc = self.load_or_default() if tolerate_malformed else self.load()
            doc = copy.deepcopy(doc)
            out = mutator(doc)
            if out is not None:
                doc = out
            self.save(doc)
            return doc

    def set_refresh_status(self, status: str) -> dict:
        if status not in REFRESH_STATES:
            raise InvalidInput(f"unknown refresh status: {status}")

        def _apply(doc: dict) -> None:
            doc["serverConfig"]["refreshStatus"] = status

        return self.update(_apply, tolerate_malformed=True)

    def save_fields(self, fields: Dict[str, object]) -> dict:
        """Replace any of SAVEABLE_KEYS and stamp lastUpdated."""
        unknown = [k for k in fields if k not in SAVEABLE_KEYS]
        if unknown:
            raise InvalidInput(f"Unknown keys: {', '.join(sorted(unknown))}")

        def _apply(doc: dict) -> None:
            for key in SAVEABLE_KEYS:
                if key in fields:
                    doc[key] = fields[key]
            doc["lastUpdated"] = utc_now_iso()

        return self.update(_apply, tolerate_malformed=True)
