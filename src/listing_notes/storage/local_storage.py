# src/listing_notes/storage/local_storage.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """
    localStorage-style key-value store backed by a single JSON object file.

    - values are strings; callers serialize their own payloads
    - the file is read once at construction; a missing or unreadable file
      starts empty (logged, never raised)
    - every set_item rewrites the file atomically (tmp + os.replace)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._items: dict[str, str] = self._read()
        logger.info("JsonFileStorage ready path=%s keys=%d", self._path, len(self._items))

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to read storage file %s; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s is not a JSON object; starting empty", self._path)
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps(self._items, ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, self._path)
            with contextlib.suppress(Exception):
                # Contact names and phone numbers live here.
                os.chmod(self._path, 0o600)
        except Exception:
            logger.exception("Failed to write storage file %s", self._path)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._write()
