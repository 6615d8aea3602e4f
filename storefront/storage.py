"""
Durable client-side storage

Key/value string storage in the spirit of browser localStorage, with an
in-memory backend and a JSON-file backend.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class Storage:
    """Key/value storage interface (values are strings)"""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    """In-memory storage, lost when the process exits"""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._store: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._store.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._store[key] = value

    def remove_item(self, key: str) -> None:
        self._store.pop(key, None)


class FileStorage(Storage):
    """
    Storage backed by a single JSON document on disk.

    Writes go to a temp file first and are renamed into place so a crash
    never leaves a half-written document behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Storage file {self.path} unreadable, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Storage file {self.path} is not a JSON object, starting empty")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


def load_json_list(storage: Storage, key: str) -> list[Any]:
    """
    Read a JSON array from storage.

    Missing keys, unreadable storage, invalid JSON and non-list payloads all
    yield an empty list.
    """
    try:
        raw = storage.get_item(key)
    except OSError as e:
        logger.warning(f"Could not read {key!r} from storage: {e}")
        return []
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning(f"Discarding corrupt JSON stored under {key!r}")
        return []
    if not isinstance(data, list):
        logger.warning(f"Expected a list under {key!r}, got {type(data).__name__}")
        return []
    return data


def save_json_list(storage: Storage, key: str, items: list[Any]) -> None:
    """Serialize a list to JSON and store it under key"""
    storage.set_item(key, json.dumps(items))
