"""Key/value storage for the signup form snapshot"""
import json
import os
import tempfile
from datetime import date
from typing import Dict, Optional

from signup_form.state import FormState, from_snapshot, to_snapshot
from utils.logger import get_logger

logger = get_logger('signup_form')

STORAGE_KEY = 'waitlist-signup-form'


class MemoryStorage:
    """In-process storage with the same get/set/remove interface as browser storage"""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """Storage backed by a single JSON object on disk"""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                items = json.load(f)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable storage file {self.path}")
                return {}
        return items if isinstance(items, dict) else {}

    def _write(self, items: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if key in items:
            del items[key]
            self._write(items)


def save_snapshot(storage, state: FormState, key: str = STORAGE_KEY) -> None:
    storage.set_item(key, json.dumps(to_snapshot(state)))


def load_snapshot(storage, key: str = STORAGE_KEY, today: Optional[date] = None) -> Optional[FormState]:
    """Restore the saved form, or None when nothing usable is stored"""
    raw = storage.get_item(key)
    if not raw:
        return None
    try:
        return from_snapshot(json.loads(raw), today=today)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Discarding saved signup form: {e}")
        return None


def clear_snapshot(storage, key: str = STORAGE_KEY) -> None:
    storage.remove_item(key)
