"""Durable per-device key/value preferences.

The only value kept here is the slug of the last selected tenant. It is a
hint: readers must validate it against the live membership list.
"""

from __future__ import annotations

import json
import pathlib  # noqa: TC003 - used at runtime for Path operations
import threading
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)

CURRENT_TENANT_KEY = "currentTenant"


class PreferenceStore(ABC):
    """String values namespaced by device id."""

    @abstractmethod
    def get(self, device_id: str, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, device_id: str, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, device_id: str, key: str) -> None:
        """Remove a value if present."""


class InMemoryPreferenceStore(PreferenceStore):
    """In-memory fallback for dev/testing."""

    def __init__(self) -> None:
        self._values: dict[str, dict[str, str]] = {}

    def get(self, device_id: str, key: str) -> str | None:
        return self._values.get(device_id, {}).get(key)

    def set(self, device_id: str, key: str, value: str) -> None:
        self._values.setdefault(device_id, {})[key] = value

    def delete(self, device_id: str, key: str) -> None:
        self._values.get(device_id, {}).pop(key, None)


class FilePreferenceStore(PreferenceStore):
    """JSON file on local disk; survives process restarts."""

    def __init__(self, path: pathlib.Path) -> None:
        self._path = path.expanduser()
        self._lock = threading.Lock()
        self._values: dict[str, dict[str, str]] = self._load()

    def get(self, device_id: str, key: str) -> str | None:
        return self._values.get(device_id, {}).get(key)

    def set(self, device_id: str, key: str, value: str) -> None:
        with self._lock:
            self._values.setdefault(device_id, {})[key] = value
            self._flush()

    def delete(self, device_id: str, key: str) -> None:
        with self._lock:
            if self._values.get(device_id, {}).pop(key, None) is not None:
                self._flush()

    def _load(self) -> dict[str, dict[str, str]]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("preferences_load_failed", path=str(self._path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._values), encoding="utf-8")
        tmp.replace(self._path)


class TenantPreference:
    """The persisted "last selected tenant" slug for one device."""

    def __init__(self, store: PreferenceStore, device_id: str) -> None:
        self._store = store
        self._device_id = device_id

    def get(self) -> str | None:
        return self._store.get(self._device_id, CURRENT_TENANT_KEY)

    def set(self, slug: str) -> None:
        self._store.set(self._device_id, CURRENT_TENANT_KEY, slug)

    def clear(self) -> None:
        self._store.delete(self._device_id, CURRENT_TENANT_KEY)
