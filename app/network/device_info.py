"""Device identity used to name remote upload folders."""

from __future__ import annotations

import locale
import platform
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from app.storage.kv_store import KeyValueStore

DEVICE_ID_KEY = "deviceId"
DEFAULT_LOCALE = "en_US"


class DeviceInfoProvider(ABC):
    @property
    @abstractmethod
    def device_id(self) -> str:
        """Stable identifier of this device."""

    @property
    @abstractmethod
    def platform_name(self) -> str:
        pass


class LocalDeviceInfo(DeviceInfoProvider):
    """Device identity persisted in a key/value store.

    A random id is generated on first use and kept for every later run.
    """

    def __init__(self, store: KeyValueStore, platform_name: Optional[str] = None):
        self._store = store
        self._platform_name = platform_name or platform.system() or "unknown"

    @property
    def device_id(self) -> str:
        device_id = self._store.get(DEVICE_ID_KEY)
        if not device_id:
            device_id = uuid.uuid4().hex
            self._store.set(DEVICE_ID_KEY, device_id)
        return device_id

    @property
    def platform_name(self) -> str:
        return self._platform_name


def current_locale_identifier() -> str:
    """Locale of the process in ``language_REGION`` form, e.g. ``en_US``."""
    try:
        language = locale.getlocale()[0]
    except ValueError:
        language = None
    if not language or language == "C":
        return DEFAULT_LOCALE
    return language


__all__ = ["DeviceInfoProvider", "LocalDeviceInfo", "current_locale_identifier", "DEVICE_ID_KEY"]
