"""
CredentialStore — durable per-device identity.

Holds deviceId, deviceSecret, token, adminKey and serverBaseUrl in a
small JSON file. Reads are served from an in-process cache (last write
wins) and never raise: a missing or corrupt file simply reads as empty.

deviceId / deviceSecret are generated once. Call ensure_initialized()
at startup and pass the returned DeviceIdentity around instead of
relying on the lazy accessors.
"""

import json
import os
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

from .config import log, credentials_file
from .constants import DEFAULT_SERVER_URL, DEVICE_ID_PREFIX, DEVICE_SECRET_LENGTH

_MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")

KEY_SERVER_URL = "serverBaseUrl"
KEY_DEVICE_ID = "deviceId"
KEY_DEVICE_SECRET = "deviceSecret"
KEY_ADMIN_KEY = "adminKey"
KEY_TOKEN = "token"


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str
    device_secret: str


def platform_identifier():
    """Stable per-host identifier (machine-id, else MAC-derived, else random)."""
    for path in _MACHINE_ID_PATHS:
        try:
            value = Path(path).read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return value[:16]
    node = uuid.getnode()
    # getnode() sets the multicast bit when it had to invent a random MAC
    if not (node >> 40) & 0x01:
        return f"{node:012x}"
    return uuid.uuid4().hex[:8]


def generate_device_secret():
    return uuid.uuid4().hex[:DEVICE_SECRET_LENGTH]


class CredentialStore:
    """JSON-file backed key/value store with per-process caching."""

    def __init__(self, path=None, id_source=platform_identifier):
        self._path = Path(path) if path else credentials_file()
        self._id_source = id_source
        self._lock = threading.RLock()
        self._cache = self._read()

    @property
    def path(self):
        return self._path

    # ─── Persistence ─────────────────────────────────────────

    def _read(self):
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Credential store %s unreadable (%s) — starting empty", self._path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._cache, f, indent=2)
        os.replace(tmp, self._path)

    def get(self, key, default=""):
        with self._lock:
            return self._cache.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._cache[key] = value
            self._write()

    # ─── Identity ────────────────────────────────────────────

    def _get_or_generate(self, key, factory):
        with self._lock:
            saved = self._cache.get(key, "")
            if saved.strip():
                return saved
            value = factory()
            self.set(key, value)
            log.info("Generated %s", key)
            return value

    @property
    def device_id(self):
        return self._get_or_generate(
            KEY_DEVICE_ID, lambda: f"{DEVICE_ID_PREFIX}{self._id_source()}"
        )

    @device_id.setter
    def device_id(self, value):
        self.set(KEY_DEVICE_ID, value)

    @property
    def device_secret(self):
        return self._get_or_generate(KEY_DEVICE_SECRET, generate_device_secret)

    @device_secret.setter
    def device_secret(self, value):
        self.set(KEY_DEVICE_SECRET, value)

    def ensure_initialized(self) -> DeviceIdentity:
        """Generate id/secret if needed and return them as an immutable value."""
        with self._lock:
            return DeviceIdentity(device_id=self.device_id, device_secret=self.device_secret)

    # ─── Mutable fields ──────────────────────────────────────

    @property
    def token(self):
        return self.get(KEY_TOKEN)

    @token.setter
    def token(self, value):
        self.set(KEY_TOKEN, value)

    @property
    def admin_key(self):
        return self.get(KEY_ADMIN_KEY)

    @admin_key.setter
    def admin_key(self, value):
        self.set(KEY_ADMIN_KEY, value)

    @property
    def server_base_url(self):
        return self.get(KEY_SERVER_URL, DEFAULT_SERVER_URL)

    @server_base_url.setter
    def server_base_url(self, value):
        self.set(KEY_SERVER_URL, value)
