"""
Server API calls — registration, device login, signed telemetry.

All calls are blocking (run them from the tracker's worker thread, never
from an interactive thread) and every one is bounded by HTTP_TIMEOUT_SEC.

Signed submissions:
  1. log in first if no token is cached
  2. sign POST/path/ts/nonce/sha256(body) with HMAC(sha256(secret))
  3. on a 401, log in again and resend once with a fresh signature
"""

import socket
import threading

import requests
from urllib3.exceptions import NameResolutionError

from .config import log
from .constants import (
    HTTP_TIMEOUT_SEC, JSON_CONTENT_TYPE, MAX_AUTH_RETRIES,
    REGISTER_PATH, LOGIN_PATH, HEARTBEAT_PATH, LOCATION_PATH,
)
from .errors import (
    AuthenticationError, ConfigurationError, ProtocolError, ServerError, TransportError,
)
from .payloads import to_json
from .signing import normalize_base_url, signed_headers, current_timestamp_ms, new_nonce
from . import collectors
from . import http_client


def _is_success(status_code):
    return 200 <= status_code < 300


def _iter_causes(exc):
    """Walk an exception plus everything chained or wrapped inside it."""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.append(getattr(current, "reason", None))
        pending.extend(a for a in getattr(current, "args", ()) if isinstance(a, BaseException))


def classify_transport_error(exc):
    """Map a requests exception to a TransportError kind."""
    if isinstance(exc, requests.Timeout):
        return TransportError.TIMEOUT
    for cause in _iter_causes(exc):
        if isinstance(cause, (NameResolutionError, socket.gaierror)):
            return TransportError.DNS
        if isinstance(cause, ConnectionRefusedError):
            return TransportError.CONNECTION_REFUSED
        if isinstance(cause, socket.timeout):
            return TransportError.TIMEOUT
    return TransportError.NETWORK


class ApiClient:
    """Talks to the tracking server on behalf of one device identity."""

    def __init__(
        self,
        store,
        identity=None,
        session=None,
        timeout=HTTP_TIMEOUT_SEC,
        device_info_provider=collectors.get_device_info,
        clock=current_timestamp_ms,
        nonce_factory=new_nonce,
    ):
        self._store = store
        self._identity = identity or store.ensure_initialized()
        self._session = session or http_client.create_session()
        self._timeout = timeout
        self._device_info_provider = device_info_provider
        self._clock = clock
        self._nonce_factory = nonce_factory
        # One login at a time per device; the 401 path re-checks the token under it
        self._login_lock = threading.RLock()

    @property
    def identity(self):
        return self._identity

    def close(self):
        """Release pooled connections (aborts nothing already finished)."""
        self._session.close()

    def reset_session(self):
        self._session = http_client.reset_session(self._session)

    # ─── Transport ───────────────────────────────────────────

    def _base_url(self):
        return normalize_base_url(self._store.server_base_url)

    def _post(self, base_url, path, body, headers=None):
        """POST a JSON body. Returns the response with its body already read."""
        all_headers = {"Content-Type": JSON_CONTENT_TYPE}
        if headers:
            all_headers.update(headers)
        try:
            resp = self._session.post(
                base_url + path,
                data=body.encode("utf-8"),
                headers=all_headers,
                timeout=(self._timeout, self._timeout),
            )
            resp.text  # drain so the connection goes back to the pool
            return resp
        except requests.RequestException as e:
            raise TransportError(classify_transport_error(e), base_url) from e

    # ─── Registration ────────────────────────────────────────

    def register_device(self, admin_key, info=None):
        """Register this device's id/secret with the server using an admin key."""
        admin_key = (admin_key or "").strip()
        if not admin_key:
            raise ConfigurationError("Admin key must not be blank")
        base_url = self._base_url()

        if info is None:
            info = self._device_info_provider()
        if hasattr(info, "to_dict"):
            info = info.to_dict()

        body = to_json({
            "deviceId": self._identity.device_id,
            "secret": self._identity.device_secret,
            "info": info,
        })

        log.info("Registering device %s at %s ...", self._identity.device_id, base_url)
        resp = self._post(base_url, REGISTER_PATH, body, {"x-admin-key": admin_key})
        if not _is_success(resp.status_code):
            raise ServerError(resp.status_code, resp.text, action="Registration")
        log.info("Device registered: %s", self._identity.device_id)

    # ─── Login ───────────────────────────────────────────────

    def login(self):
        """Exchange id/secret for a bearer token and persist it. Returns the token."""
        with self._login_lock:
            return self._login_locked()

    def _login_locked(self):
        base_url = self._base_url()
        body = to_json({
            "deviceId": self._identity.device_id,
            "secret": self._identity.device_secret,
        })

        resp = self._post(base_url, LOGIN_PATH, body)
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Login rejected (HTTP {resp.status_code}): {resp.text}")
        if not _is_success(resp.status_code):
            raise ServerError(resp.status_code, resp.text, action="Login")

        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError(f"Login response is not JSON: {resp.text[:200]}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"Login response is not a JSON object: {resp.text[:200]}")

        token = data.get("token")
        if not isinstance(token, str) or not token.strip():
            raise AuthenticationError("Login failed: server returned no token")

        self._store.token = token
        log.info("Logged in as %s", self._identity.device_id)
        return token

    def _ensure_token(self):
        with self._login_lock:
            token = self._store.token
            if not token.strip():
                log.info("No cached token — logging in")
                token = self._login_locked()
            return token

    def _refresh_token(self, rejected_token):
        """Re-login after a 401 unless another caller already replaced the token."""
        with self._login_lock:
            current = self._store.token
            if current.strip() and current != rejected_token:
                return current
            return self._login_locked()

    # ─── Signed submissions ──────────────────────────────────

    def signed_post(self, path, body):
        """POST a signed JSON body, re-authenticating at most once on 401."""
        base_url = self._base_url()
        token = self._ensure_token()

        for attempt in range(MAX_AUTH_RETRIES + 1):
            headers = signed_headers(
                token,
                self._identity.device_secret,
                path,
                body,
                ts=self._clock(),
                nonce=self._nonce_factory(),
            )
            resp = self._post(base_url, path, body, headers)

            if resp.status_code == 401 and attempt < MAX_AUTH_RETRIES:
                log.warning("%s rejected (401) — token expired, logging in again", path)
                token = self._refresh_token(token)
                continue
            if not _is_success(resp.status_code):
                raise ServerError(resp.status_code, resp.text, action="Submission")
            return resp

    def send_heartbeat(self, payload):
        self.signed_post(HEARTBEAT_PATH, payload.to_json())
        log.info("Heartbeat OK | battery=%s%% | charging=%s | net=%s",
                 payload.battery_pct, payload.charging, payload.network_type)

    def send_location(self, payload):
        self.signed_post(LOCATION_PATH, payload.to_json())
        log.info("Location OK | %.6f, %.6f (±%.0fm)", payload.lat, payload.lon, payload.accuracy_m)
