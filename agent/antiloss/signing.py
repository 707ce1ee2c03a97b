"""
Request signing: base-URL normalisation, digests, canonical string, HMAC.

Canonical string (no trailing newline):

    POST
    <path>
    <ts>
    <nonce>
    <sha256-hex of body>

The HMAC key is the hex SHA-256 of the device secret, not the secret
itself.
"""

import hashlib
import hmac
import time
import uuid

from .errors import ConfigurationError


def normalize_base_url(raw):
    """Strip whitespace and trailing slashes; require an http(s) scheme."""
    base_url = (raw or "").strip().rstrip("/")
    if not base_url:
        raise ConfigurationError("Server URL is not configured")
    scheme, sep, rest = base_url.partition("://")
    if not sep or scheme.lower() not in ("http", "https"):
        raise ConfigurationError("Server URL must start with http:// or https://")
    return f"{scheme.lower()}://{rest}"


def sha256_hex(value):
    if isinstance(value, str):
        value = value.encode("utf-8")
    return hashlib.sha256(value).hexdigest()


def hmac_hex(key, payload):
    if isinstance(key, str):
        key = key.encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def canonical_string(method, path, ts, nonce, body_hash):
    return "\n".join((method.upper(), path, ts, nonce, body_hash))


def compute_signature(secret, method, path, ts, nonce, body):
    to_sign = canonical_string(method, path, ts, nonce, sha256_hex(body))
    return hmac_hex(sha256_hex(secret), to_sign)


def current_timestamp_ms():
    return str(int(time.time() * 1000))


def new_nonce():
    return str(uuid.uuid4())


def signed_headers(token, secret, path, body, ts=None, nonce=None):
    """Authorization + x-timestamp/x-nonce/x-signature for a POST."""
    ts = ts or current_timestamp_ms()
    nonce = nonce or new_nonce()
    return {
        "Authorization": f"Bearer {token}",
        "x-timestamp": ts,
        "x-nonce": nonce,
        "x-signature": compute_signature(secret, "POST", path, ts, nonce, body),
    }
