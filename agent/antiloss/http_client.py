"""
HTTP session with connection pooling, connect-only retry, and CA bundle.

Signed requests carry a one-time nonce, so urllib3 may only retry when
the connection was never established. Once a request has reached the
server, resending it would be rejected as a replay.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_retry_strategy = Retry(
    total=1,
    connect=1,
    read=0,
    status=0,
    other=0,
    backoff_factor=1,                           # No sleep before the single retry
    allowed_methods=["POST"],
    raise_on_status=False,
)


def _get_ca_bundle():
    """Env override (REQUESTS_CA_BUNDLE / SSL_CERT_FILE) → certifi."""
    env_ca = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    if env_ca and os.path.isfile(env_ca):
        return env_ca
    return certifi.where()


def create_session():
    """Create a new requests.Session with connection pooling, retry, and SSL."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=2,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = _get_ca_bundle()
    return session


def reset_session(session):
    """Close and recreate the HTTP session (fixes stale connections)."""
    try:
        session.close()
    except Exception:
        pass
    return create_session()
