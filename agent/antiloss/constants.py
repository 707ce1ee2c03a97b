"""
Constants: version, API paths, intervals, timeouts and defaults.
"""

AGENT_VERSION = "1.2.0"

# ─── Server ──────────────────────────────────────────────────────
DEFAULT_SERVER_URL = "https://guard.example.com/"

REGISTER_PATH = "/api/v1/auth/register"
LOGIN_PATH = "/api/v1/auth/device-login"
HEARTBEAT_PATH = "/api/v1/heartbeat"
LOCATION_PATH = "/api/v1/location"

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

# ─── Network ─────────────────────────────────────────────────────
HTTP_TIMEOUT_SEC = 15          # Connect + read timeout for every call
MAX_AUTH_RETRIES = 1           # Re-login attempts after a 401 on a signed call

# ─── Scheduling ──────────────────────────────────────────────────
TRACKING_INTERVAL_SEC = 60     # One heartbeat (+ location) per minute
STOP_JOIN_TIMEOUT_SEC = HTTP_TIMEOUT_SEC * 2

# ─── Location sources (tried in this order) ──────────────────────
LOCATION_SOURCE_ORDER = ("fused", "gps", "network")
LOCATION_TIMEOUTS_SEC = {
    "fused": 5.0,
    "gps": 4.0,
    "network": 4.0,
}

# ─── Identity ────────────────────────────────────────────────────
DEVICE_ID_PREFIX = "dev_"
DEVICE_SECRET_LENGTH = 16

# ─── Network labels ──────────────────────────────────────────────
NETWORK_WIFI = "WIFI"
NETWORK_ETHERNET = "ETHERNET"
NETWORK_MOBILE = "MOBILE"
NETWORK_UNKNOWN = "UNKNOWN"
NETWORK_OFFLINE = "OFFLINE"
