"""
Device enrollment: login, or register with the admin key and then login.
"""

from .config import log
from .errors import AgentError, ConfigurationError
from .signing import normalize_base_url


def enroll(store, api, events, server_url=None, admin_key=None):
    """
    Bring this device to a logged-in state. Returns the token.

    The server URL and admin key (when given) are persisted first. Login
    is tried with the stored identity; if the server does not know the
    device yet, it is registered with the admin key and login is retried.
    Raises the AgentError that ended the attempt.
    """
    if server_url is not None:
        server_url = server_url.strip().rstrip("/")
        if not server_url:
            raise ConfigurationError("Server URL must not be empty")
        normalize_base_url(server_url)
        store.server_base_url = server_url
    if admin_key is not None:
        store.admin_key = admin_key.strip()

    events.emit("Trying to log in...")
    try:
        token = api.login()
        events.emit("Login successful!")
        return token
    except AgentError as e:
        log.info("Login failed (%s) — falling back to registration", e)
        events.warning("Login failed, registering with the admin key...")

    try:
        api.register_device(store.admin_key)
    except AgentError as e:
        events.error(f"Registration failed: {e}")
        raise

    events.emit("Registration successful! Logging in...")
    try:
        token = api.login()
    except AgentError as e:
        events.error(f"Login failed after registration: {e}")
        raise
    events.emit("Login successful!")
    return token
