"""
Error kinds raised by the agent core.

Every failure of a server call ends up as one of these, so callers can
show a readable message without knowing about requests/urllib3.
"""


class AgentError(Exception):
    """Base class for all agent failures."""


class ConfigurationError(AgentError):
    """Blank admin key, malformed base URL, missing server configuration."""


class TransportError(AgentError):
    """The server could not be reached at all."""

    CONNECTION_REFUSED = "connection_refused"
    DNS = "dns"
    TIMEOUT = "timeout"
    NETWORK = "network"

    _MESSAGES = {
        CONNECTION_REFUSED: "Connection refused: {url}",
        DNS: "Could not resolve host: {url}",
        TIMEOUT: "Connection timed out: {url}",
        NETWORK: "Network error talking to {url}",
    }

    def __init__(self, kind, url, detail=None):
        self.kind = kind
        self.url = url
        self.detail = detail
        message = self._MESSAGES.get(kind, self._MESSAGES[self.NETWORK]).format(url=url)
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class AuthenticationError(AgentError):
    """Server rejected the device credentials or returned no token."""


class ServerError(AgentError):
    """Non-2xx HTTP status."""

    def __init__(self, status_code, body, action="Request"):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{action} failed (HTTP {status_code}): {body}")


class ProtocolError(AgentError):
    """Unexpected or malformed response payload."""
