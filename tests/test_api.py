import json
import socket
import threading

import pytest
import requests

from antiloss.constants import HTTP_TIMEOUT_SEC
from antiloss.errors import (
    AuthenticationError, ConfigurationError, ProtocolError, ServerError, TransportError,
)
from antiloss.payloads import HeartbeatPayload, LocationPayload
from antiloss.signing import compute_signature

from conftest import FakeResponse, FakeSession

HEARTBEAT = HeartbeatPayload("2024-01-01T00:00:00Z", 80, False, "WIFI", "1.0")
LOCATION = LocationPayload("2024-01-01T00:00:00Z", 31.2304, 121.4737, 12.5, 0.0)


def login_ok(token="tok-1"):
    return FakeResponse(200, {"token": token})


# ─── Registration ────────────────────────────────────────────────

@pytest.mark.parametrize("admin_key", ["", "   ", None])
def test_register_blank_admin_key_makes_no_call(make_client, session, admin_key):
    client = make_client()
    with pytest.raises(ConfigurationError):
        client.register_device(admin_key)
    assert session.calls == []


def test_register_bad_base_url_makes_no_call(make_client, store, session):
    store.server_base_url = "guard.example.com"
    with pytest.raises(ConfigurationError):
        make_client().register_device("admin")
    assert session.calls == []


def test_register_sends_identity_and_info(make_client, store, session, device_info):
    session.queue(FakeResponse(201, {}))
    make_client().register_device("admin-secret")

    call = session.calls[0]
    assert call["url"] == "https://guard.example.com/api/v1/auth/register"
    assert call["headers"]["x-admin-key"] == "admin-secret"
    assert call["headers"]["Content-Type"] == "application/json; charset=utf-8"
    body = json.loads(call["body"])
    identity = store.ensure_initialized()
    assert list(body) == ["deviceId", "secret", "info"]
    assert body["deviceId"] == identity.device_id
    assert body["secret"] == identity.device_secret
    assert body["info"] == device_info.to_dict()


def test_register_failure_carries_status_and_body(make_client, session):
    session.queue(FakeResponse(403, text="bad admin key"))
    with pytest.raises(ServerError) as exc_info:
        make_client().register_device("admin")
    assert exc_info.value.status_code == 403
    assert exc_info.value.body == "bad admin key"
    assert "403" in str(exc_info.value)
    assert "bad admin key" in str(exc_info.value)


# ─── Login ───────────────────────────────────────────────────────

def test_login_persists_token(make_client, store, session):
    session.queue(login_ok("tok-9"))
    assert make_client().login() == "tok-9"
    assert store.token == "tok-9"

    call = session.calls[0]
    assert call["url"] == "https://guard.example.com/api/v1/auth/device-login"
    assert "Authorization" not in call["headers"]
    assert list(json.loads(call["body"])) == ["deviceId", "secret"]
    assert call["timeout"] == (HTTP_TIMEOUT_SEC, HTTP_TIMEOUT_SEC)


@pytest.mark.parametrize("body", [{}, {"token": ""}, {"token": "   "}, {"token": None}])
def test_login_without_token_fails(make_client, store, session, body):
    session.queue(FakeResponse(200, body))
    with pytest.raises(AuthenticationError):
        make_client().login()
    assert store.token == ""


def test_login_non_json_is_protocol_error(make_client, session):
    session.queue(FakeResponse(200, text="<html>oops</html>"))
    with pytest.raises(ProtocolError):
        make_client().login()


def test_login_rejected(make_client, session):
    session.queue(FakeResponse(401, text="unknown device"))
    with pytest.raises(AuthenticationError):
        make_client().login()


def test_login_server_error(make_client, session):
    session.queue(FakeResponse(500, text="boom"))
    with pytest.raises(ServerError) as exc_info:
        make_client().login()
    assert exc_info.value.status_code == 500


def _with_cause(exc, cause):
    exc.__cause__ = cause
    return exc


@pytest.mark.parametrize("error,kind", [
    (requests.ConnectTimeout("connect timed out"), TransportError.TIMEOUT),
    (requests.ReadTimeout("read timed out"), TransportError.TIMEOUT),
    (_with_cause(requests.ConnectionError("dns"), socket.gaierror(-2, "Name or service not known")),
     TransportError.DNS),
    (requests.ConnectionError(ConnectionRefusedError(111, "Connection refused")),
     TransportError.CONNECTION_REFUSED),
    (requests.ConnectionError("connection reset"), TransportError.NETWORK),
])
def test_login_transport_errors_are_remapped(make_client, session, error, kind):
    session.queue(error)
    with pytest.raises(TransportError) as exc_info:
        make_client().login()
    assert exc_info.value.kind == kind
    assert exc_info.value.url == "https://guard.example.com"
    assert "https://guard.example.com" in str(exc_info.value)


def test_login_other_exceptions_pass_through(make_client, session):
    session.queue(RuntimeError("unexpected"))
    with pytest.raises(RuntimeError):
        make_client().login()


# ─── Signed submissions ──────────────────────────────────────────

def test_heartbeat_logs_in_lazily_then_signs(make_client, store, session):
    session.queue(login_ok("tok-1"), FakeResponse(200))
    client = make_client(clock=lambda: "1700000000000", nonce_factory=lambda: "n1")
    client.send_heartbeat(HEARTBEAT)

    assert session.paths() == ["api/v1/auth/device-login", "api/v1/heartbeat"]
    call = session.calls[1]
    body = HEARTBEAT.to_json()
    assert call["body"] == body
    assert call["headers"]["Authorization"] == "Bearer tok-1"
    assert call["headers"]["x-timestamp"] == "1700000000000"
    assert call["headers"]["x-nonce"] == "n1"
    assert call["headers"]["x-signature"] == compute_signature(
        store.device_secret, "POST", "/api/v1/heartbeat", "1700000000000", "n1", body
    )
    assert call["headers"]["Content-Type"] == "application/json; charset=utf-8"


def test_cached_token_skips_login(make_client, store, session):
    store.token = "cached"
    session.queue(FakeResponse(200))
    make_client().send_location(LOCATION)
    assert session.paths() == ["api/v1/location"]
    assert session.calls[0]["headers"]["Authorization"] == "Bearer cached"
    assert list(json.loads(session.calls[0]["body"])) == [
        "collectedAt", "lat", "lon", "accuracyM", "speedMps"
    ]


def test_lazy_login_failure_propagates(make_client, session):
    session.queue(FakeResponse(200, {}))
    with pytest.raises(AuthenticationError):
        make_client().send_heartbeat(HEARTBEAT)
    assert session.paths() == ["api/v1/auth/device-login"]


def test_401_triggers_one_relogin_and_fresh_signature(make_client, store, session):
    store.token = "stale"
    nonces = iter(["n1", "n2"])
    stamps = iter(["1000", "2000"])
    session.queue(FakeResponse(401, text="expired"), login_ok("fresh"), FakeResponse(200))
    client = make_client(clock=lambda: next(stamps), nonce_factory=lambda: next(nonces))

    client.send_heartbeat(HEARTBEAT)

    assert session.paths() == ["api/v1/heartbeat", "api/v1/auth/device-login", "api/v1/heartbeat"]
    first, retry = session.calls[0], session.calls[2]
    assert first["body"] == retry["body"]
    assert retry["headers"]["Authorization"] == "Bearer fresh"
    assert (first["headers"]["x-nonce"], retry["headers"]["x-nonce"]) == ("n1", "n2")
    assert (first["headers"]["x-timestamp"], retry["headers"]["x-timestamp"]) == ("1000", "2000")
    assert first["headers"]["x-signature"] != retry["headers"]["x-signature"]
    assert store.token == "fresh"


def test_second_401_is_terminal(make_client, store, session):
    store.token = "stale"
    session.queue(FakeResponse(401), login_ok("fresh"), FakeResponse(401, text="still no"))
    with pytest.raises(ServerError) as exc_info:
        make_client().send_heartbeat(HEARTBEAT)
    assert exc_info.value.status_code == 401
    assert session.paths().count("api/v1/auth/device-login") == 1
    assert len(session.calls) == 3


def test_relogin_failure_after_401_propagates(make_client, store, session):
    store.token = "stale"
    session.queue(FakeResponse(401), FakeResponse(403, text="revoked"))
    with pytest.raises(AuthenticationError):
        make_client().send_heartbeat(HEARTBEAT)


def test_401_reuses_token_refreshed_elsewhere(make_client, store, session):
    store.token = "stale"
    client = make_client()
    original_post = session.post

    def post(url, **kwargs):
        resp = original_post(url, **kwargs)
        if resp.status_code == 401:
            store.token = "newer"  # another caller logged in meanwhile
        return resp

    session.post = post
    session.queue(FakeResponse(401), FakeResponse(200))
    client.send_heartbeat(HEARTBEAT)

    assert session.paths() == ["api/v1/heartbeat", "api/v1/heartbeat"]
    assert session.calls[1]["headers"]["Authorization"] == "Bearer newer"


class ExpiringTokenSession(FakeSession):
    """Rejects the stale token only once every submitter has used it."""

    def __init__(self, submitters):
        super().__init__()
        self.all_rejected = threading.Barrier(submitters, timeout=5)

    def post(self, url, data=None, headers=None, timeout=None):
        self.record(url, data, headers, timeout)
        if url.endswith("/auth/device-login"):
            return login_ok("fresh")
        if headers["Authorization"] == "Bearer stale":
            self.all_rejected.wait()
            return FakeResponse(401, text="expired")
        return FakeResponse(200)


def test_concurrent_401s_share_one_login(make_client, store):
    store.token = "stale"
    session = ExpiringTokenSession(submitters=2)
    client = make_client(session=session)
    errors = []

    def submit():
        try:
            client.send_heartbeat(HEARTBEAT)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert errors == []
    assert session.paths().count("api/v1/auth/device-login") == 1
    retries = [c for c in session.calls if c["headers"].get("Authorization") == "Bearer fresh"]
    assert len(retries) == 2
    assert store.token == "fresh"


@pytest.mark.parametrize("status", [400, 409, 500, 503])
def test_other_statuses_fail_without_retry(make_client, store, session, status):
    store.token = "tok"
    session.queue(FakeResponse(status, text="nope"))
    with pytest.raises(ServerError) as exc_info:
        make_client().send_location(LOCATION)
    assert exc_info.value.status_code == status
    assert exc_info.value.body == "nope"
    assert len(session.calls) == 1


def test_submission_transport_error(make_client, store, session):
    store.token = "tok"
    session.queue(requests.ReadTimeout("slow"))
    with pytest.raises(TransportError) as exc_info:
        make_client().send_heartbeat(HEARTBEAT)
    assert exc_info.value.kind == TransportError.TIMEOUT


def test_missing_server_url(make_client, store, session):
    store.server_base_url = ""
    store.token = "tok"
    with pytest.raises(ConfigurationError):
        make_client().send_heartbeat(HEARTBEAT)
    assert session.calls == []


def test_close_releases_session(make_client, session):
    make_client().close()
    assert session.closed
