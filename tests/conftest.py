import json
import threading

import pytest

from antiloss.store import CredentialStore
from antiloss.payloads import DeviceInfo


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body if body is not None else {})
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Stands in for requests.Session; replays queued responses/exceptions."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def queue(self, *responses):
        with self._lock:
            self.responses.extend(responses)

    def record(self, url, data, headers, timeout):
        with self._lock:
            self.calls.append({
                "url": url,
                "body": data.decode("utf-8") if isinstance(data, bytes) else data,
                "headers": dict(headers or {}),
                "timeout": timeout,
            })

    def post(self, url, data=None, headers=None, timeout=None):
        self.record(url, data, headers, timeout)
        with self._lock:
            if not self.responses:
                raise AssertionError(f"unexpected POST {url}")
            item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True

    def paths(self):
        return [c["url"].split("://", 1)[1].split("/", 1)[1] for c in self.calls]


@pytest.fixture
def store(tmp_path):
    s = CredentialStore(tmp_path / "credentials.json", id_source=lambda: "a1b2c3d4")
    s.server_base_url = "https://guard.example.com/"
    return s


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def device_info():
    return DeviceInfo(
        model="Pixel 7",
        brand="google",
        os_version="14",
        sdk_int="34",
        manufacturer="Google",
    )


@pytest.fixture
def make_client(store, session, device_info):
    from antiloss.api import ApiClient

    def factory(**kwargs):
        kwargs.setdefault("session", session)
        kwargs.setdefault("device_info_provider", lambda: device_info)
        return ApiClient(store, **kwargs)

    return factory
