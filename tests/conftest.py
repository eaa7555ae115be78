import pytest
from fastapi.testclient import TestClient

SECRET_ENV = (
    "MIE_USERNAME",
    "MIE_PASSWORD",
    "MIE_CLIENT_KEY",
    "MIE_AGENT_KEY",
    "SMS_CLIENT_ID",
    "SMS_CLIENT_SECRET",
    "SECRETS_FILE",
    "RELAY_HTTP_TIMEOUT",
)


class StubResponse:
    def __init__(self, status_code=200, text="", content_type="text/plain"):
        self.status_code = status_code
        self.text = text
        self.headers = {"content-type": content_type} if content_type else {}


class StubRequests:
    """Stands in for the `requests` module inside integrations.outbound."""

    def __init__(self):
        self.calls = []
        self.next_response = StubResponse()
        self.raise_with = None

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.raise_with is not None:
            raise self.raise_with
        return self.next_response


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # No ambient secrets: empty env and a cwd without secrets.local.json
    for name in SECRET_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("integrations.credentials._PACKAGE_ROOT", tmp_path / "no-such-dir")
    yield


@pytest.fixture
def vendor(monkeypatch):
    stub = StubRequests()
    monkeypatch.setattr("integrations.outbound.requests", stub)
    return stub


@pytest.fixture
def client():
    from app import app

    return TestClient(app)
