import httpx
import pytest

from proxied_client.config import Config, reset_config

CONFIG_ENV_VARS = (
    "PROXIED_CLIENT_CONFIG",
    "PROXY_ENDPOINT",
    "PROXY_AUTHORIZATION",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of config lookups."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def make_config(tmp_path):
    """Write YAML text to a temp file and load it as a Config."""
    def _make(text: str) -> Config:
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return Config(str(path))
    return _make


@pytest.fixture
def recorded():
    """A MockTransport that answers 200 and keeps every request it saw."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="ok")

    return requests, httpx.MockTransport(handler)
