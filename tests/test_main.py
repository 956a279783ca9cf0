import httpx
import pytest
from structlog.testing import capture_logs

import main
from proxied_client.client import AUTHORIZATION_HEADER, FORWARDED_FOR_HEADER


@pytest.fixture(autouse=True)
def quiet(monkeypatch):
    # keep structlog unconfigured so capture_logs sees every event
    monkeypatch.setattr(main, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(main, "load_dotenv", lambda *args, **kwargs: False)


def test_sends_through_proxy(tmp_path, recorded):
    seen, transport = recorded
    path = tmp_path / "config.yaml"
    path.write_text('proxy:\n  endpoint: "https://proxy.example.com/"\n  authorization: "k"\n')

    with capture_logs() as logs:
        code = main.main(["--config", str(path), "https://example.com/a"], transport=transport)

    assert code == 0
    (request,) = seen
    assert request.url.host == "proxy.example.com"
    assert request.headers[FORWARDED_FOR_HEADER] == "https://example.com/a"
    assert request.headers[AUTHORIZATION_HEADER] == "k"
    completed = [e for e in logs if e["event"] == "request_completed"]
    assert completed[0]["mode"] == "proxied"
    assert completed[0]["status_code"] == 200


def test_direct_without_config(tmp_path, recorded):
    seen, transport = recorded

    code = main.main(
        ["--config", str(tmp_path / "none.yaml"), "--method", "HEAD", "https://example.com/a"],
        transport=transport,
    )

    assert code == 0
    (request,) = seen
    assert request.method == "HEAD"
    assert str(request.url) == "https://example.com/a"


def test_failed_request_sets_exit_code(tmp_path):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with capture_logs() as logs:
        code = main.main(
            ["--config", str(tmp_path / "none.yaml"), "https://example.com/a", "https://example.com/b"],
            transport=httpx.MockTransport(handler),
        )

    assert code == 1
    assert [e["event"] for e in logs].count("request_failed") == 2


def test_misconfiguration_aborts_startup(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text('proxy:\n  endpoint: "nowhere"\n  authorization: "k"\n')

    with capture_logs() as logs:
        code = main.main(["--config", str(path), "https://example.com/a"])

    assert code == 2
    assert any(e["event"] == "startup_failed" for e in logs)


def test_malformed_config_aborts_startup(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("proxy: [unclosed\n")

    assert main.main(["--config", str(path), "https://example.com/a"]) == 2


def test_non_mapping_logging_section_aborts_startup(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("logging: debug\n")

    with capture_logs() as logs:
        code = main.main(["--config", str(path), "https://example.com/a"])

    assert code == 2
    assert any(e["event"] == "startup_failed" for e in logs)


def test_non_ascii_destination_through_proxy(tmp_path, recorded):
    seen, transport = recorded
    path = tmp_path / "config.yaml"
    path.write_text('proxy:\n  endpoint: "https://proxy.example.com/"\n  authorization: "k"\n')

    code = main.main(["--config", str(path), "https://example.com/café"], transport=transport)

    assert code == 0
    (request,) = seen
    assert request.headers[FORWARDED_FOR_HEADER] == "https://example.com/caf%C3%A9"


def test_invalid_url_is_logged_not_raised(tmp_path, recorded):
    _, transport = recorded

    with capture_logs() as logs:
        code = main.main(["--config", str(tmp_path / "none.yaml"), "https://example.com:notaport/"], transport=transport)

    assert code == 1
    assert any(e["event"] == "request_failed" for e in logs)
