import json
import logging

import pytest
import structlog

from proxied_client.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_lines_on_stdout(capsys):
    configure_logging("INFO", "json")
    logger = structlog.get_logger("proxied_client.test_json")

    logger.debug("hidden")
    logger.warning("proxy_config_incomplete", endpoint="empty", authorization="set")

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["event"] == "proxy_config_incomplete"
    assert record["level"] == "warning"
    assert record["logger"] == "proxied_client.test_json"
    assert record["endpoint"] == "empty"
    assert "timestamp" in record


def test_level_is_case_insensitive(capsys):
    configure_logging("debug", "console")
    structlog.get_logger("proxied_client.test_console").debug("shown")

    assert "shown" in capsys.readouterr().out
