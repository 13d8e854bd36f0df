"""Unit tests for core.logger module."""

import json
import logging

import pytest
import structlog

from core.logger import configure_logging, get_logger


@pytest.fixture(autouse=True)
def _clean_root_logger():
    """Save and restore root logger state around each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    structlog.reset_defaults()


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_stdout_handler(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        configure_logging()

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_json_format_renders_key_values(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        get_logger("tests.logger").info(
            "streak.reconcile.completed", processed=3, failed=0
        )

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "streak.reconcile.completed"
        assert payload["processed"] == 3
        assert payload["level"] == "info"
        assert payload["logger"] == "tests.logger"

    def test_quiets_noisy_loggers(self):
        configure_logging()

        assert logging.getLogger("uvicorn.access").level == logging.WARNING
        assert logging.getLogger("aiosqlite").level == logging.WARNING
