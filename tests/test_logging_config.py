"""Tests for logging setup: console plus rotating JSON file."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from nodewarden.config import Settings
from nodewarden.logging_config import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    structlog.reset_defaults()


def _settings(tmp_path: Path, **overrides) -> Settings:
    return Settings(
        _env_file=None,
        nodewarden_log_file=str(tmp_path / "logs" / "nodewarden.log"),
        nodewarden_log_level="INFO",
        **overrides,
    )


def _our_handlers() -> list[logging.Handler]:
    return [h for h in logging.getLogger().handlers if h.get_name() == "nodewarden"]


class TestSetupLogging:

    def test_events_reach_the_log_file_as_json(self, tmp_path: Path, restore_logging) -> None:
        with patch("nodewarden.logging_config.get_settings", return_value=_settings(tmp_path)):
            setup_logging()

        structlog.get_logger("nodewarden.test").info("step_skipped", step="wsl_feature")
        for handler in _our_handlers():
            handler.flush()

        line = (tmp_path / "logs" / "nodewarden.log").read_text(encoding="utf-8").strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "step_skipped"
        assert record["step"] == "wsl_feature"
        assert record["level"] == "info"

    def test_file_handler_rotates(self, tmp_path: Path, restore_logging) -> None:
        settings = _settings(tmp_path, nodewarden_log_max_bytes=1024, nodewarden_log_backups=2)
        with patch("nodewarden.logging_config.get_settings", return_value=settings):
            setup_logging()

        file_handlers = [h for h in _our_handlers() if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 2

    def test_explicit_file_overrides_setting(self, tmp_path: Path, restore_logging) -> None:
        with patch("nodewarden.logging_config.get_settings", return_value=_settings(tmp_path)):
            setup_logging(tmp_path / "monitor.log")

        structlog.get_logger("nodewarden.test").warning("alert_fired", rule="high_cpu")
        for handler in _our_handlers():
            handler.flush()

        assert "alert_fired" in (tmp_path / "monitor.log").read_text(encoding="utf-8")
        assert not (tmp_path / "logs" / "nodewarden.log").exists()

    def test_empty_file_disables_file_output(self, tmp_path: Path, restore_logging) -> None:
        with patch("nodewarden.logging_config.get_settings", return_value=_settings(tmp_path)):
            setup_logging("")

        assert not any(isinstance(h, RotatingFileHandler) for h in _our_handlers())

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path: Path, restore_logging) -> None:
        with patch("nodewarden.logging_config.get_settings", return_value=_settings(tmp_path)):
            setup_logging()
            setup_logging()

        assert len(_our_handlers()) == 2

    def test_level_filters_events(self, tmp_path: Path, restore_logging) -> None:
        settings = _settings(tmp_path)
        settings = settings.model_copy(update={"nodewarden_log_level": "WARNING"})
        with patch("nodewarden.logging_config.get_settings", return_value=settings):
            setup_logging()

        logger = structlog.get_logger("nodewarden.test")
        logger.info("monitor_cycle", cycle=1)
        logger.error("sample_log_write_failed", path="x")
        for handler in _our_handlers():
            handler.flush()

        text = (tmp_path / "logs" / "nodewarden.log").read_text(encoding="utf-8")
        assert "monitor_cycle" not in text
        assert "sample_log_write_failed" in text
