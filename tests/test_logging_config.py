"""Tests for logging_config module."""

import json
import logging
from pathlib import Path

import pytest

from buildgate.logging_config import (
    LOGGER_NAME,
    StructuredFormatter,
    configure_logging,
    correlation_id_var,
    get_default_log_dir,
)


def _close_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_includes_correlation_id_and_extras(self) -> None:
        """Should emit JSON with the correlation id and extra fields."""
        record = logging.LogRecord("buildgate.test", logging.INFO, __file__, 1, "applied %d", (2,), None)
        record.event = "patch_applied"
        record.touched_files = ["a.py"]

        token = correlation_id_var.set("run-123")
        try:
            data = json.loads(StructuredFormatter().format(record))
        finally:
            correlation_id_var.reset(token)

        assert data["message"] == "applied 2"
        assert data["correlation_id"] == "run-123"
        assert data["event"] == "patch_applied"
        assert data["touched_files"] == ["a.py"]
        assert "lineno" not in data

    def test_non_serializable_extras(self) -> None:
        """Should stringify values json cannot encode."""
        record = logging.LogRecord("buildgate.test", logging.INFO, __file__, 1, "x", None, None)
        record.path = Path("a/b.py")
        data = json.loads(StructuredFormatter().format(record))
        assert data["path"] == str(Path("a/b.py"))


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_default_log_dir_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Should honor BUILDGATE_LOG_DIR."""
        monkeypatch.setenv("BUILDGATE_LOG_DIR", str(tmp_path / "logs"))
        assert get_default_log_dir() == tmp_path / "logs"

    def test_default_log_dir_under_workspace(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Should default to .buildgate/logs in the workspace."""
        monkeypatch.delenv("BUILDGATE_LOG_DIR", raising=False)
        assert get_default_log_dir(tmp_path) == tmp_path / ".buildgate" / "logs"

    def test_writes_structured_file(self, tmp_path: Path) -> None:
        """Should write JSON lines to the log directory."""
        logger = configure_logging(run_id="run-1", log_dir=tmp_path, log_to_console=False, structured=True)
        try:
            logging.getLogger(f"{LOGGER_NAME}.executor").info("hello", extra={"event": "test_event"})
            for handler in logger.handlers:
                handler.flush()

            files = list(tmp_path.glob("run-1_*.jsonl"))
            assert len(files) == 1
            lines = [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]
            assert any(line.get("event") == "test_event" for line in lines)
        finally:
            _close_handlers(logger)

    def test_level_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should read BUILDGATE_LOG_LEVEL when no level is passed."""
        monkeypatch.setenv("BUILDGATE_LOG_LEVEL", "DEBUG")
        logger = configure_logging(log_to_console=False, log_to_file=False)
        try:
            assert logger.level == logging.DEBUG
        finally:
            _close_handlers(logger)
