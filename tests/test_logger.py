"""Tests for logger.py: setup_logging() and JsonFormatter.

basicConfig is patched: pytest's log capture plugin already installs root
handlers, so a real basicConfig call would be a no-op.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from repo_sync.logger import JsonFormatter, apply_logging_config, setup_logging

_BASIC = "repo_sync.logger.logging.basicConfig"


def _record(msg="Hello %s", args=("world",), exc_info=None):
    return logging.LogRecord(
        name="repo_sync.sync.engine",
        level=logging.ERROR if exc_info else logging.INFO,
        pathname="engine.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestSetupLogging:
    @patch(_BASIC)
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        handlers = mock_basic.call_args.kwargs["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr

    @patch(_BASIC)
    def test_cli_mode_with_log_file_adds_named_file_handler(
        self, mock_basic, tmp_path
    ):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args.kwargs["handlers"]
        file_handlers = [
            h for h in handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        assert "%(name)s" in file_handlers[0].formatter._fmt
        for h in file_handlers:
            h.close()

    @patch(_BASIC)
    def test_mcp_mode_logs_to_file(self, mock_basic, tmp_path):
        log_file = str(tmp_path / "mcp.log")
        setup_logging(mode="mcp", log_file=log_file)

        assert mock_basic.call_args.kwargs["filename"] == log_file

    @patch(_BASIC)
    def test_mcp_mode_default_log_file(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_FILE", raising=False)
        setup_logging(mode="mcp")

        assert (
            mock_basic.call_args.kwargs["filename"]
            == "/tmp/repo-sync-mcp-server.log"
        )

    @patch(_BASIC)
    def test_mcp_mode_log_file_from_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/tmp/elsewhere.log")
        setup_logging(mode="mcp")

        assert mock_basic.call_args.kwargs["filename"] == "/tmp/elsewhere.log"

    @pytest.mark.parametrize(
        "mode, expected", [("mcp", logging.WARNING), ("cli", logging.INFO)]
    )
    @patch(_BASIC)
    def test_default_level_per_mode(
        self, mock_basic, mode, expected, monkeypatch
    ):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("LOG_FILE", raising=False)
        setup_logging(mode=mode)

        assert mock_basic.call_args.kwargs["level"] == expected

    @patch(_BASIC)
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")

        assert mock_basic.call_args.kwargs["level"] == logging.ERROR

    @patch(_BASIC)
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args.kwargs["level"] == logging.DEBUG

    @patch(_BASIC)
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        handlers = mock_basic.call_args.kwargs["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)

    @patch(_BASIC)
    def test_http_loggers_silenced(self, _mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli")

        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


class TestJsonFormatter:
    def test_basic_output(self):
        data = json.loads(JsonFormatter().format(_record()))

        assert set(data) == {"ts", "level", "logger", "msg"}
        assert data["level"] == "INFO"
        assert data["logger"] == "repo_sync.sync.engine"
        assert data["msg"] == "Hello world"

    def test_includes_exception_on_one_line(self):
        try:
            raise ValueError("walk failed")
        except ValueError:
            exc_info = sys.exc_info()

        output = JsonFormatter().format(
            _record("Sync failed", (), exc_info=exc_info)
        )

        assert "\n" not in output
        data = json.loads(output)
        assert "ValueError: walk failed" in data["exc"]


class TestApplyLoggingConfig:
    @pytest.fixture(autouse=True)
    def _restore_package_logger(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        package = logging.getLogger("repo_sync")
        level, handlers = package.level, list(package.handlers)
        yield package
        for handler in package.handlers:
            if handler not in handlers:
                handler.close()
        package.handlers = handlers
        package.setLevel(level)

    def test_sets_package_level(self, _restore_package_logger):
        apply_logging_config("debug")

        assert _restore_package_logger.level == logging.DEBUG

    def test_env_level_wins(self, _restore_package_logger, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        before = _restore_package_logger.level

        apply_logging_config("DEBUG")

        assert _restore_package_logger.level == before

    def test_debug_flag_wins(self, _restore_package_logger):
        before = _restore_package_logger.level

        apply_logging_config("ERROR", debug=True)

        assert _restore_package_logger.level == before

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError):
            apply_logging_config("LOUD")

    def test_file_handler_added_once(self, _restore_package_logger, tmp_path):
        log_file = str(tmp_path / "sync.log")

        apply_logging_config(None, log_file)
        apply_logging_config(None, log_file)

        file_handlers = [
            h
            for h in _restore_package_logger.handlers
            if isinstance(h, logging.FileHandler)
        ]
        assert [h.baseFilename for h in file_handlers] == [log_file]
