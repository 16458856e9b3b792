"""Unit tests for the logger module."""

import logging
import sys
from datetime import datetime

import pytest

from src.logger import (
    SYSTEM_CONTEXT,
    ColoredFormatter,
    Colors,
    ContextAwareFormatter,
    DateRotatingFileHandler,
    PlainContextAwareFormatter,
    clear_issue_context,
    get_issue_context,
    get_logger,
    is_debug_mode,
    set_issue_context,
    setup_logging,
)


def make_record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=level, pathname="", lineno=0, msg=msg, args=(), exc_info=None
    )


@pytest.mark.unit
class TestIssueContext:
    """Tests for the issue context helpers."""

    def teardown_method(self):
        clear_issue_context()

    def test_default_is_system_context(self):
        assert get_issue_context() == SYSTEM_CONTEXT

    def test_set_formats_repo_and_number(self):
        set_issue_context("netd", 42)
        assert get_issue_context() == "netd#42"

    def test_none_values_reset_to_default(self):
        set_issue_context("netd", 42)
        set_issue_context(None, None)
        assert get_issue_context() == SYSTEM_CONTEXT

    def test_clear_resets(self):
        set_issue_context("netd", 42)
        clear_issue_context()
        assert get_issue_context() == SYSTEM_CONTEXT


@pytest.mark.unit
class TestColoredFormatter:
    """Tests for ColoredFormatter."""

    def test_error_is_red(self):
        result = ColoredFormatter("%(message)s").format(make_record(logging.ERROR, "boom"))
        assert result == f"{Colors.RED}boom{Colors.RESET}"

    def test_warning_is_yellow(self):
        result = ColoredFormatter("%(message)s").format(make_record(logging.WARNING, "hm"))
        assert result == f"{Colors.YELLOW}hm{Colors.RESET}"

    @pytest.mark.parametrize(
        "msg, color, prefix",
        [
            ("Poll completed: 3 issues triaged", Colors.GREEN, "✓"),
            ("Column 2 of 'Net' attached by 'dave', awaiting confirmation", Colors.YELLOW, "→"),
            ("Reverted unconfirmed column 2 to no project", Colors.MAGENTA, "↺"),
            ("Relocated netd#42 to triage#7", Colors.ORANGE, "⚠"),
            ("Skipping netd: no Process.yaml", Colors.GRAY, "⊘"),
        ],
    )
    def test_info_semantic_colors(self, msg, color, prefix):
        result = ColoredFormatter("%(message)s").format(make_record(logging.INFO, msg))
        assert result == f"{color}{prefix} {msg}{Colors.RESET}"

    def test_info_without_keyword_unchanged(self):
        result = ColoredFormatter("%(message)s").format(make_record(logging.INFO, "plain"))
        assert result == "plain"


@pytest.mark.unit
class TestContextFormatters:
    """Tests for the context-aware formatters."""

    def teardown_method(self):
        clear_issue_context()

    def test_context_aware_formatter_injects_issue_context(self):
        set_issue_context("netd", 7)
        formatter = ContextAwareFormatter("%(issue_context)s %(message)s")
        assert formatter.format(make_record(logging.DEBUG, "x")) == "netd#7 x"

    def test_plain_formatter_has_no_colors(self):
        formatter = PlainContextAwareFormatter("%(issue_context)s %(message)s")
        result = formatter.format(make_record(logging.ERROR, "boom"))
        assert result == f"{SYSTEM_CONTEXT} boom"
        assert "\033[" not in result


@pytest.mark.unit
class TestDateRotatingFileHandler:
    """Tests for DateRotatingFileHandler.rotation_filename()."""

    def test_rotation_filename_includes_date(self, tmp_path):
        handler = DateRotatingFileHandler(str(tmp_path / "triagebot.log"))
        try:
            name = handler.rotation_filename(str(tmp_path / "triagebot.log.1"))
        finally:
            handler.close()

        date_str = datetime.now().strftime("%Y-%m-%d")
        assert name == str(tmp_path / f"triagebot.{date_str}.log.1")


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging function."""

    def teardown_method(self):
        """Clean up root logger after each test."""
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()
        root.setLevel(logging.WARNING)

    def test_console_handlers_in_foreground(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        setup_logging(log_file=None)

        streams = [h.stream for h in logging.getLogger().handlers]
        assert sys.stdout in streams
        assert sys.stderr in streams

    def test_daemon_mode_logs_to_file_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        log_file = tmp_path / "logs" / "triagebot.log"
        setup_logging(log_file=str(log_file), daemon_mode=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], DateRotatingFileHandler)
        assert log_file.parent.exists()

    def test_respects_log_level_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        setup_logging(log_file=None)

        assert logging.getLogger().level == logging.DEBUG
        assert is_debug_mode()

    def test_file_receives_context(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        log_file = tmp_path / "triagebot.log"
        setup_logging(log_file=str(log_file), daemon_mode=True)

        set_issue_context("netd", 3)
        try:
            get_logger("src.test").info("hello")
        finally:
            clear_issue_context()
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "netd#3" in log_file.read_text()


@pytest.mark.unit
class TestGetLogger:
    def test_returns_named_logger(self):
        assert get_logger("src.triage").name == "src.triage"
