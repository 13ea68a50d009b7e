"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- JSON and plain rendering of responses and tables
- Notification rendering
- Routing of library log records through the RichHandler
- Global instance management
"""

from __future__ import annotations

import json
import logging

import pytest
from rich.logging import RichHandler

from cachewarden.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("cachewarden.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("cachewarden.output._is_tty", lambda: True)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("TERM", raising=False)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty):
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_no_color(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDetection:
    def test_no_color_env_disables_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).print_data("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    def test_info_goes_to_stderr(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).info("some info")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "some info" in captured.err

    def test_error_prefix_in_no_color(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).error("broke")
        assert "Error: broke" in capfd.readouterr().err

    def test_quiet_suppresses_info_but_not_warning(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("chatter")
        mgr.success("done")
        mgr.warning("careful")
        err = capfd.readouterr().err
        assert "chatter" not in err
        assert "done" not in err
        assert "Warning: careful" in err

    def test_debug_only_with_verbose(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("hidden")
        OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True).debug("shown")
        err = capfd.readouterr().err
        assert "hidden" not in err
        assert "[debug] shown" in err


# ------------------------------------------------------------------ #
# Data rendering
# ------------------------------------------------------------------ #


class TestFormatResponse:
    def test_dict_as_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"state": "active"})
        assert json.loads(capfd.readouterr().out) == {"state": "active"}

    def test_string_that_is_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response('{"a": 1}')
        assert json.loads(capfd.readouterr().out) == {"a": 1}

    def test_plain_dict_is_tab_separated(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"label": "v4", "current": True})
        assert capfd.readouterr().out.splitlines() == ["label\tv4", "current\tTrue"]

    def test_plain_text_body(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response("<html></html>", "text/html")
        assert capfd.readouterr().out.strip() == "<html></html>"


class TestPrintTable:
    def test_json_table_is_list_of_records(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).print_table(
            ["label", "current"], [["v3", ""], ["v4", "yes"]]
        )
        assert json.loads(capfd.readouterr().out) == [
            {"label": "v3", "current": ""},
            {"label": "v4", "current": "yes"},
        ]

    def test_plain_table(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).print_table(["label"], [["v4"]])
        assert capfd.readouterr().out.splitlines() == ["label", "v4"]


# ------------------------------------------------------------------ #
# Notifications and logging
# ------------------------------------------------------------------ #


class TestNotification:
    def test_plain_notification(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).notification(
            "Digital Sanctuary Bible", "Hello", ["open: Open App"]
        )
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "[Digital Sanctuary Bible] Hello" in captured.err
        assert "(open: Open App)" in captured.err

    def test_quiet_suppresses_notification(self, capfd, non_tty):
        OutputManager(no_color=True, quiet=True).notification("T", "B", [])
        assert capfd.readouterr().err == ""


class TestInstallLogging:
    def test_installs_single_rich_handler(self, non_tty):
        mgr = OutputManager(no_color=True)
        mgr.install_logging()
        mgr.install_logging()
        logger = logging.getLogger("cachewarden")
        handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert logger.level == logging.WARNING

    def test_verbose_enables_debug(self, non_tty):
        OutputManager(no_color=True, verbose=True).install_logging()
        assert logging.getLogger("cachewarden").level == logging.DEBUG


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_output_replaces_instance(self):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr
