"""
Tests for logging setup — levels, log file, GitHub workflow annotations.
"""

import logging
from pathlib import Path

import pytest

from nodeprep.core.observability.logging_config import (
    WorkflowCommandFormatter,
    _parse_level,
    in_github_actions,
    resolve_level,
    setup_logging,
    setup_logging_from_env,
)


def _record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord("nodeprep.test", level, __file__, 1, msg, None, None)


class TestParseLevel:
    @pytest.mark.parametrize(
        "name,expected",
        [("debug", logging.DEBUG), ("INFO", logging.INFO), ("error", logging.ERROR)],
    )
    def test_names(self, name, expected):
        assert _parse_level(name) == expected

    @pytest.mark.parametrize("name", [None, "", "loud"])
    def test_fallback(self, name):
        assert _parse_level(name) == logging.WARNING


class TestResolveLevel:
    def test_flags_win(self):
        env = {"NODEPREP_LOG_LEVEL": "ERROR"}
        assert resolve_level(debug=True, environ=env) == "DEBUG"
        assert resolve_level(verbose=True, environ=env) == "INFO"
        assert resolve_level(quiet=True, environ={}) == "ERROR"

    def test_env(self):
        assert resolve_level(environ={"NODEPREP_LOG_LEVEL": "info"}) == "info"

    def test_default(self):
        assert resolve_level(environ={}) == "WARNING"
        assert resolve_level(environ={"NODEPREP_LOG_LEVEL": ""}) == "WARNING"


class TestWorkflowCommandFormatter:
    def test_error(self):
        text = WorkflowCommandFormatter("%(message)s").format(_record(logging.ERROR, "install failed"))
        assert text == "::error::install failed"

    def test_warning(self):
        text = WorkflowCommandFormatter("%(message)s").format(_record(logging.WARNING, "save skipped"))
        assert text == "::warning::save skipped"

    def test_info_untouched(self):
        text = WorkflowCommandFormatter("%(message)s").format(_record(logging.INFO, "cache hit"))
        assert text == "cache hit"

    def test_escapes_newlines(self):
        text = WorkflowCommandFormatter("%(message)s").format(
            _record(logging.ERROR, "npm ERR! 100%\nline two"),
        )
        assert text == "::error::npm ERR! 100%25%0Aline two"


class TestSetupLogging:
    def test_console_level(self):
        setup_logging(level="INFO", workflow_commands=False)
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_workflow_commands_auto_detected(self, monkeypatch):
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        assert in_github_actions()
        setup_logging(level="WARNING")
        assert isinstance(logging.getLogger().handlers[0].formatter, WorkflowCommandFormatter)

    def test_plain_outside_ci(self, monkeypatch):
        monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
        setup_logging(level="WARNING")
        assert not isinstance(logging.getLogger().handlers[0].formatter, WorkflowCommandFormatter)

    def test_log_file(self, tmp_path: Path):
        log_file = tmp_path / "nodeprep.log"
        setup_logging(level="ERROR", log_file=str(log_file), log_file_level="DEBUG",
                      workflow_commands=False)
        assert logging.getLogger().level == logging.DEBUG

        logging.getLogger("nodeprep.test").debug("restoring partition")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "restoring partition" in log_file.read_text()

    def test_from_env(self, tmp_path: Path):
        log_file = tmp_path / "env.log"
        setup_logging_from_env(
            "WARNING",
            environ={"NODEPREP_LOG_FILE": str(log_file), "NODEPREP_LOG_FILE_LEVEL": "INFO"},
        )
        assert logging.getLogger().level == logging.INFO
        assert len(logging.getLogger().handlers) == 2
