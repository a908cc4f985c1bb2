"""
Logging configuration for the nodeprep CLI.

``setup_logging`` runs once, from ``nodeprep.main``; every module logs
through ``logging.getLogger(__name__)`` and inherits the result.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  NODEPREP_LOG_LEVEL  >  WARNING

NODEPREP_LOG_FILE adds a file handler, at NODEPREP_LOG_FILE_LEVEL or
the console level.

Inside a GitHub Actions job (``GITHUB_ACTIONS=true``) console warnings
and errors become ``::warning::`` / ``::error::`` workflow commands, so
a failed install shows up as an annotation on the run.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

ENV_LEVEL = "NODEPREP_LOG_LEVEL"
ENV_FILE = "NODEPREP_LOG_FILE"
ENV_FILE_LEVEL = "NODEPREP_LOG_FILE_LEVEL"

# Console format grows with verbosity
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "filelock")


class WorkflowCommandFormatter(logging.Formatter):
    """Prefix WARNING/ERROR records with GitHub workflow commands."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"::error::{_escape(text)}"
        if record.levelno >= logging.WARNING:
            return f"::warning::{_escape(text)}"
        return text


def _escape(text: str) -> str:
    # Workflow command data must not contain raw newlines
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def in_github_actions(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("GITHUB_ACTIONS", "").lower() == "true"


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name from the CLI flags, else the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LEVEL) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
    workflow_commands: bool | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name.
        log_file: Also log to this file.
        log_file_level: File level name (default: ``level``).
        quiet_third_party: Hold chatty libraries at WARNING unless
            ``level`` is DEBUG.
        workflow_commands: Emit GitHub annotations; None auto-detects.
    """
    console_level = _parse_level(level)
    if workflow_commands is None:
        workflow_commands = in_github_actions()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level, workflow_commands))
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def setup_logging_from_env(level: str, environ: Mapping[str, str] | None = None) -> None:
    """``setup_logging`` with the file settings taken from the environment."""
    env = os.environ if environ is None else environ
    setup_logging(
        level=level,
        log_file=env.get(ENV_FILE) or None,
        log_file_level=env.get(ENV_FILE_LEVEL) or None,
        quiet_third_party=_parse_level(level) > logging.DEBUG,
    )


def _console_handler(level: int, workflow_commands: bool) -> logging.Handler:
    threshold = max(k for k in _CONSOLE_FORMATS if k <= max(level, logging.DEBUG))
    fmt, datefmt = _CONSOLE_FORMATS[threshold]
    formatter_cls = WorkflowCommandFormatter if workflow_commands else logging.Formatter
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names mean WARNING."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
