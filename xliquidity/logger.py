"""
Aggregator Logging
==================

Process-wide logging for the ledger. The root logger is configured once, on
first import, from the ``LOG_*`` settings in ``.env``:

  - a Rich console handler that highlights pool ids, swap ids, amounts and
    rollbacks (or a plain stderr handler when highlighting is off)
  - an optional size-rotated file under ``logs/``
  - a formatter that strips terminal control sequences, since token ids,
    chain names and foreign addresses are caller-supplied strings

Usage:
    >>> from xliquidity.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Created pool #1")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)

PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "xliquidity.log"

_THEME = Theme(
    {
        "xliq.level_critical": "bold red reverse",
        "xliq.level_error":    "bold red",
        "xliq.level_warning":  "bold yellow",
        "xliq.level_info":     "bold green",
        "xliq.level_debug":    "bold dim",
        "xliq.logger_name":    "magenta",
        "xliq.pool":           "bold magenta",
        "xliq.swap":           "bold blue",
        "xliq.rollback":       "bold red",
        "xliq.amount":         "bold white",
        "xliq.timestamp":      "bold cyan",
    }
)


def _level(name: Optional[str]) -> int:
    return getattr(logging, str(name or "INFO").upper(), logging.INFO)


class TerminalSafeFormatter(logging.Formatter):
    """Formatter that removes ANSI escapes and control characters from output."""

    _ansi_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    # C0 controls and DEL, keeping tab and newline
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._ansi_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class AggregatorLogHighlighter(RegexHighlighter):
    """Rich highlighter for ledger log lines."""

    base_style = "xliq."
    highlights = [
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<pool>\bpool #\d+\b)",
        r"(?P<swap>\bswap #\d+\b)",
        r"(?P<rollback>\brolled back\b)",
        r"(?P<amount>\b\d{4,}\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


class LogManager:
    """
    Singleton owner of the root logger configuration.

    ``configure`` is idempotent; ``set_level`` re-levels the handlers that
    are already installed (used when a loaded config names a log level).
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        with self._lock:
            if self._configured:
                return

            level = _level(log_level or LOG_LEVEL)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            # Timestamps are UTC so nodes in different zones produce comparable logs
            formatter = TerminalSafeFormatter(
                fmt=str(LOG_FORMAT), datefmt=f"{LOG_DATE_FORMAT} UTC"
            )
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    handler: logging.Handler = RichHandler(
                        console=Console(theme=_THEME, highlight=False, stderr=True),
                        highlighter=AggregatorLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                else:
                    handler = logging.StreamHandler(sys.stderr)
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

            self._configured = True

    def set_level(self, log_level: str) -> None:
        level = _level(log_level)
        root = logging.getLogger()
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures logging on first use."""
    return _manager.get_logger(name)


def set_log_level(log_level: str) -> None:
    """Adjust the level of the already-configured logging system."""
    _manager.set_level(log_level)


_manager.configure()
