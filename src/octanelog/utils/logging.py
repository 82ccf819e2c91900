"""Logging configuration for OctaneLog.

Provides centralized logging setup with Rich console formatting and
optional file logging, plus the "thought" log used by the narrative
engine to record its reasoning steps.

Example:
    >>> from octanelog.utils.logging import setup_logging, log_thought
    >>> setup_logging(level="DEBUG")
    >>> log_thought("Context Retrieval", "Loaded Season: 'Season 1'")
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Package logger name
PACKAGE_NAME = "octanelog"

# Reasoning steps are emitted on their own logger so they can be filtered
THOUGHTS_LOGGER_NAME = f"{PACKAGE_NAME}.thoughts"

NOISY_LOGGERS = [
    "google",
    "google.auth",
    "google.genai",
    "urllib3",
    "httpx",
    "httpcore",
    "asyncio",
]

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_console = Console(stderr=True)


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure logging for the octanelog package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        quiet_third_party: If True, suppress noisy third-party loggers.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger(PACKAGE_NAME)
    root_logger.setLevel(numeric_level)
    root_logger.handlers = []

    console_handler = RichHandler(
        console=_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=numeric_level == logging.DEBUG,
        markup=False,
    )
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if quiet_third_party:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.propagate = False
    root_logger.debug(f"Logging configured: level={level}, file={log_file}")


def log_thought(step: str, content: str) -> None:
    """Record one reasoning step of the narrative agent.

    Example:
        >>> log_thought("Thematic Analysis", "Neutral Alignment: Routine drive.")
    """
    logging.getLogger(THOUGHTS_LOGGER_NAME).info(
        '<thinking_step name="%s">%s</thinking_step>', step, content
    )


def log_decision(topic: str, decision: str, reasoning: str) -> None:
    """Record a decision the agent took and why (e.g. falling back offline)."""
    logging.getLogger(THOUGHTS_LOGGER_NAME).info(
        '<decision topic="%s"><outcome>%s</outcome><reasoning>%s</reasoning></decision>',
        topic,
        decision,
        reasoning,
    )
