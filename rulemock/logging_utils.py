"""Structured logging setup for the rulemock runtime."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any

import structlog

from .output_config import LogFormat

try:
    from rich.console import Console
    from rich.text import Text
    RICH_AVAILABLE = True
except ImportError:
    RICH_AVAILABLE = False

# Keys rendered first, in this order, after the event name.
_LEADING_KEYS = ("host", "port", "method", "path", "status", "rule_id")


class RichConsoleRenderer:
    """structlog renderer producing colored single-line events through rich."""

    level_styles = {
        "debug": "dim cyan",
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
    }

    def __init__(self) -> None:
        if not RICH_AVAILABLE:
            raise ImportError("rich library is required for RichConsoleRenderer")

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")
        exception = event_dict.pop("exception", None)

        text = Text()
        text.append(str(timestamp), style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(str(event), style="bold white")
        if event_dict:
            text.append(" " * max(1, 24 - len(str(event))))

        ordered = [key for key in _LEADING_KEYS if key in event_dict]
        ordered.extend(sorted(key for key in event_dict if key not in _LEADING_KEYS))
        text.append(
            " ".join(f"{key}={event_dict[key]}" for key in ordered),
            style="bright_cyan",
        )
        if exception:
            text.append("\n" + str(exception), style="red")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=200, legacy_windows=False).print(text, end="")
        return buffer.getvalue()


def configure_logging(log_level: str = "info", log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Configure structlog for the CLI; library users keep whatever they configured."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        if RICH_AVAILABLE:
            processors.append(RichConsoleRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=True))
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("rulemock")
