"""Rich logging integration for swarmkeeper.

Provides the Rich console handler used for interactive output and a file
formatter that strips Rich markup.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

_MARKUP_PATTERN = re.compile(r"\[/?[^\]]+\]")


class CorrelationRichHandler(RichHandler):
    """RichHandler that stamps records with the current correlation ID."""

    # Log lines matching these patterns are highlighted in the console
    ACTION_PATTERNS = [
        r"Seeding:",
        r"Re-announcing:",
        r"Total uploaded:",
    ]

    def __init__(self, *args: Any, console: Console | None = None, **kwargs: Any):
        """Initialize the handler with a stdout console."""
        if console is None:
            console = Console(file=sys.stdout, markup=True, color_system="auto")
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def _colorize_action_text(self, message: str) -> str:
        for pattern in self.ACTION_PATTERNS:
            message = re.sub(
                pattern,
                lambda m: f"[bright_cyan]{m.group(0)}[/bright_cyan]",
                message,
                count=1,
            )
        return message

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record with correlation ID and highlighted action text."""
        try:
            if not hasattr(record, "correlation_id"):
                from swarmkeeper.utils.logging_config import correlation_id

                record.correlation_id = correlation_id.get() or "no-correlation-id"

            message = record.getMessage()
            record.msg = self._colorize_action_text(escape_markup(message))
            record.args = ()
            super().emit(record)
        except Exception:
            self.handleError(record)


def escape_markup(text: str) -> str:
    """Escape square brackets so user data is not parsed as Rich markup."""
    return text.replace("[", r"\[")


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup from text for file logging."""
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks

    Returns:
        Configured RichHandler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
    )
