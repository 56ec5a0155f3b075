"""
Colored console logging for the schema-codegen command line.

The library modules only ever call ``logging.getLogger(__name__)``; this
module is where the CLI installs a handler. The ``log_*`` helpers prefix
messages with a marker the formatter recognizes, so progress, success and
section lines stand out in a terminal.
"""

import logging
import sys
from typing import IO, Optional

SUCCESS_MARK = "✓"
PROGRESS_MARK = "→"
HIGHLIGHT_MARK = "•"
SECTION_RULE = "=" * 60


class ColoredFormatter(logging.Formatter):
    """
    Adds ANSI colors to log lines.

    Errors are red and warnings yellow whatever their text. INFO and DEBUG
    lines are colored by the marker the ``log_*`` helpers put in front of
    them; plain INFO lines stay uncolored.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }

    SPECIAL_COLORS = {
        "success": "\033[92m",  # Bright Green
        "progress": "\033[94m",  # Bright Blue
        "highlight": "\033[96m",  # Bright Cyan
    }

    RESET = "\033[0m"
    BOLD = "\033[1m"

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True, stream: Optional[IO] = None):
        """
        Args:
            fmt: Log format string. Defaults to ``LEVEL: message``.
            use_colors: Request colors. They are only used when ``stream``
                (stderr by default) is a terminal.
            stream: Stream the handler writes to.
        """
        super().__init__(fmt or "%(levelname)s: %(message)s")
        stream = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if not self.use_colors:
            return formatted

        color = self._color_for(record)
        if not color:
            return formatted
        return f"{color}{formatted}{self.RESET}"

    def _color_for(self, record: logging.LogRecord) -> str:
        if record.levelname in ("ERROR", "CRITICAL", "WARNING"):
            return self.COLORS[record.levelname]

        message = record.getMessage().lstrip()
        if message.startswith(SUCCESS_MARK):
            return self.SPECIAL_COLORS["success"] + self.BOLD
        if message.startswith(PROGRESS_MARK):
            return self.SPECIAL_COLORS["progress"]
        if message.startswith(HIGHLIGHT_MARK):
            return self.SPECIAL_COLORS["highlight"]
        if message.startswith(SECTION_RULE) or message.isupper():
            return self.BOLD + self.SPECIAL_COLORS["highlight"]
        if record.levelname == "DEBUG":
            return self.COLORS["DEBUG"]
        return ""


def setup_colored_logging(level: int = logging.INFO, use_colors: bool = True, stream: Optional[IO] = None) -> None:
    """
    Install a single colored console handler on the root logger.

    Handlers installed earlier are removed so that repeated calls (tests,
    re-entrant CLI invocations) do not duplicate output.
    """
    stream = stream if stream is not None else sys.stderr
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors, stream=stream))
    console_handler.setLevel(level)

    root_logger.addHandler(console_handler)
    root_logger.setLevel(level)


def log_success(logger: logging.Logger, message: str) -> None:
    logger.info(f"{SUCCESS_MARK} {message}")


def log_progress(logger: logging.Logger, message: str) -> None:
    logger.info(f"{PROGRESS_MARK} {message}")


def log_highlight(logger: logging.Logger, message: str) -> None:
    logger.info(f"{HIGHLIGHT_MARK} {message}")


def log_section(logger: logging.Logger, section_name: str) -> None:
    """Log a section header framed by rules."""
    logger.info(SECTION_RULE)
    logger.info(f"  {section_name.upper()}")
    logger.info(SECTION_RULE)
