"""Coloured, tagged logging for the kube-world workflows."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO

BANNER_WIDTH = 79


class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[0;34m",
        logging.INFO: "\033[0;32m",
        logging.WARNING: "\033[1;33m",
        logging.ERROR: "\033[0;31m",
        logging.CRITICAL: "\033[0;31m",
    }
    RESET = "\033[0m"

    def __init__(self, tag: str, use_color: bool) -> None:
        super().__init__("%(message)s")
        self.tag = tag
        self.use_color = use_color

    def label(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            return "ERROR" if self.tag == "INFO" else self.tag
        if record.levelno == logging.WARNING:
            return "WARN" if self.tag == "INFO" else self.tag
        if record.levelno <= logging.DEBUG:
            return "DEBUG"
        return self.tag

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        label = f"[{self.label(record)}]"
        if not self.use_color:
            return f"{label} {message}"
        color = self.COLORS.get(record.levelno, "")
        return f"{color}{label}{self.RESET} {message}"


def configure_logging(
    name: str,
    tag: str,
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Return a logger writing ``[TAG] message`` lines to ``stream`` (stderr).

    Calling this again for the same name replaces the handlers, so each CLI
    invocation gets a clean setup. When ``log_file`` is given every record is
    also written, uncoloured, to that file.
    """

    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    target = stream if stream is not None else sys.stderr
    console = logging.StreamHandler(target)
    console.setFormatter(ColorFormatter(tag, _isatty(target)))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(ColorFormatter(tag, use_color=False))
        logger.addHandler(file_handler)
    return logger


def banner(title: str, *lines: str) -> str:
    """Render a boxed heading like the ones printed at workflow start and end."""

    inner = BANNER_WIDTH - 2
    rows = ["╔" + "═" * inner + "╗"]
    for text in (title, *lines):
        rows.append("║" + text.center(inner) + "║")
    rows.append("╚" + "═" * inner + "╝")
    return "\n".join(rows)


def section(title: str) -> str:
    rule = "=" * 46
    return f"\n{rule}\n{title}\n{rule}"


def _isatty(stream: IO[str]) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())
