"""
Console output and logging setup.

Outcome lines are printed on a shared rich console with
[INFO]/[SUCCESS]/[WARNING]/[ERROR] tags.
Diagnostic logging goes through the standard logging module rendered
by rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape


console = Console()

_TAGS = {
    "info": ("INFO", "blue"),
    "success": ("SUCCESS", "green"),
    "warning": ("WARNING", "yellow"),
    "error": ("ERROR", "red"),
}


def setup_logging(verbose: bool = False) -> None:
    """Route package loggers through rich. Verbose enables DEBUG output."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(console=console, show_path=False, markup=False)
    logger = logging.getLogger("container_hardening")
    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False


def _emit(kind: str, message: str) -> None:
    tag, color = _TAGS[kind]
    console.print(f"[{color}]\\[{tag}][/{color}] {escape(message)}", highlight=False)


def log_info(message: str) -> None:
    _emit("info", message)


def log_success(message: str) -> None:
    _emit("success", message)


def log_warning(message: str) -> None:
    _emit("warning", message)


def log_error(message: str) -> None:
    _emit("error", message)


def echo_raw(text: str) -> None:
    """Print external tool output verbatim, without markup or highlighting."""
    console.print(text, markup=False, highlight=False, emoji=False)
