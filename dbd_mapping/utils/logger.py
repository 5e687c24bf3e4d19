"""Logging utility for dbd_mapping.

One project logger, configured once, shared by every module:

1. get_logger(): the singleton ``dbd_mapping`` logger (console handler only).
2. setup_logger(unit_name, ...): a LoggerAdapter that stamps each record with
   the logical unit (``func_ctx``) and attaches a rotating file handler.

Console output carries level emojis and ANSI colours when attached to a
terminal or a Jupyter kernel; the file handler writes plain text.

Environment variables:
- DBD_LOG_LEVEL: default level name (INFO).
- DBD_LOG_FILE: default log file (logs/dbd_mapping.log).
- NO_COLOR / NO_EMOJI: disable colours / emojis on the console.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

_PROJECT_LOGGER = "dbd_mapping"
_DEFAULT_LOG_FILE = Path("logs") / "dbd_mapping.log"
_ROTATE_MAX_BYTES = 5 * 1024 * 1024
_ROTATE_BACKUP_COUNT = 3

_LEVEL_EMOJIS: dict[int, str] = {
    logging.DEBUG: "🐞  ",
    logging.INFO: "ℹ️  ",
    logging.WARNING: "⚠️  ",
    logging.ERROR: "❌  ",
    logging.CRITICAL: "🚨  ",
}

_LEVEL_COLORS: dict[int, str] = {
    logging.DEBUG: "\x1b[38;5;244m",
    logging.INFO: "\x1b[38;5;39m",
    logging.WARNING: "\x1b[38;5;214m",
    logging.ERROR: "\x1b[38;5;196m",
    logging.CRITICAL: "\x1b[48;5;196;38;5;231m",
}
_RESET_COLOR = "\x1b[0m"


def _in_jupyter() -> bool:
    """Return True inside a Jupyter / IPython kernel."""
    try:
        from IPython import get_ipython  # type: ignore

        ip = get_ipython()
        return bool(ip) and "IPKernelApp" in ip.config
    except Exception:
        return False


class EmojiFormatter(logging.Formatter):
    """Formatter adding level emoji, unit context and optional colour."""

    def __init__(self, *, use_color: bool = True, use_emoji: bool = True):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(func_ctx)s | %(emoji)s%(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_color = use_color
        self.use_emoji = use_emoji

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "func_ctx"):
            record.func_ctx = "-"  # type: ignore[attr-defined]

        # logger.info("R2:", value) style calls would otherwise crash %-formatting
        if record.args:
            try:
                _ = record.msg % record.args
            except (TypeError, ValueError):
                record.msg = " ".join([str(record.msg), *(str(a) for a in record.args)])
                record.args = ()

        record.emoji = _LEVEL_EMOJIS.get(record.levelno, "") if self.use_emoji else ""
        message = super().format(record)

        if self.use_color and (color := _LEVEL_COLORS.get(record.levelno)):
            return f"{color}{message}{_RESET_COLOR}"
        return message


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    name = str(level or os.getenv("DBD_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def get_logger(*, level: int | str | None = None) -> logging.Logger:
    """Return the project logger, configuring it on first use.

    Args:
        level: Optional level override; applied even when already configured.

    Returns:
        The shared ``dbd_mapping`` logger.
    """
    logger = logging.getLogger(_PROJECT_LOGGER)

    if getattr(logger, "_dbd_configured", False):
        if level is not None:
            logger.setLevel(_resolve_level(level))
        return logger

    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    interactive = sys.stdout.isatty() or _in_jupyter()
    console = logging.StreamHandler()
    console.setFormatter(
        EmojiFormatter(
            use_color=interactive and os.getenv("NO_COLOR") is None,
            use_emoji=os.getenv("NO_EMOJI") is None,
        )
    )
    logger.addHandler(console)
    logger._dbd_configured = True  # type: ignore[attr-defined]
    return logger


class _UnitContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter injecting the logical unit name as ``func_ctx``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs.setdefault("extra", {})["func_ctx"] = (self.extra or {}).get("func_ctx", "-")
        return msg, kwargs


def setup_logger(
    unit_name: str,
    *,
    level: int | str | None = None,
    log_file: str | Path | None = None,
    max_bytes: int = _ROTATE_MAX_BYTES,
    backup_count: int = _ROTATE_BACKUP_COUNT,
) -> logging.LoggerAdapter:
    """Return a logger adapter bound to a module or pipeline stage.

    A rotating file handler for ``log_file`` (argument > ``DBD_LOG_FILE`` >
    ``logs/dbd_mapping.log``) is attached once per path. Filesystem failures
    while creating it are logged and the console handler keeps working.

    Args:
        unit_name: Name stamped on every record (e.g. "knndm").
        level: Optional level override.
        log_file: Explicit log file path.
        max_bytes: Rotation size.
        backup_count: Number of rotated files to keep.

    Returns:
        A ``logging.LoggerAdapter`` injecting ``func_ctx``.
    """
    base_logger = get_logger(level=level)
    target = Path(log_file or os.getenv("DBD_LOG_FILE") or _DEFAULT_LOG_FILE)

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        abs_path = str(target.resolve())
        if not any(
            isinstance(h, RotatingFileHandler) and h.baseFilename == abs_path
            for h in base_logger.handlers
        ):
            handler = RotatingFileHandler(
                abs_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            handler.setFormatter(EmojiFormatter(use_color=False, use_emoji=False))
            base_logger.addHandler(handler)
    except OSError:
        base_logger.exception("Could not attach log file %s", target)

    return _UnitContextAdapter(base_logger, {"func_ctx": unit_name})


__all__ = ["EmojiFormatter", "get_logger", "setup_logger"]
