"""Logging for ``ledger_chat``: one grep-able ``event key=value`` line per event.

Library modules call ``get_logger("ledger_chat.<module>")`` and log lines such
as ``split:awaiting_share total=60.00 currency=USD``. Only an entrypoint (the
CLI or a host app) calls :func:`configure_logging`, which renders each record
as::

    ts=2024-04-02T09:15:00 level=INFO logger=handlers.split_bill split:awaiting_share total=60.00

The package prefix is dropped from ``logger=`` and embedded newlines (model
replies, pasted statements) are escaped so a record never spans lines.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "ledger_chat"
LEVEL_ENV = "LEDGER_CHAT_LOG_LEVEL"
LOG_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(short_name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class EventFormatter(logging.Formatter):
    """Single-line ``key=value`` records; tracebacks are folded onto the line."""

    def __init__(self, fmt: str | None = None) -> None:
        super().__init__(fmt or LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(PACKAGE_LOGGER + "."):
            name = name[len(PACKAGE_LOGGER) + 1 :]
        record.short_name = name
        return super().format(record).replace("\r", "").replace("\n", "\\n")


def resolve_level(level: int | str | None = None) -> int:
    """``level`` as a number; ``None`` reads ``LEDGER_CHAT_LOG_LEVEL``. Unknown names mean INFO."""

    if level is None:
        level = os.getenv(LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def _event_handler(logger: logging.Logger) -> logging.Handler | None:
    return next((h for h in logger.handlers if getattr(h, "ledger_chat_events", False)), None)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Attach the event handler to the package logger; later calls return it unchanged.

    Output goes to ``stream`` (stderr by default, so the chat REPL keeps
    stdout). The package logger stops propagating to the root logger.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    existing = _event_handler(logger)
    if existing is not None:
        return existing

    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.ledger_chat_events = True
    handler.setLevel(resolved)
    handler.setFormatter(EventFormatter(fmt))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    return handler


def get_logger(name: str) -> logging.Logger:
    # Silent until an entrypoint configures output.
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)
