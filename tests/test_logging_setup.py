from __future__ import annotations

import io
import logging

import pytest

from ledger_chat.logging_setup import PACKAGE_LOGGER, configure_logging, get_logger, resolve_level


@pytest.fixture(autouse=True)
def _fresh_package_logger(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("LEDGER_CHAT_LOG_LEVEL", raising=False)
    logger = logging.getLogger(PACKAGE_LOGGER)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_records_render_as_one_key_value_line():
    buf = io.StringIO()
    configure_logging("info", stream=buf)

    get_logger("ledger_chat.handlers.split_bill").info(
        "split:awaiting_share total=%.2f currency=%s", 60, "USD"
    )
    get_logger("ledger_chat.handlers.extract").info("extract:reply text=%s", "line one\nline two")

    first, second = buf.getvalue().splitlines()
    assert first.startswith("ts=")
    assert first.endswith(
        "level=INFO logger=handlers.split_bill split:awaiting_share total=60.00 currency=USD"
    )
    assert second.endswith("extract:reply text=line one\\nline two")


def test_second_configuration_keeps_the_first_handler(_fresh_package_logger):
    first = configure_logging("debug", stream=io.StringIO())
    again = configure_logging("error", stream=io.StringIO())

    assert again is first
    assert _fresh_package_logger.handlers == [first]
    assert _fresh_package_logger.level == logging.DEBUG
    assert _fresh_package_logger.propagate is False


def test_level_comes_from_the_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEDGER_CHAT_LOG_LEVEL", "warning")
    buf = io.StringIO()
    configure_logging(stream=buf)

    get_logger("ledger_chat.llm").info("llm:chat tier=simple")
    get_logger("ledger_chat.llm").warning("llm:json_retry attempt=2")

    assert buf.getvalue().count("\n") == 1
    assert "level=WARNING logger=llm llm:json_retry attempt=2" in buf.getvalue()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, logging.INFO), ("Debug", logging.DEBUG), ("15", 15), ("loud", logging.INFO), (30, 30)],
)
def test_resolve_level(raw, expected):
    assert resolve_level(raw) == expected


def test_unconfigured_library_logging_is_silent(_fresh_package_logger):
    get_logger("ledger_chat.sink")

    (handler,) = _fresh_package_logger.handlers
    assert isinstance(handler, logging.NullHandler)

    installed = configure_logging(stream=io.StringIO())
    assert _fresh_package_logger.handlers == [installed]
