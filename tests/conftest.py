"""Pytest configuration shared by every test module.

Puts the workspace ``packages/`` directory (and the repo root, for
``tests.helpers``) on ``sys.path`` and scrubs ``LEDGER_CHAT_*`` settings from
the environment so a developer's ``.env`` or shell can never redirect a test
at a real model endpoint.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
# ``packages/`` precedes the repo root so local packages resolve first.
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

_SETTINGS_VARS = (
    "LEDGER_CHAT_PROVIDER",
    "LEDGER_CHAT_BASE_URL",
    "LEDGER_CHAT_API_KEY",
    "DEEPSEEK_API_KEY",
    "LEDGER_CHAT_SIMPLE_MODEL",
    "LEDGER_CHAT_HEAVY_MODEL",
    "LEDGER_CHAT_TIMEOUT_SEC",
    "LEDGER_CHAT_BULK_CONCURRENCY",
    "LEDGER_CHAT_BASE_CURRENCY",
)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every test starts from the built-in defaults."""

    for name in _SETTINGS_VARS:
        monkeypatch.delenv(name, raising=False)
