"""Public interface for the ``ledger_chat`` package.

Symbol re-exports only; conversation logic lives in :mod:`ledger_chat.orchestrator`
and the :mod:`ledger_chat.handlers` chain.
"""

from .bulk import BulkReport, process_bulk
from .config import Settings, load_settings
from .fingerprint import compute_fingerprint
from .llm import LlmClient, LLMApiError, LLMRetryError
from .models import (
    CorrectionClarification,
    DirectionClarification,
    DuplicateConfirmation,
    Handled,
    NotHandled,
    SplitBillShare,
    Transaction,
)
from .orchestrator import Conversation
from .parser import parse
from .sink import TransactionSink
from .state import ConversationState
from .status import ConversationStatus

__all__ = [
    # Entry points
    "Conversation",
    "process_bulk",
    "parse",
    "compute_fingerprint",
    # Collaborators
    "LlmClient",
    "Settings",
    "load_settings",
    "TransactionSink",
    "ConversationState",
    "ConversationStatus",
    # Errors
    "LLMApiError",
    "LLMRetryError",
    # Models / types
    "Transaction",
    "BulkReport",
    "DirectionClarification",
    "SplitBillShare",
    "CorrectionClarification",
    "DuplicateConfirmation",
    "Handled",
    "NotHandled",
]
