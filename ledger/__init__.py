"""
Diamond Arena backend

This package provides:
- A document store port with in-memory and Firebase Realtime Database backends
- Append-only wallet history (ledger writer)
- Wallet credits via atomic increment, debits via conditional transaction
- Referral redemption and tournament join workflows with an intent journal
- A FastAPI application exposing the mobile client's endpoints
"""

from .errors import (
    ArenaServiceError,
    ErrorCode,
    InsufficientFundsError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from .models import HistoryRecord, HistoryType, TournamentSummary, User, Wallet
from .service import ArenaService, LedgerWriter, WalletMutator
from .store import DocumentStore, InMemoryStore

__all__ = [
    "ArenaService",
    "ArenaServiceError",
    "DocumentStore",
    "ErrorCode",
    "HistoryRecord",
    "HistoryType",
    "InMemoryStore",
    "InsufficientFundsError",
    "LedgerWriter",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "TournamentSummary",
    "User",
    "Wallet",
    "WalletMutator",
]
