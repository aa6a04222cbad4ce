"""
Database models for the Crypto Ledger application
"""
from cryptoledger.models.claims import ClaimRecord
from cryptoledger.models.trades import (
    TradePosition,
    TradeHistoryEntry,
    PnlLedgerEntry,
    TradeStatus,
    HistoryType,
)
from cryptoledger.models.entries import LedgerEntry, Category, EntryType

__all__ = [
    "ClaimRecord",
    "TradePosition",
    "TradeHistoryEntry",
    "PnlLedgerEntry",
    "TradeStatus",
    "HistoryType",
    "LedgerEntry",
    "Category",
    "EntryType",
]
