"""
Trade positions and close bookkeeping
"""
from .reconciler import reconcile_close, reconcile_history_delete, TradeSnapshot, CloseOutcome, HistoryReversal
from .service import TradeService

__all__ = [
    "TradeService",
    "TradeSnapshot",
    "CloseOutcome",
    "HistoryReversal",
    "reconcile_close",
    "reconcile_history_delete",
]
