"""
Trade close bookkeeping.

Pure functions: given the current state of a position they return what the
position, its history and the P/L ledger should look like after a close (or
after a close is undone). Persisting the outcome is the TradeService's job.

    open --close(full)--> closed
    open --close(partial)--> open
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from cryptoledger.core.config import settings
from cryptoledger.core.exceptions import InvalidAmountError, InvalidStateError
from cryptoledger.models.trades import HistoryType, TradeStatus

ZERO = Decimal("0")


@dataclass(frozen=True)
class TradeSnapshot:
    id: int
    token_symbol: str
    purchase_price: Decimal
    quantity: Decimal
    status: str
    realized_pnl: Decimal
    current_price: Optional[Decimal] = None

    @classmethod
    def from_model(cls, trade) -> "TradeSnapshot":
        return cls(
            id=trade.id,
            token_symbol=trade.token_symbol,
            purchase_price=trade.purchase_price,
            quantity=trade.quantity,
            status=trade.status,
            realized_pnl=trade.realized_pnl or ZERO,
            current_price=trade.current_price,
        )


@dataclass(frozen=True)
class HistoryDraft:
    date: datetime
    amount: Decimal
    price: Decimal
    type: str
    pnl: Decimal


@dataclass(frozen=True)
class LedgerDraft:
    date: datetime
    token_symbol: str
    amount: Decimal
    tax_estimate: Decimal


@dataclass(frozen=True)
class CloseOutcome:
    quantity: Decimal
    status: str
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    close_price: Optional[Decimal]
    close_date: Optional[datetime]
    history: HistoryDraft
    pnl_entry: Optional[LedgerDraft] = None

    @property
    def is_full_close(self) -> bool:
        return self.status == TradeStatus.CLOSED.value


@dataclass(frozen=True)
class HistoryReversal:
    quantity: Decimal
    status: str
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    delete_ledger_entry: bool


def tax_estimate_for(pnl: Decimal, rate: Optional[Decimal] = None) -> Decimal:
    """Tax set aside for a realized gain; losses owe nothing"""
    rate = settings.tax.ledger_tax_rate if rate is None else rate
    return pnl * rate if pnl > ZERO else ZERO


def _unrealized(current_price: Optional[Decimal], purchase_price: Decimal, quantity: Decimal) -> Decimal:
    if current_price is None:
        return ZERO
    return (current_price - purchase_price) * quantity


def reconcile_close(
    trade: TradeSnapshot,
    close_amount: Decimal,
    close_price: Decimal,
    date: datetime,
    tax_rate: Optional[Decimal] = None
) -> CloseOutcome:
    """
    Apply a full or partial close to an open position.

    Args:
        trade: Current state of the position
        close_amount: Quantity being disposed of
        close_price: Price per unit at close
        date: When the close happened
        tax_rate: Ledger tax rate, defaults to the configured rate

    Returns:
        CloseOutcome with the new position fields, the history entry to
        append and, on a full close, the P/L ledger entry to write

    Raises:
        InvalidStateError: the position is not open
        InvalidAmountError: close_amount is not in (0, quantity]
    """
    if trade.status != TradeStatus.OPEN.value:
        raise InvalidStateError(
            f"Trade {trade.id} is {trade.status} and cannot be closed",
            {"tradeId": trade.id, "status": trade.status}
        )
    if close_amount <= ZERO or close_amount > trade.quantity:
        raise InvalidAmountError(
            f"Close amount must be greater than 0 and at most {trade.quantity}",
            {"tradeId": trade.id, "closeAmount": close_amount, "quantity": trade.quantity}
        )

    pnl = (close_price - trade.purchase_price) * close_amount
    full_close = close_amount == trade.quantity

    history = HistoryDraft(
        date=date,
        amount=close_amount,
        price=close_price,
        type=HistoryType.CLOSE.value if full_close else HistoryType.PARTIAL_CLOSE.value,
        pnl=pnl,
    )

    realized = trade.realized_pnl + pnl

    if full_close:
        return CloseOutcome(
            quantity=ZERO,
            status=TradeStatus.CLOSED.value,
            realized_pnl=realized,
            unrealized_pnl=ZERO,
            close_price=close_price,
            close_date=date,
            history=history,
            pnl_entry=LedgerDraft(
                date=date,
                token_symbol=trade.token_symbol,
                amount=realized,
                tax_estimate=tax_estimate_for(realized, tax_rate),
            ),
        )

    remaining = trade.quantity - close_amount
    return CloseOutcome(
        quantity=remaining,
        status=TradeStatus.OPEN.value,
        realized_pnl=realized,
        unrealized_pnl=_unrealized(trade.current_price, trade.purchase_price, remaining),
        close_price=None,
        close_date=None,
        history=history,
    )


def reconcile_history_delete(trade: TradeSnapshot, entry_amount: Decimal, entry_pnl: Decimal, entry_type: str) -> HistoryReversal:
    """
    Undo one close action.

    The position gets the closed quantity back and is reopened, and the
    action's P/L is taken out of realized P/L. Only a full close has a
    ledger entry to remove. Intermediate states of a chain of partial
    closes are not recomputed.
    """
    quantity = trade.quantity + entry_amount
    return HistoryReversal(
        quantity=quantity,
        status=TradeStatus.OPEN.value,
        realized_pnl=trade.realized_pnl - entry_pnl,
        unrealized_pnl=_unrealized(trade.current_price, trade.purchase_price, quantity),
        delete_ledger_entry=entry_type == HistoryType.CLOSE.value,
    )
