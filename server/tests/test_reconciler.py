from datetime import datetime, timezone
from decimal import Decimal

import pytest

from cryptoledger.core.exceptions import InvalidAmountError, InvalidStateError
from cryptoledger.services.trades.reconciler import (
    TradeSnapshot,
    reconcile_close,
    reconcile_history_delete,
    tax_estimate_for,
)

D = Decimal
CLOSE_DATE = datetime(2024, 3, 1, 15, 30, tzinfo=timezone.utc)


def snapshot(**overrides):
    values = dict(
        id=1,
        token_symbol="ETH",
        purchase_price=D("5"),
        quantity=D("10"),
        status="open",
        realized_pnl=D("0"),
        current_price=None,
    )
    values.update(overrides)
    return TradeSnapshot(**values)


def test_partial_close():
    outcome = reconcile_close(snapshot(), D("4"), D("7"), CLOSE_DATE)

    assert outcome.history.pnl == D("8")
    assert outcome.history.type == "partial_close"
    assert outcome.history.amount == D("4")
    assert outcome.quantity == D("6")
    assert outcome.status == "open"
    assert outcome.realized_pnl == D("8")
    assert outcome.pnl_entry is None
    assert outcome.close_price is None
    assert not outcome.is_full_close


def test_partial_close_reprices_remaining_quantity():
    outcome = reconcile_close(snapshot(current_price=D("6")), D("4"), D("7"), CLOSE_DATE)
    assert outcome.unrealized_pnl == D("6")


def test_full_close_writes_ledger_entry():
    outcome = reconcile_close(snapshot(realized_pnl=D("2")), D("10"), D("8"), CLOSE_DATE)

    assert outcome.is_full_close
    assert outcome.quantity == D("0")
    assert outcome.unrealized_pnl == D("0")
    assert outcome.realized_pnl == D("32")
    assert outcome.close_price == D("8")
    assert outcome.close_date == CLOSE_DATE
    assert outcome.history.type == "close"

    entry = outcome.pnl_entry
    assert entry.amount == D("32")
    assert entry.tax_estimate == D("32") * D("0.35")
    assert entry.token_symbol == "ETH"
    assert entry.date == CLOSE_DATE


def test_full_close_at_a_loss_owes_no_tax():
    outcome = reconcile_close(snapshot(), D("10"), D("3"), CLOSE_DATE)
    assert outcome.pnl_entry.amount == D("-20")
    assert outcome.pnl_entry.tax_estimate == D("0")


def test_custom_tax_rate():
    outcome = reconcile_close(snapshot(), D("10"), D("6"), CLOSE_DATE, tax_rate=D("0.5"))
    assert outcome.pnl_entry.tax_estimate == D("5")


@pytest.mark.parametrize("amount", [D("0"), D("-1"), D("10.5")])
def test_close_amount_out_of_range(amount):
    with pytest.raises(InvalidAmountError):
        reconcile_close(snapshot(), amount, D("7"), CLOSE_DATE)


def test_closed_trade_cannot_be_closed_again():
    with pytest.raises(InvalidStateError):
        reconcile_close(snapshot(status="closed", quantity=D("0")), D("1"), D("7"), CLOSE_DATE)


def test_undo_full_close_reopens_and_drops_ledger_entry():
    closed = snapshot(status="closed", quantity=D("0"), realized_pnl=D("30"))

    reversal = reconcile_history_delete(closed, D("10"), D("30"), "close")

    assert reversal.quantity == D("10")
    assert reversal.status == "open"
    assert reversal.realized_pnl == D("0")
    assert reversal.delete_ledger_entry is True


def test_undo_partial_close_keeps_ledger():
    partly = snapshot(quantity=D("6"), realized_pnl=D("8"), current_price=D("7"))

    reversal = reconcile_history_delete(partly, D("4"), D("8"), "partial_close")

    assert reversal.quantity == D("10")
    assert reversal.realized_pnl == D("0")
    assert reversal.unrealized_pnl == D("20")
    assert reversal.delete_ledger_entry is False


@pytest.mark.parametrize(
    "pnl,expected",
    [(D("100"), D("35")), (D("0"), D("0")), (D("-50"), D("0"))],
)
def test_tax_estimate_for(pnl, expected):
    assert tax_estimate_for(pnl) == expected
