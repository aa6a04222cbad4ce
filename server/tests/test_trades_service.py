from decimal import Decimal

import pytest

from cryptoledger.core.cache import TokenPriceCache
from cryptoledger.core.exceptions import InvalidAmountError, InvalidStateError, NotFoundError
from cryptoledger.models.trades import TradeStatus
from cryptoledger.services.pnl import PnlLedgerService
from cryptoledger.services.trades import TradeService

D = Decimal


@pytest.fixture
def service(db_session):
    return TradeService(db_session)


async def open_trade(service, purchase_price="5", quantity="10", token_id="ethereum", symbol="eth"):
    return await service.create_trade(
        token_id=token_id,
        token_symbol=symbol,
        token_name="Ethereum",
        purchase_price=D(purchase_price),
        quantity=D(quantity),
        purchase_date="2024-01-10",
    )


@pytest.mark.asyncio
async def test_create_trade_without_enrichment(service):
    trade = await open_trade(service)

    assert trade.id is not None
    assert trade.token_symbol == "ETH"
    assert trade.status == TradeStatus.OPEN.value
    assert trade.current_price == D("5")
    assert trade.realized_pnl == D("0")
    assert trade.token_image is None


@pytest.mark.asyncio
@pytest.mark.parametrize("price,quantity", [("0", "1"), ("1", "0"), ("-1", "1")])
async def test_create_trade_requires_positive_values(service, price, quantity):
    with pytest.raises(InvalidAmountError):
        await open_trade(service, purchase_price=price, quantity=quantity)


@pytest.mark.asyncio
async def test_partial_then_full_close(db_session, service):
    trade = await open_trade(service)

    trade, history = await service.close_trade(trade.id, D("4"), D("7"), "2024-02-01")
    assert history.type == "partial_close"
    assert history.pnl == D("8")
    assert trade.quantity == D("6")
    assert trade.status == "open"
    assert trade.close_price is None

    trade, history = await service.close_trade(trade.id, D("6"), D("8"), "2024-03-01")
    assert history.type == "close"
    assert history.pnl == D("18")
    assert trade.status == "closed"
    assert trade.quantity == D("0")
    assert trade.realized_pnl == D("26")
    assert trade.close_price == D("8")
    assert len(trade.history) == 2

    ledger = await PnlLedgerService(db_session).list_entries()
    assert len(ledger["records"]) == 1
    assert ledger["totalPnL"] == D("26")
    assert ledger["totalTax"] == D("26") * D("0.35")


@pytest.mark.asyncio
async def test_ledger_entry_carries_gains_from_earlier_partial_closes(db_session, session_maker, service):
    trade = await open_trade(service)
    await service.close_trade(trade.id, D("4"), D("7"), "2024-02-01")
    await service.close_trade(trade.id, D("6"), D("9"), "2024-03-01")
    await db_session.commit()

    async with session_maker() as session:
        stored = await TradeService(session).get_trade(trade.id)
        ledger = await PnlLedgerService(session).list_entries()

    assert stored.realized_pnl == D("32")
    assert ledger["totalPnL"] == stored.realized_pnl
    assert ledger["totalTax"] == D("32") * D("0.35")


@pytest.mark.asyncio
async def test_fractional_quantities_read_back_exactly(db_session, session_maker, service):
    trade = await open_trade(service, purchase_price="0.000000123456789012", quantity="1000000.000000000000000001")
    await db_session.commit()

    async with session_maker() as session:
        stored = await TradeService(session).get_trade(trade.id)

    assert stored.purchase_price == D("0.000000123456789012")
    assert stored.quantity == D("1000000.000000000000000001")


@pytest.mark.asyncio
async def test_closing_a_closed_trade_changes_nothing(db_session, service):
    trade = await open_trade(service)
    await service.close_trade(trade.id, D("10"), D("6"))

    with pytest.raises(InvalidStateError):
        await service.close_trade(trade.id, D("1"), D("6"))

    trade = await service.get_trade(trade.id)
    assert len(trade.history) == 1
    assert len((await PnlLedgerService(db_session).list_entries())["records"]) == 1


@pytest.mark.asyncio
async def test_over_close_leaves_trade_untouched(service):
    trade = await open_trade(service)

    with pytest.raises(InvalidAmountError):
        await service.close_trade(trade.id, D("11"), D("6"))

    trade = await service.get_trade(trade.id)
    assert trade.quantity == D("10")
    assert trade.history == []


@pytest.mark.asyncio
async def test_close_missing_trade(service):
    with pytest.raises(NotFoundError):
        await service.close_trade(999, D("1"), D("1"))


@pytest.mark.asyncio
async def test_undo_full_close(db_session, service):
    trade = await open_trade(service)
    trade, history = await service.close_trade(trade.id, D("10"), D("8"), "2024-03-01")

    trade = await service.delete_history_entry(history.id)

    assert trade.status == "open"
    assert trade.quantity == D("10")
    assert trade.realized_pnl == D("0")
    assert trade.close_price is None
    assert trade.close_date is None
    assert trade.history == []
    assert (await PnlLedgerService(db_session).list_entries())["records"] == []


@pytest.mark.asyncio
async def test_undo_partial_close_keeps_other_history(service):
    trade = await open_trade(service)
    _, first = await service.close_trade(trade.id, D("4"), D("7"), "2024-02-01")
    _, second = await service.close_trade(trade.id, D("2"), D("9"), "2024-02-15")

    trade = await service.delete_history_entry(first.id)

    assert trade.quantity == D("8")
    assert trade.realized_pnl == D("8")
    assert [entry.id for entry in trade.history] == [second.id]


@pytest.mark.asyncio
async def test_undo_missing_history_entry(service):
    with pytest.raises(NotFoundError):
        await service.delete_history_entry(12345)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "close_price,total_pnl,tax_estimate",
    [("20", D("1000"), D("300")), ("8", D("-200"), D("0"))],
)
async def test_list_trades_tax_estimate(service, close_price, total_pnl, tax_estimate):
    trade = await open_trade(service, purchase_price="10", quantity="100")
    await service.close_trade(trade.id, D("100"), D(close_price))

    listing = await service.list_trades()

    assert listing["totalRealizedPnL"] == total_pnl
    assert listing["totalTaxEstimate"] == tax_estimate


@pytest.mark.asyncio
async def test_list_trades_filters_by_status(service):
    closed = await open_trade(service)
    await service.close_trade(closed.id, D("10"), D("6"))
    still_open = await open_trade(service, token_id="bitcoin", symbol="btc")

    listing = await service.list_trades(TradeStatus.OPEN)
    assert [t["id"] for t in listing["trades"]] == [still_open.id]

    listing = await service.list_trades(TradeStatus.CLOSED)
    assert [t["id"] for t in listing["trades"]] == [closed.id]
    assert len(listing["trades"][0]["tradeHistory"]) == 1


@pytest.mark.asyncio
async def test_list_trades_prices_open_trades_from_cache(db_session):
    cache = TokenPriceCache(ttl=60)
    cache.set("ethereum", D("9"))
    service = TradeService(db_session, price_cache=cache)
    trade = await open_trade(service)

    listing = await service.list_trades()
    priced = listing["trades"][0]

    assert priced["currentPrice"] == D("9")
    assert priced["unrealizedPnl"] == D("40")
    # listing does not write the live price back
    assert trade.current_price == D("5")


@pytest.mark.asyncio
async def test_list_trades_falls_back_to_purchase_price(service):
    await open_trade(service)

    priced = (await service.list_trades())["trades"][0]

    assert priced["currentPrice"] == D("5")
    assert priced["unrealizedPnl"] == D("0")


@pytest.mark.asyncio
async def test_custom_token_uses_manual_price(db_session):
    cache = TokenPriceCache(ttl=60)
    cache.set("ethereum", D("9"))
    service = TradeService(db_session, price_cache=cache)
    trade = await open_trade(service)

    trade = await service.update_token(
        trade.id,
        token_id="my-token",
        token_symbol="mine",
        token_name="My Token",
        is_custom_token=True,
        current_price=D("6"),
    )
    assert trade.unrealized_pnl == D("10")
    assert cache.get("ethereum") is None

    priced = (await service.list_trades())["trades"][0]
    assert priced["tokenSymbol"] == "MINE"
    assert priced["currentPrice"] == D("6")
    assert priced["unrealizedPnl"] == D("10")


@pytest.mark.asyncio
async def test_update_trade(service):
    trade = await open_trade(service)
    trade = await service.update_trade(trade.id, purchase_price=D("4"), quantity=D("5"))
    assert trade.purchase_price == D("4")
    assert trade.quantity == D("5")
    assert trade.unrealized_pnl == D("5")


@pytest.mark.asyncio
async def test_closed_trade_cannot_be_edited(service):
    trade = await open_trade(service)
    await service.close_trade(trade.id, D("10"), D("6"))

    with pytest.raises(InvalidStateError):
        await service.update_trade(trade.id, quantity=D("3"))


@pytest.mark.asyncio
async def test_delete_trade_removes_history_and_ledger(db_session, service):
    trade = await open_trade(service)
    await service.close_trade(trade.id, D("10"), D("6"))

    await service.delete_trade(trade.id)

    assert (await service.list_trades())["trades"] == []
    assert (await PnlLedgerService(db_session).list_entries())["records"] == []
    with pytest.raises(NotFoundError):
        await service.get_trade(trade.id)
