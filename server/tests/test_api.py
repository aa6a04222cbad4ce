import pytest
from fastapi import status
from httpx import AsyncClient

from cryptoledger.core.exceptions import InvalidAmountError, ValidationError

API = "/api/v1"


async def post_claim(client: AsyncClient, **body):
    payload = {"date": "2024-01-01", "tokenDetails": [], **body}
    return await client.post(f"{API}/claims", json=payload)


async def open_trade(client: AsyncClient, price=10, quantity=100):
    response = await client.post(f"{API}/trades", json={
        "tokenId": "ethereum",
        "tokenSymbol": "eth",
        "tokenName": "Ethereum",
        "purchasePrice": price,
        "quantity": quantity,
        "purchaseDate": "2024-01-10",
    })
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_liveness(client):
    response = await client.get(f"{API}/health/live")
    assert response.status_code == 200
    assert response.json()["data"] == {"alive": True}


@pytest.mark.asyncio
async def test_same_day_claims_are_merged(client):
    first = await post_claim(client, tokenDetails=[{"symbol": "BTC", "amount": 1}])
    assert first.status_code == 201

    second = await post_claim(client, tokenDetails=[{"symbol": "BTC", "amount": 2}, {"symbol": "ETH", "amount": 5}])
    assert second.status_code == 201
    assert second.json()["data"]["id"] == first.json()["data"]["id"]

    response = await client.get(f"{API}/claims")
    body = response.json()
    assert body["metadata"]["count"] == 1

    claim = body["data"][0]
    assert claim["tokenTotals"] == {"BTC": 3, "ETH": 5}
    assert claim["totalAmount"] == 8
    assert claim["date"] == "2024-01-01T12:00:00+00:00"


@pytest.mark.asyncio
async def test_claim_with_bad_date_is_rejected(client):
    response = await post_claim(client, date="01/02/2024")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_claim_tax_above_total_is_rejected(client):
    response = await post_claim(
        client,
        tokenDetails=[{"symbol": "ETH", "amount": 10}],
        heldForTaxes=True,
        taxAmount=11,
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_AMOUNT"

    listing = await client.get(f"{API}/claims")
    assert listing.json()["data"] == []


@pytest.mark.asyncio
async def test_claim_update_and_delete(client):
    created = await post_claim(
        client,
        tokenDetails=[{"symbol": "ETH", "amount": 200}],
        heldForTaxes=True,
        taxPercentage=25,
    )
    claim = created.json()["data"]
    assert claim["taxAmount"] == 50
    assert claim["netAmount"] == 150

    updated = await client.put(f"{API}/claims/{claim['id']}", json={
        "date": "2024-01-01",
        "tokenDetails": [{"symbol": "ETH", "amount": 100}],
        "heldForTaxes": False,
        "taxPercentage": 25,
    })
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["heldForTaxes"] is False
    assert data["taxAmount"] is None
    assert data["taxPercentage"] is None
    assert data["totalAmount"] == 100

    deleted = await client.delete(f"{API}/claims/{claim['id']}")
    assert deleted.status_code == 200

    missing = await client.get(f"{API}/claims/{claim['id']}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_claims_summary(client):
    await post_claim(client, tokenDetails=[{"symbol": "BTC", "amount": 3}, {"symbol": "ETH", "amount": 5}],
                     heldForTaxes=True, taxAmount=2)
    await post_claim(client, date="2024-02-01", tokenDetails=[{"symbol": "BTC", "amount": 2}])

    summary = (await client.get(f"{API}/claims/summary")).json()["data"]

    assert summary["totalClaimed"] == 10
    assert summary["totalHeldForTaxes"] == 2
    assert summary["netAfterTax"] == 8
    assert summary["tokenTotals"] == {"BTC": 5, "ETH": 5}
    assert summary["claimDays"] == 2


@pytest.mark.asyncio
async def test_trade_lifecycle(client):
    trade = await open_trade(client)
    assert trade["status"] == "open"
    assert trade["tokenSymbol"] == "ETH"
    assert trade["tradeHistory"] == []

    partial = await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 40, "closePrice": 15})
    assert partial.status_code == 200
    assert partial.json()["message"] == "Trade partially closed"
    assert partial.json()["data"]["history"]["pnl"] == 200

    full = await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 60, "closePrice": 20})
    assert full.json()["message"] == "Trade closed"
    assert full.json()["data"]["trade"]["status"] == "closed"

    again = await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 1, "closePrice": 20})
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_STATE"

    listing = (await client.get(f"{API}/trades")).json()["data"]
    assert listing["totalRealizedPnL"] == 800
    assert listing["totalTaxEstimate"] == 240
    assert len(listing["trades"][0]["tradeHistory"]) == 2

    pnl = (await client.get(f"{API}/pnl")).json()["data"]
    assert len(pnl["records"]) == 1
    assert pnl["totalPnL"] == 800
    assert pnl["totalTax"] == 280


@pytest.mark.asyncio
async def test_over_close_is_rejected(client):
    trade = await open_trade(client, quantity=10)

    response = await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 11, "closePrice": 20})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_AMOUNT"

    fetched = (await client.get(f"{API}/trades/{trade['id']}")).json()["data"]
    assert fetched["quantity"] == 10
    assert fetched["tradeHistory"] == []


@pytest.mark.asyncio
async def test_deleting_history_reopens_trade(client):
    trade = await open_trade(client, quantity=10)
    closed = await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 10, "closePrice": 12})
    history_id = closed.json()["data"]["history"]["id"]

    response = await client.delete(f"{API}/trades/history/{history_id}")
    assert response.status_code == 200
    reopened = response.json()["data"]
    assert reopened["status"] == "open"
    assert reopened["quantity"] == 10
    assert reopened["realizedPnl"] == 0

    pnl = (await client.get(f"{API}/pnl")).json()["data"]
    assert pnl["records"] == []

    missing = await client.delete(f"{API}/trades/history/{history_id}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_list_trades_by_status(client):
    trade = await open_trade(client, quantity=10)
    await client.post(f"{API}/trades/{trade['id']}/close", json={"closeAmount": 10, "closePrice": 8})
    await open_trade(client)

    open_only = (await client.get(f"{API}/trades", params={"status": "open"})).json()["data"]
    assert [t["status"] for t in open_only["trades"]] == ["open"]

    bad = await client.get(f"{API}/trades", params={"status": "pending"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_trade_with_non_positive_price_is_rejected(client):
    response = await client.post(f"{API}/trades", json={
        "tokenId": "ethereum",
        "tokenSymbol": "ETH",
        "tokenName": "Ethereum",
        "purchasePrice": 0,
        "quantity": 1,
        "purchaseDate": "2024-01-10",
    })
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_AMOUNT"


@pytest.mark.asyncio
async def test_expenses_and_categories(client):
    created = await client.post(f"{API}/categories", json={"name": "Gas"})
    assert created.status_code == 201

    duplicate = await client.post(f"{API}/categories", json={"name": " gas "})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "ALREADY_EXISTS"

    await client.post(f"{API}/expenses", json={
        "type": "Expense",
        "amount": 30,
        "date": "2024-01-05",
        "details": {"description": "Bridge fees", "category": "Gas"},
    })
    await client.post(f"{API}/expenses", json={
        "type": "Expense",
        "amount": 20,
        "date": "2024-01-06",
        "details": {"description": "Misc"},
    })
    await client.post(f"{API}/expenses", json={"type": "Income", "amount": 100, "date": "2024-01-07"})

    entries = (await client.get(f"{API}/expenses")).json()
    assert entries["metadata"]["count"] == 3
    assert entries["data"][0]["type"] == "Income"

    summary = (await client.get(f"{API}/expenses/summary")).json()["data"]
    assert summary["totalIncome"] == 100
    assert summary["totalExpenses"] == 50
    assert summary["net"] == 50
    assert summary["expensesByCategory"] == {"Gas": 30, "Uncategorized": 20}

    negative = await client.post(f"{API}/expenses", json={"type": "Expense", "amount": -1, "date": "2024-01-05"})
    assert negative.status_code == 422
    assert negative.json()["error"]["code"] == "INVALID_AMOUNT"


@pytest.mark.asyncio
async def test_invalid_token_address(client):
    response = await client.get(f"{API}/tokens/logo/not-an-address")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_token_search_disabled_without_coingecko(client):
    response = await client.get(f"{API}/tokens/search", params={"q": "eth"})
    assert response.status_code == 200
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_unknown_route(client):
    response = await client.get(f"{API}/nope")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_unprocessable_errors_use_422():
    assert status.HTTP_422_UNPROCESSABLE_CONTENT == 422
    assert InvalidAmountError.status_code == 422
    assert ValidationError.status_code == 422
