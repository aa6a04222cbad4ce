from decimal import Decimal

import httpx
import pytest
import respx
from httpx import Response

from cryptoledger.core.config import RetryPolicy
from cryptoledger.services.external import CoinGeckoService, ExternalAPIError, TokenLogoService
from cryptoledger.services.trades import TradeService

COINGECKO_HOST = "api.coingecko.com"
COIN_PATH = "/api/v3/coins/ethereum"
PRICE_PATH = "/api/v3/simple/price"

COIN_PAYLOAD = {
    "id": "ethereum",
    "symbol": "eth",
    "name": "Ethereum",
    "image": {"thumb": "https://img/thumb.png", "large": "https://img/large.png"},
    "market_cap_rank": 2,
}


def test_retry_policy_delays():
    fixed = RetryPolicy(backoff_seconds=2)
    assert [fixed.delay_for(n) for n in range(3)] == [2, 2, 2]

    exponential = RetryPolicy(backoff_seconds=1, exponential=True, max_backoff_seconds=3)
    assert [exponential.delay_for(n) for n in range(4)] == [1, 2, 3, 3]


@pytest.mark.asyncio
@respx.mock
async def test_rate_limited_request_is_retried(no_wait_retry):
    route = respx.get(host=COINGECKO_HOST, path=COIN_PATH)
    route.side_effect = [
        Response(429, json={"error": "Too many requests"}),
        Response(200, json=COIN_PAYLOAD),
    ]
    service = CoinGeckoService(retry_policy=no_wait_retry)

    coin = await service.get_coin("ethereum")

    assert route.call_count == 2
    assert coin == {
        "id": "ethereum",
        "symbol": "ETH",
        "name": "Ethereum",
        "image": "https://img/large.png",
        "market_cap_rank": 2,
    }
    assert service.get_metrics()["retries"] == 1
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_retries_stop_at_max_attempts(no_wait_retry):
    route = respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(
        return_value=Response(503, json={"error": "down"})
    )
    service = CoinGeckoService(retry_policy=no_wait_retry)

    with pytest.raises(ExternalAPIError) as exc_info:
        await service.get_coin("ethereum")

    assert route.call_count == 3
    assert exc_info.value.status_code == 503
    assert exc_info.value.service == "coingecko"
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_client_errors_are_not_retried(no_wait_retry):
    route = respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(
        return_value=Response(404, json={"error": "coin not found"})
    )
    service = CoinGeckoService(retry_policy=no_wait_retry)

    with pytest.raises(ExternalAPIError) as exc_info:
        await service.get_coin("ethereum")

    assert route.call_count == 1
    assert exc_info.value.status_code == 404
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_network_errors_are_retried(no_wait_retry):
    route = respx.get(host=COINGECKO_HOST, path=COIN_PATH)
    route.side_effect = [httpx.ConnectError("boom"), Response(200, json=COIN_PAYLOAD)]
    service = CoinGeckoService(retry_policy=no_wait_retry)

    coin = await service.get_coin("ethereum")

    assert coin["id"] == "ethereum"
    assert route.call_count == 2
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_simple_prices_are_decimals(no_wait_retry):
    respx.get(host=COINGECKO_HOST, path=PRICE_PATH).mock(
        return_value=Response(200, json={"ethereum": {"usd": 3012.55}, "bitcoin": {"usd": 64000}})
    )
    service = CoinGeckoService(retry_policy=no_wait_retry)

    prices = await service.get_simple_prices(["ethereum", "bitcoin", "unknown-coin"])

    assert prices == {"ethereum": Decimal("3012.55"), "bitcoin": Decimal("64000")}
    await service.close()


@pytest.mark.asyncio
async def test_simple_prices_without_ids_makes_no_call():
    service = CoinGeckoService()
    assert await service.get_simple_prices([]) == {}
    assert service.get_metrics()["total_requests"] == 0
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_search_coins(no_wait_retry):
    respx.get(host=COINGECKO_HOST, path="/api/v3/search").mock(
        return_value=Response(200, json={"coins": [
            {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "large": "https://img/eth.png", "market_cap_rank": 2},
            {"id": "ethereum-classic", "symbol": "etc", "name": "Ethereum Classic", "thumb": "https://img/etc.png"},
        ]})
    )
    service = CoinGeckoService(retry_policy=no_wait_retry)

    results = await service.search_coins("eth", limit=1)

    assert results == [{
        "id": "ethereum",
        "symbol": "ETH",
        "name": "Ethereum",
        "image": "https://img/eth.png",
        "market_cap_rank": 2,
    }]
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_trade_creation_is_enriched(db_session, no_wait_retry):
    respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(return_value=Response(200, json=COIN_PAYLOAD))
    coingecko = CoinGeckoService(retry_policy=no_wait_retry)
    service = TradeService(db_session, coingecko=coingecko)

    trade = await service.create_trade("ethereum", "ETH", "Ethereum", Decimal("5"), Decimal("1"), "2024-01-01")

    assert trade.token_image == "https://img/large.png"
    assert trade.market_cap_rank == 2
    await coingecko.close()


@pytest.mark.asyncio
@respx.mock
async def test_trade_creation_survives_upstream_outage(db_session, no_wait_retry):
    route = respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(return_value=Response(500))
    coingecko = CoinGeckoService(retry_policy=no_wait_retry)
    service = TradeService(db_session, coingecko=coingecko)

    trade = await service.create_trade("ethereum", "ETH", "Ethereum", Decimal("5"), Decimal("1"), "2024-01-01")

    assert route.call_count == 3
    assert trade.id is not None
    assert trade.token_image is None
    assert trade.market_cap_rank is None
    await coingecko.close()


@pytest.mark.asyncio
@respx.mock
async def test_listing_survives_price_outage(db_session, no_wait_retry):
    respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(return_value=Response(200, json=COIN_PAYLOAD))
    respx.get(host=COINGECKO_HOST, path=PRICE_PATH).mock(return_value=Response(503))
    coingecko = CoinGeckoService(retry_policy=no_wait_retry)
    service = TradeService(db_session, coingecko=coingecko)
    await service.create_trade("ethereum", "ETH", "Ethereum", Decimal("5"), Decimal("2"), "2024-01-01")

    priced = (await service.list_trades())["trades"][0]

    assert priced["currentPrice"] == Decimal("5")
    assert priced["unrealizedPnl"] == Decimal("0")
    await coingecko.close()


@pytest.mark.asyncio
@respx.mock
async def test_listing_uses_live_prices(db_session, no_wait_retry):
    respx.get(host=COINGECKO_HOST, path=COIN_PATH).mock(return_value=Response(200, json=COIN_PAYLOAD))
    prices = respx.get(host=COINGECKO_HOST, path=PRICE_PATH).mock(
        return_value=Response(200, json={"ethereum": {"usd": 7}})
    )
    coingecko = CoinGeckoService(retry_policy=no_wait_retry)
    service = TradeService(db_session, coingecko=coingecko)
    await service.create_trade("ethereum", "ETH", "Ethereum", Decimal("5"), Decimal("2"), "2024-01-01")

    priced = (await service.list_trades())["trades"][0]

    assert priced["currentPrice"] == Decimal("7")
    assert priced["unrealizedPnl"] == Decimal("4")
    assert prices.call_count == 1
    await coingecko.close()


ADDRESS = "0x" + "ab" * 20


def test_token_address_validation():
    assert TokenLogoService.is_valid_address(ADDRESS)
    assert not TokenLogoService.is_valid_address("0x123")
    assert not TokenLogoService.is_valid_address("ab" * 21)


@pytest.mark.asyncio
@respx.mock
async def test_fetch_logo(no_wait_retry):
    respx.get(url__regex=rf".*/{ADDRESS}/logo\.png$").mock(
        return_value=Response(200, content=b"\x89PNG", headers={"Content-Type": "image/png"})
    )
    service = TokenLogoService(retry_policy=no_wait_retry)

    assert await service.fetch_logo(ADDRESS) == b"\x89PNG"
    await service.close()


@pytest.mark.asyncio
@respx.mock
async def test_missing_logo_is_none(no_wait_retry):
    route = respx.get(url__regex=rf".*/{ADDRESS}/logo\.png$").mock(return_value=Response(404))
    service = TokenLogoService(retry_policy=no_wait_retry)

    assert await service.fetch_logo(ADDRESS) is None
    assert route.call_count == 1
    await service.close()
