from decimal import Decimal
from typing import Dict, Any, Optional, List, Iterable
import hashlib

import httpx

from .base import ExternalAPIService, ExternalAPIError
from cryptoledger.core.config import settings, RetryPolicy
from cryptoledger.core.logging import get_logger

logger = get_logger(__name__)


class CoinGeckoService(ExternalAPIService):
    """
    CoinGecko API service

    Used for token metadata when a trade is opened, for current prices of
    open trades and for token search.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        config = settings.get_external_api_config("coingecko")
        api_key = config.get("api_key")

        super().__init__(
            service_name="coingecko",
            base_url=config.get("base_url", "https://api.coingecko.com/api/v3"),
            api_key=api_key,
            timeout=config.get("timeout", 10),
            retry_policy=retry_policy or config.get("retry_policy"),
            cache_ttl=settings.cache.ttl_mapping.get("token_metadata", 3600),
            headers={"x-cg-demo-api-key": api_key} if api_key else None,
            transport=transport
        )

    def _get_cache_key(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        key_parts = [self.service_name, endpoint.strip("/").replace("/", ":")]

        if params:
            sorted_params = sorted(params.items())
            params_str = "&".join(f"{k}={v}" for k, v in sorted_params)
            key_parts.append(hashlib.md5(params_str.encode()).hexdigest()[:8])

        return ":".join(key_parts)

    async def get_coin(self, token_id: str) -> Dict[str, Any]:
        """
        Get metadata for a coin

        Args:
            token_id: CoinGecko coin id, e.g. ``bitcoin``

        Returns:
            Dict with ``id``, ``symbol``, ``name``, ``image`` and ``market_cap_rank``
        """
        response = await self.get(
            f"/coins/{token_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false"
            }
        )

        if not isinstance(response, dict) or "id" not in response:
            raise ExternalAPIError(
                message=f"Unexpected coin payload for '{token_id}'",
                service=self.service_name
            )

        image = response.get("image") or {}
        return {
            "id": response["id"],
            "symbol": (response.get("symbol") or "").upper(),
            "name": response.get("name"),
            "image": image.get("large") or image.get("small") or image.get("thumb"),
            "market_cap_rank": response.get("market_cap_rank"),
        }

    async def get_simple_prices(self, token_ids: Iterable[str], vs_currency: str = "usd") -> Dict[str, Decimal]:
        """
        Get current prices for several coins in one call

        Ids CoinGecko does not know are left out of the result.
        """
        ids = sorted({token_id for token_id in token_ids if token_id})
        if not ids:
            return {}

        response = await self.get(
            "/simple/price",
            params={"ids": ",".join(ids), "vs_currencies": vs_currency},
            use_cache=False
        )

        prices: Dict[str, Decimal] = {}
        for token_id in ids:
            value = (response.get(token_id) or {}).get(vs_currency)
            if value is not None:
                prices[token_id] = Decimal(str(value))
        return prices

    async def search_coins(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search coins by name or symbol"""
        response = await self.get("/search", params={"query": query})
        return [
            {
                "id": coin.get("id"),
                "symbol": (coin.get("symbol") or "").upper(),
                "name": coin.get("name"),
                "image": coin.get("large") or coin.get("thumb"),
                "market_cap_rank": coin.get("market_cap_rank"),
            }
            for coin in (response.get("coins") or [])[:limit]
        ]
