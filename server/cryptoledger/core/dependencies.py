"""
Common dependencies for FastAPI endpoints
"""
from typing import AsyncGenerator, Optional
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.cache import TokenPriceCache, cache_manager
from cryptoledger.core.config import settings
from cryptoledger.core.database import get_db as _get_db
from cryptoledger.services.claims import ClaimAggregationService
from cryptoledger.services.categories import CategoryService
from cryptoledger.services.expenses import ExpenseService
from cryptoledger.services.external import CoinGeckoService, TokenLogoService
from cryptoledger.services.pnl import PnlLedgerService
from cryptoledger.services.trades import TradeService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that can be used in endpoints.
    This is a wrapper around the core get_db that provides better error messages.
    """
    try:
        async for session in _get_db():
            yield session
    except RuntimeError as e:
        if "Database is not" in str(e):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="The ledger database is not available."
            )
        raise


class ExternalServices:
    """Process-wide third-party clients and the price cache, created on first use"""

    def __init__(self):
        self._coingecko: Optional[CoinGeckoService] = None
        self._token_logo: Optional[TokenLogoService] = None
        self._price_cache: Optional[TokenPriceCache] = None

    @property
    def coingecko(self) -> CoinGeckoService:
        if self._coingecko is None:
            self._coingecko = CoinGeckoService()
        return self._coingecko

    @property
    def token_logo(self) -> TokenLogoService:
        if self._token_logo is None:
            self._token_logo = TokenLogoService()
        return self._token_logo

    @property
    def price_cache(self) -> TokenPriceCache:
        if self._price_cache is None:
            backend = cache_manager.cache if settings.enable_caching else None
            self._price_cache = TokenPriceCache(backend=backend)
        return self._price_cache

    async def close(self):
        for service in (self._coingecko, self._token_logo):
            if service is not None:
                await service.close()
        self._coingecko = None
        self._token_logo = None


external_services = ExternalServices()


def get_coingecko_service() -> Optional[CoinGeckoService]:
    """CoinGecko client, or None when enrichment is switched off"""
    if not settings.enable_price_enrichment:
        return None
    return external_services.coingecko


def get_token_logo_service() -> TokenLogoService:
    if not settings.features.get("enable_token_logos", True):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Token logos are disabled."
        )
    return external_services.token_logo


def get_price_cache() -> TokenPriceCache:
    return external_services.price_cache


def get_claim_service(db: AsyncSession = Depends(get_db)) -> ClaimAggregationService:
    return ClaimAggregationService(db)


def get_trade_service(
    db: AsyncSession = Depends(get_db),
    coingecko: Optional[CoinGeckoService] = Depends(get_coingecko_service),
    price_cache: TokenPriceCache = Depends(get_price_cache)
) -> TradeService:
    return TradeService(db, coingecko=coingecko, price_cache=price_cache)


def get_pnl_service(db: AsyncSession = Depends(get_db)) -> PnlLedgerService:
    return PnlLedgerService(db)


def get_expense_service(db: AsyncSession = Depends(get_db)) -> ExpenseService:
    return ExpenseService(db)


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)
