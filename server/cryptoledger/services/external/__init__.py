from .base import ExternalAPIService, ExternalAPIError
from .coingecko_service import CoinGeckoService
from .token_logo_service import TokenLogoService

__all__ = ["ExternalAPIService", "ExternalAPIError", "CoinGeckoService", "TokenLogoService"]
