"""Token metadata endpoints: logos and search."""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse, Response

from cryptoledger.core.dependencies import get_coingecko_service, get_token_logo_service
from cryptoledger.core.exceptions import UpstreamUnavailableError, ValidationError
from cryptoledger.core.logging import get_logger
from cryptoledger.core.responses import create_success_response, not_found_error
from cryptoledger.services.external import CoinGeckoService, ExternalAPIError, TokenLogoService

logger = get_logger(__name__)

router = APIRouter()

LOGO_CACHE_SECONDS = 86400


@router.get("/logo/{address}")
async def get_token_logo(
    address: str = Path(..., description="Token contract address"),
    service: TokenLogoService = Depends(get_token_logo_service)
) -> Response:
    """PNG logo for a token contract, proxied from the asset CDN."""
    if not service.is_valid_address(address):
        raise ValidationError(f"Invalid token address '{address}'", {"address": address})

    try:
        image = await service.fetch_logo(address)
    except ExternalAPIError as e:
        raise UpstreamUnavailableError(e.service, "Token logo service is unavailable") from e

    if image is None:
        return not_found_error("Token logo", address)

    return Response(
        content=image,
        media_type="image/png",
        headers={"Cache-Control": f"public, max-age={LOGO_CACHE_SECONDS}"}
    )


@router.get("/search")
async def search_tokens(
    query: str = Query(..., min_length=1, alias="q"),
    limit: int = Query(10, ge=1, le=50),
    service: Optional[CoinGeckoService] = Depends(get_coingecko_service)
) -> JSONResponse:
    """Search CoinGecko coins by name or symbol."""
    if service is None:
        return create_success_response(data=[], message="Token search is disabled")

    try:
        coins = await service.search_coins(query, limit=limit)
    except ExternalAPIError as e:
        raise UpstreamUnavailableError(e.service, "Token search is unavailable") from e

    return create_success_response(data=coins, metadata={"count": len(coins)})
