from typing import Dict, Any, Optional
import re

import httpx

from .base import ExternalAPIService, ExternalAPIError
from cryptoledger.core.config import settings, RetryPolicy

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


class TokenLogoService(ExternalAPIService):
    """Fetches token logo PNGs from the asset CDN by contract address"""

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        config = settings.get_external_api_config("token_logo")

        super().__init__(
            service_name="token_logo",
            base_url=config["base_url"],
            timeout=config.get("timeout", 10),
            retry_policy=retry_policy or config.get("retry_policy"),
            transport=transport
        )

    def _get_cache_key(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        return f"{self.service_name}:{endpoint.strip('/')}"

    @staticmethod
    def is_valid_address(address: str) -> bool:
        return bool(ADDRESS_PATTERN.match(address))

    async def fetch_logo(self, address: str) -> Optional[bytes]:
        """
        Get the logo image for a token contract

        Returns:
            PNG bytes, or None when the CDN has no logo for this address

        Raises:
            ExternalAPIError: The CDN could not be reached
        """
        try:
            return await self.get_bytes(f"/{address}/logo.png")
        except ExternalAPIError as e:
            if e.status_code == 404:
                return None
            raise
