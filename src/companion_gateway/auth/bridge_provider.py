"""
Token provider using the bridge HTTP auth endpoint.

POST {bridge_url}{token_path} with {"apiKey": ...}
    2xx -> {"accessToken": str, "expiresIn": seconds}
    else -> {"message": str}
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from ..errors import AuthError, ErrorKind
from ..protocol import TokenErrorResponse, TokenResponse
from .base import AuthToken, BaseTokenProvider

logger = logging.getLogger(__name__)


class BridgeTokenProvider(BaseTokenProvider):
    """
    Client for the bridge auth endpoint.
    
    We use httpx.AsyncClient (kept open to reuse connections), created
    lazily on the first fetch. No per-request timeout is imposed beyond
    httpx's default.
    
    Attributes:
        base_url: Bridge base URL
        api_key: Long-lived API key (None disables the provider)
        token_path: Path of the token exchange endpoint
    """
    
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        token_path: str = "/auth/token",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or None
        self.token_path = token_path
        self._client = client
        self._owns_client = client is None
    
    @classmethod
    def from_config(cls, config, client: Optional[httpx.AsyncClient] = None) -> "BridgeTokenProvider":
        """Create a provider from a GatewayConfig."""
        return cls(config.bridge_url, config.api_key, token_path=config.token_path, client=client)
    
    async def fetch_token(self) -> AuthToken:
        """
        Exchange the API key for an access token.
        
        Returns:
            AuthToken with an explicit expiry
        """
        if not self.api_key:
            raise AuthError(ErrorKind.NOT_CONFIGURED, "no API key configured")
        
        if self._client is None:
            self._client = httpx.AsyncClient()

        try:
            response = await self._client.post(
                f"{self.base_url}{self.token_path}",
                json={"apiKey": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token request to {self.base_url} failed: {e}")
            raise AuthError(ErrorKind.REQUEST_FAILED, str(e)) from e
        
        if not response.is_success:
            detail = self._error_message(response)
            logger.warning(f"Token request rejected ({response.status_code}): {detail}")
            raise AuthError(ErrorKind.REQUEST_FAILED, f"HTTP {response.status_code}: {detail}")
        
        try:
            payload = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthError(ErrorKind.REQUEST_FAILED, "malformed token response") from e
        
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=payload.expires_in)
        logger.debug(f"Obtained access token valid for {payload.expires_in:.0f}s")
        return AuthToken(value=payload.access_token, expires_at=expires_at)
    
    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
    
    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return TokenErrorResponse.model_validate(response.json()).message
        except (ValueError, ValidationError):
            return response.reason_phrase or "request failed"
