"""
Base module for token providers.

A token provider exchanges the long-lived API key for a short-lived
access token. There is no caching: every call is a fresh exchange, so a
reconnect never reuses an expired or rejected token.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class AuthToken:
    """
    Short-lived access token.
    
    Attributes:
        value: Opaque token string
        expires_at: Instant the token stops being valid (UTC)
    """
    value: str = field(repr=False)
    expires_at: datetime
    
    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


class BaseTokenProvider(ABC):
    """Abstract base class for all token providers."""
    
    @abstractmethod
    async def fetch_token(self) -> AuthToken:
        """
        Fetch a fresh access token.
        
        Returns:
            A new AuthToken
            
        Raises:
            AuthError: NOT_CONFIGURED when no API key is set (no I/O is
                attempted), REQUEST_FAILED on any other failure. Never
                retried here; retry policy belongs to the caller.
        """
        pass
    
    async def close(self) -> None:
        """Release any held resources."""
        pass
