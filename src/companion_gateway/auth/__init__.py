# Auth Module - access token providers
from .base import AuthToken, BaseTokenProvider
from .bridge_provider import BridgeTokenProvider

__all__ = [
    "AuthToken",
    "BaseTokenProvider",
    "BridgeTokenProvider",
]
