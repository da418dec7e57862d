"""
Gateway configuration.

Settings come from the `gateway:` section of config/config.yaml, then
environment variables override them:

    COMPANION_BRIDGE_URL  - bridge base URL (http:// or https://)
    COMPANION_API_KEY     - long-lived API key exchanged for access tokens

Without an API key the chat core stays disabled (status FAILED,
NOT_CONFIGURED) and never touches the network.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import yaml

logger = logging.getLogger(__name__)

# Project root (go up from src/companion_gateway/)
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"

ENV_BRIDGE_URL = "COMPANION_BRIDGE_URL"
ENV_API_KEY = "COMPANION_API_KEY"


@dataclass
class GatewayConfig:
    """Configuration for the chat gateway client."""
    # Backend bridge
    bridge_url: str = "http://localhost:38191"
    api_key: Optional[str] = None
    
    # Endpoints
    ws_path: str = "/ws/chat"
    token_path: str = "/auth/token"
    token_param: str = "token"  # query parameter carrying the access token
    
    # Behaviour
    history_limit: int = 50
    reconnect_delay: float = 2.0  # seconds, fixed (no backoff)
    
    def __post_init__(self):
        self.bridge_url = self.bridge_url.rstrip("/")
        if not self.api_key:
            self.api_key = None
    
    @property
    def is_configured(self) -> bool:
        return self.api_key is not None
    
    @property
    def ws_url(self) -> str:
        """WebSocket URL derived from the bridge URL (http -> ws, https -> wss)."""
        parts = urlsplit(self.bridge_url)
        scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
        path = parts.path.rstrip("/") + self.ws_path
        return urlunsplit((scheme, parts.netloc, path, "", ""))


def load_config(path: Optional[Path] = None) -> GatewayConfig:
    """
    Load gateway configuration.
    
    Args:
        path: YAML file to read (defaults to config/config.yaml).
              A missing file means built-in defaults.
    
    Returns:
        GatewayConfig with environment overrides applied
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data = {}
    
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = (yaml.safe_load(f) or {}).get("gateway", {}) or {}
        logger.debug(f"Loaded gateway config from {config_path}")
    elif path:
        logger.warning(f"Config file not found: {config_path}, using defaults")
    
    known = {f.name for f in fields(GatewayConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown gateway settings: {sorted(unknown)}")
    values = {k: v for k, v in data.items() if k in known}
    
    if os.environ.get(ENV_BRIDGE_URL):
        values["bridge_url"] = os.environ[ENV_BRIDGE_URL]
    if os.environ.get(ENV_API_KEY):
        values["api_key"] = os.environ[ENV_API_KEY]
    
    return GatewayConfig(**values)
