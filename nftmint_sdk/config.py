"""
Network and pipeline configuration.
"""
import importlib.resources
import json
import os
import urllib.parse
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

DEFAULT_NETWORK = "ethereum-sepolia"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io"

SETTINGS_ENV_VARS = {
    "network": "NFTMINT_NETWORK",
    "rpc_url": "NFTMINT_RPC_URL",
    "pinner_url": "NFTMINT_PINNER_URL",
    "pinner_token": "NFTMINT_PINNER_TOKEN",
    "ipfs_gateway": "NFTMINT_IPFS_GATEWAY",
    "secret": "NFTMINT_SECRET",
    "cache_path": "NFTMINT_CACHE_PATH",
    "max_attempts": "NFTMINT_MAX_ATTEMPTS",
    "backoff_factor": "NFTMINT_BACKOFF_FACTOR",
    "confirm_timeout": "NFTMINT_CONFIRM_TIMEOUT",
    "poll_interval": "NFTMINT_POLL_INTERVAL",
    "max_concurrency": "NFTMINT_MAX_CONCURRENCY",
    "request_timeout": "NFTMINT_REQUEST_TIMEOUT",
}


def validate_service_url(name: str, url: str) -> str:
    """
    Require https:// unless the host is localhost/127.0.0.1.

    Returns:
        The URL without a trailing slash

    Raises:
        ValueError: If the URL is insecure or malformed
    """
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname or ''
    is_local = host in ('localhost', '127.0.0.1')
    if not parsed.netloc:
        raise ValueError(f"{name} is not a valid URL: {url!r}")
    if parsed.scheme != 'https' and not (is_local and parsed.scheme == 'http'):
        raise ValueError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
    return url.rstrip('/')


class NetworkConfig:
    """Lookup of per-network settings shipped in networks.json"""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        if cls._networks_cache is None:
            resource = importlib.resources.files("nftmint_sdk").joinpath("networks.json")
            with resource.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        """
        Raises:
            ValueError: If the network is unknown (message lists the known ones)
        """
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network {network!r}. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        """Explicit override, then <NETWORK>_RPC_URL, then networks.json"""
        if override:
            return override
        env_var = network.upper().replace("-", "_") + "_RPC_URL"
        env_value = os.environ.get(env_var)
        if env_value:
            return env_value
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_mint_factory_address(cls, network: str) -> str:
        return cls.get_network(network)["mintFactory"]

    @classmethod
    def get_explorer_url(cls, network: str) -> str:
        return cls.get_network(network).get("explorer", "").rstrip("/")


class PipelineSettings(BaseModel):
    """Runtime settings, usually read from NFTMINT_* environment variables"""

    network: str = DEFAULT_NETWORK
    rpc_url: Optional[str] = None
    pinner_url: Optional[str] = None
    pinner_token: Optional[str] = Field(default=None, repr=False)
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    secret: Optional[str] = Field(default=None, repr=False)
    cache_path: Optional[str] = None
    max_attempts: int = Field(default=3, ge=1)
    backoff_factor: float = Field(default=0.5, ge=0)
    confirm_timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)
    max_concurrency: int = Field(default=4, ge=1)
    request_timeout: int = Field(default=30, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "PipelineSettings":
        """
        Build settings from the environment; non-None keyword overrides win.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name, env_var in SETTINGS_ENV_VARS.items():
            if env_var in environ and environ[env_var] != "":
                values[field_name] = environ[env_var]
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ValueError(f"Invalid pipeline settings: {e}")
