"""
Configuration for the GiftZap SDK.

Network defaults ship with the package in ``networks.json``; every value can
be overridden through ``GIFTZAP_*`` environment variables or explicit
arguments.
"""
import json
import logging
import os
import urllib.parse
from importlib import resources
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "mantle-sepolia"

# Read-only mirrors tried after the primary gateway, in order
DEFAULT_FALLBACK_GATEWAYS = [
    "https://gateway.pinata.cloud",
    "https://ipfs.io",
    "https://cloudflare-ipfs.com",
    "https://dweb.link",
]

DEFAULT_PINATA_API_URL = "https://api.pinata.cloud"


def _require_secure_url(name: str, url: str) -> str:
    """Reject plain-http URLs unless they point at the local machine."""
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname or ""
    is_local = host in ("localhost", "127.0.0.1")
    if parsed.scheme != "https" and not is_local:
        raise ValueError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
    return url.rstrip("/")


class NetworkConfig:
    """Lookup helpers over the bundled network table."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """Load (once) and return every known network."""
        if cls._networks_cache is None:
            data = resources.files("giftzap_sdk").joinpath("networks.json").read_text(encoding="utf-8")
            cls._networks_cache = json.loads(data)
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        networks = cls.load_networks()
        if name not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network {name!r}. Available networks: {available}")
        return networks[name]

    @classmethod
    def get_rpc_url(cls, name: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC URL for a network.

        Precedence: ``override``, then ``<NAME>_RPC_URL`` from the
        environment (dashes become underscores), then the bundled value.
        """
        if override:
            return override
        env_key = f"{name.upper().replace('-', '_')}_RPC_URL"
        env_value = os.environ.get(env_key)
        if env_value:
            return env_value
        return cls.get_network(name)["rpc"]

    @classmethod
    def get_chain_id(cls, name: str) -> int:
        return int(cls.get_network(name)["chainId"])

    @classmethod
    def get_gift_manager_address(cls, name: str) -> Optional[str]:
        return cls.get_network(name).get("giftManager")

    @classmethod
    def get_token_address(cls, name: str) -> Optional[str]:
        return cls.get_network(name).get("token")

    @classmethod
    def get_ipfs_gateway(cls, name: str) -> Optional[str]:
        return cls.get_network(name).get("ipfsGateway")


class GiftZapConfig(BaseModel):
    """Everything needed to build a :class:`giftzap_sdk.GiftZapClient`."""

    network: str = DEFAULT_NETWORK
    rpc_url: str
    chain_id: Optional[int] = None
    gift_manager_address: Optional[str] = None
    token_address: Optional[str] = None
    ipfs_gateway: str
    fallback_gateways: List[str] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_GATEWAYS))
    pinata_api_url: str = DEFAULT_PINATA_API_URL
    pinata_jwt: Optional[str] = Field(None, repr=False)
    private_key: Optional[str] = Field(None, repr=False)
    scan_batch_size: int = Field(10, ge=1)
    read_timeout: Optional[float] = Field(30.0, gt=0)
    http_timeout: float = Field(30.0, gt=0)
    app_base_url: Optional[str] = None

    @field_validator("rpc_url")
    @classmethod
    def _check_rpc_url(cls, value: str) -> str:
        return _require_secure_url("rpc_url", value)

    @field_validator("ipfs_gateway", "pinata_api_url")
    @classmethod
    def _check_gateway_url(cls, value: str) -> str:
        return _require_secure_url("gateway url", value)

    @field_validator("fallback_gateways")
    @classmethod
    def _check_fallbacks(cls, value: List[str]) -> List[str]:
        return [_require_secure_url("fallback gateway", url) for url in value]

    @classmethod
    def from_env(cls, network: Optional[str] = None, **overrides: Any) -> "GiftZapConfig":
        """
        Build a configuration from ``GIFTZAP_*`` environment variables.

        Args:
            network: Network name; defaults to ``GIFTZAP_NETWORK`` or mantle-sepolia
            **overrides: Explicit values that win over the environment

        Returns:
            Validated configuration
        """
        env = os.environ
        name = network or env.get("GIFTZAP_NETWORK", DEFAULT_NETWORK)
        net = NetworkConfig.get_network(name)

        values: Dict[str, Any] = {
            "network": name,
            "rpc_url": NetworkConfig.get_rpc_url(name, env.get("GIFTZAP_RPC_URL")),
            "chain_id": net.get("chainId"),
            "gift_manager_address": env.get("GIFTZAP_GIFT_MANAGER_ADDRESS") or net.get("giftManager"),
            "token_address": env.get("GIFTZAP_TOKEN_ADDRESS") or net.get("token"),
            "ipfs_gateway": env.get("GIFTZAP_IPFS_GATEWAY") or net.get("ipfsGateway") or DEFAULT_FALLBACK_GATEWAYS[0],
            "pinata_jwt": env.get("GIFTZAP_PINATA_JWT"),
            "private_key": env.get("GIFTZAP_PRIVATE_KEY"),
            "app_base_url": env.get("GIFTZAP_APP_BASE_URL"),
        }
        if env.get("GIFTZAP_PINATA_API_URL"):
            values["pinata_api_url"] = env["GIFTZAP_PINATA_API_URL"]
        if env.get("GIFTZAP_SCAN_BATCH_SIZE"):
            values["scan_batch_size"] = int(env["GIFTZAP_SCAN_BATCH_SIZE"])
        if env.get("GIFTZAP_HTTP_TIMEOUT"):
            values["http_timeout"] = float(env["GIFTZAP_HTTP_TIMEOUT"])
        if env.get("GIFTZAP_READ_TIMEOUT"):
            values["read_timeout"] = float(env["GIFTZAP_READ_TIMEOUT"])

        values.update(overrides)
        logger.debug(f"Loaded configuration for network {name}")
        return cls(**values)
