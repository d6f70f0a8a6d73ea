"""
Tests for the NetworkConfig table and environment-driven configuration.
"""
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from giftzap_sdk.config import DEFAULT_FALLBACK_GATEWAYS, GiftZapConfig, NetworkConfig

# Sample network configuration
MOCK_NETWORKS = {
    "test-network": {
        "chainId": 123,
        "rpc": "https://test.example.com",
        "giftManager": "0x1234567890123456789012345678901234567890",
        "token": "0x2345678901234567890123456789012345678901",
        "ipfsGateway": "https://ipfs.test.example.com"
    }
}


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every GIFTZAP_* variable so tests see only what they set."""
    for key in list(os.environ):
        if key.startswith("GIFTZAP_") or key.endswith("_RPC_URL"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestNetworkConfig:
    """Test NetworkConfig class."""

    def test_load_networks_cached(self):
        """Networks are read once, then served from the class cache."""
        NetworkConfig._networks_cache = MOCK_NETWORKS

        with patch("importlib.resources.files") as mock_files:
            result = NetworkConfig.load_networks()
            mock_files.assert_not_called()

        assert result == MOCK_NETWORKS

    def test_bundled_networks(self):
        networks = NetworkConfig.load_networks()
        assert "mantle-sepolia" in networks
        assert NetworkConfig.get_chain_id("mantle-sepolia") == 5003
        assert NetworkConfig.get_gift_manager_address("mantle-sepolia").startswith("0x")
        assert NetworkConfig.get_ipfs_gateway("local") == "http://127.0.0.1:8080"

    def test_unknown_network_lists_available(self):
        NetworkConfig._networks_cache = MOCK_NETWORKS
        with pytest.raises(ValueError) as exc_info:
            NetworkConfig.get_network("nope")
        assert "test-network" in str(exc_info.value)

    def test_rpc_url_precedence(self, clean_env):
        NetworkConfig._networks_cache = MOCK_NETWORKS

        assert NetworkConfig.get_rpc_url("test-network") == "https://test.example.com"
        clean_env.setenv("TEST_NETWORK_RPC_URL", "https://env.example.com")
        assert NetworkConfig.get_rpc_url("test-network") == "https://env.example.com"
        assert NetworkConfig.get_rpc_url("test-network", "https://arg.example.com") == "https://arg.example.com"

    def test_token_address(self):
        NetworkConfig._networks_cache = MOCK_NETWORKS
        assert NetworkConfig.get_token_address("test-network") == MOCK_NETWORKS["test-network"]["token"]


class TestGiftZapConfig:

    def test_from_env_defaults(self, clean_env):
        config = GiftZapConfig.from_env()

        assert config.network == "mantle-sepolia"
        assert config.chain_id == 5003
        assert config.rpc_url == "https://rpc.sepolia.mantle.xyz"
        assert config.fallback_gateways == DEFAULT_FALLBACK_GATEWAYS
        assert config.scan_batch_size == 10
        assert config.pinata_jwt is None

    def test_from_env_reads_variables(self, clean_env):
        NetworkConfig._networks_cache = MOCK_NETWORKS
        clean_env.setenv("GIFTZAP_NETWORK", "test-network")
        clean_env.setenv("GIFTZAP_PINATA_JWT", "secret-jwt")
        clean_env.setenv("GIFTZAP_SCAN_BATCH_SIZE", "25")
        clean_env.setenv("GIFTZAP_HTTP_TIMEOUT", "5")
        clean_env.setenv("GIFTZAP_APP_BASE_URL", "https://app.example.com")

        config = GiftZapConfig.from_env()

        assert config.network == "test-network"
        assert config.gift_manager_address == MOCK_NETWORKS["test-network"]["giftManager"]
        assert config.ipfs_gateway == "https://ipfs.test.example.com"
        assert config.scan_batch_size == 25
        assert config.http_timeout == 5.0
        assert config.app_base_url == "https://app.example.com"
        assert "secret-jwt" not in repr(config)

    def test_overrides_win(self, clean_env):
        clean_env.setenv("GIFTZAP_SCAN_BATCH_SIZE", "25")
        config = GiftZapConfig.from_env(scan_batch_size=3)
        assert config.scan_batch_size == 3

    def test_plain_http_rejected(self, clean_env):
        clean_env.setenv("GIFTZAP_RPC_URL", "http://rpc.example.com")
        with pytest.raises(ValidationError):
            GiftZapConfig.from_env()

    def test_localhost_http_allowed(self, clean_env):
        config = GiftZapConfig.from_env("local")
        assert config.rpc_url == "http://127.0.0.1:8545"
        assert config.gift_manager_address is None

    def test_batch_size_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            GiftZapConfig.from_env(scan_batch_size=0)
