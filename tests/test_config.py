"""
Tests for environment configuration and network presets.
"""
import pytest
from unittest.mock import patch

from contract_sdk.config import (
    DEFAULT_RECEIPT_TIMEOUT, DEFAULT_TIMEOUT, ClientConfig, NetworkConfig, load_config
)

# Sample network configuration
MOCK_NETWORKS = {
    "test-network": {
        "chainId": 123,
        "rpc": "https://test.example.com",
    }
}

ENV_VARS = [
    "CONTRACT_SDK_RPC_URL", "CONTRACT_SDK_NETWORK", "CONTRACT_SDK_CHAIN_ID",
    "CONTRACT_SDK_TIMEOUT", "CONTRACT_SDK_RECEIPT_TIMEOUT", "CONTRACT_SDK_POLL_INTERVAL",
    "CONTRACT_SDK_CONNECT_RETRIES", "CONTRACT_SDK_FROM_ADDRESS", "CONTRACT_SDK_INSECURE_RPC",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_networks():
    NetworkConfig._networks_cache = MOCK_NETWORKS
    yield MOCK_NETWORKS
    # Reset cache for other tests
    NetworkConfig._networks_cache = None


class TestLoadConfig:

    def test_defaults(self, clean_env):
        config = load_config()

        assert config.rpc_url is None
        assert config.network is None
        assert config.chain_id is None
        assert config.timeout == DEFAULT_TIMEOUT
        assert config.receipt_timeout == DEFAULT_RECEIPT_TIMEOUT
        assert config.connect_retries == 3
        assert not config.insecure_rpc

    def test_from_environment(self, clean_env):
        clean_env.setenv("CONTRACT_SDK_RPC_URL", " https://rpc.example.com ")
        clean_env.setenv("CONTRACT_SDK_NETWORK", "Sepolia")
        clean_env.setenv("CONTRACT_SDK_CHAIN_ID", "11155111")
        clean_env.setenv("CONTRACT_SDK_TIMEOUT", "5")
        clean_env.setenv("CONTRACT_SDK_RECEIPT_TIMEOUT", "60.5")
        clean_env.setenv("CONTRACT_SDK_POLL_INTERVAL", "0.1")
        clean_env.setenv("CONTRACT_SDK_CONNECT_RETRIES", "0")
        clean_env.setenv("CONTRACT_SDK_INSECURE_RPC", "1")

        config = load_config()

        assert config.rpc_url == "https://rpc.example.com"
        assert config.network == "sepolia"
        assert config.chain_id == 11155111
        assert config.timeout == 5.0
        assert config.receipt_timeout == 60.5
        assert config.poll_interval == 0.1
        assert config.connect_retries == 0
        assert config.insecure_rpc

    def test_hex_chain_id(self, clean_env):
        clean_env.setenv("CONTRACT_SDK_CHAIN_ID", "0x7a69")
        assert load_config().chain_id == 31337

    @pytest.mark.parametrize("name,value", [
        ("CONTRACT_SDK_CHAIN_ID", "mainnet"),
        ("CONTRACT_SDK_TIMEOUT", "soon"),
        ("CONTRACT_SDK_CONNECT_RETRIES", "1.5"),
    ])
    def test_malformed_numbers(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ValueError, match=name):
            load_config()


class TestClientConfig:

    def test_explicit_url_wins(self, mock_networks):
        config = ClientConfig(rpc_url="https://mine.example.com", network="test-network")
        assert config.resolve_rpc_url() == "https://mine.example.com"

    def test_network_preset(self, mock_networks, monkeypatch):
        monkeypatch.delenv("TEST_NETWORK_RPC_URL", raising=False)
        config = ClientConfig(network="test-network")

        assert config.resolve_rpc_url() == "https://test.example.com"
        assert config.resolve_chain_id() == 123

    def test_explicit_chain_id_wins(self, mock_networks):
        assert ClientConfig(network="test-network", chain_id=5).resolve_chain_id() == 5

    def test_nothing_configured(self):
        config = ClientConfig()
        with pytest.raises(ValueError, match="CONTRACT_SDK_RPC_URL"):
            config.resolve_rpc_url()
        assert config.resolve_chain_id() is None


class TestNetworkConfig:
    """Test NetworkConfig class."""

    def test_load_networks_cached(self, mock_networks):
        """Networks are cached after first load"""
        with patch("importlib.resources.files") as mock_files:
            result = NetworkConfig.load_networks()
            mock_files.assert_not_called()

        assert result == MOCK_NETWORKS

    def test_load_bundled_networks(self):
        NetworkConfig._networks_cache = None
        networks = NetworkConfig.load_networks()

        assert networks["ethereum"]["chainId"] == 1
        assert networks["local"]["rpc"] == "http://127.0.0.1:8545"
        assert all(n["rpc"].startswith("https://") for name, n in networks.items() if name != "local")

    def test_get_network(self, mock_networks):
        result = NetworkConfig.get_network("Test-Network")
        assert result == MOCK_NETWORKS["test-network"]

    def test_get_network_not_found(self, mock_networks):
        with pytest.raises(ValueError) as exc_info:
            NetworkConfig.get_network("non-existent-network")

        # Error message includes available networks
        assert "test-network" in str(exc_info.value)

    def test_get_rpc_url_override(self, mock_networks):
        assert NetworkConfig.get_rpc_url("test-network", "https://override.com") == "https://override.com"

    def test_get_rpc_url_from_env(self, mock_networks, monkeypatch):
        monkeypatch.setenv("TEST_NETWORK_RPC_URL", "https://env.example.com")
        assert NetworkConfig.get_rpc_url("test-network") == "https://env.example.com"

    def test_get_chain_id(self, mock_networks):
        assert NetworkConfig.get_chain_id("test-network") == 123
