"""
Tests for network and pipeline configuration.
"""
import pytest

from nftmint_sdk.config import NetworkConfig, PipelineSettings, validate_service_url


def test_load_networks_is_cached():
    networks = NetworkConfig.load_networks()

    assert {"ethereum-sepolia", "base-sepolia", "local"} <= set(networks)
    assert NetworkConfig.load_networks() is networks


def test_network_lookups():
    assert NetworkConfig.get_chain_id("ethereum-sepolia") == 11155111
    assert NetworkConfig.get_chain_id("base-sepolia") == 84532
    assert NetworkConfig.get_mint_factory_address("local").startswith("0x")
    assert NetworkConfig.get_explorer_url("ethereum-sepolia") == "https://sepolia.etherscan.io"
    assert NetworkConfig.get_explorer_url("local") == ""


def test_unknown_network_lists_available():
    with pytest.raises(ValueError, match="Available networks: base-sepolia, ethereum-sepolia, local"):
        NetworkConfig.get_network("mainnet-please")


def test_rpc_url_precedence(monkeypatch):
    monkeypatch.delenv("BASE_SEPOLIA_RPC_URL", raising=False)
    assert NetworkConfig.get_rpc_url("base-sepolia") == "https://sepolia.base.org"

    monkeypatch.setenv("BASE_SEPOLIA_RPC_URL", "https://env.example.com")
    assert NetworkConfig.get_rpc_url("base-sepolia") == "https://env.example.com"

    assert NetworkConfig.get_rpc_url("base-sepolia", override="https://cli.example.com") == "https://cli.example.com"


@pytest.mark.parametrize("url, expected", [
    ("https://pin.example.com/", "https://pin.example.com"),
    ("http://localhost:5001", "http://localhost:5001"),
    ("http://127.0.0.1:8545/", "http://127.0.0.1:8545"),
])
def test_validate_service_url_accepts(url, expected):
    assert validate_service_url("url", url) == expected


@pytest.mark.parametrize("url", ["http://pin.example.com", "pin.example.com", "ws://localhost:1", ""])
def test_validate_service_url_rejects(url):
    with pytest.raises(ValueError):
        validate_service_url("url", url)


def test_settings_defaults():
    settings = PipelineSettings.from_env(environ={})

    assert settings.network == "ethereum-sepolia"
    assert settings.ipfs_gateway == "https://ipfs.io"
    assert settings.max_attempts == 3
    assert settings.confirm_timeout == 60
    assert settings.pinner_url is None


def test_settings_from_environment_and_overrides():
    environ = {
        "NFTMINT_NETWORK": "base-sepolia",
        "NFTMINT_PINNER_URL": "https://pin.example.com",
        "NFTMINT_MAX_ATTEMPTS": "5",
        "NFTMINT_CONFIRM_TIMEOUT": "12.5",
        "NFTMINT_SECRET": "env:KEY",
        "NFTMINT_CACHE_PATH": "",
    }

    settings = PipelineSettings.from_env(environ=environ, network="local", rpc_url=None)

    assert settings.network == "local"
    assert settings.pinner_url == "https://pin.example.com"
    assert settings.max_attempts == 5
    assert settings.confirm_timeout == 12.5
    assert settings.cache_path is None
    assert "env:KEY" not in repr(settings)


@pytest.mark.parametrize("environ", [
    {"NFTMINT_MAX_ATTEMPTS": "zero"},
    {"NFTMINT_MAX_ATTEMPTS": "0"},
    {"NFTMINT_POLL_INTERVAL": "-1"},
])
def test_invalid_settings(environ):
    with pytest.raises(ValueError, match="Invalid pipeline settings"):
        PipelineSettings.from_env(environ=environ)
