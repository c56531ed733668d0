"""Environment configuration."""

import pytest

from eth_cctp.config import load_config, validate_config
from eth_cctp.constants import IRIS_API_BASE_URL, IRIS_API_SANDBOX_URL


def test_defaults():
    config = load_config({})
    assert config.is_testnet
    assert config.environment == "development"
    assert config.iris_api_url == IRIS_API_SANDBOX_URL
    assert config.circle_api_key is None
    assert config.enable_fast_transfer
    assert config.attestation_poll_interval == 10
    assert config.fast_transfer_timeout == 900
    assert config.standard_transfer_timeout == 2400
    assert config.rpc_urls["base"] == "https://sepolia.base.org"
    assert validate_config(config) == []


def test_mainnet():
    config = load_config(
        {
            "CCTP_ENVIRONMENT": "Mainnet",
            "CCTP_APP_ENVIRONMENT": "production",
            "CIRCLE_API_KEY": "TEST_API_KEY:abc:def",
            "JSON_RPC_BASE": "https://base.example.com",
            "FAST_TRANSFER_TIMEOUT": "120",
            "ENABLE_FAST_TRANSFER": "FALSE",
        }
    )
    assert not config.is_testnet
    assert config.iris_api_url == IRIS_API_BASE_URL
    assert config.rpc_urls["base"] == "https://base.example.com"
    assert config.rpc_urls["sonic"] == "https://rpc.soniclabs.com"
    assert config.fast_transfer_timeout == 120
    assert not config.enable_fast_transfer
    assert validate_config(config) == []


def test_bad_values_fall_back_to_defaults():
    config = load_config({"ATTESTATION_POLL_INTERVAL": "often", "ENABLE_FAST_TRANSFER": "yes"})
    assert config.attestation_poll_interval == 10
    assert config.enable_fast_transfer


def test_unknown_environment():
    with pytest.raises(AssertionError):
        load_config({"CCTP_ENVIRONMENT": "devnet"})


def test_production_checks():
    config = load_config({"CCTP_APP_ENVIRONMENT": "production", "JSON_RPC_BASE": "localhost:8545"})
    errors = validate_config(config)
    assert len(errors) == 3
    assert any("API key" in e for e in errors)
    assert any("mainnet" in e for e in errors)
    assert any("base" in e for e in errors)
