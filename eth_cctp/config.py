"""Bridge configuration.

Read from environment variables, so the same code runs against
testnets in development and mainnets in production::

    export CCTP_ENVIRONMENT=mainnet
    export CIRCLE_API_KEY=...
    export JSON_RPC_ETHEREUM=https://...
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from eth_cctp.constants import (
    ATTESTATION_POLL_INTERVAL,
    FAST_TRANSFER_ATTESTATION_TIMEOUT,
    IRIS_API_BASE_URL,
    IRIS_API_SANDBOX_URL,
    STANDARD_TRANSFER_ATTESTATION_TIMEOUT,
)

logger = logging.getLogger(__name__)


#: Public RPC endpoints used when ``JSON_RPC_<CHAIN>`` is not set
DEFAULT_RPC_URLS: dict[str, str] = {
    "ethereum": "https://eth.llamarpc.com",
    "arbitrum": "https://arbitrum.llamarpc.com",
    "base": "https://base.llamarpc.com",
    "avalanche": "https://api.avax.network/ext/bc/C/rpc",
    "polygon": "https://polygon-rpc.com",
    "sonic": "https://rpc.soniclabs.com",
}

#: Public RPC endpoints for test networks
DEFAULT_TESTNET_RPC_URLS: dict[str, str] = {
    "ethereum": "https://ethereum-sepolia-rpc.publicnode.com",
    "arbitrum": "https://sepolia-rollup.arbitrum.io/rpc",
    "base": "https://sepolia.base.org",
    "avalanche": "https://api.avax-test.network/ext/bc/C/rpc",
}

VALID_CCTP_ENVIRONMENTS = ("mainnet", "testnet")

VALID_APP_ENVIRONMENTS = ("development", "staging", "production")


@dataclass(slots=True)
class BridgeConfig:
    """Runtime configuration for transfers."""

    #: ``mainnet`` or ``testnet``
    cctp_environment: str = "testnet"

    #: ``development``, ``staging`` or ``production``
    environment: str = "development"

    #: Circle API key for Iris, optional on testnets
    circle_api_key: str | None = None

    #: JSON-RPC URL per chain key
    rpc_urls: dict[str, str] = field(default_factory=dict)

    #: Advertise fast finality support on every chain
    enable_fast_transfer: bool = True

    #: Seconds between attestation polls
    attestation_poll_interval: float = ATTESTATION_POLL_INTERVAL

    #: Attestation wait budget for fast transfers, seconds
    fast_transfer_timeout: float = FAST_TRANSFER_ATTESTATION_TIMEOUT

    #: Attestation wait budget for standard transfers, seconds
    standard_transfer_timeout: float = STANDARD_TRANSFER_ATTESTATION_TIMEOUT

    #: HTTP timeout for one webhook delivery, seconds
    webhook_timeout: float = 10.0

    @property
    def is_testnet(self) -> bool:
        return self.cctp_environment == "testnet"

    @property
    def iris_api_url(self) -> str:
        """Iris API base URL matching the environment."""
        return IRIS_API_SANDBOX_URL if self.is_testnet else IRIS_API_BASE_URL


def _get_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    value = environ.get(key)
    if value is None:
        return default
    value = value.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    logger.warning("Environment variable %s has unexpected value %r, using default %s", key, value, default)
    return default


def _get_float(environ: Mapping[str, str], key: str, default: float) -> float:
    value = environ.get(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Environment variable %s is not a number: %r, using default %s", key, value, default)
        return default


def load_config(environ: Mapping[str, str] | None = None) -> BridgeConfig:
    """Build :py:class:`BridgeConfig` from environment variables.

    :param environ:
        Environment to read. Defaults to ``os.environ``.
    """
    if environ is None:
        environ = os.environ

    cctp_environment = environ.get("CCTP_ENVIRONMENT", "testnet").strip().lower()
    assert cctp_environment in VALID_CCTP_ENVIRONMENTS, f"CCTP_ENVIRONMENT must be one of {VALID_CCTP_ENVIRONMENTS}, got {cctp_environment}"

    environment = environ.get("CCTP_APP_ENVIRONMENT", "development").strip().lower()
    assert environment in VALID_APP_ENVIRONMENTS, f"CCTP_APP_ENVIRONMENT must be one of {VALID_APP_ENVIRONMENTS}, got {environment}"

    defaults = DEFAULT_TESTNET_RPC_URLS if cctp_environment == "testnet" else DEFAULT_RPC_URLS
    rpc_urls = {chain: environ.get(f"JSON_RPC_{chain.upper()}") or url for chain, url in defaults.items()}

    return BridgeConfig(
        cctp_environment=cctp_environment,
        environment=environment,
        circle_api_key=environ.get("CIRCLE_API_KEY") or None,
        rpc_urls=rpc_urls,
        enable_fast_transfer=_get_bool(environ, "ENABLE_FAST_TRANSFER", True),
        attestation_poll_interval=_get_float(environ, "ATTESTATION_POLL_INTERVAL", ATTESTATION_POLL_INTERVAL),
        fast_transfer_timeout=_get_float(environ, "FAST_TRANSFER_TIMEOUT", FAST_TRANSFER_ATTESTATION_TIMEOUT),
        standard_transfer_timeout=_get_float(environ, "STANDARD_TRANSFER_TIMEOUT", STANDARD_TRANSFER_ATTESTATION_TIMEOUT),
        webhook_timeout=_get_float(environ, "WEBHOOK_TIMEOUT", 10.0),
    )


def validate_config(config: BridgeConfig) -> list[str]:
    """Check the configuration for deployment mistakes.

    :return:
        Human-readable problems, empty if all good
    """
    errors = []

    if config.environment == "production":
        if not config.circle_api_key:
            errors.append("Circle API key is required for production")

        if config.cctp_environment != "mainnet":
            errors.append("Production environment should use mainnet CCTP")

    for chain, url in config.rpc_urls.items():
        if not url.startswith(("http://", "https://", "ws://", "wss://")):
            errors.append(f"RPC URL for {chain} is not a URL: {url}")

    return errors
