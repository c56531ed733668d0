"""Shared fixtures for CCTP transfer tests.

Everything runs against the in-memory collaborators from :py:mod:`eth_cctp.testing`.
"""

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from eth_cctp.chain import ChainRegistry
from eth_cctp.constants import (
    CCTP_DOMAIN_ARBITRUM,
    CCTP_DOMAIN_BASE,
    CCTP_DOMAIN_ETHEREUM,
    CCTP_DOMAIN_POLYGON,
)
from eth_cctp.orchestrator import TransferOrchestrator
from eth_cctp.poller import AttestationPoller
from eth_cctp.testing import FakeAttestationClient, FakeClock, FakeLedgerGateway, RecordingNotifier, make_chain


@pytest.fixture()
def registry() -> ChainRegistry:
    """Ethereum, Base and Arbitrum with fast transfers, Polygon without."""
    return ChainRegistry(
        [
            make_chain("ethereum", 1, CCTP_DOMAIN_ETHEREUM, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
            make_chain("base", 8453, CCTP_DOMAIN_BASE, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
            make_chain("arbitrum", 42161, CCTP_DOMAIN_ARBITRUM, "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
            make_chain("polygon", 137, CCTP_DOMAIN_POLYGON, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", supports_fast_transfer=False),
        ]
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture()
def gateway() -> FakeLedgerGateway:
    return FakeLedgerGateway()


@pytest.fixture()
def attestation_client(gateway) -> FakeAttestationClient:
    """Attests on the second poll."""
    return FakeAttestationClient(gateway.messages, script=[None])


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def poller(attestation_client, clock) -> AttestationPoller:
    return AttestationPoller(attestation_client, poll_interval=10.0, clock=clock, sleep=clock.sleep)


@pytest.fixture()
def orchestrator(registry, gateway, attestation_client, notifier, poller, clock) -> TransferOrchestrator:
    return TransferOrchestrator(
        registry=registry,
        gateway=gateway,
        attestation_client=attestation_client,
        notifier=notifier,
        poller=poller,
        clock=clock,
    )


@pytest.fixture()
def signer() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def recipient() -> str:
    return Account.create().address
