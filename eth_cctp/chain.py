"""CCTP chain registry.

Static per-chain metadata: EVM chain id, CCTP domain id, contract addresses
and which transfer roles the chain may play.

Example::

    from eth_cctp.config import load_config
    from eth_cctp.chain import create_default_chain_registry

    registry = create_default_chain_registry(load_config())
    base = registry.get("base")
    print(base.domain_id)  # 6
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from eth_typing import HexAddress

from eth_cctp.config import BridgeConfig
from eth_cctp.constants import (
    CCTP_DOMAIN_ARBITRUM,
    CCTP_DOMAIN_AVALANCHE,
    CCTP_DOMAIN_BASE,
    CCTP_DOMAIN_ETHEREUM,
    CCTP_DOMAIN_POLYGON,
    CCTP_DOMAIN_SONIC,
    MESSAGE_TRANSMITTER_V2,
    MESSAGE_TRANSMITTER_V2_TESTNET,
    TOKEN_MESSENGER_V2,
    TOKEN_MESSENGER_V2_TESTNET,
    TOKEN_MINTER_V2,
    TOKEN_MINTER_V2_TESTNET,
)
from eth_cctp.errors import UnsupportedChainError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChainDescriptor:
    """One CCTP enabled chain.

    Loaded once at start up, never mutated.
    """

    #: Registry key, e.g. ``"base"``
    key: str

    #: EVM chain id
    chain_id: int

    #: Human-readable name
    name: str

    #: JSON-RPC endpoint
    rpc_url: str

    #: CCTP domain id, not the same as the EVM chain id
    domain_id: int

    #: TokenMessengerV2, the burn entry point
    token_messenger: HexAddress

    #: MessageTransmitterV2, the mint entry point
    message_transmitter: HexAddress

    #: TokenMinterV2
    token_minter: HexAddress

    #: Native USDC on this chain
    usdc: HexAddress

    #: Can burn USDC here
    supports_source_burn: bool = True

    #: Can mint USDC here
    supports_destination_mint: bool = True

    #: Can do fast finality (threshold 1000) transfers
    supports_fast_transfer: bool = False

    is_testnet: bool = False

    def __repr__(self):
        return f"<Chain {self.key} id:{self.chain_id} domain:{self.domain_id}>"


class ChainRegistry:
    """Immutable chain key -> :py:class:`ChainDescriptor` lookup.

    Shared by all concurrent transfers, needs no locking.
    """

    def __init__(self, chains: list[ChainDescriptor]):
        by_key = {}
        by_domain = {}
        for chain in chains:
            if chain.key in by_key:
                raise ValueError(f"Duplicate chain key {chain.key}")
            if chain.domain_id in by_domain:
                raise ValueError(f"Domain id {chain.domain_id} used by both {by_domain[chain.domain_id].key} and {chain.key}")
            by_key[chain.key] = chain
            by_domain[chain.domain_id] = chain
        self._by_key = by_key
        self._by_domain = by_domain

    def __getitem__(self, key: str) -> ChainDescriptor:
        return self._by_key[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_key)

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def values(self) -> list[ChainDescriptor]:
        return list(self._by_key.values())

    def __repr__(self):
        return f"<ChainRegistry {', '.join(self._by_key)}>"

    def get(self, key: str) -> ChainDescriptor:
        """Look up a chain.

        :raise UnsupportedChainError:
            Unknown chain key
        """
        chain = self._by_key.get(key)
        if chain is None:
            raise UnsupportedChainError(f"Chain {key!r} is not supported. Supported chains: {list(self._by_key.keys())}")
        return chain

    def get_source(self, key: str) -> ChainDescriptor:
        """Look up a chain we burn on."""
        chain = self.get(key)
        if not chain.supports_source_burn:
            raise UnsupportedChainError(f"Chain {key} cannot be used as a transfer source")
        return chain

    def get_destination(self, key: str) -> ChainDescriptor:
        """Look up a chain we mint on."""
        chain = self.get(key)
        if not chain.supports_destination_mint:
            raise UnsupportedChainError(f"Chain {key} cannot be used as a transfer destination")
        return chain

    def get_by_domain(self, domain_id: int) -> ChainDescriptor:
        chain = self._by_domain.get(domain_id)
        if chain is None:
            raise UnsupportedChainError(f"No chain with CCTP domain {domain_id}")
        return chain

    def get_by_chain_id(self, chain_id: int) -> ChainDescriptor:
        for chain in self._by_key.values():
            if chain.chain_id == chain_id:
                return chain
        raise UnsupportedChainError(f"No chain with chain id {chain_id}")

    def supports_fast_transfer(self, source: ChainDescriptor, destination: ChainDescriptor) -> bool:
        """Fast finality needs both ends to advertise it."""
        return source.supports_fast_transfer and destination.supports_fast_transfer


#: Mainnet deployments: key, chain id, name, domain, USDC
_MAINNET_CHAINS = [
    ("ethereum", 1, "Ethereum", CCTP_DOMAIN_ETHEREUM, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
    ("avalanche", 43114, "Avalanche", CCTP_DOMAIN_AVALANCHE, "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"),
    ("arbitrum", 42161, "Arbitrum", CCTP_DOMAIN_ARBITRUM, "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
    ("base", 8453, "Base", CCTP_DOMAIN_BASE, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
    ("polygon", 137, "Polygon", CCTP_DOMAIN_POLYGON, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"),
    ("sonic", 146, "Sonic", CCTP_DOMAIN_SONIC, "0x29219dd400f2Bf60E5a23d13Be72B486D4038894"),
]

#: Test network deployments
_TESTNET_CHAINS = [
    ("ethereum", 11155111, "Ethereum Sepolia", CCTP_DOMAIN_ETHEREUM, "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"),
    ("avalanche", 43113, "Avalanche Fuji", CCTP_DOMAIN_AVALANCHE, "0x5425890298aed601595a70AB815c96711a31Bc65"),
    ("arbitrum", 421614, "Arbitrum Sepolia", CCTP_DOMAIN_ARBITRUM, "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d"),
    ("base", 84532, "Base Sepolia", CCTP_DOMAIN_BASE, "0x036CbD53842c5426634e7929541eC2318f3dCF7e"),
]


def create_default_chain_registry(config: BridgeConfig) -> ChainRegistry:
    """Create the registry of chains we know CCTP V2 deployments for.

    :param config:
        Picks mainnet or testnet deployments, RPC URLs and whether fast transfers are on.
    """
    if config.is_testnet:
        table = _TESTNET_CHAINS
        token_messenger, message_transmitter, token_minter = TOKEN_MESSENGER_V2_TESTNET, MESSAGE_TRANSMITTER_V2_TESTNET, TOKEN_MINTER_V2_TESTNET
    else:
        table = _MAINNET_CHAINS
        token_messenger, message_transmitter, token_minter = TOKEN_MESSENGER_V2, MESSAGE_TRANSMITTER_V2, TOKEN_MINTER_V2

    chains = []
    for key, chain_id, name, domain_id, usdc in table:
        rpc_url = config.rpc_urls.get(key)
        if not rpc_url:
            logger.info("No RPC URL configured for %s, chain not available", key)
            continue

        chains.append(
            ChainDescriptor(
                key=key,
                chain_id=chain_id,
                name=name,
                rpc_url=rpc_url,
                domain_id=domain_id,
                token_messenger=token_messenger,
                message_transmitter=message_transmitter,
                token_minter=token_minter,
                usdc=HexAddress(usdc),
                supports_source_burn=True,
                supports_destination_mint=True,
                supports_fast_transfer=config.enable_fast_transfer,
                is_testnet=config.is_testnet,
            )
        )

    return ChainRegistry(chains)
