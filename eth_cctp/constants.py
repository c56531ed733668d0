"""Circle CCTP V2 constants.

Cross-Chain Transfer Protocol V2 deployment addresses, domain mappings
and the timing and gas defaults used by :py:mod:`eth_cctp.orchestrator`.

CCTP enables burn-and-mint USDC transfers across chains:

1. Source chain: call ``depositForBurn()`` on TokenMessengerV2 to burn USDC
2. Circle's Iris attestation service signs the burn event
3. Destination chain: call ``receiveMessage()`` on MessageTransmitterV2 to mint USDC

All CCTP V2 contracts share the same address across all EVM mainnets (deployed via CREATE2),
and another shared address set across the test networks.

- `CCTP V2 documentation <https://developers.circle.com/cctp>`_
- `EVM contract addresses <https://developers.circle.com/cctp/evm-smart-contracts>`_
"""

from eth_typing import HexAddress


#: CCTP V2 TokenMessengerV2 - entry point for cross-chain USDC transfers.
#: Same address on all EVM mainnets via CREATE2.
TOKEN_MESSENGER_V2: HexAddress = HexAddress("0x28b5a0e9C621a5BadaA536219b3a228C8168cf5d")

#: CCTP V2 MessageTransmitterV2 - handles message passing and attestation verification.
MESSAGE_TRANSMITTER_V2: HexAddress = HexAddress("0x81D40F21F12A8F0E3252Bccb954D722d4c464B64")

#: CCTP V2 TokenMinterV2 - executes burning/minting of USDC.
TOKEN_MINTER_V2: HexAddress = HexAddress("0xfd78EE919681417d192449715b2594ab58f5D002")

#: TokenMessengerV2 on test networks (Sepolia, Fuji)
TOKEN_MESSENGER_V2_TESTNET: HexAddress = HexAddress("0x8FE6B999Dc680CcFDD5Bf7EB0974218be2542DAA")

#: MessageTransmitterV2 on test networks
MESSAGE_TRANSMITTER_V2_TESTNET: HexAddress = HexAddress("0xE737e5cEBEEBa77EFE34D4aa090756590b1CE275")

#: TokenMinterV2 on test networks
TOKEN_MINTER_V2_TESTNET: HexAddress = HexAddress("0xb43db544E2c27092c107639Ad201b3dEfAbcF192")

#: CCTP domain ID for Ethereum
CCTP_DOMAIN_ETHEREUM = 0

#: CCTP domain ID for Avalanche C-Chain
CCTP_DOMAIN_AVALANCHE = 1

#: CCTP domain ID for Arbitrum One
CCTP_DOMAIN_ARBITRUM = 3

#: CCTP domain ID for Base
CCTP_DOMAIN_BASE = 6

#: CCTP domain ID for Polygon PoS
CCTP_DOMAIN_POLYGON = 7

#: CCTP domain ID for Sonic
CCTP_DOMAIN_SONIC = 13

#: Circle Iris attestation API base URL (mainnet).
IRIS_API_BASE_URL = "https://iris-api.circle.com"

#: Circle Iris attestation API base URL (testnets).
IRIS_API_SANDBOX_URL = "https://iris-api-sandbox.circle.com"

#: USDC uses 6 decimals on every EVM chain CCTP supports
USDC_DECIMALS = 6

#: Minimum finality threshold for standard (finalized) transfers.
FINALITY_THRESHOLD_STANDARD = 2000

#: Minimum finality threshold for fast (confirmed) transfers.
#: Uses lower block confirmation, may incur fees.
FINALITY_THRESHOLD_FAST = 1000

#: Gas ceiling for a plain ``depositForBurn()``
GAS_LIMIT_STANDARD_BURN = 250_000

#: Gas ceiling for a fast finality ``depositForBurn()``
GAS_LIMIT_FAST_BURN = 300_000

#: Gas ceiling for ``depositForBurnWithHook()`` when the hook does not set one
GAS_LIMIT_HOOK_BURN = 500_000

#: Gas ceiling for ``receiveMessage()`` of a finalized message
GAS_LIMIT_RECEIVE_FINALIZED = 350_000

#: Gas ceiling for ``receiveMessage()`` of a fast (unfinalized) message
GAS_LIMIT_RECEIVE_UNFINALIZED = 400_000

#: Gas limit written into the hook wire payload when the hook metadata has none
DEFAULT_HOOK_GAS_LIMIT = 300_000

#: Gas limit for rebalance hooks created by the dispatcher
REBALANCE_HOOK_GAS_LIMIT = 500_000

#: Gas limit for swap hooks created by the dispatcher
SWAP_HOOK_GAS_LIMIT = 800_000

#: Seconds between attestation polls.
#:
#: Coarser than the Iris service needs, to keep the request volume down.
ATTESTATION_POLL_INTERVAL = 10.0

#: How long we wait for a fast finality attestation (15 minutes)
FAST_TRANSFER_ATTESTATION_TIMEOUT = 900.0

#: How long we wait for a standard attestation (40 minutes, testnets are slow)
STANDARD_TRANSFER_ATTESTATION_TIMEOUT = 2400.0

#: Seconds from attestation to expected mint for fast transfers
FAST_TRANSFER_MINT_ESTIMATE = 30

#: Seconds from attestation to expected mint for standard transfers
STANDARD_TRANSFER_MINT_ESTIMATE = 300

#: Fast transfer fee in basis points used when Iris fee lookup fails
FAST_TRANSFER_DEFAULT_FEE_BPS = 1

#: Name of the MessageTransmitterV2 event that carries the outbound message
MESSAGE_SENT_EVENT = "MessageSent"
