"""Ledger gateway.

The chain side primitives a transfer needs: balance and allowance reads,
approval, the three burn variants, the mint and receipt handling.

:py:class:`eth_cctp.orchestrator.TransferOrchestrator` only talks to
the chains through this interface.

- :py:class:`eth_cctp.web3_gateway.Web3LedgerGateway` talks to real JSON-RPC nodes
- :py:class:`eth_cctp.testing.FakeLedgerGateway` keeps everything in memory
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress, HexStr

from eth_cctp.abi import ZERO_BYTES32
from eth_cctp.chain import ChainDescriptor
from eth_cctp.constants import FINALITY_THRESHOLD_STANDARD, GAS_LIMIT_STANDARD_BURN


class BurnVariant(enum.Enum):
    """Which TokenMessengerV2 call burns the tokens."""

    #: ``depositForBurn()`` with finality threshold 2000
    standard = "standard"

    #: ``depositForBurn()`` with finality threshold 1000 and a max fee
    fast_finality = "fast_finality"

    #: ``depositForBurnWithHook()``
    with_hook = "with_hook"


class FinalityMode(enum.Enum):
    """How final the source chain message was when it was attested."""

    finalized = "finalized"

    #: Fast transfer messages, attested before hard finality
    unfinalized = "unfinalized"


@dataclass(slots=True, frozen=True)
class BurnParameters:
    """Call parameters for one burn."""

    gas_limit: int = GAS_LIMIT_STANDARD_BURN

    #: Max fee in raw USDC the relayer may take, 0 for standard transfers
    max_fee: int = 0

    min_finality_threshold: int = FINALITY_THRESHOLD_STANDARD

    #: Encoded hook payload, only for :py:attr:`BurnVariant.with_hook`
    hook_data: bytes | None = None

    #: Who may call ``receiveMessage()``, zero means anyone
    destination_caller: bytes = ZERO_BYTES32


@dataclass(slots=True, frozen=True)
class PendingTransaction:
    """Broadcasted transaction we have not seen mined yet."""

    chain: ChainDescriptor

    tx_hash: HexStr


@dataclass(slots=True, frozen=True)
class ProtocolMessage:
    """CCTP message emitted by ``MessageSent`` on the source chain."""

    #: Raw message bytes, relayed as is to ``receiveMessage()``
    message: bytes

    #: keccak256 of the message, the id Iris attests
    message_hash: HexStr


class LedgerGateway(ABC):
    """Chain primitives used by transfers.

    Amounts going in are raw token units. Balances coming out are
    human-readable :py:class:`Decimal` USDC.
    """

    @abstractmethod
    def get_balance(self, chain: ChainDescriptor, address: HexAddress | str) -> Decimal:
        """USDC balance of an address."""

    @abstractmethod
    def get_allowance(self, chain: ChainDescriptor, owner: HexAddress | str) -> Decimal:
        """USDC allowance the owner has given to TokenMessengerV2."""

    @abstractmethod
    def approve(self, chain: ChainDescriptor, amount_raw: int, signer: LocalAccount) -> HexStr:
        """Approve TokenMessengerV2 to burn USDC.

        :return:
            Transaction hash
        """

    @abstractmethod
    def submit_burn(
        self,
        chain: ChainDescriptor,
        amount_raw: int,
        destination_domain: int,
        mint_recipient: HexAddress | str,
        burn_token: HexAddress | str,
        variant: BurnVariant,
        parameters: BurnParameters,
        signer: LocalAccount,
    ) -> PendingTransaction:
        """Broadcast a burn on the source chain."""

    @abstractmethod
    def await_receipt(self, pending: PendingTransaction) -> dict:
        """Wait until the transaction is mined.

        :return:
            Transaction receipt. ``status`` is 1 on success, 0 on revert.
        """

    @abstractmethod
    def extract_protocol_message(self, chain: ChainDescriptor, receipt: dict) -> ProtocolMessage:
        """Read the ``MessageSent`` event out of a burn receipt.

        :raise eth_cctp.errors.MessageNotFoundError:
            No such event in the receipt
        """

    @abstractmethod
    def submit_mint(
        self,
        chain: ChainDescriptor,
        message: bytes,
        attestation: bytes,
        signer: LocalAccount,
        finality_mode: FinalityMode,
    ) -> PendingTransaction:
        """Broadcast ``receiveMessage()`` on the destination chain."""
