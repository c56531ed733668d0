"""CCTP V2 test helpers.

In-memory collaborators for running the transfer pipeline without
chains, Iris or webhook receivers:

- :py:class:`FakeLedgerGateway` burns and mints in memory, with real CCTP V2 message bytes
- :py:class:`FakeAttestationClient` answers from a script, signs with a test attester
- :py:class:`RecordingNotifier` keeps the events
- :py:class:`FakeClock` lets the poller time out without sleeping

Example::

    clock = FakeClock()
    gateway = FakeLedgerGateway()
    client = FakeAttestationClient(gateway.messages, script=[None, None])
    poller = AttestationPoller(client, clock=clock, sleep=clock.sleep)

See `Circle's CCTP specification <https://github.com/circlefin/evm-cctp-contracts>`__
for the message format.
"""

import logging
import struct
from collections import deque
from decimal import Decimal

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress, HexStr
from web3 import Web3

from eth_cctp.attestation import AttestationClient, CCTPAttestation, MessageStatus
from eth_cctp.chain import ChainDescriptor
from eth_cctp.constants import FINALITY_THRESHOLD_STANDARD, MESSAGE_SENT_EVENT, MESSAGE_TRANSMITTER_V2, TOKEN_MESSENGER_V2, TOKEN_MINTER_V2
from eth_cctp.errors import MessageNotFoundError
from eth_cctp.gateway import BurnParameters, BurnVariant, FinalityMode, LedgerGateway, PendingTransaction, ProtocolMessage
from eth_cctp.webhook import EventNotifier, WebhookEvent
from eth_cctp.web3_gateway import encode_mint_recipient

logger = logging.getLogger(__name__)

#: CCTP message version for V2 protocol
CCTP_MESSAGE_VERSION = 1

#: Burn message body version
BURN_MESSAGE_VERSION = 1

#: Scripted answer: give the attestation
READY = "ready"


def make_chain(key: str, chain_id: int, domain_id: int, usdc: str, supports_fast_transfer: bool = True) -> ChainDescriptor:
    """Mainnet style chain descriptor pointing to a dummy RPC."""
    return ChainDescriptor(
        key=key,
        chain_id=chain_id,
        name=key.capitalize(),
        rpc_url=f"http://localhost/{key}",
        domain_id=domain_id,
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_minter=TOKEN_MINTER_V2,
        usdc=usdc,
        supports_fast_transfer=supports_fast_transfer,
    )


def craft_cctp_message(
    source_domain: int,
    destination_domain: int,
    nonce: int,
    mint_recipient: HexAddress | str,
    amount: int,
    burn_token: HexAddress | str,
    min_finality_threshold: int = FINALITY_THRESHOLD_STANDARD,
    max_fee: int = 0,
) -> bytes:
    """Craft a CCTP V2 message as ``MessageSent`` would carry it.

    Message header (148 bytes):

    - ``uint32 version`` (4 bytes)
    - ``uint32 sourceDomain`` (4 bytes)
    - ``uint32 destinationDomain`` (4 bytes)
    - ``bytes32 nonce`` (32 bytes)
    - ``bytes32 sender`` (32 bytes), TokenMessenger on source
    - ``bytes32 recipient`` (32 bytes), TokenMessenger on dest
    - ``bytes32 destinationCaller`` (32 bytes), 0x00 for anyone
    - ``uint32 minFinalityThreshold`` (4 bytes)
    - ``uint32 finalityThresholdExecuted`` (4 bytes)

    Burn message body (228 bytes):

    - ``uint32 version`` (4 bytes)
    - ``bytes32 burnToken`` (32 bytes)
    - ``bytes32 mintRecipient`` (32 bytes)
    - ``uint256 amount`` (32 bytes)
    - ``bytes32 messageSender`` (32 bytes)
    - ``uint256 maxFee`` (32 bytes)
    - ``uint256 feeExecuted`` (32 bytes), set by attester
    - ``uint256 expirationBlock`` (32 bytes), set by attester

    :return:
        Packed message bytes (376 bytes total)
    """
    # Same TokenMessenger address on every chain via CREATE2
    token_messenger_bytes32 = encode_mint_recipient(TOKEN_MESSENGER_V2)
    mint_recipient_bytes32 = encode_mint_recipient(mint_recipient)
    burn_token_bytes32 = encode_mint_recipient(burn_token)
    destination_caller = b"\x00" * 32

    body = struct.pack(">I", BURN_MESSAGE_VERSION)
    body += burn_token_bytes32
    body += mint_recipient_bytes32
    body += amount.to_bytes(32, byteorder="big")
    body += token_messenger_bytes32
    body += max_fee.to_bytes(32, byteorder="big")
    body += b"\x00" * 32  # feeExecuted
    body += b"\x00" * 32  # expirationBlock

    header = struct.pack(">I", CCTP_MESSAGE_VERSION)
    header += struct.pack(">I", source_domain)
    header += struct.pack(">I", destination_domain)
    header += nonce.to_bytes(32, byteorder="big")
    header += token_messenger_bytes32  # sender
    header += token_messenger_bytes32  # recipient
    header += destination_caller
    header += struct.pack(">I", min_finality_threshold)
    header += struct.pack(">I", min_finality_threshold)  # finalityThresholdExecuted

    message = header + body
    assert len(message) == 376, f"Expected 376 bytes, got {len(message)}"

    return message


def get_message_nonce(message: bytes) -> bytes:
    """bytes32 nonce from a CCTP V2 message header."""
    return message[12:44]


def forge_attestation(message: bytes, attester: LocalAccount) -> bytes:
    """Sign a CCTP message with a test attester.

    The attestation is an ECDSA signature over ``keccak256(message)``,
    65 bytes: ``r (32) + s (32) + v (1)``.
    """
    message_hash = Web3.keccak(message)

    signed = attester.unsafe_sign_hash(message_hash)

    r = signed.r.to_bytes(32, byteorder="big")
    s = signed.s.to_bytes(32, byteorder="big")
    v = signed.v.to_bytes(1, byteorder="big")

    attestation = r + s + v
    assert len(attestation) == 65, f"Expected 65 bytes, got {len(attestation)}"

    return attestation


class FakeLedgerGateway(LedgerGateway):
    """In-memory chains.

    Every call is appended to :py:attr:`calls` as ``(method name, kwargs)``.
    Mints of an already minted message revert, like MessageTransmitterV2 does.
    """

    def __init__(
        self,
        default_balance: Decimal = Decimal(1_000_000),
        default_allowance: Decimal = Decimal(1_000_000),
    ):
        self.default_balance = default_balance
        self.default_allowance = default_allowance

        #: (chain key, lowercase address) -> USDC
        self.balances: dict[tuple[str, str], Decimal] = {}

        #: (chain key, lowercase owner) -> USDC
        self.allowances: dict[tuple[str, str], Decimal] = {}

        self.calls: list[tuple[str, dict]] = []

        #: message hash -> message bytes, share with :py:class:`FakeAttestationClient`
        self.messages: dict[str, bytes] = {}

        #: Set False to make burn receipts miss ``MessageSent``
        self.emit_message_sent = True

        #: Receipt status for burns and mints
        self.burn_status = 1
        self.mint_status = 1

        #: Raised from :py:meth:`submit_mint` when set
        self.mint_error: Exception | None = None

        self.used_nonces: set[bytes] = set()
        self._receipts: dict[str, dict] = {}
        self._tx_counter = 0

    def get_calls(self, name: str) -> list[dict]:
        return [kwargs for call_name, kwargs in self.calls if call_name == name]

    def _next_tx_hash(self) -> HexStr:
        self._tx_counter += 1
        return HexStr(Web3.keccak(text=f"fake-tx-{self._tx_counter}").to_0x_hex())

    def get_balance(self, chain: ChainDescriptor, address: HexAddress | str) -> Decimal:
        self.calls.append(("get_balance", {"chain": chain.key, "address": address}))
        return self.balances.get((chain.key, address.lower()), self.default_balance)

    def get_allowance(self, chain: ChainDescriptor, owner: HexAddress | str) -> Decimal:
        self.calls.append(("get_allowance", {"chain": chain.key, "owner": owner}))
        return self.allowances.get((chain.key, owner.lower()), self.default_allowance)

    def approve(self, chain: ChainDescriptor, amount_raw: int, signer: LocalAccount) -> HexStr:
        self.calls.append(("approve", {"chain": chain.key, "amount_raw": amount_raw}))
        self.allowances[(chain.key, signer.address.lower())] = Decimal(amount_raw).scaleb(-6)
        return self._next_tx_hash()

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
        self.calls.append(
            (
                "submit_burn",
                {
                    "chain": chain.key,
                    "amount_raw": amount_raw,
                    "destination_domain": destination_domain,
                    "mint_recipient": mint_recipient,
                    "burn_token": burn_token,
                    "variant": variant,
                    "parameters": parameters,
                },
            )
        )

        tx_hash = self._next_tx_hash()
        message = craft_cctp_message(
            source_domain=chain.domain_id,
            destination_domain=destination_domain,
            nonce=self._tx_counter,
            mint_recipient=mint_recipient,
            amount=amount_raw,
            burn_token=burn_token,
            min_finality_threshold=parameters.min_finality_threshold,
            max_fee=parameters.max_fee,
        )

        logs = []
        if self.emit_message_sent:
            logs.append({"event": MESSAGE_SENT_EVENT, "args": {"message": message}})
            self.messages[Web3.keccak(message).to_0x_hex()] = message

        self._receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": self.burn_status,
            "blockNumber": self._tx_counter,
            "logs": logs,
        }
        return PendingTransaction(chain=chain, tx_hash=tx_hash)

    def await_receipt(self, pending: PendingTransaction) -> dict:
        self.calls.append(("await_receipt", {"chain": pending.chain.key, "tx_hash": pending.tx_hash}))
        return self._receipts[pending.tx_hash]

    def extract_protocol_message(self, chain: ChainDescriptor, receipt: dict) -> ProtocolMessage:
        self.calls.append(("extract_protocol_message", {"chain": chain.key}))
        for log in receipt["logs"]:
            if log.get("event") == MESSAGE_SENT_EVENT:
                message = log["args"]["message"]
                return ProtocolMessage(message=message, message_hash=HexStr(Web3.keccak(message).to_0x_hex()))
        raise MessageNotFoundError(f"No MessageSent event in burn transaction {receipt['transactionHash']}")

    def submit_mint(
        self,
        chain: ChainDescriptor,
        message: bytes,
        attestation: bytes,
        signer: LocalAccount,
        finality_mode: FinalityMode,
    ) -> PendingTransaction:
        self.calls.append(
            (
                "submit_mint",
                {
                    "chain": chain.key,
                    "message": message,
                    "attestation": attestation,
                    "finality_mode": finality_mode,
                },
            )
        )

        if self.mint_error is not None:
            raise self.mint_error

        tx_hash = self._next_tx_hash()
        nonce = get_message_nonce(message)
        status = self.mint_status
        if status == 1:
            if nonce in self.used_nonces:
                # Nonce already used
                status = 0
            else:
                self.used_nonces.add(nonce)

        self._receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": status,
            "blockNumber": self._tx_counter,
            "logs": [],
        }
        return PendingTransaction(chain=chain, tx_hash=tx_hash)


class FakeAttestationClient(AttestationClient):
    """Iris stand-in answering from a script.

    Each :py:meth:`fetch_attestation` call consumes one script entry:
    ``None`` is "not ready", an exception instance is raised, :py:data:`READY` gives
    the attestation. When the script runs out every call gives the attestation,
    unless ``never_ready`` is set.
    """

    def __init__(
        self,
        messages: dict[str, bytes] | None = None,
        script: list | None = None,
        attester: LocalAccount | None = None,
        never_ready: bool = False,
    ):
        self.messages = messages if messages is not None else {}
        self.script = deque(script or [])
        self.attester = attester or Account.create()
        self.never_ready = never_ready
        self.calls: list[dict] = []

        self.status = MessageStatus.attested
        self.status_error: Exception | None = None

        self.fee_bps = Decimal(1)
        self.fee_error: Exception | None = None

    def fetch_attestation(
        self,
        message_id: str,
        source_domain: int | None = None,
        transaction_hash: str | None = None,
    ) -> CCTPAttestation | None:
        self.calls.append({"message_id": message_id, "source_domain": source_domain, "transaction_hash": transaction_hash})

        if self.script:
            action = self.script.popleft()
        else:
            action = None if self.never_ready else READY

        if isinstance(action, Exception):
            raise action

        if action is None:
            return None

        message = self.messages.get(message_id, b"")
        signed = message or bytes.fromhex(message_id.removeprefix("0x"))
        return CCTPAttestation(
            message=message,
            attestation=forge_attestation(signed, self.attester),
            status="complete",
            message_hash=HexStr(message_id),
        )

    def fetch_message_status(self, message_hash: str) -> MessageStatus:
        if self.status_error is not None:
            raise self.status_error
        return self.status

    def fetch_fast_transfer_fee(self, source_domain: int, destination_domain: int) -> Decimal:
        if self.fee_error is not None:
            raise self.fee_error
        return self.fee_bps


class RecordingNotifier(EventNotifier):
    """Keep notified events in :py:attr:`events`."""

    def __init__(self, fail: bool = False):
        self.events: list[tuple[WebhookEvent, dict, str | None]] = []
        self.fail = fail

    def notify(self, event: WebhookEvent, payload: dict, target_url: str | None = None):
        self.events.append((event, payload, target_url))
        if self.fail:
            raise RuntimeError(f"Webhook delivery blew up for {event.value}")

    def get_event_names(self) -> list[str]:
        return [event.value for event, _, _ in self.events]


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float):
        self.now += seconds
