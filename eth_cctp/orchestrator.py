"""Cross-chain USDC transfer orchestration.

A transfer runs through a fixed pipeline::

    BURNING -> WAITING_ATTESTATION -> READY_TO_MINT -> MINTING -> COMPLETED

and ``FAILED`` from any step before ``COMPLETED``.

- :py:meth:`TransferOrchestrator.initiate` burns on the source chain and waits
  for the Iris attestation. It returns an ``ATTESTED`` :py:class:`CrossChainTransferResult`.
- :py:meth:`TransferOrchestrator.complete` mints on the destination chain.

The result in between is the resumption token: it can be serialised with
:py:meth:`CrossChainTransferResult.to_dict` and minted later by another
process or another signer.

Example::

    from eth_account import Account
    from eth_cctp.config import load_config
    from eth_cctp.orchestrator import TransferOrchestrator, TransferOptions

    orchestrator = TransferOrchestrator.from_config(load_config())
    account = Account.from_key(private_key)

    result = orchestrator.initiate(
        "ethereum",
        "base",
        "100.00",
        account.address,
        account,
        TransferOptions(use_fast_transfer=True),
        on_progress=lambda p: print(p.step.value, p.progress),
    )
    result = orchestrator.complete(result, "base", account)
"""

import enum
import logging
import time
from dataclasses import dataclass, replace
from decimal import ROUND_CEILING, Decimal
from typing import Callable

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress, HexStr
from web3 import Web3

from eth_cctp.abi import ZERO_BYTES32
from eth_cctp.attestation import AttestationClient, IrisAttestationClient, MessageStatus
from eth_cctp.chain import ChainDescriptor, ChainRegistry, create_default_chain_registry
from eth_cctp.config import BridgeConfig
from eth_cctp.constants import (
    FAST_TRANSFER_ATTESTATION_TIMEOUT,
    FAST_TRANSFER_DEFAULT_FEE_BPS,
    FAST_TRANSFER_MINT_ESTIMATE,
    FINALITY_THRESHOLD_FAST,
    FINALITY_THRESHOLD_STANDARD,
    GAS_LIMIT_FAST_BURN,
    GAS_LIMIT_HOOK_BURN,
    GAS_LIMIT_STANDARD_BURN,
    STANDARD_TRANSFER_ATTESTATION_TIMEOUT,
    STANDARD_TRANSFER_MINT_ESTIMATE,
)
from eth_cctp.errors import (
    AttestationMissingError,
    BurnFailureError,
    CCTPError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    MessageNotFoundError,
    MintFailureError,
    UnsupportedChainError,
)
from eth_cctp.gateway import BurnParameters, BurnVariant, FinalityMode, LedgerGateway
from eth_cctp.hooks import HookMetadata, derive_hook_id, encode_hook_metadata
from eth_cctp.poller import AttestationPoller
from eth_cctp.session import create_iris_session
from eth_cctp.utils import format_token_amount, parse_token_amount, unix_timestamp_ms
from eth_cctp.webhook import EventNotifier, WebhookEvent, create_webhook_payload

logger = logging.getLogger(__name__)


class TransferStep(enum.Enum):
    """Where a transfer is in the pipeline."""

    BURNING = "BURNING"
    WAITING_ATTESTATION = "WAITING_ATTESTATION"
    READY_TO_MINT = "READY_TO_MINT"
    MINTING = "MINTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TransferStatus(enum.Enum):
    """Status carried by :py:class:`CrossChainTransferResult`."""

    PENDING = "PENDING"
    ATTESTED = "ATTESTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


#: Legal step changes. WAITING_ATTESTATION -> WAITING_ATTESTATION is a progress update.
TRANSITIONS: dict[TransferStep | None, set[TransferStep]] = {
    None: {TransferStep.BURNING, TransferStep.FAILED},
    TransferStep.BURNING: {TransferStep.WAITING_ATTESTATION, TransferStep.FAILED},
    TransferStep.WAITING_ATTESTATION: {TransferStep.WAITING_ATTESTATION, TransferStep.READY_TO_MINT, TransferStep.FAILED},
    TransferStep.READY_TO_MINT: {TransferStep.MINTING, TransferStep.FAILED},
    TransferStep.MINTING: {TransferStep.COMPLETED, TransferStep.FAILED},
    TransferStep.COMPLETED: set(),
    TransferStep.FAILED: set(),
}


@dataclass(slots=True, frozen=True)
class TransferProgress:
    """One progress event. Not stored anywhere by us."""

    step: TransferStep

    #: Human-readable
    message: str

    #: 0...100
    progress: float

    #: Seconds since the operation started
    time_elapsed: float

    tx_hash: HexStr | None = None


#: Receives progress events
ProgressCallback = Callable[[TransferProgress], None]


class ProgressTracker:
    """Emit progress events for one operation and enforce the step order."""

    def __init__(
        self,
        callback: ProgressCallback | None,
        clock: Callable[[], float] = time.monotonic,
        start_step: TransferStep | None = None,
    ):
        self.callback = callback
        self.clock = clock
        self.started_at = clock()
        self.step = start_step
        self.events: list[TransferProgress] = []

    def emit(self, step: TransferStep, message: str, progress: float, tx_hash: HexStr | None = None) -> TransferProgress:
        assert step in TRANSITIONS[self.step], f"Illegal transfer step change {self.step} -> {step}"
        self.step = step

        event = TransferProgress(
            step=step,
            message=message,
            progress=progress,
            time_elapsed=self.clock() - self.started_at,
            tx_hash=tx_hash,
        )
        self.events.append(event)

        if self.callback:
            try:
                self.callback(event)
            except Exception:
                logger.warning("Progress callback failed for %s", step.value, exc_info=True)

        return event


@dataclass(slots=True)
class TransferOptions:
    """Per transfer settings."""

    #: Ask for fast finality. Ignored when hooks are set or a chain does not support it.
    use_fast_transfer: bool = False

    #: Pre-encoded hook payload
    hooks: bytes | None = None

    #: Hook intent, encoded when :py:attr:`hooks` is not given
    hook_metadata: HookMetadata | None = None

    #: Override the burn gas ceiling
    gas_limit: int | None = None

    #: Fast transfer max fee in raw USDC, looked up from Iris when not set
    max_fee: int | None = None

    #: bytes32 of who may relay the mint, anyone when not set
    destination_caller: bytes | None = None


@dataclass(slots=True, frozen=True)
class BurnResult:
    """A mined burn."""

    tx_hash: HexStr

    message_hash: HexStr

    source_domain: int

    #: Raw CCTP message from ``MessageSent``
    message: bytes

    variant: BurnVariant

    hook_id: HexStr | None = None


@dataclass(slots=True, frozen=True)
class CrossChainTransferResult:
    """Resumable transfer handle.

    Never mutated, :py:meth:`TransferOrchestrator.complete` returns a new copy.
    """

    source_transaction_hash: HexStr

    message_hash: HexStr

    status: TransferStatus

    destination_transaction_hash: HexStr | None = None

    #: Iris signature, needed to mint
    attestation: bytes | None = None

    hook_id: HexStr | None = None

    #: Unix milliseconds
    estimated_completion_time: int | None = None

    transfer_id: HexStr | None = None

    source_chain: str | None = None

    destination_chain: str | None = None

    #: Human-readable USDC amount as given by the caller
    amount: str | None = None

    recipient: HexAddress | None = None

    sender: HexAddress | None = None

    source_domain: int | None = None

    #: Raw CCTP message, relayed to ``receiveMessage()``
    message: bytes | None = None

    #: Burned with fast finality, minted as unfinalized
    use_fast_transfer: bool = False

    enable_hooks: bool = False

    def to_dict(self) -> dict:
        """JSON safe form."""
        return {
            "source_transaction_hash": self.source_transaction_hash,
            "message_hash": self.message_hash,
            "status": self.status.value,
            "destination_transaction_hash": self.destination_transaction_hash,
            "attestation": _to_hex(self.attestation),
            "hook_id": self.hook_id,
            "estimated_completion_time": self.estimated_completion_time,
            "transfer_id": self.transfer_id,
            "source_chain": self.source_chain,
            "destination_chain": self.destination_chain,
            "amount": self.amount,
            "recipient": self.recipient,
            "sender": self.sender,
            "source_domain": self.source_domain,
            "message": _to_hex(self.message),
            "use_fast_transfer": self.use_fast_transfer,
            "enable_hooks": self.enable_hooks,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CrossChainTransferResult":
        data = dict(data)
        data["status"] = TransferStatus(data["status"])
        data["attestation"] = _from_hex(data.get("attestation"))
        data["message"] = _from_hex(data.get("message"))
        return cls(**data)


def _to_hex(value: bytes | None) -> str | None:
    if value is None:
        return None
    return "0x" + value.hex()


def _from_hex(value: str | None) -> bytes | None:
    if value is None:
        return None
    return bytes.fromhex(value.removeprefix("0x"))


def derive_transfer_id(source_chain: str, destination_chain: str, recipient: str, timestamp_ms: int) -> HexStr:
    """Tracking id, keccak256 of ``abi.encodePacked(string, string, string, uint256)``."""
    return HexStr(Web3.solidity_keccak(["string", "string", "string", "uint256"], [source_chain, destination_chain, recipient, timestamp_ms]).to_0x_hex())


class TransferOrchestrator:
    """Run CCTP V2 transfers and report their progress.

    Holds no per transfer state, one instance serves any number of
    transfers from any number of threads.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        gateway: LedgerGateway,
        attestation_client: AttestationClient,
        notifier: EventNotifier | None = None,
        poller: AttestationPoller | None = None,
        fast_transfer_timeout: float = FAST_TRANSFER_ATTESTATION_TIMEOUT,
        standard_transfer_timeout: float = STANDARD_TRANSFER_ATTESTATION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        :param poller:
            Defaults to :py:class:`AttestationPoller` over ``attestation_client``

        :param fast_transfer_timeout:
            Attestation wait budget for fast finality burns, seconds

        :param standard_transfer_timeout:
            Attestation wait budget for standard and hook burns, seconds

        :param clock:
            Monotonic clock for elapsed times
        """
        self.registry = registry
        self.gateway = gateway
        self.attestation_client = attestation_client
        self.notifier = notifier
        self.poller = poller or AttestationPoller(attestation_client)
        self.fast_transfer_timeout = fast_transfer_timeout
        self.standard_transfer_timeout = standard_transfer_timeout
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        gateway: LedgerGateway | None = None,
        notifier: EventNotifier | None = None,
    ) -> "TransferOrchestrator":
        """Wire up the production collaborators.

        :param gateway:
            Defaults to :py:class:`eth_cctp.web3_gateway.Web3LedgerGateway`
        """
        if gateway is None:
            from eth_cctp.web3_gateway import Web3LedgerGateway

            gateway = Web3LedgerGateway()

        client = IrisAttestationClient(config.iris_api_url, create_iris_session(config.circle_api_key))
        return cls(
            registry=create_default_chain_registry(config),
            gateway=gateway,
            attestation_client=client,
            notifier=notifier,
            poller=AttestationPoller(client, poll_interval=config.attestation_poll_interval),
            fast_transfer_timeout=config.fast_transfer_timeout,
            standard_transfer_timeout=config.standard_transfer_timeout,
        )

    def select_burn_variant(self, source: ChainDescriptor, destination: ChainDescriptor, options: TransferOptions) -> BurnVariant:
        """Hooks win over fast finality, fast finality needs both chains to support it."""
        if options.hooks or options.hook_metadata:
            return BurnVariant.with_hook

        if options.use_fast_transfer and self.registry.supports_fast_transfer(source, destination):
            return BurnVariant.fast_finality

        return BurnVariant.standard

    def get_attestation_timeout(self, variant: BurnVariant) -> float:
        if variant == BurnVariant.fast_finality:
            return self.fast_transfer_timeout
        return self.standard_transfer_timeout

    def initiate(
        self,
        source_chain: str,
        destination_chain: str,
        amount: str | Decimal | int,
        recipient: HexAddress | str,
        signer: LocalAccount,
        options: TransferOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CrossChainTransferResult:
        """Burn on the source chain and wait for the attestation.

        Arguments are validated before anything goes over the network.

        :param amount:
            Human-readable USDC, e.g. ``"100.00"``

        :param recipient:
            Who receives USDC on the destination chain

        :param signer:
            Burns on the source chain, needs the balance and allowance

        :param on_progress:
            Receives every :py:class:`TransferProgress`

        :return:
            ``ATTESTED`` result, pass to :py:meth:`complete`

        :raise CCTPError:
            Anything that stopped the transfer. A ``FAILED`` progress
            event has been emitted before.
        """
        options = options or TransferOptions()
        tracker = ProgressTracker(on_progress, self.clock)
        enable_hooks = bool(options.hooks or options.hook_metadata)
        sender = signer.address
        transfer_id = derive_transfer_id(source_chain, destination_chain, str(recipient), unix_timestamp_ms())

        webhook_transfer = {
            "id": transfer_id,
            "sourceChain": source_chain,
            "destinationChain": destination_chain,
            "amount": str(amount),
            "recipient": recipient,
            "sender": sender,
            "useFastTransfer": options.use_fast_transfer,
            "enableHooks": enable_hooks,
        }

        try:
            source = self.registry.get_source(source_chain)
            destination = self.registry.get_destination(destination_chain)
            amount_raw = parse_token_amount(amount)
            recipient = Web3.to_checksum_address(recipient)
            variant = self.select_burn_variant(source, destination, options)
            use_fast_transfer = variant == BurnVariant.fast_finality
            timeout = self.get_attestation_timeout(variant)

            webhook_transfer["recipient"] = recipient
            webhook_transfer["useFastTransfer"] = use_fast_transfer

            logger.info(
                "Starting transfer %s: %s USDC %s -> %s, variant %s, recipient %s",
                transfer_id,
                amount,
                source.key,
                destination.key,
                variant.value,
                recipient,
            )

            self._notify(
                WebhookEvent.TRANSFER_INITIATED,
                {**webhook_transfer, "status": TransferStatus.PENDING.value, "hookId": "pending" if enable_hooks else None},
                {"estimatedCompletionTime": unix_timestamp_ms() + int(timeout * 1000), "progress": 0},
            )

            tracker.emit(TransferStep.BURNING, f"Burning {amount} USDC on {source.name}...", 10)
            self._notify(
                WebhookEvent.TRANSFER_BURNING,
                {**webhook_transfer, "status": TransferStep.BURNING.value},
                {"progress": 10},
            )

            self.check_funds(source, sender, amount_raw)
            burn = self.burn(source, destination, amount_raw, recipient, signer, variant, options)

            webhook_transfer.update(
                {
                    "messageHash": burn.message_hash,
                    "sourceTransactionHash": burn.tx_hash,
                    "hookId": burn.hook_id,
                }
            )

            waiting_message = "Waiting for Circle attestation service..."
            tracker.emit(TransferStep.WAITING_ATTESTATION, waiting_message, 30, tx_hash=burn.tx_hash)
            self._notify(
                WebhookEvent.TRANSFER_ATTESTATION_PENDING,
                {**webhook_transfer, "status": TransferStatus.PENDING.value},
                {"progress": 30},
            )

            def _on_poll_progress(percent: float):
                tracker.emit(TransferStep.WAITING_ATTESTATION, waiting_message, 30 + percent * 0.4, tx_hash=burn.tx_hash)

            attestation = self.poller.poll(
                burn.message_hash,
                timeout,
                on_progress=_on_poll_progress,
                source_domain=burn.source_domain,
                transaction_hash=burn.tx_hash,
            )

            tracker.emit(TransferStep.READY_TO_MINT, f"Ready to mint USDC on {destination.name}", 75)
            self._notify(
                WebhookEvent.TRANSFER_READY_TO_MINT,
                {**webhook_transfer, "status": TransferStep.READY_TO_MINT.value},
                {"progress": 75, "attestation": _to_hex(attestation.attestation)},
            )

            mint_estimate = FAST_TRANSFER_MINT_ESTIMATE if use_fast_transfer else STANDARD_TRANSFER_MINT_ESTIMATE

            return CrossChainTransferResult(
                source_transaction_hash=burn.tx_hash,
                message_hash=burn.message_hash,
                status=TransferStatus.ATTESTED,
                attestation=attestation.attestation,
                hook_id=burn.hook_id,
                estimated_completion_time=unix_timestamp_ms() + mint_estimate * 1000,
                transfer_id=transfer_id,
                source_chain=source.key,
                destination_chain=destination.key,
                amount=str(amount),
                recipient=recipient,
                sender=sender,
                source_domain=burn.source_domain,
                # Prefer the attested copy of the message
                message=attestation.message or burn.message,
                use_fast_transfer=use_fast_transfer,
                enable_hooks=enable_hooks,
            )

        except Exception as e:
            logger.info("Transfer %s failed: %s", transfer_id, e)
            tracker.emit(TransferStep.FAILED, f"Transfer failed: {e}", 0)
            self._notify(
                WebhookEvent.TRANSFER_FAILED,
                {**webhook_transfer, "status": TransferStatus.FAILED.value},
                {"progress": 0, "error": str(e)},
            )
            raise

    def check_funds(self, source: ChainDescriptor, owner: HexAddress | str, amount_raw: int):
        """Check balance and TokenMessengerV2 allowance.

        :raise InsufficientBalanceError:

        :raise InsufficientAllowanceError:
        """
        required = format_token_amount(amount_raw)

        balance = self.gateway.get_balance(source, owner)
        if balance < required:
            raise InsufficientBalanceError(f"Insufficient USDC balance on {source.name}. Have: {balance}, need: {required}", available=balance, required=required)

        allowance = self.gateway.get_allowance(source, owner)
        if allowance < required:
            raise InsufficientAllowanceError(f"Insufficient USDC allowance on {source.name}. Please approve {required} USDC first, current allowance {allowance}", available=allowance, required=required)

    def get_burn_parameters(
        self,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        amount_raw: int,
        variant: BurnVariant,
        options: TransferOptions,
    ) -> BurnParameters:
        """Gas, fee and finality settings for a burn variant."""
        destination_caller = options.destination_caller or ZERO_BYTES32

        match variant:
            case BurnVariant.with_hook:
                hook_data = options.hooks or encode_hook_metadata(options.hook_metadata)
                hook_gas = options.hook_metadata.gas_limit if options.hook_metadata else None
                return BurnParameters(
                    gas_limit=options.gas_limit or hook_gas or GAS_LIMIT_HOOK_BURN,
                    max_fee=0,
                    min_finality_threshold=FINALITY_THRESHOLD_STANDARD,
                    hook_data=hook_data,
                    destination_caller=destination_caller,
                )
            case BurnVariant.fast_finality:
                max_fee = options.max_fee
                if max_fee is None:
                    max_fee = self.get_fast_transfer_max_fee(source, destination, amount_raw)
                return BurnParameters(
                    gas_limit=options.gas_limit or GAS_LIMIT_FAST_BURN,
                    max_fee=max_fee,
                    min_finality_threshold=FINALITY_THRESHOLD_FAST,
                    destination_caller=destination_caller,
                )
            case BurnVariant.standard:
                return BurnParameters(
                    gas_limit=options.gas_limit or GAS_LIMIT_STANDARD_BURN,
                    max_fee=0,
                    min_finality_threshold=FINALITY_THRESHOLD_STANDARD,
                    destination_caller=destination_caller,
                )
            case _:
                raise NotImplementedError(f"Unknown burn variant {variant}")

    def get_fast_transfer_max_fee(self, source: ChainDescriptor, destination: ChainDescriptor, amount_raw: int) -> int:
        """Max fee for a fast burn, raw USDC, rounded up."""
        try:
            fee_bps = self.attestation_client.fetch_fast_transfer_fee(source.domain_id, destination.domain_id)
        except Exception as e:
            logger.warning("Could not fetch fast transfer fee %s -> %s, using %s bps: %s", source.key, destination.key, FAST_TRANSFER_DEFAULT_FEE_BPS, e)
            fee_bps = Decimal(FAST_TRANSFER_DEFAULT_FEE_BPS)

        fee = Decimal(amount_raw) * fee_bps / Decimal(10_000)
        return int(fee.to_integral_value(rounding=ROUND_CEILING))

    def burn(
        self,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        amount_raw: int,
        recipient: HexAddress,
        signer: LocalAccount,
        variant: BurnVariant,
        options: TransferOptions,
    ) -> BurnResult:
        """Submit the burn and read the CCTP message from its receipt.

        :raise BurnFailureError:
            Transaction reverted or could not be broadcasted

        :raise MessageNotFoundError:
            Receipt has no ``MessageSent``
        """
        parameters = self.get_burn_parameters(source, destination, amount_raw, variant, options)

        try:
            pending = self.gateway.submit_burn(
                source,
                amount_raw,
                destination.domain_id,
                recipient,
                source.usdc,
                variant,
                parameters,
                signer,
            )
            receipt = self.gateway.await_receipt(pending)
        except CCTPError:
            raise
        except Exception as e:
            raise BurnFailureError(f"Burn on {source.name} failed: {e}") from e

        if receipt.get("status") != 1:
            raise BurnFailureError(f"Burn transaction {pending.tx_hash} reverted on {source.name}")

        protocol_message = self.gateway.extract_protocol_message(source, receipt)

        hook_id = None
        if variant == BurnVariant.with_hook:
            hook_id = derive_hook_id(source.key, destination.key, protocol_message.message_hash)

        logger.info("Burned on %s, tx %s, message %s", source.name, pending.tx_hash, protocol_message.message_hash)

        return BurnResult(
            tx_hash=pending.tx_hash,
            message_hash=protocol_message.message_hash,
            source_domain=source.domain_id,
            message=protocol_message.message,
            variant=variant,
            hook_id=hook_id,
        )

    def complete(
        self,
        result: CrossChainTransferResult,
        destination_chain: str,
        signer: LocalAccount,
        on_progress: ProgressCallback | None = None,
    ) -> CrossChainTransferResult:
        """Mint on the destination chain.

        Safe to call again with the same ``result`` after a failure,
        MessageTransmitterV2 refuses to mint the same message twice.

        :param result:
            ``ATTESTED`` result from :py:meth:`initiate`

        :param signer:
            Pays gas for ``receiveMessage()``, does not need to be the burner

        :return:
            Copy of ``result`` with ``COMPLETED`` status and the mint transaction hash

        :raise AttestationMissingError:
            ``result`` has no attestation

        :raise MintFailureError:
            Mint transaction failed
        """
        tracker = ProgressTracker(on_progress, self.clock, start_step=TransferStep.READY_TO_MINT)

        webhook_transfer = {
            "id": result.transfer_id or result.source_transaction_hash,
            "messageHash": result.message_hash,
            "sourceChain": result.source_chain,
            "destinationChain": destination_chain,
            "amount": result.amount,
            "recipient": result.recipient,
            "sender": signer.address,
            "sourceTransactionHash": result.source_transaction_hash,
            "useFastTransfer": result.use_fast_transfer,
            "enableHooks": result.enable_hooks,
            "hookId": result.hook_id,
        }

        try:
            if not result.attestation:
                raise AttestationMissingError(f"Transfer {result.message_hash} has no attestation, cannot mint")

            destination = self.registry.get_destination(destination_chain)
            if result.destination_chain and result.destination_chain != destination.key:
                raise UnsupportedChainError(f"Transfer {result.message_hash} was burned for {result.destination_chain}, cannot mint on {destination.key}")

            tracker.emit(TransferStep.MINTING, f"Minting USDC on {destination.name}...", 80)
            self._notify(
                WebhookEvent.TRANSFER_MINTING,
                {**webhook_transfer, "status": TransferStep.MINTING.value},
                {"progress": 80, "attestation": _to_hex(result.attestation)},
            )

            message = self.resolve_message(result)
            finality_mode = FinalityMode.unfinalized if result.use_fast_transfer else FinalityMode.finalized

            try:
                pending = self.gateway.submit_mint(destination, message, result.attestation, signer, finality_mode)
                receipt = self.gateway.await_receipt(pending)
            except CCTPError:
                raise
            except Exception as e:
                raise MintFailureError(f"Mint on {destination.name} failed: {e}") from e

            if receipt.get("status") != 1:
                raise MintFailureError(f"receiveMessage() transaction {pending.tx_hash} reverted on {destination.name}")

            tracker.emit(TransferStep.COMPLETED, "Transfer completed successfully!", 100, tx_hash=pending.tx_hash)
            self._notify(
                WebhookEvent.TRANSFER_COMPLETED,
                {**webhook_transfer, "status": TransferStatus.COMPLETED.value, "destinationTransactionHash": pending.tx_hash},
                {"progress": 100},
            )

            logger.info("Transfer %s completed, mint tx %s", result.message_hash, pending.tx_hash)

            return replace(
                result,
                destination_transaction_hash=pending.tx_hash,
                status=TransferStatus.COMPLETED,
                message=message,
            )

        except Exception as e:
            logger.info("Mint of %s failed: %s", result.message_hash, e)
            tracker.emit(TransferStep.FAILED, f"Minting failed: {e}", 80)
            self._notify(
                WebhookEvent.TRANSFER_FAILED,
                {**webhook_transfer, "status": TransferStatus.FAILED.value},
                {"progress": 80, "error": str(e)},
            )
            raise

    def resolve_message(self, result: CrossChainTransferResult) -> bytes:
        """Get the raw message for a transfer, asking Iris if the result lacks it.

        :raise MessageNotFoundError:
            Neither the result nor Iris has the message
        """
        if result.message:
            return result.message

        message = self.attestation_client.fetch_message(
            result.message_hash,
            source_domain=result.source_domain,
            transaction_hash=result.source_transaction_hash,
        )
        if not message:
            raise MessageNotFoundError(f"Could not find message bytes for {result.message_hash}")
        return message

    def auto_complete(
        self,
        source_chain: str,
        destination_chain: str,
        amount: str | Decimal | int,
        recipient: HexAddress | str,
        source_signer: LocalAccount,
        destination_signer: LocalAccount,
        options: TransferOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CrossChainTransferResult:
        """:py:meth:`initiate` and then :py:meth:`complete`."""
        result = self.initiate(source_chain, destination_chain, amount, recipient, source_signer, options, on_progress=on_progress)
        return self.complete(result, destination_chain, destination_signer, on_progress=on_progress)

    def get_status(self, message_hash: str) -> TransferProgress:
        """Ask Iris where a message is.

        Best effort, never raises. Query failures come back as a ``FAILED`` progress.
        """
        try:
            status = self.attestation_client.fetch_message_status(message_hash)
        except Exception as e:
            logger.warning("Failed to get transfer status for %s: %s", message_hash, e)
            return TransferProgress(TransferStep.FAILED, "Failed to get transfer status", 0, 0)

        match status:
            case MessageStatus.pending:
                return TransferProgress(TransferStep.WAITING_ATTESTATION, "Waiting for attestation...", 40, 0)
            case MessageStatus.attested:
                return TransferProgress(TransferStep.READY_TO_MINT, "Ready to mint on destination chain", 75, 0)
            case MessageStatus.completed:
                return TransferProgress(TransferStep.COMPLETED, "Transfer completed", 100, 0)
            case _:
                return TransferProgress(TransferStep.WAITING_ATTESTATION, "Processing...", 20, 0)

    def approve(self, chain: str, amount: str | Decimal | int, signer: LocalAccount) -> HexStr:
        """Approve TokenMessengerV2 to burn USDC on a source chain.

        :return:
            Approve transaction hash
        """
        source = self.registry.get_source(chain)
        amount_raw = parse_token_amount(amount)
        return self.gateway.approve(source, amount_raw, signer)

    def estimate_transfer_time(self, source_chain: str, destination_chain: str, use_fast_transfer: bool) -> tuple[int, int]:
        """Rough (min, max) seconds until the attestation is available."""
        source = self.registry.get(source_chain)
        destination = self.registry.get(destination_chain)
        if use_fast_transfer and self.registry.supports_fast_transfer(source, destination):
            return 60, 900
        return 600, 2400

    def estimate_transfer_fee(self, source_chain: str, destination_chain: str, amount: str, use_fast_transfer: bool = True) -> Decimal:
        """Protocol fee in USDC for moving ``amount``.

        Standard transfers are free. Fast transfers pay the Iris quoted fee,
        the same one used as ``maxFee`` in the burn. Gas is not included.

        :param amount:
            Human readable USDC amount, e.g. ``"25.00"``
        """
        source = self.registry.get(source_chain)
        destination = self.registry.get(destination_chain)
        amount_raw = parse_token_amount(amount)
        if not (use_fast_transfer and self.registry.supports_fast_transfer(source, destination)):
            return Decimal(0)
        return format_token_amount(self.get_fast_transfer_max_fee(source, destination, amount_raw))

    def _notify(self, event: WebhookEvent, transfer: dict, metadata: dict | None = None):
        if self.notifier is None:
            return

        try:
            payload = create_webhook_payload(event, transfer, metadata)
            self.notifier.notify(event, payload)
        except Exception:
            # Webhooks never break a transfer
            logger.warning("Event notifier failed for %s", event.value, exc_info=True)
