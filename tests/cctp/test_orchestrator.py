"""Transfer orchestrator tests against in-memory chains and Iris."""

import itertools
import json
from dataclasses import replace
from decimal import Decimal

import pytest
from eth_account import Account

from eth_cctp.attestation import MessageStatus
from eth_cctp.constants import (
    FINALITY_THRESHOLD_FAST,
    FINALITY_THRESHOLD_STANDARD,
    GAS_LIMIT_FAST_BURN,
    GAS_LIMIT_HOOK_BURN,
    GAS_LIMIT_STANDARD_BURN,
)
from eth_cctp.errors import (
    AttestationMissingError,
    AttestationTimeoutError,
    BurnFailureError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAmountError,
    MessageNotFoundError,
    MintFailureError,
    UnsupportedChainError,
)
from eth_cctp.gateway import BurnVariant, FinalityMode
from eth_cctp.hooks import ExecutionTiming, HookMetadata, HookType, derive_hook_id, encode_hook_metadata
from eth_cctp.orchestrator import CrossChainTransferResult, ProgressTracker, TransferOptions, TransferStatus, TransferStep
from eth_cctp.testing import RecordingNotifier

CHAINS = ["ethereum", "base", "arbitrum", "polygon"]


def _burn_call(gateway) -> dict:
    burns = gateway.get_calls("submit_burn")
    assert len(burns) == 1
    return burns[0]


@pytest.mark.parametrize("source,destination", list(itertools.permutations(CHAINS, 2)))
@pytest.mark.parametrize("use_fast_transfer", [True, False])
def test_hook_payload_wins_over_fast_transfer(orchestrator, gateway, signer, recipient, source, destination, use_fast_transfer):
    """Hooks select depositForBurnWithHook() whatever the fast flag says."""
    metadata = HookMetadata(HookType.NOTIFICATION, ExecutionTiming.POST_MINT)
    options = TransferOptions(use_fast_transfer=use_fast_transfer, hook_metadata=metadata)

    result = orchestrator.initiate(source, destination, "1.00", recipient, signer, options)

    burn = _burn_call(gateway)
    assert burn["variant"] == BurnVariant.with_hook
    assert burn["parameters"].hook_data == encode_hook_metadata(metadata)
    assert burn["parameters"].min_finality_threshold == FINALITY_THRESHOLD_STANDARD
    assert result.use_fast_transfer is False
    assert result.enable_hooks is True


@pytest.mark.parametrize("amount", ["0", "-1", "0.00", "abc", "", "1.0000001", "NaN", 0, -5, 1.5])
def test_invalid_amount_fails_before_network(orchestrator, gateway, attestation_client, notifier, signer, recipient, amount):
    events = []
    with pytest.raises(InvalidAmountError):
        orchestrator.initiate("ethereum", "base", amount, recipient, signer, on_progress=events.append)

    assert gateway.calls == []
    assert attestation_client.calls == []
    assert [e.step for e in events] == [TransferStep.FAILED]
    assert events[0].progress == 0
    assert notifier.get_event_names() == ["transfer.failed"]


def test_unsupported_chain(orchestrator, gateway, signer, recipient):
    with pytest.raises(UnsupportedChainError):
        orchestrator.initiate("solana", "base", "1", recipient, signer)
    assert gateway.calls == []


def test_fast_transfer_ethereum_to_base(orchestrator, gateway, attestation_client, signer, recipient):
    """Both chains support fast finality, so we burn with threshold 1000 and a fee."""
    attestation_client.fee_bps = Decimal(1)

    result = orchestrator.initiate("ethereum", "base", "100.00", recipient, signer, TransferOptions(use_fast_transfer=True))

    burn = _burn_call(gateway)
    assert burn["variant"] == BurnVariant.fast_finality
    assert burn["parameters"].min_finality_threshold == FINALITY_THRESHOLD_FAST
    assert burn["parameters"].gas_limit == GAS_LIMIT_FAST_BURN
    # 1 bps of 100 USDC
    assert burn["parameters"].max_fee == 10_000
    assert result.use_fast_transfer is True
    assert result.status == TransferStatus.ATTESTED


def test_fast_transfer_timeout_is_short(orchestrator, attestation_client, clock, signer, recipient):
    """Fast transfers give up on the attestation after 15 minutes."""
    attestation_client.never_ready = True
    attestation_client.script.clear()

    with pytest.raises(AttestationTimeoutError) as exc_info:
        orchestrator.initiate("ethereum", "base", "100.00", recipient, signer, TransferOptions(use_fast_transfer=True))

    assert 900 <= exc_info.value.elapsed <= 900 + 10
    assert exc_info.value.attempts == 90


def test_fast_transfer_fee_lookup_failure_uses_default(orchestrator, gateway, attestation_client, signer, recipient):
    attestation_client.fee_error = RuntimeError("Iris down")
    orchestrator.initiate("ethereum", "base", "100.00", recipient, signer, TransferOptions(use_fast_transfer=True))
    assert _burn_call(gateway)["parameters"].max_fee == 10_000


def test_fast_transfer_falls_back_to_standard(orchestrator, gateway, signer, recipient):
    """Polygon does not do fast finality, the request is ignored."""
    result = orchestrator.initiate("ethereum", "polygon", "100.00", recipient, signer, TransferOptions(use_fast_transfer=True))

    burn = _burn_call(gateway)
    assert burn["variant"] == BurnVariant.standard
    assert burn["parameters"].min_finality_threshold == FINALITY_THRESHOLD_STANDARD
    assert burn["parameters"].max_fee == 0
    assert burn["parameters"].gas_limit == GAS_LIMIT_STANDARD_BURN
    assert result.use_fast_transfer is False


def test_standard_transfer_timeout_is_long(orchestrator, attestation_client, signer, recipient):
    attestation_client.never_ready = True
    attestation_client.script.clear()

    with pytest.raises(AttestationTimeoutError) as exc_info:
        orchestrator.initiate("ethereum", "polygon", "100.00", recipient, signer)

    assert 2400 <= exc_info.value.elapsed <= 2400 + 10


def test_missing_message_sent_fails(orchestrator, gateway, attestation_client, notifier, signer, recipient):
    gateway.emit_message_sent = False
    events = []

    with pytest.raises(MessageNotFoundError):
        orchestrator.initiate("ethereum", "base", "10", recipient, signer, on_progress=events.append)

    assert events[-1].step == TransferStep.FAILED
    assert events[-1].progress == 0
    assert attestation_client.calls == []
    assert notifier.get_event_names()[-1] == "transfer.failed"
    assert notifier.events[-1][1]["metadata"]["error"]


def test_reverted_burn_fails(orchestrator, gateway, signer, recipient):
    gateway.burn_status = 0
    with pytest.raises(BurnFailureError) as exc_info:
        orchestrator.initiate("ethereum", "base", "10", recipient, signer)
    assert "reverted" in str(exc_info.value)


def test_initiate_progress_sequence(orchestrator, signer, recipient):
    events = []
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer, on_progress=events.append)

    steps = [e.step for e in events]
    assert steps[0] == TransferStep.BURNING
    assert steps[-1] == TransferStep.READY_TO_MINT
    assert set(steps[1:-1]) == {TransferStep.WAITING_ATTESTATION}

    assert events[0].progress == 10
    assert events[1].progress == 30
    assert events[1].tx_hash == result.source_transaction_hash
    assert events[-2].progress == 70
    assert events[-1].progress == 75

    progress = [e.progress for e in events]
    assert progress == sorted(progress)
    assert all(30 <= e.progress <= 70 for e in events if e.step == TransferStep.WAITING_ATTESTATION)


def test_initiate_result(orchestrator, gateway, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    assert result.status == TransferStatus.ATTESTED
    assert len(result.attestation) == 65
    assert result.message_hash in gateway.messages
    assert result.message == gateway.messages[result.message_hash]
    assert result.source_domain == 0
    assert result.hook_id is None
    assert result.estimated_completion_time > 0
    assert result.transfer_id.startswith("0x")


def test_hook_id_and_gas(orchestrator, gateway, signer, recipient):
    metadata = HookMetadata(HookType.REBALANCE, ExecutionTiming.POST_MINT, gas_limit=600_000)
    result = orchestrator.initiate("base", "arbitrum", "5", recipient, signer, TransferOptions(hook_metadata=metadata))

    assert result.hook_id == derive_hook_id("base", "arbitrum", result.message_hash)
    assert _burn_call(gateway)["parameters"].gas_limit == 600_000


def test_pre_encoded_hooks_default_gas(orchestrator, gateway, signer, recipient):
    hooks = encode_hook_metadata(HookMetadata(HookType.CUSTOM))
    orchestrator.initiate("base", "arbitrum", "5", recipient, signer, TransferOptions(hooks=hooks))

    burn = _burn_call(gateway)
    assert burn["parameters"].hook_data == hooks
    assert burn["parameters"].gas_limit == GAS_LIMIT_HOOK_BURN


def test_insufficient_balance(orchestrator, gateway, signer, recipient):
    gateway.balances[("ethereum", signer.address.lower())] = Decimal("50")

    with pytest.raises(InsufficientBalanceError) as exc_info:
        orchestrator.initiate("ethereum", "base", "100", recipient, signer)

    assert exc_info.value.available == Decimal("50")
    assert exc_info.value.required == Decimal("100")
    assert gateway.get_calls("submit_burn") == []


def test_insufficient_allowance(orchestrator, gateway, signer, recipient):
    gateway.allowances[("ethereum", signer.address.lower())] = Decimal("99.999999")

    with pytest.raises(InsufficientAllowanceError):
        orchestrator.initiate("ethereum", "base", "100", recipient, signer)

    assert gateway.get_calls("submit_burn") == []


def test_webhook_order(orchestrator, notifier, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    orchestrator.complete(result, "base", signer)

    assert notifier.get_event_names() == [
        "transfer.initiated",
        "transfer.burning",
        "transfer.attestation_pending",
        "transfer.ready_to_mint",
        "transfer.minting",
        "transfer.completed",
    ]

    for event, payload, target_url in notifier.events:
        assert payload["event"] == event.value
        assert isinstance(payload["timestamp"], int)
        assert payload["transfer"]["sourceChain"] == "ethereum"
        assert payload["transfer"]["destinationChain"] == "base"
        assert target_url is None

    pending = notifier.events[2][1]
    assert pending["transfer"]["messageHash"] == result.message_hash
    assert pending["transfer"]["sourceTransactionHash"] == result.source_transaction_hash

    ready = notifier.events[3][1]
    assert ready["metadata"]["attestation"] == "0x" + result.attestation.hex()

    completed = notifier.events[-1][1]
    assert completed["transfer"]["status"] == "COMPLETED"
    assert completed["transfer"]["destinationTransactionHash"].startswith("0x")
    json.dumps(completed)


def test_notifier_failure_does_not_break_transfer(orchestrator, signer, recipient):
    orchestrator.notifier = RecordingNotifier(fail=True)
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    result = orchestrator.complete(result, "base", signer)
    assert result.status == TransferStatus.COMPLETED


def test_complete(orchestrator, gateway, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)

    relayer = Account.create()
    events = []
    completed = orchestrator.complete(result, "base", relayer, on_progress=events.append)

    assert completed.status == TransferStatus.COMPLETED
    assert completed.destination_transaction_hash.startswith("0x")
    assert completed.message_hash == result.message_hash
    # The original handle is untouched
    assert result.status == TransferStatus.ATTESTED
    assert result.destination_transaction_hash is None

    assert [(e.step, e.progress) for e in events] == [(TransferStep.MINTING, 80), (TransferStep.COMPLETED, 100)]
    assert events[-1].tx_hash == completed.destination_transaction_hash

    mint = gateway.get_calls("submit_mint")[0]
    assert mint["chain"] == "base"
    assert mint["message"] == result.message
    assert mint["attestation"] == result.attestation
    assert mint["finality_mode"] == FinalityMode.finalized


def test_complete_fast_transfer_mints_unfinalized(orchestrator, gateway, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer, TransferOptions(use_fast_transfer=True))
    orchestrator.complete(result, "base", signer)
    assert gateway.get_calls("submit_mint")[0]["finality_mode"] == FinalityMode.unfinalized


def test_complete_twice(orchestrator, gateway, signer, recipient):
    """Second mint reaches the chain, the chain refuses the used nonce."""
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    orchestrator.complete(result, "base", signer)

    with pytest.raises(MintFailureError):
        orchestrator.complete(result, "base", signer)

    assert len(gateway.get_calls("submit_mint")) == 2


def test_complete_retry_after_failure(orchestrator, gateway, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)

    gateway.mint_error = ConnectionError("RPC went away")
    events = []
    with pytest.raises(MintFailureError):
        orchestrator.complete(result, "base", signer, on_progress=events.append)
    assert events[-1].step == TransferStep.FAILED
    assert events[-1].progress == 80

    gateway.mint_error = None
    completed = orchestrator.complete(result, "base", signer)
    assert completed.status == TransferStatus.COMPLETED


def test_complete_without_attestation(orchestrator, gateway, notifier, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    events = []

    with pytest.raises(AttestationMissingError):
        orchestrator.complete(replace(result, attestation=None), "base", signer, on_progress=events.append)

    assert gateway.get_calls("submit_mint") == []
    assert [(e.step, e.progress) for e in events] == [(TransferStep.FAILED, 80)]
    assert notifier.get_event_names()[-1] == "transfer.failed"


def test_complete_reverted_mint(orchestrator, gateway, notifier, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    gateway.mint_status = 0

    with pytest.raises(MintFailureError):
        orchestrator.complete(result, "base", signer)

    assert notifier.get_event_names()[-1] == "transfer.failed"
    assert notifier.events[-1][1]["metadata"]["progress"] == 80


def test_complete_wrong_destination(orchestrator, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    with pytest.raises(UnsupportedChainError):
        orchestrator.complete(result, "arbitrum", signer)


def test_complete_looks_up_missing_message(orchestrator, gateway, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    completed = orchestrator.complete(replace(result, message=None), "base", signer)

    assert completed.status == TransferStatus.COMPLETED
    assert gateway.get_calls("submit_mint")[0]["message"] == result.message


def test_complete_message_not_found(orchestrator, attestation_client, signer, recipient):
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer)
    attestation_client.messages = {}

    with pytest.raises(MessageNotFoundError):
        orchestrator.complete(replace(result, message=None), "base", signer)


def test_resume_from_serialised_result(orchestrator, signer, recipient):
    """Burn in one session, mint in another from the stored JSON."""
    result = orchestrator.initiate("ethereum", "base", "5", recipient, signer, TransferOptions(use_fast_transfer=True))

    stored = json.dumps(result.to_dict())
    restored = CrossChainTransferResult.from_dict(json.loads(stored))
    assert restored == result

    completed = orchestrator.complete(restored, "base", Account.create())
    assert completed.status == TransferStatus.COMPLETED


def test_auto_complete(orchestrator, gateway, signer, recipient):
    destination_signer = Account.create()
    events = []

    result = orchestrator.auto_complete("ethereum", "base", "5", recipient, signer, destination_signer, on_progress=events.append)

    assert result.status == TransferStatus.COMPLETED
    assert events[0].step == TransferStep.BURNING
    assert events[-1].step == TransferStep.COMPLETED


def test_auto_complete_stops_when_initiate_fails(orchestrator, gateway, signer, recipient):
    gateway.balances[("ethereum", signer.address.lower())] = Decimal(0)

    with pytest.raises(InsufficientBalanceError):
        orchestrator.auto_complete("ethereum", "base", "5", recipient, signer, Account.create())

    assert gateway.get_calls("submit_mint") == []


@pytest.mark.parametrize(
    "status,step,progress",
    [
        (MessageStatus.pending, TransferStep.WAITING_ATTESTATION, 40),
        (MessageStatus.attested, TransferStep.READY_TO_MINT, 75),
        (MessageStatus.completed, TransferStep.COMPLETED, 100),
        (MessageStatus.unknown, TransferStep.WAITING_ATTESTATION, 20),
    ],
)
def test_get_status(orchestrator, attestation_client, status, step, progress):
    attestation_client.status = status
    result = orchestrator.get_status("0x" + "11" * 32)
    assert result.step == step
    assert result.progress == progress


def test_get_status_does_not_raise(orchestrator, attestation_client):
    attestation_client.status_error = RuntimeError("Iris down")
    result = orchestrator.get_status("0x" + "11" * 32)
    assert result.step == TransferStep.FAILED
    assert result.progress == 0


def test_approve(orchestrator, gateway, signer):
    tx_hash = orchestrator.approve("ethereum", "250.5", signer)
    assert tx_hash.startswith("0x")
    assert gateway.get_calls("approve") == [{"chain": "ethereum", "amount_raw": 250_500_000}]


def test_estimate_transfer_time(orchestrator):
    assert orchestrator.estimate_transfer_time("ethereum", "base", True) == (60, 900)
    assert orchestrator.estimate_transfer_time("ethereum", "base", False) == (600, 2400)
    assert orchestrator.estimate_transfer_time("ethereum", "polygon", True) == (600, 2400)


def test_estimate_transfer_fee(orchestrator, attestation_client):
    attestation_client.fee_bps = Decimal(1)
    assert orchestrator.estimate_transfer_fee("ethereum", "base", "100.00") == Decimal("0.01")
    assert orchestrator.estimate_transfer_fee("ethereum", "base", "100.00", use_fast_transfer=False) == 0
    # Polygon has no fast finality
    assert orchestrator.estimate_transfer_fee("ethereum", "polygon", "100.00") == 0

    attestation_client.fee_error = RuntimeError("Iris down")
    assert orchestrator.estimate_transfer_fee("ethereum", "base", "100.00") == Decimal("0.01")


def test_progress_tracker_refuses_skipping_steps(clock):
    tracker = ProgressTracker(None, clock)
    tracker.emit(TransferStep.BURNING, "Burning", 10)
    with pytest.raises(AssertionError):
        tracker.emit(TransferStep.MINTING, "Minting", 80)


def test_progress_callback_errors_are_contained(clock):
    def _callback(progress):
        raise RuntimeError("UI went away")

    tracker = ProgressTracker(_callback, clock)
    event = tracker.emit(TransferStep.BURNING, "Burning", 10)
    assert event.step == TransferStep.BURNING
    assert tracker.events == [event]
