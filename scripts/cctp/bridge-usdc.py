"""Bridge USDC between two chains over CCTP V2.

- Burns on the source chain, waits for the Circle attestation and mints on the destination chain
- Approves TokenMessengerV2 first if the allowance is short
- Stores the attested transfer in ``transfer.json`` so a failed mint can be retried with ``RESUME=true``

Usage:

.. code-block:: shell

    export PRIVATE_KEY=0x...
    export CCTP_ENVIRONMENT=testnet
    export SOURCE_CHAIN=ethereum
    export DESTINATION_CHAIN=base
    export AMOUNT=1.00
    export FAST=true
    python scripts/cctp/bridge-usdc.py
"""

import json
import os
import sys
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount

from eth_cctp.config import load_config, validate_config
from eth_cctp.gateway import PendingTransaction
from eth_cctp.orchestrator import CrossChainTransferResult, TransferOptions, TransferOrchestrator, TransferProgress
from eth_cctp.utils import format_token_amount, parse_token_amount, setup_console_logging
from eth_cctp.webhook import WebhookNotifier, WebhookRegistry

setup_console_logging(default_log_level="info")

private_key = os.environ.get("PRIVATE_KEY")
assert private_key is not None, "You must set PRIVATE_KEY environment variable"
assert private_key.startswith("0x"), "Private key must start with 0x hex prefix"
account: LocalAccount = Account.from_key(private_key)

source_chain = os.environ.get("SOURCE_CHAIN", "ethereum")
destination_chain = os.environ.get("DESTINATION_CHAIN", "base")
amount = os.environ.get("AMOUNT", "1.00")
recipient = os.environ.get("RECIPIENT", account.address)
use_fast_transfer = os.environ.get("FAST", "false").lower() == "true"
resume = os.environ.get("RESUME", "false").lower() == "true"
state_file = Path(os.environ.get("STATE_FILE", "transfer.json")).absolute()
webhooks_file = os.environ.get("WEBHOOKS_FILE")

config = load_config()
problems = validate_config(config)
assert not problems, f"Configuration problems: {problems}"

webhooks = WebhookRegistry(Path(webhooks_file).absolute() if webhooks_file else None)
webhooks.load()
orchestrator = TransferOrchestrator.from_config(config, notifier=WebhookNotifier(webhooks, timeout=config.webhook_timeout))


def print_progress(progress: TransferProgress):
    tx = f" tx {progress.tx_hash}" if progress.tx_hash else ""
    print(f"[{progress.progress:5.1f}%] {progress.step.value}: {progress.message}{tx}")


if resume:
    result = CrossChainTransferResult.from_dict(json.loads(state_file.read_text()))
    print(f"Resuming mint of {result.amount} USDC, message {result.message_hash}")
else:
    source = orchestrator.registry.get_source(source_chain)
    balance = orchestrator.gateway.get_balance(source, account.address)
    allowance = orchestrator.gateway.get_allowance(source, account.address)
    low, high = orchestrator.estimate_transfer_time(source_chain, destination_chain, use_fast_transfer)

    print(f"Bridging {amount} USDC {source_chain} -> {destination_chain}, recipient {recipient}")
    print(f"Your USDC balance on {source.name} is {balance}, allowance {allowance}")
    print(f"Attestation expected in {low // 60} - {high // 60} minutes")

    confirm = input("Ok [y/n]? ")
    if not confirm.lower().startswith("y"):
        print("Aborted")
        sys.exit(1)

    if allowance < format_token_amount(parse_token_amount(amount)):
        tx_hash = orchestrator.approve(source_chain, amount, account)
        print(f"Approve broadcasted {tx_hash}, waiting for mining")
        orchestrator.gateway.await_receipt(PendingTransaction(source, tx_hash))

    result = orchestrator.initiate(
        source_chain,
        destination_chain,
        amount,
        recipient,
        account,
        TransferOptions(use_fast_transfer=use_fast_transfer),
        on_progress=print_progress,
    )
    state_file.write_text(json.dumps(result.to_dict(), indent=2))
    print(f"Attested transfer saved to {state_file}")

result = orchestrator.complete(result, result.destination_chain, account, on_progress=print_progress)
state_file.write_text(json.dumps(result.to_dict(), indent=2))

print(f"Minted on {result.destination_chain}, tx {result.destination_transaction_hash}")
print("All ok!")
