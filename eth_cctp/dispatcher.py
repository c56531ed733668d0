"""Merchant post-payment hooks.

After a payment to a merchant has been minted, run whatever automation
the merchant has configured in their :py:class:`~eth_cctp.store.MerchantHookConfig`:

1. Notify: ``payment.received`` webhook to the merchant URL
2. Rebalance: forward the received USDC to another chain with a new transfer
3. Swap: build a swap hook for the received USDC. DEX execution is not done here.

Hooks run in this order, one after another. A failing hook is logged
and skipped, the rest still run.
"""

import logging

from eth_account.signers.local import LocalAccount
from eth_typing import HexStr

from eth_cctp.constants import REBALANCE_HOOK_GAS_LIMIT, SWAP_HOOK_GAS_LIMIT
from eth_cctp.hooks import ExecutionTiming, HookMetadata, HookType, derive_swap_hook_id, encode_hook_metadata, encode_swap_callback_data
from eth_cctp.orchestrator import CrossChainTransferResult, TransferOptions, TransferOrchestrator
from eth_cctp.store import MerchantConfigStore, MerchantHookConfig
from eth_cctp.utils import parse_token_amount
from eth_cctp.webhook import EventNotifier, WebhookEvent, create_webhook_payload

logger = logging.getLogger(__name__)


#: Status string in merchant notifications
PAYMENT_RECEIVED_STATUS = "PAYMENT_RECEIVED"


class HookDispatcher:
    """Run merchant hooks for a completed transfer.

    Rebalances are new transfers started through the orchestrator we hold.
    """

    def __init__(
        self,
        orchestrator: TransferOrchestrator,
        notifier: EventNotifier | None,
        store: MerchantConfigStore | None = None,
    ):
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.store = store

    def dispatch(
        self,
        config: MerchantHookConfig,
        transfer: CrossChainTransferResult,
        signer: LocalAccount,
    ) -> list[str]:
        """Run the configured hooks.

        :param config:
            Merchant configuration

        :param transfer:
            The payment the merchant received

        :param signer:
            Merchant wallet on the destination chain, starts rebalance transfers

        :return:
            Tags of the hooks that ran: ``NOTIFICATION``, ``REBALANCE:<hook id>``, ``SWAP:<hook id>``
        """
        executed = []

        if config.webhook_url:
            try:
                self.notify_payment(config, transfer)
                executed.append(HookType.NOTIFICATION.value)
            except Exception:
                logger.warning("Notification hook failed for merchant %s", config.merchant_id, exc_info=True)

        if config.rebalance_target:
            try:
                hook_id = self.rebalance(config, transfer, signer)
                executed.append(f"{HookType.REBALANCE.value}:{hook_id}")
            except Exception:
                logger.warning("Rebalance hook failed for merchant %s", config.merchant_id, exc_info=True)

        if config.auto_swap_token:
            try:
                hook_id = self.swap(config, transfer)
                executed.append(f"{HookType.SWAP.value}:{hook_id}")
            except Exception:
                logger.warning("Swap hook failed for merchant %s", config.merchant_id, exc_info=True)

        logger.info("Merchant %s hooks for %s: %s", config.merchant_id, transfer.message_hash, executed)
        return executed

    def dispatch_for_merchant(
        self,
        merchant_id: str,
        transfer: CrossChainTransferResult,
        signer: LocalAccount,
    ) -> list[str]:
        """Look up the merchant and run their hooks.

        :return:
            Executed hook tags, empty for a merchant without configuration
        """
        assert self.store is not None, "HookDispatcher was created without a merchant store"
        config = self.store.get(merchant_id)
        if config is None:
            logger.info("No hook configuration for merchant %s", merchant_id)
            return []
        return self.dispatch(config, transfer, signer)

    def notify_payment(self, config: MerchantHookConfig, transfer: CrossChainTransferResult):
        assert self.notifier is not None, "No notifier for merchant notifications"
        payload = create_webhook_payload(
            WebhookEvent.PAYMENT_RECEIVED,
            merchantId=config.merchant_id,
            messageHash=transfer.message_hash,
            status=PAYMENT_RECEIVED_STATUS,
        )
        self.notifier.notify(WebhookEvent.PAYMENT_RECEIVED, payload, target_url=config.webhook_url)

    def rebalance(self, config: MerchantHookConfig, transfer: CrossChainTransferResult, signer: LocalAccount) -> HexStr:
        """Forward the payment from its destination chain to the merchant's target chain.

        :return:
            Hook id of the new transfer
        """
        assert transfer.destination_chain, f"Transfer {transfer.message_hash} has no destination chain"
        assert transfer.amount, f"Transfer {transfer.message_hash} has no amount"

        options = TransferOptions(
            hook_metadata=HookMetadata(
                hook_type=HookType.REBALANCE,
                execution_timing=ExecutionTiming.POST_MINT,
                gas_limit=REBALANCE_HOOK_GAS_LIMIT,
            )
        )

        result = self.orchestrator.initiate(
            transfer.destination_chain,
            config.rebalance_target,
            transfer.amount,
            signer.address,
            signer,
            options,
        )
        return result.hook_id

    def swap(self, config: MerchantHookConfig, transfer: CrossChainTransferResult) -> HexStr:
        """Build the swap hook for the received amount.

        :return:
            Swap hook id
        """
        assert transfer.amount, f"Transfer {transfer.message_hash} has no amount"
        raw_amount = parse_token_amount(transfer.amount)

        metadata = HookMetadata(
            hook_type=HookType.SWAP,
            execution_timing=ExecutionTiming.POST_MINT,
            gas_limit=SWAP_HOOK_GAS_LIMIT,
            callback_data=encode_swap_callback_data(config.auto_swap_token, raw_amount),
        )
        hook_data = encode_hook_metadata(metadata)
        hook_id = derive_swap_hook_id(config.auto_swap_token, raw_amount)
        logger.info("Swap hook %s for %s, payload %s, execution left to the DEX integration", hook_id, config.auto_swap_token, hook_data.hex())
        return hook_id
