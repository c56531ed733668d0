"""Ledger gateway over web3.py.

Builds, signs and broadcasts CCTP V2 transactions with a local private key.

Example::

    from eth_account import Account
    from eth_cctp.config import load_config
    from eth_cctp.chain import create_default_chain_registry
    from eth_cctp.web3_gateway import Web3LedgerGateway

    registry = create_default_chain_registry(load_config())
    gateway = Web3LedgerGateway()
    balance = gateway.get_balance(registry.get("base"), "0x...")
"""

import logging
import threading
from decimal import Decimal

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress, HexStr
from web3 import HTTPProvider, Web3
from web3.contract.contract import ContractFunction
from web3.logs import DISCARD
from web3.middleware import ExtraDataToPOAMiddleware

from eth_cctp.abi import get_erc20, get_message_transmitter_v2, get_token_messenger_v2
from eth_cctp.chain import ChainDescriptor
from eth_cctp.constants import GAS_LIMIT_RECEIVE_FINALIZED, GAS_LIMIT_RECEIVE_UNFINALIZED
from eth_cctp.errors import MessageNotFoundError
from eth_cctp.gateway import BurnParameters, BurnVariant, FinalityMode, LedgerGateway, PendingTransaction, ProtocolMessage
from eth_cctp.utils import format_token_amount

logger = logging.getLogger(__name__)


#: Chains that put more than 32 bytes in block extraData
POA_MIDDLEWARE_NEEDED_CHAIN_IDS = {
    137,  # Polygon
    43113,  # Avalanche Fuji
    43114,  # Avalanche C-chain
}

#: Gas ceiling for ERC-20 approve()
GAS_LIMIT_APPROVE = 100_000


def encode_mint_recipient(address: HexAddress | str) -> bytes:
    """Convert an Ethereum address to bytes32 format for the ``mintRecipient`` parameter.

    CCTP uses bytes32 for recipient addresses to support non-EVM chains.
    For EVM chains, the address is left-padded with zeros to 32 bytes.

    :param address:
        Ethereum address (0x-prefixed hex string)

    :return:
        32-byte representation of the address
    """
    address = Web3.to_checksum_address(address)
    # Remove 0x prefix, left-pad to 64 hex chars (32 bytes)
    return bytes.fromhex(address[2:].lower().zfill(64))


class Web3LedgerGateway(LedgerGateway):
    """CCTP V2 chain access through JSON-RPC.

    - One lazily created :py:class:`Web3` per chain, shared by all transfers
    - Transactions are signed locally with :py:class:`LocalAccount` and sent raw
    - Gas ceilings come from :py:class:`BurnParameters`, we never estimate
    """

    def __init__(self, request_timeout: float = 30.0, receipt_timeout: float = 600.0):
        """
        :param request_timeout:
            JSON-RPC HTTP timeout, seconds

        :param receipt_timeout:
            How long to wait for a transaction to be mined, seconds
        """
        self.request_timeout = request_timeout
        self.receipt_timeout = receipt_timeout
        self._connections: dict[str, Web3] = {}
        self._lock = threading.Lock()

    def get_web3(self, chain: ChainDescriptor) -> Web3:
        """Get the connection for a chain."""
        with self._lock:
            web3 = self._connections.get(chain.key)
            if web3 is None:
                web3 = Web3(HTTPProvider(chain.rpc_url, request_kwargs={"timeout": self.request_timeout}))
                if chain.chain_id in POA_MIDDLEWARE_NEEDED_CHAIN_IDS:
                    web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
                self._connections[chain.key] = web3
                logger.info("Connected to %s at %s", chain.name, chain.rpc_url)
            return web3

    def get_balance(self, chain: ChainDescriptor, address: HexAddress | str) -> Decimal:
        web3 = self.get_web3(chain)
        usdc = get_erc20(web3, chain.usdc)
        raw = usdc.functions.balanceOf(Web3.to_checksum_address(address)).call()
        return format_token_amount(raw)

    def get_allowance(self, chain: ChainDescriptor, owner: HexAddress | str) -> Decimal:
        web3 = self.get_web3(chain)
        usdc = get_erc20(web3, chain.usdc)
        raw = usdc.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(chain.token_messenger),
        ).call()
        return format_token_amount(raw)

    def approve(self, chain: ChainDescriptor, amount_raw: int, signer: LocalAccount) -> HexStr:
        web3 = self.get_web3(chain)
        usdc = get_erc20(web3, chain.usdc)
        func = usdc.functions.approve(Web3.to_checksum_address(chain.token_messenger), amount_raw)
        tx_hash = self._sign_and_send(web3, chain, func, signer, GAS_LIMIT_APPROVE)
        logger.info("Approved %d raw USDC to TokenMessengerV2 on %s, tx %s", amount_raw, chain.name, tx_hash)
        return tx_hash

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
        web3 = self.get_web3(chain)
        token_messenger = get_token_messenger_v2(web3, chain.token_messenger)

        args = [
            amount_raw,
            destination_domain,
            encode_mint_recipient(mint_recipient),
            Web3.to_checksum_address(burn_token),
            parameters.destination_caller,
            parameters.max_fee,
            parameters.min_finality_threshold,
        ]

        match variant:
            case BurnVariant.with_hook:
                assert parameters.hook_data, "Hook burn without hook data"
                func = token_messenger.functions.depositForBurnWithHook(*args, parameters.hook_data)
            case BurnVariant.standard | BurnVariant.fast_finality:
                func = token_messenger.functions.depositForBurn(*args)
            case _:
                raise NotImplementedError(f"Unknown burn variant: {variant}")

        tx_hash = self._sign_and_send(web3, chain, func, signer, parameters.gas_limit)
        logger.info(
            "Burn %s broadcasted on %s: amount %d, destination domain %d, finality threshold %d, tx %s",
            variant.value,
            chain.name,
            amount_raw,
            destination_domain,
            parameters.min_finality_threshold,
            tx_hash,
        )
        return PendingTransaction(chain=chain, tx_hash=tx_hash)

    def await_receipt(self, pending: PendingTransaction) -> dict:
        web3 = self.get_web3(pending.chain)
        receipt = web3.eth.wait_for_transaction_receipt(pending.tx_hash, timeout=self.receipt_timeout)
        logger.info("Transaction %s mined in block %d on %s, status %d", pending.tx_hash, receipt["blockNumber"], pending.chain.name, receipt["status"])
        return dict(receipt)

    def extract_protocol_message(self, chain: ChainDescriptor, receipt: dict) -> ProtocolMessage:
        web3 = self.get_web3(chain)
        message_transmitter = get_message_transmitter_v2(web3, chain.message_transmitter)

        # Token approvals and hook contracts emit other logs in the same receipt
        events = message_transmitter.events.MessageSent().process_receipt(receipt, errors=DISCARD)
        if not events:
            tx_hash = receipt.get("transactionHash")
            raise MessageNotFoundError(f"No MessageSent event in burn transaction {tx_hash!r} on {chain.name}. Check the MessageTransmitterV2 address {chain.message_transmitter}.")

        message = bytes(events[0]["args"]["message"])
        message_hash = HexStr(Web3.keccak(message).to_0x_hex())
        return ProtocolMessage(message=message, message_hash=message_hash)

    def submit_mint(
        self,
        chain: ChainDescriptor,
        message: bytes,
        attestation: bytes,
        signer: LocalAccount,
        finality_mode: FinalityMode,
    ) -> PendingTransaction:
        web3 = self.get_web3(chain)
        message_transmitter = get_message_transmitter_v2(web3, chain.message_transmitter)

        # V2 has a single receiveMessage() for both modes, fast messages just cost more to verify
        if finality_mode == FinalityMode.unfinalized:
            gas_limit = GAS_LIMIT_RECEIVE_UNFINALIZED
        else:
            gas_limit = GAS_LIMIT_RECEIVE_FINALIZED

        func = message_transmitter.functions.receiveMessage(message, attestation)
        tx_hash = self._sign_and_send(web3, chain, func, signer, gas_limit)
        logger.info("receiveMessage() broadcasted on %s, finality %s, tx %s", chain.name, finality_mode.value, tx_hash)
        return PendingTransaction(chain=chain, tx_hash=tx_hash)

    def _sign_and_send(self, web3: Web3, chain: ChainDescriptor, func: ContractFunction, signer: LocalAccount, gas_limit: int) -> HexStr:
        tx = func.build_transaction(
            {
                "from": signer.address,
                "chainId": chain.chain_id,
                "gas": gas_limit,
                "nonce": web3.eth.get_transaction_count(signer.address, "pending"),
            }
        )
        signed = signer.sign_transaction(tx)
        tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
        return HexStr(tx_hash.to_0x_hex())
