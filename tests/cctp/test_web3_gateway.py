"""web3.py gateway.

Encoding and receipt parsing run offline. The balance test needs a mainnet RPC:

.. code-block:: shell

    export JSON_RPC_ETHEREUM=...
    pytest tests/cctp/test_web3_gateway.py
"""

import os
from decimal import Decimal

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from eth_cctp.chain import create_default_chain_registry
from eth_cctp.config import load_config
from eth_cctp.errors import MessageNotFoundError
from eth_cctp.testing import craft_cctp_message, make_chain
from eth_cctp.web3_gateway import Web3LedgerGateway, encode_mint_recipient

JSON_RPC_ETHEREUM = os.environ.get("JSON_RPC_ETHEREUM")

USDC_ETHEREUM = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

MESSAGE_SENT_TOPIC = Web3.keccak(text="MessageSent(bytes)")


def make_log(address: str, topics: list, data: bytes, log_index: int = 0) -> dict:
    return {
        "address": address,
        "topics": [HexBytes(t) for t in topics],
        "data": HexBytes(data),
        "logIndex": log_index,
        "transactionIndex": 0,
        "transactionHash": HexBytes("0x" + "ab" * 32),
        "blockHash": HexBytes("0x" + "cd" * 32),
        "blockNumber": 1,
        "removed": False,
    }


@pytest.fixture()
def ethereum():
    return make_chain("ethereum", 1, 0, USDC_ETHEREUM)


def test_encode_mint_recipient():
    address = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
    encoded = encode_mint_recipient(address.lower())
    assert len(encoded) == 32
    assert encoded[:12] == b"\x00" * 12
    assert encoded[12:] == bytes.fromhex(address[2:])


def test_connections_are_shared():
    gateway = Web3LedgerGateway()
    ethereum = make_chain("ethereum", 1, 0, USDC_ETHEREUM)
    polygon = make_chain("polygon", 137, 7, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359")

    assert gateway.get_web3(ethereum) is gateway.get_web3(ethereum)
    assert gateway.get_web3(ethereum) is not gateway.get_web3(polygon)
    assert ExtraDataToPOAMiddleware in gateway.get_web3(polygon).middleware_onion
    assert ExtraDataToPOAMiddleware not in gateway.get_web3(ethereum).middleware_onion


def test_extract_protocol_message(ethereum):
    message = craft_cctp_message(0, 6, 1, "0x742d35Cc6634C0532925a3b844Bc454e4438f44e", 1_000_000, USDC_ETHEREUM)
    transfer_topic = Web3.keccak(text="Transfer(address,address,uint256)")
    receipt = {
        "transactionHash": HexBytes("0x" + "ab" * 32),
        "status": 1,
        "logs": [
            # USDC burn transfer, not ours
            make_log(USDC_ETHEREUM, [transfer_topic, b"\x00" * 32, b"\x00" * 32], encode(["uint256"], [1_000_000])),
            make_log(ethereum.message_transmitter, [MESSAGE_SENT_TOPIC], encode(["bytes"], [message]), log_index=1),
        ],
    }

    protocol_message = Web3LedgerGateway().extract_protocol_message(ethereum, receipt)

    assert protocol_message.message == message
    assert protocol_message.message_hash == Web3.keccak(message).to_0x_hex()


def test_extract_protocol_message_missing(ethereum):
    receipt = {"transactionHash": HexBytes("0x" + "ab" * 32), "status": 1, "logs": []}
    with pytest.raises(MessageNotFoundError):
        Web3LedgerGateway().extract_protocol_message(ethereum, receipt)


@pytest.mark.skipif(JSON_RPC_ETHEREUM is None, reason="Set JSON_RPC_ETHEREUM to run this test")
def test_read_mainnet_balance_and_allowance():
    config = load_config({"CCTP_ENVIRONMENT": "mainnet", "JSON_RPC_ETHEREUM": JSON_RPC_ETHEREUM})
    ethereum = create_default_chain_registry(config).get("ethereum")
    gateway = Web3LedgerGateway()

    # Circle treasury holds USDC, never approves TokenMessengerV2
    holder = "0x55FE002aefF02F77364de339a1292923A15844B8"
    assert gateway.get_balance(ethereum, holder) > 0
    assert isinstance(gateway.get_allowance(ethereum, holder), Decimal)
