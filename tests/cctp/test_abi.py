"""Bundled ABI loading, no RPC needed."""

from web3 import HTTPProvider, Web3

from eth_cctp.abi import get_abi_by_filename, get_contract, get_erc20, get_message_transmitter_v2, get_token_messenger_v2
from eth_cctp.constants import MESSAGE_TRANSMITTER_V2, TOKEN_MESSENGER_V2

USDC_ETHEREUM = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def test_contract_class_is_cached():
    web3 = Web3(HTTPProvider("http://localhost:8545"))
    assert get_contract(web3, "cctp/TokenMessengerV2.json") is get_contract(web3, "cctp/TokenMessengerV2.json")
    assert get_abi_by_filename("ERC20.json") is get_abi_by_filename("ERC20.json")

    # Connection is part of the cache key
    other = Web3(HTTPProvider("http://localhost:8546"))
    assert get_contract(other, "cctp/TokenMessengerV2.json") is not get_contract(web3, "cctp/TokenMessengerV2.json")


def test_deployed_cctp_contracts():
    web3 = Web3(HTTPProvider("http://localhost:8545"))

    token_messenger = get_token_messenger_v2(web3, TOKEN_MESSENGER_V2.lower())
    assert token_messenger.address == Web3.to_checksum_address(TOKEN_MESSENGER_V2)
    assert token_messenger.functions.depositForBurn
    assert token_messenger.functions.depositForBurnWithHook

    message_transmitter = get_message_transmitter_v2(web3, MESSAGE_TRANSMITTER_V2)
    assert message_transmitter.functions.receiveMessage
    assert message_transmitter.events.MessageSent

    usdc = get_erc20(web3, USDC_ETHEREUM)
    assert usdc.functions.allowance
