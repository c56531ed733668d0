"""ABI loading from the bundled JSON files.

Provides functions to load ABI files and construct :py:class:`web3.contract.Contract` types.
The results are cached for the speedup.

Bundled files live in ``eth_cctp/abi/`` and are Etherscan style ABI lists
or solc compiler artifacts with an ``abi`` key.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Type, Union

from eth_typing import HexAddress
from web3 import Web3
from web3.contract.contract import Contract

# How big are our ABI and contract caches
_CACHE_SIZE = 64


#: bytes32 zero, CCTP ``destinationCaller`` meaning anyone may relay
ZERO_BYTES32 = b"\x00" * 32


@lru_cache(maxsize=_CACHE_SIZE)
def get_abi_by_filename(fname: str) -> dict | list:
    """Reads a embedded ABI file and returns it.

    Example::

        abi = get_abi_by_filename("cctp/MessageTransmitterV2.json")

    Loaded ABI files are cached in in-process memory.

    :param fname:
        Path relative to ``eth_cctp/abi/``, or an absolute path.

    :return:
        Etherscan style ABI list or a full compiler artifact
    """
    path = Path(fname)
    if not path.is_absolute():
        here = Path(__file__).resolve().parent
        path = here / "abi" / path

    with open(path, "rt", encoding="utf-8") as f:
        abi = json.load(f)
    return abi


@lru_cache(maxsize=_CACHE_SIZE)
def get_contract(web3: Web3, fname: str | Path) -> Type[Contract]:
    """Get Contract proxy class from ABI JSON file.

    Any results are cached. Web3 connection is part of the cache key.

    Example:

    .. code-block:: python

        ERC20 = get_contract(web3, "ERC20.json")

    :param web3:
        Web3 instance

    :param fname:
        ABI file name, see :py:func:`get_abi_by_filename`

    :return:
        Contract proxy class
    """

    contract_interface = get_abi_by_filename(str(fname))

    if type(contract_interface) == list:
        # Etherscan
        abi = contract_interface
    else:
        # Solc output
        abi = contract_interface["abi"]

    Contract = web3.eth.contract(abi=abi)
    return Contract


def get_deployed_contract(
    web3: Web3,
    fname: str | Path,
    address: Union[HexAddress, str],
) -> Contract:
    """Get a Contract proxy object for a contract deployed at a specific address.

    :param web3:
        Web3 instance

    :param fname:
        ABI file name, see :py:func:`get_abi_by_filename`

    :param address:
        Ethereum address of the deployed contract

    :return:
        `web3.contract.Contract` proxy
    """
    assert isinstance(web3, Web3), f"Got {type(web3)} instead of Web3"
    assert address, f"get_deployed_contract() address was None"

    address = Web3.to_checksum_address(address)

    Contract = get_contract(web3, fname)
    return Contract(address)


def get_token_messenger_v2(web3: Web3, address: HexAddress | str) -> Contract:
    """Load TokenMessengerV2, the burn entry point."""
    return get_deployed_contract(web3, "cctp/TokenMessengerV2.json", address)


def get_message_transmitter_v2(web3: Web3, address: HexAddress | str) -> Contract:
    """Load MessageTransmitterV2, the mint entry point."""
    return get_deployed_contract(web3, "cctp/MessageTransmitterV2.json", address)


def get_erc20(web3: Web3, address: HexAddress | str) -> Contract:
    return get_deployed_contract(web3, "ERC20.json", address)
