"""CCTP V2 hook payloads.

A hook is a small instruction attached to ``depositForBurnWithHook()``
that the destination side hook executor reads after (or before) the mint.

Wire format, 6 bytes, ``abi.encodePacked(uint8, uint8, uint32)``:

=======  =====  ==========================================
Offset   Size   Field
=======  =====  ==========================================
0        1      Hook type code, see :py:data:`HOOK_TYPE_CODES`
1        1      Execution timing, 0 pre-mint, 1 post-mint
2        4      Gas limit, big endian
=======  =====  ==========================================

The format has no version byte. Changing it breaks every deployed decoder.

Example::

    from eth_cctp.hooks import HookMetadata, HookType, ExecutionTiming, encode_hook_metadata

    data = encode_hook_metadata(HookMetadata(HookType.REBALANCE, ExecutionTiming.POST_MINT, gas_limit=500_000))
    assert data.hex() == "01010007a120"
"""

import enum
import struct
from dataclasses import dataclass

from eth_typing import HexAddress, HexStr
from web3 import Web3

from eth_cctp.constants import DEFAULT_HOOK_GAS_LIMIT
from eth_cctp.errors import InvalidHookMetadataError


class HookType(enum.Enum):
    """What the destination should do with the minted tokens."""

    REBALANCE = "REBALANCE"
    NOTIFICATION = "NOTIFICATION"
    SWAP = "SWAP"
    CUSTOM = "CUSTOM"


class ExecutionTiming(enum.Enum):
    PRE_MINT = "PRE_MINT"
    POST_MINT = "POST_MINT"


#: Hook type wire codes. 0 is reserved for unknown.
HOOK_TYPE_CODES: dict[HookType, int] = {
    HookType.REBALANCE: 1,
    HookType.NOTIFICATION: 2,
    HookType.SWAP: 3,
    HookType.CUSTOM: 4,
}

#: Execution timing wire codes
EXECUTION_TIMING_CODES: dict[ExecutionTiming, int] = {
    ExecutionTiming.PRE_MINT: 0,
    ExecutionTiming.POST_MINT: 1,
}

#: ``>BBI`` is 6 bytes
HOOK_DATA_FORMAT = ">BBI"

HOOK_DATA_LENGTH = struct.calcsize(HOOK_DATA_FORMAT)

_MAX_UINT32 = 2**32 - 1


@dataclass(slots=True, frozen=True)
class HookMetadata:
    """Structured hook intent before encoding.

    Only type, timing and gas limit go on the wire. The callback
    fields travel with the transfer for our own bookkeeping.
    """

    hook_type: HookType

    execution_timing: ExecutionTiming = ExecutionTiming.POST_MINT

    #: Gas the hook executor may use, :py:data:`DEFAULT_HOOK_GAS_LIMIT` if not set
    gas_limit: int | None = None

    #: Contract the destination executor calls
    callback_contract: HexAddress | None = None

    #: Opaque data for the callback contract
    callback_data: bytes | None = None


def encode_hook_metadata(metadata: HookMetadata) -> bytes:
    """Encode hook metadata to the 6 byte wire format.

    :raise InvalidHookMetadataError:
        Gas limit does not fit in uint32
    """
    gas_limit = metadata.gas_limit or DEFAULT_HOOK_GAS_LIMIT
    if not (0 < gas_limit <= _MAX_UINT32):
        raise InvalidHookMetadataError(f"Hook gas limit must fit uint32, got {gas_limit}")

    type_code = HOOK_TYPE_CODES.get(metadata.hook_type, 0)
    timing_code = EXECUTION_TIMING_CODES[metadata.execution_timing]
    return struct.pack(HOOK_DATA_FORMAT, type_code, timing_code, gas_limit)


def decode_hook_metadata(data: bytes) -> HookMetadata:
    """Decode the 6 byte wire format back, as the destination decoder reads it.

    :raise InvalidHookMetadataError:
        Wrong length, unknown hook type or timing code
    """
    if len(data) != HOOK_DATA_LENGTH:
        raise InvalidHookMetadataError(f"Hook data must be {HOOK_DATA_LENGTH} bytes, got {len(data)}")

    type_code, timing_code, gas_limit = struct.unpack(HOOK_DATA_FORMAT, data)

    hook_types = {code: hook_type for hook_type, code in HOOK_TYPE_CODES.items()}
    timings = {code: timing for timing, code in EXECUTION_TIMING_CODES.items()}

    if type_code not in hook_types:
        raise InvalidHookMetadataError(f"Unknown hook type code {type_code}")

    if timing_code not in timings:
        raise InvalidHookMetadataError(f"Unknown execution timing code {timing_code}")

    return HookMetadata(
        hook_type=hook_types[type_code],
        execution_timing=timings[timing_code],
        gas_limit=gas_limit,
    )


def derive_hook_id(source_chain: str, destination_chain: str, message_hash: HexStr | bytes) -> HexStr:
    """Client side id for tracking a hooked transfer.

    keccak256 of ``abi.encodePacked(string, string, bytes32)``.
    The bridge contracts never see this value.
    """
    return HexStr(Web3.solidity_keccak(["string", "string", "bytes32"], [source_chain, destination_chain, message_hash]).to_0x_hex())


def encode_swap_callback_data(token: HexAddress | str, raw_amount: int) -> bytes:
    """Swap hook callback data, ``abi.encodePacked(address, uint256)``."""
    token = Web3.to_checksum_address(token)
    return bytes.fromhex(token[2:]) + raw_amount.to_bytes(32, byteorder="big")


def derive_swap_hook_id(token: HexAddress | str, raw_amount: int) -> HexStr:
    """Id of a swap hook, keccak256 of ``abi.encodePacked("SWAP_HOOK", address, uint256)``."""
    token = Web3.to_checksum_address(token)
    return HexStr(Web3.solidity_keccak(["string", "address", "uint256"], ["SWAP_HOOK", token, raw_amount]).to_0x_hex())
