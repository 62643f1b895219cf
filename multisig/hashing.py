"""Operation digests for custodian authorizations.

Digests are ``keccak256(abi.encodePacked(...))`` so that signatures produced
off-system with ``soliditySHA3`` + ``ecsign`` verify here unchanged.
"""

from __future__ import annotations

from typing import Any

from hexbytes import HexBytes
from web3 import Web3

from .errors import InvalidAddress

TRANSFER_PREFIX = "ERC721"
CONFIRM_PREFIX = "SIGN"

# bytes4(keccak256("onERC721Received(address,address,uint256,bytes)"))
ERC721_RECEIVED = bytes.fromhex("150b7a02")

UINT256_MAX = 2**256 - 1

_TRANSFER_TYPES = ["string", "address", "address", "uint256", "address", "uint256"]
_CONFIRM_TYPES = ["string", "address", "uint256", "bool"]


def normalize_address(value: Any) -> str:
    """Return the EIP-55 form of ``value`` or raise :class:`InvalidAddress`.

    Accepts 20 raw bytes, lowercase/uppercase hex, or correctly checksummed hex.
    Mixed-case hex with a wrong checksum is rejected.
    """
    candidate = bytes(value) if isinstance(value, bytearray) else value
    if not isinstance(candidate, (str, bytes)) or not Web3.is_address(candidate):
        raise InvalidAddress(f"invalid address: {value!r}")
    if isinstance(candidate, str):
        body = candidate[2:] if candidate[:2].lower() == "0x" else candidate
        if body != body.lower() and body != body.upper() and not Web3.is_checksum_address("0x" + body):
            raise InvalidAddress(f"bad EIP-55 checksum: {value!r}")
    return Web3.to_checksum_address(candidate)


def check_uint256(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range: {value}")
    return value


def hash_transfer_intent(
    prefix: str,
    custodian: Any,
    to: Any,
    token_id: int,
    token_contract: Any,
    expire_time: int,
) -> HexBytes:
    """Digest binding a direct transfer of ``token_id`` to ``to``."""
    return Web3.solidity_keccak(
        _TRANSFER_TYPES,
        [
            prefix,
            normalize_address(custodian),
            normalize_address(to),
            check_uint256(token_id, "token_id"),
            normalize_address(token_contract),
            check_uint256(expire_time, "expire_time"),
        ],
    )


def hash_confirmation_intent(prefix: str, custodian: Any, tx_id: int, confirm: bool) -> HexBytes:
    """Digest binding one signer's vote on stepwise transaction ``tx_id``."""
    if not isinstance(confirm, bool):
        raise TypeError("confirm must be a bool")
    return Web3.solidity_keccak(
        _CONFIRM_TYPES,
        [prefix, normalize_address(custodian), check_uint256(tx_id, "tx_id"), confirm],
    )
