"""Asset registry backed by a deployed ERC-721 contract.

Integration points and dependencies:
    - Expects a connected ``Web3`` instance whose node can sign for the
      custodian account (unlocked account or signing middleware).
    - Reverts surface as ``ContractLogicError`` and are mapped onto the
      custodian's asset-registry errors.
"""

from __future__ import annotations

from typing import Any, Dict, List

from web3 import Web3
from web3.exceptions import ContractLogicError

from core.logger import StructuredLogger
from multisig.errors import AssetRegistryError, NonexistentToken, NotTokenOwner
from multisig.hashing import normalize_address

LOGGER = StructuredLogger("web3_registry")

ERC721_ABI: List[Dict[str, Any]] = [
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "tokenId", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "name": "transferFrom",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "tokenId", "type": "uint256"},
        ],
        "outputs": [],
    },
]


def _map_revert(exc: ContractLogicError) -> AssetRegistryError:
    message = str(exc)
    lowered = message.lower()
    if "invalid token id" in lowered or "nonexistent token" in lowered:
        return NonexistentToken(message)
    if "owner" in lowered or "approved" in lowered:
        return NotTokenOwner(message)
    return AssetRegistryError(message)


class Web3AssetRegistry:
    """ERC-721 calls via ``web3.eth.contract``."""

    def __init__(self, web3: Web3, address: Any, *, receipt_timeout: float = 120) -> None:
        self.web3 = web3
        self.address = normalize_address(address)
        self.receipt_timeout = receipt_timeout
        self.contract = web3.eth.contract(address=self.address, abi=ERC721_ABI)

    def owner_of(self, token_id: int) -> str:
        try:
            return normalize_address(self.contract.functions.ownerOf(token_id).call())
        except ContractLogicError as exc:
            raise _map_revert(exc) from exc

    def _send(self, fn: Any, caller: str, event: str, **fields: Any) -> None:
        try:
            tx_hash = fn.transact({"from": normalize_address(caller)})
        except ContractLogicError as exc:
            LOGGER.log(event, risk_level="high", error=str(exc), contract=self.address, **fields)
            raise _map_revert(exc) from exc
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            LOGGER.log(event, risk_level="high", error="reverted", tx_hash=tx_hash, **fields)
            raise AssetRegistryError(f"{event} reverted in tx {Web3.to_hex(tx_hash)}")
        LOGGER.log(event, risk_level="low", tx_hash=tx_hash, contract=self.address, **fields)

    def approve(self, spender: str, token_id: int, *, caller: str) -> None:
        fn = self.contract.functions.approve(normalize_address(spender), token_id)
        self._send(fn, caller, "approve", token_id=token_id, spender=spender)

    def transfer_from(self, from_addr: str, to: str, token_id: int, *, caller: str) -> None:
        fn = self.contract.functions.transferFrom(
            normalize_address(from_addr), normalize_address(to), token_id
        )
        self._send(fn, caller, "transfer_from", token_id=token_id, from_address=from_addr, to=to)
