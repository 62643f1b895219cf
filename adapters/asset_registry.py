"""ERC-721 asset registry capability used by the custodian.

Module purpose and system role:
    - Define the narrow interface the custodian needs from a token ledger.
    - Provide an in-memory ERC-721 with OpenZeppelin failure semantics for
      simulation and tests.
    - Resolve token-contract addresses to registry instances.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from core.logger import StructuredLogger
from multisig.errors import (
    InvalidReceiver,
    NonexistentToken,
    NotTokenOwner,
    UnknownAssetRegistry,
)
from multisig.hashing import ERC721_RECEIVED, normalize_address

LOGGER = StructuredLogger("asset_registry")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@runtime_checkable
class AssetRegistry(Protocol):
    address: str

    def owner_of(self, token_id: int) -> str:
        ...

    def approve(self, spender: str, token_id: int, *, caller: str) -> None:
        ...

    def transfer_from(self, from_addr: str, to: str, token_id: int, *, caller: str) -> None:
        ...


class TokenReceiver(Protocol):
    def on_erc721_received(self, operator: str, from_addr: str, token_id: int, data: bytes) -> bytes:
        ...


class InMemoryAssetRegistry:
    """Minimal ERC-721 ledger kept in process memory."""

    def __init__(self, address: Any, name: str = "NFTA") -> None:
        self.address = normalize_address(address)
        self.name = name
        self._owners: Dict[int, str] = {}
        self._approvals: Dict[int, str] = {}
        self._operators: Dict[str, set[str]] = {}
        self._receivers: Dict[str, TokenReceiver] = {}

    # ------------------------------------------------------------------
    def register_receiver(self, address: Any, receiver: TokenReceiver) -> None:
        """Treat ``address`` as a contract whose receiver hook is ``receiver``."""
        self._receivers[normalize_address(address)] = receiver

    def _check_received(self, operator: str, from_addr: str, to: str, token_id: int, data: bytes) -> None:
        receiver = self._receivers.get(to)
        if receiver is None:
            return
        if receiver.on_erc721_received(operator, from_addr, token_id, data) != ERC721_RECEIVED:
            raise InvalidReceiver(f"{to} rejected token {token_id}")

    # ------------------------------------------------------------------
    def mint(self, to: Any, token_id: int) -> None:
        to = normalize_address(to)
        if to == ZERO_ADDRESS:
            raise InvalidReceiver("mint to the zero address")
        if token_id in self._owners:
            raise NotTokenOwner(f"token {token_id} already minted")
        self._owners[token_id] = to
        LOGGER.log("mint", token_id=token_id, to=to, contract=self.address)

    def safe_mint(self, to: Any, token_id: int, data: bytes = b"") -> None:
        self.mint(to, token_id)
        try:
            self._check_received(ZERO_ADDRESS, ZERO_ADDRESS, normalize_address(to), token_id, data)
        except InvalidReceiver:
            del self._owners[token_id]
            raise

    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise NonexistentToken(f"token {token_id} does not exist")
        return owner

    def get_approved(self, token_id: int) -> Optional[str]:
        self.owner_of(token_id)
        return self._approvals.get(token_id)

    def is_approved_for_all(self, owner: Any, operator: Any) -> bool:
        return normalize_address(operator) in self._operators.get(normalize_address(owner), set())

    def set_approval_for_all(self, operator: Any, approved: bool, *, caller: Any) -> None:
        owner = normalize_address(caller)
        ops = self._operators.setdefault(owner, set())
        if approved:
            ops.add(normalize_address(operator))
        else:
            ops.discard(normalize_address(operator))

    def approve(self, spender: Any, token_id: int, *, caller: Any) -> None:
        owner = self.owner_of(token_id)
        spender = normalize_address(spender)
        caller = normalize_address(caller)
        if spender == owner:
            raise NotTokenOwner("approval to current owner")
        if caller != owner and not self.is_approved_for_all(owner, caller):
            raise NotTokenOwner(f"{caller} is not token owner or approved for all")
        self._approvals[token_id] = spender

    def transfer_from(self, from_addr: Any, to: Any, token_id: int, *, caller: Any) -> None:
        owner = self.owner_of(token_id)
        from_addr = normalize_address(from_addr)
        to = normalize_address(to)
        caller = normalize_address(caller)
        if owner != from_addr:
            raise NotTokenOwner(f"transfer from incorrect owner {from_addr}")
        if to == ZERO_ADDRESS:
            raise InvalidReceiver("transfer to the zero address")
        authorized = (
            caller == owner
            or self._approvals.get(token_id) == caller
            or self.is_approved_for_all(owner, caller)
        )
        if not authorized:
            raise NotTokenOwner(f"{caller} is not token owner or approved")
        self._approvals.pop(token_id, None)
        self._owners[token_id] = to
        LOGGER.log("transfer", token_id=token_id, from_address=from_addr, to=to, contract=self.address)

    def safe_transfer_from(
        self, from_addr: Any, to: Any, token_id: int, data: bytes = b"", *, caller: Any
    ) -> None:
        previous_approval = self._approvals.get(token_id)
        self.transfer_from(from_addr, to, token_id, caller=caller)
        try:
            self._check_received(
                normalize_address(caller), normalize_address(from_addr), normalize_address(to), token_id, data
            )
        except InvalidReceiver:
            self._owners[token_id] = normalize_address(from_addr)
            if previous_approval is not None:
                self._approvals[token_id] = previous_approval
            raise


class AssetRegistryBook:
    """Map token-contract addresses to :class:`AssetRegistry` instances."""

    def __init__(self, *registries: AssetRegistry) -> None:
        self._registries: Dict[str, AssetRegistry] = {}
        for registry in registries:
            self.register(registry)

    def register(self, registry: AssetRegistry) -> None:
        self._registries[normalize_address(registry.address)] = registry

    def resolve(self, token_contract: Any) -> AssetRegistry:
        address = normalize_address(token_contract)
        try:
            return self._registries[address]
        except KeyError:
            raise UnknownAssetRegistry(f"no asset registry for {address}") from None

    __call__ = resolve
