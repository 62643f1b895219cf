"""Custodian facade: bundled and stepwise multisig transfers.

Module purpose and system role:
    - Release escrowed ERC-721 tokens only after the live signer threshold
      has approved the exact transfer intent.
    - Expose signer management and read-only diagnostics.

Integration points and dependencies:
    - ``assets`` resolves a token-contract address to an asset registry
      (see ``adapters.asset_registry.AssetRegistryBook``).
    - Every public call runs under one re-entrant lock. Authorization state is
      committed before the external transfer so a call-back from the asset
      registry cannot reuse it.
    - Rejections are logged with ``risk_level="high"`` and counted in
      ``core.metrics``; the exception is always re-raised.
"""

from __future__ import annotations

import json
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from web3 import Web3

from core import metrics
from core.logger import StructuredLogger
from .errors import MultisigError, ReplayedAuthorization
from .hashing import (
    CONFIRM_PREFIX,
    ERC721_RECEIVED,
    TRANSFER_PREFIX,
    hash_confirmation_intent,
    hash_transfer_intent,
    normalize_address,
)
from .ledger import TransactionLedger, TransactionRecord
from .registry import SignerRegistry
from .verifier import SignatureVerifier, check_expiry, recover_signer

if TYPE_CHECKING:  # pragma: no cover
    from adapters.asset_registry import AssetRegistry

LOGGER = StructuredLogger("multisig_gateway")


class TransferGateway:
    """Multisig custodian for ERC-721 tokens."""

    def __init__(
        self,
        address: Any,
        registry: SignerRegistry,
        assets: Callable[[str], "AssetRegistry"],
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.address = normalize_address(address)
        self.registry = registry
        self.verifier = SignatureVerifier(registry)
        self.ledger = TransactionLedger(self.address, registry, self.verifier)
        self.assets = assets
        self.clock = clock or time.time
        self._consumed: Set[str] = set()
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        address: Any,
        assets: Callable[[str], "AssetRegistry"],
        *,
        threshold: int,
        max_signers: int,
        signers: Iterable[Any] = (),
        clock: Optional[Callable[[], float]] = None,
    ) -> "TransferGateway":
        return cls(address, SignerRegistry(threshold, max_signers, signers), assets, clock=clock)

    def now(self) -> int:
        return int(self.clock())

    # ------------------------------------------------------------------
    @contextmanager
    def _operation(self, name: str, **fields: Any) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except MultisigError as exc:
                metrics.record_rejection(exc.reason)
                LOGGER.log(f"{name}_rejected", risk_level="high", error=str(exc), reason=exc.reason, **fields)
                raise
            except (TypeError, ValueError) as exc:
                metrics.record_rejection("invalid_input")
                LOGGER.log(f"{name}_rejected", risk_level="high", error=str(exc), reason="invalid_input", **fields)
                raise

    def _release(self, token_contract: str, to: str, token_id: int) -> None:
        asset = self.assets(token_contract)
        asset.transfer_from(self.address, to, token_id, caller=self.address)

    # ------------------------------------------------------------------
    # Signer management
    # ------------------------------------------------------------------
    def add_signer(self, addr: Any) -> str:
        with self._operation("add_signer", signer=addr):
            signer = self.registry.add_signer(addr)
            LOGGER.log("signer_added", risk_level="low", signer=signer, signer_count=self.registry.get_signer_count())
            return signer

    def remove_signer(self, addr: Any) -> str:
        with self._operation("remove_signer", signer=addr):
            signer = self.registry.remove_signer(addr)
            LOGGER.log("signer_removed", risk_level="low", signer=signer, signer_count=self.registry.get_signer_count())
            return signer

    def change_threshold(self, threshold: int) -> None:
        with self._operation("change_threshold", threshold=threshold):
            previous = self.registry.get_threshold()
            self.registry.change_threshold(threshold)
            LOGGER.log("threshold_changed", risk_level="low", previous=previous, threshold=threshold)

    def get_threshold(self) -> int:
        return self.registry.get_threshold()

    def get_signer_count(self) -> int:
        return self.registry.get_signer_count()

    def list_signers(self) -> List[str]:
        return self.registry.list_signers()

    def is_signer(self, addr: Any) -> bool:
        return self.registry.is_signer(addr)

    # ------------------------------------------------------------------
    # Bundled (single call) protocol
    # ------------------------------------------------------------------
    def transfer_intent_hash(self, to: Any, token_id: int, token_contract: Any, expire_time: int) -> bytes:
        return hash_transfer_intent(TRANSFER_PREFIX, self.address, to, token_id, token_contract, expire_time)

    def multisig_transfer(
        self, to: Any, token_id: int, token_contract: Any, expire_time: int, bundle: Any
    ) -> List[str]:
        """Verify ``bundle`` over the transfer intent and release the token.

        Returns the approving signers in bundle order.
        """
        with self._operation("multisig_transfer", token_id=token_id, to=to, token_contract=token_contract):
            digest = self.transfer_intent_hash(to, token_id, token_contract, expire_time)
            check_expiry(expire_time, self.now())
            key = Web3.to_hex(digest)
            if key in self._consumed:
                raise ReplayedAuthorization(f"transfer intent {key} was already executed")
            signers = self.verifier.verify_threshold(digest, bundle, self.registry.get_threshold())
            to_addr = normalize_address(to)
            contract = normalize_address(token_contract)
            self._consumed.add(key)
            try:
                self._release(contract, to_addr, token_id)
            except Exception:
                self._consumed.discard(key)
                raise
            metrics.record_transfer("bundle")
            LOGGER.log(
                "multisig_transfer",
                risk_level="low",
                token_id=token_id,
                to=to_addr,
                token_contract=contract,
                digest=key,
                signers=signers,
            )
            return signers

    # ------------------------------------------------------------------
    # Stepwise protocol
    # ------------------------------------------------------------------
    def confirmation_intent_hash(self, tx_id: int, confirm: bool) -> bytes:
        return hash_confirmation_intent(CONFIRM_PREFIX, self.address, tx_id, confirm)

    def request_transaction(self, to: Any, token_id: int, token_contract: Any, expire_time: int) -> int:
        with self._operation("request_transaction", token_id=token_id, to=to):
            tx_id = self.ledger.request_transaction(to, token_id, token_contract, expire_time)
            metrics.record_transaction_requested()
            LOGGER.log(
                "transaction_requested",
                tx_id=tx_id,
                risk_level="low",
                token_id=token_id,
                to=normalize_address(to),
                token_contract=normalize_address(token_contract),
                expire_time=expire_time,
            )
            return tx_id

    def sign_transaction(self, tx_id: int, confirm: bool, signature: Any) -> str:
        with self._operation("sign_transaction", tx_id=tx_id, confirm=confirm):
            signer = self.ledger.sign_transaction(tx_id, confirm, signature)
            metrics.record_confirmation(confirm)
            LOGGER.log(
                "transaction_signed",
                tx_id=tx_id,
                risk_level="low",
                signer=signer,
                confirm=confirm,
                confirmations=self.ledger.confirmation_count(tx_id),
            )
            return signer

    def execute_transaction(self, tx_id: int) -> Dict[str, Any]:
        with self._operation("execute_transaction", tx_id=tx_id):
            record = self.ledger.execute_transaction(tx_id, self.now(), self._release_record)
            metrics.record_transfer("stepwise")
            LOGGER.log(
                "transaction_executed",
                tx_id=tx_id,
                risk_level="low",
                token_id=record.token_id,
                to=record.to,
                token_contract=record.token_contract,
            )
            return record.to_dict()

    def _release_record(self, record: TransactionRecord) -> None:
        self._release(record.token_contract, record.to, record.token_id)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def recover_signer(self, digest: Any, signature: Any) -> str:
        return recover_signer(digest, signature)

    def get_transaction(self, tx_id: int) -> Dict[str, Any]:
        return self.ledger.get_transaction(tx_id).to_dict()

    def list_transactions(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.ledger.list_transactions()]

    def is_consumed(self, digest: Any) -> bool:
        return Web3.to_hex(digest) in self._consumed

    def on_erc721_received(self, operator: str, from_addr: str, token_id: int, data: bytes = b"") -> bytes:
        """ERC-721 receiver hook; the custodian accepts every token."""
        LOGGER.log("token_received", risk_level="low", operator=operator, from_address=from_addr, token_id=token_id)
        return ERC721_RECEIVED

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "custodian": self.address,
                "registry": self.registry.snapshot(),
                "ledger": self.ledger.snapshot(),
                "consumed": sorted(self._consumed),
            }

    def restore(self, state: Dict[str, Any]) -> None:
        with self._lock:
            custodian = normalize_address(state["custodian"])
            if custodian != self.address:
                raise ValueError(f"state belongs to custodian {custodian}, not {self.address}")
            # decode the whole image before mutating anything
            registry = SignerRegistry.from_snapshot(state["registry"])
            transactions, next_id = TransactionLedger.parse_snapshot(state.get("ledger", {}))
            consumed = {Web3.to_hex(Web3.to_bytes(hexstr=d)) for d in state.get("consumed", [])}
            self.registry.adopt(registry)
            self.ledger.load(transactions, next_id)
            self._consumed = consumed

    def export_state(self, path: str | Path) -> None:
        """Write a JSON image of the custodian state to ``path``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as fh:
            json.dump(self.snapshot(), fh, indent=2)
        LOGGER.log("state_exported", risk_level="low", path=str(path))

    def load_state(self, path: str | Path) -> None:
        with open(path, "r") as fh:
            data = json.load(fh)
        self.restore(data)
        LOGGER.log("state_loaded", risk_level="low", path=str(path))
