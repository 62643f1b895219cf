"""Stepwise (request -> sign -> execute) transaction ledger.

Module purpose and system role:
    - Hold pending custodian transfers and the per-signer votes on them.
    - Gate execution on the live registry threshold and the expire time.

Integration points and dependencies:
    - ``SignatureVerifier`` recovers the voter of each confirmation.
    - The caller supplies the transfer callable; the ledger marks the record
      executed before invoking it and reverts the mark if it raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from .errors import InsufficientConfirmations, MalformedBundle, NotPending, UnknownTransaction
from .hashing import (
    CONFIRM_PREFIX,
    check_uint256,
    hash_confirmation_intent,
    normalize_address,
)
from .registry import SignerRegistry
from .verifier import SignatureVerifier, check_expiry, split_bundle


class TxState(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"


@dataclass
class TransactionRecord:
    tx_id: int
    to: str
    token_id: int
    token_contract: str
    expire_time: int
    confirmations: Dict[str, bool] = field(default_factory=dict)
    state: TxState = TxState.PENDING

    def approvals(self, registry: SignerRegistry) -> List[str]:
        """Signers whose latest vote is ``True`` and who are still registered."""
        return [s for s, ok in self.confirmations.items() if ok and registry.is_signer(s)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "to": self.to,
            "token_id": self.token_id,
            "token_contract": self.token_contract,
            "expire_time": self.expire_time,
            "confirmations": dict(self.confirmations),
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionRecord":
        return cls(
            tx_id=int(data["tx_id"]),
            to=normalize_address(data["to"]),
            token_id=int(data["token_id"]),
            token_contract=normalize_address(data["token_contract"]),
            expire_time=int(data["expire_time"]),
            confirmations={
                normalize_address(k): bool(v) for k, v in data.get("confirmations", {}).items()
            },
            state=TxState(data.get("state", TxState.PENDING.value)),
        )


class TransactionLedger:
    """Pending transfers and their accumulated confirmations."""

    def __init__(self, custodian: Any, registry: SignerRegistry, verifier: SignatureVerifier) -> None:
        self.custodian = normalize_address(custodian)
        self.registry = registry
        self.verifier = verifier
        self._transactions: Dict[int, TransactionRecord] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    def _get(self, tx_id: int) -> TransactionRecord:
        record = self._transactions.get(tx_id)
        if record is None:
            raise UnknownTransaction(f"transaction {tx_id} does not exist")
        return record

    def _get_pending(self, tx_id: int) -> TransactionRecord:
        record = self._get(tx_id)
        if record.state is not TxState.PENDING:
            raise NotPending(f"transaction {tx_id} is {record.state.value}")
        return record

    # ------------------------------------------------------------------
    def request_transaction(self, to: Any, token_id: int, token_contract: Any, expire_time: int) -> int:
        record = TransactionRecord(
            tx_id=self._next_id,
            to=normalize_address(to),
            token_id=check_uint256(token_id, "token_id"),
            token_contract=normalize_address(token_contract),
            expire_time=check_uint256(expire_time, "expire_time"),
        )
        self._transactions[record.tx_id] = record
        self._next_id += 1
        return record.tx_id

    def sign_transaction(self, tx_id: int, confirm: bool, signature: Any) -> str:
        """Record the recovered signer's vote and return the signer."""
        record = self._get_pending(tx_id)
        chunks = split_bundle(signature)
        if len(chunks) != 1:
            raise MalformedBundle(f"expected one signature, got {len(chunks)}")
        digest = hash_confirmation_intent(CONFIRM_PREFIX, self.custodian, tx_id, confirm)
        signer = self.verifier.recover_member(digest, chunks[0])
        record.confirmations[signer] = confirm
        return signer

    def execute_transaction(
        self,
        tx_id: int,
        now: int,
        transfer: Callable[[TransactionRecord], None],
    ) -> TransactionRecord:
        record = self._get_pending(tx_id)
        check_expiry(record.expire_time, now)
        approvals = record.approvals(self.registry)
        threshold = self.registry.get_threshold()
        if len(approvals) < threshold:
            raise InsufficientConfirmations(
                f"transaction {tx_id} has {len(approvals)} confirmations, threshold is {threshold}",
                have=len(approvals),
                need=threshold,
            )
        record.state = TxState.EXECUTED
        try:
            transfer(record)
        except Exception:
            record.state = TxState.PENDING
            raise
        return record

    # ------------------------------------------------------------------
    def get_transaction(self, tx_id: int) -> TransactionRecord:
        return self._get(tx_id)

    def list_transactions(self) -> List[TransactionRecord]:
        return list(self._transactions.values())

    def confirmation_count(self, tx_id: int) -> int:
        return len(self._get(tx_id).approvals(self.registry))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "next_id": self._next_id,
            "transactions": [r.to_dict() for r in self._transactions.values()],
        }

    @staticmethod
    def parse_snapshot(state: Dict[str, Any]) -> Tuple[Dict[int, TransactionRecord], int]:
        """Decode a :meth:`snapshot` image without touching ledger state."""
        records = [TransactionRecord.from_dict(r) for r in state.get("transactions", [])]
        transactions = {r.tx_id: r for r in records}
        if len(transactions) != len(records):
            raise ValueError("snapshot contains duplicate transaction ids")
        floor = max(transactions, default=0) + 1
        return transactions, max(int(state.get("next_id", 1)), floor)

    def load(self, transactions: Dict[int, TransactionRecord], next_id: int) -> None:
        self._transactions = dict(transactions)
        self._next_id = next_id

    def restore(self, state: Dict[str, Any]) -> None:
        self.load(*self.parse_snapshot(state))
