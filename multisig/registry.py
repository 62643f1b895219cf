"""Authorized signer set and approval threshold."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from .errors import (
    CapacityExceeded,
    DuplicateSigner,
    InvalidThreshold,
    UnknownSigner,
)
from .hashing import normalize_address


class SignerRegistry:
    """Bounded set of signer addresses plus the live approval threshold.

    The threshold may exceed the signer count only right after construction,
    while the registry is being populated. Once signers exist, both
    ``change_threshold`` and ``remove_signer`` refuse to leave it unreachable.
    """

    def __init__(self, threshold: int, max_signers: int, signers: Iterable[Any] = ()) -> None:
        if isinstance(max_signers, bool) or not isinstance(max_signers, int) or max_signers < 1:
            raise ValueError(f"max_signers must be a positive integer, got {max_signers!r}")
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
            raise InvalidThreshold(f"threshold must be >= 1, got {threshold!r}")
        if threshold > max_signers:
            raise InvalidThreshold(
                f"threshold {threshold} exceeds signer capacity {max_signers}"
            )
        self.max_signers = max_signers
        self._threshold = threshold
        # insertion-ordered; values unused
        self._signers: Dict[str, None] = {}
        for addr in signers:
            self.add_signer(addr)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_signer(self, addr: Any) -> str:
        signer = normalize_address(addr)
        if len(self._signers) >= self.max_signers:
            raise CapacityExceeded(f"signer capacity {self.max_signers} reached")
        if signer in self._signers:
            raise DuplicateSigner(f"{signer} is already a signer")
        self._signers[signer] = None
        return signer

    def remove_signer(self, addr: Any) -> str:
        signer = normalize_address(addr)
        if signer not in self._signers:
            raise UnknownSigner(f"{signer} is not a signer")
        if len(self._signers) - 1 < self._threshold:
            raise InvalidThreshold(
                f"removing {signer} would leave {len(self._signers) - 1} signers "
                f"below threshold {self._threshold}"
            )
        del self._signers[signer]
        return signer

    def change_threshold(self, threshold: int) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
            raise InvalidThreshold(f"threshold must be >= 1, got {threshold!r}")
        if threshold > len(self._signers):
            raise InvalidThreshold(
                f"threshold {threshold} exceeds signer count {len(self._signers)}"
            )
        self._threshold = threshold

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def is_signer(self, addr: Any) -> bool:
        try:
            return normalize_address(addr) in self._signers
        except ValueError:
            return False

    def get_threshold(self) -> int:
        return self._threshold

    def get_signer_count(self) -> int:
        return len(self._signers)

    def list_signers(self) -> List[str]:
        return list(self._signers)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        return {
            "threshold": self._threshold,
            "max_signers": self.max_signers,
            "signers": self.list_signers(),
        }

    @classmethod
    def from_snapshot(cls, state: Dict[str, Any]) -> "SignerRegistry":
        """Build a validated registry from a :meth:`snapshot` image."""
        signers = [normalize_address(s) for s in state["signers"]]
        if len(set(signers)) != len(signers):
            raise DuplicateSigner("snapshot contains duplicate signers")
        max_signers = int(state.get("max_signers", len(signers) or 1))
        threshold = int(state["threshold"])
        if len(signers) > max_signers:
            raise CapacityExceeded("snapshot exceeds signer capacity")
        registry = cls(threshold, max_signers)
        if signers and threshold > len(signers):
            raise InvalidThreshold(
                f"snapshot threshold {threshold} exceeds signer count {len(signers)}"
            )
        registry._signers = dict.fromkeys(signers)
        return registry

    def restore(self, state: Dict[str, Any]) -> None:
        """Replace the registry contents with a :meth:`snapshot` image."""
        if "max_signers" not in state:
            state = {**state, "max_signers": self.max_signers}
        self.adopt(self.from_snapshot(state))

    def adopt(self, other: "SignerRegistry") -> None:
        """Take over the contents of an already validated registry."""
        self.max_signers = other.max_signers
        self._threshold = other._threshold
        self._signers = dict(other._signers)
