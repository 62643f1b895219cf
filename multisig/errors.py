"""Failure conditions raised by the custodian.

Every class maps to one observable rejection. Each also derives from the
closest builtin so callers that only know ``ValueError``/``PermissionError``
still catch them.
"""

from __future__ import annotations


class MultisigError(Exception):
    """Base class for all custodian failures."""

    reason = "error"


# -- signer registry --------------------------------------------------------
class CapacityExceeded(MultisigError, RuntimeError):
    reason = "capacity_exceeded"


class DuplicateSigner(MultisigError, ValueError):
    reason = "duplicate_signer"


class UnknownSigner(MultisigError, LookupError):
    reason = "unknown_signer"


class InvalidThreshold(MultisigError, ValueError):
    reason = "invalid_threshold"


class InvalidAddress(MultisigError, ValueError):
    reason = "invalid_address"


# -- signature verification -------------------------------------------------
class MalformedBundle(MultisigError, ValueError):
    reason = "malformed_bundle"


class InvalidSignature(MultisigError, ValueError):
    reason = "invalid_signature"


class UnauthorizedSigner(MultisigError, PermissionError):
    reason = "unauthorized_signer"

    def __init__(self, message: str, signer: str | None = None) -> None:
        super().__init__(message)
        self.signer = signer


class DuplicateSignature(MultisigError, PermissionError):
    reason = "duplicate_signature"

    def __init__(self, message: str, signer: str | None = None) -> None:
        super().__init__(message)
        self.signer = signer


class InsufficientConfirmations(MultisigError, PermissionError):
    reason = "insufficient_confirmations"

    def __init__(self, message: str, have: int = 0, need: int = 0) -> None:
        super().__init__(message)
        self.have = have
        self.need = need


class ReplayedAuthorization(MultisigError, PermissionError):
    reason = "replayed_authorization"


class Expired(MultisigError, TimeoutError):
    reason = "expired"


# -- stepwise ledger ----------------------------------------------------------
class UnknownTransaction(MultisigError, LookupError):
    reason = "unknown_transaction"


class NotPending(MultisigError, RuntimeError):
    reason = "not_pending"


# -- external asset registry -------------------------------------------------
class AssetRegistryError(MultisigError, RuntimeError):
    reason = "asset_registry"


class NonexistentToken(AssetRegistryError):
    reason = "nonexistent_token"


class NotTokenOwner(AssetRegistryError):
    reason = "not_token_owner"


class InvalidReceiver(AssetRegistryError):
    reason = "invalid_receiver"


class UnknownAssetRegistry(AssetRegistryError):
    reason = "unknown_asset_registry"
