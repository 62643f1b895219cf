"""Multi-signature custodian for ERC-721 transfers."""

from .errors import (
    AssetRegistryError,
    CapacityExceeded,
    DuplicateSignature,
    DuplicateSigner,
    Expired,
    InsufficientConfirmations,
    InvalidAddress,
    InvalidSignature,
    InvalidThreshold,
    MalformedBundle,
    MultisigError,
    NotPending,
    ReplayedAuthorization,
    UnauthorizedSigner,
    UnknownSigner,
    UnknownTransaction,
)
from .gateway import TransferGateway
from .hashing import (
    CONFIRM_PREFIX,
    TRANSFER_PREFIX,
    hash_confirmation_intent,
    hash_transfer_intent,
    normalize_address,
)
from .ledger import TransactionLedger, TransactionRecord, TxState
from .registry import SignerRegistry
from .verifier import SignatureVerifier, check_expiry, recover_signer, split_bundle

__all__ = [
    "AssetRegistryError",
    "CapacityExceeded",
    "CONFIRM_PREFIX",
    "DuplicateSignature",
    "DuplicateSigner",
    "Expired",
    "InsufficientConfirmations",
    "InvalidAddress",
    "InvalidSignature",
    "InvalidThreshold",
    "MalformedBundle",
    "MultisigError",
    "NotPending",
    "ReplayedAuthorization",
    "SignatureVerifier",
    "SignerRegistry",
    "TRANSFER_PREFIX",
    "TransactionLedger",
    "TransactionRecord",
    "TransferGateway",
    "TxState",
    "UnauthorizedSigner",
    "UnknownSigner",
    "UnknownTransaction",
    "check_expiry",
    "hash_confirmation_intent",
    "hash_transfer_intent",
    "normalize_address",
    "recover_signer",
    "split_bundle",
]
