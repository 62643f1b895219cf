"""Signature bundle parsing and signer recovery.

A bundle is ``r(32) | s(32) | v(1)`` repeated once per approving signer, the
layout produced by concatenating ``ecsign`` outputs. Recovery runs over the
raw 32-byte digest; no ``"\\x19Ethereum Signed Message"`` prefix is applied.
"""

from __future__ import annotations

from typing import List, Union

from eth_keys import keys
from eth_keys.constants import SECPK1_N
from eth_keys.exceptions import BadSignature, ValidationError
from hexbytes import HexBytes

from core import metrics
from .errors import (
    DuplicateSignature,
    Expired,
    InsufficientConfirmations,
    InvalidSignature,
    MalformedBundle,
    UnauthorizedSigner,
)
from .registry import SignerRegistry

SIGNATURE_LENGTH = 65
DIGEST_LENGTH = 32

BytesLike = Union[bytes, bytearray, str]


def _as_bytes(value: BytesLike, what: str) -> bytes:
    try:
        return bytes(HexBytes(value))
    except (TypeError, ValueError) as exc:
        raise MalformedBundle(f"{what} is not bytes or hex: {exc}") from exc


def split_bundle(bundle: BytesLike) -> List[bytes]:
    """Split ``bundle`` into 65-byte chunks.

    Raises :class:`MalformedBundle` unless the length is a positive multiple of 65.
    """
    raw = _as_bytes(bundle, "signature bundle")
    if not raw or len(raw) % SIGNATURE_LENGTH:
        raise MalformedBundle(
            f"bundle length {len(raw)} is not a positive multiple of {SIGNATURE_LENGTH}"
        )
    return [raw[i:i + SIGNATURE_LENGTH] for i in range(0, len(raw), SIGNATURE_LENGTH)]


def recover_signer(digest: BytesLike, chunk: BytesLike) -> str:
    """Return the checksummed address that produced ``chunk`` over ``digest``."""

    try:
        msg_hash = bytes(HexBytes(digest))
    except (TypeError, ValueError) as exc:
        raise InvalidSignature(f"digest is not bytes or hex: {exc}") from exc
    if len(msg_hash) != DIGEST_LENGTH:
        raise InvalidSignature(f"digest must be {DIGEST_LENGTH} bytes, got {len(msg_hash)}")
    sig = _as_bytes(chunk, "signature")
    if len(sig) != SIGNATURE_LENGTH:
        raise MalformedBundle(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(sig)}")

    r = int.from_bytes(sig[0:32], "big")
    s = int.from_bytes(sig[32:64], "big")
    v = sig[64]
    if v not in (27, 28):
        raise InvalidSignature(f"recovery id v={v} not in (27, 28)")
    if not 0 < r < SECPK1_N or not 0 < s < SECPK1_N:
        raise InvalidSignature("signature r/s outside curve order")
    # upper-half s values are malleable twins of valid signatures
    if s > SECPK1_N // 2:
        raise InvalidSignature("signature s value is not canonical (high-s)")

    try:
        signature = keys.Signature(vrs=(v - 27, r, s))
        public_key = signature.recover_public_key_from_msg_hash(msg_hash)
    except (BadSignature, ValidationError) as exc:
        raise InvalidSignature(f"public key recovery failed: {exc}") from exc
    metrics.record_signature_recovered()
    return public_key.to_checksum_address()


def check_expiry(expire_time: int, now: int) -> None:
    if now > expire_time:
        raise Expired(f"authorization expired at {expire_time} (now {now})")


class SignatureVerifier:
    """Validate signature bundles against a :class:`SignerRegistry`."""

    def __init__(self, registry: SignerRegistry) -> None:
        self.registry = registry

    split_bundle = staticmethod(split_bundle)
    recover_signer = staticmethod(recover_signer)
    check_expiry = staticmethod(check_expiry)

    def recover_member(self, digest: BytesLike, chunk: BytesLike) -> str:
        """Recover one signer and require registry membership."""
        signer = recover_signer(digest, chunk)
        if not self.registry.is_signer(signer):
            raise UnauthorizedSigner(f"{signer} is not an authorized signer", signer=signer)
        return signer

    def verify_threshold(self, digest: BytesLike, bundle: BytesLike, threshold: int) -> List[str]:
        """Return the distinct signers of ``bundle`` in chunk order.

        Fails on the first non-member, on any signer appearing twice, and when
        fewer than ``threshold`` signers approved.
        """
        seen: List[str] = []
        for chunk in split_bundle(bundle):
            signer = self.recover_member(digest, chunk)
            if signer in seen:
                raise DuplicateSignature(f"{signer} signed more than once", signer=signer)
            seen.append(signer)
        if len(seen) < threshold:
            raise InsufficientConfirmations(
                f"{len(seen)} valid signatures, threshold is {threshold}",
                have=len(seen),
                need=threshold,
            )
        return seen
