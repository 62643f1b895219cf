"""Shared fixtures: deterministic signer keys, a fake clock and a funded custodian."""

import sys
from pathlib import Path
from typing import List, NamedTuple

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # noqa: E402

import pytest
from eth_account import Account
from eth_keys import keys

from adapters.asset_registry import AssetRegistryBook, InMemoryAssetRegistry
from core import metrics
from multisig.gateway import TransferGateway

CUSTODIAN = "0x" + "c0" * 20
TOKEN_CONTRACT = "0x" + "a1" * 20
NOW = 1_700_000_000
FUTURE = NOW + 30 * 60


class Signer(NamedTuple):
    key: str
    address: str


def make_signer(seed: int) -> Signer:
    key = "0x" + f"{seed:02x}" * 32
    return Signer(key, Account.from_key(key).address)


def sign_digest(key: str, digest: bytes) -> bytes:
    """Raw-hash secp256k1 signature as ``r | s | v`` with v in (27, 28)."""
    sig = keys.PrivateKey(bytes.fromhex(key[2:])).sign_msg_hash(bytes(digest))
    return sig.r.to_bytes(32, "big") + sig.s.to_bytes(32, "big") + bytes([sig.v + 27])


class FakeClock:
    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ERROR_LOG_FILE", str(tmp_path / "logs" / "errors.log"))
    monkeypatch.delenv("OPS_ALERT_WEBHOOK", raising=False)
    for var in (
        "MULTISIG_CONFIG",
        "MULTISIG_ADDRESS",
        "MULTISIG_THRESHOLD",
        "MULTISIG_MAX_SIGNERS",
        "MULTISIG_STATE_FILE",
        "METRICS_PORT",
        "METRICS_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    metrics.reset_metrics()
    yield


@pytest.fixture
def signers() -> List[Signer]:
    # A, B, C are registered; D and E are outsiders
    return [make_signer(i) for i in range(1, 6)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nft() -> InMemoryAssetRegistry:
    return InMemoryAssetRegistry(TOKEN_CONTRACT)


@pytest.fixture
def gateway(signers, nft, clock) -> TransferGateway:
    gw = TransferGateway.create(
        CUSTODIAN,
        AssetRegistryBook(nft),
        threshold=2,
        max_signers=10,
        signers=[s.address for s in signers[:3]],
        clock=clock,
    )
    nft.register_receiver(CUSTODIAN, gw)
    return gw
