"""Custodian configuration loading.

YAML layout::

    custodian:
      address: "0x..."
      threshold: 2
      max_signers: 10
      signers: ["0x...", "0x..."]
      state_file: state/custodian.json

Environment variables ``MULTISIG_ADDRESS``, ``MULTISIG_THRESHOLD``,
``MULTISIG_MAX_SIGNERS`` and ``MULTISIG_STATE_FILE`` override file values.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, cast

import yaml

from adapters.asset_registry import AssetRegistry
from core.logger import StructuredLogger
from multisig.gateway import TransferGateway

LOGGER = StructuredLogger("config")

DEFAULT_MAX_SIGNERS = 10


def _address_text(value: Any) -> str:
    # YAML 1.1 reads unquoted 0x... scalars as integers
    if isinstance(value, int) and not isinstance(value, bool):
        return f"0x{value:040x}"
    return str(value)


@dataclass
class CustodyConfig:
    address: str
    threshold: int = 1
    max_signers: int = DEFAULT_MAX_SIGNERS
    signers: List[str] = field(default_factory=list)
    state_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> CustodyConfig:
    """Load ``path`` (or ``$MULTISIG_CONFIG``) and apply env overrides."""

    data: Dict[str, Any] = {}
    path = path or os.getenv("MULTISIG_CONFIG")
    if path:
        raw = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        data = cast(Dict[str, Any], raw.get("custodian", raw))

    address = os.getenv("MULTISIG_ADDRESS", data.get("address"))
    if not address:
        raise ValueError("custodian address missing (config 'address' or MULTISIG_ADDRESS)")
    signers = data.get("signers") or []
    if not isinstance(signers, list):
        raise ValueError("'signers' must be a list of addresses")
    cfg = CustodyConfig(
        address=_address_text(address),
        threshold=int(os.getenv("MULTISIG_THRESHOLD", data.get("threshold", 1))),
        max_signers=int(os.getenv("MULTISIG_MAX_SIGNERS", data.get("max_signers", DEFAULT_MAX_SIGNERS))),
        signers=[_address_text(s) for s in signers],
        state_file=os.getenv("MULTISIG_STATE_FILE", data.get("state_file")),
    )
    LOGGER.log(
        "config_loaded",
        risk_level="low",
        source=str(path or "env"),
        threshold=cfg.threshold,
        max_signers=cfg.max_signers,
        signer_count=len(cfg.signers),
    )
    return cfg


def build_gateway(
    cfg: CustodyConfig,
    assets: Callable[[str], AssetRegistry],
    *,
    clock: Optional[Callable[[], float]] = None,
) -> TransferGateway:
    """Construct a gateway from ``cfg``; restores ``state_file`` when present."""
    gateway = TransferGateway.create(
        cfg.address,
        assets,
        threshold=cfg.threshold,
        max_signers=cfg.max_signers,
        signers=cfg.signers,
        clock=clock,
    )
    if cfg.state_file and Path(cfg.state_file).exists():
        gateway.load_state(cfg.state_file)
    return gateway
