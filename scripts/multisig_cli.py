#!/usr/bin/env python3
"""Operator tooling for the multisig custodian.

Computes intent digests for off-line signing, recovers signers from
signatures, inspects exported custodian state files and serves Prometheus
metrics.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, List, Optional

from web3 import Web3

from adapters.asset_registry import AssetRegistryBook
from core import metrics
from core.config import load_config
from core.logger import StructuredLogger
from multisig.errors import MultisigError
from multisig.gateway import TransferGateway
from multisig.hashing import (
    CONFIRM_PREFIX,
    TRANSFER_PREFIX,
    hash_confirmation_intent,
    hash_transfer_intent,
)
from multisig.verifier import recover_signer, split_bundle

LOGGER = StructuredLogger("multisig_cli")


def _emit(value: Any) -> None:
    if value is None:
        return
    if isinstance(value, (dict, list)):
        print(json.dumps(value, indent=2))
    else:
        print(value)


def _load_gateway(path: str) -> TransferGateway:
    with open(path, "r") as fh:
        data = json.load(fh)
    gateway = TransferGateway.create(
        data["custodian"],
        AssetRegistryBook(),
        threshold=1,
        max_signers=int(data["registry"]["max_signers"]),
    )
    gateway.restore(data)
    return gateway


# ---------------------------------------------------------------------------
def cmd_hash_transfer(args: argparse.Namespace) -> Any:
    digest = hash_transfer_intent(
        args.prefix, args.custodian, args.to, args.token_id, args.token_contract, args.expire_time
    )
    return Web3.to_hex(digest)


def cmd_hash_confirm(args: argparse.Namespace) -> Any:
    return Web3.to_hex(hash_confirmation_intent(args.prefix, args.custodian, args.tx_id, args.confirm))


def cmd_recover(args: argparse.Namespace) -> Any:
    signers = [recover_signer(args.digest, chunk) for chunk in split_bundle(args.signature)]
    return signers[0] if len(signers) == 1 else signers


def cmd_signers(args: argparse.Namespace) -> Any:
    return _load_gateway(args.state).list_signers()


def cmd_threshold(args: argparse.Namespace) -> Any:
    gateway = _load_gateway(args.state)
    return {"threshold": gateway.get_threshold(), "signer_count": gateway.get_signer_count()}


def cmd_inspect(args: argparse.Namespace) -> Any:
    gateway = _load_gateway(args.state)
    if args.tx_id is None:
        return gateway.list_transactions()
    return gateway.get_transaction(args.tx_id)


def cmd_config(args: argparse.Namespace) -> Any:
    return load_config(args.config).to_dict()


def cmd_metrics_server(args: argparse.Namespace) -> Any:
    srv = metrics.MetricsServer(host=args.host, port=args.port)
    srv.start()
    LOGGER.log("metrics_server_started", risk_level="low", address=srv.address)
    print(f"serving metrics on {srv.address}", flush=True)
    try:
        srv.thread.join(args.duration)
    except KeyboardInterrupt:
        print("shutting down", file=sys.stderr)
    finally:
        srv.stop()
    return None


# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="multisig-custody", description="Multisig custodian tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("hash-transfer", help="digest of a bundled transfer intent")
    p.add_argument("--custodian", required=True)
    p.add_argument("--to", required=True)
    p.add_argument("--token-id", type=int, required=True)
    p.add_argument("--token-contract", required=True)
    p.add_argument("--expire-time", type=int, required=True)
    p.add_argument("--prefix", default=TRANSFER_PREFIX)
    p.set_defaults(func=cmd_hash_transfer)

    p = sub.add_parser("hash-confirm", help="digest of a stepwise confirmation")
    p.add_argument("--custodian", required=True)
    p.add_argument("--tx-id", type=int, required=True)
    vote = p.add_mutually_exclusive_group()
    vote.add_argument("--confirm", dest="confirm", action="store_true", default=True)
    vote.add_argument("--reject", dest="confirm", action="store_false")
    p.add_argument("--prefix", default=CONFIRM_PREFIX)
    p.set_defaults(func=cmd_hash_confirm)

    p = sub.add_parser("recover", help="recover signer(s) of a signature or bundle")
    p.add_argument("--digest", required=True)
    p.add_argument("--signature", required=True)
    p.set_defaults(func=cmd_recover)

    for name, func in (("signers", cmd_signers), ("threshold", cmd_threshold)):
        p = sub.add_parser(name, help=f"show {name} from an exported state file")
        p.add_argument("--state", required=True)
        p.set_defaults(func=func)

    p = sub.add_parser("inspect", help="show stepwise transactions from a state file")
    p.add_argument("--state", required=True)
    p.add_argument("--tx-id", type=int, default=None)
    p.set_defaults(func=cmd_inspect)

    p = sub.add_parser("config", help="print the resolved custodian configuration")
    p.add_argument("--config", default=None)
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("metrics-server", help="serve Prometheus /metrics")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--duration", type=float, default=None, help="seconds to serve; default forever")
    p.set_defaults(func=cmd_metrics_server)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = args.func(args)
    except (MultisigError, ValueError, TypeError, KeyError, OSError) as exc:
        LOGGER.log("command_failed", command=args.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    LOGGER.log("command", command=args.command)
    _emit(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
