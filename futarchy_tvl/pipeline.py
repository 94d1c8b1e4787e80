"""Command line entry point for the futarchy TVL snapshots."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import pandas as pd

from . import config
from .balances import as_dict
from .futarchy_amm import futarchy_amm_tvl
from .rpc import RetryPolicy, SolanaRpc
from .treasuries import metadao_tvl, treasuries_tvl


def build_dataframe(balances: Mapping[str, int]) -> pd.DataFrame:
    rows = [{"asset": key, "amount": str(amount)} for key, amount in sorted(balances.items())]
    return pd.DataFrame(rows, columns=["asset", "amount"])


def write_outputs(payload: Dict, balances: Mapping[str, int], output: Optional[Path], csv_path: Optional[Path]) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(payload, indent=2))
        logging.info("Balances written to %s", output)
    else:
        print(json.dumps(payload, indent=2))

    if csv_path:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        build_dataframe(balances).to_csv(csv_path, index=False)
        logging.info("Balance table written to %s", csv_path)


def build_rpc(args: argparse.Namespace) -> SolanaRpc:
    retry = RetryPolicy(throttle=args.throttle)
    return SolanaRpc.from_endpoint(args.rpc, retry=retry)


def cmd_futarchy_amm(args: argparse.Namespace) -> None:
    result = futarchy_amm_tvl(build_rpc(args))
    balances = as_dict(result.balances)
    payload = {
        "balances": {key: str(amount) for key, amount in balances.items()},
        "daos_resolved": len(result.resolved),
        "fallback_daos": result.fallback_daos,
    }
    write_outputs(payload, balances, args.output, args.csv)


def cmd_treasuries(args: argparse.Namespace) -> None:
    result = treasuries_tvl(build_rpc(args))
    balances = as_dict(result.balances)
    payload = {
        "balances": {key: str(amount) for key, amount in balances.items()},
        "double_counted": {key: str(amount) for key, amount in as_dict(result.double_counted).items()},
        "token_accounts": result.token_accounts,
        "nft_mints": result.nft_mints,
    }
    write_outputs(payload, balances, args.output, args.csv)


def cmd_metadao(args: argparse.Namespace) -> None:
    positions: List[str] = args.position or config.METEORA_POSITIONS
    result = metadao_tvl(build_rpc(args), positions)
    balances = as_dict(result.balances)
    payload = {
        "balances": {key: str(amount) for key, amount in balances.items()},
        "token_accounts": result.token_accounts,
    }
    write_outputs(payload, balances, args.output, args.csv)


def add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", type=Path, help="JSON path for balances (stdout when omitted)")
    parser.add_argument("--csv", type=Path, help="Optional CSV path for an asset/amount table")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Futarchy TVL snapshots")
    parser.add_argument("--rpc", default=config.RPC_ENDPOINTS[0], help="RPC endpoint to use")
    parser.add_argument(
        "--throttle",
        type=float,
        default=config.THROTTLE_SECONDS,
        help="Seconds to wait before each RPC call",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    amm = sub.add_parser("futarchy-amm", help="Balances of every DAO's AMM base and quote vaults")
    add_output_args(amm)
    amm.set_defaults(func=cmd_futarchy_amm)

    treasuries = sub.add_parser("treasuries", help="DAO treasuries, treasury LP positions and AMM positions")
    add_output_args(treasuries)
    treasuries.set_defaults(func=cmd_treasuries)

    metadao = sub.add_parser("metadao", help="DAO treasuries plus fixed Meteora positions")
    metadao.add_argument("--position", action="append", help="DAMM v2 position address (repeatable)")
    add_output_args(metadao)
    metadao.set_defaults(func=cmd_metadao)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="[%(levelname)s] %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
