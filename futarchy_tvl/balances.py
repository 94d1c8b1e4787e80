"""Raw token balance accumulation keyed by chain-qualified mint."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import DefaultDict, Dict, Iterable, Mapping, Optional

from .config import CHAIN
from .layouts import DecodeError, decode_token_account
from .rpc import AccountSnapshot, SolanaRpc

Balances = DefaultDict[str, int]


def new_balances() -> Balances:
    return defaultdict(int)


def asset_key(mint: str, chain: str = CHAIN) -> str:
    return f"{chain}:{mint}"


def add_balance(balances: Balances, mint: str, amount: int) -> None:
    balances[asset_key(mint)] += int(amount)


def merge_balances(target: Balances, other: Mapping[str, int]) -> Balances:
    for key, amount in other.items():
        target[key] += int(amount)
    return target


def add_token_accounts(balances: Balances, accounts: Iterable[Optional[AccountSnapshot]]) -> int:
    """Add each token account's amount under its mint; returns how many were skipped.

    Absent or undecodable accounts contribute nothing.
    """
    skipped = 0
    for account in accounts:
        if account is None:
            skipped += 1
            continue
        try:
            token = decode_token_account(account.data)
        except DecodeError as exc:
            logging.warning("Token account %s not decodable: %s", account.address, exc)
            skipped += 1
            continue
        add_balance(balances, token.mint, token.amount)
    return skipped


def sum_token_accounts(rpc: SolanaRpc, addresses: Iterable[str], balances: Balances) -> Balances:
    unique = list(dict.fromkeys(addresses))
    if not unique:
        return balances

    skipped = add_token_accounts(balances, rpc.get_multiple_accounts(unique))
    logging.info("Summed %d token accounts, skipped %d", len(unique) - skipped, skipped)
    return balances


def as_dict(balances: Mapping[str, int]) -> Dict[str, int]:
    return {key: amount for key, amount in sorted(balances.items())}
