"""Futarchy DAO treasury TVL.

Treasuries are the Squads multisig vaults recorded on each Dao account. Their
SPL and Token-2022 balances count directly; single-unit holdings are treated
as Meteora DAMM v2 position NFTs and valued through the derived position PDA.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from . import config
from .balances import Balances, add_token_accounts, merge_balances, new_balances
from .futarchy_amm import aggregate_positions, fetch_amm_positions, fetch_dao_amms
from .layouts import DaoAmm, DecodeError, decode_token_account
from .meteora import add_positions
from .pda import derive_position_pda
from .rpc import AccountSnapshot, SolanaRpc

NFT_AMOUNT = 1


@dataclass
class TreasuryTvl:
    balances: Balances
    double_counted: Dict[str, int] = field(default_factory=dict)
    token_accounts: int = 0
    nft_mints: int = 0


def treasury_vaults(dao_amms: Mapping[str, DaoAmm], extra: Sequence[str] = ()) -> List[str]:
    vaults = [dao.squads_multisig_vault for dao in dao_amms.values() if dao.squads_multisig_vault]
    return list(dict.fromkeys([*vaults, *extra]))


def treasury_token_accounts(
    rpc: SolanaRpc,
    treasuries: Iterable[str],
    program_ids: Sequence[str] = tuple(config.TOKEN_PROGRAM_IDS),
) -> Tuple[List[AccountSnapshot], Set[str]]:
    """Token accounts owned by the treasuries plus the mints they hold exactly one unit of."""
    accounts: Dict[str, AccountSnapshot] = {}
    nft_mints: Set[str] = set()
    for treasury in treasuries:
        for program_id in program_ids:
            try:
                owned = rpc.get_token_accounts_by_owner(treasury, program_id)
            except Exception as exc:  # noqa: BLE001
                logging.warning("Vault fetch error for %s (%s): %s", treasury, program_id, exc)
                continue
            for account in owned:
                accounts.setdefault(account.address, account)

    for account in accounts.values():
        try:
            token = decode_token_account(account.data)
        except DecodeError:
            continue
        if token.amount == NFT_AMOUNT:
            nft_mints.add(token.mint)

    logging.info("Total treasury token accounts: %d", len(accounts))
    logging.info("Discovered NFT mints: %d", len(nft_mints))
    return list(accounts.values()), nft_mints


def _treasury_balances(rpc: SolanaRpc, treasuries: Sequence[str], result: TreasuryTvl, value_nfts: bool) -> None:
    logging.info("Found %d treasury vaults", len(treasuries))
    accounts, nft_mints = treasury_token_accounts(rpc, treasuries)
    add_token_accounts(result.balances, accounts)
    result.token_accounts = len(accounts)
    if value_nfts:
        result.nft_mints = len(nft_mints)
        pdas = [derive_position_pda(mint) for mint in sorted(nft_mints)]
        logging.info("Derived position PDAs: %d", len(pdas))
        add_positions(rpc, pdas, result.balances)


def treasuries_tvl(rpc: SolanaRpc, extra_treasuries: Optional[Sequence[str]] = None) -> TreasuryTvl:
    """Treasury balances, treasury-held DAMM v2 positions and Futarchy AMM LP positions.

    The AMM position share overlaps with ``futarchy_amm_tvl`` and is reported
    separately in ``double_counted``.
    """
    if extra_treasuries is None:
        extra_treasuries = config.EXTRA_TREASURIES

    dao_amms = fetch_dao_amms(rpc)
    amm_balances = aggregate_positions(rpc, dao_amms, fetch_amm_positions(rpc), new_balances())
    for key, amount in sorted(amm_balances.items()):
        logging.info("Double counted with Futarchy AMM: %s %d", key, amount)

    result = TreasuryTvl(balances=new_balances(), double_counted=dict(amm_balances))
    merge_balances(result.balances, amm_balances)
    _treasury_balances(rpc, treasury_vaults(dao_amms, extra_treasuries), result, value_nfts=True)
    logging.info("Total unique tokens: %d", len(result.balances))
    return result


def metadao_tvl(rpc: SolanaRpc, positions: Optional[Sequence[str]] = None) -> TreasuryTvl:
    """Treasury balances plus a fixed list of DAMM v2 positions."""
    if positions is None:
        positions = config.METEORA_POSITIONS

    result = TreasuryTvl(balances=new_balances())
    _treasury_balances(rpc, treasury_vaults(fetch_dao_amms(rpc)), result, value_nfts=False)
    add_positions(rpc, positions, result.balances)
    logging.info("Total unique tokens: %d", len(result.balances))
    return result
