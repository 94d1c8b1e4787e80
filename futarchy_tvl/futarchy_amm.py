"""Futarchy AMM TVL: vault balances and per-position liquidity allocation."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from . import config
from .allocator import allocate
from .balances import Balances, add_balance, add_token_accounts, new_balances
from .discovery import ResolvedVaults, is_token_account, reference_offsets, resolve_dao_vaults
from .layouts import (
    AMM_POSITION_DISCRIMINATOR,
    DAO_DISCRIMINATOR,
    AmmPosition,
    DaoAmm,
    DecodeError,
    decode_amm_position,
    decode_dao_amm,
    read_token_amount,
)
from .rpc import SolanaRpc


@dataclass
class VaultTvl:
    balances: Balances
    resolved: List[ResolvedVaults] = field(default_factory=list)

    @property
    def fallback_daos(self) -> List[str]:
        return [entry.dao for entry in self.resolved if entry.via_fallback]


def futarchy_amm_tvl(
    rpc: SolanaRpc,
    reference_dao: str = config.REFERENCE_DAO,
    reference_base_vault: str = config.REFERENCE_BASE_VAULT,
    reference_quote_vault: str = config.REFERENCE_QUOTE_VAULT,
) -> VaultTvl:
    """Sum the SPL balances held by every DAO's AMM base and quote vaults."""
    daos = rpc.get_program_accounts(config.FUTARCHY_PROGRAM_ID, data_size=config.DAO_ACCOUNT_SIZE)
    logging.info("DAO accounts found: %d", len(daos))

    offsets = reference_offsets(daos, reference_dao, reference_base_vault, reference_quote_vault)
    resolved = resolve_dao_vaults(rpc, daos, offsets)

    vaults = list(dict.fromkeys(addr for entry in resolved for addr in (entry.base_vault, entry.quote_vault)))
    logging.info("Unique vault accounts: %d", len(vaults))

    result = VaultTvl(balances=new_balances(), resolved=resolved)
    if not vaults:
        logging.warning("No valid vault accounts found")
        return result

    infos = rpc.get_multiple_accounts(vaults)
    valid = [info for info in infos if is_token_account(info)]
    logging.info("Valid token vaults: %d, skipped after final filter: %d", len(valid), len(vaults) - len(valid))

    add_token_accounts(result.balances, valid)
    for dao in result.fallback_daos:
        logging.warning("DAO %s vaults came from the buffer scan; audit before trusting", dao)
    return result


def fetch_dao_amms(rpc: SolanaRpc) -> Dict[str, DaoAmm]:
    accounts = rpc.get_program_accounts(config.FUTARCHY_PROGRAM_ID, memcmp=DAO_DISCRIMINATOR)
    dao_amms: Dict[str, DaoAmm] = {}
    for account in accounts:
        try:
            dao_amm = decode_dao_amm(account.data)
        except DecodeError as exc:
            logging.warning("Failed to decode Dao AMM for %s: %s", account.address, exc)
            continue
        if dao_amm is not None:
            dao_amms[account.address] = dao_amm
    logging.info("Decoded AMM view for %d/%d DAOs", len(dao_amms), len(accounts))
    return dao_amms


def fetch_amm_positions(rpc: SolanaRpc) -> List[AmmPosition]:
    accounts = rpc.get_program_accounts(config.FUTARCHY_PROGRAM_ID, memcmp=AMM_POSITION_DISCRIMINATOR)
    positions: List[AmmPosition] = []
    for account in accounts:
        try:
            position = decode_amm_position(account.data)
        except DecodeError as exc:
            logging.warning("Failed to decode AmmPosition %s: %s", account.address, exc)
            continue
        if position is not None:
            positions.append(position)
    logging.info("Found %d AmmPosition accounts", len(positions))
    return positions


def vault_balance(rpc: SolanaRpc, vault: str) -> int:
    """Raw amount held by a token account; a missing account counts as zero."""
    info = rpc.get_account(vault)
    if info is None or not info.data:
        return 0
    return read_token_amount(info.data)


def aggregate_positions(
    rpc: SolanaRpc,
    dao_amms: Mapping[str, DaoAmm],
    positions: Sequence[AmmPosition],
    balances: Balances,
) -> Balances:
    """Allocate each DAO's vault balances to its positions by liquidity share."""
    by_dao: Dict[str, List[AmmPosition]] = defaultdict(list)
    for position in positions:
        if position.dao in dao_amms:
            by_dao[position.dao].append(position)
    logging.info("Positions on known DAOs: %d", sum(len(group) for group in by_dao.values()))

    for dao, group in by_dao.items():
        dao_amm = dao_amms[dao]
        if dao_amm.total_liquidity == 0:
            logging.debug("DAO %s has no liquidity, skipping", dao)
            continue

        try:
            base_balance = vault_balance(rpc, dao_amm.base_vault)
            quote_balance = vault_balance(rpc, dao_amm.quote_vault)
        except Exception as exc:  # noqa: BLE001
            logging.warning("Skipping DAO %s due to vault error: %s", dao, exc)
            continue

        for position in group:
            if position.liquidity > dao_amm.total_liquidity:
                logging.warning(
                    "Position on DAO %s holds %d liquidity of %d total",
                    dao,
                    position.liquidity,
                    dao_amm.total_liquidity,
                )
            base, quote = allocate(position.liquidity, dao_amm.total_liquidity, base_balance, quote_balance)
            add_balance(balances, dao_amm.base_mint, base)
            add_balance(balances, dao_amm.quote_mint, quote)

    return balances


def amm_position_tvl(rpc: SolanaRpc) -> Balances:
    """Value held through Futarchy AMM LP positions, in raw token amounts."""
    dao_amms = fetch_dao_amms(rpc)
    positions = fetch_amm_positions(rpc)
    balances = aggregate_positions(rpc, dao_amms, positions, new_balances())
    logging.info("Futarchy AMM tokens discovered: %d", len(balances))
    return balances
