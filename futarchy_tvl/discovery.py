"""Locate AMM base/quote vaults inside Dao account buffers.

Two strategies, tried per DAO:

1. offsets: the byte offsets of a reference DAO's known vaults are applied to
   every other Dao buffer and the resulting addresses are validated as SPL
   token accounts.
2. fallback scan: every 32-byte window of the buffer is a candidate pubkey; the
   first two that are SPL token accounts win. This is a heuristic, so DAOs
   resolved this way are flagged for audit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .config import TOKEN_PROGRAM_ID
from .layouts import PUBKEY_LENGTH, SPL_TOKEN_ACCOUNT_SIZE
from .rpc import AccountSnapshot, SolanaRpc

MAX_FALLBACK_VAULTS = 2


@dataclass(frozen=True)
class ResolvedVaults:
    dao: str
    base_vault: str
    quote_vault: str
    via_fallback: bool = False


def find_pubkey_offset(data: bytes, pubkey: str) -> Optional[int]:
    """Offset of the first 32-byte window equal to ``pubkey``, or ``None``."""
    target = bytes(Pubkey.from_string(pubkey))
    for offset in range(len(data) - PUBKEY_LENGTH + 1):
        if data[offset:offset + PUBKEY_LENGTH] == target:
            return offset
    return None


def pubkey_at(data: bytes, offset: int) -> Optional[str]:
    window = data[offset:offset + PUBKEY_LENGTH]
    if offset < 0 or len(window) != PUBKEY_LENGTH:
        return None
    return str(Pubkey.from_bytes(window))


def candidate_pubkeys(data: bytes) -> List[str]:
    """Every 32-byte window as a pubkey, de-duplicated in scan order."""
    seen: Dict[str, None] = {}
    for offset in range(len(data) - PUBKEY_LENGTH + 1):
        seen.setdefault(str(Pubkey.from_bytes(data[offset:offset + PUBKEY_LENGTH])), None)
    return list(seen)


def is_token_account(account: Optional[AccountSnapshot]) -> bool:
    if account is None or not account.data:
        return False
    return len(account.data) == SPL_TOKEN_ACCOUNT_SIZE and account.owner == TOKEN_PROGRAM_ID


def reference_offsets(
    accounts: Iterable[AccountSnapshot],
    reference_dao: str,
    base_vault: str,
    quote_vault: str,
) -> Optional[Tuple[int, int]]:
    reference = next((account for account in accounts if account.address == reference_dao), None)
    if reference is None:
        logging.error("Reference DAO %s not among scanned accounts", reference_dao)
        return None

    base_offset = find_pubkey_offset(reference.data, base_vault)
    quote_offset = find_pubkey_offset(reference.data, quote_vault)
    logging.info("Found offsets - Base: %s, Quote: %s", base_offset, quote_offset)
    if base_offset is None or quote_offset is None:
        logging.error("Could not determine vault offsets from reference DAO %s", reference_dao)
        return None
    return base_offset, quote_offset


def scan_vaults_fallback(rpc: SolanaRpc, data: bytes) -> List[str]:
    candidates = candidate_pubkeys(data)
    if not candidates:
        return []

    infos = rpc.get_multiple_accounts(candidates)
    vaults: List[str] = []
    for address, info in zip(candidates, infos):
        if is_token_account(info):
            vaults.append(address)
            if len(vaults) == MAX_FALLBACK_VAULTS:
                break
    return vaults


def resolve_dao_vaults(
    rpc: SolanaRpc,
    daos: Sequence[AccountSnapshot],
    offsets: Optional[Tuple[int, int]],
) -> List[ResolvedVaults]:
    """Resolve base/quote vaults for each DAO, skipping the ones that fail both strategies."""
    candidates: List[Tuple[AccountSnapshot, Optional[str], Optional[str]]] = []
    for dao in daos:
        base = quote = None
        if offsets is not None:
            base = pubkey_at(dao.data, offsets[0])
            quote = pubkey_at(dao.data, offsets[1])
            logging.debug("DAO %s offset-derived vaults: base=%s quote=%s", dao.address, base, quote)
        candidates.append((dao, base, quote))

    initial = list(dict.fromkeys(addr for _, base, quote in candidates for addr in (base, quote) if addr))
    logging.info("Initial candidate vault accounts from offsets: %d", len(initial))
    info_map = dict(zip(initial, rpc.get_multiple_accounts(initial))) if initial else {}

    resolved: List[ResolvedVaults] = []
    for dao, base, quote in candidates:
        if base and quote and is_token_account(info_map.get(base)) and is_token_account(info_map.get(quote)):
            logging.debug("DAO %s: using offset-derived vaults", dao.address)
            resolved.append(ResolvedVaults(dao.address, base, quote))
            continue

        logging.info("DAO %s: offset vaults invalid, falling back to buffer scan", dao.address)
        try:
            fallback = scan_vaults_fallback(rpc, dao.data)
        except Exception as exc:  # noqa: BLE001
            logging.warning("DAO %s: fallback scan failed: %s", dao.address, exc)
            continue

        if len(fallback) < MAX_FALLBACK_VAULTS:
            logging.warning("DAO %s: could not reliably detect 2 vaults, skipping", dao.address)
            continue

        logging.warning("DAO %s: vaults resolved by buffer scan base=%s quote=%s", dao.address, fallback[0], fallback[1])
        resolved.append(ResolvedVaults(dao.address, fallback[0], fallback[1], via_fallback=True))

    return resolved
