"""Synthetic account buffers and an in-memory RPC mock for tests."""
from __future__ import annotations

import struct
from typing import Dict, Iterable, List, Optional, Sequence
from unittest.mock import Mock

from solders.pubkey import Pubkey

from .config import TOKEN_PROGRAM_ID
from .layouts import (
    AMM_POSITION_DISCRIMINATOR,
    DAMM_POOL_DISCRIMINATOR,
    DAMM_POSITION_DISCRIMINATOR,
    DAMM_POOL_FEES_SIZE,
    DAO_DISCRIMINATOR,
    SPL_TOKEN_ACCOUNT_SIZE,
    TWAP_ORACLE_SIZE,
)
from .rpc import AccountSnapshot, SolanaRpc


def key(n: int) -> str:
    """Deterministic pubkey made of 32 copies of byte ``n``."""
    return str(Pubkey.from_bytes(bytes([n]) * 32))


def raw(pubkey: str) -> bytes:
    return bytes(Pubkey.from_string(pubkey))


def pool_bytes(reserves: Sequence[int] = (1, 2, 3, 4)) -> bytes:
    return bytes(TWAP_ORACLE_SIZE) + struct.pack("<4Q", *reserves)


def dao_buffer(
    tag: int = 0,
    total_liquidity: int = 1_000,
    base_mint: str = key(1),
    quote_mint: str = key(2),
    base_vault: str = key(3),
    quote_vault: str = key(4),
    squads_vault: Optional[str] = None,
    padding: int = 0,
) -> bytes:
    pools = 3 if tag == 1 else 1
    data = DAO_DISCRIMINATOR + bytes([tag]) + pool_bytes() * pools
    data += total_liquidity.to_bytes(16, "little")
    data += raw(base_mint) + raw(quote_mint) + raw(base_vault) + raw(quote_vault)
    if squads_vault is not None:
        data += struct.pack("<Q", 7) + raw(key(90)) + bytes([254]) + raw(key(91)) + raw(squads_vault)
    return data + bytes(padding)


def amm_position_buffer(dao: str, authority: str, liquidity: int) -> bytes:
    return AMM_POSITION_DISCRIMINATOR + raw(dao) + raw(authority) + liquidity.to_bytes(16, "little")


def token_account_buffer(mint: str, owner: str, amount: int) -> bytes:
    data = raw(mint) + raw(owner) + struct.pack("<Q", amount)
    return data + bytes(SPL_TOKEN_ACCOUNT_SIZE - len(data))


def damm_position_buffer(pool: str, nft_mint: str, unlocked_liquidity: int) -> bytes:
    data = DAMM_POSITION_DISCRIMINATOR + raw(pool) + raw(nft_mint) + bytes(64) + bytes(16)
    data += unlocked_liquidity.to_bytes(16, "little") + bytes(32)
    return data + bytes(64)


def damm_pool_buffer(
    token_a_mint: str,
    token_b_mint: str,
    sqrt_price: int,
    sqrt_min_price: int,
    sqrt_max_price: int,
    liquidity: int = 0,
) -> bytes:
    data = DAMM_POOL_DISCRIMINATOR + bytes(DAMM_POOL_FEES_SIZE)
    data += raw(token_a_mint) + raw(token_b_mint) + raw(key(60)) + raw(key(61)) + bytes(64)
    data += liquidity.to_bytes(16, "little") + bytes(16) + bytes(32)
    for value in (sqrt_min_price, sqrt_max_price, sqrt_price):
        data += value.to_bytes(16, "little")
    return data + bytes(64)


def snapshot(address: str, data: bytes, owner: str = TOKEN_PROGRAM_ID) -> AccountSnapshot:
    return AccountSnapshot(address=address, owner=owner, lamports=2_039_280, data=data)


def token_snapshot(address: str, mint: str, amount: int, owner: str = key(99)) -> AccountSnapshot:
    return snapshot(address, token_account_buffer(mint, owner, amount))


def mock_rpc(
    accounts: Iterable[AccountSnapshot] = (),
    program_accounts: Optional[Dict[bytes, List[AccountSnapshot]]] = None,
    sized_accounts: Optional[List[AccountSnapshot]] = None,
    token_accounts: Optional[Dict[tuple, List[AccountSnapshot]]] = None,
) -> Mock:
    """``SolanaRpc`` mock answering from in-memory account maps.

    ``program_accounts`` is keyed by memcmp bytes, ``token_accounts`` by
    ``(owner, program_id)``.
    """
    by_address = {account.address: account for account in accounts}
    program_accounts = program_accounts or {}
    token_accounts = token_accounts or {}

    def get_program_accounts(program_id, data_size=None, memcmp=None, memcmp_offset=0):
        if memcmp is not None:
            return list(program_accounts.get(memcmp, []))
        return list(sized_accounts or [])

    rpc = Mock(spec=SolanaRpc)
    rpc.get_account.side_effect = lambda address: by_address.get(str(address))
    rpc.get_multiple_accounts.side_effect = lambda addresses: [by_address.get(str(a)) for a in addresses]
    rpc.get_program_accounts.side_effect = get_program_accounts
    rpc.get_token_accounts_by_owner.side_effect = lambda owner, program_id: list(
        token_accounts.get((str(owner), str(program_id)), [])
    )
    rpc.accounts = by_address
    return rpc
