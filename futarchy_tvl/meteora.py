"""Meteora DAMM v2 position valuation.

Sqrt prices are Q64.64 and liquidity carries the matching 2^64 scale, so a
withdrawal of ``L`` between ``sqrt_min`` and ``sqrt_max`` at ``sqrt_price``
yields::

    amount_a = L * (sqrt_max - sqrt_price) / (sqrt_price * sqrt_max)
    amount_b = L * (sqrt_price - sqrt_min) / 2^128

both rounded down.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .balances import Balances, add_balance
from .layouts import decode_damm_pool, decode_damm_position
from .rpc import SolanaRpc

SCALE_BITS = 128


@dataclass(frozen=True)
class PositionValue:
    position: str
    token_a_mint: str
    token_a_amount: int
    token_b_mint: str
    token_b_amount: int


def withdraw_quote(liquidity: int, sqrt_price: int, sqrt_min_price: int, sqrt_max_price: int) -> Tuple[int, int]:
    if sqrt_price <= 0 or sqrt_max_price <= 0:
        raise ValueError("sqrt prices must be positive")
    sqrt_price = min(max(sqrt_price, sqrt_min_price), sqrt_max_price)
    amount_a = liquidity * (sqrt_max_price - sqrt_price) // (sqrt_price * sqrt_max_price)
    amount_b = (liquidity * (sqrt_price - sqrt_min_price)) >> SCALE_BITS
    return amount_a, amount_b


def position_balances(rpc: SolanaRpc, position: str) -> Optional[PositionValue]:
    """Value a position's unlocked liquidity; ``None`` when it cannot be read."""
    try:
        position_info = rpc.get_account(position)
        decoded = decode_damm_position(position_info.data) if position_info else None
        if decoded is None:
            logging.warning("Position %s missing or not a DAMM v2 position", position)
            return None

        pool_info = rpc.get_account(decoded.pool)
        pool = decode_damm_pool(pool_info.data) if pool_info else None
        if pool is None:
            logging.warning("Pool %s for position %s missing or not a DAMM v2 pool", decoded.pool, position)
            return None

        amount_a, amount_b = withdraw_quote(
            decoded.unlocked_liquidity,
            pool.sqrt_price,
            pool.sqrt_min_price,
            pool.sqrt_max_price,
        )
    except Exception as exc:  # noqa: BLE001
        logging.error("Decode error for position %s: %s", position, exc)
        return None

    return PositionValue(
        position=position,
        token_a_mint=pool.token_a_mint,
        token_a_amount=amount_a,
        token_b_mint=pool.token_b_mint,
        token_b_amount=amount_b,
    )


def add_positions(rpc: SolanaRpc, positions: Iterable[str], balances: Balances) -> Balances:
    valued = 0
    for position in positions:
        value = position_balances(rpc, str(position))
        if value is None:
            continue
        add_balance(balances, value.token_a_mint, value.token_a_amount)
        add_balance(balances, value.token_b_mint, value.token_b_amount)
        valued += 1
    logging.info("Valued %d Meteora positions", valued)
    return balances
