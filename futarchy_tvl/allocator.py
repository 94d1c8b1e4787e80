"""Pro-rata allocation of AMM vault balances to liquidity positions."""
from __future__ import annotations

from typing import Tuple

PRECISION = 10**18


def liquidity_share(liquidity: int, total_liquidity: int) -> int:
    """Fixed-point (1e18) share of ``total_liquidity`` held by ``liquidity``."""
    if total_liquidity == 0:
        raise ValueError("total_liquidity must be nonzero")
    return liquidity * PRECISION // total_liquidity


def allocate_amount(balance: int, share: int) -> int:
    return balance * share // PRECISION


def allocate(liquidity: int, total_liquidity: int, base_balance: int, quote_balance: int) -> Tuple[int, int]:
    """Return the (base, quote) amounts owned by a position.

    Both divisions floor, so a position can be short by at most one unit per
    1e18 of vault balance plus one.
    """
    share = liquidity_share(liquidity, total_liquidity)
    return allocate_amount(base_balance, share), allocate_amount(quote_balance, share)
