"""Program-derived addresses for Meteora DAMM v2 positions."""
from __future__ import annotations

from typing import Tuple, Union

from solders.pubkey import Pubkey

from .config import DAMM_V2_PROGRAM_ID

POSITION_SEED = b"position"


def _as_pubkey(value: Union[Pubkey, str]) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return Pubkey.from_string(value)


def find_position_pda(nft_mint: Union[Pubkey, str], program_id: Union[Pubkey, str] = DAMM_V2_PROGRAM_ID) -> Tuple[Pubkey, int]:
    """Return the position PDA and bump for a position NFT mint."""
    seeds = [POSITION_SEED, bytes(_as_pubkey(nft_mint))]
    return Pubkey.find_program_address(seeds, _as_pubkey(program_id))


def derive_position_pda(nft_mint: Union[Pubkey, str], program_id: Union[Pubkey, str] = DAMM_V2_PROGRAM_ID) -> Pubkey:
    pda, _bump = find_position_pda(nft_mint, program_id)
    return pda
