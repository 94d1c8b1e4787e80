"""Account layouts for the futarchy program, SPL token accounts and Meteora DAMM v2.

Anchor accounts start with an 8 byte discriminator, ``sha256("account:<Name>")[:8]``.
Decoders return ``None`` when the discriminator does not match and raise
``DecodeError`` when a matching buffer is malformed.

Dao (futarchy program)::

    0     discriminator
    8     PoolState tag (u8): 0 = Spot, 1 = Futarchy
    9     Pool x1 (Spot) or x3 (Futarchy, spot/pass/fail), 132 bytes each
          100 TWAP oracle, quote_reserves, base_reserves,
          quote_protocol_fee_balance, base_protocol_fee_balance (u64)
    ...   total_liquidity (u128), base_mint, quote_mint,
          amm_base_vault, amm_quote_vault
    ...   nonce (u64), dao_creator, pda_bump (u8), squads_multisig,
          squads_multisig_vault
"""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Optional, Union

from construct import Bytes, Int8ul, Int32ul, Int64ul, Struct
from solders.pubkey import Pubkey

PUBKEY_LENGTH = 32
DISCRIMINATOR_LENGTH = 8
TWAP_ORACLE_SIZE = 100
POOL_SIZE = TWAP_ORACLE_SIZE + 4 * 8
SPL_TOKEN_ACCOUNT_SIZE = 165
TOKEN_AMOUNT_OFFSET = 64

# PoolFeesStruct at the head of a DAMM v2 pool
DAMM_POOL_FEES_SIZE = 160
DAO_TREASURY_SIZE = 8 + PUBKEY_LENGTH + 1 + PUBKEY_LENGTH + PUBKEY_LENGTH


class DecodeError(ValueError):
    """Raised when an account buffer claims a type but does not fit its layout."""


class OutOfBoundsError(DecodeError):
    pass


class UnknownPoolStateTag(DecodeError):
    def __init__(self, tag: int, offset: int):
        super().__init__(f"Unknown PoolState tag {tag} at offset {offset}")
        self.tag = tag
        self.offset = offset


def discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_LENGTH]


DAO_DISCRIMINATOR = discriminator("Dao")
AMM_POSITION_DISCRIMINATOR = discriminator("AmmPosition")
DAMM_POSITION_DISCRIMINATOR = discriminator("Position")
DAMM_POOL_DISCRIMINATOR = discriminator("Pool")


def has_discriminator(data: bytes, expected: bytes) -> bool:
    return bytes(data[:DISCRIMINATOR_LENGTH]) == expected


class AccountReader:
    """Sequential little-endian reader over an account buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return max(len(self.data) - self.offset, 0)

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if self.offset < 0 or end > len(self.data):
            raise OutOfBoundsError(
                f"Read of {size} bytes at offset {self.offset} exceeds buffer of {len(self.data)} bytes"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def skip(self, size: int) -> None:
        self._take(size)

    def read_fixed_bytes(self, size: int) -> bytes:
        return self._take(size)

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u64_le(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def read_u128_le(self) -> int:
        return int.from_bytes(self._take(16), "little", signed=False)

    def read_pubkey(self) -> str:
        return str(Pubkey.from_bytes(self._take(PUBKEY_LENGTH)))


@dataclass(frozen=True)
class Pool:
    oracle: bytes
    quote_reserves: int
    base_reserves: int
    quote_protocol_fee_balance: int
    base_protocol_fee_balance: int


@dataclass(frozen=True)
class SpotPool:
    spot: Pool


@dataclass(frozen=True)
class FutarchyPools:
    spot: Pool
    pass_: Pool
    fail: Pool


PoolState = Union[SpotPool, FutarchyPools]


@dataclass(frozen=True)
class DaoAmm:
    """AMM view of a Dao account plus its treasury fields when present."""

    pool_state: PoolState
    total_liquidity: int
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    end_offset: int
    nonce: Optional[int] = None
    dao_creator: Optional[str] = None
    squads_multisig: Optional[str] = None
    squads_multisig_vault: Optional[str] = None


@dataclass(frozen=True)
class AmmPosition:
    dao: str
    position_authority: str
    liquidity: int


@dataclass(frozen=True)
class TokenAccount:
    mint: str
    owner: str
    amount: int


@dataclass(frozen=True)
class DammPosition:
    pool: str
    nft_mint: str
    unlocked_liquidity: int
    vested_liquidity: int
    permanent_locked_liquidity: int


@dataclass(frozen=True)
class DammPool:
    token_a_mint: str
    token_b_mint: str
    token_a_vault: str
    token_b_vault: str
    liquidity: int
    sqrt_min_price: int
    sqrt_max_price: int
    sqrt_price: int


SPL_TOKEN_ACCOUNT_LAYOUT = Struct(
    "mint" / Bytes(PUBKEY_LENGTH),
    "owner" / Bytes(PUBKEY_LENGTH),
    "amount" / Int64ul,
    "delegate_option" / Int32ul,
    "delegate" / Bytes(PUBKEY_LENGTH),
    "state" / Int8ul,
    "is_native_option" / Int32ul,
    "is_native" / Int64ul,
    "delegated_amount" / Int64ul,
    "close_authority_option" / Int32ul,
    "close_authority" / Bytes(PUBKEY_LENGTH),
)


def read_pool(reader: AccountReader) -> Pool:
    return Pool(
        oracle=reader.read_fixed_bytes(TWAP_ORACLE_SIZE),
        quote_reserves=reader.read_u64_le(),
        base_reserves=reader.read_u64_le(),
        quote_protocol_fee_balance=reader.read_u64_le(),
        base_protocol_fee_balance=reader.read_u64_le(),
    )


def read_pool_state(reader: AccountReader) -> PoolState:
    tag_offset = reader.offset
    tag = reader.read_u8()
    if tag == 0:
        return SpotPool(spot=read_pool(reader))
    if tag == 1:
        return FutarchyPools(spot=read_pool(reader), pass_=read_pool(reader), fail=read_pool(reader))
    raise UnknownPoolStateTag(tag, tag_offset)


def decode_dao_amm(data: bytes) -> Optional[DaoAmm]:
    """Decode the AMM section of a Dao account.

    The treasury fields that follow the AMM are read only when the buffer is
    long enough to hold all of them.
    """
    if not has_discriminator(data, DAO_DISCRIMINATOR):
        return None

    reader = AccountReader(data, DISCRIMINATOR_LENGTH)
    pool_state = read_pool_state(reader)
    total_liquidity = reader.read_u128_le()
    base_mint = reader.read_pubkey()
    quote_mint = reader.read_pubkey()
    base_vault = reader.read_pubkey()
    quote_vault = reader.read_pubkey()
    end_offset = reader.offset

    treasury = {}
    if reader.remaining >= DAO_TREASURY_SIZE:
        treasury["nonce"] = reader.read_u64_le()
        treasury["dao_creator"] = reader.read_pubkey()
        reader.skip(1)  # pda_bump
        treasury["squads_multisig"] = reader.read_pubkey()
        treasury["squads_multisig_vault"] = reader.read_pubkey()

    return DaoAmm(
        pool_state=pool_state,
        total_liquidity=total_liquidity,
        base_mint=base_mint,
        quote_mint=quote_mint,
        base_vault=base_vault,
        quote_vault=quote_vault,
        end_offset=end_offset,
        **treasury,
    )


def decode_amm_position(data: bytes) -> Optional[AmmPosition]:
    if not has_discriminator(data, AMM_POSITION_DISCRIMINATOR):
        return None

    reader = AccountReader(data, DISCRIMINATOR_LENGTH)
    return AmmPosition(
        dao=reader.read_pubkey(),
        position_authority=reader.read_pubkey(),
        liquidity=reader.read_u128_le(),
    )


def decode_token_account(data: bytes) -> TokenAccount:
    """Parse the base 165 byte SPL token account layout.

    Token-2022 accounts share the same prefix, extensions are ignored.
    """
    if len(data) < SPL_TOKEN_ACCOUNT_SIZE:
        raise OutOfBoundsError(f"Token account needs {SPL_TOKEN_ACCOUNT_SIZE} bytes, got {len(data)}")
    parsed = SPL_TOKEN_ACCOUNT_LAYOUT.parse(bytes(data[:SPL_TOKEN_ACCOUNT_SIZE]))
    return TokenAccount(
        mint=str(Pubkey.from_bytes(parsed.mint)),
        owner=str(Pubkey.from_bytes(parsed.owner)),
        amount=parsed.amount,
    )


def read_token_amount(data: bytes) -> int:
    return AccountReader(data, TOKEN_AMOUNT_OFFSET).read_u64_le()


def decode_damm_position(data: bytes) -> Optional[DammPosition]:
    if not has_discriminator(data, DAMM_POSITION_DISCRIMINATOR):
        return None

    reader = AccountReader(data, DISCRIMINATOR_LENGTH)
    pool = reader.read_pubkey()
    nft_mint = reader.read_pubkey()
    reader.skip(2 * 32)  # fee_a/fee_b per-token checkpoints
    reader.skip(2 * 8)  # fee_a/fee_b pending
    return DammPosition(
        pool=pool,
        nft_mint=nft_mint,
        unlocked_liquidity=reader.read_u128_le(),
        vested_liquidity=reader.read_u128_le(),
        permanent_locked_liquidity=reader.read_u128_le(),
    )


def decode_damm_pool(data: bytes) -> Optional[DammPool]:
    if not has_discriminator(data, DAMM_POOL_DISCRIMINATOR):
        return None

    reader = AccountReader(data, DISCRIMINATOR_LENGTH)
    reader.skip(DAMM_POOL_FEES_SIZE)
    token_a_mint = reader.read_pubkey()
    token_b_mint = reader.read_pubkey()
    token_a_vault = reader.read_pubkey()
    token_b_vault = reader.read_pubkey()
    reader.skip(2 * PUBKEY_LENGTH)  # whitelisted_vault, partner
    liquidity = reader.read_u128_le()
    reader.skip(16)  # padding
    reader.skip(4 * 8)  # protocol/partner fee counters
    return DammPool(
        token_a_mint=token_a_mint,
        token_b_mint=token_b_mint,
        token_a_vault=token_a_vault,
        token_b_vault=token_b_vault,
        liquidity=liquidity,
        sqrt_min_price=reader.read_u128_le(),
        sqrt_max_price=reader.read_u128_le(),
        sqrt_price=reader.read_u128_le(),
    )
