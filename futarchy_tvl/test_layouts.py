"""Tests for account layout decoding and PDA derivation."""
import hashlib
import struct

import pytest
from solders.pubkey import Pubkey

from .config import DAMM_V2_PROGRAM_ID
from .layouts import (
    DAO_DISCRIMINATOR,
    AccountReader,
    DecodeError,
    FutarchyPools,
    OutOfBoundsError,
    SpotPool,
    UnknownPoolStateTag,
    decode_amm_position,
    decode_damm_pool,
    decode_damm_position,
    decode_dao_amm,
    decode_token_account,
    discriminator,
    read_token_amount,
)
from .pda import derive_position_pda, find_position_pda
from .testing import (
    amm_position_buffer,
    dao_buffer,
    damm_pool_buffer,
    damm_position_buffer,
    key,
    token_account_buffer,
)


def test_discriminator_is_sha256_prefix():
    """Anchor discriminators are the first 8 bytes of sha256("account:<Name>")"""
    assert discriminator("Dao") == hashlib.sha256(b"account:Dao").digest()[:8]
    assert DAO_DISCRIMINATOR != discriminator("AmmPosition")


@pytest.mark.parametrize("data", [b"", b"\x00" * 7, b"\xff" * 400, amm_position_buffer(key(1), key(2), 5)])
def test_wrong_discriminator_is_not_a_dao(data):
    assert decode_dao_amm(data) is None


def test_wrong_discriminator_is_not_a_position():
    assert decode_amm_position(dao_buffer()) is None
    assert decode_damm_position(dao_buffer()) is None
    assert decode_damm_pool(b"\x01" * 600) is None


def test_spot_dao_consumes_285_bytes():
    data = dao_buffer(tag=0, total_liquidity=2**127 + 5, padding=64)
    dao = decode_dao_amm(data)

    assert isinstance(dao.pool_state, SpotPool)
    assert dao.end_offset == 8 + 1 + 132 + 16 + 128 == 285
    assert dao.total_liquidity == 2**127 + 5
    assert dao.base_mint == str(Pubkey.from_bytes(data[157:189])) == key(1)
    assert dao.quote_mint == str(Pubkey.from_bytes(data[189:221])) == key(2)
    assert dao.base_vault == str(Pubkey.from_bytes(data[221:253])) == key(3)
    assert dao.quote_vault == str(Pubkey.from_bytes(data[253:285])) == key(4)
    assert dao.pool_state.spot.quote_reserves == 1
    assert dao.pool_state.spot.base_protocol_fee_balance == 4


def test_futarchy_dao_consumes_three_pools():
    dao = decode_dao_amm(dao_buffer(tag=1))

    assert isinstance(dao.pool_state, FutarchyPools)
    assert dao.end_offset == 8 + 1 + 3 * 132 + 16 + 128
    assert dao.base_vault == key(3)
    assert dao.quote_vault == key(4)


@pytest.mark.parametrize("tag", [2, 7, 255])
def test_unknown_pool_state_tag_raises(tag):
    with pytest.raises(UnknownPoolStateTag) as excinfo:
        decode_dao_amm(dao_buffer(tag=tag))
    assert excinfo.value.tag == tag
    assert excinfo.value.offset == 8
    assert isinstance(excinfo.value, DecodeError)


def test_truncated_dao_raises_out_of_bounds():
    with pytest.raises(OutOfBoundsError):
        decode_dao_amm(dao_buffer()[:250])


def test_treasury_fields_read_when_present():
    with_treasury = decode_dao_amm(dao_buffer(squads_vault=key(20)))
    without = decode_dao_amm(dao_buffer())

    assert with_treasury.squads_multisig_vault == key(20)
    assert with_treasury.squads_multisig == key(91)
    assert with_treasury.dao_creator == key(90)
    assert with_treasury.nonce == 7
    assert without.squads_multisig_vault is None


def test_amm_position_decoding():
    position = decode_amm_position(amm_position_buffer(key(5), key(6), 2**100))

    assert position.dao == key(5)
    assert position.position_authority == key(6)
    assert position.liquidity == 2**100


def test_reader_bounds_and_little_endian():
    reader = AccountReader(struct.pack("<Q", 2**64 - 1) + (3).to_bytes(16, "little"))

    assert reader.read_u64_le() == 2**64 - 1
    assert reader.read_u128_le() == 3
    assert reader.remaining == 0
    with pytest.raises(OutOfBoundsError, match="offset 24"):
        reader.read_u8()


def test_token_account_decoding():
    data = token_account_buffer(key(7), key(8), 2**64 - 1)
    token = decode_token_account(data)

    assert token.mint == key(7)
    assert token.owner == key(8)
    assert token.amount == 2**64 - 1
    assert read_token_amount(data) == 2**64 - 1


def test_short_token_account_raises():
    with pytest.raises(OutOfBoundsError):
        decode_token_account(b"\x00" * 100)


def test_damm_layouts():
    position = decode_damm_position(damm_position_buffer(key(40), key(41), 123456))
    pool = decode_damm_pool(damm_pool_buffer(key(42), key(43), sqrt_price=30, sqrt_min_price=10, sqrt_max_price=50))

    assert position.pool == key(40)
    assert position.nft_mint == key(41)
    assert position.unlocked_liquidity == 123456
    assert pool.token_a_mint == key(42)
    assert pool.token_b_mint == key(43)
    assert (pool.sqrt_min_price, pool.sqrt_max_price, pool.sqrt_price) == (10, 50, 30)


def test_position_pda_is_deterministic():
    mint = key(31)

    first = derive_position_pda(mint)
    second = derive_position_pda(Pubkey.from_string(mint))
    expected, bump = Pubkey.find_program_address(
        [b"position", bytes(Pubkey.from_string(mint))],
        Pubkey.from_string(DAMM_V2_PROGRAM_ID),
    )

    assert first == second == expected
    assert find_position_pda(mint) == (expected, bump)
    assert derive_position_pda(key(32)) != first
