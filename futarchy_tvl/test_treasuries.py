"""Tests for Meteora position valuation, treasury TVL and the CLI."""
import json

import pytest

from . import pipeline
from .balances import new_balances
from .config import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from .layouts import AMM_POSITION_DISCRIMINATOR, DAO_DISCRIMINATOR
from .meteora import add_positions, position_balances, withdraw_quote
from .pda import derive_position_pda
from .testing import (
    amm_position_buffer,
    dao_buffer,
    damm_pool_buffer,
    damm_position_buffer,
    key,
    mock_rpc,
    snapshot,
    token_snapshot,
)
from .treasuries import metadao_tvl, treasuries_tvl, treasury_token_accounts

Q64 = 2**64
DAMM_OWNER = key(96)


def damm_accounts(position, pool, nft_mint, liquidity, mint_a=key(42), mint_b=key(43)):
    return [
        snapshot(position, damm_position_buffer(pool, nft_mint, liquidity), owner=DAMM_OWNER),
        snapshot(pool, damm_pool_buffer(mint_a, mint_b, Q64, Q64 // 2, Q64 * 2), owner=DAMM_OWNER),
    ]


def test_withdraw_quote_in_range():
    liquidity = 10**6 * 2**65

    assert withdraw_quote(liquidity, Q64, Q64 // 2, Q64 * 2) == (10**6, 10**6)


def test_withdraw_quote_at_range_edges():
    liquidity = 10**6 * 2**65

    amount_a, amount_b = withdraw_quote(liquidity, Q64 // 2, Q64 // 2, Q64 * 2)
    assert amount_b == 0 and amount_a > 0
    amount_a, amount_b = withdraw_quote(liquidity, Q64 * 2, Q64 // 2, Q64 * 2)
    assert amount_a == 0 and amount_b > 0


def test_withdraw_quote_rejects_zero_price():
    with pytest.raises(ValueError):
        withdraw_quote(1, 0, 0, Q64)


def test_position_balances():
    rpc = mock_rpc(damm_accounts(key(44), key(45), key(41), 10**6 * 2**65))

    value = position_balances(rpc, key(44))

    assert (value.token_a_mint, value.token_a_amount) == (key(42), 10**6)
    assert (value.token_b_mint, value.token_b_amount) == (key(43), 10**6)


def test_unreadable_positions_are_skipped():
    accounts = damm_accounts(key(44), key(45), key(41), 2**66)
    accounts.append(snapshot(key(46), damm_position_buffer(key(47), key(41), 5), owner=DAMM_OWNER))
    accounts.append(snapshot(key(48), b"\x00" * 40, owner=DAMM_OWNER))
    rpc = mock_rpc(accounts)

    assert position_balances(rpc, key(49)) is None
    assert position_balances(rpc, key(46)) is None
    assert position_balances(rpc, key(48)) is None

    balances = add_positions(rpc, [key(49), key(44), key(46)], new_balances())
    assert balances == {f"solana:{key(42)}": 2, f"solana:{key(43)}": 2}


def treasury_rpc():
    squads_vault = key(20)
    nft_mint = key(31)
    pda = str(derive_position_pda(nft_mint))
    dao = snapshot(key(50), dao_buffer(total_liquidity=400, squads_vault=squads_vault), owner=key(98))
    positions = [snapshot(key(80), amm_position_buffer(key(50), squads_vault, 100), owner=key(98))]
    token_accounts = {
        (squads_vault, TOKEN_PROGRAM_ID): [
            token_snapshot(key(25), key(30), 500, owner=squads_vault),
            token_snapshot(key(26), nft_mint, 1, owner=squads_vault),
        ],
        (squads_vault, TOKEN_2022_PROGRAM_ID): [token_snapshot(key(27), key(35), 9, owner=squads_vault)],
    }
    accounts = [
        token_snapshot(key(3), key(1), 4_000),
        token_snapshot(key(4), key(2), 800),
        *damm_accounts(pda, key(45), nft_mint, 10**6 * 2**65),
        *damm_accounts(key(44), key(46), key(41), 2 * 2**65, mint_a=key(1), mint_b=key(36)),
    ]
    return mock_rpc(
        accounts,
        program_accounts={DAO_DISCRIMINATOR: [dao], AMM_POSITION_DISCRIMINATOR: positions},
        token_accounts=token_accounts,
    )


def test_treasury_token_accounts_find_nft_mints():
    rpc = treasury_rpc()

    accounts, nft_mints = treasury_token_accounts(rpc, [key(20), key(20)])

    assert sorted(account.address for account in accounts) == sorted([key(25), key(26), key(27)])
    assert nft_mints == {key(31)}


def test_treasury_fetch_error_is_isolated():
    rpc = treasury_rpc()
    fetch = rpc.get_token_accounts_by_owner.side_effect

    def get_token_accounts_by_owner(owner, program_id):
        if program_id == TOKEN_2022_PROGRAM_ID:
            raise RuntimeError("timeout")
        return fetch(owner, program_id)

    rpc.get_token_accounts_by_owner.side_effect = get_token_accounts_by_owner

    accounts, _ = treasury_token_accounts(rpc, [key(20)])

    assert len(accounts) == 2


def test_treasuries_tvl():
    result = treasuries_tvl(treasury_rpc(), extra_treasuries=[])

    assert result.double_counted == {f"solana:{key(1)}": 1_000, f"solana:{key(2)}": 200}
    assert dict(result.balances) == {
        f"solana:{key(1)}": 1_000,
        f"solana:{key(2)}": 200,
        f"solana:{key(30)}": 500,
        f"solana:{key(31)}": 1,
        f"solana:{key(35)}": 9,
        f"solana:{key(42)}": 10**6,
        f"solana:{key(43)}": 10**6,
    }
    assert result.token_accounts == 3
    assert result.nft_mints == 1


def test_metadao_tvl_uses_listed_positions():
    result = metadao_tvl(treasury_rpc(), positions=[key(44)])

    assert dict(result.balances) == {
        f"solana:{key(1)}": 2,
        f"solana:{key(36)}": 2,
        f"solana:{key(30)}": 500,
        f"solana:{key(31)}": 1,
        f"solana:{key(35)}": 9,
    }


def test_cli_writes_json_and_csv(tmp_path, monkeypatch):
    rpc = treasury_rpc()
    monkeypatch.setattr(pipeline, "build_rpc", lambda args: rpc)
    output = tmp_path / "out" / "balances.json"
    csv_path = tmp_path / "out" / "balances.csv"

    pipeline.main(["metadao", "--position", key(44), "--output", str(output), "--csv", str(csv_path)])

    payload = json.loads(output.read_text())
    assert payload["balances"][f"solana:{key(30)}"] == "500"
    assert payload["token_accounts"] == 3
    lines = csv_path.read_text().splitlines()
    assert lines[0] == "asset,amount"
    assert len(lines) == 6
