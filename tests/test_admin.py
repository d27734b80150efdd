"""
Test suite for protocol administration and read-only queries.

Covers:
  - Admin-only operations and their Unauthorized path
  - Pause gating (mutations blocked, queries available)
  - Emergency withdrawal
  - Protocol info, pool stats, pool health and analytics
"""

import pytest

from xliquidity.constants import PRECISION
from xliquidity.exceptions import (
    InvalidAmount,
    InvalidFee,
    Paused,
    PoolNotFound,
    Unauthorized,
)
from xliquidity.bridge import AllowlistRelayer

TOKEN_A = "token-a"
TOKEN_B = "token-b"
TOKEN_X = "token-x"
ADMIN = "deployer"
ALICE = "alice"
BOB = "bob"
TREASURY = "treasury"
CUSTODY = "aggregator.custody"
FUNDING = 10 ** 15


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------

class TestAdminOperations:

    def test_set_protocol_fee(self, engine):
        engine.set_protocol_fee(ADMIN, 50)
        assert engine.get_protocol_info()["protocol_fee"] == 50

    @pytest.mark.parametrize("fee", [-1, 10_001])
    def test_set_protocol_fee_out_of_range(self, engine, fee):
        with pytest.raises(InvalidFee):
            engine.set_protocol_fee(ADMIN, fee)
        assert engine.config.protocol_fee_bps == 30

    def test_set_fee_recipient(self, engine, pool_id, tokens):
        engine.set_fee_recipient(ADMIN, BOB)
        engine.swap(ALICE, pool_id, TOKEN_A, TOKEN_B, 10_000_000, 0)
        assert tokens.get(TOKEN_A).balance_of(BOB) == FUNDING + 30_000

    def test_fee_recipient_cannot_be_custody(self, engine):
        with pytest.raises(InvalidAmount):
            engine.set_fee_recipient(ADMIN, CUSTODY)

    def test_deactivate_missing_pool(self, engine):
        with pytest.raises(PoolNotFound):
            engine.deactivate_pool(ADMIN, 3)

    def test_transfer_admin(self, engine):
        engine.transfer_admin(ADMIN, ALICE)
        assert engine.get_protocol_info()["admin"] == ALICE
        with pytest.raises(Unauthorized):
            engine.set_paused(ADMIN, True)
        engine.set_paused(ALICE, True)

    @pytest.mark.parametrize("call", [
        lambda e: e.set_protocol_fee(ALICE, 10),
        lambda e: e.set_fee_recipient(ALICE, ALICE),
        lambda e: e.set_paused(ALICE, True),
        lambda e: e.deactivate_pool(ALICE, 1),
        lambda e: e.emergency_withdraw(ALICE, TOKEN_A, 1, ALICE),
        lambda e: e.transfer_admin(ALICE, ALICE),
        lambda e: e.set_relayer_authority(ALICE, AllowlistRelayer([ALICE])),
    ])
    def test_non_admin_rejected_without_state_change(self, engine, pool_id, call):
        before = engine.to_dict()
        with pytest.raises(Unauthorized):
            call(engine)
        assert engine.to_dict() == before


# ---------------------------------------------------------------------------
# Pause
# ---------------------------------------------------------------------------

class TestPause:

    def test_pause_blocks_mutations_not_queries(self, engine, pool_id):
        engine.set_paused(ADMIN, True)

        with pytest.raises(Paused):
            engine.swap(BOB, pool_id, TOKEN_A, TOKEN_B, 1_000_000, 0)
        with pytest.raises(Paused):
            engine.add_liquidity(BOB, pool_id, 50_000_000, 100_000_000, 1)
        with pytest.raises(Paused):
            engine.create_pool(BOB, TOKEN_A, TOKEN_X, 1_000, 1_000, 30)

        assert engine.get_pool(pool_id).reserve_a == 100_000_000
        assert engine.find_pool_id(TOKEN_B, TOKEN_A) == pool_id
        assert engine.quote_swap_output(pool_id, TOKEN_A, 10_000_000) == 17_684_594
        assert engine.get_protocol_info()["paused"] is True
        assert engine.get_pool_stats(pool_id)["reserve_b"] == 200_000_000
        assert engine.get_pool_health(pool_id)["is_balanced"] is True

    def test_unpause(self, engine, pool_id):
        engine.set_paused(ADMIN, True)
        engine.set_paused(ADMIN, False)
        engine.swap(BOB, pool_id, TOKEN_A, TOKEN_B, 1_000_000, 0)

    def test_admin_ops_work_while_paused(self, engine):
        engine.set_paused(ADMIN, True)
        engine.set_protocol_fee(ADMIN, 0)
        engine.set_fee_recipient(ADMIN, BOB)
        assert engine.config.protocol_fee_bps == 0


class TestEmergencyWithdraw:

    def test_requires_pause(self, engine, pool_id):
        with pytest.raises(Unauthorized):
            engine.emergency_withdraw(ADMIN, TOKEN_A, 1_000, TREASURY)

    def test_withdraw_from_custody(self, engine, pool_id, tokens):
        engine.set_paused(ADMIN, True)
        engine.emergency_withdraw(ADMIN, TOKEN_A, 1_000, TREASURY)
        assert tokens.get(TOKEN_A).balance_of(TREASURY) == 1_000
        assert tokens.get(TOKEN_A).balance_of(CUSTODY) == 100_000_000 - 1_000

    def test_zero_amount(self, engine):
        engine.set_paused(ADMIN, True)
        with pytest.raises(InvalidAmount):
            engine.emergency_withdraw(ADMIN, TOKEN_A, 0, TREASURY)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:

    def test_protocol_info(self, engine, pool_id):
        info = engine.get_protocol_info()
        assert info["admin"] == ADMIN
        assert info["protocol_fee"] == 30
        assert info["fee_recipient"] == TREASURY
        assert info["paused"] is False
        assert info["pool_count"] == 1
        assert info["next_pool_id"] == 2
        assert info["block_height"] == 1

    def test_pool_stats(self, engine, pool_id):
        engine.swap(BOB, pool_id, TOKEN_A, TOKEN_B, 10_000_000, 0)
        stats = engine.get_pool_stats(pool_id)
        assert stats["reserve_a"] == 109_970_000
        assert stats["reserve_b"] == 182_315_406
        assert stats["swap_count"] == 1
        assert stats["total_volume_a"] == 10_000_000
        assert stats["price_a"] == 182_315_406 * PRECISION // 109_970_000

    def test_pool_health(self, engine):
        pid = engine.create_pool(ALICE, TOKEN_A, TOKEN_B, 500_000_000, 1_000_000_000, 30)
        health = engine.get_pool_health(pid)
        assert health["is_balanced"] is True
        assert health["min_liquidity_met"] is True

    def test_unbalanced_thin_pool(self, engine):
        pid = engine.create_pool(ALICE, TOKEN_A, TOKEN_X, 1, 500, 30)
        health = engine.get_pool_health(pid)
        assert health["is_balanced"] is False
        # isqrt(500) == 22 shares
        assert health["min_liquidity_met"] is False

    def test_pool_analytics(self, engine, pool_id):
        engine.swap(BOB, pool_id, TOKEN_A, TOKEN_B, 10_000_000, 0)
        analytics = engine.get_pool_analytics(pool_id)
        assert analytics["stats"]["swap_count"] == 1
        assert analytics["fees"]["total_fees_a"] == 270_000
        assert analytics["providers"] == 1
        assert analytics["health"]["is_balanced"] is True

    def test_stats_for_missing_pool(self, engine):
        with pytest.raises(PoolNotFound):
            engine.get_pool_stats(1)

    def test_block_height_cannot_go_back(self, engine):
        engine.begin_block(10)
        with pytest.raises(InvalidAmount):
            engine.begin_block(9)
        assert engine.advance_blocks(3) == 13
