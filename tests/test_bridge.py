"""
Test suite for the cross-chain escrow state machine.

Covers:
  - Initiation and escrow into custody
  - Relayer completion before expiry
  - Cancellation at / after expiry, with and without refund
  - Pluggable relayer authorities
  - Swap record serialization
"""

import pytest

from xliquidity.bridge import (
    AdminRelayer,
    AllowlistRelayer,
    CrossChainSwap,
    RelayerAuthority,
    SwapStatus,
)
from xliquidity.exceptions import (
    ConfigurationError,
    InsufficientBalance,
    InvalidAmount,
    InvalidToken,
    Paused,
    SwapExpired,
    SwapNotExpired,
    SwapNotFound,
    SwapNotPending,
    Unauthorized,
)
from xliquidity.exchange.engine import AggregatorEngine

TOKEN_X = "token-x"
ADMIN = "deployer"
ALICE = "alice"
BOB = "bob"
CUSTODY = "aggregator.custody"
FUNDING = 10 ** 15


def _open(engine, expires=144, amount=50_000_000):
    return engine.initiate_cross_chain_swap(
        ALICE, TOKEN_X, "bc1q-target-asset", "bitcoin", amount, "bc1q-recipient", expires,
    )


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------

class TestInitiate:

    def test_reference_initiation(self, engine, tokens):
        engine.begin_block(100)
        swap_id = _open(engine)
        assert swap_id == 1

        swap = engine.get_cross_chain_swap(1)
        assert swap.status == SwapStatus.PENDING
        assert swap.created_at_block == 100
        assert swap.expires_at_block == 244
        assert swap.source_amount == 50_000_000
        assert swap.target_amount == 0
        assert swap.target_chain == "bitcoin"

        token = tokens.get(TOKEN_X)
        assert token.balance_of(ALICE) == FUNDING - 50_000_000
        assert token.balance_of(CUSTODY) == 50_000_000

    def test_default_expiry_window(self, engine):
        engine.begin_block(10)
        swap_id = engine.initiate_cross_chain_swap(
            ALICE, TOKEN_X, "asset", "bitcoin", 1_000, "bc1q-recipient",
        )
        assert engine.get_cross_chain_swap(swap_id).expires_at_block == 10 + 144

    def test_ids_increase(self, engine):
        assert _open(engine) == 1
        assert _open(engine) == 2

    @pytest.mark.parametrize("amount,expires", [(0, 144), (10, 0), (-1, 10)])
    def test_invalid_amounts(self, engine, amount, expires):
        with pytest.raises(InvalidAmount):
            _open(engine, expires=expires, amount=amount)
        assert engine.config.next_swap_id == 1

    def test_expiry_window_capped(self, tokens):
        eng = AggregatorEngine(tokens, admin=ADMIN, max_expiry_blocks=10)
        with pytest.raises(InvalidAmount):
            _open(eng, expires=11)

    def test_missing_target(self, engine):
        with pytest.raises(InvalidAmount):
            engine.initiate_cross_chain_swap(ALICE, TOKEN_X, "asset", "bitcoin", 10, "", 5)

    def test_unknown_token(self, engine):
        with pytest.raises(InvalidToken):
            engine.initiate_cross_chain_swap(ALICE, "nope", "asset", "bitcoin", 10, "addr", 5)

    def test_insufficient_balance_creates_nothing(self, engine):
        with pytest.raises(InsufficientBalance):
            _open(engine, amount=FUNDING + 1)
        assert engine.get_cross_chain_swap(1) is None
        assert engine.config.next_swap_id == 1

    def test_paused(self, engine):
        engine.set_paused(ADMIN, True)
        with pytest.raises(Paused):
            _open(engine)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

class TestComplete:

    def test_reference_completion(self, engine, tokens):
        engine.begin_block(100)
        swap_id = _open(engine)
        engine.begin_block(150)

        assert engine.complete_cross_chain_swap(ADMIN, swap_id, 49_000_000, "0xproof") is True
        swap = engine.get_cross_chain_swap(swap_id)
        assert swap.status == SwapStatus.COMPLETED
        assert swap.target_amount == 49_000_000
        assert swap.proof == "0xproof"
        assert swap.completed_at_block == 150
        # Escrow stays captured
        assert tokens.get(TOKEN_X).balance_of(CUSTODY) == 50_000_000

        with pytest.raises(SwapNotPending):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 49_000_000, "0xproof")

    def test_expired_at_boundary(self, engine):
        engine.begin_block(100)
        swap_id = _open(engine)
        engine.begin_block(244)
        with pytest.raises(SwapExpired):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)
        assert engine.get_cross_chain_swap(swap_id).status == SwapStatus.PENDING

    def test_last_valid_block(self, engine):
        engine.begin_block(100)
        swap_id = _open(engine)
        engine.begin_block(243)
        engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)

    def test_non_relayer(self, engine):
        swap_id = _open(engine)
        with pytest.raises(Unauthorized):
            engine.complete_cross_chain_swap(ALICE, swap_id, 1, None)

    def test_zero_target_amount(self, engine):
        swap_id = _open(engine)
        with pytest.raises(InvalidAmount):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 0, None)

    def test_unknown_swap(self, engine):
        with pytest.raises(SwapNotFound):
            engine.complete_cross_chain_swap(ADMIN, 7, 1, None)

    def test_admin_relayer_follows_admin_transfer(self, engine):
        swap_id = _open(engine)
        engine.transfer_admin(ADMIN, BOB)
        with pytest.raises(Unauthorized):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)
        engine.complete_cross_chain_swap(BOB, swap_id, 1, None)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class TestCancel:

    def test_before_expiry(self, engine):
        engine.begin_block(100)
        swap_id = _open(engine)
        engine.begin_block(243)
        with pytest.raises(SwapNotExpired):
            engine.cancel_cross_chain_swap(ALICE, swap_id)

    def test_initiator_cancels_without_refund(self, engine, tokens):
        engine.begin_block(100)
        swap_id = _open(engine)
        engine.begin_block(244)

        assert engine.cancel_cross_chain_swap(ALICE, swap_id) is True
        swap = engine.get_cross_chain_swap(swap_id)
        assert swap.status == SwapStatus.FAILED
        assert swap.refunded is False
        assert tokens.get(TOKEN_X).balance_of(ALICE) == FUNDING - 50_000_000
        assert tokens.get(TOKEN_X).balance_of(CUSTODY) == 50_000_000

    def test_admin_may_cancel(self, engine):
        swap_id = _open(engine, expires=1)
        engine.advance_blocks(5)
        engine.cancel_cross_chain_swap(ADMIN, swap_id)
        assert engine.get_cross_chain_swap(swap_id).status == SwapStatus.FAILED

    def test_stranger_may_not_cancel(self, engine):
        swap_id = _open(engine, expires=1)
        engine.advance_blocks(5)
        with pytest.raises(Unauthorized):
            engine.cancel_cross_chain_swap(BOB, swap_id)

    def test_terminal_states(self, engine):
        swap_id = _open(engine, expires=1)
        engine.advance_blocks(1)
        engine.cancel_cross_chain_swap(ALICE, swap_id)
        with pytest.raises(SwapNotPending):
            engine.cancel_cross_chain_swap(ALICE, swap_id)
        with pytest.raises(SwapNotPending):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)

    def test_refund_on_cancel(self, tokens):
        eng = AggregatorEngine(tokens, admin=ADMIN, refund_on_cancel=True)
        swap_id = _open(eng, expires=10)
        eng.advance_blocks(10)
        eng.cancel_cross_chain_swap(ALICE, swap_id)

        swap = eng.get_cross_chain_swap(swap_id)
        assert swap.refunded is True
        assert tokens.get(TOKEN_X).balance_of(ALICE) == FUNDING
        assert tokens.get(TOKEN_X).balance_of(CUSTODY) == 0

    def test_failed_refund_keeps_swap_pending(self, tokens):
        eng = AggregatorEngine(tokens, admin=ADMIN, refund_on_cancel=True)
        swap_id = _open(eng, expires=10)
        eng.advance_blocks(10)
        tokens.get(TOKEN_X).freeze()
        with pytest.raises(Unauthorized):
            eng.cancel_cross_chain_swap(ALICE, swap_id)
        assert eng.get_cross_chain_swap(swap_id).status == SwapStatus.PENDING

    def test_escrow_recoverable_by_emergency_withdraw(self, engine, tokens):
        swap_id = _open(engine, expires=1)
        engine.advance_blocks(1)
        engine.cancel_cross_chain_swap(ALICE, swap_id)

        engine.set_paused(ADMIN, True)
        engine.emergency_withdraw(ADMIN, TOKEN_X, 50_000_000, ALICE)
        assert tokens.get(TOKEN_X).balance_of(ALICE) == FUNDING


# ---------------------------------------------------------------------------
# Relayer authorities
# ---------------------------------------------------------------------------

class TestRelayerAuthority:

    def test_builtin_relayers_satisfy_protocol(self):
        assert isinstance(AdminRelayer(lambda: ADMIN), RelayerAuthority)
        assert isinstance(AllowlistRelayer(["r1"]), RelayerAuthority)

    def test_empty_allowlist_rejected(self):
        with pytest.raises(ConfigurationError):
            AllowlistRelayer([])

    def test_allowlist_relayer(self, engine):
        swap_id = _open(engine)
        engine.set_relayer_authority(ADMIN, AllowlistRelayer(["relayer-1", "relayer-2"]))
        with pytest.raises(Unauthorized):
            engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)
        engine.complete_cross_chain_swap("relayer-2", swap_id, 1, "sig")

    def test_reset_to_admin(self, engine):
        engine.set_relayer_authority(ADMIN, AllowlistRelayer(["relayer-1"]))
        engine.set_relayer_authority(ADMIN, None)
        swap_id = _open(engine)
        engine.complete_cross_chain_swap(ADMIN, swap_id, 1, None)

    def test_only_admin_sets_relayer(self, engine):
        with pytest.raises(Unauthorized):
            engine.set_relayer_authority(ALICE, AllowlistRelayer([ALICE]))

    def test_rejects_non_authority(self, engine):
        with pytest.raises(ConfigurationError):
            engine.set_relayer_authority(ADMIN, object())


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

class TestCrossChainSwapRecord:

    def _swap(self, **overrides):
        fields = dict(
            id=1, initiator=ALICE, source_token=TOKEN_X, target_token_address="asset",
            source_amount=10, target_chain="bitcoin", target_address="addr",
            created_at_block=5, expires_at_block=15,
        )
        fields.update(overrides)
        return CrossChainSwap(**fields)

    def test_to_dict_status_label(self):
        assert self._swap().to_dict()["status"] == "pending"

    def test_from_dict_accepts_label(self):
        d = self._swap(status=SwapStatus.COMPLETED, target_amount=9).to_dict()
        restored = CrossChainSwap.from_dict(d)
        assert restored.status == SwapStatus.COMPLETED
        assert restored.target_amount == 9

    def test_expiry_helpers(self):
        swap = self._swap()
        assert not swap.is_expired(14)
        assert swap.is_expired(15)
        assert swap.blocks_remaining(10) == 5
        assert swap.blocks_remaining(20) == 0

    def test_invalid_window(self):
        with pytest.raises(InvalidAmount):
            self._swap(expires_at_block=5)
