"""
Test suite for token collaborators and logging helpers.

Covers:
  - InMemoryToken supply, transfer and freeze semantics
  - TokenRegistry registration and lookup
  - Log line sanitization
"""

import pytest

from xliquidity.exceptions import (
    AlreadyExists,
    InsufficientBalance,
    InvalidAmount,
    InvalidToken,
    Unauthorized,
)
from xliquidity.logger import TerminalSafeFormatter
from xliquidity.tokens import InMemoryToken, TokenCapability, TokenRegistry

OWNER = "deployer"
ALICE = "alice"
BOB = "bob"


@pytest.fixture
def token():
    tok = InMemoryToken("token-a", owner=OWNER)
    tok.mint(1_000, ALICE)
    return tok


# ---------------------------------------------------------------------------
# InMemoryToken
# ---------------------------------------------------------------------------

class TestInMemoryToken:

    def test_transfer(self, token):
        event = token.transfer(400, ALICE, BOB, "memo")
        assert token.balance_of(ALICE) == 600
        assert token.balance_of(BOB) == 400
        assert event.to_dict()["amount"] == 400
        assert token.events[-1].memo == "memo"

    def test_insufficient_balance(self, token):
        with pytest.raises(InsufficientBalance):
            token.transfer(1_001, ALICE, BOB)
        assert token.balance_of(ALICE) == 1_000

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_transfer(self, token, amount):
        with pytest.raises(InvalidAmount):
            token.transfer(amount, ALICE, BOB)

    def test_self_transfer(self, token):
        with pytest.raises(InvalidAmount):
            token.transfer(1, ALICE, ALICE)

    def test_freeze(self, token):
        token.freeze()
        assert token.is_frozen
        with pytest.raises(Unauthorized):
            token.transfer(1, ALICE, BOB)
        token.unfreeze()
        token.transfer(1, ALICE, BOB)

    def test_mint_and_burn_by_owner(self, token):
        token.mint(500, BOB, caller=OWNER)
        token.burn(200, BOB, caller=OWNER)
        assert token.balance_of(BOB) == 300
        assert token.total_supply == 1_300

    def test_mint_by_stranger(self, token):
        with pytest.raises(Unauthorized):
            token.mint(1, BOB, caller=BOB)

    def test_burn_more_than_held(self, token):
        with pytest.raises(InsufficientBalance):
            token.burn(1_001, ALICE)

    def test_invalid_construction(self):
        with pytest.raises(InvalidAmount):
            InMemoryToken("")
        with pytest.raises(InvalidAmount):
            InMemoryToken("t", decimals=19)

    def test_to_dict(self, token):
        d = token.to_dict()
        assert d["total_supply"] == 1_000
        assert d["holders"] == 1
        assert d["frozen"] is False


# ---------------------------------------------------------------------------
# TokenRegistry
# ---------------------------------------------------------------------------

class TestTokenRegistry:

    def test_register_and_lookup(self, token):
        registry = TokenRegistry()
        registry.register(token)
        assert registry.get("token-a") is token
        assert registry.get_or_raise("token-a") is token
        assert registry.exists("token-a")
        assert registry.list_tokens() == ["token-a"]
        assert len(registry) == 1

    def test_unknown_token(self):
        registry = TokenRegistry()
        assert registry.get("nope") is None
        with pytest.raises(InvalidToken):
            registry.get_or_raise("nope")

    def test_duplicate(self, token):
        registry = TokenRegistry()
        registry.register(token)
        with pytest.raises(AlreadyExists):
            registry.register(InMemoryToken("token-a"))

    def test_rejects_non_capability(self):
        with pytest.raises(InvalidToken):
            TokenRegistry().register(object())

    def test_in_memory_token_is_capability(self, token):
        assert isinstance(token, TokenCapability)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class TestTerminalSafeFormatter:

    def test_strips_ansi_and_control_chars(self):
        raw = "pool #1 token \x1b[31mred\x1b[0m\r\x07 ok"
        assert TerminalSafeFormatter.sanitize(raw) == "pool #1 token red ok"

    def test_keeps_tabs_and_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\tb\nc") == "a\tb\nc"

    def test_empty(self):
        assert TerminalSafeFormatter.sanitize("") == ""
