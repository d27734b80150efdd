"""
Shared fixtures: funded in-memory tokens and a fresh engine per test.
"""

import pytest

from xliquidity.exchange.engine import AggregatorEngine
from xliquidity.tokens import InMemoryToken, TokenRegistry

TOKEN_A = "token-a"
TOKEN_B = "token-b"
TOKEN_X = "token-x"

ADMIN = "deployer"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"
TREASURY = "treasury"

FUNDING = 10 ** 15


@pytest.fixture
def tokens():
    """Three registered tokens, each funding alice, bob and carol."""
    registry = TokenRegistry()
    for token_id in (TOKEN_A, TOKEN_B, TOKEN_X):
        token = InMemoryToken(token_id, owner=ADMIN)
        for account in (ALICE, BOB, CAROL):
            token.mint(FUNDING, account)
        registry.register(token)
    return registry


@pytest.fixture
def engine(tokens):
    """Engine at block 1 with the default 30 bps protocol fee paid to the treasury."""
    eng = AggregatorEngine(tokens, admin=ADMIN, fee_recipient=TREASURY)
    eng.begin_block(1)
    return eng


@pytest.fixture
def pool_id(engine):
    """Pool #1: 100M token-a / 200M token-b at 300 bps, seeded by alice."""
    return engine.create_pool(ALICE, TOKEN_A, TOKEN_B, 100_000_000, 200_000_000, 300)
