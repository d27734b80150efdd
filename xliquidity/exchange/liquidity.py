"""
Liquidity Accounting

Proportional LP-share minting and burning.

  add:    optimal_b = a_desired * reserve_b / reserve_a
          if optimal_b <= b_desired -> (a_desired, optimal_b)
          else                      -> (b_desired * reserve_a / reserve_b, b_desired)
          shares = min(a * total / reserve_a, b * total / reserve_b)

  remove: amount_a = shares * reserve_a / total
          amount_b = shares * reserve_b / total

All divisions floor, so rounding residue stays in the pool with the
remaining providers.
Once every share is burned the reserves are empty too, and the next deposit
re-seeds the pool at its own ratio with isqrt(a * b) shares.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from ..exceptions import (
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidAmount,
    SlippageTooHigh,
)
from .amm import PoolState, isqrt


@dataclass(frozen=True)
class AddLiquidityResult:
    shares_minted: int
    amount_a: int
    amount_b: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "shares_minted": self.shares_minted,
            "amount_a": self.amount_a,
            "amount_b": self.amount_b,
        }


@dataclass(frozen=True)
class RemoveLiquidityResult:
    amount_a: int
    amount_b: int

    def to_dict(self) -> Dict[str, int]:
        return {"amount_a": self.amount_a, "amount_b": self.amount_b}


def initial_shares(initial_a: int, initial_b: int) -> int:
    """Geometric-mean bootstrap: floor(sqrt(a * b))."""
    shares = isqrt(initial_a * initial_b)
    if shares <= 0:
        raise InvalidAmount("Initial liquidity mints zero shares")
    return shares


def plan_add_liquidity(
    pool: PoolState,
    amount_a_desired: int,
    amount_b_desired: int,
    min_shares_out: int,
) -> AddLiquidityResult:
    """Compute the ratio-preserving deposit and shares minted, without mutating."""
    if amount_a_desired <= 0 or amount_b_desired <= 0:
        raise InvalidAmount("Desired amounts must be positive")
    if pool.total_shares == 0:
        # Drained pool: the next depositor re-seeds it at their own ratio
        shares = initial_shares(amount_a_desired, amount_b_desired)
        if shares < min_shares_out:
            raise SlippageTooHigh(f"Shares {shares} < minimum {min_shares_out}")
        return AddLiquidityResult(
            shares_minted=shares, amount_a=amount_a_desired, amount_b=amount_b_desired
        )
    if pool.reserve_a == 0 or pool.reserve_b == 0:
        raise InsufficientLiquidity(f"Pool #{pool.id} has no liquidity to match")

    optimal_b = amount_a_desired * pool.reserve_b // pool.reserve_a
    if optimal_b <= amount_b_desired:
        amount_a, amount_b = amount_a_desired, optimal_b
    else:
        amount_a = amount_b_desired * pool.reserve_a // pool.reserve_b
        amount_b = amount_b_desired

    if amount_a == 0 or amount_b == 0:
        raise InvalidAmount("Deposit rounds to zero on one side")

    shares = min(
        amount_a * pool.total_shares // pool.reserve_a,
        amount_b * pool.total_shares // pool.reserve_b,
    )
    if shares == 0:
        raise InvalidAmount("Deposit mints zero shares")
    if shares < min_shares_out:
        raise SlippageTooHigh(f"Shares {shares} < minimum {min_shares_out}")

    return AddLiquidityResult(shares_minted=shares, amount_a=amount_a, amount_b=amount_b)


def plan_remove_liquidity(
    pool: PoolState,
    held_shares: int,
    share_amount: int,
    min_amount_a: int,
    min_amount_b: int,
) -> RemoveLiquidityResult:
    """Compute the pro-rata withdrawal for ``share_amount``, without mutating."""
    if share_amount <= 0:
        raise InvalidAmount("Share amount must be positive")
    if held_shares < share_amount:
        raise InsufficientBalance(f"Position holds {held_shares} shares < {share_amount}")
    if pool.total_shares < share_amount:
        raise InsufficientLiquidity("Burn exceeds outstanding shares")

    amount_a = share_amount * pool.reserve_a // pool.total_shares
    amount_b = share_amount * pool.reserve_b // pool.total_shares

    if amount_a < min_amount_a or amount_b < min_amount_b:
        raise SlippageTooHigh(
            f"Withdrawal ({amount_a}, {amount_b}) below minimum ({min_amount_a}, {min_amount_b})"
        )
    return RemoveLiquidityResult(amount_a=amount_a, amount_b=amount_b)


class PositionBook:
    """(pool_id, provider) -> shares; zeroed entries are dropped."""

    def __init__(self, store) -> None:
        self._store = store

    def shares_of(self, pool_id: int, provider: str) -> int:
        return self._store.positions.get((pool_id, provider), 0)

    def credit(self, pool_id: int, provider: str, shares: int) -> int:
        key = (pool_id, provider)
        self._store.touch("positions", key)
        self._store.positions[key] = self._store.positions.get(key, 0) + shares
        return self._store.positions[key]

    def debit(self, pool_id: int, provider: str, shares: int) -> int:
        key = (pool_id, provider)
        self._store.touch("positions", key)
        held = self._store.positions.get(key, 0)
        if held < shares:
            raise InsufficientBalance(f"Position holds {held} shares < {shares}")
        remaining = held - shares
        if remaining == 0:
            del self._store.positions[key]
        else:
            self._store.positions[key] = remaining
        return remaining

    def providers(self, pool_id: int) -> List[Tuple[str, int]]:
        return sorted(
            (provider, shares)
            for (pid, provider), shares in self._store.positions.items()
            if pid == pool_id
        )
