"""
Constant-Product AMM  (pool registry + swap pricing)

Uniswap-V2 style pools over integer reserves:
  - One pool per unordered token pair, stored in canonical token order
  - Initial LP shares = isqrt(initial_a * initial_b)
  - Exact-in swaps: effective_in = amount_in * (10000 - fee) / 10000,
    amount_out = effective_in * reserve_out / (reserve_in + effective_in)
  - Price impact in basis points, PRECISION-scaled spot prices

All divisions floor. Every subtraction is preceded by an explicit check;
no quantity here is ever negative.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from ..constants import (
    BPS_DENOMINATOR,
    MAX_BALANCE_RATIO,
    MIN_HEALTHY_LIQUIDITY,
    POOLS_PAGE_SIZE,
    PRECISION,
)
from ..exceptions import (
    AlreadyExists,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidToken,
    PoolInactive,
    PoolNotFound,
)
from .protocol import validate_fee_bps


# ---------------------------------------------------------------------------
# Pair helpers
# ---------------------------------------------------------------------------

def canonical_pair(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order two token ids so a pair has exactly one representation."""
    if token_a > token_b:
        return token_b, token_a
    return token_a, token_b


def pair_key(token_a: str, token_b: str) -> str:
    token0, token1 = canonical_pair(token_a, token_b)
    return f"{token0}:{token1}"


# ---------------------------------------------------------------------------
# Integer math
# ---------------------------------------------------------------------------

def isqrt(value: int) -> int:
    """floor(sqrt(value)) for non-negative integers."""
    if value < 0:
        raise InvalidAmount("Square root of a negative amount")
    return math.isqrt(value)


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_rate_bps: int,
) -> Tuple[int, int]:
    """
    Constant-product output for an exact input.

    Returns:
        (amount_out, effective_in)

    Raises:
        InsufficientLiquidity: if reserve_in + effective_in is zero
    """
    if amount_in < 0:
        raise InvalidAmount("Swap amount must be non-negative")
    effective_in = amount_in * (BPS_DENOMINATOR - fee_rate_bps) // BPS_DENOMINATOR
    denominator = reserve_in + effective_in
    if denominator == 0:
        raise InsufficientLiquidity("Pool has no input-side reserve")
    amount_out = effective_in * reserve_out // denominator
    return amount_out, effective_in


def spot_price(reserve_base: int, reserve_quote: int) -> int:
    """Price of one base unit in quote units, scaled by PRECISION."""
    if reserve_base == 0:
        return 0
    return reserve_quote * PRECISION // reserve_base


def price_impact_bps(
    reserve_in: int,
    reserve_out: int,
    amount_in: int,
    amount_out: int,
) -> int:
    """
    Relative move of the pool's out-per-in price caused by a trade, in bps.

    current = reserve_out * PRECISION / reserve_in
    new     = (reserve_out - amount_out) * PRECISION / (reserve_in + amount_in)
    impact  = |new - current| * 10000 / current
    """
    if reserve_in == 0:
        raise InsufficientLiquidity("Pool has no input-side reserve")
    if amount_out > reserve_out:
        raise InsufficientLiquidity("Output exceeds reserve")
    current_price = reserve_out * PRECISION // reserve_in
    if current_price == 0:
        # Price below PRECISION resolution; nothing measurable to move.
        return 0
    new_price = (reserve_out - amount_out) * PRECISION // (reserve_in + amount_in)
    return abs(new_price - current_price) * BPS_DENOMINATOR // current_price


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

class SwapQuote(NamedTuple):
    """Output of pricing an exact-in swap against current reserves."""
    amount_in: int
    effective_in: int
    amount_out: int
    reserve_in: int
    reserve_out: int
    price_impact: int


@dataclass(frozen=True)
class SwapResult:
    amount_in: int
    amount_out: int
    protocol_fee: int
    pool_fee: int
    price_impact: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "protocol_fee": self.protocol_fee,
            "pool_fee": self.pool_fee,
            "price_impact": self.price_impact,
        }


@dataclass
class PoolState:
    """
    State of a constant-product pool.

    token_a < token_b (canonical ordering).
    """
    id: int
    token_a: str
    token_b: str
    reserve_a: int
    reserve_b: int
    total_shares: int
    fee_rate_bps: int
    created_at_block: int
    active: bool = True

    # Stats
    total_volume_a: int = 0
    total_volume_b: int = 0
    swap_count: int = 0

    def has_token(self, token: str) -> bool:
        return token == self.token_a or token == self.token_b

    def is_token_a(self, token: str) -> bool:
        if token == self.token_a:
            return True
        if token == self.token_b:
            return False
        raise InvalidToken(f"Token {token} is not part of pool #{self.id}")

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """(reserve_in, reserve_out) for a swap paying in ``token_in``."""
        if self.is_token_a(token_in):
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a

    def require_active(self) -> None:
        if not self.active:
            raise PoolInactive(f"Pool #{self.id} is inactive")

    # -- Pricing ------------------------------------------------------------

    def quote(self, token_in: str, amount_in: int) -> SwapQuote:
        """Price an exact-in swap. The same quote backs both queries and execution."""
        reserve_in, reserve_out = self.reserves_for(token_in)
        amount_out, effective_in = get_amount_out(
            amount_in, reserve_in, reserve_out, self.fee_rate_bps
        )
        impact = price_impact_bps(reserve_in, reserve_out, amount_in, amount_out)
        return SwapQuote(
            amount_in=amount_in,
            effective_in=effective_in,
            amount_out=amount_out,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            price_impact=impact,
        )

    @property
    def price_a(self) -> int:
        """Units of token_b per token_a, PRECISION-scaled."""
        return spot_price(self.reserve_a, self.reserve_b)

    @property
    def price_b(self) -> int:
        """Units of token_a per token_b, PRECISION-scaled."""
        return spot_price(self.reserve_b, self.reserve_a)

    @property
    def invariant(self) -> int:
        return self.reserve_a * self.reserve_b

    # -- Mutation -----------------------------------------------------------

    def apply_swap(self, token_in: str, reserve_in_delta: int, amount_out: int, amount_in: int) -> None:
        """Grow the input reserve and shrink the output reserve."""
        if self.is_token_a(token_in):
            if amount_out >= self.reserve_b:
                raise InsufficientLiquidity("Swap would drain pool")
            self.reserve_a += reserve_in_delta
            self.reserve_b -= amount_out
            self.total_volume_a += amount_in
        else:
            if amount_out >= self.reserve_a:
                raise InsufficientLiquidity("Swap would drain pool")
            self.reserve_b += reserve_in_delta
            self.reserve_a -= amount_out
            self.total_volume_b += amount_in
        self.swap_count += 1

    def deposit(self, amount_a: int, amount_b: int, shares: int) -> None:
        self.reserve_a += amount_a
        self.reserve_b += amount_b
        self.total_shares += shares

    def withdraw(self, amount_a: int, amount_b: int, shares: int) -> None:
        if amount_a > self.reserve_a or amount_b > self.reserve_b:
            raise InsufficientLiquidity("Withdrawal exceeds reserves")
        if shares > self.total_shares:
            raise InsufficientLiquidity("Burn exceeds outstanding shares")
        self.reserve_a -= amount_a
        self.reserve_b -= amount_b
        self.total_shares -= shares

    # -- Health -------------------------------------------------------------

    @property
    def is_balanced(self) -> bool:
        low, high = sorted((self.reserve_a, self.reserve_b))
        if low == 0:
            return False
        return high <= low * MAX_BALANCE_RATIO

    @property
    def min_liquidity_met(self) -> bool:
        return self.total_shares >= MIN_HEALTHY_LIQUIDITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "token_a": self.token_a,
            "token_b": self.token_b,
            "reserve_a": self.reserve_a,
            "reserve_b": self.reserve_b,
            "total_shares": self.total_shares,
            "fee_rate_bps": self.fee_rate_bps,
            "created_at_block": self.created_at_block,
            "active": self.active,
            "total_volume_a": self.total_volume_a,
            "total_volume_b": self.total_volume_b,
            "swap_count": self.swap_count,
        }


# ---------------------------------------------------------------------------
# Pool Registry
# ---------------------------------------------------------------------------

class PoolRegistry:
    """
    Canonical storage and lookup of pools.

    Handles:
      - Pool creation under canonical token order
      - Lookup by id / unordered pair
      - Paged enumeration
    """

    def __init__(self, store) -> None:
        self._store = store

    @property
    def pool_count(self) -> int:
        return len(self._store.pools)

    def validate_new_pool(
        self,
        token_a: str,
        token_b: str,
        initial_a: int,
        initial_b: int,
        fee_rate_bps: int,
    ) -> None:
        if token_a == token_b:
            raise InvalidToken("Pool tokens must differ")
        if initial_a <= 0 or initial_b <= 0:
            raise InvalidAmount("Initial reserves must be positive")
        validate_fee_bps(fee_rate_bps)
        if pair_key(token_a, token_b) in self._store.pair_index:
            raise AlreadyExists(f"Pool already exists for {pair_key(token_a, token_b)}")

    def create_pool(
        self,
        pool_id: int,
        token_a: str,
        token_b: str,
        initial_a: int,
        initial_b: int,
        initial_shares: int,
        fee_rate_bps: int,
        block: int,
    ) -> PoolState:
        """Store a validated pool; reserves follow their tokens into canonical order."""
        self.validate_new_pool(token_a, token_b, initial_a, initial_b, fee_rate_bps)
        if pool_id in self._store.pools:
            raise AlreadyExists(f"Pool #{pool_id} already exists")
        if token_a > token_b:
            token_a, token_b = token_b, token_a
            initial_a, initial_b = initial_b, initial_a

        pool = PoolState(
            id=pool_id,
            token_a=token_a,
            token_b=token_b,
            reserve_a=initial_a,
            reserve_b=initial_b,
            total_shares=initial_shares,
            fee_rate_bps=fee_rate_bps,
            created_at_block=block,
        )
        self._store.touch("pools", pool_id)
        self._store.touch("pair_index", pair_key(token_a, token_b))
        self._store.pools[pool_id] = pool
        self._store.pair_index[pair_key(token_a, token_b)] = pool_id
        return pool

    def get_pool(self, pool_id: int) -> Optional[PoolState]:
        return self._store.pools.get(pool_id)

    def get_or_raise(self, pool_id: int) -> PoolState:
        """Live pool record for mutation; journalled when an operation is open."""
        pool = self._store.pools.get(pool_id)
        if pool is None:
            raise PoolNotFound(f"Pool #{pool_id} not found")
        self._store.touch("pools", pool_id)
        return pool

    def find_pool_id(self, token_a: str, token_b: str) -> Optional[int]:
        return self._store.pair_index.get(pair_key(token_a, token_b))

    def pools_range(self, start: int, end: int) -> List[PoolState]:
        """Pools with ids in [start, end], at most POOLS_PAGE_SIZE of them."""
        if end < start:
            return []
        last = min(end, start + POOLS_PAGE_SIZE - 1)
        return [
            self._store.pools[pid]
            for pid in range(start, last + 1)
            if pid in self._store.pools
        ]
