"""
Aggregator Exchange Engine

Components:
  - Constant-product pools and canonical pair registry
  - Exact-in swap pricing and price impact
  - Proportional LP-share accounting
  - Per-pool and per-token fee ledger
  - Protocol config and admin gating
  - Atomic engine and transaction-level host surface
"""

from .amm import (
    PoolRegistry,
    PoolState,
    SwapQuote,
    SwapResult,
    canonical_pair,
    get_amount_out,
    isqrt,
    price_impact_bps,
)
from .engine import AggregatorEngine, LedgerStore
from .fees import FeeAccumulator, FeeLedger, ProtocolFeeAccumulator, split_swap_fees
from .liquidity import AddLiquidityResult, PositionBook, RemoveLiquidityResult
from .protocol import ProtocolConfig
from .state_manager import AggregatorStateManager, ExecResult
from .transactions import AggregatorTransaction, OpType

__all__ = [
    # AMM
    "PoolRegistry",
    "PoolState",
    "SwapQuote",
    "SwapResult",
    "canonical_pair",
    "get_amount_out",
    "isqrt",
    "price_impact_bps",
    # Liquidity
    "AddLiquidityResult",
    "RemoveLiquidityResult",
    "PositionBook",
    # Fees
    "FeeAccumulator",
    "ProtocolFeeAccumulator",
    "FeeLedger",
    "split_swap_fees",
    # Protocol
    "ProtocolConfig",
    # Engine / host surface
    "AggregatorEngine",
    "LedgerStore",
    "AggregatorStateManager",
    "ExecResult",
    "AggregatorTransaction",
    "OpType",
]
