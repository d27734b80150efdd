"""
Fee Ledger

Passive accumulators updated only as a side effect of swaps:

  - FeeAccumulator          per pool,  LP fee retained in reserves
  - ProtocolFeeAccumulator  per token, slice forwarded to the fee recipient

Reads of never-touched keys return zeroed records.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..constants import BPS_DENOMINATOR


@dataclass
class FeeAccumulator:
    total_fees_a: int = 0
    total_fees_b: int = 0
    last_updated_block: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_fees_a": self.total_fees_a,
            "total_fees_b": self.total_fees_b,
            "last_updated_block": self.last_updated_block,
        }


@dataclass
class ProtocolFeeAccumulator:
    total_collected: int = 0
    last_updated_block: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_collected": self.total_collected,
            "last_updated_block": self.last_updated_block,
        }


def split_swap_fees(amount_in: int, effective_in: int, protocol_fee_bps: int) -> Tuple[int, int]:
    """
    Split the fee term of a swap into (pool_fee, protocol_fee).

    The protocol slice is capped at the pool fee term ``amount_in -
    effective_in`` so reserve_in grows by at least effective_in and the
    constant product never decreases.
    """
    fee_term = amount_in - effective_in
    protocol_fee = min(amount_in * protocol_fee_bps // BPS_DENOMINATOR, fee_term)
    return fee_term - protocol_fee, protocol_fee


class FeeLedger:

    def __init__(self, store) -> None:
        self._store = store

    def record_swap(
        self,
        pool_id: int,
        token_in_is_a: bool,
        token_in: str,
        pool_fee: int,
        protocol_fee: int,
        block: int,
    ) -> None:
        self._store.touch("pool_fees", pool_id)
        self._store.touch("protocol_fees", token_in)
        acc = self._store.pool_fees.setdefault(pool_id, FeeAccumulator())
        if token_in_is_a:
            acc.total_fees_a += pool_fee
        else:
            acc.total_fees_b += pool_fee
        acc.last_updated_block = block

        proto = self._store.protocol_fees.setdefault(token_in, ProtocolFeeAccumulator())
        proto.total_collected += protocol_fee
        proto.last_updated_block = block

    def get_pool_fees(self, pool_id: int) -> FeeAccumulator:
        acc = self._store.pool_fees.get(pool_id)
        return FeeAccumulator(**acc.to_dict()) if acc else FeeAccumulator()

    def get_protocol_fees(self, token: str) -> ProtocolFeeAccumulator:
        acc = self._store.protocol_fees.get(token)
        return ProtocolFeeAccumulator(**acc.to_dict()) if acc else ProtocolFeeAccumulator()
