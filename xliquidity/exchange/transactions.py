"""
Aggregator Transaction Types

Transaction envelope for every ledger operation the host submits. Each
transaction names one operation, the calling account and its parameters,
and is executed atomically by ``AggregatorStateManager.process_transaction``.

Operation Types:
  - CREATE_POOL:          Deploy a constant-product pool
  - ADD_LIQUIDITY:        Provide ratio-matched liquidity
  - REMOVE_LIQUIDITY:     Burn LP shares for the underlying tokens
  - SWAP:                 Exact-in swap through one pool
  - INITIATE_CROSS_CHAIN: Escrow tokens for a cross-chain swap
  - COMPLETE_CROSS_CHAIN: Relayer confirms delivery on the target chain
  - CANCEL_CROSS_CHAIN:   Fail an expired cross-chain swap
  - SET_PROTOCOL_FEE / SET_FEE_RECIPIENT / SET_PAUSED / DEACTIVATE_POOL /
    EMERGENCY_WITHDRAW / TRANSFER_ADMIN: admin operations
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Tuple

from ..exceptions import InvalidAmount


# ---------------------------------------------------------------------------
# Operation Types
# ---------------------------------------------------------------------------

class OpType(IntEnum):
    """All ledger operation types.  Values are part of the tx hash."""
    CREATE_POOL = 1
    ADD_LIQUIDITY = 2
    REMOVE_LIQUIDITY = 3
    SWAP = 4
    INITIATE_CROSS_CHAIN = 5
    COMPLETE_CROSS_CHAIN = 6
    CANCEL_CROSS_CHAIN = 7
    SET_PROTOCOL_FEE = 8
    SET_FEE_RECIPIENT = 9
    SET_PAUSED = 10
    DEACTIVATE_POOL = 11
    EMERGENCY_WITHDRAW = 12
    TRANSFER_ADMIN = 13


REQUIRED_PARAMS: Dict[OpType, Tuple[str, ...]] = {
    OpType.CREATE_POOL: ("token_a", "token_b", "initial_a", "initial_b", "fee_rate_bps"),
    OpType.ADD_LIQUIDITY: ("pool_id", "amount_a", "amount_b", "min_shares"),
    OpType.REMOVE_LIQUIDITY: ("pool_id", "shares", "min_a", "min_b"),
    OpType.SWAP: ("pool_id", "token_in", "token_out", "amount_in", "min_out"),
    OpType.INITIATE_CROSS_CHAIN: (
        "source_token", "target_token_address", "target_chain",
        "amount", "target_address", "expires_in_blocks",
    ),
    OpType.COMPLETE_CROSS_CHAIN: ("swap_id", "target_amount"),
    OpType.CANCEL_CROSS_CHAIN: ("swap_id",),
    OpType.SET_PROTOCOL_FEE: ("fee_bps",),
    OpType.SET_FEE_RECIPIENT: ("recipient",),
    OpType.SET_PAUSED: ("paused",),
    OpType.DEACTIVATE_POOL: ("pool_id",),
    OpType.EMERGENCY_WITHDRAW: ("token", "amount", "recipient"),
    OpType.TRANSFER_ADMIN: ("new_admin",),
}


# ---------------------------------------------------------------------------
# Aggregator Transaction
# ---------------------------------------------------------------------------

@dataclass
class AggregatorTransaction:
    """Host-level envelope for a single ledger operation."""
    op_type: OpType
    sender: str
    params: Dict[str, Any] = field(default_factory=dict)

    # -- Hashing ------------------------------------------------------------

    def tx_hash(self) -> str:
        """Deterministic transaction hash."""
        return hashlib.blake2b(self._canonical_bytes(), digest_size=32).hexdigest()

    def _canonical_bytes(self) -> bytes:
        params_json = json.dumps(self.params, sort_keys=True, default=str).encode("utf-8")
        return b"".join([
            int(self.op_type).to_bytes(1, "big"),
            self.sender.encode("utf-8"),
            params_json,
        ])

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op_type": int(self.op_type),
            "sender": self.sender,
            "params": self.params,
            "tx_hash": self.tx_hash(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AggregatorTransaction:
        op = data["op_type"]
        return cls(
            op_type=OpType[op] if isinstance(op, str) else OpType(int(op)),
            sender=data["sender"],
            params=dict(data.get("params", {})),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_json(cls, raw: str) -> AggregatorTransaction:
        return cls.from_dict(json.loads(raw))

    # -- Validation ---------------------------------------------------------

    def validate_basic(self) -> bool:
        """
        Structural validation (no state access needed).

        Raises:
            InvalidAmount: with specific reason
        """
        if not self.sender:
            raise InvalidAmount("Missing sender")
        if self.op_type not in REQUIRED_PARAMS:
            raise InvalidAmount(f"Unknown operation type: {self.op_type}")
        for key in REQUIRED_PARAMS[self.op_type]:
            if key not in self.params:
                raise InvalidAmount(f"{self.op_type.name} missing param: {key}")
        return True

    def __repr__(self) -> str:
        return (f"AggregatorTransaction(op={self.op_type.name}, sender={self.sender}, "
                f"hash={self.tx_hash()[:12]}...)")
