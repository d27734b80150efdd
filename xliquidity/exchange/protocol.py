"""
Protocol configuration record.

A single mutable record per engine: fee rate, fee recipient, pause flag,
the configured admin identity and the id counters. Admin operations are the
only writers; every public operation reads it as a gate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from ..constants import DEFAULT_ADMIN, DEFAULT_PROTOCOL_FEE_BPS, MAX_FEE_BPS
from ..exceptions import InvalidFee, Paused, Unauthorized


@dataclass
class ProtocolConfig:
    admin: str = DEFAULT_ADMIN
    protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS
    fee_recipient: str = DEFAULT_ADMIN
    paused: bool = False
    next_pool_id: int = 1
    next_swap_id: int = 1

    def __post_init__(self):
        validate_fee_bps(self.protocol_fee_bps)

    def require_admin(self, sender: str) -> None:
        if sender != self.admin:
            raise Unauthorized(f"{sender} is not the protocol admin")

    def require_not_paused(self) -> None:
        if self.paused:
            raise Paused("Protocol is paused")

    def allocate_pool_id(self) -> int:
        pool_id = self.next_pool_id
        self.next_pool_id += 1
        return pool_id

    def allocate_swap_id(self) -> int:
        swap_id = self.next_swap_id
        self.next_swap_id += 1
        return swap_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "protocol_fee_bps": self.protocol_fee_bps,
            "fee_recipient": self.fee_recipient,
            "paused": self.paused,
            "next_pool_id": self.next_pool_id,
            "next_swap_id": self.next_swap_id,
        }


def validate_fee_bps(fee_bps: int) -> int:
    """Reject fee rates outside 0..10000 bps."""
    if not isinstance(fee_bps, int) or isinstance(fee_bps, bool):
        raise InvalidFee(f"Fee must be an integer bps value, got {fee_bps!r}")
    if fee_bps < 0 or fee_bps > MAX_FEE_BPS:
        raise InvalidFee(f"Fee {fee_bps} bps outside 0..{MAX_FEE_BPS}")
    return fee_bps
