"""
Cross-Chain Swap Types

Defines:
  - SwapStatus lifecycle enum (PENDING -> COMPLETED | FAILED)
  - CrossChainSwap escrow record
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from ..exceptions import InvalidAmount


# ══════════════════════════════════════════════════════════════════════
#  SWAP STATUS
# ══════════════════════════════════════════════════════════════════════

class SwapStatus(IntEnum):
    """Lifecycle of an escrowed cross-chain swap. Both outcomes are terminal."""
    PENDING   = 0  # Source tokens escrowed, awaiting relayer
    COMPLETED = 1  # Relayer confirmed delivery on the target chain
    FAILED    = 2  # Expired and cancelled

    @property
    def label(self) -> str:
        return self.name.lower()


# ══════════════════════════════════════════════════════════════════════
#  CROSS-CHAIN SWAP RECORD
# ══════════════════════════════════════════════════════════════════════

@dataclass
class CrossChainSwap:
    """
    Escrow record of a single cross-chain swap.

    Attributes:
        id: Sequential swap id, starting at 1
        initiator: Account whose source tokens are escrowed
        source_token: Token id of the escrowed asset
        target_token_address: Asset identifier in the foreign chain's format
        source_amount: Escrowed amount
        target_amount: Delivered amount reported by the relayer (0 until completion)
        target_chain: Foreign chain id, e.g. "bitcoin"
        target_address: Recipient on the foreign chain
        status: SwapStatus
        created_at_block: Block height at initiation
        expires_at_block: created_at_block + expiry window
        proof: Opaque relayer proof recorded on completion
        completed_at_block: Block height of completion or cancellation
        refunded: Whether the escrow was returned on cancellation
    """
    id: int
    initiator: str
    source_token: str
    target_token_address: str
    source_amount: int
    target_chain: str
    target_address: str
    created_at_block: int
    expires_at_block: int
    target_amount: int = 0
    status: SwapStatus = SwapStatus.PENDING
    proof: Optional[str] = None
    completed_at_block: Optional[int] = None
    refunded: bool = False

    def __post_init__(self):
        if self.source_amount <= 0:
            raise InvalidAmount("source_amount must be positive")
        if self.expires_at_block <= self.created_at_block:
            raise InvalidAmount("expires_at_block must be after created_at_block")

    @property
    def is_pending(self) -> bool:
        return self.status == SwapStatus.PENDING

    def is_expired(self, block_height: int) -> bool:
        return block_height >= self.expires_at_block

    def blocks_remaining(self, block_height: int) -> int:
        return max(0, self.expires_at_block - block_height)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "initiator": self.initiator,
            "source_token": self.source_token,
            "target_token_address": self.target_token_address,
            "source_amount": self.source_amount,
            "target_amount": self.target_amount,
            "target_chain": self.target_chain,
            "target_address": self.target_address,
            "status": self.status.label,
            "created_at_block": self.created_at_block,
            "expires_at_block": self.expires_at_block,
            "proof": self.proof,
            "completed_at_block": self.completed_at_block,
            "refunded": self.refunded,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CrossChainSwap':
        status = d.get("status", SwapStatus.PENDING)
        if isinstance(status, str):
            status = SwapStatus[status.upper()]
        return cls(
            id=d["id"],
            initiator=d["initiator"],
            source_token=d["source_token"],
            target_token_address=d["target_token_address"],
            source_amount=d["source_amount"],
            target_chain=d["target_chain"],
            target_address=d["target_address"],
            created_at_block=d["created_at_block"],
            expires_at_block=d["expires_at_block"],
            target_amount=d.get("target_amount", 0),
            status=SwapStatus(status),
            proof=d.get("proof"),
            completed_at_block=d.get("completed_at_block"),
            refunded=d.get("refunded", False),
        )
