"""
Cross-Chain Escrow State Machine

    PENDING ──complete (relayer, block < expiry)──▶ COMPLETED
       │
       └────cancel (initiator | admin, block >= expiry)──▶ FAILED

Both outcomes are terminal. The bridge only records transitions; token
movement (escrow in, optional refund out) is performed by the engine inside
the same atomic operation.
"""

from __future__ import annotations

from typing import List, Optional

from ..constants import MAX_SWAP_EXPIRY_BLOCKS
from ..exceptions import (
    InvalidAmount,
    SwapExpired,
    SwapNotExpired,
    SwapNotFound,
    SwapNotPending,
    Unauthorized,
)
from ..logger import get_logger
from .relayer import RelayerAuthority
from .types import CrossChainSwap, SwapStatus

logger = get_logger(__name__)


class CrossChainBridge:

    def __init__(
        self,
        store,
        relayer: RelayerAuthority,
        max_expiry_blocks: int = MAX_SWAP_EXPIRY_BLOCKS,
    ) -> None:
        self._store = store
        self.relayer = relayer
        self.max_expiry_blocks = max_expiry_blocks

    # ── Lookup ────────────────────────────────────────────────────────

    def get_swap(self, swap_id: int) -> Optional[CrossChainSwap]:
        return self._store.swaps.get(swap_id)

    def get_or_raise(self, swap_id: int) -> CrossChainSwap:
        swap = self._store.swaps.get(swap_id)
        if swap is None:
            raise SwapNotFound(f"Cross-chain swap #{swap_id} not found")
        self._store.touch("swaps", swap_id)
        return swap

    def pending_swaps(self) -> List[CrossChainSwap]:
        return [s for _, s in sorted(self._store.swaps.items()) if s.is_pending]

    # ── Transitions ───────────────────────────────────────────────────

    def validate_initiation(
        self,
        target_token_address: str,
        target_chain: str,
        amount: int,
        target_address: str,
        expires_in_blocks: int,
    ) -> None:
        if amount <= 0:
            raise InvalidAmount("Cross-chain amount must be positive")
        if expires_in_blocks <= 0:
            raise InvalidAmount("Expiry window must be positive")
        if expires_in_blocks > self.max_expiry_blocks:
            raise InvalidAmount(
                f"Expiry window {expires_in_blocks} exceeds {self.max_expiry_blocks} blocks"
            )
        if not target_chain or not target_address or not target_token_address:
            raise InvalidAmount("Target chain, address and token address are required")

    def open_swap(
        self,
        swap_id: int,
        initiator: str,
        source_token: str,
        target_token_address: str,
        target_chain: str,
        amount: int,
        target_address: str,
        expires_in_blocks: int,
        block: int,
    ) -> CrossChainSwap:
        self.validate_initiation(
            target_token_address, target_chain, amount, target_address, expires_in_blocks
        )
        swap = CrossChainSwap(
            id=swap_id,
            initiator=initiator,
            source_token=source_token,
            target_token_address=target_token_address,
            source_amount=amount,
            target_chain=target_chain,
            target_address=target_address,
            created_at_block=block,
            expires_at_block=block + expires_in_blocks,
        )
        self._store.touch("swaps", swap_id)
        self._store.swaps[swap_id] = swap
        return swap

    def mark_completed(
        self,
        sender: str,
        swap_id: int,
        target_amount: int,
        proof: Optional[str],
        block: int,
    ) -> CrossChainSwap:
        swap = self.get_or_raise(swap_id)
        self.relayer.authorize_completion(sender, swap, target_amount, proof)
        if not swap.is_pending:
            raise SwapNotPending(f"Swap #{swap_id} is {swap.status.label}")
        if swap.is_expired(block):
            raise SwapExpired(f"Swap #{swap_id} expired at block {swap.expires_at_block}")
        if target_amount <= 0:
            raise InvalidAmount("Target amount must be positive")

        swap.target_amount = target_amount
        swap.proof = proof
        swap.status = SwapStatus.COMPLETED
        swap.completed_at_block = block
        return swap

    def mark_failed(self, sender: str, swap_id: int, admin: str, block: int) -> CrossChainSwap:
        swap = self.get_or_raise(swap_id)
        if sender != swap.initiator and sender != admin:
            raise Unauthorized(f"{sender} cannot cancel swap #{swap_id}")
        if not swap.is_pending:
            raise SwapNotPending(f"Swap #{swap_id} is {swap.status.label}")
        if not swap.is_expired(block):
            raise SwapNotExpired(
                f"Swap #{swap_id} cancellable from block {swap.expires_at_block}, now {block}"
            )

        swap.status = SwapStatus.FAILED
        swap.completed_at_block = block
        return swap
