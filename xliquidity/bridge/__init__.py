"""
Cross-chain escrow bridge.

Source tokens are escrowed into aggregator custody on initiation; a trusted
relayer confirms delivery on the target chain, or the swap is cancelled
after expiry.
"""

from .escrow import CrossChainBridge
from .relayer import AdminRelayer, AllowlistRelayer, RelayerAuthority
from .types import CrossChainSwap, SwapStatus

__all__ = [
    "CrossChainBridge",
    "RelayerAuthority",
    "AdminRelayer",
    "AllowlistRelayer",
    "CrossChainSwap",
    "SwapStatus",
]
