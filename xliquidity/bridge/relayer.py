"""
Relayer authorization for cross-chain swap completion.

The escrow state machine asks a ``RelayerAuthority`` whether a caller may
complete a swap with a given proof; it never inspects the proof itself.

``AdminRelayer`` is the default: the protocol admin is the sole trusted
relayer and proofs are recorded unverified. It is a placeholder, not a
security model. Substitute a multi-party or cryptographic authority via
``AggregatorEngine.set_relayer_authority`` without touching the escrow.
"""

from __future__ import annotations

from typing import Callable, FrozenSet, Iterable, Optional, Protocol, runtime_checkable

from ..exceptions import ConfigurationError, Unauthorized
from .types import CrossChainSwap


@runtime_checkable
class RelayerAuthority(Protocol):

    def authorize_completion(
        self,
        sender: str,
        swap: CrossChainSwap,
        target_amount: int,
        proof: Optional[str],
    ) -> None:
        """Raise ``Unauthorized`` if ``sender`` may not complete ``swap``."""
        ...


class AdminRelayer:
    """Only the current protocol admin may complete swaps."""

    def __init__(self, admin_lookup: Callable[[], str]) -> None:
        self._admin_lookup = admin_lookup

    def authorize_completion(self, sender, swap, target_amount, proof) -> None:
        if sender != self._admin_lookup():
            raise Unauthorized(f"{sender} is not an authorized relayer")

    def __repr__(self) -> str:
        return "<AdminRelayer>"


class AllowlistRelayer:
    """A fixed set of operator accounts, each trusted individually."""

    def __init__(self, relayers: Iterable[str]) -> None:
        self._relayers: FrozenSet[str] = frozenset(relayers)
        if not self._relayers:
            raise ConfigurationError("AllowlistRelayer needs at least one relayer")

    @property
    def relayers(self) -> FrozenSet[str]:
        return self._relayers

    def authorize_completion(self, sender, swap, target_amount, proof) -> None:
        if sender not in self._relayers:
            raise Unauthorized(f"{sender} is not an authorized relayer")

    def __repr__(self) -> str:
        return f"<AllowlistRelayer relayers={len(self._relayers)}>"
