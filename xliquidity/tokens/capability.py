"""
Token Capability Interface

The ledger never owns token balances. Every movement of value goes through
a transfer capability exposed by the token contract itself:

    transfer(amount, sender, recipient, memo=None)

A failing transfer raises ``InsufficientBalance``, ``Unauthorized`` or
``InvalidAmount`` and aborts the enclosing ledger operation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..exceptions import AlreadyExists, InvalidToken
from ..logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TokenCapability(Protocol):
    """Transfer interface a fungible-token contract exposes to the ledger."""

    token_id: str

    def transfer(
        self,
        amount: int,
        sender: str,
        recipient: str,
        memo: Optional[str] = None,
    ) -> Any:
        ...


class TokenRegistry:
    """
    Resolves token identifiers to their transfer capabilities.

    Pool and bridge operations name tokens by identifier; an identifier with
    no registered capability is an ``InvalidToken``.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, TokenCapability] = {}

    def register(self, token: TokenCapability) -> TokenCapability:
        if not isinstance(token, TokenCapability):
            raise InvalidToken(f"{token!r} does not expose a transfer capability")
        if token.token_id in self._tokens:
            raise AlreadyExists(f"Token {token.token_id} already registered")
        self._tokens[token.token_id] = token
        logger.debug("Token registered: %s", token.token_id)
        return token

    def get(self, token_id: str) -> Optional[TokenCapability]:
        return self._tokens.get(token_id)

    def get_or_raise(self, token_id: str) -> TokenCapability:
        token = self.get(token_id)
        if token is None:
            raise InvalidToken(f"Token {token_id} is not registered")
        return token

    def exists(self, token_id: str) -> bool:
        return token_id in self._tokens

    def list_tokens(self) -> List[str]:
        return list(self._tokens.keys())

    def __len__(self) -> int:
        return len(self._tokens)

    def __repr__(self) -> str:
        return f"<TokenRegistry tokens={len(self._tokens)}>"
