"""
In-Memory Fungible Token

A minimal fungible-token contract that satisfies ``TokenCapability``. It is
the token the host simulation and the test-suite run the ledger against:

  - integer balances, mint / burn by the token owner
  - transfer(amount, sender, recipient, memo)
  - freeze / unfreeze, which makes every transfer fail ``Unauthorized``
  - append-only transfer event log
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..exceptions import InsufficientBalance, InvalidAmount, Unauthorized
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferEvent:
    """Emitted on every successful transfer."""
    token_id: str
    sender: str
    recipient: str
    amount: int
    memo: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Transfer",
            "token": self.token_id,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "memo": self.memo,
        }


class InMemoryToken:
    """
    Integer-balance fungible token.

    Only the token owner may mint or burn when a caller is given.
    """

    def __init__(self, token_id: str, owner: str = "", decimals: int = 6):
        if not token_id:
            raise InvalidAmount("Token id cannot be empty")
        if decimals < 0 or decimals > 18:
            raise InvalidAmount(f"Decimals must be 0-18, got {decimals}")
        self.token_id = token_id
        self.owner = owner
        self.decimals = decimals
        self._total_supply = 0
        self._frozen = False
        self._balances: Dict[str, int] = {}
        self._events: List[TransferEvent] = []

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def events(self) -> List[TransferEvent]:
        return list(self._events)

    # ── Supply ────────────────────────────────────────────────────────

    def mint(self, amount: int, recipient: str, caller: Optional[str] = None) -> None:
        if caller is not None and caller != self.owner:
            raise Unauthorized(f"{caller} cannot mint {self.token_id}")
        if amount <= 0:
            raise InvalidAmount("Mint amount must be positive")
        self._balances[recipient] = self.balance_of(recipient) + amount
        self._total_supply += amount

    def burn(self, amount: int, holder: str, caller: Optional[str] = None) -> None:
        if caller is not None and caller != self.owner:
            raise Unauthorized(f"{caller} cannot burn {self.token_id}")
        if amount <= 0:
            raise InvalidAmount("Burn amount must be positive")
        bal = self.balance_of(holder)
        if bal < amount:
            raise InsufficientBalance(f"{holder} balance {bal} < burn amount {amount}")
        self._balances[holder] = bal - amount
        self._total_supply -= amount

    # ── Transfer capability ───────────────────────────────────────────

    def transfer(
        self,
        amount: int,
        sender: str,
        recipient: str,
        memo: Optional[str] = None,
    ) -> TransferEvent:
        if self._frozen:
            raise Unauthorized(f"Token {self.token_id} is frozen")
        if amount <= 0:
            raise InvalidAmount("Transfer amount must be positive")
        if sender == recipient:
            raise InvalidAmount("Cannot transfer to self")

        bal = self.balance_of(sender)
        if bal < amount:
            raise InsufficientBalance(
                f"{sender} balance {bal} < transfer amount {amount} {self.token_id}"
            )

        self._balances[sender] = bal - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

        event = TransferEvent(self.token_id, sender, recipient, amount, memo)
        self._events.append(event)
        logger.debug("Transfer: %s -> %s %d %s", sender, recipient, amount, self.token_id)
        return event

    # ── Freeze / unfreeze ─────────────────────────────────────────────

    def freeze(self) -> None:
        self._frozen = True
        logger.warning("Token %s FROZEN", self.token_id)

    def unfreeze(self) -> None:
        self._frozen = False
        logger.info("Token %s unfrozen", self.token_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "owner": self.owner,
            "decimals": self.decimals,
            "total_supply": self._total_supply,
            "frozen": self._frozen,
            "holders": len([b for b in self._balances.values() if b > 0]),
        }

    def __repr__(self) -> str:
        return f"<InMemoryToken {self.token_id} supply={self._total_supply}>"
