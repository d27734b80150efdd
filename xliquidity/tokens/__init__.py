"""
Token collaborators.

The ledger moves value only through ``TokenCapability.transfer``;
``InMemoryToken`` is the reference fungible token used by the host
simulation and tests.
"""

from .capability import TokenCapability, TokenRegistry
from .ledger import InMemoryToken, TransferEvent

__all__ = [
    "TokenCapability",
    "TokenRegistry",
    "InMemoryToken",
    "TransferEvent",
]
