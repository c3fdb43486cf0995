"""Ledger and Clock Protocols.

Defines the interfaces of the external collaborators the escrow depends on.
These are Protocols (structural subtyping) so concrete ledgers and clocks
don't need to inherit from a base class, they just need to match the shape.

The domain layer has ZERO imports from FastAPI, structlog or any ledger SDK.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class Payout:
    """One outgoing transfer from escrow custody.

    Attributes:
        recipient: Identity of the party receiving the funds.
        amount: Quantity in the ledger's base unit.
    """

    recipient: str
    amount: int

    def to_dict(self) -> dict:
        return {"recipient": self.recipient, "amount": self.amount}


@runtime_checkable
class Ledger(Protocol):
    """Value-transfer substrate.

    Concrete implementations:
        - infrastructure/ledger.py  (InMemoryLedger, staged from the database)
    """

    def collect(self, payer: str, amount: int) -> None:
        """Move ``amount`` from ``payer`` into escrow custody.

        Raises:
            LedgerError: If the payer's funds are unavailable.
        """
        ...

    def disburse(self, payouts: Sequence[Payout]) -> None:
        """Pay every payout in the batch, or none of them.

        Raises:
            LedgerError: If any recipient cannot receive funds.
        """
        ...


@runtime_checkable
class Clock(Protocol):
    """Time source in whole seconds since the Unix epoch.

    Concrete implementations:
        - infrastructure/clock.py  (SystemClock, ManualClock)
    """

    def now(self) -> int:
        """Return the current time in whole seconds."""
        ...
