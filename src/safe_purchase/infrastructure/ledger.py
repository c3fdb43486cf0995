"""In-memory ledger — the working copy one escrow operation runs against.

Tracks one integer balance per account. Funds collected into escrow custody
leave the payer's balance; disbursed funds are credited to the recipients.
The escrow's own custody balance lives on the EscrowMachine, so the total of
all ledger balances plus all custody balances is conserved.

The service stages one from the persisted balances of the accounts an
operation may touch and writes the result back in the same transaction.
The domain tests use it directly.

Accounts can be marked as rejecting incoming funds, which lets tests and the
simulation exercise the payment-failure rollback path.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING

from safe_purchase.domain.exceptions import LedgerError
from safe_purchase.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from safe_purchase.domain.ledger_protocol import Payout

logger = get_logger(__name__)


class InMemoryLedger:
    """Ledger holding balances in a dict, guarded by a lock."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: defaultdict[str, int] = defaultdict(int, balances or {})
        self._rejecting: set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Ledger protocol
    # ------------------------------------------------------------------

    def collect(self, payer: str, amount: int) -> None:
        """Debit ``payer`` for funds moving into escrow custody."""
        with self._lock:
            available = self._balances[payer]
            if amount > available:
                raise LedgerError(
                    f"Insufficient funds: {payer} has {available}, needs {amount}",
                    account=payer,
                )
            self._balances[payer] = available - amount
        logger.info("ledger.collected", payer=payer, amount=amount)

    def disburse(self, payouts: Sequence[Payout]) -> None:
        """Credit every recipient, or none if any of them rejects funds."""
        with self._lock:
            for payout in payouts:
                if payout.recipient in self._rejecting:
                    raise LedgerError(
                        f"Recipient {payout.recipient} rejected {payout.amount}",
                        account=payout.recipient,
                    )
            for payout in payouts:
                self._balances[payout.recipient] += payout.amount
        logger.info(
            "ledger.disbursed",
            payouts=[(p.recipient, p.amount) for p in payouts],
        )

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def reject_incoming(self, account: str, rejecting: bool = True) -> None:
        """Make ``account`` refuse (or accept again) incoming payouts."""
        with self._lock:
            if rejecting:
                self._rejecting.add(account)
            else:
                self._rejecting.discard(account)

    def balances(self) -> dict[str, int]:
        """Snapshot of every account this ledger has seen."""
        with self._lock:
            return dict(self._balances)
