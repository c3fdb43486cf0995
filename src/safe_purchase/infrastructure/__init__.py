"""Infrastructure — clocks, the working ledger and the database layer."""

from safe_purchase.infrastructure.clock import ManualClock, SystemClock
from safe_purchase.infrastructure.ledger import InMemoryLedger

__all__ = ["InMemoryLedger", "ManualClock", "SystemClock"]
