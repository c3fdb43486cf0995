"""Escrow terms: the security deposit and the four deadline windows.

All windows are measured in the clock's unit (seconds). Keeping them in one
immutable value lets the policy be swapped in tests without touching the
machine itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from safe_purchase.config import Settings

TEN_DAYS = 10 * 24 * 60 * 60


@dataclass(frozen=True)
class EscrowTerms:
    """Fixed policy constants shared by every escrow created under them.

    Attributes:
        security_deposit: Extra amount the buyer posts on top of the price.
        confirmation_window: Time after purchase for an on-time delivery
            confirmation.
        reclaim_window: Time after purchase that must pass before the seller
            can reclaim unconfirmed funds.
        return_window: Time after delivery confirmation during which the
            seller may issue a return.
        return_confirm_window: Time after a return is issued that must pass
            before the buyer may reclaim it unilaterally.
    """

    security_deposit: int = 100
    confirmation_window: int = TEN_DAYS
    reclaim_window: int = TEN_DAYS
    return_window: int = TEN_DAYS
    return_confirm_window: int = TEN_DAYS

    def __post_init__(self) -> None:
        if self.security_deposit < 0:
            raise ValueError(
                f"security_deposit cannot be negative: {self.security_deposit}"
            )
        for name in (
            "confirmation_window",
            "reclaim_window",
            "return_window",
            "return_confirm_window",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive: {getattr(self, name)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> EscrowTerms:
        return cls(
            security_deposit=settings.escrow_security_deposit,
            confirmation_window=settings.escrow_confirmation_window_seconds,
            reclaim_window=settings.escrow_reclaim_window_seconds,
            return_window=settings.escrow_return_window_seconds,
            return_confirm_window=settings.escrow_return_confirm_window_seconds,
        )


def elapsed_since(start: int | None, now: int) -> int | None:
    """Seconds between ``start`` and ``now``, or None if ``start`` was never set."""
    if start is None:
        return None
    return now - start


def is_within(start: int | None, now: int, window: int) -> bool:
    """True while strictly less than ``window`` has passed since ``start``."""
    elapsed = elapsed_since(start, now)
    return elapsed is not None and elapsed < window


def has_elapsed(start: int | None, now: int, window: int) -> bool:
    """True once strictly more than ``window`` has passed since ``start``."""
    elapsed = elapsed_since(start, now)
    return elapsed is not None and elapsed > window
