"""Escrow custody account.

Custody is an immutable value owned by one EscrowMachine. Deposits and
withdrawals return a new value, so an operation can stage the balance it
would leave behind and commit it only once the matching ledger transfer
has gone through.
"""

from __future__ import annotations

from dataclasses import dataclass

from safe_purchase.domain.exceptions import InsufficientCustodyError


@dataclass(frozen=True)
class CustodyAccount:
    """Funds held by the escrow, owned by neither party."""

    balance: int = 0

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Custody balance cannot be negative: {self.balance}")

    def deposit(self, amount: int) -> CustodyAccount:
        if amount < 0:
            raise ValueError(f"Deposit amount cannot be negative: {amount}")
        return CustodyAccount(balance=self.balance + amount)

    def withdraw(self, amount: int) -> CustodyAccount:
        """Return the account left after paying out ``amount``.

        Raises:
            InsufficientCustodyError: If the balance cannot cover the amount.
        """
        if amount < 0:
            raise ValueError(f"Withdrawal amount cannot be negative: {amount}")
        if amount > self.balance:
            raise InsufficientCustodyError(required=amount, available=self.balance)
        return CustodyAccount(balance=self.balance - amount)
