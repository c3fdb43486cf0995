"""Application services — use case orchestration."""

from safe_purchase.services.escrow_service import EscrowService

__all__ = ["EscrowService"]
