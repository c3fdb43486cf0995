"""Safe Purchase: a deadline-driven escrow for one seller, one buyer, one good."""

__version__ = "0.1.0"
