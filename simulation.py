#!/usr/bin/env python3
"""Safe Purchase — End-to-End Simulation.

Replays escrow scenarios between a SellerBot and a BuyerBot through the
EscrowService and a real database (in-memory SQLite unless --db-url says
otherwise). Every bot action is committed as its own transaction, like one
API request. A manual clock stands in for wall time, so every deadline is
crossed instantly and deterministically.

    Scenario 1: Happy Path
        - Seller lists, buyer purchases, buyer confirms on day 3
        - Seller gets the price, buyer gets the security deposit back

    Scenario 2: Late Confirmation
        - Buyer confirms on day 12, after the confirmation window
        - Seller gets price + deposit, buyer forfeits the deposit

    Scenario 3: Silent Buyer
        - Buyer never confirms; seller reclaims on day 11

    Scenario 4: Return Confirmed
        - Buyer confirms, seller issues a return, seller confirms it arrived

    Scenario 5: Return Reclaimed
        - Seller issues a return but never confirms; buyer reclaims on day 11

    Scenario 6: Rejected Payout
        - The seller's account rejects incoming funds; confirmation fails, the
          transaction rolls back and the escrow is left exactly as it was,
          then succeeds on retry

Usage:
    python simulation.py
    python simulation.py --scenario 4
    python simulation.py --deposit 500 --price 2000
    python simulation.py --db-url sqlite+aiosqlite:///./simulation.db
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from safe_purchase.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from safe_purchase.domain.exceptions import EscrowError  # noqa: E402
from safe_purchase.domain.terms import TEN_DAYS, EscrowTerms  # noqa: E402
from safe_purchase.infrastructure.clock import ManualClock  # noqa: E402
from safe_purchase.infrastructure.database.engine import (  # noqa: E402
    create_engine_from_url,
    create_tables,
    make_session_factory,
)
from safe_purchase.infrastructure.database.repositories import LedgerRepository  # noqa: E402
from safe_purchase.services.escrow_service import EscrowService  # noqa: E402

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

DAY = TEN_DAYS // 10
STARTING_FUNDS = 10_000
IN_MEMORY_DB = "sqlite+aiosqlite:///:memory:"


@dataclass
class World:
    """One isolated market: session, service, ledger accounts and clock."""

    session: AsyncSession
    service: EscrowService
    accounts: LedgerRepository
    clock: ManualClock

    def advance_days(self, days: int) -> None:
        self.clock.advance(days * DAY)
        logger.info("⏱️  CLOCK: Time passes", days=days, now=self.clock.now())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


async def build_world(
    session: AsyncSession, price: int, deposit: int
) -> tuple[World, SellerBot, BuyerBot]:
    seller = SellerBot(price=price)
    buyer = BuyerBot()
    accounts = LedgerRepository(session)
    await accounts.credit(seller.account, STARTING_FUNDS)
    await accounts.credit(buyer.account, STARTING_FUNDS)
    await session.commit()

    clock = ManualClock()
    service = EscrowService(session, clock=clock, terms=EscrowTerms(security_deposit=deposit))
    world = World(session=session, service=service, accounts=accounts, clock=clock)
    return world, seller, buyer


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
def _account(role: str) -> str:
    # Unique per run so a file database can be replayed into
    return f"{role}-{uuid.uuid4().hex[:8]}"


@dataclass
class SellerBot:
    """Simulated seller that lists products and handles returns."""

    account: str = field(default_factory=lambda: _account("seller"))
    price: int = 1_000

    async def list_product(self, world: World, product_name: str) -> uuid.UUID:
        record = await world.service.list_item(self.account, product_name, self.price)
        await world.commit()
        logger.info(
            "🟠 SELLER: Product listed",
            escrow_id=str(record.id),
            price=record.price,
            deposit=record.security_deposit,
        )
        return record.id

    async def reclaim(self, world: World, escrow_id: uuid.UUID) -> None:
        await world.service.reclaim_as_seller(escrow_id, self.account)
        await world.commit()
        logger.info("🟠 SELLER: Funds reclaimed", escrow_id=str(escrow_id))

    async def issue_return(self, world: World, escrow_id: uuid.UUID) -> None:
        price = (await world.service.get_escrow(escrow_id)).price
        await world.service.issue_return(escrow_id, self.account, price)
        await world.commit()
        logger.info("🟠 SELLER: Return issued", escrow_id=str(escrow_id), refund=price)

    async def confirm_return(self, world: World, escrow_id: uuid.UUID) -> None:
        await world.service.confirm_return_received(escrow_id, self.account)
        await world.commit()
        logger.info("🟠 SELLER: Return received", escrow_id=str(escrow_id))


@dataclass
class BuyerBot:
    """Simulated buyer that purchases and confirms deliveries."""

    account: str = field(default_factory=lambda: _account("buyer"))

    async def purchase(self, world: World, escrow_id: uuid.UUID) -> None:
        record = await world.service.get_escrow(escrow_id)
        amount = record.price + record.security_deposit
        await world.service.deposit(escrow_id, self.account, amount)
        await world.commit()
        logger.info("🔵 BUYER: Product purchased", escrow_id=str(escrow_id), sent=amount)

    async def confirm_delivery(self, world: World, escrow_id: uuid.UUID) -> None:
        record = await world.service.confirm_delivery(escrow_id, self.account)
        await world.commit()
        logger.info(
            "🔵 BUYER: Delivery confirmed",
            escrow_id=str(escrow_id),
            status=record.status,
        )

    async def reclaim_return(self, world: World, escrow_id: uuid.UUID) -> None:
        await world.service.buyer_reclaim_return(escrow_id, self.account)
        await world.commit()
        logger.info("🔵 BUYER: Return refund reclaimed", escrow_id=str(escrow_id))


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_balances(world: World, seller: SellerBot, buyer: BuyerBot) -> None:
    for label, account in (("Seller", seller.account), ("Buyer", buyer.account)):
        balance = await world.accounts.balance_of(account)
        print(f"  {label:<7} {balance:>8}  ({balance - STARTING_FUNDS:+})")


async def print_audit_trail(world: World, escrow_id: uuid.UUID) -> None:
    """Print the full audit trail for an escrow."""
    print("\n  📜 Audit Trail:")
    for evt in await world.service.get_events(escrow_id):
        old = evt.old_status or "—"
        print(
            f"    {evt.sequence}. t={evt.timestamp:<8} [{evt.event_type}] "
            f"{old} → {evt.new_status} (by {evt.actor})"
        )
    print()


async def finish(world: World, seller: SellerBot, buyer: BuyerBot, escrow_id: uuid.UUID) -> None:
    section("Final balances")
    await print_balances(world, seller, buyer)
    print(f"  Custody {(await world.service.get_escrow(escrow_id)).custody_balance:>8}")
    await print_audit_trail(world, escrow_id)


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_1_happy_path(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 1: Happy Path — Confirmed on Day 3")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Mechanical keyboard")
    await buyer.purchase(world, escrow_id)
    world.advance_days(3)
    await buyer.confirm_delivery(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


async def scenario_2_late_confirmation(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 2: Late Confirmation — Deposit Forfeited")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Desk lamp")
    await buyer.purchase(world, escrow_id)
    world.advance_days(12)
    await buyer.confirm_delivery(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


async def scenario_3_silent_buyer(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 3: Silent Buyer — Seller Reclaims")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Office chair")
    await buyer.purchase(world, escrow_id)

    section("Seller tries to reclaim too early")
    world.advance_days(5)
    try:
        await seller.reclaim(world, escrow_id)
    except EscrowError as exc:
        await world.rollback()
        logger.warning("🟠 SELLER: Reclaim refused", code=exc.code, reason=exc.message)

    world.advance_days(6)
    await seller.reclaim(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


async def scenario_4_return_confirmed(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 4: Return Confirmed")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Headphones")
    await buyer.purchase(world, escrow_id)
    world.advance_days(2)
    await buyer.confirm_delivery(world, escrow_id)
    world.advance_days(1)
    await seller.issue_return(world, escrow_id)
    world.advance_days(4)
    await seller.confirm_return(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


async def scenario_5_return_reclaimed(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 5: Return Never Confirmed — Buyer Reclaims")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Camera")
    await buyer.purchase(world, escrow_id)
    await buyer.confirm_delivery(world, escrow_id)
    world.advance_days(1)
    await seller.issue_return(world, escrow_id)
    world.advance_days(11)
    await buyer.reclaim_return(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


async def scenario_6_rejected_payout(session: AsyncSession, price: int, deposit: int) -> None:
    banner("SCENARIO 6: Rejected Payout — Nothing Changes")
    world, seller, buyer = await build_world(session, price, deposit)

    escrow_id = await seller.list_product(world, "Bicycle")
    await buyer.purchase(world, escrow_id)
    await world.accounts.set_rejecting(seller.account)
    await world.commit()

    section("Seller's account rejects the payout")
    try:
        await buyer.confirm_delivery(world, escrow_id)
    except EscrowError as exc:
        await world.rollback()
        logger.warning("🔵 BUYER: Confirmation failed", code=exc.code, reason=exc.message)
    status = await world.service.get_status(escrow_id)
    print(f"  🛡️  Status still {status['status']}, custody {status['custody_balance']}")

    section("Seller accepts funds again; buyer retries")
    await world.accounts.set_rejecting(seller.account, rejecting=False)
    await world.commit()
    await buyer.confirm_delivery(world, escrow_id)

    await finish(world, seller, buyer, escrow_id)


SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_late_confirmation,
    3: scenario_3_silent_buyer,
    4: scenario_4_return_confirmed,
    5: scenario_5_return_reclaimed,
    6: scenario_6_rejected_payout,
}


# ===========================================================================
# Main
# ===========================================================================
async def run_scenarios(numbers: list[int], db_url: str, price: int, deposit: int) -> None:
    """Run scenarios against a database, each in its own session."""
    engine = create_engine_from_url(db_url)
    await create_tables(engine)
    logger.info("🗄️  DATABASE: Ready", backend=engine.dialect.name)
    factory = make_session_factory(engine)
    try:
        for number in numbers:
            async with factory() as session:
                await SCENARIOS[number](session, price, deposit)
    finally:
        await engine.dispose()


async def run_all(db_url: str, price: int, deposit: int) -> None:
    """Run all scenarios sequentially."""
    print("\n" + "🚀" * 35)
    print("  SAFE PURCHASE — SIMULATION")
    print(f"  Price: {price}   Security deposit: {deposit}")
    print("🚀" * 35 + "\n")

    await run_scenarios(list(SCENARIOS), db_url, price, deposit)

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Safe Purchase Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help=f"Run a specific scenario ({', '.join(map(str, SCENARIOS))}). Default: run all.",
    )
    parser.add_argument("--price", type=int, default=1_000, help="Product price.")
    parser.add_argument("--deposit", type=int, default=100, help="Security deposit.")
    parser.add_argument(
        "--db-url",
        default=IN_MEMORY_DB,
        help="Async SQLAlchemy URL to run against. Default: in-memory SQLite.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(args.db_url, args.price, args.deposit))
    elif args.scenario in SCENARIOS:
        asyncio.run(run_scenarios([args.scenario], args.db_url, args.price, args.deposit))
    else:
        print(f"Unknown scenario {args.scenario}. Available: {list(SCENARIOS)}")
