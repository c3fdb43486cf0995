"""End-to-end tests for the HTTP API.

Every request gets its own session on a per-test in-memory database and is
committed or rolled back like in production. The clock is a manual one, so
deadlines can be crossed without waiting, and the settings carry short terms.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from safe_purchase.api.deps import get_app_settings, get_clock, get_db_session
from safe_purchase.config import Settings
from safe_purchase.infrastructure.database.repositories import LedgerRepository
from safe_purchase.main import app
from tests.conftest import BUYER, SELLER, STARTING_BALANCE, STRANGER

pytestmark = pytest.mark.integration


TERMS = {
    "escrow_security_deposit": 1,
    "escrow_confirmation_window_seconds": 10,
    "escrow_reclaim_window_seconds": 10,
    "escrow_return_window_seconds": 10,
    "escrow_return_confirm_window_seconds": 10,
}


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **{**TERMS, **overrides})


@pytest_asyncio.fixture
async def client(
    session_factory, accounts, clock
) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _db_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_app_settings] = lambda: _settings()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _as(caller: str) -> dict[str, str]:
    return {"X-Caller-ID": caller}


async def _list(client: httpx.AsyncClient, price: int = 1) -> str:
    response = await client.post(
        "/api/v1/escrow",
        json={"product_name": "Mechanical keyboard", "price": price},
        headers=_as(SELLER),
    )
    assert response.status_code == 201
    return response.json()["id"]


async def _balance(client: httpx.AsyncClient, account: str) -> int:
    response = await client.get(f"/api/v1/ledger/{account}")
    assert response.status_code == 200
    return response.json()["balance"]


async def _purchase(client: httpx.AsyncClient) -> str:
    escrow_id = await _list(client)
    response = await client.post(
        f"/api/v1/escrow/{escrow_id}/deposit", json={"amount_sent": 2}, headers=_as(BUYER)
    )
    assert response.status_code == 200
    return escrow_id


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        await _list(client)
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["escrows"] == 1

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestEscrowRoutes:
    @pytest.mark.asyncio
    async def test_list_item(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/escrow",
            json={"product_name": "Mechanical keyboard", "price": 1},
            headers=_as(SELLER),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["seller"] == SELLER
        assert body["buyer"] is None
        assert body["status"] == "LISTED"
        assert body["security_deposit"] == 1
        assert body["custody_balance"] == 0

    @pytest.mark.asyncio
    async def test_missing_caller_header(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/escrow", json={"product_name": "Lamp", "price": 1}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_price_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/escrow", json={"product_name": "Lamp", "price": -1}, headers=_as(SELLER)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_on_time_lifecycle(self, client: httpx.AsyncClient, clock) -> None:
        escrow_id = await _purchase(client)
        clock.set(5)

        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "DELIVERY_CONFIRMED"
        assert await _balance(client, SELLER) == STARTING_BALANCE + 1
        assert await _balance(client, BUYER) == STARTING_BALANCE - 1

    @pytest.mark.asyncio
    async def test_return_lifecycle(self, client: httpx.AsyncClient, clock) -> None:
        escrow_id = await _purchase(client)
        await client.post(f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER))
        clock.set(6)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/return", json={"amount_sent": 1}, headers=_as(SELLER)
        )
        assert response.json()["return_in_progress"] is True

        clock.set(17)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/return/reclaim", headers=_as(BUYER)
        )
        assert response.status_code == 200
        assert response.json()["status"] == "RETURN_RECLAIMED"

        events = (await client.get(f"/api/v1/escrow/{escrow_id}/events")).json()
        assert [e["event_type"] for e in events] == [
            "LISTED",
            "PURCHASED",
            "DELIVERY_CONFIRMED",
            "RETURN_ISSUED",
            "RETURN_RECLAIMED",
        ]

    @pytest.mark.asyncio
    async def test_confirm_return(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        await client.post(f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER))
        await client.post(
            f"/api/v1/escrow/{escrow_id}/return", json={"amount_sent": 1}, headers=_as(SELLER)
        )
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/return/confirm", headers=_as(SELLER)
        )
        assert response.json()["status"] == "RETURN_CONFIRMED"

    @pytest.mark.asyncio
    async def test_status_and_listing(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        await _list(client)

        status = (await client.get(f"/api/v1/escrow/{escrow_id}/status")).json()
        assert status["status"] == "PURCHASED"
        assert status["custody_balance"] == 2
        assert set(status["allowed_events"]) == {
            "confirm_on_time",
            "confirm_late",
            "seller_reclaims",
        }

        purchased = (await client.get("/api/v1/escrow", params={"status": "PURCHASED"})).json()
        assert [e["id"] for e in purchased] == [escrow_id]
        mine = (await client.get("/api/v1/escrow", params={"party": BUYER})).json()
        assert len(mine) == 1
        everything = (await client.get("/api/v1/escrow")).json()
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_change_price(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _list(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/price", json={"new_price": 7}, headers=_as(SELLER)
        )
        assert response.json()["price"] == 7


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_not_found(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/escrow/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["error"] == "ESCROW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_incorrect_amount(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _list(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/deposit", json={"amount_sent": 1}, headers=_as(BUYER)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INCORRECT_AMOUNT"

    @pytest.mark.asyncio
    async def test_unauthorized(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(STRANGER)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHORIZED"
        assert await _balance(client, STRANGER) == STARTING_BALANCE

    @pytest.mark.asyncio
    async def test_already_purchased(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/price", json={"new_price": 7}, headers=_as(SELLER)
        )
        assert response.status_code == 409
        assert response.json()["error"] == "ALREADY_PURCHASED"

    @pytest.mark.asyncio
    async def test_window_not_elapsed(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/reclaim", headers=_as(SELLER)
        )
        assert response.status_code == 409
        assert response.json()["error"] == "WINDOW_NOT_ELAPSED"

    @pytest.mark.asyncio
    async def test_payment_failed(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        await client.post(f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER))
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER)
        )
        assert response.status_code == 402
        assert response.json()["error"] == "PAYMENT_FAILED"

    @pytest.mark.asyncio
    async def test_no_return_issued(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/return/confirm", headers=_as(SELLER)
        )
        assert response.status_code == 409
        assert response.json()["error"] == "NO_RETURN_ISSUED"


class TestLedgerRoutes:
    @pytest.mark.asyncio
    async def test_balance(self, client: httpx.AsyncClient) -> None:
        response = await client.get(f"/api/v1/ledger/{SELLER}")
        assert response.json() == {"account": SELLER, "balance": STARTING_BALANCE}

    @pytest.mark.asyncio
    async def test_unknown_account_is_empty(self, client: httpx.AsyncClient) -> None:
        assert await _balance(client, "nobody") == 0

    @pytest.mark.asyncio
    async def test_faucet_disabled_by_default(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/ledger/newcomer/credit", json={"amount": 50})
        assert response.status_code == 403
        assert await _balance(client, "newcomer") == 0

    @pytest.mark.asyncio
    async def test_faucet_disabled_in_development(self, client: httpx.AsyncClient) -> None:
        app.dependency_overrides[get_app_settings] = lambda: _settings(app_env="development")
        response = await client.post("/api/v1/ledger/newcomer/credit", json={"amount": 50})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_faucet_enabled(self, client: httpx.AsyncClient) -> None:
        app.dependency_overrides[get_app_settings] = lambda: _settings(
            ledger_faucet_enabled=True
        )
        response = await client.post("/api/v1/ledger/newcomer/credit", json={"amount": 50})
        assert response.status_code == 200
        assert response.json()["balance"] == 50
        assert await _balance(client, "newcomer") == 50

    @pytest.mark.asyncio
    async def test_funds_persist_across_requests(self, client: httpx.AsyncClient) -> None:
        escrow_id = await _purchase(client)
        assert await _balance(client, BUYER) == STARTING_BALANCE - 2
        escrow = (await client.get(f"/api/v1/escrow/{escrow_id}")).json()
        assert escrow["custody_balance"] == 2

    @pytest.mark.asyncio
    async def test_failed_payout_rolls_back_request(
        self, client: httpx.AsyncClient, session_factory
    ) -> None:
        escrow_id = await _purchase(client)
        async with session_factory() as session:
            await LedgerRepository(session).set_rejecting(SELLER)
            await session.commit()

        response = await client.post(
            f"/api/v1/escrow/{escrow_id}/confirm-delivery", headers=_as(BUYER)
        )

        assert response.status_code == 402
        escrow = (await client.get(f"/api/v1/escrow/{escrow_id}")).json()
        assert escrow["status"] == "PURCHASED"
        assert escrow["custody_balance"] == 2
        assert await _balance(client, SELLER) == STARTING_BALANCE
