"""
HTTP surface — routers, error rendering and the auth dependency, driven
through httpx against an app built from the production routers.
"""
from decimal import Decimal

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from rentledger.core.database import get_db
from rentledger.core.deps import get_actor, get_notifier
from rentledger.core.errors import register_exception_handlers
from rentledger.core.security import create_access_token
from rentledger.routers import agreements, bookings, health, invoices


def _build_app(session_factory, notifier, actors=None) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(agreements.router, prefix="/api/v1")
    app.include_router(invoices.router, prefix="/api/v1")

    async def test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = test_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    if actors is not None:
        async def test_actor(request: Request):
            return actors[request.headers["X-As"]]

        app.dependency_overrides[get_actor] = test_actor
    return app


@pytest.fixture
async def client(session_factory, notifier, world):
    actors = {"owner": world.owner, "tenant": world.tenant, "stranger": world.stranger}
    app = _build_app(session_factory, notifier, actors)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


OWNER = {"X-As": "owner"}
TENANT = {"X-As": "tenant"}
STRANGER = {"X-As": "stranger"}


# ── Health ───────────────────────────────────────────────────────────────────

class TestHealth:
    async def test_health(self, client):
        assert (await client.get("/health")).json() == {"status": "ok"}

    async def test_health_db(self, client):
        resp = await client.get("/health/db")
        assert resp.status_code == 200
        assert resp.json()["database"] == "connected"
        assert resp.json()["tables"] == ["bookings", "rental_agreements", "invoices"]

    async def test_health_db_missing_ledger_table(self, client, engine):
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE invoices"))

        resp = await client.get("/health/db")
        assert resp.status_code == 503
        assert resp.json()["retryable"] is True
        assert "invoices" in resp.json()["detail"]


# ── Full rental over HTTP ────────────────────────────────────────────────────

class TestRentalOverHttp:
    async def test_booking_to_first_bill(self, client, world):
        resp = await client.post(
            "/api/v1/bookings",
            json={"property_id": str(world.property_id), "requested_move_in_date": "2026-01-01"},
            headers=TENANT,
        )
        assert resp.status_code == 201
        booking_id = resp.json()["id"]

        resp = await client.put(f"/api/v1/bookings/{booking_id}/status", json={"status": "accepted"}, headers=OWNER)
        assert resp.json()["status"] == "accepted"

        resp = await client.put(
            f"/api/v1/bookings/{booking_id}/duration",
            json={"rental_years": 1, "rental_months": 6},
            headers=TENANT,
        )
        assert resp.json()["status"] == "duration_pending"

        resp = await client.put(f"/api/v1/bookings/{booking_id}/approve-duration", json={"approved": True}, headers=OWNER)
        assert resp.json()["status"] == "duration_approved"

        resp = await client.post(f"/api/v1/bookings/{booking_id}/agreement", json={"rules": "No smoking"}, headers=OWNER)
        assert resp.status_code == 201
        agreement = resp.json()
        assert agreement["end_date"] == "2027-07-01"

        resp = await client.put(f"/api/v1/agreements/{agreement['id']}/respond", json={"decision": "approve"}, headers=TENANT)
        assert resp.json()["status"] == "active"

        resp = await client.post(
            f"/api/v1/bookings/{booking_id}/deposit",
            json={"amount": "5000", "payment_method": "khalti", "transaction_reference": "KH-204"},
            headers=TENANT,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "paid"
        assert resp.json()["payment_method"] == "khalti"
        assert resp.json()["transaction_reference"] == "KH-204"

        resp = await client.post(
            f"/api/v1/agreements/{agreement['id']}/readings",
            json={"current_reading": "150", "billing_period": "2026-01"},
            headers=OWNER,
        )
        assert resp.status_code == 201
        invoice = resp.json()
        assert invoice["billing_period"] == "2026-01-01"
        assert Decimal(invoice["amount"]) == Decimal("12500")

        resp = await client.put(
            f"/api/v1/invoices/{invoice['id']}/settle",
            json={"payment_method": "cash", "note": "Paid at the door"},
            headers=TENANT,
        )
        assert resp.json()["status"] == "paid"
        assert resp.json()["payment_method"] == "cash"
        assert resp.json()["payment_note"] == "Paid at the door"

        resp = await client.get(f"/api/v1/agreements/{agreement['id']}/invoices", headers=OWNER)
        assert [inv["id"] for inv in resp.json()] == [invoice["id"]]

        resp = await client.get("/api/v1/invoices", headers=TENANT, params={"status": "paid"})
        assert len(resp.json()) == 2


# ── Error rendering ──────────────────────────────────────────────────────────

class TestErrors:
    async def _booking(self, client, world) -> str:
        resp = await client.post("/api/v1/bookings", json={"property_id": str(world.property_id)}, headers=TENANT)
        return resp.json()["id"]

    async def test_unauthorized_is_403(self, client, world):
        booking_id = await self._booking(client, world)
        resp = await client.put(f"/api/v1/bookings/{booking_id}/status", json={"status": "accepted"}, headers=TENANT)
        assert resp.status_code == 403
        assert resp.json()["kind"] == "Unauthorized"
        assert resp.json()["retryable"] is False

    async def test_not_a_party_is_404(self, client, world):
        booking_id = await self._booking(client, world)
        resp = await client.get(f"/api/v1/bookings/{booking_id}", headers=STRANGER)
        assert resp.status_code == 404
        assert resp.json()["kind"] == "NotFound"

    async def test_illegal_transition_is_409(self, client, world):
        booking_id = await self._booking(client, world)
        resp = await client.post(f"/api/v1/bookings/{booking_id}/agreement", json={}, headers=OWNER)
        assert resp.status_code == 409
        assert resp.json()["kind"] == "IllegalTransition"
        assert "duration not yet approved" in resp.json()["detail"]

    async def test_bad_payload_is_422(self, client, world):
        booking_id = await self._booking(client, world)
        resp = await client.put(
            f"/api/v1/bookings/{booking_id}/duration",
            json={"rental_years": 0, "rental_months": 0},
            headers=TENANT,
        )
        assert resp.status_code == 422

    async def test_bad_billing_period_is_422(self, client, world):
        resp = await client.post(
            f"/api/v1/agreements/{world.property_id}/readings",
            json={"current_reading": "10", "billing_period": "2026-13"},
            headers=OWNER,
        )
        assert resp.status_code == 422

    async def test_unknown_payment_method_is_422(self, client, world):
        booking_id = await self._booking(client, world)
        resp = await client.post(
            f"/api/v1/bookings/{booking_id}/deposit", json={"payment_method": "barter"}, headers=TENANT
        )
        assert resp.status_code == 422


# ── Auth dependency ──────────────────────────────────────────────────────────

class TestAuth:
    @pytest.fixture
    async def real_auth_client(self, session_factory, notifier, world):
        app = _build_app(session_factory, notifier)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    async def test_missing_token(self, real_auth_client):
        resp = await real_auth_client.get("/api/v1/bookings")
        assert resp.status_code == 401

    async def test_garbage_token(self, real_auth_client):
        resp = await real_auth_client.get("/api/v1/bookings", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_bearer_token(self, real_auth_client, world):
        token = create_access_token({"sub": str(world.tenant.id)})
        resp = await real_auth_client.get("/api/v1/bookings", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_cookie_token(self, real_auth_client, world):
        token = create_access_token({"sub": str(world.owner.id)})
        resp = await real_auth_client.get("/api/v1/agreements", headers={"Cookie": f"access_token={token}"})
        assert resp.status_code == 200
