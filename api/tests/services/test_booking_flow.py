"""
Booking → agreement lifecycle against a real (SQLite) session.
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentledger.core.errors import Conflict, IllegalTransition, NotFound, Unauthorized
from rentledger.models.property import Property
from rentledger.models.rental import Booking, Invoice, RentalAgreement
from rentledger.schemas.agreement import AgreementTerms
from rentledger.schemas.booking import BookingCreate, DurationProposal
from rentledger.services import bookings, ledger, settlement
from rentledger.services.bookings import add_months


# ── add_months ───────────────────────────────────────────────────────────────

class TestAddMonths:
    def test_whole_years(self):
        assert add_months(date(2026, 1, 15), 24) == date(2028, 1, 15)

    def test_clamps_to_month_end(self):
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)

    def test_leap_year(self):
        assert add_months(date(2027, 8, 31), 6) == date(2028, 2, 29)


# ── Requesting ───────────────────────────────────────────────────────────────

class TestCreateBooking:
    async def test_snapshots_rent_and_notifies_owner(self, pipeline, world, notifier):
        booking = await pipeline.requested()
        assert booking.status == "pending"
        assert booking.owner_id == world.owner.id
        assert booking.monthly_rent == Decimal("15000")
        assert notifier.sent_to(world.owner.id) == ["booking.requested"]

    async def test_owner_cannot_request(self, db, world, notifier):
        with pytest.raises(Unauthorized):
            await bookings.create_booking(
                db, world.owner, BookingCreate(property_id=world.property_id), notifier
            )

    async def test_second_open_request_conflicts(self, db, pipeline, world, notifier):
        await pipeline.requested()
        with pytest.raises(Conflict):
            await bookings.create_booking(
                db, world.tenant, BookingCreate(property_id=world.property_id), notifier
            )

    async def test_racing_requests_store_one_booking(self, db, session_factory, pipeline, world, notifier, monkeypatch):
        await pipeline.requested()

        # The second request checked before the first was stored
        async def none_open(db, property_id, tenant_id):
            return False

        monkeypatch.setattr(ledger, "has_open_booking", none_open)
        with pytest.raises(Conflict):
            await bookings.create_booking(
                db, world.tenant, BookingCreate(property_id=world.property_id), notifier
            )

        async with session_factory() as fresh:
            stored = await fresh.scalar(
                select(func.count()).select_from(Booking).where(Booking.tenant_id == world.tenant.id)
            )
        assert stored == 1
        assert notifier.types() == ["booking.requested"]

    async def test_can_request_again_after_rejection(self, db, pipeline, world, notifier):
        first = await pipeline.requested()
        await bookings.reject_booking(db, world.owner, first.id, None, notifier)

        again = await bookings.create_booking(
            db, world.tenant, BookingCreate(property_id=world.property_id), notifier
        )
        assert again.id != first.id
        assert again.status == "pending"

    async def test_unavailable_property(self, db, world, notifier):
        prop = await db.get(Property, world.property_id)
        prop.is_available = False
        await db.commit()
        with pytest.raises(IllegalTransition):
            await bookings.create_booking(
                db, world.tenant, BookingCreate(property_id=world.property_id), notifier
            )


# ── Negotiation ──────────────────────────────────────────────────────────────

class TestNegotiation:
    async def test_reject_records_reason(self, db, pipeline, world, notifier):
        booking = await pipeline.requested()
        await bookings.reject_booking(db, world.owner, booking.id, "Already promised", notifier)
        assert booking.status == "rejected"
        assert booking.rejection_reason == "Already promised"
        assert notifier.sent_to(world.tenant.id) == ["booking.rejected"]

    async def test_tenant_cannot_approve_duration(self, db, pipeline, world, notifier):
        booking = await pipeline.duration_pending()
        with pytest.raises(Unauthorized):
            await bookings.approve_duration(db, world.tenant, booking.id, True, notifier)
        await db.refresh(booking)
        assert booking.status == "duration_pending"

    async def test_duration_rejected_ends_booking(self, db, pipeline, world, notifier):
        booking = await pipeline.duration_pending()
        await bookings.approve_duration(db, world.owner, booking.id, False, notifier)
        assert booking.status == "rejected"

    async def test_duration_stored(self, db, pipeline, world, notifier):
        booking = await pipeline.duration_pending(years=2, months=6)
        assert (booking.rental_years, booking.rental_months) == (2, 6)

    async def test_stranger_sees_not_found(self, db, pipeline, world, notifier):
        booking = await pipeline.requested()
        with pytest.raises(NotFound):
            await bookings.accept_booking(db, world.stranger, booking.id, notifier)

    async def test_list_only_own(self, db, pipeline, world):
        await pipeline.requested()
        assert len(await bookings.list_bookings(db, world.owner)) == 1
        assert len(await bookings.list_bookings(db, world.tenant, "pending")) == 1
        assert await bookings.list_bookings(db, world.stranger) == []


# ── Agreement ────────────────────────────────────────────────────────────────

class TestCreateAgreement:
    async def test_terms_fall_back_to_property(self, pipeline):
        booking, agreement = await pipeline.agreement_pending()
        assert booking.status == "agreement_pending"
        assert agreement.status == "pending_tenant"
        assert agreement.base_rent == Decimal("15000")
        assert agreement.deposit_amount == Decimal("5000")
        assert agreement.electricity_rate == Decimal("12")
        assert agreement.start_date == date(2026, 1, 1)
        assert agreement.end_date == date(2027, 1, 1)

    async def test_explicit_terms_win(self, pipeline):
        _, agreement = await pipeline.agreement_pending(
            AgreementTerms(electricity_rate=Decimal("15"), deposit_amount=Decimal("8000"), rules="No pets")
        )
        assert agreement.electricity_rate == Decimal("15")
        assert agreement.deposit_amount == Decimal("8000")
        assert agreement.rules_text == "No pets"

    async def test_before_duration_approved(self, db, pipeline, world, notifier):
        booking = await pipeline.accepted()
        with pytest.raises(IllegalTransition) as exc:
            await bookings.create_agreement(db, world.owner, booking.id, AgreementTerms(), notifier)
        assert "duration not yet approved" in exc.value.detail

    async def test_second_agreement_conflicts(self, db, pipeline, world, notifier):
        booking, _ = await pipeline.agreement_pending()
        with pytest.raises(Conflict):
            await bookings.create_agreement(db, world.owner, booking.id, AgreementTerms(), notifier)

    async def test_racing_creates_yield_one_agreement(
        self, db, session_factory, pipeline, world, notifier, monkeypatch
    ):
        booking = await pipeline.duration_approved()

        async with session_factory() as first, session_factory() as second:
            # Both requests have read the booking before either writes; the
            # identity map is weak, so the loaded rows must stay referenced
            seen_by_first = await first.get(Booking, booking.id)
            seen_by_second = await second.get(Booking, booking.id)
            assert seen_by_first.status == seen_by_second.status == "duration_approved"

            winner = await bookings.create_agreement(first, world.owner, booking.id, AgreementTerms(), notifier)

            async def not_seen_yet(db, booking_id):
                return None

            monkeypatch.setattr(ledger, "get_agreement_for_booking", not_seen_yet)
            with pytest.raises(Conflict):
                await bookings.create_agreement(second, world.owner, booking.id, AgreementTerms(), notifier)

        monkeypatch.undo()
        async with session_factory() as check:
            stored = (await check.execute(
                RentalAgreement.__table__.select().where(RentalAgreement.booking_id == booking.id)
            )).all()
            assert len(stored) == 1
            assert stored[0].id == winner.id
            reloaded = await check.get(Booking, booking.id)
            assert reloaded.status == "agreement_pending"


class TestRespondToAgreement:
    async def test_approve_issues_deposit_invoice(self, db, pipeline, world, notifier):
        booking, agreement = await pipeline.payment_pending()
        assert agreement.status == "active"
        assert agreement.tenant_signed_at is not None
        assert booking.status == "payment_pending"

        deposit = await ledger.get_deposit_invoice(db, booking.id)
        assert deposit.status == "pending"
        assert deposit.amount == Decimal("5000")
        assert deposit.billing_period is None
        assert "agreement.approved" in notifier.sent_to(world.owner.id)
        assert "invoice.issued" in notifier.sent_to(world.tenant.id)

    async def test_owner_cannot_respond(self, db, pipeline, world, notifier):
        _, agreement = await pipeline.agreement_pending()
        with pytest.raises(Unauthorized):
            await bookings.respond_to_agreement(db, world.owner, agreement.id, "approve", notifier)

    async def test_decline_then_deposit_fails(self, db, pipeline, world, notifier):
        booking, agreement = await pipeline.agreement_pending()
        await bookings.respond_to_agreement(db, world.tenant, agreement.id, "decline", notifier)
        assert agreement.status == "terminated"
        assert booking.status == "rejected"

        with pytest.raises(IllegalTransition):
            await settlement.pay_deposit(db, world.tenant, booking.id, None, notifier)

        invoices = (await db.execute(Invoice.__table__.select())).all()
        assert invoices == []

    async def test_cannot_respond_twice(self, db, pipeline, world, notifier):
        _, agreement = await pipeline.payment_pending()
        with pytest.raises(IllegalTransition):
            await bookings.respond_to_agreement(db, world.tenant, agreement.id, "approve", notifier)


class TestTerminateAgreement:
    async def test_ends_rental_and_relists_property(self, db, pipeline, world, notifier):
        booking, agreement = await pipeline.active()
        prop = await db.get(Property, world.property_id)
        assert prop.is_available is False

        await bookings.terminate_agreement(db, world.owner, agreement.id, "Tenant moved out", notifier)
        assert agreement.status == "terminated"
        assert agreement.termination_reason == "Tenant moved out"
        assert booking.status == "terminated"
        assert prop.is_available is True
        assert "agreement.terminated" in notifier.sent_to(world.tenant.id)

    async def test_only_active_agreements(self, db, pipeline, world, notifier):
        _, agreement = await pipeline.payment_pending()
        with pytest.raises(IllegalTransition):
            await bookings.terminate_agreement(db, world.owner, agreement.id, None, notifier)

    async def test_tenant_cannot_terminate(self, db, pipeline, world, notifier):
        _, agreement = await pipeline.active()
        with pytest.raises(Unauthorized):
            await bookings.terminate_agreement(db, world.tenant, agreement.id, None, notifier)
