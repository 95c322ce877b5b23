"""
Booking and agreement lifecycle operations.

Each operation is one transaction: load → authorize → ask the state machine
for the next state → mutate → commit → notify the other party.  Nothing is
mutated until every check has passed, so a failed call leaves the rows as they
were.
"""

import logging
import uuid
from calendar import monthrange
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.config import settings
from rentledger.core.errors import Conflict, IllegalTransition, NotFound, Unauthorized
from rentledger.models.rental import Booking, Invoice, RentalAgreement
from rentledger.schemas.agreement import AgreementTerms
from rentledger.schemas.booking import BookingCreate, DurationProposal
from rentledger.services import ledger
from rentledger.services.authorization import Actor, authorize, party_of
from rentledger.services.lifecycle import (
    AGREEMENT_DRAFT,
    OWNER,
    PENDING,
    TENANT,
    transition_agreement,
    transition_booking,
)
from rentledger.services.notifications import Notifier

logger = logging.getLogger(__name__)


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now().date()


def add_months(start: date, months: int) -> date:
    """Calendar-aware month arithmetic; clamps to the last day of short months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    _, last_day = monthrange(year, month)
    return date(year, month, min(start.day, last_day))


def _advance(booking: Booking, event: str, actor: Actor) -> str:
    return transition_booking(booking.status, event, party_of(actor, booking))


# ─── Booking ───────────────────────────────────────────────────────────────────

async def create_booking(
    db: AsyncSession, actor: Actor, payload: BookingCreate, notifier: Notifier
) -> Booking:
    if actor.role != TENANT:
        raise Unauthorized("Only tenants can request a booking")

    prop = await ledger.get_property(db, payload.property_id)
    if prop is None:
        raise NotFound("Property not found")
    if prop.owner_id == actor.id:
        raise Unauthorized("You cannot book your own property")
    if not prop.is_available:
        raise IllegalTransition("cannot request booking: property is not available")

    # uq_booking_open backs this check up when two requests race
    if await ledger.has_open_booking(db, prop.id, actor.id):
        raise Conflict("cannot request booking: you already have an open request for this property")

    booking = Booking(
        property_id=prop.id,
        tenant_id=actor.id,
        owner_id=prop.owner_id,
        requested_move_in_date=payload.requested_move_in_date,
        rental_years=0,
        rental_months=0,
        monthly_rent=prop.monthly_rent,
        notes=payload.notes,
        status=PENDING,
    )
    db.add(booking)
    await ledger.commit_or_raise(db, "request booking")
    logger.info("Booking %s requested by tenant %s for property %s", booking.id, actor.id, prop.id)

    notifier.notify(
        booking.owner_id,
        "booking.requested",
        {"related_id": booking.id, "property_title": prop.title},
    )
    return booking


async def list_bookings(db: AsyncSession, actor: Actor, status: str | None = None) -> list[Booking]:
    query = select(Booking).where(
        or_(Booking.tenant_id == actor.id, Booking.owner_id == actor.id)
    )
    if status is not None:
        query = query.where(Booking.status == status)
    result = await db.execute(query.order_by(Booking.created_at.desc()))
    return list(result.scalars().all())


async def get_booking_for(db: AsyncSession, actor: Actor, booking_id: uuid.UUID) -> Booking:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "view_booking", booking, "booking")
    return booking


async def accept_booking(
    db: AsyncSession, actor: Actor, booking_id: uuid.UUID, notifier: Notifier
) -> Booking:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "accept_booking", booking, "booking")
    new_status = _advance(booking, "accept", actor)

    booking.status = new_status
    booking.accepted_at = _now()
    await ledger.commit_or_raise(db, "accept booking")
    logger.info("Booking %s accepted by owner %s", booking.id, actor.id)

    notifier.notify(booking.tenant_id, "booking.accepted", {"related_id": booking.id})
    return booking


async def reject_booking(
    db: AsyncSession,
    actor: Actor,
    booking_id: uuid.UUID,
    reason: str | None,
    notifier: Notifier,
) -> Booking:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "reject_booking", booking, "booking")
    new_status = _advance(booking, "reject", actor)

    booking.status = new_status
    booking.rejection_reason = reason
    await ledger.commit_or_raise(db, "reject booking")
    logger.info("Booking %s rejected by owner %s", booking.id, actor.id)

    notifier.notify(
        booking.tenant_id,
        "booking.rejected",
        {"related_id": booking.id, "reason": f"Reason: {reason}" if reason else ""},
    )
    return booking


async def propose_duration(
    db: AsyncSession,
    actor: Actor,
    booking_id: uuid.UUID,
    proposal: DurationProposal,
    notifier: Notifier,
) -> Booking:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "propose_duration", booking, "booking")
    new_status = _advance(booking, "propose_duration", actor)

    booking.status = new_status
    booking.rental_years = proposal.rental_years
    booking.rental_months = proposal.rental_months
    await ledger.commit_or_raise(db, "propose duration")
    logger.info(
        "Booking %s: tenant proposed %dy %dm",
        booking.id, proposal.rental_years, proposal.rental_months,
    )

    notifier.notify(
        booking.owner_id,
        "duration.proposed",
        {
            "related_id": booking.id,
            "rental_years": proposal.rental_years,
            "rental_months": proposal.rental_months,
        },
    )
    return booking


async def approve_duration(
    db: AsyncSession,
    actor: Actor,
    booking_id: uuid.UUID,
    approved: bool,
    notifier: Notifier,
) -> Booking:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "approve_duration", booking, "booking")
    new_status = _advance(booking, "approve_duration" if approved else "reject_duration", actor)

    booking.status = new_status
    if approved:
        booking.duration_approved_at = _now()
    else:
        booking.rejection_reason = "Rental duration was not approved"
    await ledger.commit_or_raise(db, "approve duration" if approved else "reject duration")
    logger.info("Booking %s duration %s", booking.id, "approved" if approved else "rejected")

    notifier.notify(
        booking.tenant_id,
        "duration.approved" if approved else "duration.rejected",
        {"related_id": booking.id},
    )
    return booking


# ─── Agreement ─────────────────────────────────────────────────────────────────

async def create_agreement(
    db: AsyncSession,
    actor: Actor,
    booking_id: uuid.UUID,
    terms: AgreementTerms,
    notifier: Notifier,
) -> RentalAgreement:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "create_agreement", booking, "booking")

    if await ledger.get_agreement_for_booking(db, booking.id) is not None:
        raise Conflict("cannot create agreement: an agreement already exists for this booking")

    new_status = _advance(booking, "create_agreement", actor)
    prop = await ledger.get_property(db, booking.property_id)

    def pick(explicit, from_property, fallback):
        if explicit is not None:
            return explicit
        if from_property is not None:
            return from_property
        return fallback

    start = booking.requested_move_in_date or _today()
    total_months = booking.rental_years * 12 + booking.rental_months
    agreement = RentalAgreement(
        booking_id=booking.id,
        property_id=booking.property_id,
        tenant_id=booking.tenant_id,
        owner_id=booking.owner_id,
        base_rent=booking.monthly_rent,
        deposit_amount=pick(
            terms.deposit_amount,
            prop.security_deposit if prop else None,
            settings.default_security_deposit,
        ),
        electricity_rate=pick(
            terms.electricity_rate,
            prop.electricity_rate if prop else None,
            settings.default_electricity_rate,
        ),
        water_bill=pick(terms.water_bill, prop.water_bill if prop else None, settings.default_water_bill),
        garbage_bill=pick(terms.garbage_bill, prop.garbage_bill if prop else None, settings.default_garbage_bill),
        rules_text=terms.rules,
        start_date=start,
        end_date=add_months(start, total_months),
        # Sent to the tenant immediately, so draft is never persisted
        status=transition_agreement(AGREEMENT_DRAFT, "send", OWNER),
    )
    db.add(agreement)
    booking.status = new_status
    await ledger.commit_or_raise(db, "create agreement")
    logger.info("Agreement %s created for booking %s", agreement.id, booking.id)

    notifier.notify(booking.tenant_id, "agreement.created", {"related_id": agreement.id})
    return agreement


async def list_agreements(db: AsyncSession, actor: Actor, status: str | None = None) -> list[RentalAgreement]:
    query = select(RentalAgreement).where(
        or_(RentalAgreement.tenant_id == actor.id, RentalAgreement.owner_id == actor.id)
    )
    if status is not None:
        query = query.where(RentalAgreement.status == status)
    result = await db.execute(query.order_by(RentalAgreement.created_at.desc()))
    return list(result.scalars().all())


async def get_agreement_for(db: AsyncSession, actor: Actor, agreement_id: uuid.UUID) -> RentalAgreement:
    agreement = await ledger.get_agreement(db, agreement_id)
    authorize(actor, "view_agreement", agreement, "agreement")
    return agreement


async def respond_to_agreement(
    db: AsyncSession,
    actor: Actor,
    agreement_id: uuid.UUID,
    decision: str,
    notifier: Notifier,
) -> RentalAgreement:
    agreement = await ledger.get_agreement(db, agreement_id)
    authorize(actor, "respond_to_agreement", agreement, "agreement")
    booking = await ledger.get_booking(db, agreement.booking_id)

    approve = decision == "approve"
    role = party_of(actor, agreement)
    new_agreement_status = transition_agreement(agreement.status, "approve" if approve else "decline", role)
    new_booking_status = _advance(booking, "approve_agreement" if approve else "decline_agreement", actor)

    agreement.status = new_agreement_status
    booking.status = new_booking_status
    deposit = None
    if approve:
        agreement.tenant_signed_at = _now()
        deposit = Invoice(
            booking_id=booking.id,
            agreement_id=agreement.id,
            tenant_id=agreement.tenant_id,
            owner_id=agreement.owner_id,
            payment_type="deposit",
            amount=agreement.deposit_amount,
            status="pending",
            due_date=_today() + timedelta(days=settings.invoice_due_days),
            notes="Security deposit",
        )
        db.add(deposit)
    else:
        agreement.terminated_at = _now()
        agreement.termination_reason = "Declined by tenant"
        booking.rejection_reason = "Agreement declined by tenant"

    await ledger.commit_or_raise(db, "approve agreement" if approve else "decline agreement")
    logger.info("Agreement %s %s by tenant %s", agreement.id, "approved" if approve else "declined", actor.id)

    notifier.notify(
        agreement.owner_id,
        "agreement.approved" if approve else "agreement.declined",
        {"related_id": agreement.id},
    )
    if deposit is not None:
        notifier.notify(
            agreement.tenant_id,
            "invoice.issued",
            {
                "related_id": deposit.id,
                "payment_type": "deposit",
                "amount": deposit.amount,
                "due_date": deposit.due_date,
            },
        )
    return agreement


async def terminate_agreement(
    db: AsyncSession,
    actor: Actor,
    agreement_id: uuid.UUID,
    reason: str | None,
    notifier: Notifier,
) -> RentalAgreement:
    agreement = await ledger.get_agreement(db, agreement_id)
    authorize(actor, "terminate_agreement", agreement, "agreement")
    booking = await ledger.get_booking(db, agreement.booking_id)

    new_agreement_status = transition_agreement(agreement.status, "terminate", party_of(actor, agreement))
    new_booking_status = _advance(booking, "terminate", actor)

    today = _today()
    agreement.status = new_agreement_status
    agreement.terminated_at = _now()
    agreement.termination_reason = reason
    if agreement.end_date is None or agreement.end_date > today:
        agreement.end_date = today
    booking.status = new_booking_status

    prop = await ledger.get_property(db, agreement.property_id)
    if prop is not None:
        prop.is_available = True

    await ledger.commit_or_raise(db, "terminate agreement")
    logger.info("Agreement %s terminated by owner %s", agreement.id, actor.id)

    notifier.notify(
        agreement.tenant_id,
        "agreement.terminated",
        {"related_id": agreement.id, "reason": f"Reason: {reason}" if reason else ""},
    )
    return agreement
