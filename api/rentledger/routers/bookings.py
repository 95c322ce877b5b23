import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.database import get_db
from rentledger.core.deps import get_actor, get_notifier
from rentledger.schemas.agreement import AgreementResponse, AgreementTerms
from rentledger.schemas.booking import (
    BookingCreate,
    BookingDecision,
    BookingResponse,
    DepositPayment,
    DurationDecision,
    DurationProposal,
)
from rentledger.schemas.invoice import InvoiceResponse
from rentledger.services import bookings, settlement
from rentledger.services.authorization import Actor
from rentledger.services.notifications import Notifier

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ─── Requests ────────────────────────────────────────────────────────────────

@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    payload: BookingCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.create_booking(db, actor, payload, notifier)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: str | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await bookings.list_bookings(db, actor, status)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await bookings.get_booking_for(db, actor, booking_id)


# ─── Negotiation ─────────────────────────────────────────────────────────────

@router.put("/{booking_id}/status", response_model=BookingResponse)
async def decide_booking(
    booking_id: uuid.UUID,
    payload: BookingDecision,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    if payload.status == "accepted":
        return await bookings.accept_booking(db, actor, booking_id, notifier)
    return await bookings.reject_booking(db, actor, booking_id, payload.reason, notifier)


@router.put("/{booking_id}/duration", response_model=BookingResponse)
async def propose_duration(
    booking_id: uuid.UUID,
    payload: DurationProposal,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.propose_duration(db, actor, booking_id, payload, notifier)


@router.put("/{booking_id}/approve-duration", response_model=BookingResponse)
async def approve_duration(
    booking_id: uuid.UUID,
    payload: DurationDecision,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.approve_duration(db, actor, booking_id, payload.approved, notifier)


# ─── Agreement & deposit ─────────────────────────────────────────────────────

@router.post("/{booking_id}/agreement", response_model=AgreementResponse, status_code=201)
async def create_agreement(
    booking_id: uuid.UUID,
    payload: AgreementTerms,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.create_agreement(db, actor, booking_id, payload, notifier)


@router.post("/{booking_id}/deposit", response_model=InvoiceResponse)
async def pay_deposit(
    booking_id: uuid.UUID,
    payload: DepositPayment,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await settlement.pay_deposit(
        db, actor, booking_id, payload.amount, notifier, payment=payload
    )
