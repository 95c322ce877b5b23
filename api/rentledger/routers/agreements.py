import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.database import get_db
from rentledger.core.deps import get_actor, get_notifier
from rentledger.schemas.agreement import (
    AgreementResponse,
    AgreementResponseIn,
    AgreementTermination,
)
from rentledger.schemas.invoice import InvoiceResponse, ReadingCreate
from rentledger.services import billing, bookings
from rentledger.services.authorization import Actor
from rentledger.services.notifications import Notifier

router = APIRouter(prefix="/agreements", tags=["agreements"])


@router.get("", response_model=list[AgreementResponse])
async def list_agreements(
    status: str | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await bookings.list_agreements(db, actor, status)


@router.get("/{agreement_id}", response_model=AgreementResponse)
async def get_agreement(
    agreement_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await bookings.get_agreement_for(db, actor, agreement_id)


@router.put("/{agreement_id}/respond", response_model=AgreementResponse)
async def respond_to_agreement(
    agreement_id: uuid.UUID,
    payload: AgreementResponseIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.respond_to_agreement(db, actor, agreement_id, payload.decision, notifier)


@router.put("/{agreement_id}/terminate", response_model=AgreementResponse)
async def terminate_agreement(
    agreement_id: uuid.UUID,
    payload: AgreementTermination,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await bookings.terminate_agreement(db, actor, agreement_id, payload.reason, notifier)


# ─── Metered billing ─────────────────────────────────────────────────────────

@router.post("/{agreement_id}/readings", response_model=InvoiceResponse, status_code=201)
async def record_reading(
    agreement_id: uuid.UUID,
    payload: ReadingCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await billing.record_reading(
        db, actor, agreement_id, payload.current_reading, payload.billing_period, notifier
    )


@router.get("/{agreement_id}/invoices", response_model=list[InvoiceResponse])
async def billing_history(
    agreement_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await billing.billing_history(db, actor, agreement_id)
