import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.database import get_db
from rentledger.core.deps import get_actor, get_notifier
from rentledger.schemas.invoice import InvoiceResponse, PaymentRecord
from rentledger.services import settlement
from rentledger.services.authorization import Actor
from rentledger.services.notifications import Notifier

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    status: str | None = None,
    booking_id: uuid.UUID | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await settlement.list_invoices(db, actor, status, booking_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await settlement.get_invoice_for(db, actor, invoice_id)


@router.put("/{invoice_id}/settle", response_model=InvoiceResponse)
async def settle_payment(
    invoice_id: uuid.UUID,
    payload: PaymentRecord | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await settlement.settle_payment(db, actor, invoice_id, notifier, payment=payload)
