"""
Payment settlement — flips invoices from pending to paid.

Payments are attested by the parties, not processed: settling records who
confirmed the payment and the method / reference they gave for it.  Settling a
deposit also activates the rental (booking payment_pending → active, property
taken off the market).  Settling an invoice that is already paid succeeds
without touching it.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.errors import IllegalTransition, InvalidAmount, NotFound
from rentledger.models.rental import Booking, Invoice
from rentledger.schemas.invoice import PaymentRecord
from rentledger.services import ledger
from rentledger.services.authorization import Actor, authorize
from rentledger.services.lifecycle import AGREEMENT_ACTIVE, TENANT, transition_booking
from rentledger.services.notifications import Notifier

logger = logging.getLogger(__name__)


async def _activate_rental(db: AsyncSession, booking: Booking) -> None:
    """Deposit received: booking goes active, agreement confirmed, property unavailable.

    The deposit event is always the tenant's, whoever attests the payment.
    """
    new_status = transition_booking(booking.status, "pay_deposit", TENANT)

    agreement = await ledger.get_agreement_for_booking(db, booking.id)
    if agreement is None or agreement.status != AGREEMENT_ACTIVE:
        raise IllegalTransition("cannot pay deposit: agreement has not been approved")

    booking.status = new_status
    prop = await ledger.get_property(db, booking.property_id)
    if prop is not None:
        prop.is_available = False


def _mark_paid(invoice: Invoice, actor: Actor, payment: PaymentRecord | None) -> None:
    payment = payment or PaymentRecord()
    invoice.status = "paid"
    invoice.paid_at = datetime.now(timezone.utc)
    invoice.paid_by = actor.id
    invoice.payment_method = payment.payment_method
    invoice.transaction_reference = payment.transaction_reference
    invoice.payment_note = payment.note


async def pay_deposit(
    db: AsyncSession,
    actor: Actor,
    booking_id: uuid.UUID,
    amount: Decimal | None,
    notifier: Notifier,
    payment: PaymentRecord | None = None,
) -> Invoice:
    booking = await ledger.get_booking(db, booking_id)
    authorize(actor, "pay_deposit", booking, "booking")

    # Stage check first so a rejected or not-yet-approved booking says so
    transition_booking(booking.status, "pay_deposit", TENANT)

    deposit = await ledger.get_deposit_invoice(db, booking.id)
    if deposit is None or deposit.status != "pending":
        raise IllegalTransition("cannot pay deposit: no deposit is awaiting payment")
    if amount is not None and Decimal(amount) != deposit.amount:
        raise InvalidAmount(
            f"cannot pay deposit: amount {amount} does not match the deposit due ({deposit.amount})"
        )

    await _activate_rental(db, booking)
    _mark_paid(deposit, actor, payment)
    await ledger.commit_or_raise(db, "pay deposit")
    logger.info("Deposit %s paid for booking %s; rental active", deposit.id, booking.id)

    notifier.notify(
        booking.owner_id,
        "deposit.paid",
        {"related_id": booking.id, "amount": deposit.amount},
    )
    return deposit


async def settle_payment(
    db: AsyncSession,
    actor: Actor,
    invoice_id: uuid.UUID,
    notifier: Notifier,
    payment: PaymentRecord | None = None,
) -> Invoice:
    invoice = await ledger.get_invoice(db, invoice_id, lock=True)
    authorize(actor, "settle_payment", invoice, "invoice")

    if invoice.status == "paid":
        logger.debug("Invoice %s already paid — nothing to do", invoice.id)
        return invoice

    if invoice.payment_type == "deposit":
        booking = await ledger.get_booking(db, invoice.booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        await _activate_rental(db, booking)

    _mark_paid(invoice, actor, payment)
    await ledger.commit_or_raise(db, "settle payment")
    logger.info("Invoice %s (%s) settled by %s", invoice.id, invoice.payment_type, actor.id)

    other = invoice.owner_id if actor.id == invoice.tenant_id else invoice.tenant_id
    notifier.notify(
        other,
        "deposit.paid" if invoice.payment_type == "deposit" else "invoice.paid",
        {
            "related_id": invoice.id,
            "payment_type": invoice.payment_type,
            "amount": invoice.amount,
        },
    )
    return invoice


async def list_invoices(
    db: AsyncSession,
    actor: Actor,
    status: str | None = None,
    booking_id: uuid.UUID | None = None,
) -> list[Invoice]:
    query = select(Invoice).where(
        or_(Invoice.tenant_id == actor.id, Invoice.owner_id == actor.id)
    )
    if status is not None:
        query = query.where(Invoice.status == status)
    if booking_id is not None:
        query = query.where(Invoice.booking_id == booking_id)
    result = await db.execute(query.order_by(Invoice.created_at.desc()))
    return list(result.scalars().all())


async def get_invoice_for(db: AsyncSession, actor: Actor, invoice_id: uuid.UUID) -> Invoice:
    invoice = await ledger.get_invoice(db, invoice_id)
    authorize(actor, "view_invoice", invoice, "invoice")
    return invoice
