"""
Metered rent billing.

Given a new cumulative electricity reading for an agreement, work out the units
consumed since the previous rent invoice, price them, add the fixed monthly
charges, credit the deposit once on the first cycle, and store the invoice with
every input snapshotted:

    amount = base_rent + units × rate + water + garbage − deposit_credit

The agreement row is locked (SELECT … FOR UPDATE) for the whole read-then-insert
so two readings for the same agreement cannot both see the same previous
reading.  The (booking, type, period) unique constraint backs this up.

Deposit credit policy: the credit is granted on the first rent invoice only,
and only when the booking's deposit invoice is actually paid.  It is capped at
the paid deposit and at the bill's subtotal so an invoice never goes negative.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.config import settings
from rentledger.core.errors import Conflict, IllegalTransition, InvalidReading, NotFound
from rentledger.models.rental import Invoice, RentalAgreement
from rentledger.services import ledger
from rentledger.services.authorization import Actor, authorize
from rentledger.services.lifecycle import ACTIVE, AGREEMENT_ACTIVE
from rentledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BillingPolicy:
    default_electricity_rate: Decimal
    default_water_bill: Decimal
    default_garbage_bill: Decimal
    deposit_credit_amount: Decimal
    due_days: int

    @classmethod
    def from_settings(cls) -> "BillingPolicy":
        return cls(
            default_electricity_rate=settings.default_electricity_rate,
            default_water_bill=settings.default_water_bill,
            default_garbage_bill=settings.default_garbage_bill,
            deposit_credit_amount=settings.deposit_credit_amount,
            due_days=settings.invoice_due_days,
        )


@dataclass(frozen=True)
class BillBreakdown:
    units: Decimal
    rate: Decimal
    electricity_amount: Decimal
    water_amount: Decimal
    garbage_amount: Decimal
    base_rent: Decimal
    deposit_adjustment: Decimal
    total: Decimal


def calculate_bill(
    *,
    last_reading: Decimal,
    current_reading: Decimal,
    base_rent: Decimal,
    electricity_rate: Decimal | None,
    water_bill: Decimal | None,
    garbage_bill: Decimal | None,
    deposit_credit_available: Decimal,
    policy: BillingPolicy,
) -> BillBreakdown:
    """Pure bill arithmetic.  Raises InvalidReading when the meter went backwards."""
    units = Decimal(current_reading) - Decimal(last_reading)
    if units < 0:
        raise InvalidReading(
            f"cannot record reading: current reading {current_reading} is below "
            f"the previous reading {last_reading}"
        )

    rate = electricity_rate if electricity_rate is not None else policy.default_electricity_rate
    water = water_bill if water_bill is not None else policy.default_water_bill
    garbage = garbage_bill if garbage_bill is not None else policy.default_garbage_bill

    electricity_amount = _money(units * rate)
    water_amount = _money(water)
    garbage_amount = _money(garbage)
    base = _money(base_rent)

    subtotal = base + electricity_amount + water_amount + garbage_amount
    credit = _money(max(Decimal(0), min(deposit_credit_available, subtotal)))

    return BillBreakdown(
        units=units,
        rate=Decimal(rate),
        electricity_amount=electricity_amount,
        water_amount=water_amount,
        garbage_amount=garbage_amount,
        base_rent=base,
        deposit_adjustment=credit,
        total=subtotal - credit,
    )


def recompute_total(invoice: Invoice) -> Decimal:
    """Rebuild a rent invoice's amount from its stored fields alone."""
    return (
        invoice.base_rent_snapshot
        + invoice.electricity_amount
        + invoice.water_amount
        + invoice.garbage_amount
        - invoice.deposit_adjustment
    )


async def record_reading(
    db: AsyncSession,
    actor: Actor,
    agreement_id: uuid.UUID,
    current_reading: Decimal,
    billing_period: date,
    notifier: Notifier,
    policy: BillingPolicy | None = None,
) -> Invoice:
    policy = policy or BillingPolicy.from_settings()
    period = billing_period.replace(day=1)

    agreement: RentalAgreement | None = await ledger.get_agreement(db, agreement_id, lock=True)
    authorize(actor, "record_reading", agreement, "agreement")

    if agreement.status != AGREEMENT_ACTIVE:
        raise IllegalTransition(
            f"cannot record reading: agreement is not active (status is {agreement.status})"
        )
    booking = await ledger.get_booking(db, agreement.booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.status != ACTIVE:
        raise IllegalTransition(
            f"cannot record reading: deposit not yet paid (booking is {booking.status})"
        )

    previous = await ledger.latest_rent_invoice(db, booking.id)
    if previous is not None and period <= previous.billing_period:
        raise Conflict(
            f"cannot record reading: {period:%Y-%m} is not after the last billed "
            f"period {previous.billing_period:%Y-%m}"
        )
    last_reading = previous.electricity_reading if previous is not None else Decimal(0)

    credit_available = Decimal(0)
    if await ledger.count_rent_invoices(db, booking.id) == 0:
        deposit = await ledger.get_deposit_invoice(db, booking.id)
        if deposit is not None and deposit.status == "paid":
            credit_available = min(policy.deposit_credit_amount, deposit.amount)

    bill = calculate_bill(
        last_reading=last_reading or Decimal(0),
        current_reading=current_reading,
        base_rent=agreement.base_rent,
        electricity_rate=agreement.electricity_rate,
        water_bill=agreement.water_bill,
        garbage_bill=agreement.garbage_bill,
        deposit_credit_available=credit_available,
        policy=policy,
    )

    issued = datetime.now(timezone.utc).date()
    invoice = Invoice(
        booking_id=booking.id,
        agreement_id=agreement.id,
        tenant_id=agreement.tenant_id,
        owner_id=agreement.owner_id,
        payment_type="rent",
        amount=bill.total,
        status="pending",
        due_date=issued + timedelta(days=policy.due_days),
        billing_period=period,
        electricity_reading=current_reading,
        electricity_units=bill.units,
        electricity_rate_snapshot=bill.rate,
        electricity_amount=bill.electricity_amount,
        water_amount=bill.water_amount,
        garbage_amount=bill.garbage_amount,
        deposit_adjustment=bill.deposit_adjustment,
        base_rent_snapshot=bill.base_rent,
        notes=f"Units: {bill.units}, Prev: {last_reading}, Curr: {current_reading}",
    )
    db.add(invoice)
    await ledger.commit_or_raise(db, "record reading")
    logger.info(
        "Rent invoice %s for agreement %s period %s: %s units, total %s (credit %s)",
        invoice.id, agreement.id, f"{period:%Y-%m}", bill.units, bill.total, bill.deposit_adjustment,
    )

    notifier.notify(
        agreement.tenant_id,
        "invoice.issued",
        {
            "related_id": invoice.id,
            "payment_type": "rent",
            "amount": invoice.amount,
            "due_date": invoice.due_date,
        },
    )
    return invoice


async def billing_history(db: AsyncSession, actor: Actor, agreement_id: uuid.UUID) -> list[Invoice]:
    """Rent invoices for an agreement, newest period first; visible to both parties."""
    agreement = await ledger.get_agreement(db, agreement_id)
    authorize(actor, "view_agreement", agreement, "agreement")
    result = await db.execute(
        select(Invoice)
        .where(Invoice.agreement_id == agreement.id, Invoice.payment_type == "rent")
        .order_by(Invoice.billing_period.desc())
    )
    return list(result.scalars().all())
