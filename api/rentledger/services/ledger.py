"""
Ledger store access — row loaders and the commit boundary.

Every state-changing service ends in ``commit_or_raise`` so the whole operation
is one transaction: storage errors roll everything back and come out as the
domain errors the callers understand.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from rentledger.core.errors import Conflict, PersistenceFailure
from rentledger.models.property import Property
from rentledger.models.rental import Booking, Invoice, RentalAgreement
from rentledger.services.lifecycle import TERMINAL_STATUSES

logger = logging.getLogger(__name__)


# ─── Loaders ───────────────────────────────────────────────────────────────────

async def get_booking(db: AsyncSession, booking_id: uuid.UUID, *, lock: bool = False) -> Booking | None:
    query = select(Booking).where(Booking.id == booking_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_agreement(
    db: AsyncSession, agreement_id: uuid.UUID, *, lock: bool = False
) -> RentalAgreement | None:
    query = select(RentalAgreement).where(RentalAgreement.id == agreement_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def has_open_booking(db: AsyncSession, property_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(Booking.id).where(
            Booking.property_id == property_id,
            Booking.tenant_id == tenant_id,
            Booking.status.not_in(TERMINAL_STATUSES),
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_agreement_for_booking(db: AsyncSession, booking_id: uuid.UUID) -> RentalAgreement | None:
    result = await db.execute(
        select(RentalAgreement).where(RentalAgreement.booking_id == booking_id)
    )
    return result.scalar_one_or_none()


async def get_invoice(db: AsyncSession, invoice_id: uuid.UUID, *, lock: bool = False) -> Invoice | None:
    query = select(Invoice).where(Invoice.id == invoice_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_property(db: AsyncSession, property_id: uuid.UUID) -> Property | None:
    result = await db.execute(select(Property).where(Property.id == property_id))
    return result.scalar_one_or_none()


async def get_deposit_invoice(db: AsyncSession, booking_id: uuid.UUID) -> Invoice | None:
    result = await db.execute(
        select(Invoice).where(
            Invoice.booking_id == booking_id,
            Invoice.payment_type == "deposit",
        )
    )
    return result.scalar_one_or_none()


async def latest_rent_invoice(db: AsyncSession, booking_id: uuid.UUID) -> Invoice | None:
    result = await db.execute(
        select(Invoice)
        .where(Invoice.booking_id == booking_id, Invoice.payment_type == "rent")
        .order_by(Invoice.billing_period.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_rent_invoices(db: AsyncSession, booking_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Invoice)
        .where(Invoice.booking_id == booking_id, Invoice.payment_type == "rent")
    )
    return result.scalar() or 0


# ─── Commit boundary ───────────────────────────────────────────────────────────

async def commit_or_raise(db: AsyncSession, what: str) -> None:
    """Flush and commit; translate storage faults into Conflict / PersistenceFailure."""
    try:
        await db.flush()
        await db.commit()
    except (IntegrityError, StaleDataError) as exc:
        await db.rollback()
        logger.info("Conflict while trying to %s: %s", what, exc)
        raise Conflict(f"cannot {what}: the record was changed by a concurrent request") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Persistence failure while trying to %s: %s", what, exc)
        raise PersistenceFailure(f"cannot {what}: storage is unavailable, please retry") from exc
