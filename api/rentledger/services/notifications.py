"""
Notification sink — relays lifecycle and billing events to the other party.

Services call ``Notifier.notify(recipient_id, event_type, payload)`` only after
their transaction committed.  The default notifier enqueues a Celery task and
never raises: a broker or WhatsApp outage is logged and the rental flow
carries on.

Delivery (Celery worker, sync session per call):
  deliver_notification(recipient_id, event_type, payload)
      — stores an in-app Notification row and sends a WhatsApp message
        when the recipient has a phone number.

Scheduled (via celery beat):
  send_billing_reminders  — 09:00 UTC daily
      overdue pending invoices → tenant, missing reading this month → owner
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from rentledger.core.config import settings
from rentledger.models.notification import Notification
from rentledger.models.rental import Booking, Invoice, RentalAgreement
from rentledger.models.user import User
from rentledger.services.whatsapp import send_whatsapp
from rentledger.worker import celery_app

logger = logging.getLogger(__name__)

_engine = create_engine(settings.database_url_sync, pool_pre_ping=True)


# ── Event catalogue ───────────────────────────────────────────────────────────

EVENT_TEMPLATES: dict[str, tuple[str, str]] = {
    "booking.requested": ("New Booking Request", "You have a new booking request for {property_title}."),
    "booking.accepted": ("Booking Accepted", "Your request for {property_title} was accepted. Please choose a rental duration."),
    "booking.rejected": ("Booking Request Declined", "Your booking request was declined. {reason}"),
    "duration.proposed": ("Duration Proposed", "The tenant asked for {rental_years} year(s) and {rental_months} month(s)."),
    "duration.approved": ("Duration Approved", "The owner approved your rental duration. An agreement will follow."),
    "duration.rejected": ("Duration Rejected", "The owner rejected the proposed rental duration."),
    "agreement.created": ("Agreement Received", "The owner sent you a rental agreement. Please review and sign it."),
    "agreement.approved": ("Agreement Signed", "The tenant approved the rental agreement. Awaiting the deposit."),
    "agreement.declined": ("Agreement Declined", "The tenant declined the rental agreement."),
    "agreement.terminated": ("Agreement Terminated", "Your rental agreement was terminated. {reason}"),
    "deposit.paid": ("Deposit Received", "The deposit of {amount} was paid. The rental is now active."),
    "invoice.issued": ("New Invoice", "A {payment_type} invoice of {amount} is due on {due_date}."),
    "invoice.paid": ("Invoice Paid", "The {payment_type} invoice of {amount} was marked paid."),
    "invoice.overdue": ("Invoice Overdue", "Your {payment_type} invoice of {amount} was due on {due_date}."),
    "reading.due": ("Meter Reading Due", "No bill has been generated for {billing_period} yet. Record this month's reading."),
}


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render_event(event_type: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Return (title, message) for an event; unknown types get a generic text."""
    title, template = EVENT_TEMPLATES.get(
        event_type, ("Rental Update", "There is an update on your rental ({event_type}).")
    )
    values = _Blank(payload)
    values.setdefault("event_type", event_type)
    return title, template.format_map(values).strip()


# ── Notifier interface ────────────────────────────────────────────────────────

class Notifier(Protocol):
    def notify(self, recipient_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        ...


class CeleryNotifier:
    """Hands events to the worker; failures to enqueue are logged, never raised."""

    def notify(self, recipient_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        try:
            # Money goes over the wire as its exact decimal string, never a float
            body = jsonable_encoder(payload, custom_encoder={Decimal: str})
            deliver_notification.delay(str(recipient_id), event_type, body)
        except Exception as exc:  # broker down, serialization, ...
            logger.warning(
                "Could not enqueue %s notification for %s: %s", event_type, recipient_id, exc
            )


# ── Delivery ──────────────────────────────────────────────────────────────────

def _deliver(db: Session, recipient_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> Notification | None:
    user = db.get(User, recipient_id)
    if user is None:
        logger.warning("Dropping %s notification: user %s not found", event_type, recipient_id)
        return None

    title, message = render_event(event_type, payload)
    related = payload.get("related_id")
    note = Notification(
        user_id=recipient_id,
        event_type=event_type,
        title=title,
        message=message,
        related_id=uuid.UUID(str(related)) if related else None,
    )
    db.add(note)
    db.commit()

    send_whatsapp(user, title, message)
    return note


@celery_app.task(name="rentledger.services.notifications.deliver_notification")
def deliver_notification(recipient_id: str, event_type: str, payload: dict):
    with Session(_engine) as db:
        _deliver(db, uuid.UUID(recipient_id), event_type, payload)


# ── Billing reminders ─────────────────────────────────────────────────────────

def _collect_reminders(db: Session, today: date) -> list[tuple[uuid.UUID, str, dict[str, Any]]]:
    """Work out who should be nudged today; returns (recipient, event_type, payload)."""
    reminders: list[tuple[uuid.UUID, str, dict[str, Any]]] = []

    overdue = db.execute(
        select(Invoice).where(
            Invoice.status == "pending",
            Invoice.due_date < today,
        )
    ).scalars().all()
    for inv in overdue:
        reminders.append((
            inv.tenant_id,
            "invoice.overdue",
            {
                "related_id": str(inv.id),
                "payment_type": inv.payment_type,
                "amount": str(inv.amount),
                "due_date": inv.due_date.isoformat(),
            },
        ))

    period = today.replace(day=1)
    billed = select(Invoice.booking_id).where(
        Invoice.payment_type == "rent",
        Invoice.billing_period == period,
    )
    unbilled = db.execute(
        select(RentalAgreement)
        .join(Booking, Booking.id == RentalAgreement.booking_id)
        .where(
            RentalAgreement.status == "active",
            Booking.status == "active",
            RentalAgreement.booking_id.not_in(billed),
        )
    ).scalars().all()
    for agreement in unbilled:
        reminders.append((
            agreement.owner_id,
            "reading.due",
            {
                "related_id": str(agreement.id),
                "billing_period": period.strftime("%B %Y"),
            },
        ))

    return reminders


@celery_app.task(name="rentledger.services.notifications.send_billing_reminders")
def send_billing_reminders():
    """09:00 UTC — overdue invoices to tenants, missing readings to owners."""
    logger.info("Sending billing reminders")

    today = datetime.now(timezone.utc).date()
    with Session(_engine) as db:
        reminders = _collect_reminders(db, today)
        for recipient_id, event_type, payload in reminders:
            _deliver(db, recipient_id, event_type, payload)

    logger.info("Billing reminders done: %d sent", len(reminders))
