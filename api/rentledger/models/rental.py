import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from rentledger.core.database import Base


class Booking(Base):
    """A tenant's request for a property, staged through negotiation to an active tenancy."""
    __tablename__ = "bookings"
    __table_args__ = (
        # One open request per tenant and property; rejected / terminated ones may repeat
        Index(
            "uq_booking_open",
            "property_id",
            "tenant_id",
            unique=True,
            postgresql_where=text("status NOT IN ('rejected', 'terminated')"),
            sqlite_where=text("status NOT IN ('rejected', 'terminated')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="RESTRICT"), index=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    # Owner of the property at request time; never rewritten if ownership changes
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    requested_move_in_date: Mapped[date | None] = mapped_column(Date)
    rental_years: Mapped[int] = mapped_column(Integer, default=0)
    rental_months: Mapped[int] = mapped_column(Integer, default=0)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(14, 2))  # price snapshot
    notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    # pending | accepted | duration_pending | duration_approved | agreement_pending
    # | payment_pending | active | rejected | terminated
    status: Mapped[str] = mapped_column(String(30), default="pending", index=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version_id}


class RentalAgreement(Base):
    """Binding terms derived from exactly one booking."""
    __tablename__ = "rental_agreements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="RESTRICT"), unique=True
    )
    property_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("properties.id"), index=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    base_rent: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    electricity_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # per unit
    water_bill: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))        # fixed / month
    garbage_bill: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))      # fixed / month
    rules_text: Mapped[str | None] = mapped_column(Text)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | pending_tenant | active | terminated
    tenant_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    terminated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    termination_reason: Mapped[str | None] = mapped_column(Text)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}


class Invoice(Base):
    """One billed amount — the deposit, or one metered rent cycle.

    Append-only: after insert only the status and payment record change.  Every
    input of the rent calculation is snapshotted so the bill can be rebuilt
    from this row alone.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("booking_id", "payment_type", "billing_period", name="uq_invoice_period"),
        Index(
            "uq_invoice_deposit",
            "booking_id",
            unique=True,
            postgresql_where=text("payment_type = 'deposit'"),
            sqlite_where=text("payment_type = 'deposit'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="RESTRICT"), index=True
    )
    agreement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("rental_agreements.id", ondelete="RESTRICT"), index=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    payment_type: Mapped[str] = mapped_column(String(20))  # deposit | rent
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | paid
    due_date: Mapped[date] = mapped_column(Date)
    billing_period: Mapped[date | None] = mapped_column(Date)  # first day of billed month
    electricity_reading: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    electricity_units: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    electricity_rate_snapshot: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    electricity_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal(0))
    water_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal(0))
    garbage_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal(0))
    deposit_adjustment: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal(0))
    base_rent_snapshot: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal(0))
    notes: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    payment_method: Mapped[str | None] = mapped_column(String(30))  # cash | bank_transfer | esewa | khalti | cheque | other
    transaction_reference: Mapped[str | None] = mapped_column(String(100))
    payment_note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
