import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rentledger.schemas.invoice import PaymentRecord


# ─── Requests ──────────────────────────────────────────────────────────────

class BookingCreate(BaseModel):
    property_id: uuid.UUID
    requested_move_in_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class BookingDecision(BaseModel):
    status: Literal["accepted", "rejected"]
    reason: str | None = Field(default=None, max_length=2000)


class DurationProposal(BaseModel):
    rental_years: int = Field(default=1, ge=0, le=30)
    rental_months: int = Field(default=0, ge=0, le=11)

    @model_validator(mode="after")
    def non_zero(self) -> "DurationProposal":
        if self.rental_years == 0 and self.rental_months == 0:
            raise ValueError("Rental duration must be at least one month")
        return self


class DurationDecision(BaseModel):
    approved: bool


class DepositPayment(PaymentRecord):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)


# ─── Responses ─────────────────────────────────────────────────────────────

class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    property_id: uuid.UUID
    tenant_id: uuid.UUID
    owner_id: uuid.UUID
    requested_move_in_date: date | None
    rental_years: int
    rental_months: int
    monthly_rent: Decimal
    notes: str | None
    rejection_reason: str | None
    status: str
    accepted_at: datetime | None
    duration_approved_at: datetime | None
    created_at: datetime
