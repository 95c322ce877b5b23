import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})(?:-\d{2})?$")


def parse_billing_period(value: str | date) -> date:
    """Accept ``YYYY-MM`` / ``YYYY-MM-DD`` / date and normalise to the first of the month."""
    if isinstance(value, date):
        return value.replace(day=1)
    match = _PERIOD_RE.match(value.strip())
    if not match:
        raise ValueError("Billing period must look like YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError("Billing period month must be between 01 and 12")
    return date(year, month, 1)


class ReadingCreate(BaseModel):
    current_reading: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    billing_period: date

    @field_validator("billing_period", mode="before")
    @classmethod
    def normalise_period(cls, v):
        if isinstance(v, (str, date)):
            return parse_billing_period(v)
        return v


class PaymentRecord(BaseModel):
    """How an attested payment was made; stored on the invoice as its audit trail."""
    payment_method: Literal["cash", "bank_transfer", "esewa", "khalti", "cheque", "other"] = "bank_transfer"
    transaction_reference: str | None = Field(default=None, max_length=100)
    note: str | None = Field(default=None, max_length=2000)


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    agreement_id: uuid.UUID
    tenant_id: uuid.UUID
    owner_id: uuid.UUID
    payment_type: str
    amount: Decimal
    status: str
    due_date: date
    billing_period: date | None
    electricity_reading: Decimal | None
    electricity_units: Decimal | None
    electricity_rate_snapshot: Decimal | None
    electricity_amount: Decimal
    water_amount: Decimal
    garbage_amount: Decimal
    deposit_adjustment: Decimal
    base_rent_snapshot: Decimal
    notes: str | None
    paid_at: datetime | None
    paid_by: uuid.UUID | None
    payment_method: str | None
    transaction_reference: str | None
    payment_note: str | None
    created_at: datetime
