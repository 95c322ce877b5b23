import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AgreementTerms(BaseModel):
    """Owner-supplied terms; anything left out falls back to the property, then to settings."""
    electricity_rate: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    water_bill: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    garbage_bill: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    deposit_amount: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)
    rules: str | None = Field(default=None, max_length=10000)


class AgreementResponseIn(BaseModel):
    decision: Literal["approve", "decline"]


class AgreementTermination(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class AgreementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    property_id: uuid.UUID
    tenant_id: uuid.UUID
    owner_id: uuid.UUID
    base_rent: Decimal
    deposit_amount: Decimal
    electricity_rate: Decimal | None
    water_bill: Decimal | None
    garbage_bill: Decimal | None
    rules_text: str | None
    start_date: date | None
    end_date: date | None
    status: str
    tenant_signed_at: datetime | None
    terminated_at: datetime | None
    termination_reason: str | None
    created_at: datetime
