import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rentledger.core.database import Base


class Property(Base):
    """Catalog entry — owned by the listing service, read here for ownership and tariffs."""
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(String(500))
    city: Mapped[str | None] = mapped_column(String(100))
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    security_deposit: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    # Default utility tariffs offered to new agreements
    electricity_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    water_bill: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    garbage_bill: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
