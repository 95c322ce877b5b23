from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentledger.core.database import get_db
from rentledger.core.errors import PersistenceFailure
from rentledger.models.rental import Booking, Invoice, RentalAgreement

router = APIRouter(tags=["health"])

LEDGER_TABLES = (Booking, RentalAgreement, Invoice)


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_db)):
    """Ready when every ledger table answers a read; 503 otherwise."""
    checked = []
    for model in LEDGER_TABLES:
        try:
            await db.execute(select(model.id).limit(1))
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"ledger table {model.__tablename__} is unavailable") from exc
        checked.append(model.__tablename__)
    return {"status": "ok", "database": "connected", "tables": checked}
