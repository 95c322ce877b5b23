"""
Shared fixtures: a throwaway SQLite ledger per test, three users (owner,
tenant, stranger), one listed property and a ``pipeline`` helper that walks a
booking through the lifecycle to any stage.

Run with:
    pytest api/tests -v
"""
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import rentledger.models.notification  # noqa: F401
from rentledger.core.database import Base
from rentledger.models.property import Property
from rentledger.models.user import User
from rentledger.schemas.agreement import AgreementTerms
from rentledger.schemas.booking import BookingCreate, DurationProposal
from rentledger.services import bookings, settlement
from rentledger.services.authorization import Actor


class RecordingNotifier:
    """Collects (recipient, event_type, payload) instead of enqueueing."""

    def __init__(self):
        self.events: list[tuple[uuid.UUID, str, dict]] = []

    def notify(self, recipient_id, event_type, payload):
        self.events.append((recipient_id, event_type, payload))

    def types(self) -> list[str]:
        return [event_type for _, event_type, _ in self.events]

    def sent_to(self, recipient_id) -> list[str]:
        return [event_type for rid, event_type, _ in self.events if rid == recipient_id]


@dataclass
class World:
    owner: Actor
    tenant: Actor
    stranger: Actor
    property_id: uuid.UUID


# ── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ── Parties & property ───────────────────────────────────────────────────────

@pytest.fixture
async def world(db) -> World:
    owner = User(email="owner@example.com", full_name="Olivia Owner", role="owner", phone="+9779800000001")
    tenant = User(email="tenant@example.com", full_name="Tom Tenant", role="tenant", phone="+9779800000002")
    stranger = User(email="stranger@example.com", full_name="Sam Stranger", role="tenant")
    db.add_all([owner, tenant, stranger])
    await db.flush()

    prop = Property(
        owner_id=owner.id,
        title="2BHK near Lakeside",
        address="Lakeside Road 12",
        city="Pokhara",
        monthly_rent=Decimal("15000"),
        security_deposit=Decimal("5000"),
        electricity_rate=Decimal("12"),
        water_bill=Decimal("500"),
        garbage_bill=Decimal("200"),
        is_available=True,
    )
    db.add(prop)
    await db.commit()

    return World(
        owner=Actor(id=owner.id, role="owner"),
        tenant=Actor(id=tenant.id, role="tenant"),
        stranger=Actor(id=stranger.id, role="tenant"),
        property_id=prop.id,
    )


# ── Lifecycle driver ─────────────────────────────────────────────────────────

class Pipeline:
    def __init__(self, db: AsyncSession, world: World, notifier: RecordingNotifier):
        self.db = db
        self.world = world
        self.notifier = notifier

    async def requested(self, move_in: date = date(2026, 1, 1)):
        return await bookings.create_booking(
            self.db,
            self.world.tenant,
            BookingCreate(property_id=self.world.property_id, requested_move_in_date=move_in),
            self.notifier,
        )

    async def accepted(self):
        booking = await self.requested()
        return await bookings.accept_booking(self.db, self.world.owner, booking.id, self.notifier)

    async def duration_pending(self, years: int = 1, months: int = 0):
        booking = await self.accepted()
        return await bookings.propose_duration(
            self.db,
            self.world.tenant,
            booking.id,
            DurationProposal(rental_years=years, rental_months=months),
            self.notifier,
        )

    async def duration_approved(self):
        booking = await self.duration_pending()
        return await bookings.approve_duration(self.db, self.world.owner, booking.id, True, self.notifier)

    async def agreement_pending(self, terms: AgreementTerms | None = None):
        booking = await self.duration_approved()
        agreement = await bookings.create_agreement(
            self.db, self.world.owner, booking.id, terms or AgreementTerms(), self.notifier
        )
        return booking, agreement

    async def payment_pending(self, terms: AgreementTerms | None = None):
        booking, agreement = await self.agreement_pending(terms)
        await bookings.respond_to_agreement(
            self.db, self.world.tenant, agreement.id, "approve", self.notifier
        )
        return booking, agreement

    async def active(self, terms: AgreementTerms | None = None):
        booking, agreement = await self.payment_pending(terms)
        await settlement.pay_deposit(self.db, self.world.tenant, booking.id, None, self.notifier)
        return booking, agreement


@pytest.fixture
def pipeline(db, world, notifier) -> Pipeline:
    return Pipeline(db, world, notifier)
