import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_webhook_secret"
os.environ["SECRET_KEY"] = "test-secret-key-with-at-least-32-bytes!!"
os.environ["ALGORITHM"] = "HS256"

import hashlib
import hmac
import json
from decimal import Decimal

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.get_db import Base, get_db_async
from core.settings import settings
from core.throttling import sensitive_limiter
from models.enums import ListingStatus, UserRole
from models.models import Property, Unit, User

WEBHOOK_SECRET = "sk_test_webhook_secret"


def sign_body(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def webhook_body(event: str, reference: str, amount_minor=None, **data) -> bytes:
    payload = {"event": event, "data": {"reference": reference, **data}}
    if amount_minor is not None:
        payload["data"]["amount"] = amount_minor
    return json.dumps(payload).encode()


def auth_headers(user: User) -> dict:
    token = jwt.encode(
        {"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db, role: UserRole, name: str) -> User:
    user = User(
        email=f"{name.lower().replace(' ', '.')}@example.com",
        full_name=name,
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def landlord(db):
    return await _make_user(db, UserRole.LANDLORD, "Lara Landlord")


@pytest_asyncio.fixture
async def tenant(db):
    return await _make_user(db, UserRole.TENANT, "Tobi Tenant")


@pytest_asyncio.fixture
async def outsider(db):
    return await _make_user(db, UserRole.TENANT, "Olu Outsider")


@pytest_asyncio.fixture
async def unit(db, landlord):
    property_ = Property(landlord_id=landlord.id, name="Palm Court", address="12 Palm St")
    db.add(property_)
    await db.flush()
    unit = Unit(
        property_id=property_.id,
        unit_number="A1",
        rent_amount=Decimal("120000.00"),
        deposit_amount=Decimal("60000.00"),
        late_fee_amount=Decimal("5000.00"),
        late_fee_grace_days=3,
        listing_status=ListingStatus.AVAILABLE,
    )
    db.add(unit)
    await db.commit()
    await db.refresh(unit)
    return unit


@pytest_asyncio.fixture
async def client(session_factory):
    from app import app

    async def override_db():
        async with session_factory() as session:
            yield session

    async def no_limit():
        return None

    app.dependency_overrides[get_db_async] = override_db
    app.dependency_overrides[sensitive_limiter] = no_limit
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_agreement(
    db,
    tenant: User,
    landlord: User,
    unit: Unit,
    status=None,
    start_date=None,
    months: int = 12,
):
    from datetime import date

    from models.enums import AgreementStatus
    from models.models import TenancyAgreement
    from models.utils import lease_end_date

    start_date = start_date or date.today()
    agreement = TenancyAgreement(
        tenant_id=tenant.id,
        landlord_id=landlord.id,
        property_id=unit.property_id,
        unit_id=unit.id,
        start_date=start_date,
        end_date=lease_end_date(start_date, months),
        rent_amount=unit.rent_amount,
        deposit_amount=unit.deposit_amount,
        terms='["Pay rent on time"]',
        agreement_version=1,
        status=status or AgreementStatus.DRAFT,
    )
    db.add(agreement)
    await db.commit()
    await db.refresh(agreement)
    return agreement
