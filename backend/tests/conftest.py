"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, get_session_factory, Base
from backend.app.core.jwt import create_access_token
from backend.app.core.reliability import notification_circuit_breaker
from backend.app.models.application import Application
from backend.app.models.enums import UserRole
from backend.app.models.payment_enums import PaymentOption
from backend.app.models.property import Property, Bedroom
from backend.app.models.tenancy import Tenancy, TenancyMember
from backend.app.models.tenancy_enums import ApplicationStatus, TenancyStatus

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AGENCY_ID = 1
OTHER_AGENCY_ID = 2
AGENT_USER_ID = 10
ADMIN_USER_ID = 11
TENANT_USER_ID = 20


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Point the app at the in-memory database for the whole session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    yield

    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    notification_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


def auth_headers(role: UserRole, user_id: int, agency_id: int = AGENCY_ID, username: str = "agent") -> dict:
    token = create_access_token(data={
        "sub": username,
        "user_id": user_id,
        "agency_id": agency_id,
        "role": role.value,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def agent_headers():
    return auth_headers(UserRole.AGENT, AGENT_USER_ID, username="agent.smith")


@pytest.fixture
def admin_headers():
    return auth_headers(UserRole.ADMIN, ADMIN_USER_ID, username="admin")


@pytest.fixture
def tenant_headers():
    return auth_headers(UserRole.TENANT, TENANT_USER_ID, username="tenant")


@pytest.fixture
def other_agency_headers():
    return auth_headers(UserRole.AGENT, 30, agency_id=OTHER_AGENCY_ID, username="rival.agent")


@pytest.fixture
def make_application(db_session):
    """Create a submitted application."""
    async def _make(
        first_name: str = "First",
        surname: str = "Surname",
        status: ApplicationStatus = ApplicationStatus.SUBMITTED,
        agency_id: int = AGENCY_ID,
        user_id: int = TENANT_USER_ID,
    ) -> Application:
        application = Application(
            agency_id=agency_id,
            user_id=user_id,
            first_name=first_name,
            surname=surname,
            email=f"{first_name.lower()}@test.com",
            status=status,
        )
        db_session.add(application)
        await db_session.commit()
        return application
    return _make


@pytest.fixture
def make_bedroom(db_session):
    """Create a property with one bedroom and return the bedroom."""
    async def _make(agency_id: int = AGENCY_ID, name: str = "Room 1") -> Bedroom:
        prop = Property(agency_id=agency_id, address_line1="12 Test Street")
        db_session.add(prop)
        await db_session.flush()
        bedroom = Bedroom(agency_id=agency_id, property_id=prop.id, bedroom_name=name)
        db_session.add(bedroom)
        await db_session.commit()
        return bedroom
    return _make


@pytest.fixture
def make_tenancy(db_session):
    """
    Create a tenancy with its members.

    ``members`` is a list of dicts with rent_pppw, deposit_amount,
    payment_option and optionally application_id.
    """
    async def _make(
        start_date: date,
        end_date: date = None,
        members: list = None,
        status: TenancyStatus = TenancyStatus.ACTIVE,
        is_rolling_monthly: bool = False,
        manage_rent: bool = True,
        auto_generate_payments: bool = True,
        agency_id: int = AGENCY_ID,
    ) -> Tenancy:
        if members is None:
            members = [{"rent_pppw": Decimal("100.00"), "payment_option": PaymentOption.MONTHLY}]

        prop = Property(agency_id=agency_id, address_line1="1 Tenancy Road")
        db_session.add(prop)
        await db_session.flush()

        tenancy = Tenancy(
            agency_id=agency_id,
            property_id=prop.id,
            start_date=start_date,
            end_date=end_date,
            is_rolling_monthly=is_rolling_monthly,
            auto_generate_payments=auto_generate_payments,
            manage_rent=manage_rent,
            status=status,
        )
        db_session.add(tenancy)
        await db_session.flush()

        for index, member in enumerate(members):
            db_session.add(TenancyMember(
                agency_id=agency_id,
                tenancy_id=tenancy.id,
                application_id=member.get("application_id"),
                first_name=member.get("first_name", f"Tenant{index + 1}"),
                surname=member.get("surname", "Test"),
                rent_pppw=member.get("rent_pppw", Decimal("100.00")),
                deposit_amount=member.get("deposit_amount", Decimal("0.00")),
                payment_option=member.get("payment_option"),
            ))
        await db_session.commit()
        return tenancy
    return _make
