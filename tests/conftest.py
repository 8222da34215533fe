"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cbahi.config import settings
from cbahi.db.base import Base
# Import all models to register with Base.metadata
import cbahi.db.models  # noqa: F401
from cbahi.db.models.user import PrivilegeRow, UserRow

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Seed reference data (mirrors main.py lifespan)
    from cbahi.main import seed_reference_data

    await seed_reference_data(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(db_engine, session_factory):
    """Create a test application instance with in-memory DB."""
    from cbahi.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def make_token(user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    claims = {
        "sub": user_id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def auth_headers():
    """Build Authorization headers carrying a freshly minted token."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture
async def people(db_session):
    """A cardiology department with one approver per level.

    u_applicant (specialist, cardiology) reports to u_hos, who reports to
    u_hod. u_committee and u_md sit outside the department. u_other is an
    unrelated employee used for authorization checks.
    """
    users = [
        UserRow(user_id="u_hod", email="hod@hospital.test", display_name="Dr. Head of Dept",
                role="head_of_dept", department_id="dept_card"),
        UserRow(user_id="u_hos", email="hos@hospital.test", display_name="Dr. Head of Section",
                role="head_of_section", department_id="dept_card", line_manager_id="u_hod"),
        UserRow(user_id="u_applicant", email="applicant@hospital.test", display_name="Dr. Applicant",
                role="employee", department_id="dept_card", line_manager_id="u_hos",
                practitioner_type="specialist", specialty="cardiology"),
        UserRow(user_id="u_committee", email="committee@hospital.test", display_name="Dr. Committee",
                role="committee_member"),
        UserRow(user_id="u_md", email="md@hospital.test", display_name="Dr. Medical Director",
                role="medical_director"),
        UserRow(user_id="u_admin", email="admin@hospital.test", display_name="Admin", role="admin"),
        UserRow(user_id="u_other", email="other@hospital.test", display_name="Dr. Other",
                role="employee", department_id="dept_card", practitioner_type="gp"),
    ]
    privileges = [
        PrivilegeRow(privilege_id="priv_echo", code="CARD-001", name="Transthoracic echo",
                     category="core", required_specialty="cardiology"),
        PrivilegeRow(privilege_id="priv_pci", code="CARD-101", name="Primary PCI",
                     category="non_core", required_specialty="cardiology"),
        PrivilegeRow(privilege_id="priv_eeg", code="NEUR-101", name="EEG interpretation",
                     category="non_core", required_specialty="neurology"),
        PrivilegeRow(privilege_id="priv_retired", code="OLD-001", name="Retired procedure",
                     category="core", is_active=False),
    ]
    db_session.add_all(users + privileges)
    await db_session.commit()
    return {u.user_id: u for u in users}


@pytest.fixture
async def four_level_request(db_session, people):
    """A submitted cross-specialty non-core request with a four-level chain."""
    from cbahi.services.workflow.requests import create_request

    request = await create_request(
        db_session,
        applicant_id="u_applicant",
        kind="new",
        privilege_type="non_core",
        privilege_ids=["priv_eeg"],
        submit=True,
        now=T0,
    )
    await db_session.commit()
    return request
