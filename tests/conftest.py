"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (payroll, salary, ledger, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from paysuite.common.constants import ComponentNature, UserRole
from paysuite.config import settings
from paysuite.database import Base, get_db
from paysuite.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → SalaryTemplate, PayrollRun → LedgerTransaction)
import paysuite.common.audit  # noqa: F401
import paysuite.core_hr.models  # noqa: F401
import paysuite.salary.models  # noqa: F401
import paysuite.attendance.models  # noqa: F401
import paysuite.kpi.models  # noqa: F401
import paysuite.ledger.models  # noqa: F401
import paysuite.payroll.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from paysuite.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    employee_code: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    job_title: str = "Sales Executive",
    salary_template_id: Optional[uuid.UUID] = None,
    base_salary: int | Decimal = 0,
    eval_salary: int | Decimal = 0,
    insurance_salary: int | Decimal = 0,
    fixed_allowance: int | Decimal = 0,
    dependents: int = 0,
    is_active: bool = True,
) -> dict:
    code = employee_code or f"NV-{uuid.uuid4().hex[:6].upper()}"
    return dict(
        id=uuid.uuid4(),
        employee_code=code,
        first_name=first_name,
        last_name=last_name,
        email=email or f"{code.lower()}@paysuite.local",
        job_title=job_title,
        salary_template_id=salary_template_id,
        base_salary=Decimal(base_salary),
        eval_salary=Decimal(eval_salary),
        insurance_salary=Decimal(insurance_salary),
        fixed_allowance=Decimal(fixed_allowance),
        dependents=dependents,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def create_employee(db: AsyncSession, **kwargs) -> dict:
    """Insert an employee and return its data dict."""
    from paysuite.core_hr.models import Employee

    data = _make_employee(**kwargs)
    db.add(Employee(**data))
    await db.flush()
    return data


async def create_salary_template(
    db: AsyncSession,
    name: str,
    components: list[dict],
):
    """Insert components (in order) plus a template that uses them.

    Each entry of *components* is a ``SalaryComponent`` kwargs dict; ``nature``
    defaults to income.
    """
    from paysuite.salary.models import SalaryComponent, SalaryTemplate, SalaryTemplateItem

    rows = []
    for fields in components:
        fields = {"nature": ComponentNature.income, **fields}
        fields.setdefault("name", fields["code"])
        component = SalaryComponent(**fields)
        db.add(component)
        rows.append(component)
    await db.flush()

    template = SalaryTemplate(
        name=name,
        items=[
            SalaryTemplateItem(component_id=c.id, position=i)
            for i, c in enumerate(rows)
        ],
    )
    db.add(template)
    await db.flush()
    return template


async def add_timesheet(
    db: AsyncSession,
    employee_id: uuid.UUID,
    period: str,
    days: int,
    *,
    ot_hours: int | Decimal = 0,
) -> None:
    """One full work day per entry, starting on the 1st of *period*."""
    from paysuite.attendance.models import TimesheetEntry

    year, month = (int(p) for p in period.split("-"))
    for offset in range(days):
        db.add(TimesheetEntry(
            employee_id=employee_id,
            work_date=date(year, month, 1) + timedelta(days=offset),
            work_days=Decimal("1"),
            ot_hours=Decimal(ot_hours) if offset == 0 else Decimal("0"),
        ))
    await db.flush()


async def create_cash_account(
    db: AsyncSession,
    *,
    name: str = "Operating Account",
    balance: int | Decimal = 1_000_000_000,
    is_active: bool = True,
):
    from paysuite.ledger.models import CashAccount

    account = CashAccount(name=name, balance=Decimal(balance), is_active=is_active)
    db.add(account)
    await db.flush()
    return account


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def make_auth_headers(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role=role)}"}


@pytest.fixture
async def payroll_admin(db) -> dict:
    """Active HR user who operates payroll (has no salary template)."""
    data = await create_employee(
        db,
        employee_code="ADM-001",
        first_name="Hana",
        last_name="Admin",
        email="hana.admin@paysuite.local",
        job_title="HR Manager",
    )
    await db.commit()
    return data


@pytest.fixture
async def auth_headers(payroll_admin) -> dict[str, str]:
    """Bearer headers for an hr_admin."""
    return make_auth_headers(payroll_admin["id"], UserRole.hr_admin)


@pytest.fixture
async def admin_headers(payroll_admin) -> dict[str, str]:
    """Bearer headers for a system_admin (may unlock runs)."""
    return make_auth_headers(payroll_admin["id"], UserRole.system_admin)
