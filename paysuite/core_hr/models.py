"""Core HR ORM models: Employee.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Only the master fields payroll needs are modelled here; the column names
match the PostgreSQL schema defined in 001_payroll_schema.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paysuite.database import Base

if TYPE_CHECKING:
    from paysuite.salary.models import SalaryTemplate


class Employee(Base):
    """Core employee record — the payee of every payslip."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )

    # ── Name / Contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(sa.String(255))
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    job_title: Mapped[Optional[str]] = mapped_column(sa.String(200))

    # ── Payroll master data ─────────────────────────────────────────
    salary_template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("salary_templates.id", ondelete="SET NULL"),
    )
    base_salary: Mapped[Decimal] = mapped_column(
        sa.Numeric(15, 2), default=0,
    )
    eval_salary: Mapped[Decimal] = mapped_column(
        sa.Numeric(15, 2), default=0,
    )
    insurance_salary: Mapped[Decimal] = mapped_column(
        sa.Numeric(15, 2), default=0,
    )
    fixed_allowance: Mapped[Decimal] = mapped_column(
        sa.Numeric(15, 2), default=0,
    )
    dependents: Mapped[int] = mapped_column(sa.Integer, default=0)

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    salary_template: Mapped[Optional[SalaryTemplate]] = relationship(
        foreign_keys=[salary_template_id],
    )

    @property
    def full_name(self) -> str:
        if self.display_name:
            return self.display_name
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} {self.full_name!r}>"
