"""Payroll ORM models: PayrollRun, Payslip, PayrollAdjustment.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paysuite.common.constants import PayrollStatus
from paysuite.database import Base


class PayrollRun(Base):
    """One payroll period (``YYYY-MM``) and its lifecycle status."""

    __tablename__ = "payroll_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    month: Mapped[str] = mapped_column(sa.String(7), unique=True, nullable=False)
    status: Mapped[PayrollStatus] = mapped_column(
        sa.Enum(
            PayrollStatus,
            name="payroll_status",
            native_enum=False,
            length=20,
        ),
        default=PayrollStatus.draft,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), default=0)
    employee_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    warnings: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    version_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    computed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    locked_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    locked_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    paid_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    target_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("cash_accounts.id"),
    )
    payment_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("ledger_transactions.id"),
    )

    # Relationships
    slips: Mapped[list[Payslip]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="Payslip.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PayrollRun {self.month} {self.status.value}>"


class Payslip(Base):
    """Frozen per-employee result inside a run."""

    __tablename__ = "payslips"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("payroll_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False,
    )

    # Denormalized at computation time
    employee_code: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    employee_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    role_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    base_salary: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    allowance: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    insurance_salary: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)

    # Period inputs
    actual_work_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), default=0)
    ot_hours: Mapped[Decimal] = mapped_column(sa.Numeric(7, 2), default=0)
    kpi_money: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    bonus: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    deduction: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    note: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Results
    gross_income: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), default=0)
    total_deduction: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), default=0)
    net_salary: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), default=0)
    details: Mapped[dict] = mapped_column(JSONB, default=dict)
    template_snapshot: Mapped[Optional[dict]] = mapped_column(JSONB)
    warnings: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    # Relationships
    run: Mapped[PayrollRun] = relationship(back_populates="slips")

    __table_args__ = (
        sa.UniqueConstraint("run_id", "employee_id", name="uq_payslip_run_employee"),
    )

    def __repr__(self) -> str:
        return f"<Payslip {self.employee_code} net={self.net_salary}>"


class PayrollAdjustment(Base):
    """Manual monthly bonus / deduction / note for one employee."""

    __tablename__ = "payroll_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[str] = mapped_column(sa.String(7), nullable=False)
    bonus: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    deduction: Mapped[Decimal] = mapped_column(sa.Numeric(15, 2), default=0)
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    updated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "month", name="uq_payroll_adjustment_employee_month"),
    )
