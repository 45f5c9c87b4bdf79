"""KPI ORM models: KpiPeriod, KpiRecord."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from paysuite.common.constants import SourcePeriodStatus
from paysuite.database import Base


class KpiPeriod(Base):
    """Monthly KPI close; payroll warns while it is still open."""

    __tablename__ = "kpi_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    month: Mapped[str] = mapped_column(sa.String(7), unique=True, nullable=False)
    status: Mapped[SourcePeriodStatus] = mapped_column(
        sa.Enum(
            SourcePeriodStatus,
            name="kpi_period_status",
            native_enum=False,
            length=20,
        ),
        default=SourcePeriodStatus.open,
        nullable=False,
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )


class KpiRecord(Base):
    """Commission earned by an employee in a month."""

    __tablename__ = "kpi_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[str] = mapped_column(sa.String(7), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        sa.Numeric(15, 2), default=0,
    )
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.Index("ix_kpi_records_employee_month", "employee_id", "month"),
    )
