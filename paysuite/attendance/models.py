"""Attendance ORM models: AttendancePeriod, TimesheetEntry."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from paysuite.common.constants import SourcePeriodStatus
from paysuite.database import Base


class AttendancePeriod(Base):
    """Monthly attendance close; payroll warns while it is still open."""

    __tablename__ = "attendance_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    month: Mapped[str] = mapped_column(sa.String(7), unique=True, nullable=False)
    status: Mapped[SourcePeriodStatus] = mapped_column(
        sa.Enum(
            SourcePeriodStatus,
            name="attendance_period_status",
            native_enum=False,
            length=20,
        ),
        default=SourcePeriodStatus.open,
        nullable=False,
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class TimesheetEntry(Base):
    """One worked day (or part of one) for an employee."""

    __tablename__ = "timesheet_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    work_days: Mapped[Decimal] = mapped_column(sa.Numeric(4, 2), default=1)
    ot_hours: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), default=0)
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        sa.Index("ix_timesheet_employee_date", "employee_id", "work_date"),
    )
