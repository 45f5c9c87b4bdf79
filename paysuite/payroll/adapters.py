"""SQLAlchemy implementations of the payroll collaborator interfaces."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from paysuite.attendance.models import AttendancePeriod, TimesheetEntry
from paysuite.common.constants import SourcePeriodStatus
from paysuite.core_hr.models import Employee
from paysuite.kpi.models import KpiPeriod, KpiRecord
from paysuite.ledger.service import LedgerService
from paysuite.payroll.holidays import holiday_day_count
from paysuite.payroll.models import PayrollAdjustment
from paysuite.payroll.ports import (
    ComponentDefinition,
    EmployeeRecord,
    ManualAdjustment,
    SalaryTemplateSnapshot,
    TimesheetTotals,
)
from paysuite.salary.models import SalaryTemplate, SalaryTemplateItem


def _float(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


def period_bounds(period: str) -> tuple[date, date]:
    """First day of *period* and first day of the following month."""
    year, month = (int(part) for part in period.split("-"))
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def snapshot_template(template: SalaryTemplate) -> SalaryTemplateSnapshot:
    """Freeze an ORM template (items already loaded) into engine value types."""
    return SalaryTemplateSnapshot(
        id=str(template.id),
        name=template.name,
        components=tuple(
            ComponentDefinition(
                code=component.code,
                name=component.name,
                nature=component.nature,
                formula=component.formula or "",
                fixed_value=(
                    float(component.fixed_value)
                    if component.fixed_value is not None else None
                ),
                is_taxable=bool(component.is_taxable),
                is_system_defined=bool(component.is_system_defined),
            )
            for component in template.components
        ),
    )


# ═════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════


class SqlPayrollSource:
    """``PayrollSource`` backed by the core HR, salary, attendance and KPI tables."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._templates: dict[uuid.UUID, Optional[SalaryTemplateSnapshot]] = {}

    async def list_active_employees(self) -> list[EmployeeRecord]:
        result = await self._db.execute(
            select(Employee)
            .where(Employee.is_active.is_(True))
            .order_by(Employee.employee_code)
        )
        return [
            EmployeeRecord(
                id=emp.id,
                code=emp.employee_code,
                name=emp.full_name,
                role_name=emp.job_title or "",
                template_id=emp.salary_template_id,
                base_salary=_float(emp.base_salary),
                eval_salary=_float(emp.eval_salary),
                insurance_salary=_float(emp.insurance_salary),
                fixed_allowance=_float(emp.fixed_allowance),
                dependents=emp.dependents or 0,
            )
            for emp in result.scalars().all()
        ]

    async def get_salary_template(
        self, template_id: uuid.UUID,
    ) -> Optional[SalaryTemplateSnapshot]:
        if template_id in self._templates:
            return self._templates[template_id]
        result = await self._db.execute(
            select(SalaryTemplate)
            .where(SalaryTemplate.id == template_id)
            .options(
                selectinload(SalaryTemplate.items).joinedload(SalaryTemplateItem.component)
            )
        )
        template = result.scalars().first()
        snapshot = snapshot_template(template) if template is not None else None
        self._templates[template_id] = snapshot
        return snapshot

    async def get_timesheet_totals(
        self, employee_id: uuid.UUID, period: str,
    ) -> TimesheetTotals:
        start, end = period_bounds(period)
        result = await self._db.execute(
            select(
                func.coalesce(func.sum(TimesheetEntry.work_days), 0),
                func.coalesce(func.sum(TimesheetEntry.ot_hours), 0),
            ).where(
                TimesheetEntry.employee_id == employee_id,
                TimesheetEntry.work_date >= start,
                TimesheetEntry.work_date < end,
            )
        )
        work_days, ot_hours = result.one()
        return TimesheetTotals(
            actual_work_days=float(work_days or 0),
            ot_hours=float(ot_hours or 0),
        )

    async def get_kpi_commission(self, employee_id: uuid.UUID, period: str) -> float:
        result = await self._db.execute(
            select(func.coalesce(func.sum(KpiRecord.commission_amount), 0)).where(
                KpiRecord.employee_id == employee_id,
                KpiRecord.month == period,
            )
        )
        return float(result.scalar_one() or 0)

    async def get_holiday_day_count(self, period: str) -> float:
        return float(holiday_day_count(period))

    async def get_manual_adjustments(
        self, employee_id: uuid.UUID, period: str,
    ) -> ManualAdjustment:
        result = await self._db.execute(
            select(PayrollAdjustment).where(
                PayrollAdjustment.employee_id == employee_id,
                PayrollAdjustment.month == period,
            )
        )
        row = result.scalars().first()
        if row is None:
            return ManualAdjustment()
        return ManualAdjustment(
            bonus=_float(row.bonus),
            deduction=_float(row.deduction),
            note=row.note or "",
        )

    async def get_period_warnings(self, period: str) -> list[str]:
        """Warn when attendance or KPI data for *period* may still change."""
        warnings: list[str] = []
        attendance = (
            await self._db.execute(
                select(AttendancePeriod).where(AttendancePeriod.month == period)
            )
        ).scalars().first()
        if attendance is None or attendance.status != SourcePeriodStatus.locked:
            warnings.append(
                f"Attendance for {period} is not locked; work days may still change."
            )
        kpi = (
            await self._db.execute(select(KpiPeriod).where(KpiPeriod.month == period))
        ).scalars().first()
        if kpi is None or kpi.status != SourcePeriodStatus.locked:
            warnings.append(
                f"KPI results for {period} are not locked; commissions may still change."
            )
        return warnings


# ═════════════════════════════════════════════════════════════════════
# Command side
# ═════════════════════════════════════════════════════════════════════


class SqlLedgerGateway:
    """``LedgerGateway`` writing into ``ledger_transactions`` in the caller's session."""

    def __init__(self, db: AsyncSession, category: str) -> None:
        self._db = db
        self._category = category

    async def create_ledger_disbursement(
        self,
        amount: Decimal,
        period: str,
        target_account_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> uuid.UUID:
        txn = await LedgerService.create_payroll_disbursement(
            self._db,
            amount=amount,
            period=period,
            account_id=target_account_id,
            category=self._category,
            performed_by=actor_id,
        )
        return txn.id
