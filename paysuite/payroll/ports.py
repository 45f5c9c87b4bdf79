"""Value types and collaborator interfaces of the payroll engine.

The engine (evaluator, resolver, builder) only sees the frozen dataclasses
below. Storage lives behind ``PayrollSource`` and ``LedgerGateway``; the SQL
implementations are in ``paysuite.payroll.adapters``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol

from paysuite.common.constants import ComponentNature


# ── Engine configuration ────────────────────────────────────────────

@dataclass(frozen=True)
class EngineOptions:
    standard_days: float = 26
    net_pay_code: str = "THUC_LINH"
    commission_codes: frozenset[str] = frozenset({"HOA_HONG", "KPI"})
    money_decimals: int = 0
    max_workers: int = 4


# ── Salary template snapshot ────────────────────────────────────────

@dataclass(frozen=True)
class ComponentDefinition:
    """A salary component as it was when the run was computed."""

    code: str
    name: str
    nature: ComponentNature = ComponentNature.income
    formula: str = ""
    fixed_value: Optional[float] = None
    is_taxable: bool = False
    is_system_defined: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "nature": self.nature.value,
            "formula": self.formula,
            "fixed_value": self.fixed_value,
            "is_taxable": self.is_taxable,
            "is_system_defined": self.is_system_defined,
        }


@dataclass(frozen=True)
class SalaryTemplateSnapshot:
    id: str
    name: str
    components: tuple[ComponentDefinition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "components": [c.to_dict() for c in self.components],
        }


# ── Per-employee inputs ─────────────────────────────────────────────

@dataclass(frozen=True)
class EmployeeRecord:
    id: uuid.UUID
    code: str
    name: str
    role_name: str = ""
    template_id: Optional[uuid.UUID] = None
    base_salary: float = 0.0
    eval_salary: float = 0.0
    insurance_salary: float = 0.0
    fixed_allowance: float = 0.0
    dependents: int = 0


@dataclass(frozen=True)
class TimesheetTotals:
    actual_work_days: float = 0.0
    ot_hours: float = 0.0


@dataclass(frozen=True)
class ManualAdjustment:
    bonus: float = 0.0
    deduction: float = 0.0
    note: str = ""


@dataclass(frozen=True)
class PeriodInputs:
    """Everything period-specific the builder needs for one employee."""

    timesheet: TimesheetTotals = field(default_factory=TimesheetTotals)
    kpi_money: float = 0.0
    adjustment: ManualAdjustment = field(default_factory=ManualAdjustment)
    holiday_days: float = 0.0


# ── Collaborator interfaces ─────────────────────────────────────────

class PayrollSource(Protocol):
    """Read side: employees, templates and period inputs."""

    async def list_active_employees(self) -> list[EmployeeRecord]: ...

    async def get_salary_template(
        self, template_id: uuid.UUID,
    ) -> Optional[SalaryTemplateSnapshot]: ...

    async def get_timesheet_totals(
        self, employee_id: uuid.UUID, period: str,
    ) -> TimesheetTotals: ...

    async def get_kpi_commission(self, employee_id: uuid.UUID, period: str) -> float: ...

    async def get_holiday_day_count(self, period: str) -> float: ...

    async def get_manual_adjustments(
        self, employee_id: uuid.UUID, period: str,
    ) -> ManualAdjustment: ...

    async def get_period_warnings(self, period: str) -> list[str]: ...


class LedgerGateway(Protocol):
    """Command side: records the single disbursement of a paid run."""

    async def create_ledger_disbursement(
        self,
        amount: Decimal,
        period: str,
        target_account_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> uuid.UUID: ...
