"""Payslip builder — seeds the variable context and packages one payslip."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from paysuite.payroll.ports import (
    EmployeeRecord,
    EngineOptions,
    PeriodInputs,
    SalaryTemplateSnapshot,
)
from paysuite.payroll.resolver import Resolution, resolve, round_money


class MissingTemplateError(LookupError):
    """Employee has no salary template assigned (or it no longer exists)."""

    def __init__(self, employee: EmployeeRecord) -> None:
        self.employee = employee
        super().__init__(
            f"Employee {employee.code} ({employee.name}) has no salary template; "
            "payslip computed as zero."
        )


@dataclass
class ComputedPayslip:
    """In-memory payslip; persisted as ``paysuite.payroll.models.Payslip``."""

    employee_id: uuid.UUID
    employee_code: str
    employee_name: str
    role_name: str
    base_salary: float = 0.0
    allowance: float = 0.0
    insurance_salary: float = 0.0
    actual_work_days: float = 0.0
    ot_hours: float = 0.0
    kpi_money: float = 0.0
    bonus: float = 0.0
    deduction: float = 0.0
    note: str = ""
    gross_income: float = 0.0
    total_deduction: float = 0.0
    net_salary: float = 0.0
    details: dict[str, float] = field(default_factory=dict)
    template_snapshot: Optional[dict[str, Any]] = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "role_name": self.role_name,
            "base_salary": self.base_salary,
            "allowance": self.allowance,
            "insurance_salary": self.insurance_salary,
            "actual_work_days": self.actual_work_days,
            "ot_hours": self.ot_hours,
            "kpi_money": self.kpi_money,
            "bonus": self.bonus,
            "deduction": self.deduction,
            "note": self.note,
            "gross_income": self.gross_income,
            "total_deduction": self.total_deduction,
            "net_salary": self.net_salary,
            "details": dict(self.details),
            "template_snapshot": self.template_snapshot,
            "warnings": list(self.warnings),
        }


def _require_template(
    employee: EmployeeRecord,
    template: Optional[SalaryTemplateSnapshot],
) -> SalaryTemplateSnapshot:
    if template is None:
        raise MissingTemplateError(employee)
    return template


def base_context(
    employee: EmployeeRecord,
    inputs: PeriodInputs,
    options: EngineOptions,
) -> dict[str, float]:
    """Variables every formula can reference before any component runs."""
    return {
        "std_days": float(options.standard_days),
        "actual_work_days": float(inputs.timesheet.actual_work_days),
        "ot_hours": float(inputs.timesheet.ot_hours),
        "holiday_days": float(inputs.holiday_days),
        "unused_leave": 0.0,
        "dependents": float(employee.dependents),
        "base_salary": float(employee.base_salary),
        "eval_salary": float(employee.eval_salary),
        "insurance_salary": float(employee.insurance_salary),
        "fixed_allowance": float(employee.fixed_allowance),
        "kpi_money": float(inputs.kpi_money),
        "bonus": float(inputs.adjustment.bonus),
        "deduction": float(inputs.adjustment.deduction),
    }


def build(
    employee: EmployeeRecord,
    template: Optional[SalaryTemplateSnapshot],
    inputs: PeriodInputs,
    options: Optional[EngineOptions] = None,
) -> ComputedPayslip:
    """Compute one employee's payslip. Pure and deterministic."""
    options = options or EngineOptions()
    slip = ComputedPayslip(
        employee_id=employee.id,
        employee_code=employee.code,
        employee_name=employee.name,
        role_name=employee.role_name,
        base_salary=employee.base_salary,
        allowance=employee.fixed_allowance,
        insurance_salary=employee.insurance_salary,
        actual_work_days=inputs.timesheet.actual_work_days,
        ot_hours=inputs.timesheet.ot_hours,
        kpi_money=round_money(inputs.kpi_money, options.money_decimals),
        bonus=inputs.adjustment.bonus,
        deduction=inputs.adjustment.deduction,
        note=inputs.adjustment.note,
    )

    try:
        template = _require_template(employee, template)
    except MissingTemplateError as exc:
        slip.warnings.append(str(exc))
        return slip

    resolution: Resolution = resolve(
        template.components, base_context(employee, inputs, options), options,
    )
    slip.details = resolution.details
    slip.gross_income = resolution.gross_income
    slip.total_deduction = resolution.total_deduction
    slip.net_salary = resolution.net_salary
    slip.template_snapshot = template.to_dict()
    slip.warnings.extend(
        f"{employee.code}: {warning}" for warning in resolution.warnings
    )
    return slip
