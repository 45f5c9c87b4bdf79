"""Payroll Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from paysuite.common.constants import PayrollStatus
from paysuite.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Payslip
# ═════════════════════════════════════════════════════════════════════


class PayslipOut(BaseModel):
    """One employee's frozen result inside a run."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    employee_code: str
    employee_name: str
    role_name: Optional[str] = None
    base_salary: Decimal = Decimal("0")
    allowance: Decimal = Decimal("0")
    insurance_salary: Decimal = Decimal("0")
    actual_work_days: Decimal = Decimal("0")
    ot_hours: Decimal = Decimal("0")
    kpi_money: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    deduction: Decimal = Decimal("0")
    note: Optional[str] = None
    gross_income: Decimal = Decimal("0")
    total_deduction: Decimal = Decimal("0")
    net_salary: Decimal = Decimal("0")
    details: Dict[str, float] = {}
    template_snapshot: Optional[Dict[str, Any]] = None
    warnings: List[str] = []


# ═════════════════════════════════════════════════════════════════════
# Payroll Run
# ═════════════════════════════════════════════════════════════════════


class PayrollRunSummaryOut(BaseModel):
    """Run header without payslips (list views)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    month: str
    status: PayrollStatus
    total_amount: Decimal = Decimal("0")
    employee_count: int = 0
    warnings: List[str] = []
    created_at: Optional[datetime] = None
    computed_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    locked_by_id: Optional[uuid.UUID] = None
    paid_at: Optional[datetime] = None
    paid_by_id: Optional[uuid.UUID] = None
    target_account_id: Optional[uuid.UUID] = None
    payment_transaction_id: Optional[uuid.UUID] = None


class PayrollRunOut(PayrollRunSummaryOut):
    """Full run representation including payslips."""

    slips: List[PayslipOut] = []


class PayrollRunListResponse(BaseModel):
    data: List[PayrollRunSummaryOut]
    meta: PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Commands
# ═════════════════════════════════════════════════════════════════════


class PayRunRequest(BaseModel):
    target_account_id: uuid.UUID


class UnlockRunRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class AdjustmentEntry(BaseModel):
    employee_id: uuid.UUID
    bonus: Decimal = Field(default=Decimal("0"), ge=0)
    deduction: Decimal = Field(default=Decimal("0"), ge=0)
    note: Optional[str] = Field(default=None, max_length=500)


class AdjustmentsRequest(BaseModel):
    entries: List[AdjustmentEntry] = Field(..., min_length=1)


class AdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    month: str
    bonus: Decimal = Decimal("0")
    deduction: Decimal = Decimal("0")
    note: Optional[str] = None


class AdjustmentListResponse(BaseModel):
    data: List[AdjustmentOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Export
# ═════════════════════════════════════════════════════════════════════


class ExportRowOut(BaseModel):
    employee_code: str
    employee_name: str
    role_name: str = ""
    base_salary: Decimal = Decimal("0")
    actual_work_days: Decimal = Decimal("0")
    kpi_money: Decimal = Decimal("0")
    gross_income: Decimal = Decimal("0")
    total_deduction: Decimal = Decimal("0")
    net_salary: Decimal = Decimal("0")
    note: str = ""


class ExportResponse(BaseModel):
    month: str
    rows: List[ExportRowOut]
    total: int
