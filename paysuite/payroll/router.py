"""Payroll router — compute, lock, pay, unlock and export monthly runs.

All endpoints require hr_admin (or higher); unlock requires system_admin.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from paysuite.auth.dependencies import require_role
from paysuite.common.constants import UserRole
from paysuite.common.exceptions import NotFoundException
from paysuite.common.pagination import PaginationParams
from paysuite.common.rate_limit import limiter
from paysuite.core_hr.models import Employee
from paysuite.database import get_db
from paysuite.payroll.schemas import (
    AdjustmentListResponse,
    AdjustmentOut,
    AdjustmentsRequest,
    ExportResponse,
    ExportRowOut,
    PayRunRequest,
    PayrollRunListResponse,
    PayrollRunOut,
    PayrollRunSummaryOut,
    UnlockRunRequest,
)
from paysuite.payroll.service import PayrollService

router = APIRouter(prefix="", tags=["payroll"])

_payroll_admin = require_role(UserRole.hr_admin, UserRole.system_admin)


def get_payroll_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PayrollService:
    """Build the orchestrator on the request session and the app-wide period locks."""
    return PayrollService.for_session(db, request.app.state.period_locks)


# ── GET /runs ────────────────────────────────────────────────────────

@router.get("/runs", response_model=PayrollRunListResponse)
async def list_runs(
    params: PaginationParams = Depends(),
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """List payroll runs, newest month first."""
    page = await service.list_runs(params)
    return PayrollRunListResponse(
        data=[PayrollRunSummaryOut.model_validate(r) for r in page.data],
        meta=page.meta,
    )


# ── GET /runs/{period} ───────────────────────────────────────────────

@router.get("/runs/{period}", response_model=PayrollRunOut)
async def get_run(
    period: str,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Get one run with its payslips."""
    run = await service.get_run(period)
    if run is None:
        raise NotFoundException("PayrollRun", period)
    return PayrollRunOut.model_validate(run)


# ── POST /runs/{period}/compute ──────────────────────────────────────

@router.post("/runs/{period}/compute", response_model=PayrollRunOut)
@limiter.limit("20/minute")
async def compute_run(
    request: Request,
    period: str,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Create or recompute the DRAFT run for a month."""
    run = await service.compute_draft(period, actor_id=employee.id)
    return PayrollRunOut.model_validate(run)


# ── POST /runs/{period}/lock ─────────────────────────────────────────

@router.post("/runs/{period}/lock", response_model=PayrollRunOut)
async def lock_run(
    period: str,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Freeze the run's payslips."""
    run = await service.lock_run(period, actor_id=employee.id)
    return PayrollRunOut.model_validate(run)


# ── POST /runs/{period}/pay ──────────────────────────────────────────

@router.post("/runs/{period}/pay", response_model=PayrollRunOut)
@limiter.limit("10/minute")
async def pay_run(
    request: Request,
    period: str,
    body: PayRunRequest,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Pay a locked run from the given cash account."""
    run = await service.pay_run(
        period, body.target_account_id, actor_id=employee.id,
    )
    return PayrollRunOut.model_validate(run)


# ── POST /runs/{period}/unlock ───────────────────────────────────────

@router.post("/runs/{period}/unlock", response_model=PayrollRunOut)
async def unlock_run(
    period: str,
    body: UnlockRunRequest,
    employee: Employee = Depends(require_role(UserRole.system_admin)),
    service: PayrollService = Depends(get_payroll_service),
):
    """Re-open a locked (unpaid) run for correction. Audited."""
    run = await service.unlock_run(period, actor_id=employee.id, reason=body.reason)
    return PayrollRunOut.model_validate(run)


# ── GET /runs/{period}/export ────────────────────────────────────────

@router.get("/runs/{period}/export", response_model=ExportResponse)
async def export_run(
    period: str,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Tabular payslip rows for spreadsheet export."""
    rows = await service.export_run(period)
    return ExportResponse(
        month=period,
        rows=[ExportRowOut(**row) for row in rows],
        total=len(rows),
    )


# ── PUT /runs/{period}/adjustments ───────────────────────────────────

@router.put("/runs/{period}/adjustments", response_model=AdjustmentListResponse)
async def save_adjustments(
    period: str,
    body: AdjustmentsRequest,
    employee: Employee = Depends(_payroll_admin),
    service: PayrollService = Depends(get_payroll_service),
):
    """Upsert manual bonus / deduction / note for the month."""
    saved = await service.save_manual_adjustments(
        period,
        [entry.model_dump() for entry in body.entries],
        actor_id=employee.id,
    )
    return AdjustmentListResponse(
        data=[AdjustmentOut.model_validate(a) for a in saved],
        total=len(saved),
    )
