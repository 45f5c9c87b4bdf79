"""Payroll run orchestrator — compute, lock, pay and unlock monthly runs.

State machine::

    (absent) ──compute──▶ DRAFT ──lock──▶ LOCKED ──pay──▶ PAID
                           ▲  │compute       │
                           └──┘              │unlock (administrative, audited)
                           ◀─────────────────┘

Every operation on a period runs under that period's ``asyncio.Lock`` and
inside one database transaction; the run row is read ``FOR UPDATE`` and
carries a version counter, so two writers can never both succeed.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from paysuite.common.audit import create_audit_entry
from paysuite.common.constants import AuditAction, PayrollStatus
from paysuite.common.exceptions import (
    AlreadyLockedError,
    AlreadyPaidError,
    ConcurrentModificationError,
    InvalidPeriodFormatError,
    NoActiveEmployeesError,
    NotFoundException,
    NotLockedError,
    ValidationException,
)
from paysuite.common.pagination import PaginatedResponse, PaginationParams, paginate
from paysuite.config import settings
from paysuite.core_hr.models import Employee
from paysuite.payroll.adapters import SqlLedgerGateway, SqlPayrollSource
from paysuite.payroll.builder import ComputedPayslip, build
from paysuite.payroll.models import PayrollAdjustment, PayrollRun, Payslip
from paysuite.payroll.ports import (
    EmployeeRecord,
    EngineOptions,
    LedgerGateway,
    PayrollSource,
    PeriodInputs,
    SalaryTemplateSnapshot,
)

logger = logging.getLogger(__name__)

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

_ENTITY_TYPE = "payroll_run"


def validate_period(period: Any) -> str:
    """Return *period* if it is a ``YYYY-MM`` month, else raise."""
    if not isinstance(period, str) or not _PERIOD_RE.match(period):
        raise InvalidPeriodFormatError(period)
    return period


def engine_options_from_settings() -> EngineOptions:
    return EngineOptions(
        standard_days=settings.PAYROLL_STANDARD_DAYS,
        net_pay_code=settings.PAYROLL_NET_PAY_CODE,
        commission_codes=frozenset(settings.commission_codes_list),
        money_decimals=settings.PAYROLL_MONEY_DECIMALS,
        max_workers=settings.PAYROLL_MAX_WORKERS,
    )


def _money(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PeriodLockRegistry:
    """One ``asyncio.Lock`` per payroll period; owned by the application.

    Locks are never evicted. Periods are months, so the registry grows by
    twelve entries a year at most, and dropping a lock that a waiter still
    holds would let a second writer in.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def for_period(self, period: str) -> asyncio.Lock:
        lock = self._locks.get(period)
        if lock is None:
            lock = self._locks[period] = asyncio.Lock()
        return lock


# ── ORM conversion ──────────────────────────────────────────────────

def _to_row(position: int, slip: ComputedPayslip) -> Payslip:
    return Payslip(
        position=position,
        employee_id=slip.employee_id,
        employee_code=slip.employee_code,
        employee_name=slip.employee_name,
        role_name=slip.role_name,
        base_salary=_money(slip.base_salary),
        allowance=_money(slip.allowance),
        insurance_salary=_money(slip.insurance_salary),
        actual_work_days=_money(slip.actual_work_days),
        ot_hours=_money(slip.ot_hours),
        kpi_money=_money(slip.kpi_money),
        bonus=_money(slip.bonus),
        deduction=_money(slip.deduction),
        note=slip.note or None,
        gross_income=_money(slip.gross_income),
        total_deduction=_money(slip.total_deduction),
        net_salary=_money(slip.net_salary),
        details=dict(slip.details),
        template_snapshot=slip.template_snapshot,
        warnings=list(slip.warnings),
    )


def _run_state(run: PayrollRun) -> dict[str, Any]:
    return {
        "status": run.status.value,
        "total_amount": str(run.total_amount),
        "employee_count": run.employee_count,
    }


class PayrollService:
    """Coordinates payslip computation and the DRAFT → LOCKED → PAID lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        source: PayrollSource,
        ledger: LedgerGateway,
        locks: PeriodLockRegistry,
        options: Optional[EngineOptions] = None,
    ) -> None:
        self._db = db
        self._source = source
        self._ledger = ledger
        self._locks = locks
        self._options = options or EngineOptions()

    @classmethod
    def for_session(
        cls,
        db: AsyncSession,
        locks: PeriodLockRegistry,
        options: Optional[EngineOptions] = None,
    ) -> PayrollService:
        """Wire the SQL collaborators onto *db*."""
        return cls(
            db,
            SqlPayrollSource(db),
            SqlLedgerGateway(db, settings.PAYROLL_EXPENSE_CATEGORY),
            locks,
            options or engine_options_from_settings(),
        )

    # ── Transaction / locking helpers ─────────────────────────────────

    @asynccontextmanager
    async def _exclusive(self, period: str) -> AsyncIterator[None]:
        """Serialize work on *period* and commit it atomically."""
        async with self._locks.for_period(period):
            try:
                yield
                await self._db.commit()
            except (StaleDataError, IntegrityError) as exc:
                await self._db.rollback()
                raise ConcurrentModificationError(period) from exc
            except Exception:
                await self._db.rollback()
                raise

    async def _load_for_update(self, period: str) -> Optional[PayrollRun]:
        result = await self._db.execute(
            select(PayrollRun)
            .where(PayrollRun.month == period)
            .options(selectinload(PayrollRun.slips))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _require_run(self, period: str) -> PayrollRun:
        run = await self._load_for_update(period)
        if run is None:
            raise NotFoundException("PayrollRun", period)
        return run

    # ── Queries ───────────────────────────────────────────────────────

    async def get_run(self, period: str) -> Optional[PayrollRun]:
        period = validate_period(period)
        result = await self._db.execute(
            select(PayrollRun)
            .where(PayrollRun.month == period)
            .options(selectinload(PayrollRun.slips))
        )
        return result.scalars().first()

    async def list_runs(self, params: PaginationParams) -> PaginatedResponse:
        """All runs, newest month first."""
        query = select(PayrollRun).order_by(PayrollRun.month.desc())
        return await paginate(self._db, query, params, model=PayrollRun)

    async def export_run(self, period: str) -> list[dict[str, Any]]:
        """Tabular rows for the run's payslips; rendering is left to the caller."""
        run = await self.get_run(period)
        if run is None:
            raise NotFoundException("PayrollRun", period)
        return [
            {
                "employee_code": slip.employee_code,
                "employee_name": slip.employee_name,
                "role_name": slip.role_name or "",
                "base_salary": slip.base_salary,
                "actual_work_days": slip.actual_work_days,
                "kpi_money": slip.kpi_money,
                "gross_income": slip.gross_income,
                "total_deduction": slip.total_deduction,
                "net_salary": slip.net_salary,
                "note": slip.note or "",
            }
            for slip in run.slips
        ]

    # ── Compute (create / recompute DRAFT) ────────────────────────────

    async def _collect_inputs(
        self, period: str, employees: Sequence[EmployeeRecord],
    ) -> list[tuple[EmployeeRecord, Optional[SalaryTemplateSnapshot], PeriodInputs]]:
        holiday_days = await self._source.get_holiday_day_count(period)
        jobs = []
        for employee in employees:
            template = None
            if employee.template_id is not None:
                template = await self._source.get_salary_template(employee.template_id)
            inputs = PeriodInputs(
                timesheet=await self._source.get_timesheet_totals(employee.id, period),
                kpi_money=await self._source.get_kpi_commission(employee.id, period),
                adjustment=await self._source.get_manual_adjustments(employee.id, period),
                holiday_days=holiday_days,
            )
            jobs.append((employee, template, inputs))
        return jobs

    async def _build_payslips(self, jobs) -> list[ComputedPayslip]:
        workers = self._options.max_workers
        if workers <= 1 or len(jobs) <= 1:
            slips = [build(emp, tpl, inputs, self._options) for emp, tpl, inputs in jobs]
        else:
            loop = asyncio.get_running_loop()
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payslip") as pool:
                slips = await asyncio.gather(*(
                    loop.run_in_executor(pool, build, emp, tpl, inputs, self._options)
                    for emp, tpl, inputs in jobs
                ))
        return sorted(slips, key=lambda s: (s.employee_code, str(s.employee_id)))

    async def compute_draft(
        self,
        period: str,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Create the DRAFT run for *period* or fully recompute it.

        Non-fatal problems (bad formulas, missing templates, unlocked source
        data) end up in ``run.warnings``; the computation itself succeeds.
        """
        period = validate_period(period)
        async with self._exclusive(period):
            run = await self._load_for_update(period)
            if run is not None and run.status != PayrollStatus.draft:
                raise AlreadyLockedError(period, run.status.value)

            employees = await self._source.list_active_employees()
            if not employees:
                raise NoActiveEmployeesError(period)

            warnings = await self._source.get_period_warnings(period)
            computed = await self._build_payslips(
                await self._collect_inputs(period, employees)
            )
            for slip in computed:
                warnings.extend(slip.warnings)

            old_state = _run_state(run) if run is not None else None
            if run is None:
                run = PayrollRun(month=period, status=PayrollStatus.draft, slips=[])
                self._db.add(run)
            else:
                run.slips.clear()
                await self._db.flush()

            run.slips.extend(_to_row(i, slip) for i, slip in enumerate(computed))
            run.total_amount = sum(
                (_money(slip.net_salary) for slip in computed), Decimal("0"),
            )
            run.employee_count = len(computed)
            run.warnings = warnings
            run.computed_at = _now()
            await self._db.flush()

            await create_audit_entry(
                self._db,
                action=AuditAction.compute.value,
                entity_type=_ENTITY_TYPE,
                entity_id=run.id,
                actor_id=actor_id,
                old_values=old_state,
                new_values=_run_state(run),
            )

        logger.info(
            "Payroll %s computed: %d employees, total %s",
            period, run.employee_count, run.total_amount,
        )
        if warnings:
            logger.warning("Payroll %s computed with %d warning(s)", period, len(warnings))
        return run

    # ── Lock ──────────────────────────────────────────────────────────

    async def lock_run(
        self,
        period: str,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """DRAFT → LOCKED: the current payslips become the permanent record."""
        period = validate_period(period)
        async with self._exclusive(period):
            run = await self._require_run(period)
            if run.status == PayrollStatus.paid:
                raise AlreadyPaidError(period)
            if run.status == PayrollStatus.locked:
                raise AlreadyLockedError(period)

            old_state = _run_state(run)
            run.status = PayrollStatus.locked
            run.locked_at = _now()
            run.locked_by_id = actor_id
            await self._db.flush()

            await create_audit_entry(
                self._db,
                action=AuditAction.lock.value,
                entity_type=_ENTITY_TYPE,
                entity_id=run.id,
                actor_id=actor_id,
                old_values=old_state,
                new_values=_run_state(run),
            )

        logger.info("Payroll %s locked by %s", period, actor_id)
        return run

    # ── Pay ───────────────────────────────────────────────────────────

    async def pay_run(
        self,
        period: str,
        target_account_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """LOCKED → PAID, recording exactly one ledger disbursement."""
        period = validate_period(period)
        async with self._exclusive(period):
            run = await self._require_run(period)
            if run.status == PayrollStatus.paid:
                raise AlreadyPaidError(period)
            if run.status != PayrollStatus.locked:
                raise NotLockedError(period)

            old_state = _run_state(run)
            transaction_id = await self._ledger.create_ledger_disbursement(
                run.total_amount, period, target_account_id, actor_id,
            )
            run.status = PayrollStatus.paid
            run.paid_at = _now()
            run.paid_by_id = actor_id
            run.target_account_id = target_account_id
            run.payment_transaction_id = transaction_id
            await self._db.flush()

            await create_audit_entry(
                self._db,
                action=AuditAction.pay.value,
                entity_type=_ENTITY_TYPE,
                entity_id=run.id,
                actor_id=actor_id,
                old_values=old_state,
                new_values={
                    **_run_state(run),
                    "payment_transaction_id": str(transaction_id),
                },
            )

        logger.info(
            "Payroll %s paid: %s from account %s (txn %s)",
            period, run.total_amount, target_account_id, transaction_id,
        )
        return run

    # ── Unlock (administrative override) ──────────────────────────────

    async def unlock_run(
        self,
        period: str,
        actor_id: Optional[uuid.UUID],
        reason: str,
    ) -> PayrollRun:
        """LOCKED → DRAFT so the run can be corrected before payment."""
        period = validate_period(period)
        if not reason or not reason.strip():
            raise ValidationException({"reason": ["A reason is required to unlock a run."]})

        async with self._exclusive(period):
            run = await self._require_run(period)
            if run.status == PayrollStatus.paid:
                raise AlreadyPaidError(period)
            if run.status != PayrollStatus.locked:
                raise NotLockedError(period)

            old_state = _run_state(run)
            run.status = PayrollStatus.draft
            run.locked_at = None
            run.locked_by_id = None
            await self._db.flush()

            await create_audit_entry(
                self._db,
                action=AuditAction.unlock.value,
                entity_type=_ENTITY_TYPE,
                entity_id=run.id,
                actor_id=actor_id,
                old_values=old_state,
                new_values=_run_state(run),
                reason=reason.strip(),
            )

        logger.warning(
            "Payroll %s UNLOCKED by %s: %s", period, actor_id, reason.strip(),
        )
        return run

    # ── Manual monthly inputs ─────────────────────────────────────────

    async def save_manual_adjustments(
        self,
        period: str,
        entries: Sequence[dict[str, Any]],
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[PayrollAdjustment]:
        """Upsert bonus / deduction / note per employee for *period*.

        Rejected once the period's run is locked or paid.
        """
        period = validate_period(period)
        async with self._exclusive(period):
            run = await self._load_for_update(period)
            if run is not None and run.status == PayrollStatus.paid:
                raise AlreadyPaidError(period)
            if run is not None and run.status == PayrollStatus.locked:
                raise AlreadyLockedError(period)

            saved: list[PayrollAdjustment] = []
            for entry in entries:
                employee_id = entry["employee_id"]
                if await self._db.get(Employee, employee_id) is None:
                    raise NotFoundException("Employee", str(employee_id))

                result = await self._db.execute(
                    select(PayrollAdjustment).where(
                        PayrollAdjustment.employee_id == employee_id,
                        PayrollAdjustment.month == period,
                    )
                )
                adjustment = result.scalars().first()
                if adjustment is None:
                    adjustment = PayrollAdjustment(employee_id=employee_id, month=period)
                    self._db.add(adjustment)
                adjustment.bonus = Decimal(str(entry.get("bonus") or 0))
                adjustment.deduction = Decimal(str(entry.get("deduction") or 0))
                adjustment.note = entry.get("note") or None
                adjustment.updated_by_id = actor_id
                saved.append(adjustment)
            await self._db.flush()

        logger.info("Payroll %s: saved %d manual adjustment(s)", period, len(saved))
        return saved
