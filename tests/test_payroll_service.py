"""Payroll orchestrator tests — compute, lock, pay, unlock, adjustments.

Exercises ``PayrollService`` directly against the SQLite test database
with the real SQL collaborators.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from paysuite.attendance.models import AttendancePeriod
from paysuite.common.audit import AuditTrail
from paysuite.common.constants import ComponentNature, PayrollStatus, SourcePeriodStatus
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
from paysuite.common.pagination import PaginationParams
from paysuite.kpi.models import KpiPeriod, KpiRecord
from paysuite.ledger.models import CashAccount, LedgerTransaction
from paysuite.ledger.service import LedgerService
from paysuite.payroll.adapters import SqlLedgerGateway, SqlPayrollSource
from paysuite.payroll.models import PayrollAdjustment, PayrollRun, Payslip
from paysuite.payroll.schemas import PayslipOut
from paysuite.payroll.service import (
    PayrollService,
    PeriodLockRegistry,
    engine_options_from_settings,
    validate_period,
)
from paysuite.salary.models import SalaryComponent
from tests.conftest import (
    TestSessionFactory,
    add_timesheet,
    create_cash_account,
    create_employee,
    create_salary_template,
)

PERIOD = "2025-03"


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed_scenario(db: AsyncSession) -> dict:
    """Two employees on one template; NV001 has KPI commission.

    NV001: 10,000,000 * 22/26 = 8,461,538 + commission 2,000,000 = 10,461,538
    NV002: 13,000,000 * 26/26 = 13,000,000 - BHXH 525,000 = 12,475,000
    """
    template = await create_salary_template(db, "Sales", [
        {"code": "LUONG_CB", "formula": "={base_salary}/{std_days}*{actual_work_days}"},
        {"code": "HOA_HONG", "formula": ""},
        {
            "code": "BHXH",
            "nature": ComponentNature.deduction,
            "formula": "{insurance_salary} * 0.105",
        },
    ])
    nv1 = await create_employee(
        db, employee_code="NV001", first_name="An", last_name="Nguyen",
        salary_template_id=template.id, base_salary=10_000_000,
    )
    nv2 = await create_employee(
        db, employee_code="NV002", first_name="Binh", last_name="Tran",
        salary_template_id=template.id, base_salary=13_000_000,
        insurance_salary=5_000_000,
    )
    await add_timesheet(db, nv1["id"], PERIOD, 22)
    await add_timesheet(db, nv2["id"], PERIOD, 26)
    db.add(KpiRecord(
        employee_id=nv1["id"], month=PERIOD, commission_amount=Decimal("2000000"),
    ))
    await db.commit()
    return {"template_id": template.id, "nv1": nv1, "nv2": nv2}


async def _lock_sources(db: AsyncSession, period: str = PERIOD) -> None:
    db.add(AttendancePeriod(month=period, status=SourcePeriodStatus.locked))
    db.add(KpiPeriod(month=period, status=SourcePeriodStatus.locked))
    await db.commit()


async def _new_account(db: AsyncSession, **kwargs) -> uuid.UUID:
    account = await create_cash_account(db, **kwargs)
    account_id = account.id
    await db.commit()
    return account_id


async def _fresh_run(period: str = PERIOD) -> PayrollRun | None:
    """Read the run through a brand-new session (no identity-map reuse)."""
    async with TestSessionFactory() as session:
        return await PayrollService.for_session(session, PeriodLockRegistry()).get_run(period)


def _slip_data(run: PayrollRun) -> list[dict]:
    return [
        PayslipOut.model_validate(slip).model_dump(exclude={"id"})
        for slip in run.slips
    ]


@pytest.fixture
def service(db) -> PayrollService:
    return PayrollService.for_session(db, PeriodLockRegistry())


# ── Period validation ───────────────────────────────────────────────


class TestValidatePeriod:
    def test_valid(self):
        assert validate_period("2025-03") == "2025-03"
        assert validate_period("1999-12") == "1999-12"

    @pytest.mark.parametrize("period", ["2025-13", "2025-00", "2025-3", "202503", "25-03", "", None, 202503])
    def test_invalid(self, period):
        with pytest.raises(InvalidPeriodFormatError):
            validate_period(period)

    async def test_invalid_period_has_no_side_effects(self, db, service):
        await _seed_scenario(db)
        with pytest.raises(InvalidPeriodFormatError):
            await service.compute_draft("2025-3")
        count = (await db.execute(select(func.count()).select_from(PayrollRun))).scalar_one()
        assert count == 0


# ── Compute ─────────────────────────────────────────────────────────


class TestComputeDraft:
    async def test_creates_draft_with_expected_amounts(self, db, service):
        await _seed_scenario(db)

        run = await service.compute_draft(PERIOD)

        assert run.status == PayrollStatus.draft
        assert run.month == PERIOD
        assert [s.employee_code for s in run.slips] == ["NV001", "NV002"]
        nv1, nv2 = run.slips
        assert nv1.details["LUONG_CB"] == 8_461_538.0
        assert nv1.details["HOA_HONG"] == 2_000_000.0
        assert nv1.net_salary == Decimal("10461538")
        assert nv1.kpi_money == Decimal("2000000")
        assert nv1.actual_work_days == Decimal("22")
        assert nv2.details["BHXH"] == 525_000.0
        assert nv2.total_deduction == Decimal("525000")
        assert nv2.net_salary == Decimal("12475000")
        assert run.total_amount == Decimal("22936538")

    async def test_aggregation_consistency(self, db, service):
        await _seed_scenario(db)
        await create_employee(db, employee_code="NV003", base_salary=7_000_000)
        await db.commit()

        run = await service.compute_draft(PERIOD)

        assert run.employee_count == len(run.slips) == 3
        assert run.total_amount == sum((s.net_salary for s in run.slips), Decimal("0"))

    async def test_recompute_is_deterministic(self, db, service):
        await _seed_scenario(db)

        first = _slip_data(await service.compute_draft(PERIOD))
        first_warnings = list((await _fresh_run()).warnings)
        second_run = await service.compute_draft(PERIOD)

        assert _slip_data(second_run) == first
        assert second_run.warnings == first_warnings

    async def test_recompute_replaces_slips(self, db, service):
        ids = await _seed_scenario(db)
        await service.compute_draft(PERIOD)

        db.add(PayrollAdjustment(
            employee_id=ids["nv2"]["id"], month=PERIOD,
            bonus=Decimal("1000000"), deduction=Decimal("0"), note="Q1 bonus",
        ))
        await db.commit()
        run = await service.compute_draft(PERIOD)

        assert run.employee_count == 2
        slip_rows = (await db.execute(select(func.count()).select_from(Payslip))).scalar_one()
        assert slip_rows == 2
        nv2 = next(s for s in run.slips if s.employee_code == "NV002")
        assert nv2.bonus == Decimal("1000000")
        assert nv2.note == "Q1 bonus"
        run_rows = (await db.execute(select(func.count()).select_from(PayrollRun))).scalar_one()
        assert run_rows == 1

    async def test_failed_recompute_keeps_previous_draft(self, db, service):
        ids = await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        before = _slip_data(await _fresh_run())

        db.add(PayrollAdjustment(
            employee_id=ids["nv1"]["id"], month=PERIOD,
            bonus=Decimal("500000"), deduction=Decimal("0"), note="Late entry",
        ))
        await db.commit()

        class _KpiOutage(SqlPayrollSource):
            calls = 0

            async def get_kpi_commission(self, employee_id, period):
                type(self).calls += 1
                if self.calls == 2:
                    raise RuntimeError("KPI store unavailable")
                return await super().get_kpi_commission(employee_id, period)

        failing = PayrollService(
            db, _KpiOutage(db), SqlLedgerGateway(db, "Payroll"),
            PeriodLockRegistry(), engine_options_from_settings(),
        )
        with pytest.raises(RuntimeError):
            await failing.compute_draft(PERIOD)

        run = await _fresh_run()
        assert run.status == PayrollStatus.draft
        assert _slip_data(run) == before

    async def test_unlocked_sources_warn(self, db, service):
        await _seed_scenario(db)
        run = await service.compute_draft(PERIOD)
        assert any("Attendance for 2025-03 is not locked" in w for w in run.warnings)
        assert any("KPI results for 2025-03 are not locked" in w for w in run.warnings)

    async def test_locked_sources_do_not_warn(self, db, service):
        await _seed_scenario(db)
        await _lock_sources(db)
        run = await service.compute_draft(PERIOD)
        assert run.warnings == []

    async def test_missing_template_yields_zero_slip_and_warning(self, db, service):
        await _lock_sources(db)
        await create_employee(
            db, employee_code="NV009", first_name="Cuong", last_name="Le",
            base_salary=9_000_000,
        )
        await db.commit()

        run = await service.compute_draft(PERIOD)

        slip = run.slips[0]
        assert slip.gross_income == Decimal("0")
        assert slip.net_salary == Decimal("0")
        assert slip.template_snapshot is None
        assert len(run.warnings) == 1
        assert "NV009" in run.warnings[0]
        assert "Cuong Le" in run.warnings[0]
        assert slip.warnings == run.warnings

    async def test_no_active_employees(self, db, service):
        await create_employee(db, employee_code="NV099", is_active=False)
        await db.commit()

        with pytest.raises(NoActiveEmployeesError):
            await service.compute_draft(PERIOD)
        assert await _fresh_run() is None

    async def test_inactive_employees_excluded(self, db, service):
        await _seed_scenario(db)
        await create_employee(db, employee_code="NV050", is_active=False, base_salary=1)
        await db.commit()
        run = await service.compute_draft(PERIOD)
        assert "NV050" not in [s.employee_code for s in run.slips]

    async def test_formula_error_is_warning_not_failure(self, db, service):
        await _lock_sources(db)
        template = await create_salary_template(db, "Broken", [
            {"code": "LUONG", "formula": "{base_salary}"},
            {"code": "LOI", "formula": "{base_salary} / {unused_leave}"},
        ])
        await create_employee(
            db, employee_code="NV010", salary_template_id=template.id, base_salary=5_000_000,
        )
        await db.commit()

        run = await service.compute_draft(PERIOD)

        assert run.slips[0].details == {"LUONG": 5_000_000.0, "LOI": 0.0}
        assert run.slips[0].net_salary == Decimal("5000000")
        assert len(run.warnings) == 1
        assert "NV010: Component LOI: division by zero" in run.warnings[0]

    async def test_single_worker(self, db):
        await _seed_scenario(db)
        sequential = PayrollService.for_session(
            db, PeriodLockRegistry(),
            replace(engine_options_from_settings(), max_workers=1),
        )
        run = await sequential.compute_draft(PERIOD)
        assert run.total_amount == Decimal("22936538")

    async def test_snapshot_survives_template_edit(self, db, service):
        ids = await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)

        component = (
            await db.execute(select(SalaryComponent).where(SalaryComponent.code == "LUONG_CB"))
        ).scalar_one()
        component.formula = "{base_salary} * 2"
        await db.commit()

        run = await _fresh_run()
        nv1 = run.slips[0]
        assert nv1.net_salary == Decimal("10461538")
        snapshot_formulas = {c["code"]: c["formula"] for c in nv1.template_snapshot["components"]}
        assert snapshot_formulas["LUONG_CB"] == "={base_salary}/{std_days}*{actual_work_days}"
        assert nv1.template_snapshot["id"] == str(ids["template_id"])

    async def test_compute_writes_audit_entry(self, db, service):
        await _seed_scenario(db)
        actor = await create_employee(db, employee_code="ZZ-ACT")
        await db.commit()

        run = await service.compute_draft(PERIOD, actor_id=actor["id"])

        entry = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "compute"))
        ).scalar_one()
        assert entry.entity_id == run.id
        assert entry.actor_id == actor["id"]
        assert entry.new_values["employee_count"] == 3


# ── State machine ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_lock_then_compute_rejected(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        run = await service.lock_run(PERIOD)
        assert run.status == PayrollStatus.locked
        assert run.locked_at is not None

        with pytest.raises(AlreadyLockedError):
            await service.compute_draft(PERIOD)
        assert (await _fresh_run()).status == PayrollStatus.locked

    async def test_lock_twice_rejected(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        with pytest.raises(AlreadyLockedError):
            await service.lock_run(PERIOD)

    async def test_lock_missing_run(self, service):
        with pytest.raises(NotFoundException):
            await service.lock_run(PERIOD)

    async def test_pay_draft_rejected(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db)
        await service.compute_draft(PERIOD)

        with pytest.raises(NotLockedError):
            await service.pay_run(PERIOD, account_id)
        assert (await _fresh_run()).status == PayrollStatus.draft

    async def test_pay_records_one_disbursement(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db, balance=100_000_000)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)

        run = await service.pay_run(PERIOD, account_id)

        assert run.status == PayrollStatus.paid
        assert run.paid_at is not None
        assert run.target_account_id == account_id
        txns = await LedgerService.list_payroll_transactions(db, PERIOD)
        assert len(txns) == 1
        assert txns[0].id == run.payment_transaction_id
        assert txns[0].amount == Decimal("22936538")
        assert txns[0].reference == PERIOD
        account = await db.get(CashAccount, account_id)
        assert account.balance == Decimal("100000000") - Decimal("22936538")

    async def test_pay_twice_rejected(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        await service.pay_run(PERIOD, account_id)

        with pytest.raises(AlreadyPaidError):
            await service.pay_run(PERIOD, account_id)
        txn_count = (
            await db.execute(select(func.count()).select_from(LedgerTransaction))
        ).scalar_one()
        assert txn_count == 1

    async def test_paid_run_cannot_be_recomputed_or_locked(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        await service.pay_run(PERIOD, account_id)

        with pytest.raises(AlreadyLockedError):
            await service.compute_draft(PERIOD)
        with pytest.raises(AlreadyPaidError):
            await service.lock_run(PERIOD)

    async def test_pay_failure_rolls_back(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db, is_active=False)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)

        with pytest.raises(ValidationException):
            await service.pay_run(PERIOD, account_id)

        run = await _fresh_run()
        assert run.status == PayrollStatus.locked
        assert run.payment_transaction_id is None
        async with TestSessionFactory() as session:
            txn_count = (
                await session.execute(select(func.count()).select_from(LedgerTransaction))
            ).scalar_one()
        assert txn_count == 0

    async def test_pay_unknown_account(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        with pytest.raises(NotFoundException):
            await service.pay_run(PERIOD, uuid.uuid4())


# ── Unlock ──────────────────────────────────────────────────────────


class TestUnlock:
    async def test_unlock_returns_to_draft_and_audits(self, db, service):
        await _seed_scenario(db)
        actor = await create_employee(db, employee_code="ZZ-SYS")
        await db.commit()
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)

        run = await service.unlock_run(PERIOD, actor["id"], "  Wrong KPI figures  ")

        assert run.status == PayrollStatus.draft
        assert run.locked_at is None
        entry = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "unlock"))
        ).scalar_one()
        assert entry.actor_id == actor["id"]
        assert entry.reason == "Wrong KPI figures"
        assert entry.old_values["status"] == "locked"
        assert entry.new_values["status"] == "draft"

        recomputed = await service.compute_draft(PERIOD)
        assert recomputed.status == PayrollStatus.draft

    async def test_unlock_requires_reason(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        with pytest.raises(ValidationException):
            await service.unlock_run(PERIOD, None, "   ")

    async def test_unlock_draft_rejected(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        with pytest.raises(NotLockedError):
            await service.unlock_run(PERIOD, None, "fix")

    async def test_unlock_paid_rejected(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        await service.pay_run(PERIOD, account_id)
        with pytest.raises(AlreadyPaidError):
            await service.unlock_run(PERIOD, None, "refund")


# ── Manual adjustments ──────────────────────────────────────────────


class TestManualAdjustments:
    async def test_upsert_and_feed_next_compute(self, db, service):
        await _lock_sources(db)
        template = await create_salary_template(db, "Bonus", [
            {"code": "LUONG", "formula": "{base_salary}"},
            {"code": "THUONG", "formula": "{bonus}"},
            {"code": "PHAT", "nature": ComponentNature.deduction, "formula": "{deduction}"},
        ])
        emp = await create_employee(
            db, employee_code="NV020", salary_template_id=template.id, base_salary=6_000_000,
        )
        await db.commit()

        await service.save_manual_adjustments(
            PERIOD, [{"employee_id": emp["id"], "bonus": 100_000, "note": "first"}],
        )
        saved = await service.save_manual_adjustments(
            PERIOD,
            [{"employee_id": emp["id"], "bonus": 500_000, "deduction": 200_000, "note": "Late x2"}],
        )
        assert saved[0].bonus == Decimal("500000")

        rows = (await db.execute(select(func.count()).select_from(PayrollAdjustment))).scalar_one()
        assert rows == 1

        run = await service.compute_draft(PERIOD)
        slip = run.slips[0]
        assert slip.gross_income == Decimal("6500000")
        assert slip.total_deduction == Decimal("200000")
        assert slip.net_salary == Decimal("6300000")
        assert slip.note == "Late x2"

    async def test_rejected_once_locked(self, db, service):
        ids = await _seed_scenario(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)
        with pytest.raises(AlreadyLockedError):
            await service.save_manual_adjustments(
                PERIOD, [{"employee_id": ids["nv1"]["id"], "bonus": 1}],
            )

    async def test_unknown_employee(self, service):
        with pytest.raises(NotFoundException):
            await service.save_manual_adjustments(PERIOD, [{"employee_id": uuid.uuid4()}])


# ── Queries ─────────────────────────────────────────────────────────


class TestQueries:
    async def test_list_runs_newest_first(self, db, service):
        await _seed_scenario(db)
        for period in ("2025-01", "2025-03", "2025-02"):
            await service.compute_draft(period)

        page = await service.list_runs(PaginationParams(page=1, page_size=2, sort=None))
        assert [r.month for r in page.data] == ["2025-03", "2025-02"]
        assert page.meta.total == 3
        assert page.meta.has_next is True

    async def test_export_rows(self, db, service):
        await _seed_scenario(db)
        await service.compute_draft(PERIOD)

        rows = await service.export_run(PERIOD)

        assert [r["employee_code"] for r in rows] == ["NV001", "NV002"]
        assert rows[0]["employee_name"] == "An Nguyen"
        assert rows[0]["net_salary"] == Decimal("10461538")
        assert rows[1]["total_deduction"] == Decimal("525000")

    async def test_export_missing_run(self, service):
        with pytest.raises(NotFoundException):
            await service.export_run(PERIOD)

    async def test_get_run_absent(self, service):
        assert await service.get_run(PERIOD) is None


# ── Concurrency ─────────────────────────────────────────────────────


class TestConcurrency:
    async def test_concurrent_pay_disburses_once(self, db, service):
        await _seed_scenario(db)
        account_id = await _new_account(db)
        await service.compute_draft(PERIOD)
        await service.lock_run(PERIOD)

        locks = PeriodLockRegistry()

        async def _pay():
            async with TestSessionFactory() as session:
                run = await PayrollService.for_session(session, locks).pay_run(PERIOD, account_id)
                return run.status

        results = await asyncio.gather(_pay(), _pay(), return_exceptions=True)

        assert results.count(PayrollStatus.paid) == 1
        assert sum(isinstance(r, AlreadyPaidError) for r in results) == 1
        async with TestSessionFactory() as session:
            txns = await LedgerService.list_payroll_transactions(session, PERIOD)
        assert len(txns) == 1

    async def test_concurrent_compute_keeps_one_run(self, db):
        await _seed_scenario(db)
        locks = PeriodLockRegistry()

        async def _compute():
            async with TestSessionFactory() as session:
                run = await PayrollService.for_session(session, locks).compute_draft(PERIOD)
                return run.employee_count

        results = await asyncio.gather(_compute(), _compute())

        assert results == [2, 2]
        async with TestSessionFactory() as session:
            runs = (await session.execute(select(func.count()).select_from(PayrollRun))).scalar_one()
            slips = (await session.execute(select(func.count()).select_from(Payslip))).scalar_one()
        assert runs == 1
        assert slips == 2

    async def test_stale_write_reported_as_conflict(self, service):
        with pytest.raises(ConcurrentModificationError):
            async with service._exclusive(PERIOD):
                raise StaleDataError("row version changed")

    def test_period_lock_registry_reuses_locks(self):
        registry = PeriodLockRegistry()
        assert registry.for_period("2025-01") is registry.for_period("2025-01")
        assert registry.for_period("2025-01") is not registry.for_period("2025-02")

    def test_period_lock_registry_holds_one_lock_per_period(self):
        registry = PeriodLockRegistry()
        for _ in range(3):
            for month in range(1, 13):
                registry.for_period(f"2025-{month:02d}")
        assert len(registry._locks) == 12
