"""Enums and constants for paysuite — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Salary catalog ──────────────────────────────────────────────────

class ComponentNature(str, enum.Enum):
    income = "income"
    deduction = "deduction"
    other = "other"


# ── Payroll ─────────────────────────────────────────────────────────

class PayrollStatus(str, enum.Enum):
    draft = "draft"
    locked = "locked"
    paid = "paid"


class SourcePeriodStatus(str, enum.Enum):
    """Lifecycle of an attendance or KPI period feeding payroll."""

    open = "open"
    locked = "locked"


# ── Ledger ──────────────────────────────────────────────────────────

class TransactionType(str, enum.Enum):
    income = "income"
    expense = "expense"


# ── Audit actions ───────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    compute = "compute"
    lock = "lock"
    pay = "pay"
    unlock = "unlock"


# ── Misc constants ──────────────────────────────────────────────────

PERIOD_FORMAT = "%Y-%m"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
