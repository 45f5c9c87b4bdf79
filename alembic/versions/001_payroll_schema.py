"""001 – Payroll schema: employees, salary catalog, period inputs, runs, ledger.

Creates every table the payroll engine reads or writes. Uses
CREATE TABLE IF NOT EXISTS so the migration is safe to run against a
database where some collaborator tables were created by hand.

Revision ID: 001_payroll_schema
Revises:
Create Date: 2025-03-01 09:00:00.000000+07:00
"""

import re

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_payroll_schema"
down_revision = None
branch_labels = None
depends_on = None

_SAFE_IDENT_RE = re.compile(r'^[a-z_][a-z0-9_]*$')

# Reverse dependency order for downgrade
_TABLES = [
    "audit_trail",
    "payslips",
    "payroll_runs",
    "ledger_transactions",
    "cash_accounts",
    "payroll_adjustments",
    "kpi_records",
    "kpi_periods",
    "timesheet_entries",
    "attendance_periods",
    "employees",
    "salary_template_items",
    "salary_templates",
    "salary_components",
]


def _validate_identifier(name: str) -> str:
    if not _SAFE_IDENT_RE.match(name):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return name


def _safe_drop_table(name: str) -> None:
    _validate_identifier(name)
    op.execute(sa.text(f'DROP TABLE IF EXISTS "{name}" CASCADE'))


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ══════════════════════════════════════════════════════════════════
    # 1. Salary catalog
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS salary_components (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code              VARCHAR(50) NOT NULL UNIQUE,
            name              VARCHAR(200) NOT NULL,
            nature            VARCHAR(20) NOT NULL DEFAULT 'income',
            formula           TEXT NOT NULL DEFAULT '',
            fixed_value       NUMERIC(15,2),
            is_taxable        BOOLEAN DEFAULT FALSE,
            is_system_defined BOOLEAN DEFAULT FALSE,
            is_active         BOOLEAN DEFAULT TRUE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_salary_components_nature
                CHECK (nature IN ('income', 'deduction', 'other'))
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS salary_templates (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(200) NOT NULL UNIQUE,
            description TEXT,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS salary_template_items (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            template_id  UUID NOT NULL REFERENCES salary_templates(id) ON DELETE CASCADE,
            component_id UUID NOT NULL REFERENCES salary_components(id) ON DELETE RESTRICT,
            position     INTEGER NOT NULL,
            CONSTRAINT uq_template_item_position UNIQUE (template_id, position),
            CONSTRAINT uq_template_item_component UNIQUE (template_id, component_id)
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 2. Employees (payroll master data)
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS employees (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code      VARCHAR(20) NOT NULL UNIQUE,
            first_name         VARCHAR(100) NOT NULL,
            last_name          VARCHAR(100) NOT NULL,
            display_name       VARCHAR(255),
            email              VARCHAR(255) NOT NULL UNIQUE,
            job_title          VARCHAR(200),
            salary_template_id UUID REFERENCES salary_templates(id) ON DELETE SET NULL,
            base_salary        NUMERIC(15,2) DEFAULT 0,
            eval_salary        NUMERIC(15,2) DEFAULT 0,
            insurance_salary   NUMERIC(15,2) DEFAULT 0,
            fixed_allowance    NUMERIC(15,2) DEFAULT 0,
            dependents         INTEGER DEFAULT 0,
            is_active          BOOLEAN DEFAULT TRUE,
            created_at         TIMESTAMPTZ DEFAULT NOW(),
            updated_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_employees_active ON employees(is_active)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 3. Period inputs: attendance, KPI, manual adjustments
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS attendance_periods (
            id         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            month      VARCHAR(7) NOT NULL UNIQUE,
            status     VARCHAR(20) NOT NULL DEFAULT 'open',
            locked_at  TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS timesheet_entries (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            work_date   DATE NOT NULL,
            work_days   NUMERIC(4,2) DEFAULT 1,
            ot_hours    NUMERIC(5,2) DEFAULT 0,
            note        TEXT,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_timesheet_employee_date "
        "ON timesheet_entries(employee_id, work_date)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS kpi_periods (
            id         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            month      VARCHAR(7) NOT NULL UNIQUE,
            status     VARCHAR(20) NOT NULL DEFAULT 'open',
            locked_at  TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS kpi_records (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            month             VARCHAR(7) NOT NULL,
            commission_amount NUMERIC(15,2) DEFAULT 0,
            note              TEXT,
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_kpi_records_employee_month "
        "ON kpi_records(employee_id, month)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS payroll_adjustments (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id   UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            month         VARCHAR(7) NOT NULL,
            bonus         NUMERIC(15,2) DEFAULT 0,
            deduction     NUMERIC(15,2) DEFAULT 0,
            note          TEXT,
            updated_by_id UUID REFERENCES employees(id),
            updated_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_payroll_adjustment_employee_month UNIQUE (employee_id, month)
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 4. Ledger
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS cash_accounts (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name           VARCHAR(200) NOT NULL UNIQUE,
            account_number VARCHAR(50),
            balance        NUMERIC(18,2) DEFAULT 0,
            is_active      BOOLEAN DEFAULT TRUE,
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS ledger_transactions (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            transaction_type VARCHAR(20) NOT NULL,
            amount           NUMERIC(18,2) NOT NULL,
            category         VARCHAR(100) NOT NULL,
            description      TEXT,
            transaction_date DATE NOT NULL,
            account_id       UUID NOT NULL REFERENCES cash_accounts(id),
            reference        VARCHAR(50),
            is_payroll       BOOLEAN DEFAULT FALSE,
            performed_by_id  UUID REFERENCES employees(id),
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_ledger_transactions_account "
        "ON ledger_transactions(account_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_ledger_transactions_reference "
        "ON ledger_transactions(reference)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 5. Payroll runs + payslips
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS payroll_runs (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            month                  VARCHAR(7) NOT NULL UNIQUE,
            status                 VARCHAR(20) NOT NULL DEFAULT 'draft',
            total_amount           NUMERIC(18,2) DEFAULT 0,
            employee_count         INTEGER DEFAULT 0,
            warnings               JSONB DEFAULT '[]',
            version_id             INTEGER NOT NULL DEFAULT 1,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            computed_at            TIMESTAMPTZ,
            locked_at              TIMESTAMPTZ,
            locked_by_id           UUID REFERENCES employees(id),
            paid_at                TIMESTAMPTZ,
            paid_by_id             UUID REFERENCES employees(id),
            target_account_id      UUID REFERENCES cash_accounts(id),
            payment_transaction_id UUID REFERENCES ledger_transactions(id),
            CONSTRAINT ck_payroll_runs_status
                CHECK (status IN ('draft', 'locked', 'paid'))
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS payslips (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            run_id            UUID NOT NULL REFERENCES payroll_runs(id) ON DELETE CASCADE,
            position          INTEGER NOT NULL,
            employee_id       UUID NOT NULL REFERENCES employees(id),
            employee_code     VARCHAR(20) NOT NULL,
            employee_name     VARCHAR(255) NOT NULL,
            role_name         VARCHAR(200),
            base_salary       NUMERIC(15,2) DEFAULT 0,
            allowance         NUMERIC(15,2) DEFAULT 0,
            insurance_salary  NUMERIC(15,2) DEFAULT 0,
            actual_work_days  NUMERIC(6,2) DEFAULT 0,
            ot_hours          NUMERIC(7,2) DEFAULT 0,
            kpi_money         NUMERIC(15,2) DEFAULT 0,
            bonus             NUMERIC(15,2) DEFAULT 0,
            deduction         NUMERIC(15,2) DEFAULT 0,
            note              TEXT,
            gross_income      NUMERIC(18,2) DEFAULT 0,
            total_deduction   NUMERIC(18,2) DEFAULT 0,
            net_salary        NUMERIC(18,2) DEFAULT 0,
            details           JSONB DEFAULT '{}',
            template_snapshot JSONB,
            warnings          JSONB DEFAULT '[]',
            CONSTRAINT uq_payslip_run_employee UNIQUE (run_id, employee_id)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_payslips_run ON payslips(run_id)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 6. Audit trail
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            reason      TEXT,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_audit_trail_actor_id ON audit_trail(actor_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_audit_trail_action ON audit_trail(action)"
    )


def downgrade() -> None:
    for table in _TABLES:
        _safe_drop_table(table)
