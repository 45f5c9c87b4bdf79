"""Ledger ORM models: CashAccount, LedgerTransaction."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paysuite.common.constants import TransactionType
from paysuite.database import Base


class CashAccount(Base):
    """Bank or cash account that payroll can be disbursed from."""

    __tablename__ = "cash_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), unique=True, nullable=False)
    account_number: Mapped[Optional[str]] = mapped_column(sa.String(50))
    balance: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), default=0)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<CashAccount {self.name!r}>"


class LedgerTransaction(Base):
    """Money movement against a cash account."""

    __tablename__ = "ledger_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        sa.Enum(
            TransactionType,
            name="transaction_type",
            native_enum=False,
            length=20,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    transaction_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("cash_accounts.id"), nullable=False,
    )
    reference: Mapped[Optional[str]] = mapped_column(sa.String(50))
    is_payroll: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    performed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account: Mapped[CashAccount] = relationship(foreign_keys=[account_id])

    __table_args__ = (
        sa.Index("ix_ledger_transactions_account", "account_id"),
        sa.Index("ix_ledger_transactions_reference", "reference"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.transaction_type.value} "
            f"{self.amount} account={self.account_id}>"
        )
