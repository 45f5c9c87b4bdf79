"""Ledger service layer — cash-account lookups and payroll disbursements."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paysuite.common.constants import TransactionType
from paysuite.common.exceptions import NotFoundException, ValidationException
from paysuite.ledger.models import CashAccount, LedgerTransaction

logger = logging.getLogger(__name__)


class LedgerService:
    """Business logic for cash accounts and ledger transactions."""

    # ── Cash accounts ─────────────────────────────────────────────────

    @staticmethod
    async def get_active_account(
        db: AsyncSession,
        account_id: uuid.UUID,
    ) -> CashAccount:
        """Return the account or raise if it is missing or closed."""
        account = await db.get(CashAccount, account_id)
        if account is None:
            raise NotFoundException("CashAccount", str(account_id))
        if not account.is_active:
            raise ValidationException(
                {"target_account_id": [f"Cash account '{account.name}' is inactive."]}
            )
        return account

    # ── Disbursements ─────────────────────────────────────────────────

    @staticmethod
    async def create_payroll_disbursement(
        db: AsyncSession,
        *,
        amount: Decimal,
        period: str,
        account_id: uuid.UUID,
        category: str,
        performed_by: Optional[uuid.UUID] = None,
    ) -> LedgerTransaction:
        """Record one EXPENSE transaction paying out *period*'s payroll.

        The cash account balance is reduced by *amount*. Nothing is
        committed here; the caller owns the transaction.
        """
        account = await LedgerService.get_active_account(db, account_id)

        txn = LedgerTransaction(
            transaction_type=TransactionType.expense,
            amount=amount,
            category=category,
            description=f"Payroll disbursement {period}",
            transaction_date=date.today(),
            account_id=account.id,
            reference=period,
            is_payroll=True,
            performed_by_id=performed_by,
        )
        db.add(txn)
        account.balance = (account.balance or Decimal("0")) - amount
        await db.flush()

        logger.info(
            "Payroll disbursement %s: %s from account %s (txn %s)",
            period, amount, account.name, txn.id,
        )
        return txn

    @staticmethod
    async def list_payroll_transactions(
        db: AsyncSession,
        period: Optional[str] = None,
    ) -> list[LedgerTransaction]:
        stmt = select(LedgerTransaction).where(LedgerTransaction.is_payroll.is_(True))
        if period is not None:
            stmt = stmt.where(LedgerTransaction.reference == period)
        stmt = stmt.order_by(LedgerTransaction.created_at)
        result = await db.execute(stmt)
        return list(result.scalars().all())
