'''

'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, computed_field


class BalanceRecalculateRequest(BaseModel):
    """
    Body of POST /balance/recalculate.
    Admins may name any account; omitted means the caller's own account.
    """
    student_id: Optional[UUID] = None


class BalanceRead(BaseModel):
    """Result of a recompute, as persisted to the account."""
    student_id: UUID
    balance: Decimal
    currency: str
    as_of: datetime


class BalanceDisplay(BaseModel):
    """
    Display read for dashboards: the balance derived on the fly next to the
    cached value. The two differ only until the next recompute is persisted.
    When the ledger cannot be read, `balance` is the cached value and the
    totals are absent.
    """
    student_id: UUID
    balance: Decimal
    cached_balance: Decimal
    total_credits: Optional[Decimal] = None
    total_charged: Optional[Decimal] = None
    fetch_failed: bool = False
    currency: str
    as_of: datetime

    @computed_field
    @property
    def is_stale(self) -> bool:
        return self.fetch_failed or self.balance != self.cached_balance


class AccountBalanceSummary(BaseModel):
    student_id: UUID
    student_name: str
    parent_name: str
    cached_balance: Decimal


class BalanceOverview(BaseModel):
    """Admin dashboard overview of the cached balances."""
    accounts: list[AccountBalanceSummary]
    currency: str

    @computed_field
    @property
    def total_balance(self) -> Decimal:
        return sum((account.cached_balance for account in self.accounts), Decimal("0.00"))
