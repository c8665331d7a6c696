'''
The balance recompute wrapper and the balance read surfaces.

`recalculate_and_persist` is the single writer of the cached balance. Every
surface that changes the ledger or a lesson calls it afterwards; it always
overwrites the cached value from a full recompute, so concurrent or repeated
calls converge on the same number.
'''
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Iterable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..database.repositories import AccountRepository, LessonRepository, LedgerRepository
from ..database.db_enums import UserRole
from ..models.records import AccountRecord
from ..models import balance as balance_models
from ..core.balance import derive_balance, sum_credits, sum_ended_lesson_costs
from ..core.lesson_timing import ensure_aware
from ..common.exceptions import AccountNotFoundError, BalanceRecalculationError, BalancePersistError
from ..common.config import settings
from ..common.logger import log
from .security import authorize_role, resolve_target_account


class BalanceService:
    """
    Service for recomputing, persisting and reading account balances.
    """
    def __init__(
        self,
        accounts: Annotated[AccountRepository, Depends(AccountRepository)],
        lessons: Annotated[LessonRepository, Depends(LessonRepository)],
        ledger: Annotated[LedgerRepository, Depends(LedgerRepository)]
    ):
        self.accounts = accounts
        self.lessons = lessons
        self.ledger = ledger

    # --- 1. Recompute (No Auth) ---

    async def recalculate_and_persist(
        self,
        account_id: UUID,
        reference_instant: Optional[datetime] = None
    ) -> Decimal:
        """
        Fetches the deposits and the ended lessons of the account, derives the
        balance and overwrites the cached field with it.

        Raises AccountNotFoundError for an unknown account, BalanceRecalculationError
        when a read fails (nothing is written), BalancePersistError when the
        write fails (the computed value travels with the exception).
        """
        now = ensure_aware(reference_instant, "reference_instant") if reference_instant else datetime.now(timezone.utc)
        log.info(f"Recalculating balance for account {account_id} as of {now.isoformat()}")

        try:
            account = await self.accounts.get_by_id(account_id)
        except Exception as e:
            log.error(f"Failed to load account {account_id} for recompute: {e}", exc_info=True)
            raise BalanceRecalculationError(account_id, str(e)) from e
        if account is None:
            raise AccountNotFoundError(account_id)

        try:
            credits = await self.ledger.list_credit_entries(account_id)
            ended_lessons = await self.lessons.list_ended_for_student(account_id, now)
        except Exception as e:
            log.error(f"Failed to fetch ledger rows for account {account_id}; cached balance left untouched: {e}", exc_info=True)
            raise BalanceRecalculationError(account_id, str(e)) from e

        balance = derive_balance(credits, ended_lessons, now)

        if balance == account.balance:
            log.info(f"Balance for account {account_id} unchanged at {balance}; skipping write.")
            return balance

        try:
            await self.accounts.update_cached_balance(account_id, balance)
        except Exception as e:
            log.error(f"Computed balance {balance} for account {account_id} but could not persist it: {e}", exc_info=True)
            raise BalancePersistError(account_id, balance, str(e)) from e

        log.info(f"Balance for account {account_id} updated from {account.balance} to {balance}")
        return balance

    async def recalculate_many(
        self,
        account_ids: Iterable[UUID],
        reference_instant: Optional[datetime] = None
    ) -> tuple[list[UUID], list[UUID]]:
        """
        Recomputes each distinct account once, each in its own savepoint. A
        failure on one account is logged and does not stop the others.
        Returns (succeeded, failed).
        """
        succeeded, failed = [], []
        for account_id in dict.fromkeys(account_ids):
            try:
                async with self.accounts.savepoint():
                    await self.recalculate_and_persist(account_id, reference_instant)
                succeeded.append(account_id)
            except Exception as e:
                log.error(f"Balance recompute failed for account {account_id}, continuing: {e}")
                failed.append(account_id)
        return succeeded, failed

    async def _last_known_balance(self, account_id: UUID) -> Optional[Decimal]:
        try:
            account = await self.accounts.get_by_id(account_id)
        except Exception as e:
            log.error(f"Could not read the cached balance of account {account_id} either: {e}")
            return None
        return account.balance if account else None

    # --- 2. API-Facing Methods (With Auth) ---

    async def recalculate_for_api(
        self,
        current_user: AccountRecord,
        student_id: Optional[UUID] = None
    ) -> balance_models.BalanceRead:
        """
        Recompute requested from a page. Students may only recompute their own
        account; admins may name any account.
        """
        target_id = resolve_target_account(current_user, student_id)
        now = datetime.now(timezone.utc)
        try:
            async with self.accounts.savepoint():
                balance = await self.recalculate_and_persist(target_id, now)
        except AccountNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found.")
        except (BalanceRecalculationError, BalancePersistError) as e:
            cached = await self._last_known_balance(target_id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "message": f"Failed to recalculate balance; the displayed balance may be stale. ({e})",
                    "cached_balance": str(cached) if cached is not None else None,
                    "is_stale": True
                }
            )
        return balance_models.BalanceRead(
            student_id=target_id, balance=balance, currency=settings.CURRENCY, as_of=now
        )

    async def get_balance_display(
        self,
        current_user: AccountRecord,
        student_id: UUID
    ) -> balance_models.BalanceDisplay:
        """
        Derives the balance on the fly without writing it, next to the cached
        value. Both come from the same pure function, so they agree once the
        cache has been refreshed.
        """
        target_id = resolve_target_account(current_user, student_id)
        now = datetime.now(timezone.utc)
        log.info(f"User {current_user.id} requesting balance display for account {target_id}")

        account = await self.accounts.get_by_id(target_id)
        if account is None or account.role != UserRole.STUDENT:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found.")

        try:
            async with self.accounts.savepoint():
                credits = await self.ledger.list_credit_entries(target_id)
                ended_lessons = await self.lessons.list_ended_for_student(target_id, now)
        except Exception as e:
            log.error(f"Balance display for account {target_id} falling back to the cached value: {e}", exc_info=True)
            return balance_models.BalanceDisplay(
                student_id=target_id,
                balance=account.balance,
                cached_balance=account.balance,
                fetch_failed=True,
                currency=settings.CURRENCY,
                as_of=now
            )

        return balance_models.BalanceDisplay(
            student_id=target_id,
            balance=derive_balance(credits, ended_lessons, now),
            cached_balance=account.balance,
            total_credits=sum_credits(credits),
            total_charged=sum_ended_lesson_costs(ended_lessons, now),
            currency=settings.CURRENCY,
            as_of=now
        )

    async def get_overview(self, current_user: AccountRecord) -> balance_models.BalanceOverview:
        """Admin dashboard: cached balances of every active student."""
        authorize_role(current_user, [UserRole.ADMIN])
        students = await self.accounts.list_students(active_only=True)
        return balance_models.BalanceOverview(
            accounts=[
                balance_models.AccountBalanceSummary(
                    student_id=s.id,
                    student_name=s.student_name,
                    parent_name=s.parent_name,
                    cached_balance=s.balance
                )
                for s in students
            ],
            currency=settings.CURRENCY
        )
