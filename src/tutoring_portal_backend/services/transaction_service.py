'''
Ledger reads and manually recorded payments.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..database.repositories import AccountRepository, LedgerRepository
from ..database.db_enums import UserRole, TransactionTypeEnum
from ..models.records import AccountRecord, LedgerEntryRecord
from ..models import transactions as transaction_models
from ..common.logger import log
from .security import authorize_role, resolve_target_account
from .balance_service import BalanceService


class TransactionService:
    """
    Service for reading the ledger and recording payments made outside the
    payment processor. Processor deposits are immutable from here.
    """
    def __init__(
        self,
        accounts: Annotated[AccountRepository, Depends(AccountRepository)],
        ledger: Annotated[LedgerRepository, Depends(LedgerRepository)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ):
        self.accounts = accounts
        self.ledger = ledger
        self.balance_service = balance_service

    async def _get_editable_entry(self, entry_id: UUID) -> LedgerEntryRecord:
        entry = await self.ledger.get_by_id(entry_id)
        if entry is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found.")
        if not entry.is_editable:
            log.warning(f"Attempt to modify non-manual transaction {entry_id} (type={entry.type.value}).")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only manually recorded payments can be changed."
            )
        return entry

    async def list_transactions_for_api(
        self,
        current_user: AccountRecord,
        student_id: Optional[UUID] = None
    ) -> list[transaction_models.TransactionRead]:
        """Admins: everything, or one account. Students: their own history."""
        log.info(f"User {current_user.id} listing transactions (student_id={student_id})")
        if current_user.role == UserRole.ADMIN:
            target_id = student_id
        else:
            target_id = resolve_target_account(current_user, student_id)
        entries = await self.ledger.list_for_student(target_id)
        return [transaction_models.TransactionRead.model_validate(e) for e in entries]

    async def record_manual_payment(
        self,
        payment: transaction_models.ManualPaymentCreate,
        current_user: AccountRecord
    ) -> transaction_models.TransactionRead:
        log.info(f"User {current_user.id} recording manual payment of {payment.amount} for {payment.student_id}")
        authorize_role(current_user, [UserRole.ADMIN])

        student = await self.accounts.get_by_id(payment.student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found.")

        entry = await self.ledger.add(
            student_id=student.id,
            type=TransactionTypeEnum.DEPOSIT.value,
            amount=payment.amount,
            description=payment.description or f"Manual payment of £{payment.amount}"
        )
        await self.balance_service.recalculate_and_persist(student.id)
        return transaction_models.TransactionRead.model_validate(entry)

    async def update_manual_payment(
        self,
        entry_id: UUID,
        changes: transaction_models.ManualPaymentUpdate,
        current_user: AccountRecord
    ) -> transaction_models.TransactionRead:
        log.info(f"User {current_user.id} updating transaction {entry_id}")
        authorize_role(current_user, [UserRole.ADMIN])
        entry = await self._get_editable_entry(entry_id)

        values = changes.model_dump(exclude_none=True)
        if not values:
            return transaction_models.TransactionRead.model_validate(entry)

        updated = await self.ledger.update(entry.id, **values)
        await self.balance_service.recalculate_and_persist(updated.student_id)
        return transaction_models.TransactionRead.model_validate(updated)

    async def delete_manual_payment(self, entry_id: UUID, current_user: AccountRecord) -> None:
        log.info(f"User {current_user.id} deleting transaction {entry_id}")
        authorize_role(current_user, [UserRole.ADMIN])
        entry = await self._get_editable_entry(entry_id)
        await self.ledger.delete(entry.id)
        await self.balance_service.recalculate_and_persist(entry.student_id)
