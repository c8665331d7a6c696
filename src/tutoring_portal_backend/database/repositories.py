'''
Data-access classes. These are the only place ORM rows are read or written;
everything above them works with the validated records from models/records.py.

Each repository is a FastAPI dependency sharing the request's session, so a
mutation and the balance recompute it triggers commit together.
'''
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, func, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .engine import get_db_session
from . import models as db_models
from .db_enums import UserRole, LessonStatusEnum, TransactionTypeEnum
from ..models.records import AccountRecord, LessonRecord, LedgerEntryRecord
from ..common.logger import log


class AccountRepository:
    """Reads profiles and owns the single write path to the cached balance."""

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_by_id(self, account_id: UUID) -> AccountRecord | None:
        profile = await self.db.get(db_models.Profiles, account_id)
        return AccountRecord.model_validate(profile) if profile else None

    async def get_by_email(self, email: str) -> AccountRecord | None:
        stmt = select(db_models.Profiles).filter(db_models.Profiles.email == email)
        result = await self.db.execute(stmt)
        profile = result.scalars().first()
        return AccountRecord.model_validate(profile) if profile else None

    async def list_students(self, active_only: bool = True) -> list[AccountRecord]:
        stmt = select(db_models.Profiles).filter(db_models.Profiles.role == UserRole.STUDENT.value)
        if active_only:
            stmt = stmt.filter(db_models.Profiles.is_active.is_(True))
        stmt = stmt.order_by(db_models.Profiles.student_name)
        result = await self.db.execute(stmt)
        return [AccountRecord.model_validate(p) for p in result.scalars().all()]

    def savepoint(self):
        """
        Nested transaction for work that must fail on its own, reads included.
        A failed statement otherwise aborts the whole outer transaction.
        """
        return self.db.begin_nested()

    async def update_cached_balance(self, account_id: UUID, balance: Decimal) -> None:
        """Overwrites the cached balance. Runs in a savepoint so a failure leaves the session usable."""
        async with self.db.begin_nested():
            stmt = update(db_models.Profiles).where(
                db_models.Profiles.id == account_id
            ).values(balance=balance, updated_at=func.now())
            await self.db.execute(stmt)


class LessonRepository:

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_by_id(self, lesson_id: UUID) -> LessonRecord | None:
        lesson = await self.db.get(db_models.Lessons, lesson_id)
        return LessonRecord.model_validate(lesson) if lesson else None

    async def list_for_student(self, student_id: Optional[UUID] = None) -> list[LessonRecord]:
        """All lessons of one account (or of every account), ordered by start."""
        stmt = select(db_models.Lessons)
        if student_id is not None:
            stmt = stmt.filter(db_models.Lessons.student_id == student_id)
        stmt = stmt.order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def list_ended_for_student(self, student_id: UUID, before: datetime) -> list[LessonRecord]:
        """Non-cancelled lessons of the account whose end is strictly before `before`."""
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.student_id == student_id,
            db_models.Lessons.end_time < before,
            db_models.Lessons.status != LessonStatusEnum.CANCELLED.value
        ).order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def list_active_overlapping(self, start: datetime, end: datetime) -> list[LessonRecord]:
        """Non-cancelled lessons of any account intersecting [start, end)."""
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.status != LessonStatusEnum.CANCELLED.value,
            db_models.Lessons.start_time < end,
            db_models.Lessons.end_time > start
        ).order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def list_pending_completion(self, now: datetime) -> list[LessonRecord]:
        """Lessons still `scheduled` whose end has passed."""
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.status == LessonStatusEnum.SCHEDULED.value,
            db_models.Lessons.end_time < now
        ).order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def list_starting_between(
        self,
        start: datetime,
        end: datetime,
        student_id: Optional[UUID] = None
    ) -> list[LessonRecord]:
        """Lessons of any status starting in [start, end], ordered by start."""
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.start_time >= start,
            db_models.Lessons.start_time <= end
        )
        if student_id is not None:
            stmt = stmt.filter(db_models.Lessons.student_id == student_id)
        stmt = stmt.order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def list_series(self, recurring_group_id: UUID) -> list[LessonRecord]:
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.recurring_group_id == recurring_group_id
        ).order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return [LessonRecord.model_validate(l) for l in result.scalars().all()]

    async def add_many(self, lessons: list[dict[str, Any]]) -> list[LessonRecord]:
        """Bulk insert, one flush for the whole series."""
        new_rows = [db_models.Lessons(id=uuid.uuid4(), **values) for values in lessons]
        self.db.add_all(new_rows)
        await self.db.flush()
        log.info(f"Inserted {len(new_rows)} lesson row(s).")
        return [LessonRecord.model_validate(row) for row in new_rows]

    async def update(self, lesson_id: UUID, **values: Any) -> LessonRecord:
        lesson = await self.db.get(db_models.Lessons, lesson_id)
        if lesson is None:
            raise LookupError(f"Lesson {lesson_id} not found.")
        for key, value in values.items():
            setattr(lesson, key, value)
        await self.db.flush()
        return LessonRecord.model_validate(lesson)

    async def set_status(self, lesson_id: UUID, status: LessonStatusEnum) -> None:
        """Single-row status write inside a savepoint."""
        async with self.db.begin_nested():
            stmt = update(db_models.Lessons).where(
                db_models.Lessons.id == lesson_id
            ).values(status=status.value, updated_at=func.now())
            await self.db.execute(stmt)

    async def mark_completed(self, lesson_id: UUID) -> bool:
        """
        Flips a lesson from `scheduled` to `completed` inside a savepoint.
        Returns False when the row is no longer `scheduled`, e.g. cancelled
        after the job listed it.
        """
        async with self.db.begin_nested():
            stmt = update(db_models.Lessons).where(
                db_models.Lessons.id == lesson_id,
                db_models.Lessons.status == LessonStatusEnum.SCHEDULED.value
            ).values(status=LessonStatusEnum.COMPLETED.value, updated_at=func.now())
            result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def delete(self, lesson_id: UUID) -> None:
        await self.db.execute(delete(db_models.Lessons).where(db_models.Lessons.id == lesson_id))


class LedgerRepository:

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_by_id(self, entry_id: UUID) -> LedgerEntryRecord | None:
        entry = await self.db.get(db_models.Transactions, entry_id)
        return LedgerEntryRecord.model_validate(entry) if entry else None

    async def list_for_student(self, student_id: Optional[UUID] = None) -> list[LedgerEntryRecord]:
        """Newest first."""
        stmt = select(db_models.Transactions)
        if student_id is not None:
            stmt = stmt.filter(db_models.Transactions.student_id == student_id)
        stmt = stmt.order_by(db_models.Transactions.created_at.desc())
        result = await self.db.execute(stmt)
        return [LedgerEntryRecord.model_validate(t) for t in result.scalars().all()]

    async def list_credit_entries(self, student_id: UUID) -> list[LedgerEntryRecord]:
        """The credit side of the ledger: deposits only."""
        stmt = select(db_models.Transactions).filter(
            db_models.Transactions.student_id == student_id,
            db_models.Transactions.type == TransactionTypeEnum.DEPOSIT.value
        )
        result = await self.db.execute(stmt)
        return [LedgerEntryRecord.model_validate(t) for t in result.scalars().all()]

    async def get_by_payment_reference(self, payment_reference: str) -> LedgerEntryRecord | None:
        stmt = select(db_models.Transactions).filter(
            db_models.Transactions.stripe_payment_id == payment_reference
        ).limit(1)
        result = await self.db.execute(stmt)
        entry = result.scalars().first()
        return LedgerEntryRecord.model_validate(entry) if entry else None

    async def add(self, **values: Any) -> LedgerEntryRecord:
        entry = db_models.Transactions(id=uuid.uuid4(), **values)
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return LedgerEntryRecord.model_validate(entry)

    async def add_processor_deposit(
        self,
        student_id: UUID,
        amount: Decimal,
        description: str,
        payment_reference: str
    ) -> LedgerEntryRecord | None:
        """
        Inserts a settled processor payment. Returns None when the reference is
        already recorded (unique constraint), covering concurrent deliveries
        that both passed the read-side duplicate check.
        """
        entry = db_models.Transactions(
            id=uuid.uuid4(),
            student_id=student_id,
            type=TransactionTypeEnum.DEPOSIT.value,
            amount=amount,
            description=description,
            stripe_payment_id=payment_reference
        )
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
                await self.db.flush()
        except IntegrityError:
            log.warning(f"Payment reference {payment_reference} already recorded (unique constraint).")
            return None
        await self.db.refresh(entry)
        return LedgerEntryRecord.model_validate(entry)

    async def update(self, entry_id: UUID, **values: Any) -> LedgerEntryRecord:
        entry = await self.db.get(db_models.Transactions, entry_id)
        if entry is None:
            raise LookupError(f"Transaction {entry_id} not found.")
        for key, value in values.items():
            setattr(entry, key, value)
        await self.db.flush()
        return LedgerEntryRecord.model_validate(entry)

    async def delete(self, entry_id: UUID) -> None:
        await self.db.execute(delete(db_models.Transactions).where(db_models.Transactions.id == entry_id))
