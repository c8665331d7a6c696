'''
Booking, editing, cancelling and listing lessons.

Every mutation ends with a balance recompute for each account it touched, in
the same session as the mutation, so the lesson change and the refreshed
cached balance commit (or roll back) together.
'''
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..database.repositories import AccountRepository, LessonRepository, LedgerRepository
from ..database.db_enums import UserRole, LessonStatusEnum, LessonScope, TransactionTypeEnum
from ..models.records import AccountRecord, LessonRecord
from ..models import lessons as lesson_models
from ..core import lesson_timing
from ..core.conflicts import find_series_conflicts
from ..core.recurring import LessonSlot, expand_series, calculate_lesson_cost, generate_series_id
from ..common.exceptions import LessonConflictError
from ..common.config import settings
from ..common.logger import log
from .security import authorize_role, resolve_target_account
from .balance_service import BalanceService


class LessonService:
    """
    Service for creating, reading and managing lessons.
    Authorization is handled in all API-facing methods.
    """
    def __init__(
        self,
        accounts: Annotated[AccountRepository, Depends(AccountRepository)],
        lessons: Annotated[LessonRepository, Depends(LessonRepository)],
        ledger: Annotated[LedgerRepository, Depends(LedgerRepository)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ):
        self.accounts = accounts
        self.lessons = lessons
        self.ledger = ledger
        self.balance_service = balance_service

    # --- 1. Internal Helpers ---

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def _get_lesson_internal(self, lesson_id: UUID) -> LessonRecord:
        lesson = await self.lessons.get_by_id(lesson_id)
        if lesson is None:
            log.warning(f"Tried to fetch non-existent lesson id: {lesson_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found.")
        return lesson

    async def _get_student_internal(self, student_id: UUID) -> AccountRecord:
        student = await self.accounts.get_by_id(student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found.")
        return student

    def _authorize_lesson_owner(self, current_user: AccountRecord, lesson: LessonRecord) -> None:
        if current_user.role == UserRole.ADMIN:
            return
        if lesson.student_id != current_user.id:
            log.warning(f"SECURITY: User {current_user.id} tried to access lesson {lesson.id} they do not own.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have permission to access this lesson.")

    async def _check_conflicts(
        self,
        slots: list[LessonSlot],
        allow_conflicts: bool,
        current_user: AccountRecord,
        exclude_id: Optional[UUID] = None
    ) -> list[lesson_models.LessonConflictRead]:
        """
        Runs the double-booking check over every requested slot.
        Advisory unless STRICT_DOUBLE_BOOKING is set: the caller may accept
        the overlaps by resubmitting with allow_conflicts. Students are only told
        when the clash is, not whose lesson it is.
        """
        existing = await self.lessons.list_active_overlapping(slots[0].start, slots[-1].end)
        clashes = find_series_conflicts(slots, existing, exclude_id=exclude_id)
        redact = current_user.role != UserRole.ADMIN
        conflicts = [
            lesson_models.LessonConflictRead(
                requested_start=slot.start,
                requested_end=slot.end,
                conflicting_lesson_id=None if redact else lesson.id,
                conflicting_student_id=None if redact else lesson.student_id,
                conflicting_start=lesson.start_time,
                conflicting_end=lesson.end_time
            )
            for slot, lesson in clashes
        ]
        if conflicts and (settings.STRICT_DOUBLE_BOOKING or not allow_conflicts):
            raise LessonConflictError(conflicts)
        if conflicts:
            log.warning(f"Booking accepted with {len(conflicts)} overlapping lesson(s) by operator override.")
        return conflicts

    @staticmethod
    def _conflict_http_error(error: LessonConflictError) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "This booking overlaps existing lessons.",
                "strict": settings.STRICT_DOUBLE_BOOKING,
                "conflicts": [c.model_dump(mode="json") for c in error.conflicts]
            }
        )

    # --- 2. API-Facing Read Methods (With Auth) ---

    async def list_lessons_for_api(
        self,
        current_user: AccountRecord,
        scope: LessonScope = LessonScope.ALL,
        student_id: Optional[UUID] = None
    ) -> list[lesson_models.LessonRead]:
        """
        Admins see every lesson (optionally one student's); students their own.
        """
        log.info(f"User {current_user.id} listing lessons (scope={scope.value}, student_id={student_id})")
        if current_user.role == UserRole.ADMIN:
            target_id = student_id
        else:
            target_id = resolve_target_account(current_user, student_id)

        now = self._now()
        lessons = await self.lessons.list_for_student(target_id)
        if scope == LessonScope.UPCOMING:
            lessons = [l for l in lessons if lesson_timing.is_upcoming(l, now)]
        elif scope == LessonScope.PAST:
            lessons = [l for l in lessons if lesson_timing.is_past(l, now)]
        return [lesson_models.LessonRead.from_record(l, now) for l in lessons]

    async def get_lesson_for_api(self, lesson_id: UUID, current_user: AccountRecord) -> lesson_models.LessonRead:
        lesson = await self._get_lesson_internal(lesson_id)
        self._authorize_lesson_owner(current_user, lesson)
        return lesson_models.LessonRead.from_record(lesson, self._now())

    # --- 3. API-Facing Write Methods (With Auth) ---

    async def book_lessons(
        self,
        booking: lesson_models.LessonCreate,
        current_user: AccountRecord
    ) -> lesson_models.LessonBookingResult:
        """
        Books a single lesson or a recurring series. The cost is fixed here,
        once, and copied to every occurrence.
        """
        log.info(f"User {current_user.id} booking lesson(s) for student {booking.student_id} (recurring={booking.is_recurring})")
        authorize_role(current_user, [UserRole.ADMIN])
        student = await self._get_student_internal(booking.student_id)

        if booking.is_recurring:
            slots = expand_series(booking.start_time, booking.duration_minutes)
            series_id = generate_series_id()
        else:
            slots = [LessonSlot(booking.start_time, booking.start_time + timedelta(minutes=booking.duration_minutes))]
            series_id = None

        try:
            conflicts = await self._check_conflicts(slots, booking.allow_conflicts, current_user)
        except LessonConflictError as e:
            log.warning(f"Booking for student {student.id} rejected: {len(e.conflicts)} overlap(s).")
            raise self._conflict_http_error(e)

        cost = booking.cost if booking.cost is not None else calculate_lesson_cost(booking.duration_minutes, student.cost_per_hour)
        title = booking.title or f"Tutoring Session with {student.student_name}".strip()

        created = await self.lessons.add_many([
            {
                "student_id": student.id,
                "title": title,
                "start_time": slot.start,
                "end_time": slot.end,
                "duration_minutes": booking.duration_minutes,
                "cost": cost,
                "status": LessonStatusEnum.SCHEDULED.value,
                "is_recurring": booking.is_recurring,
                "recurring_group_id": series_id,
                "notes": booking.notes,
            }
            for slot in slots
        ])
        log.info(f"Booked {len(created)} lesson(s) for student {student.id} at {cost} each.")

        await self.balance_service.recalculate_and_persist(student.id)

        now = self._now()
        return lesson_models.LessonBookingResult(
            lessons=[lesson_models.LessonRead.from_record(l, now) for l in created],
            recurring_group_id=series_id,
            conflicts=conflicts
        )

    async def update_lesson(
        self,
        lesson_id: UUID,
        changes: lesson_models.LessonUpdate,
        current_user: AccountRecord
    ) -> lesson_models.LessonRead:
        """
        Admin edit of time, duration, cost, notes or owning student.
        Cost only changes when given explicitly.
        """
        log.info(f"User {current_user.id} updating lesson {lesson_id}")
        authorize_role(current_user, [UserRole.ADMIN])
        lesson = await self._get_lesson_internal(lesson_id)
        if lesson.status == LessonStatusEnum.CANCELLED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cancelled lessons cannot be edited.")

        values = {}
        if changes.student_id is not None and changes.student_id != lesson.student_id:
            await self._get_student_internal(changes.student_id)
            values["student_id"] = changes.student_id

        start = changes.start_time or lesson.start_time
        duration = changes.duration_minutes or lesson.duration_minutes
        if start != lesson.start_time or duration != lesson.duration_minutes:
            slot = LessonSlot(start, start + timedelta(minutes=duration))
            try:
                await self._check_conflicts([slot], changes.allow_conflicts, current_user, exclude_id=lesson.id)
            except LessonConflictError as e:
                raise self._conflict_http_error(e)
            values.update(start_time=slot.start, end_time=slot.end, duration_minutes=duration)

        if changes.cost is not None:
            values["cost"] = changes.cost
        if changes.notes is not None:
            values["notes"] = changes.notes

        if not values:
            return lesson_models.LessonRead.from_record(lesson, self._now())

        updated = await self.lessons.update(lesson.id, **values)
        # A reassigned lesson moves its charge between two accounts.
        for account_id in dict.fromkeys([lesson.student_id, updated.student_id]):
            await self.balance_service.recalculate_and_persist(account_id)
        return lesson_models.LessonRead.from_record(updated, self._now())

    async def reschedule_lesson(
        self,
        lesson_id: UUID,
        request: lesson_models.LessonReschedule,
        current_user: AccountRecord
    ) -> lesson_models.LessonRead:
        """
        Moves a lesson that has not started yet. Duration and cost are kept.
        """
        log.info(f"User {current_user.id} rescheduling lesson {lesson_id} to {request.start_time.isoformat()}")
        lesson = await self._get_lesson_internal(lesson_id)
        self._authorize_lesson_owner(current_user, lesson)

        now = self._now()
        if lesson.status == LessonStatusEnum.CANCELLED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cancelled lessons cannot be rescheduled.")
        if not lesson_timing.can_reschedule(lesson, now):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only lessons that have not started can be rescheduled.")
        if request.start_time <= now:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Lessons can only be moved to a future time.")

        slot = LessonSlot(request.start_time, request.start_time + timedelta(minutes=lesson.duration_minutes))
        try:
            await self._check_conflicts([slot], request.allow_conflicts, current_user, exclude_id=lesson.id)
        except LessonConflictError as e:
            raise self._conflict_http_error(e)

        updated = await self.lessons.update(lesson.id, start_time=slot.start, end_time=slot.end)
        await self.balance_service.recalculate_and_persist(updated.student_id)
        return lesson_models.LessonRead.from_record(updated, self._now())

    async def cancel_lesson(self, lesson_id: UUID, current_user: AccountRecord) -> lesson_models.LessonRead:
        """
        Cancels one lesson. Students are bound by the grace window, admins are not.
        A lesson that had already ended was being charged, so a refund entry is
        written as the receipt; the balance change itself comes from the lesson
        leaving the ended-cost sum.
        """
        log.info(f"User {current_user.id} cancelling lesson {lesson_id}")
        lesson = await self._get_lesson_internal(lesson_id)
        self._authorize_lesson_owner(current_user, lesson)

        now = self._now()
        if lesson.status == LessonStatusEnum.CANCELLED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Lesson is already cancelled.")
        if current_user.role != UserRole.ADMIN and not lesson_timing.can_cancel(lesson, now):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Lessons can only be cancelled up to {settings.CANCELLATION_GRACE_HOURS} hours after they end."
            )

        was_charged = lesson_timing.is_ended(lesson, now)
        await self.lessons.set_status(lesson.id, LessonStatusEnum.CANCELLED)
        # ledger amounts are strictly positive; a free lesson leaves no receipt
        if was_charged and lesson.cost > 0:
            await self.ledger.add(
                student_id=lesson.student_id,
                type=TransactionTypeEnum.REFUND.value,
                amount=lesson.cost,
                description=f"Refund for cancelled lesson on {lesson.start_time:%d/%m/%Y}",
                lesson_id=lesson.id
            )

        await self.balance_service.recalculate_and_persist(lesson.student_id, now)
        cancelled = lesson.model_copy(update={"status": LessonStatusEnum.CANCELLED})
        return lesson_models.LessonRead.from_record(cancelled, self._now())

    async def cancel_series(self, lesson_id: UUID, current_user: AccountRecord) -> lesson_models.SeriesCancellationResult:
        """
        Cancels the rest of the series the lesson belongs to: only members still
        `scheduled` whose start is after now. Past, in-progress, completed and
        already-cancelled members are left alone.
        """
        log.info(f"User {current_user.id} cancelling the series of lesson {lesson_id}")
        lesson = await self._get_lesson_internal(lesson_id)
        self._authorize_lesson_owner(current_user, lesson)
        if lesson.recurring_group_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Lesson is not part of a recurring series.")

        now = self._now()
        members = await self.lessons.list_series(lesson.recurring_group_id)
        targets = [
            m for m in members
            if m.status == LessonStatusEnum.SCHEDULED and m.start_time > now
        ]
        for member in targets:
            await self.lessons.set_status(member.id, LessonStatusEnum.CANCELLED)
        log.info(f"Cancelled {len(targets)} of {len(members)} lesson(s) in series {lesson.recurring_group_id}.")

        await self.balance_service.recalculate_and_persist(lesson.student_id, now)
        return lesson_models.SeriesCancellationResult(
            recurring_group_id=lesson.recurring_group_id,
            cancelled_lesson_ids=[m.id for m in targets]
        )

    async def delete_lesson(self, lesson_id: UUID, current_user: AccountRecord) -> None:
        """Physical delete, admin only. Cancelling is preferred for anything already charged."""
        log.info(f"User {current_user.id} deleting lesson {lesson_id}")
        authorize_role(current_user, [UserRole.ADMIN])
        lesson = await self._get_lesson_internal(lesson_id)
        await self.lessons.delete(lesson.id)
        await self.balance_service.recalculate_and_persist(lesson.student_id)
