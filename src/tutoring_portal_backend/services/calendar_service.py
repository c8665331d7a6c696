'''
Calendar subscription feeds: one per student and one covering every account.
'''
from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..database.repositories import AccountRepository, LessonRepository
from ..database.db_enums import UserRole
from ..models.records import AccountRecord
from ..core.calendar_feed import build_student_feed, build_admin_feed
from ..common.config import settings
from ..common.logger import log
from .security import authorize_role, resolve_target_account


class CalendarFeedService:
    """
    Renders lessons from CALENDAR_PAST_DAYS ago up to CALENDAR_FUTURE_DAYS
    ahead as iCalendar documents.
    """
    def __init__(
        self,
        accounts: Annotated[AccountRepository, Depends(AccountRepository)],
        lessons: Annotated[LessonRepository, Depends(LessonRepository)]
    ):
        self.accounts = accounts
        self.lessons = lessons

    @staticmethod
    def _window(now: datetime) -> tuple[datetime, datetime]:
        return (
            now - timedelta(days=settings.CALENDAR_PAST_DAYS),
            now + timedelta(days=settings.CALENDAR_FUTURE_DAYS)
        )

    async def student_feed_for_api(self, student_id: UUID, current_user: AccountRecord) -> bytes:
        target_id = resolve_target_account(current_user, student_id)
        student = await self.accounts.get_by_id(target_id)
        if student is None or student.role != UserRole.STUDENT:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found.")

        now = datetime.now(timezone.utc)
        start, end = self._window(now)
        lessons = await self.lessons.list_starting_between(start, end, student_id=target_id)
        log.info(f"User {current_user.id} fetched the calendar feed of account {target_id} ({len(lessons)} lesson(s)).")
        return build_student_feed(student, lessons, now, settings.CALENDAR_DOMAIN)

    async def admin_feed_for_api(self, current_user: AccountRecord) -> bytes:
        authorize_role(current_user, [UserRole.ADMIN])
        now = datetime.now(timezone.utc)
        start, end = self._window(now)
        lessons = await self.lessons.list_starting_between(start, end)
        students = await self.accounts.list_students(active_only=False)
        log.info(f"Admin {current_user.id} fetched the full calendar feed ({len(lessons)} lesson(s)).")
        return build_admin_feed(lessons, {s.id: s for s in students}, now, settings.CALENDAR_DOMAIN)
