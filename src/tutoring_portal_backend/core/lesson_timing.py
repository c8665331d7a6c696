'''
Time-based classification of lessons.

A lesson counts as "ended" (chargeable) once its end instant is strictly in
the past and it is not cancelled. This does not wait for the completion job
to flip the stored status, so a `scheduled` lesson can already be ended.
The stored status is what the pages display; `is_ended` is what the balance
uses. Both are returned side by side by the API.
'''
from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..database.db_enums import LessonStatusEnum
from ..common.config import settings


class TimedLesson(Protocol):
    start_time: datetime
    end_time: datetime
    status: str


def ensure_aware(instant: datetime, name: str = "instant") -> datetime:
    """Rejects naive datetimes; every comparison here is between absolute instants."""
    if instant.tzinfo is None or instant.tzinfo.utcoffset(instant) is None:
        raise ValueError(f"{name} must be timezone-aware, got naive datetime {instant!r}.")
    return instant


def is_cancelled(lesson: TimedLesson) -> bool:
    return lesson.status == LessonStatusEnum.CANCELLED


def is_ended(lesson: TimedLesson, now: datetime) -> bool:
    """status != cancelled and end < now. A lesson ending exactly at `now` has not ended."""
    ensure_aware(now, "now")
    return not is_cancelled(lesson) and lesson.end_time < now


def can_cancel(lesson: TimedLesson, now: datetime, grace: Optional[timedelta] = None) -> bool:
    """
    Lessons stay cancellable until the grace window after their end has passed.
    Status is not checked here; callers hide the action for cancelled lessons.
    """
    ensure_aware(now, "now")
    if grace is None:
        grace = timedelta(hours=settings.CANCELLATION_GRACE_HOURS)
    return now < lesson.end_time + grace


def can_reschedule(lesson: TimedLesson, now: datetime) -> bool:
    """Only lessons that have not started yet may be moved."""
    ensure_aware(now, "now")
    return lesson.start_time > now


def is_upcoming(lesson: TimedLesson, now: datetime) -> bool:
    """Listing filter: not started yet and not cancelled."""
    return lesson.start_time >= now and not is_cancelled(lesson)


def is_past(lesson: TimedLesson, now: datetime) -> bool:
    """Listing filter: already started, or cancelled."""
    return lesson.start_time < now or is_cancelled(lesson)
