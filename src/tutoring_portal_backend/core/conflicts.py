'''
Double-booking detection.

Lessons are half-open intervals [start, end). Two intervals overlap when each
starts before the other ends, so back-to-back lessons never conflict.
'''
from datetime import datetime
from typing import Iterable, Optional, Protocol, TypeVar
from uuid import UUID

from .lesson_timing import TimedLesson, is_cancelled
from .recurring import LessonSlot


class IdentifiedLesson(TimedLesson, Protocol):
    id: UUID


L = TypeVar('L', bound=IdentifiedLesson)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and end_a > start_b


def find_conflict(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_lessons: Iterable[L],
    exclude_id: Optional[UUID] = None
) -> Optional[L]:
    """
    Returns the first non-cancelled lesson overlapping [candidate_start, candidate_end),
    or None. `exclude_id` skips the lesson being edited.
    """
    if candidate_end <= candidate_start:
        raise ValueError("candidate_end must be after candidate_start.")
    for lesson in existing_lessons:
        if is_cancelled(lesson):
            continue
        if exclude_id is not None and lesson.id == exclude_id:
            continue
        if overlaps(candidate_start, candidate_end, lesson.start_time, lesson.end_time):
            return lesson
    return None


def find_series_conflicts(
    slots: Iterable[LessonSlot],
    existing_lessons: Iterable[L],
    exclude_id: Optional[UUID] = None
) -> list[tuple[LessonSlot, L]]:
    """Checks every occurrence of a booking and pairs each clashing slot with its lesson."""
    existing = list(existing_lessons)
    clashes = []
    for slot in slots:
        conflict = find_conflict(slot.start, slot.end, existing, exclude_id)
        if conflict is not None:
            clashes.append((slot, conflict))
    return clashes
