'''

'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from ..database.db_enums import LessonStatusEnum
from ..core import lesson_timing
from .records import LessonRecord

# --- 1. API Input Models ---

class LessonCreate(BaseModel):
    """
    Validates the body of a booking request.
    `cost` overrides the price derived from the account's hourly rate.
    """
    student_id: UUID
    start_time: AwareDatetime
    duration_minutes: int = Field(gt=0, le=24 * 60)
    cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    title: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: bool = False
    # book anyway when the double-booking check finds overlaps
    allow_conflicts: bool = False


class LessonUpdate(BaseModel):
    """Admin edit. Omitted fields keep their current value; cost is never recomputed."""
    student_id: Optional[UUID] = None
    start_time: Optional[AwareDatetime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    notes: Optional[str] = None
    allow_conflicts: bool = False


class LessonReschedule(BaseModel):
    """Student reschedule: moves the lesson, keeps duration and cost."""
    start_time: AwareDatetime
    allow_conflicts: bool = False


# --- 2. API Output Models ---

class LessonRead(BaseModel):
    """
    A lesson as returned by the API. `status` is the stored state shown on
    the pages; the flags are evaluated at response time.
    """
    id: UUID
    student_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    cost: Decimal
    status: LessonStatusEnum
    is_recurring: bool
    recurring_group_id: Optional[UUID] = None
    notes: Optional[str] = None
    is_chargeable: bool
    can_cancel: bool
    can_reschedule: bool

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, lesson: LessonRecord, now: datetime) -> 'LessonRead':
        active = lesson.status != LessonStatusEnum.CANCELLED
        return cls(
            **lesson.model_dump(),
            is_chargeable=lesson_timing.is_ended(lesson, now),
            can_cancel=active and lesson_timing.can_cancel(lesson, now),
            can_reschedule=active and lesson_timing.can_reschedule(lesson, now),
        )


class LessonConflictRead(BaseModel):
    """
    One requested slot and the existing lesson it overlaps. The ids are left
    out when the caller is not an admin.
    """
    requested_start: datetime
    requested_end: datetime
    conflicting_lesson_id: Optional[UUID] = None
    conflicting_student_id: Optional[UUID] = None
    conflicting_start: datetime
    conflicting_end: datetime


class LessonBookingResult(BaseModel):
    lessons: list[LessonRead]
    recurring_group_id: Optional[UUID] = None
    # overlaps that were accepted because the caller allowed them
    conflicts: list[LessonConflictRead] = Field(default_factory=list)


class SeriesCancellationResult(BaseModel):
    recurring_group_id: UUID
    cancelled_lesson_ids: list[UUID]

    @property
    def cancelled_count(self) -> int:
        return len(self.cancelled_lesson_ids)
