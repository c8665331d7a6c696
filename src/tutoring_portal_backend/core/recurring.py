'''
Recurring lesson series generation and lesson pricing.
'''
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Optional

from ..common.config import settings
from .lesson_timing import ensure_aware

PENNY = Decimal("0.01")


class LessonSlot(NamedTuple):
    start: datetime
    end: datetime


def generate_series_id() -> uuid.UUID:
    return uuid.uuid4()


def calculate_lesson_cost(duration_minutes: int, cost_per_hour: Decimal) -> Decimal:
    """(duration / 60) * hourly rate, rounded half-up to the penny."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive.")
    cost = Decimal(duration_minutes) / Decimal(60) * Decimal(cost_per_hour)
    return cost.quantize(PENNY, rounding=ROUND_HALF_UP)


def expand_series(
    start: datetime,
    duration_minutes: int,
    cadence_weeks: Optional[int] = None,
    count: Optional[int] = None
) -> list[LessonSlot]:
    """
    Occurrence i starts at start + i * cadence_weeks weeks and lasts
    duration_minutes. Pure generation: no conflict checks, no ids, no cost.

    The offsets are added to the absolute instant, so a series keeps a fixed
    UTC time across daylight saving changes.
    """
    ensure_aware(start, "start")
    if cadence_weeks is None:
        cadence_weeks = settings.RECURRING_CADENCE_WEEKS
    if count is None:
        count = settings.RECURRING_LESSON_COUNT

    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive.")
    if cadence_weeks <= 0:
        raise ValueError("cadence_weeks must be positive.")
    if count <= 0:
        raise ValueError("count must be positive.")

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(weeks=cadence_weeks)
    slots = []
    for i in range(count):
        slot_start = start + i * step
        slots.append(LessonSlot(start=slot_start, end=slot_start + duration))
    return slots
