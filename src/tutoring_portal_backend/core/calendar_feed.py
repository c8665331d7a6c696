'''
iCalendar rendering of lessons for calendar subscriptions.

Text values are escaped by icalendar itself (backslash, semicolon, comma and
newline), so summaries and notes are passed through as plain strings.
'''
import re
from datetime import datetime
from typing import Iterable
from uuid import UUID

from icalendar import Calendar, Event

from ..database.db_enums import LessonStatusEnum
from ..models.records import AccountRecord, LessonRecord

STUDENT_PRODID = "-//Tutoring Portal//Calendar//EN"
ADMIN_PRODID = "-//Tutoring Portal//Admin Calendar//EN"

_TITLE_NAME = re.compile(r"Tutoring Session with (.+)")


def _new_calendar(prodid: str, name: str, timezone_name: str) -> Calendar:
    cal = Calendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", name)
    cal.add("x-wr-timezone", timezone_name)
    return cal


def _new_event(uid: str, lesson: LessonRecord, now: datetime) -> Event:
    event = Event()
    event.add("uid", uid)
    event.add("dtstamp", now)
    event.add("dtstart", lesson.start_time)
    event.add("dtend", lesson.end_time)
    return event


def lesson_display_name(lesson: LessonRecord, student: AccountRecord) -> str:
    """The child named in a default title, else the account's first student name."""
    match = _TITLE_NAME.match(lesson.title or "")
    if match:
        return match.group(1).strip()
    return student.student_name.split(",")[0].strip() or student.parent_name


def build_student_feed(
    student: AccountRecord,
    lessons: Iterable[LessonRecord],
    now: datetime,
    domain: str
) -> bytes:
    """One family's lessons. Cancelled lessons are left out of the feed."""
    cal = _new_calendar(
        STUDENT_PRODID,
        f"Tutoring - {student.student_name or student.parent_name or 'Lessons'}",
        "Europe/London"
    )
    for lesson in lessons:
        if lesson.status == LessonStatusEnum.CANCELLED:
            continue
        description = f"{lesson.duration_minutes} minute session"
        if lesson.notes:
            description += f"\n\nNotes: {lesson.notes}"

        event = _new_event(f"lesson-{lesson.id}@{domain}", lesson, now)
        event.add("summary", f"Tutoring: {lesson_display_name(lesson, student)}")
        event.add("description", description)
        event.add("status", "CONFIRMED")
        cal.add_component(event)
    return cal.to_ical()


def build_admin_feed(
    lessons: Iterable[LessonRecord],
    accounts: dict[UUID, AccountRecord],
    now: datetime,
    domain: str
) -> bytes:
    """
    Every account's lessons. Cancelled lessons stay in the feed, marked as
    such, so the tutor's calendar shows the freed slot.
    """
    cal = _new_calendar(ADMIN_PRODID, "All Tutoring Sessions", "UTC")
    for lesson in lessons:
        student = accounts.get(lesson.student_id)
        name = lesson_display_name(lesson, student) if student else "Student"
        cancelled = lesson.status == LessonStatusEnum.CANCELLED

        lines = [
            f"Student: {student.student_name if student else 'Unknown'}",
            f"Parent: {student.parent_name if student else 'Unknown'}",
            f"Duration: {lesson.duration_minutes} minutes",
            f"Cost: £{lesson.cost:.2f}",
        ]
        if lesson.notes:
            lines.append(f"Notes: {lesson.notes}")

        event = _new_event(f"{lesson.id}@{domain}", lesson, now)
        event.add("summary", f"{name} [CANCELLED]" if cancelled else name)
        event.add("description", "\n".join(lines))
        event.add("status", "CANCELLED" if cancelled else "CONFIRMED")
        cal.add_component(event)
    return cal.to_ical()
