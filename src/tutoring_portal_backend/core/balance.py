'''
Balance derivation.

An account's balance is never kept as a running total. It is recomputed from
the full credit history minus the cost of every lesson that has ended as of a
reference instant:

    balance = sum(deposit amounts) - sum(cost of ended, non-cancelled lessons)

Refund entries are receipts for cancelled lessons and carry no weight here:
the cancelled lesson already drops out of the ended-cost sum. `lesson_charge`
entries are not summed either, charges are derived from the lessons themselves.

All arithmetic is Decimal. A negative result means money is owed, a positive
one is credit held.
'''
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

from ..database.db_enums import TransactionTypeEnum
from .lesson_timing import TimedLesson, ensure_aware, is_ended

ZERO = Decimal("0.00")


class CreditEntry(Protocol):
    type: str
    amount: Decimal


class ChargeableLesson(TimedLesson, Protocol):
    cost: Decimal


def _as_decimal(value) -> Decimal:
    if isinstance(value, float):
        # binary floats would drift over hundreds of entries
        raise TypeError(f"Money values must be Decimal, got float {value!r}.")
    return Decimal(value)


def sum_credits(entries: Iterable[CreditEntry]) -> Decimal:
    """Sum of deposit amounts; other entry types are ignored."""
    return sum(
        (_as_decimal(entry.amount) for entry in entries if entry.type == TransactionTypeEnum.DEPOSIT),
        ZERO
    )


def sum_ended_lesson_costs(lessons: Iterable[ChargeableLesson], reference_instant: datetime) -> Decimal:
    """Sum of costs for lessons that are ended (and not cancelled) at `reference_instant`."""
    return sum(
        (_as_decimal(lesson.cost) for lesson in lessons if is_ended(lesson, reference_instant)),
        ZERO
    )


def derive_balance(
    credit_entries: Iterable[CreditEntry],
    ended_lessons: Iterable[ChargeableLesson],
    reference_instant: datetime
) -> Decimal:
    """
    Pure balance computation. The inputs are filtered again here, so passing
    an account's full ledger and full lesson list gives the same answer as
    passing the pre-filtered rows the repositories return.
    """
    ensure_aware(reference_instant, "reference_instant")
    return sum_credits(credit_entries) - sum_ended_lesson_costs(ended_lessons, reference_instant)
