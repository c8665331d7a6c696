import factory
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from factory.faker import Faker

from src.tutoring_portal_backend.models.records import AccountRecord, LessonRecord, LedgerEntryRecord
from src.tutoring_portal_backend.database.db_enums import UserRole, LessonStatusEnum, TransactionTypeEnum


class AccountFactory(factory.Factory):
    id = factory.LazyFunction(uuid.uuid4)
    email = Faker("email")
    role = UserRole.STUDENT
    parent_name = Faker("name")
    student_name = Faker("first_name")
    cost_per_hour = Decimal("30.00")
    balance = Decimal("0.00")
    timezone = "Europe/London"
    is_active = True

    class Meta:
        model = AccountRecord


class AdminFactory(AccountFactory):
    role = UserRole.ADMIN
    parent_name = ""
    student_name = ""
    cost_per_hour = Decimal("0.00")


class LessonFactory(factory.Factory):
    id = factory.LazyFunction(uuid.uuid4)
    student_id = factory.LazyFunction(uuid.uuid4)
    title = "Tutoring Session"
    start_time = factory.LazyFunction(lambda: datetime.now(timezone.utc) + timedelta(days=7))
    duration_minutes = 60
    end_time = factory.LazyAttribute(lambda o: o.start_time + timedelta(minutes=o.duration_minutes))
    cost = Decimal("30.00")
    status = LessonStatusEnum.SCHEDULED
    is_recurring = False
    recurring_group_id = None
    notes = None

    class Meta:
        model = LessonRecord


class DepositFactory(factory.Factory):
    id = factory.LazyFunction(uuid.uuid4)
    student_id = factory.LazyFunction(uuid.uuid4)
    type = TransactionTypeEnum.DEPOSIT
    amount = Decimal("50.00")
    description = "Manual payment"
    lesson_id = None
    stripe_payment_id = None
    created_at = factory.LazyFunction(lambda: datetime.now(timezone.utc))

    class Meta:
        model = LedgerEntryRecord


class RefundFactory(DepositFactory):
    type = TransactionTypeEnum.REFUND
    description = "Refund for cancelled lesson"
