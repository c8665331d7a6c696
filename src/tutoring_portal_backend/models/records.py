'''
Validated records passed between the repositories, the core functions and
the services. ORM rows never leave the database package.
'''
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..database.db_enums import UserRole, LessonStatusEnum, TransactionTypeEnum


class AccountRecord(BaseModel):
    """A student (family) account, or an admin profile."""
    id: UUID
    email: str
    role: UserRole
    parent_name: str = ""
    student_name: str = ""
    cost_per_hour: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    timezone: str = "Europe/London"
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class LessonRecord(BaseModel):
    id: UUID
    student_id: UUID
    title: str = ""
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(gt=0)
    cost: Decimal = Field(ge=0)
    status: LessonStatusEnum = LessonStatusEnum.SCHEDULED
    is_recurring: bool = False
    recurring_group_id: Optional[UUID] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @model_validator(mode='after')
    def check_interval(self) -> 'LessonRecord':
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("Lesson times must be timezone-aware.")
        if self.end_time - self.start_time != timedelta(minutes=self.duration_minutes):
            raise ValueError("Lesson end_time must equal start_time plus duration_minutes.")
        return self


class LedgerEntryRecord(BaseModel):
    id: UUID
    student_id: UUID
    type: TransactionTypeEnum
    amount: Decimal = Field(gt=0)
    description: str = ""
    lesson_id: Optional[UUID] = None
    stripe_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def is_editable(self) -> bool:
        """Only manually recorded deposits may be edited or deleted by staff."""
        return self.type == TransactionTypeEnum.DEPOSIT and not self.stripe_payment_id
