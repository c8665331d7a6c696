from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from .db_enums import UserRole, LessonStatusEnum, TransactionTypeEnum

class Base(DeclarativeBase):
    pass


class Profiles(Base):
    __tablename__ = 'profiles'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='profiles_pkey'),
        UniqueConstraint('email', name='profiles_email_key'),
        CheckConstraint('cost_per_hour >= 0', name='profiles_cost_per_hour_check'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, server_default=text('gen_random_uuid()'))
    email: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(Enum(*UserRole.get_all_names(), name='user_role'), server_default=text("'student'::user_role"))
    parent_name: Mapped[str] = mapped_column(Text, server_default=text("''::text"))
    student_name: Mapped[str] = mapped_column(Text, server_default=text("''::text"))
    cost_per_hour: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    # cached value, only ever overwritten by the balance recompute
    balance: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    timezone: Mapped[str] = mapped_column(Text, server_default=text("'Europe/London'::text"))
    is_active: Mapped[bool] = mapped_column(Boolean, server_default=text('true'))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))

    lessons: Mapped[list['Lessons']] = relationship('Lessons', back_populates='student')
    transactions: Mapped[list['Transactions']] = relationship('Transactions', back_populates='student')


class Lessons(Base):
    __tablename__ = 'lessons'
    __table_args__ = (
        CheckConstraint('duration_minutes > 0', name='lessons_duration_minutes_check'),
        CheckConstraint('end_time > start_time', name='lessons_end_after_start_check'),
        CheckConstraint('cost >= 0', name='lessons_cost_check'),
        ForeignKeyConstraint(['student_id'], ['profiles.id'], ondelete='RESTRICT', name='lessons_student_id_fkey'),
        PrimaryKeyConstraint('id', name='lessons_pkey'),
        Index('idx_lessons_student_end_time', 'student_id', 'end_time'),
        Index('idx_lessons_recurring_group_id', 'recurring_group_id'),
        Index('idx_lessons_status_end_time', 'status', 'end_time'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, server_default=text('gen_random_uuid()'))
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    title: Mapped[str] = mapped_column(Text)
    start_time: Mapped[datetime.datetime] = mapped_column(DateTime(True))
    end_time: Mapped[datetime.datetime] = mapped_column(DateTime(True))
    duration_minutes: Mapped[int] = mapped_column(Integer)
    cost: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(Enum(*LessonStatusEnum.get_all_names(), name='lesson_status_enum'), server_default=text("'scheduled'::lesson_status_enum"))
    is_recurring: Mapped[bool] = mapped_column(Boolean, server_default=text('false'))
    recurring_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))

    student: Mapped['Profiles'] = relationship('Profiles', back_populates='lessons')
    transactions: Mapped[list['Transactions']] = relationship('Transactions', back_populates='lesson')


class Transactions(Base):
    __tablename__ = 'transactions'
    __table_args__ = (
        CheckConstraint('amount > 0', name='transactions_amount_positive_check'),
        ForeignKeyConstraint(['student_id'], ['profiles.id'], ondelete='RESTRICT', name='transactions_student_id_fkey'),
        ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='SET NULL', name='transactions_lesson_id_fkey'),
        PrimaryKeyConstraint('id', name='transactions_pkey'),
        UniqueConstraint('stripe_payment_id', name='transactions_stripe_payment_id_key'),
        Index('idx_transactions_student_type', 'student_id', 'type'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, server_default=text('gen_random_uuid()'))
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    type: Mapped[str] = mapped_column(Enum(*TransactionTypeEnum.get_all_names(), name='transaction_type_enum'))
    # always positive, the sign lives in `type`
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    description: Mapped[str] = mapped_column(Text, server_default=text("''::text"))
    lesson_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    stripe_payment_id: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))

    student: Mapped['Profiles'] = relationship('Profiles', back_populates='transactions')
    lesson: Mapped[Optional['Lessons']] = relationship('Lessons', back_populates='transactions')
