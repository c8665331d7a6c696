'''
Static enums mirroring the PostgreSQL ENUM types.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    ADMIN = 'admin'
    STUDENT = 'student'


class LessonStatusEnum(ListableEnum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class TransactionTypeEnum(ListableEnum):
    DEPOSIT = 'deposit'
    REFUND = 'refund'
    LESSON_CHARGE = 'lesson_charge'


class LessonScope(ListableEnum):
    """Listing filter used by the lessons pages."""
    UPCOMING = 'upcoming'
    PAST = 'past'
    ALL = 'all'
