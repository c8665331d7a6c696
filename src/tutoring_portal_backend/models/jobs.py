'''

'''
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class LessonCompletionReport(BaseModel):
    """Outcome of one run of the lesson-completion job."""
    timestamp: datetime
    lessons_completed: int = 0
    lessons_failed: list[UUID] = Field(default_factory=list)
    accounts_recalculated: int = 0
    accounts_failed: list[UUID] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Processed {self.lessons_completed} lessons, {len(self.lessons_failed)} errors; "
            f"recalculated {self.accounts_recalculated} balances, {len(self.accounts_failed)} errors"
        )
