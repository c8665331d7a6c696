'''
The periodic lesson-completion job.

Flips `scheduled` lessons whose end has passed to `completed`, then refreshes
the cached balance of every account it touched. Balances already count these
lessons from the moment they end, so the job only aligns the displayed status
and the cache; running it late, twice, or concurrently changes nothing else.
'''
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import Depends

from ..database.repositories import LessonRepository
from ..models.jobs import LessonCompletionReport
from ..core.lesson_timing import ensure_aware
from ..common.logger import log
from .balance_service import BalanceService


class LessonCompletionService:
    def __init__(
        self,
        lessons: Annotated[LessonRepository, Depends(LessonRepository)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ):
        self.lessons = lessons
        self.balance_service = balance_service

    async def process_lessons(self, now: Optional[datetime] = None) -> LessonCompletionReport:
        """
        Each lesson is written on its own and a failure is logged and skipped.
        Each touched account is recomputed once, after all status writes.
        """
        now = ensure_aware(now, "now") if now else datetime.now(timezone.utc)
        log.info(f"Lesson completion job started at {now.isoformat()}")

        pending = await self.lessons.list_pending_completion(now)
        log.info(f"Found {len(pending)} lesson(s) to mark as completed.")

        report = LessonCompletionReport(timestamp=now)
        touched_accounts = []
        for lesson in pending:
            try:
                completed = await self.lessons.mark_completed(lesson.id)
            except Exception as e:
                log.error(f"Failed to complete lesson {lesson.id}: {e}", exc_info=True)
                report.lessons_failed.append(lesson.id)
                continue
            if not completed:
                log.info(f"Lesson {lesson.id} changed status since it was listed; leaving it alone.")
                continue
            report.lessons_completed += 1
            touched_accounts.append(lesson.student_id)

        succeeded, failed = await self.balance_service.recalculate_many(touched_accounts, now)
        report.accounts_recalculated = len(succeeded)
        report.accounts_failed = failed

        if report.lessons_failed or report.accounts_failed:
            log.warning(f"Lesson completion job finished with errors: {report.message}")
        else:
            log.info(f"Lesson completion job finished: {report.message}")
        return report
