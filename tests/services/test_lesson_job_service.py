import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from src.tutoring_portal_backend.services.lesson_job_service import LessonCompletionService
from src.tutoring_portal_backend.services.balance_service import BalanceService
from src.tutoring_portal_backend.database.db_enums import LessonStatusEnum
from tests.constants import TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID
from tests.factories import LessonFactory, DepositFactory
from tests.fakes import FakeAccountRepository, FakeLessonRepository, FakeLedgerRepository

NOW = datetime.now(timezone.utc)


def ended(student_id, hours_ago: int, **kwargs):
    return LessonFactory(student_id=student_id, start_time=NOW - timedelta(hours=hours_ago), **kwargs)


@pytest.mark.anyio
class TestLessonCompletionJob:
    """Test class for the periodic completion job."""

    async def test_marks_ended_lessons_completed(
        self,
        lesson_job_service: LessonCompletionService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("100.00")))
        a1 = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 3))
        a2 = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 27))
        b1 = lessons_repo.add_lesson(ended(TEST_OTHER_STUDENT_ID, 5, cost=Decimal("40.00")))
        future = lessons_repo.add_lesson(LessonFactory(student_id=TEST_STUDENT_ID, start_time=NOW + timedelta(days=1)))
        in_progress = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 0))
        cancelled = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 50, status=LessonStatusEnum.CANCELLED))

        report = await lesson_job_service.process_lessons(NOW)
        print(report.message)

        assert report.lessons_completed == 3
        assert report.lessons_failed == []
        assert report.accounts_recalculated == 2
        for lesson in (a1, a2, b1):
            assert lessons_repo.lessons[lesson.id].status == LessonStatusEnum.COMPLETED
        assert lessons_repo.lessons[future.id].status == LessonStatusEnum.SCHEDULED
        assert lessons_repo.lessons[in_progress.id].status == LessonStatusEnum.SCHEDULED
        assert lessons_repo.lessons[cancelled.id].status == LessonStatusEnum.CANCELLED

        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("40.00")
        assert accounts_repo.accounts[TEST_OTHER_STUDENT_ID].balance == Decimal("-40.00")

    async def test_one_recompute_per_account(
        self,
        lessons_repo: FakeLessonRepository,
        balance_service: BalanceService
    ):
        for hours in (3, 27, 51):
            lessons_repo.add_lesson(ended(TEST_STUDENT_ID, hours))
        lessons_repo.add_lesson(ended(TEST_OTHER_STUDENT_ID, 3))

        balance_service.recalculate_and_persist = AsyncMock(return_value=Decimal("0.00"))
        job = LessonCompletionService(lessons=lessons_repo, balance_service=balance_service)
        await job.process_lessons(NOW)

        called_ids = [call.args[0] for call in balance_service.recalculate_and_persist.await_args_list]
        assert sorted(called_ids) == sorted([TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID])

    async def test_failed_lesson_is_skipped(
        self,
        lesson_job_service: LessonCompletionService,
        lessons_repo: FakeLessonRepository
    ):
        broken = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 3))
        fine = lessons_repo.add_lesson(ended(TEST_OTHER_STUDENT_ID, 4))
        lessons_repo.fail_status_for.add(broken.id)

        report = await lesson_job_service.process_lessons(NOW)

        assert report.lessons_completed == 1
        assert report.lessons_failed == [broken.id]
        assert lessons_repo.lessons[fine.id].status == LessonStatusEnum.COMPLETED
        assert lessons_repo.lessons[broken.id].status == LessonStatusEnum.SCHEDULED
        # only the account whose lesson was written is recomputed
        assert report.accounts_recalculated == 1

    async def test_failed_recompute_does_not_stop_others(
        self,
        lesson_job_service: LessonCompletionService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository
    ):
        lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 3))
        accounts_repo.fail_balance_writes = True

        report = await lesson_job_service.process_lessons(NOW)

        assert report.lessons_completed == 1
        assert report.accounts_failed == [TEST_STUDENT_ID]
        assert "1 errors" in report.message

    async def test_second_run_finds_nothing(
        self,
        lesson_job_service: LessonCompletionService,
        lessons_repo: FakeLessonRepository
    ):
        lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 3))
        await lesson_job_service.process_lessons(NOW)
        report = await lesson_job_service.process_lessons(NOW)
        assert report.lessons_completed == 0
        assert report.accounts_recalculated == 0

    async def test_lesson_cancelled_mid_run_stays_cancelled(
        self,
        lesson_job_service: LessonCompletionService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository
    ):
        lesson = lessons_repo.add_lesson(ended(TEST_STUDENT_ID, 3))
        listed = await lessons_repo.list_pending_completion(NOW)
        # cancelled after the job read its batch
        await lessons_repo.set_status(lesson.id, LessonStatusEnum.CANCELLED)
        lessons_repo.list_pending_completion = AsyncMock(return_value=listed)

        report = await lesson_job_service.process_lessons(NOW)

        assert lessons_repo.lessons[lesson.id].status == LessonStatusEnum.CANCELLED
        assert report.lessons_completed == 0
        assert report.lessons_failed == []
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("0.00")
