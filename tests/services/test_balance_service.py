'''
Tests for BalanceService: the recompute-and-persist wrapper and the balance reads.
'''
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi import HTTPException

from src.tutoring_portal_backend.services.balance_service import BalanceService
from src.tutoring_portal_backend.common.exceptions import (
    AccountNotFoundError,
    BalanceRecalculationError,
    BalancePersistError
)
from src.tutoring_portal_backend.database.db_enums import LessonStatusEnum
from src.tutoring_portal_backend.models.records import AccountRecord
from tests.constants import TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID, TEST_UNKNOWN_ID
from tests.factories import LessonFactory, DepositFactory, RefundFactory
from tests.fakes import FakeAccountRepository, FakeLessonRepository, FakeLedgerRepository

NOW = datetime.now(timezone.utc)


def seed_example_ledger(lessons_repo: FakeLessonRepository, ledger_repo: FakeLedgerRepository):
    """80 in deposits, three ended lessons at 25, one upcoming lesson at 25."""
    ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("50.00")))
    ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("30.00")))
    ended = [
        lessons_repo.add_lesson(LessonFactory(
            student_id=TEST_STUDENT_ID, cost=Decimal("25.00"),
            start_time=NOW - timedelta(days=days)
        ))
        for days in (1, 8, 15)
    ]
    lessons_repo.add_lesson(LessonFactory(
        student_id=TEST_STUDENT_ID, cost=Decimal("25.00"), start_time=NOW + timedelta(days=6)
    ))
    return ended


@pytest.mark.anyio
class TestRecalculateAndPersist:
    """Test class for the balance persistence wrapper."""

    async def test_persists_derived_balance(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        seed_example_ledger(lessons_repo, ledger_repo)

        balance = await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW)
        print(f"Recalculated balance: {balance}")

        assert balance == Decimal("5.00")
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("5.00")
        assert accounts_repo.balance_writes == [(TEST_STUDENT_ID, Decimal("5.00"))]

    async def test_cancellation_changes_result(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        ended = seed_example_ledger(lessons_repo, ledger_repo)
        await lessons_repo.set_status(ended[0].id, LessonStatusEnum.CANCELLED)

        assert await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW) == Decimal("30.00")
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("30.00")

    async def test_second_call_is_a_no_op(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        seed_example_ledger(lessons_repo, ledger_repo)

        first = await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW)
        second = await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW)

        assert first == second
        assert len(accounts_repo.balance_writes) == 1
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == first

    async def test_overwrites_a_wrong_cached_value(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        ledger_repo: FakeLedgerRepository
    ):
        """The cache is never incremented; a bad value is replaced by the recompute."""
        student = accounts_repo.accounts[TEST_STUDENT_ID]
        accounts_repo.add_account(student.model_copy(update={"balance": Decimal("999.00")}))
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("20.00")))

        assert await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW) == Decimal("20.00")
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("20.00")

    async def test_refund_entries_have_no_effect(
        self,
        balance_service: BalanceService,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("20.00")))
        ledger_repo.add_entry(RefundFactory(student_id=TEST_STUDENT_ID, amount=Decimal("20.00")))

        assert await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW) == Decimal("20.00")

    async def test_only_counts_own_account(
        self,
        balance_service: BalanceService,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        seed_example_ledger(lessons_repo, ledger_repo)
        assert await balance_service.recalculate_and_persist(TEST_OTHER_STUDENT_ID, NOW) == Decimal("0.00")

    async def test_unknown_account(self, balance_service: BalanceService):
        with pytest.raises(AccountNotFoundError):
            await balance_service.recalculate_and_persist(TEST_UNKNOWN_ID, NOW)

    async def test_fetch_failure_writes_nothing(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("20.00")))
        ledger_repo.fail_reads = True

        with pytest.raises(BalanceRecalculationError):
            await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW)

        assert accounts_repo.balance_writes == []
        assert accounts_repo.accounts[TEST_STUDENT_ID].balance == Decimal("0.00")

    async def test_persist_failure_carries_computed_value(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("42.00")))
        accounts_repo.fail_balance_writes = True

        with pytest.raises(BalancePersistError) as exc_info:
            await balance_service.recalculate_and_persist(TEST_STUDENT_ID, NOW)

        assert exc_info.value.balance == Decimal("42.00")
        assert exc_info.value.account_id == TEST_STUDENT_ID

    async def test_rejects_naive_reference_instant(self, balance_service: BalanceService):
        with pytest.raises(ValueError):
            await balance_service.recalculate_and_persist(TEST_STUDENT_ID, datetime(2025, 1, 1))

    async def test_recalculate_many_isolates_failures(
        self,
        balance_service: BalanceService,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("10.00")))

        succeeded, failed = await balance_service.recalculate_many(
            [TEST_STUDENT_ID, TEST_UNKNOWN_ID, TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID], NOW
        )
        assert succeeded == [TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID]
        assert failed == [TEST_UNKNOWN_ID]

    async def test_recalculate_many_uses_one_savepoint_per_account(
        self,
        balance_service: BalanceService,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository
    ):
        lessons_repo.fail_reads = True

        succeeded, failed = await balance_service.recalculate_many(
            [TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID, TEST_STUDENT_ID], NOW
        )

        # a failed read is confined to the account it belongs to
        assert succeeded == []
        assert failed == [TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID]
        assert accounts_repo.savepoints_opened == 2
        assert accounts_repo.savepoints_rolled_back == 2
        assert accounts_repo.balance_writes == []


@pytest.mark.anyio
class TestBalanceForAPI:
    """Test class for the role-checked balance methods."""

    async def test_student_recalculates_own_balance(
        self,
        balance_service: BalanceService,
        test_student: AccountRecord,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_STUDENT_ID, amount=Decimal("15.00")))

        result = await balance_service.recalculate_for_api(test_student)
        assert result.student_id == TEST_STUDENT_ID
        assert result.balance == Decimal("15.00")
        assert result.currency == "GBP"

    async def test_student_cannot_recalculate_other_account(
        self,
        balance_service: BalanceService,
        test_student: AccountRecord
    ):
        with pytest.raises(HTTPException) as e:
            await balance_service.recalculate_for_api(test_student, TEST_OTHER_STUDENT_ID)
        assert e.value.status_code == 403

    async def test_admin_recalculates_any_account(
        self,
        balance_service: BalanceService,
        test_admin: AccountRecord,
        ledger_repo: FakeLedgerRepository
    ):
        ledger_repo.add_entry(DepositFactory(student_id=TEST_OTHER_STUDENT_ID, amount=Decimal("60.00")))
        result = await balance_service.recalculate_for_api(test_admin, TEST_OTHER_STUDENT_ID)
        assert result.balance == Decimal("60.00")

    async def test_admin_unknown_account_is_404(
        self,
        balance_service: BalanceService,
        test_admin: AccountRecord
    ):
        with pytest.raises(HTTPException) as e:
            await balance_service.recalculate_for_api(test_admin, TEST_UNKNOWN_ID)
        assert e.value.status_code == 404

    async def test_failed_recompute_reports_stale(
        self,
        balance_service: BalanceService,
        test_student: AccountRecord,
        lessons_repo: FakeLessonRepository
    ):
        lessons_repo.fail_reads = True
        with pytest.raises(HTTPException) as e:
            await balance_service.recalculate_for_api(test_student)
        assert e.value.status_code == 500
        assert "stale" in e.value.detail["message"]
        assert e.value.detail["cached_balance"] == "0.00"
        assert e.value.detail["is_stale"] is True

    async def test_display_falls_back_to_cached_value(
        self,
        balance_service: BalanceService,
        test_student: AccountRecord,
        accounts_repo: FakeAccountRepository,
        ledger_repo: FakeLedgerRepository
    ):
        student = accounts_repo.accounts[TEST_STUDENT_ID]
        accounts_repo.add_account(student.model_copy(update={"balance": Decimal("12.50")}))
        ledger_repo.fail_reads = True

        display = await balance_service.get_balance_display(test_student, TEST_STUDENT_ID)

        assert display.balance == Decimal("12.50")
        assert display.cached_balance == Decimal("12.50")
        assert display.fetch_failed is True
        assert display.is_stale is True
        assert display.total_credits is None
        assert accounts_repo.savepoints_rolled_back == 1
        assert accounts_repo.balance_writes == []

    async def test_display_shows_derived_and_cached(
        self,
        balance_service: BalanceService,
        test_student: AccountRecord,
        accounts_repo: FakeAccountRepository,
        lessons_repo: FakeLessonRepository,
        ledger_repo: FakeLedgerRepository
    ):
        seed_example_ledger(lessons_repo, ledger_repo)

        display = await balance_service.get_balance_display(test_student, TEST_STUDENT_ID)
        assert display.balance == Decimal("5.00")
        assert display.cached_balance == Decimal("0.00")
        assert display.total_credits == Decimal("80.00")
        assert display.total_charged == Decimal("75.00")
        assert display.is_stale is True
        # reading never writes the cache
        assert accounts_repo.balance_writes == []

        await balance_service.recalculate_and_persist(TEST_STUDENT_ID)
        display = await balance_service.get_balance_display(test_student, TEST_STUDENT_ID)
        assert display.is_stale is False

    async def test_overview_is_admin_only(
        self,
        balance_service: BalanceService,
        test_admin: AccountRecord,
        test_student: AccountRecord
    ):
        overview = await balance_service.get_overview(test_admin)
        # inactive students are left out
        assert {a.student_id for a in overview.accounts} == {TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID}

        with pytest.raises(HTTPException) as e:
            await balance_service.get_overview(test_student)
        assert e.value.status_code == 403
