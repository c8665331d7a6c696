'''
Runs the lesson-completion job once, outside the web server.

Usage:
    python scripts/process_lessons.py
    python scripts/process_lessons.py --as-of 2025-03-01T12:00:00+00:00
'''
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.tutoring_portal_backend.database.engine import session_scope, dispose_db_engine
from src.tutoring_portal_backend.database.repositories import AccountRepository, LessonRepository, LedgerRepository
from src.tutoring_portal_backend.services.balance_service import BalanceService
from src.tutoring_portal_backend.services.lesson_job_service import LessonCompletionService
from src.tutoring_portal_backend.common.logger import log


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mark ended lessons as completed and refresh balances.")
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Timezone-aware ISO timestamp to use as 'now' (defaults to the current time)."
    )
    return parser.parse_args(argv)


async def run(as_of: datetime | None = None) -> int:
    try:
        async with session_scope() as session:
            lessons = LessonRepository(session)
            balance_service = BalanceService(
                AccountRepository(session), lessons, LedgerRepository(session)
            )
            report = await LessonCompletionService(lessons, balance_service).process_lessons(as_of)
    finally:
        await dispose_db_engine()

    print(report.message)
    return 1 if report.lessons_failed or report.accounts_failed else 0


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args.as_of))
    except ValueError as e:
        log.error(f"Invalid arguments: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
