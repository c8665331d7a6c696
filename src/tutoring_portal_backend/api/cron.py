'''
API endpoint for the scheduler that runs the lesson-completion job.
'''
from typing import Annotated
from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..common.config import settings
from ..common.logger import log
from ..models.jobs import LessonCompletionReport
from ..services.lesson_job_service import LessonCompletionService


def verify_cron_secret(
    authorization: Annotated[str | None, Header()] = None
) -> None:
    """
    Requires `Authorization: Bearer <CRON_SECRET>` when a secret is configured.
    """
    if not settings.CRON_SECRET:
        return
    if authorization != f"Bearer {settings.CRON_SECRET}":
        log.warning("SECURITY: Rejected cron request with missing or invalid secret.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


class CronAPI:
    """
    A class to encapsulate scheduler-triggered endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/cron",
            tags=["Cron"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/process-lessons",
            self.process_lessons,
            methods=["GET", "POST"],
            response_model=LessonCompletionReport,
            dependencies=[Depends(verify_cron_secret)])

    async def process_lessons(
        self,
        job_service: Annotated[LessonCompletionService, Depends(LessonCompletionService)]
    ) -> LessonCompletionReport:
        """
        Marks ended lessons as completed and refreshes the affected balances.
        Partial failures are reported in the body, not as an error status.
        """
        return await job_service.process_lessons()


# Instantiate the class and export its router
cron_api = CronAPI()
router = cron_api.router
