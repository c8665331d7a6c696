'''
API endpoints for booking and managing lessons.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, status, Query

from ..database.db_enums import LessonScope
from ..models.records import AccountRecord
from ..models import lessons as lesson_models
from ..services.security import verify_token_and_get_user
from ..services.lesson_service import LessonService

class LessonsAPI:
    """
    A class to encapsulate endpoints for Lessons.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/lessons",
            tags=["Lessons"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/",
            self.list_lessons,
            methods=["GET"],
            response_model=list[lesson_models.LessonRead])
        self.router.add_api_route(
            "/{lesson_id}",
            self.get_lesson,
            methods=["GET"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/",
            self.book_lessons,
            methods=["POST"],
            status_code=status.HTTP_201_CREATED,
            response_model=lesson_models.LessonBookingResult)
        self.router.add_api_route(
            "/{lesson_id}",
            self.update_lesson,
            methods=["PATCH"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/reschedule",
            self.reschedule_lesson,
            methods=["POST"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/cancel",
            self.cancel_lesson,
            methods=["POST"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/cancel-series",
            self.cancel_series,
            methods=["POST"],
            response_model=lesson_models.SeriesCancellationResult)
        self.router.add_api_route(
            "/{lesson_id}",
            self.delete_lesson,
            methods=["DELETE"],
            status_code=status.HTTP_204_NO_CONTENT)

    async def list_lessons(
        self,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)],
        scope: Annotated[LessonScope, Query(description="upcoming, past or all")] = LessonScope.ALL,
        student_id: Annotated[UUID | None, Query(description="Optional filter for Student ID (admins)")] = None
    ) -> list[lesson_models.LessonRead]:
        """
        Lists lessons visible to the current user, with the cancel and
        reschedule flags evaluated now.
        """
        return await lesson_service.list_lessons_for_api(current_user, scope=scope, student_id=student_id)

    async def get_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.LessonRead:
        return await lesson_service.get_lesson_for_api(lesson_id, current_user)

    async def book_lessons(
        self,
        booking: lesson_models.LessonCreate,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.LessonBookingResult:
        """
        Books a lesson, or a weekly series when `is_recurring` is set.
        Restricted to admins. Overlaps return 409 unless `allow_conflicts`.
        """
        return await lesson_service.book_lessons(booking, current_user)

    async def update_lesson(
        self,
        lesson_id: UUID,
        changes: lesson_models.LessonUpdate,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.LessonRead:
        return await lesson_service.update_lesson(lesson_id, changes, current_user)

    async def reschedule_lesson(
        self,
        lesson_id: UUID,
        request: lesson_models.LessonReschedule,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.LessonRead:
        """
        Moves a lesson that has not started yet.
        """
        return await lesson_service.reschedule_lesson(lesson_id, request, current_user)

    async def cancel_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.LessonRead:
        """
        Cancels a lesson. Students can do so until the grace window after the lesson's end.
        """
        return await lesson_service.cancel_lesson(lesson_id, current_user)

    async def cancel_series(
        self,
        lesson_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> lesson_models.SeriesCancellationResult:
        """
        Cancels every future, still scheduled lesson of the series this lesson belongs to.
        """
        return await lesson_service.cancel_series(lesson_id, current_user)

    async def delete_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> None:
        await lesson_service.delete_lesson(lesson_id, current_user)


# Instantiate the class and export its router
lessons_api = LessonsAPI()
router = lessons_api.router
