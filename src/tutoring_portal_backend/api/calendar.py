'''
API endpoints for the iCalendar lesson feeds.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ..models.records import AccountRecord
from ..services.security import verify_token_and_get_user
from ..services.calendar_service import CalendarFeedService

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"


def ics_response(body: bytes, filename: str) -> Response:
    return Response(
        content=body,
        media_type=ICS_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
        }
    )


class CalendarAPI:
    """
    A class to encapsulate the calendar feed endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/calendar",
            tags=["Calendar"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/feed.ics",
            self.get_admin_feed,
            methods=["GET"],
            response_class=Response)
        self.router.add_api_route(
            "/{student_id}/feed.ics",
            self.get_student_feed,
            methods=["GET"],
            response_class=Response)

    async def get_admin_feed(
        self,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        calendar_service: Annotated[CalendarFeedService, Depends(CalendarFeedService)]
    ) -> Response:
        """Every account's lessons, cancelled ones marked. Admins only."""
        body = await calendar_service.admin_feed_for_api(current_user)
        return ics_response(body, "tutoring-all-lessons.ics")

    async def get_student_feed(
        self,
        student_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        calendar_service: Annotated[CalendarFeedService, Depends(CalendarFeedService)]
    ) -> Response:
        body = await calendar_service.student_feed_for_api(student_id, current_user)
        return ics_response(body, "tutoring-calendar.ics")

# Instantiate the class and export its router
calendar_api = CalendarAPI()
router = calendar_api.router
