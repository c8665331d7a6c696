'''
API endpoints for account balances.
'''
from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends

from ..models.records import AccountRecord
from ..models import balance as balance_models
from ..services.security import verify_token_and_get_user
from ..services.balance_service import BalanceService

class BalanceAPI:
    """
    A class to encapsulate endpoints for account balances.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/balance",
            tags=["Balance"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/",
            self.get_overview,
            methods=["GET"],
            response_model=balance_models.BalanceOverview)
        self.router.add_api_route(
            "/recalculate",
            self.recalculate_balance,
            methods=["POST"],
            response_model=balance_models.BalanceRead)
        self.router.add_api_route(
            "/{student_id}",
            self.get_balance,
            methods=["GET"],
            response_model=balance_models.BalanceDisplay)

    async def recalculate_balance(
        self,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)],
        request: Optional[balance_models.BalanceRecalculateRequest] = None
    ) -> balance_models.BalanceRead:
        """
        Recomputes and stores the balance of the caller (or, for admins, of the
        named account) and returns the new value.
        """
        student_id = request.student_id if request else None
        return await balance_service.recalculate_for_api(current_user, student_id)

    async def get_balance(
        self,
        student_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ) -> balance_models.BalanceDisplay:
        """
        Returns the balance derived right now, next to the stored value.
        """
        return await balance_service.get_balance_display(current_user, student_id)

    async def get_overview(
        self,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ) -> balance_models.BalanceOverview:
        return await balance_service.get_overview(current_user)

# Instantiate the class and export its router
balance_api = BalanceAPI()
router = balance_api.router
