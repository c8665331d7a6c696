'''
API endpoints for the ledger and manual payments.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, status, Query

from ..models.records import AccountRecord
from ..models import transactions as transaction_models
from ..services.security import verify_token_and_get_user
from ..services.transaction_service import TransactionService

class TransactionsAPI:
    """
    A class to encapsulate endpoints for Transactions.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/transactions",
            tags=["Transactions"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/",
            self.list_transactions,
            methods=["GET"],
            response_model=list[transaction_models.TransactionRead])
        self.router.add_api_route(
            "/",
            self.record_manual_payment,
            methods=["POST"],
            status_code=status.HTTP_201_CREATED,
            response_model=transaction_models.TransactionRead)
        self.router.add_api_route(
            "/{transaction_id}",
            self.update_manual_payment,
            methods=["PATCH"],
            response_model=transaction_models.TransactionRead)
        self.router.add_api_route(
            "/{transaction_id}",
            self.delete_manual_payment,
            methods=["DELETE"],
            status_code=status.HTTP_204_NO_CONTENT)

    async def list_transactions(
        self,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        transaction_service: Annotated[TransactionService, Depends(TransactionService)],
        student_id: Annotated[UUID | None, Query(description="Optional filter for Student ID (admins)")] = None
    ) -> list[transaction_models.TransactionRead]:
        """
        Retrieves ledger entries visible to the current user, newest first.
        """
        return await transaction_service.list_transactions_for_api(current_user, student_id=student_id)

    async def record_manual_payment(
        self,
        payment: transaction_models.ManualPaymentCreate,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        transaction_service: Annotated[TransactionService, Depends(TransactionService)]
    ) -> transaction_models.TransactionRead:
        """
        Records a cash or bank-transfer payment. Restricted to admins.
        """
        return await transaction_service.record_manual_payment(payment, current_user)

    async def update_manual_payment(
        self,
        transaction_id: UUID,
        changes: transaction_models.ManualPaymentUpdate,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        transaction_service: Annotated[TransactionService, Depends(TransactionService)]
    ) -> transaction_models.TransactionRead:
        return await transaction_service.update_manual_payment(transaction_id, changes, current_user)

    async def delete_manual_payment(
        self,
        transaction_id: UUID,
        current_user: Annotated[AccountRecord, Depends(verify_token_and_get_user)],
        transaction_service: Annotated[TransactionService, Depends(TransactionService)]
    ) -> None:
        await transaction_service.delete_manual_payment(transaction_id, current_user)


# Instantiate the class and export its router
transactions_api = TransactionsAPI()
router = transactions_api.router
