'''
API endpoint receiving payment processor events.
'''
from typing import Annotated
from fastapi import APIRouter, Depends, Header, Request

from ..models import transactions as transaction_models
from ..services.webhook_service import WebhookService

class WebhooksAPI:
    """
    Unauthenticated endpoints; requests are verified by signature instead.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/webhooks",
            tags=["Webhooks"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/stripe",
            self.stripe_webhook,
            methods=["POST"],
            response_model=transaction_models.WebhookAck)

    async def stripe_webhook(
        self,
        request: Request,
        webhook_service: Annotated[WebhookService, Depends(WebhookService)],
        stripe_signature: Annotated[str | None, Header(alias="stripe-signature")] = None
    ) -> transaction_models.WebhookAck:
        """
        Verifies the event against the raw body and records completed checkouts.
        Redeliveries of an already recorded payment are acknowledged with `duplicate`.
        """
        payload = await request.body()
        return await webhook_service.handle_stripe_webhook(payload, stripe_signature)


# Instantiate the class and export its router
webhooks_api = WebhooksAPI()
router = webhooks_api.router
