'''
Payment processor notifications.

Stripe delivers events at least once, so the same `checkout.session.completed`
may arrive several times or concurrently. A deposit is keyed by its
payment_intent reference; a reference already in the ledger is acknowledged
without writing anything.
'''
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Optional
from uuid import UUID

import stripe
from fastapi import Depends, HTTPException, status
from pydantic import ValidationError

from ..database.repositories import AccountRepository, LedgerRepository
from ..models import transactions as transaction_models
from ..common.exceptions import WebhookVerificationError
from ..common.config import settings
from ..common.logger import log
from .balance_service import BalanceService

CHECKOUT_COMPLETED = "checkout.session.completed"


class WebhookService:
    """
    Verifies and applies Stripe events. Only completed checkout sessions
    change state; every other event type is acknowledged and ignored.
    """
    def __init__(
        self,
        accounts: Annotated[AccountRepository, Depends(AccountRepository)],
        ledger: Annotated[LedgerRepository, Depends(LedgerRepository)],
        balance_service: Annotated[BalanceService, Depends(BalanceService)]
    ):
        self.accounts = accounts
        self.ledger = ledger
        self.balance_service = balance_service

    # --- 1. Verification and Parsing ---

    @staticmethod
    def construct_event(payload: bytes, signature: Optional[str]) -> Any:
        """Checks the Stripe-Signature header against the raw body."""
        if not settings.STRIPE_WEBHOOK_SECRET:
            log.critical("STRIPE_WEBHOOK_SECRET is not configured; refusing webhook.")
            raise WebhookVerificationError("Webhook secret not configured")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            log.warning(f"SECURITY: Invalid webhook signature: {e}")
            raise WebhookVerificationError("Invalid webhook signature") from e
        except ValueError as e:
            log.warning(f"Malformed webhook payload: {e}")
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e

    @staticmethod
    def parse_checkout_session(event: Any) -> transaction_models.CheckoutSessionCompleted:
        """
        Pulls the account id and amount from the session metadata and the
        payment reference from `payment_intent`.
        """
        try:
            session = event["data"]["object"]
            metadata = session["metadata"]
            return transaction_models.CheckoutSessionCompleted(
                event_id=event["id"],
                student_id=UUID(str(metadata["user_id"])),
                amount=Decimal(str(metadata["amount"])),
                payment_reference=session["payment_intent"] or ""
            )
        except (KeyError, TypeError, ValueError, InvalidOperation, ValidationError) as e:
            log.warning(f"Checkout session event is missing required data: {e}")
            raise WebhookVerificationError(f"Missing or invalid checkout session data: {e}") from e

    # --- 2. API-Facing Method ---

    async def handle_stripe_webhook(self, payload: bytes, signature: Optional[str]) -> transaction_models.WebhookAck:
        try:
            event = self.construct_event(payload, signature)
            event_type = event.get("type")
            if event_type != CHECKOUT_COMPLETED:
                log.info(f"Ignoring Stripe event of type '{event_type}'.")
                return transaction_models.WebhookAck(ignored=True)
            checkout = self.parse_checkout_session(event)
        except WebhookVerificationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        return await self.record_checkout_deposit(checkout)

    async def record_checkout_deposit(
        self,
        checkout: transaction_models.CheckoutSessionCompleted
    ) -> transaction_models.WebhookAck:
        """
        Inserts the deposit at most once per payment reference, then refreshes
        the account's cached balance in the same transaction.
        """
        log.info(f"Processing checkout {checkout.event_id}: {checkout.amount} for account {checkout.student_id}")

        existing = await self.ledger.get_by_payment_reference(checkout.payment_reference)
        if existing is not None:
            log.info(f"Duplicate delivery for payment {checkout.payment_reference}; deposit {existing.id} already recorded.")
            return transaction_models.WebhookAck(duplicate=True)

        account = await self.accounts.get_by_id(checkout.student_id)
        if account is None:
            log.error(f"Checkout {checkout.event_id} references unknown account {checkout.student_id}.")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown account in checkout metadata.")

        entry = await self.ledger.add_processor_deposit(
            student_id=account.id,
            amount=checkout.amount,
            description=f"Deposit of £{checkout.amount}",
            payment_reference=checkout.payment_reference
        )
        if entry is None:
            return transaction_models.WebhookAck(duplicate=True)

        await self.balance_service.recalculate_and_persist(account.id)
        log.info(f"Recorded deposit {entry.id} for payment {checkout.payment_reference}.")
        return transaction_models.WebhookAck()
