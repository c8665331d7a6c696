'''

'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..database.db_enums import TransactionTypeEnum

# --- 1. API Input Models ---

class ManualPaymentCreate(BaseModel):
    """
    Validates a payment received outside the payment processor
    (cash, bank transfer). Recorded as a deposit without a processor reference.
    """
    student_id: UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    description: Optional[str] = None


class ManualPaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    description: Optional[str] = None


class CheckoutSessionCompleted(BaseModel):
    """
    The fields of a `checkout.session.completed` event this service acts on.
    `amount` arrives as a string in the session metadata.
    """
    event_id: str
    student_id: UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_reference: str = Field(min_length=1)


# --- 2. API Output Models ---

class TransactionRead(BaseModel):
    id: UUID
    student_id: UUID
    type: TransactionTypeEnum
    amount: Decimal
    description: str
    lesson_id: Optional[UUID] = None
    stripe_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_editable(self) -> bool:
        return self.type == TransactionTypeEnum.DEPOSIT and not self.stripe_payment_id


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    ignored: bool = False
