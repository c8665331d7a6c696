"""
This file contains custom, application-specific exceptions.
"""
from decimal import Decimal
from uuid import UUID


class AccountNotFoundError(Exception):
    """Raised when an account ID is not found in the database."""
    def __init__(self, account_id: UUID):
        super().__init__(f"Account {account_id} not found.")
        self.account_id = account_id


class BalanceRecalculationError(Exception):
    """
    Raised when the ledger or lesson rows for a recompute cannot be read.
    Nothing has been written when this is raised.
    """
    def __init__(self, account_id: UUID, reason: str):
        super().__init__(f"Could not recalculate balance for account {account_id}: {reason}")
        self.account_id = account_id


class BalancePersistError(Exception):
    """
    Raised when a correctly computed balance could not be written back.
    Carries the computed value so only the write needs retrying.
    """
    def __init__(self, account_id: UUID, balance: Decimal, reason: str):
        super().__init__(f"Could not persist balance {balance} for account {account_id}: {reason}")
        self.account_id = account_id
        self.balance = balance


class LessonConflictError(Exception):
    """Raised when a booking overlaps one or more existing lessons."""
    def __init__(self, conflicts: list):
        super().__init__(f"Booking overlaps {len(conflicts)} existing lesson(s).")
        self.conflicts = conflicts


class WebhookVerificationError(Exception):
    """Raised when a payment processor event fails signature or payload checks."""
    pass
