"""Errors raised while verifying and redeeming a receipt."""

FAILED_TO_VERIFY_MESSAGE = "Failed to verify receipt"
ALREADY_REDEEMED_MESSAGE = "This receipt is already redeemed"
OUT_OF_DATE_MESSAGE = "This receipt is out of date"


class ReceiptVerificationError(Exception):
    """Base class. ``verdict_message`` is what the caller gets to see."""
    verdict_message = FAILED_TO_VERIFY_MESSAGE
    fatal = False


class TransportError(ReceiptVerificationError):
    """Apple's endpoint could not be reached or replied with a broken frame."""
    fatal = True


class DeadlineExceededError(TransportError):
    """The request-scoped timeout ran out."""


class ReceiptValidationError(ReceiptVerificationError):
    """The receipt was rejected: bad status, foreign bundle or no purchases."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class DuplicateRedemptionError(ReceiptVerificationError):
    verdict_message = ALREADY_REDEEMED_MESSAGE

    def __init__(self, uid: str, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} already redeemed by {uid}")
        self.uid = uid
        self.transaction_id = transaction_id


class ExpiredReceiptError(ReceiptVerificationError):
    """The transaction was recorded but its expiry has passed."""
    verdict_message = OUT_OF_DATE_MESSAGE

    def __init__(self, transaction_id: str, expires_at=None):
        super().__init__(f"Transaction {transaction_id} expired at {expires_at}")
        self.transaction_id = transaction_id
        self.expires_at = expires_at


class StoreError(ReceiptVerificationError):
    """The redemption ledger could not be read or written."""
    fatal = True
