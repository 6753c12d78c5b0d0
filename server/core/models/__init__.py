"""Data models."""
from server.core.models.receipt_models import (
    LedgerEntry,
    PurchaseRecord,
    SelectedTransaction,
    VerificationRequest,
    VerificationResponse,
    VerificationVerdict,
    VerifyReceiptRequest,
)

__all__ = [
    "LedgerEntry",
    "PurchaseRecord",
    "SelectedTransaction",
    "VerificationRequest",
    "VerificationResponse",
    "VerificationVerdict",
    "VerifyReceiptRequest",
]
