"""
App Store receipt verification endpoint.
"""
import logfire
from functools import lru_cache
from fastapi import APIRouter, Depends

from server.core.config.general_config import settings
from server.core.models.receipt_models import VerificationVerdict, VerifyReceiptRequest
from server.core.service.receipt_verification.receipt_verification_service import ReceiptVerificationService

router = APIRouter()


@lru_cache
def get_receipt_verification_service() -> ReceiptVerificationService:
    return ReceiptVerificationService.from_settings(settings)


@router.post(
    "/verify",
    response_model=VerificationVerdict,
    summary="Verify App Store Receipt",
    description="Verifies an App Store receipt with Apple and redeems its latest transaction for the user"
)
def verify_receipt(
    request: VerifyReceiptRequest,
    service: ReceiptVerificationService = Depends(get_receipt_verification_service)
) -> VerificationVerdict:
    """
    Verify a receipt and record its latest transaction for the user.

    The verdict is always returned with HTTP 200; its ``code`` field carries
    200 for a successful redemption and 400 for any failure.
    """
    logfire.info(f"Verifying receipt for user {request.uid}", extra={"uid": request.uid})
    return service.verify_receipt(request.uid, request.receipt_data)
