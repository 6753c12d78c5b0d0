"""
Health check endpoints.
"""
from fastapi import APIRouter
from typing import Dict, Any

from server.core.config.general_config import settings

router = APIRouter()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.
    """
    return {
        "status": "healthy",
        "message": "Service is running",
        "service": "receipt-verification"
    }


@router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """
    Detailed health check endpoint.
    """
    return {
        "status": "healthy",
        "message": "Service is running",
        "service": "receipt-verification",
        "version": settings.VERSION,
        "ledger_backend": settings.LEDGER_BACKEND,
        "transaction_ordering": settings.TRANSACTION_ORDERING
    }
