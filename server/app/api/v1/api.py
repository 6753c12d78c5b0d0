"""
Main API router that includes all endpoint routers.
"""
from fastapi import APIRouter

from server.app.api.v1.endpoints import (
    health,
    verify_receipt_api,
)


api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(verify_receipt_api.router, prefix="/receipt", tags=["receipt"])
