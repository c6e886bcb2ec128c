"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from booking_core.api.routes import containers, reservations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(containers.router)
api_router.include_router(reservations.router)
