"""API Routes module"""
from fastapi import APIRouter

from .incidents import router as incidents_router
from .workflows import router as workflows_router

# Main API router
api_router = APIRouter()

api_router.include_router(incidents_router, prefix="/incidents", tags=["Incidents"])
api_router.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])

__all__ = ["api_router"]
