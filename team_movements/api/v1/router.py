from fastapi import APIRouter

from team_movements.api.v1.endpoints import imports

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(imports.router, prefix="/import", tags=["Import"])

__all__ = ["api_router"]
