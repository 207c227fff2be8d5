"""
Main API router aggregator
"""
from fastapi import APIRouter

from tender.api.v1.endpoints import actions, auth, cases, health, overview

api_router = APIRouter()

# Include routers
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(actions.router, prefix="/actions", tags=["Actions"])
api_router.include_router(overview.router, tags=["Overview"])
api_router.include_router(health.router, tags=["Health"])
