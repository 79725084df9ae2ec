"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from lawnops.api.webhooks import router as webhooks_router
from lawnops.api.handoff import router as handoff_router
from lawnops.api.dispatch import router as dispatch_router
from lawnops.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(handoff_router)
api_router.include_router(dispatch_router)
api_router.include_router(health_router)
