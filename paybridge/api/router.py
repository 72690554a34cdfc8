"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter

from paybridge.api.admin import router as admin_router
from paybridge.api.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(admin_router)
