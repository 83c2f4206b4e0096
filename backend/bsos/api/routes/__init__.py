from fastapi import APIRouter

from bsos.api.routes import finance, health, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(webhooks.router, tags=["webhooks"])
api_router.include_router(finance.router, prefix="/finance", tags=["finance"])
