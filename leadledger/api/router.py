"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from leadledger.api.webhooks import router as webhooks_router
from leadledger.api.balance import router as balance_router
from leadledger.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(balance_router)
api_router.include_router(health_router)
