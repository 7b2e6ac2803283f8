"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from paygate.api.routes import balances, health, payments, webhooks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(payments.router)
api_router.include_router(balances.router)
api_router.include_router(webhooks.router)
