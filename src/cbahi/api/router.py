"""Master API router mounted at /api/v1."""

from fastapi import APIRouter
from cbahi.api.routes import (
    approvals,
    escalations,
    health,
    requests,
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(requests.router)
api_router.include_router(approvals.router)
api_router.include_router(escalations.router)
