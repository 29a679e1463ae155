"""
Router principal de la API v1.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import sync, webhooks


api_router = APIRouter(prefix="/v1")

api_router.include_router(sync.router)
api_router.include_router(sync.budget_router)
api_router.include_router(webhooks.router)
