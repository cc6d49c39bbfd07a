from fastapi import APIRouter

from .routes import passkey_router, health_router

# Mounted under settings.API_PREFIX by the application factory
api_router = APIRouter()

api_router.include_router(passkey_router)
api_router.include_router(health_router)
