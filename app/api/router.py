from fastapi import APIRouter
from app.api.routes import health, chats
from app.core.config import settings

api_router = APIRouter(prefix=settings.API_PREFIX)

api_router.include_router(health.router, tags=['health'])
api_router.include_router(chats.router)
