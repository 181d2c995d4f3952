from fastapi import APIRouter

from publishdesk.interfaces.api.accounts import router as accounts_router
from publishdesk.interfaces.api.auth import router as auth_router
from publishdesk.interfaces.api.health import router as health_router
from publishdesk.interfaces.api.publish import router as publish_router
from publishdesk.interfaces.api.workflows import router as workflows_router
from publishdesk.interfaces.api.youtube import router as youtube_router
from publishdesk.interfaces.api.youtube_oauth import router as youtube_oauth_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(accounts_router)
api_router.include_router(youtube_oauth_router)
api_router.include_router(youtube_router)
api_router.include_router(publish_router)
api_router.include_router(workflows_router)
