from fastapi import APIRouter

from dams.api.v1.activity import router as activity_router
from dams.api.v1.assets import router as assets_router

api_router = APIRouter()
api_router.include_router(assets_router)
api_router.include_router(activity_router)
