"""
API v1 Router Module - Banner Studio

All v1 endpoints are prefixed with /api/v1/
"""

from fastapi import APIRouter

from banner_studio.api.v1.partners import router as partners_router
from banner_studio.api.v1.banners import router as banners_router
from banner_studio.api.v1.uploads import router as uploads_router
from banner_studio.api.v1.background_removal import router as background_removal_router
from banner_studio.api.v1.objects import router as objects_router
from banner_studio.api.v1.editor import router as editor_router
from banner_studio.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(partners_router, prefix="/partners", tags=["partners"])
api_v1_router.include_router(banners_router, prefix="/banners", tags=["banners"])
api_v1_router.include_router(uploads_router, prefix="/uploads", tags=["uploads"])
api_v1_router.include_router(background_removal_router, prefix="/background-removal", tags=["background-removal"])
api_v1_router.include_router(objects_router, prefix="/objects", tags=["objects"])
api_v1_router.include_router(editor_router, prefix="/editor", tags=["editor"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
