"""
Background Removal Endpoints

POST /api/v1/background-removal              - Cut out an uploaded image
GET  /api/v1/background-removal/performance  - Device capabilities and limits

The cut-out is held in memory and served from /api/v1/objects/{token};
revoke it with DELETE on that URL once the client has used it.
"""

from fastapi import APIRouter, Depends, File, UploadFile

from banner_studio.api.dependencies import get_pipeline
from banner_studio.engines.background_removal import BackgroundRemovalPipeline
from banner_studio.engines.background_removal.schemas import PerformanceInfo, RemovalResponse

router = APIRouter()


@router.post("", response_model=RemovalResponse)
async def remove_background(
    file: UploadFile = File(...),
    pipeline: BackgroundRemovalPipeline = Depends(get_pipeline),
):
    """
    Remove the background of an image.

    The primary configuration is picked from the image brightness and the
    available device; on failure a fallback ladder is walked starting at
    the tier that matches the error kind.
    """
    data = await file.read()
    result = await pipeline.remove_background(
        data,
        file.content_type or "application/octet-stream",
        filename=file.filename or "image"
    )
    return RemovalResponse.from_result(result)


@router.get("/performance", response_model=PerformanceInfo)
async def performance(pipeline: BackgroundRemovalPipeline = Depends(get_pipeline)):
    return pipeline.performance_info()
