"""
Upload Resolution Endpoint

POST /api/v1/uploads/resolve - Copy a remote image into owned storage

External AI-provider URLs go through the server proxy and public relays;
the original URL comes back unchanged (strategy "passthrough") when none
of them produce an image.
"""

from fastapi import APIRouter, Depends

from banner_studio.api.dependencies import get_resolver
from banner_studio.core.config import settings
from banner_studio.core.exceptions import ValidationError
from banner_studio.engines.acquisition import ResolveResult, UploadFallbackResolver
from banner_studio.engines.acquisition.schemas import ResolveUploadRequest

router = APIRouter()


@router.post("/resolve", response_model=ResolveResult)
async def resolve_upload(
    request: ResolveUploadRequest,
    resolver: UploadFallbackResolver = Depends(get_resolver),
):
    if request.bucket is not None and request.bucket not in settings.STORAGE_BUCKETS:
        raise ValidationError(
            f"Unknown bucket: {request.bucket!r}",
            details={"allowed": settings.STORAGE_BUCKETS}
        )
    return await resolver.resolve(request.image_url, request.filename, request.bucket)
