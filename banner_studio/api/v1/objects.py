"""
Object URL Endpoints

GET    /api/v1/objects/{token} - Bytes behind a registered result URL
DELETE /api/v1/objects/{token} - Revoke it
"""

from fastapi import APIRouter, Depends, Response

from banner_studio.api.dependencies import get_registry
from banner_studio.core.exceptions import NotFoundError
from banner_studio.core.object_urls import ObjectUrlRegistry

router = APIRouter()


@router.get("/{token}")
async def get_object(token: str, registry: ObjectUrlRegistry = Depends(get_registry)):
    obj = registry.resolve(registry.url_for(token))
    if obj is None:
        raise NotFoundError("Object", token)
    return Response(
        content=obj.data,
        media_type=obj.content_type,
        headers={"Cache-Control": "private, no-store"}
    )


@router.delete("/{token}")
async def revoke_object(token: str, registry: ObjectUrlRegistry = Depends(get_registry)):
    if not registry.revoke(registry.url_for(token)):
        raise NotFoundError("Object", token)
    return {"revoked": token}
