"""
Banner Editor Endpoints

POST /api/v1/editor/render      - Render a composition and return the image
POST /api/v1/editor/export      - Render and store it in the banners bucket
POST /api/v1/editor/frame       - Frame a banner on a desktop canvas and store it
POST /api/v1/editor/extendable  - Whether a banner's side background can be extended
"""

import asyncio

from fastapi import APIRouter, Depends, Response

from banner_studio.api.dependencies import get_resolver
from banner_studio.core.config import settings
from banner_studio.core.storage import IStorage, generate_object_path, get_storage
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.engines.editor import render_composition
from banner_studio.engines.editor.framing import (
    ExtendableRequest,
    ExtendableResponse,
    FrameRequest,
    FrameResponse,
    create_framed_banner,
    decode_image,
    frame_image,
    has_extendable_background,
    is_extendable,
)
from banner_studio.engines.editor.schemas import ExportRequest, ExportResponse, RenderRequest

router = APIRouter()


@router.post("/render")
async def render(
    request: RenderRequest,
    resolver: UploadFallbackResolver = Depends(get_resolver),
):
    data, _ = await render_composition(request.composition, request.options, resolver.fetch_image)
    return Response(content=data, media_type=request.options.format.content_type)


@router.post("/export", response_model=ExportResponse)
async def export(
    request: ExportRequest,
    resolver: UploadFallbackResolver = Depends(get_resolver),
    storage: IStorage = Depends(get_storage),
):
    data, (width, height) = await render_composition(request.composition, request.options, resolver.fetch_image)

    extension = f".{request.options.format.value}"
    path = request.filename or generate_object_path("exports", extension)
    bucket = settings.BANNERS_BUCKET
    path = await storage.upload(data, path, bucket, content_type=request.options.format.content_type)

    return ExportResponse(
        url=storage.get_public_url(path, bucket),
        bucket=bucket,
        path=path,
        format=request.options.format,
        width=width,
        height=height,
        size=len(data),
    )


@router.post("/frame", response_model=FrameResponse)
async def frame(
    request: FrameRequest,
    resolver: UploadFallbackResolver = Depends(get_resolver),
    storage: IStorage = Depends(get_storage),
):
    """
    Center the banner on a target_width x target_height canvas whose sides
    continue its background (or the brand colors) and store the PNG.
    """
    fetched = {}

    async def fetch_once(url: str) -> bytes:
        if url not in fetched:
            fetched[url] = await resolver.fetch_image(url)
        return fetched[url]

    framed = await create_framed_banner(request.image_url, request.options, fetch_once)
    image = decode_image(fetched[request.image_url], request.image_url)
    extendable = await asyncio.to_thread(is_extendable, image)

    bucket = settings.BANNERS_BUCKET
    path = request.filename or generate_object_path("framed", ".png")
    path = await storage.upload(framed.data, path, bucket, content_type="image/png")

    return FrameResponse(
        url=storage.get_public_url(path, bucket),
        bucket=bucket,
        path=path,
        original_image_url=framed.original_image_url,
        width=framed.width,
        height=framed.height,
        fill=framed.fill,
        strategy=framed.background.strategy,
        confidence=framed.background.confidence,
        extendable=extendable,
        colors=framed.colors,
    )


@router.post("/extendable", response_model=ExtendableResponse)
async def extendable(
    request: ExtendableRequest,
    resolver: UploadFallbackResolver = Depends(get_resolver),
):
    result = await has_extendable_background(request.image_url, resolver.fetch_image)
    return ExtendableResponse(image_url=request.image_url, extendable=result)
