"""
Banner Endpoints

GET    /api/v1/banners            - Banner history (enhanced rows + legacy pairs)
GET    /api/v1/banners/stats      - Counts per partner and most recent rows
POST   /api/v1/banners            - Save one banner (image copied to storage)
POST   /api/v1/banners/pair       - Save a desktop/mobile pair
POST   /api/v1/banners/enhanced   - Generate and save an enhanced banner
POST   /api/v1/banners/openai     - Generate and save a 3:2 banner with OpenAI
POST   /api/v1/banners/background - Generate a Flux background layer
POST   /api/v1/banners/product-cutout - Generate a Flux product cutout layer
GET    /api/v1/banners/{id}       - Get one
DELETE /api/v1/banners/{id}       - Delete it with the rows saved alongside it
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from banner_studio.api.dependencies import (
    get_banner_service,
    get_enhanced_workflow,
    get_layer_generator,
    get_openai_workflow,
)
from banner_studio.core.exceptions import ValidationError
from banner_studio.core.logging import get_logger
from banner_studio.engines.generation import BannerLayerGenerator, GeneratedLayer
from banner_studio.modules.banners.models import (
    BackgroundLayerCreate,
    BannerCreate,
    BannerDeleteResponse,
    BannerGroup,
    BannerPairCreate,
    OpenAIBannerCreate,
)
from banner_studio.modules.banners.service import BannerService
from banner_studio.modules.banners.workflow import (
    EnhancedBannerInput,
    EnhancedBannerWorkflow,
    OpenAIBannerInput,
    OpenAIBannerWorkflow,
)

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=List[BannerGroup])
async def list_banners(
    partner_id: Optional[str] = None,
    service: BannerService = Depends(get_banner_service),
):
    return await service.list_banners(partner_id)


@router.get("/stats")
async def banner_stats(
    limit: int = 10,
    service: BannerService = Depends(get_banner_service),
) -> Dict[str, Any]:
    counts = await service.count_by_partner()
    recent = await service.recent(limit)
    return {
        "total": sum(counts.values()),
        "by_partner": counts,
        "recent": [b.to_response_dict() for b in recent],
    }


@router.post("", status_code=201)
async def save_banner(
    request: BannerCreate,
    service: BannerService = Depends(get_banner_service),
) -> Dict[str, Any]:
    banner = await service.save_banner(request)
    return banner.to_response_dict()


@router.post("/pair", status_code=201)
async def save_banner_pair(
    request: BannerPairCreate,
    service: BannerService = Depends(get_banner_service),
) -> List[Dict[str, Any]]:
    banners = await service.save_banner_pair(request)
    return [b.to_response_dict() for b in banners]


@router.post("/enhanced", status_code=201)
async def create_enhanced_banner(
    partner_id: str = Form(...),
    main_text: str = Form(...),
    description_text: str = Form(...),
    cta_text: str = Form(...),
    discount_percentage: Optional[int] = Form(None, ge=0, le=100),
    banner_title: Optional[str] = Form(None),
    product_image: UploadFile = File(...),
    workflow: EnhancedBannerWorkflow = Depends(get_enhanced_workflow),
) -> Dict[str, Any]:
    """
    Analyze the product photo, generate a 1440x352 background with Flux and
    store it as a new banner carrying the given copy.
    """
    data = await product_image.read()
    if not data:
        raise ValidationError("Empty product image")

    banner = await workflow.create_enhanced_banner(EnhancedBannerInput(
        partner_id=partner_id,
        product_image=data,
        product_content_type=product_image.content_type or "application/octet-stream",
        main_text=main_text,
        description_text=description_text,
        cta_text=cta_text,
        discount_percentage=discount_percentage,
        banner_title=banner_title,
    ))
    return banner.to_response_dict()


@router.post("/openai", status_code=201)
async def create_openai_banner(
    request: OpenAIBannerCreate,
    workflow: OpenAIBannerWorkflow = Depends(get_openai_workflow),
) -> Dict[str, Any]:
    """Generate a 3:2 banner from the partner's logo, references and product photos."""
    banner = await workflow.create_openai_banner(OpenAIBannerInput(**request.model_dump()))
    return banner.to_response_dict()


@router.post("/background", response_model=GeneratedLayer)
async def generate_banner_background(
    request: BackgroundLayerCreate,
    service: BannerService = Depends(get_banner_service),
    layers: BannerLayerGenerator = Depends(get_layer_generator),
):
    partner = await service.get_partner(request.partner_id)
    return await layers.generate_banner_background(partner.reference_style_analysis)


@router.post("/product-cutout", response_model=GeneratedLayer)
async def generate_product_cutout(
    product_description: str = Form(..., min_length=1),
    product_image: UploadFile = File(...),
    layers: BannerLayerGenerator = Depends(get_layer_generator),
):
    data = await product_image.read()
    if not data:
        raise ValidationError("Empty product image")
    return await layers.generate_product_cutout(
        data, product_image.content_type or "application/octet-stream", product_description
    )


@router.get("/{banner_id}")
async def get_banner(
    banner_id: str,
    service: BannerService = Depends(get_banner_service),
) -> Dict[str, Any]:
    banner, partner_name = await service.get_banner(banner_id)
    return banner.to_response_dict(partner_name)


@router.delete("/{banner_id}", response_model=BannerDeleteResponse)
async def delete_banner(
    banner_id: str,
    service: BannerService = Depends(get_banner_service),
):
    deleted_ids, deleted_objects = await service.delete_banner(banner_id)
    return BannerDeleteResponse(deleted_ids=deleted_ids, deleted_objects=deleted_objects)
