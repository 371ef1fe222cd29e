"""
Partner Endpoints

GET    /api/v1/partners                          - List partners
POST   /api/v1/partners                          - Create (multipart, with assets)
GET    /api/v1/partners/{id}                     - Get one
PUT    /api/v1/partners/{id}                     - Update (multipart, with new assets)
DELETE /api/v1/partners/{id}                     - Delete partner and its banners
GET    /api/v1/partners/{id}/product-photos      - List product photos
POST   /api/v1/partners/{id}/product-photos      - Add a product photo
DELETE /api/v1/partners/{id}/product-photos      - Remove a product photo by URL
POST   /api/v1/partners/{id}/style-analysis      - Analyze reference banners (uploaded or stored)
"""

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from banner_studio.api.dependencies import get_partner_service, get_resolver
from banner_studio.core.exceptions import ValidationError
from banner_studio.core.logging import get_logger
from banner_studio.core.storage import UploadedFile
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.modules.partners.models import (
    PartnerCreate,
    PartnerResponse,
    PartnerStatus,
    PartnerUpdate,
    ProductPhoto,
)
from banner_studio.modules.partners.service import PartnerFiles, PartnerService

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Form helpers
# =============================================================================

async def _read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None or not file.filename:
        return None
    return UploadedFile(
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
        data=await file.read()
    )


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedFile]:
    read = [await _read_upload(f) for f in files or []]
    return [f for f in read if f is not None]


def _parse_json(value: Optional[str], field: str) -> Any:
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in field '{field}'", details={"error": str(e)}) from e


def _parse_list(value: Optional[str], field: str) -> Optional[List[str]]:
    """Accept a JSON array or a comma-separated string."""
    if value is None:
        return None
    value = value.strip()
    if value.startswith("["):
        parsed = _parse_json(value, field)
        if not isinstance(parsed, list):
            raise ValidationError(f"Field '{field}' must be a list")
        return [str(v) for v in parsed]
    return [v.strip() for v in value.split(",") if v.strip()]


async def _partner_files(
    logo: Optional[UploadFile],
    brand_manual: Optional[UploadFile],
    reference_banners: Optional[List[UploadFile]],
    product_photos: Optional[List[UploadFile]],
) -> PartnerFiles:
    return PartnerFiles(
        logo=await _read_upload(logo),
        brand_manual=await _read_upload(brand_manual),
        reference_banners=await _read_uploads(reference_banners),
        product_photos=await _read_uploads(product_photos),
    )


# =============================================================================
# Partners
# =============================================================================

@router.get("")
async def list_partners(
    status: Optional[PartnerStatus] = None,
    service: PartnerService = Depends(get_partner_service),
) -> List[Dict[str, Any]]:
    partners = await service.list_partners(status.value if status else None)
    return [p.to_response_dict() for p in partners]


@router.post("", response_model=PartnerResponse, status_code=201)
async def create_partner(
    name: str = Form(...),
    regions: Optional[str] = Form(None),
    partner_url: Optional[str] = Form(None),
    benefits_description: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    status: PartnerStatus = Form(PartnerStatus.ACTIVE),
    reference_style_analysis: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    brand_manual: Optional[UploadFile] = File(None),
    reference_banners: Optional[List[UploadFile]] = File(None),
    product_photos: Optional[List[UploadFile]] = File(None),
    service: PartnerService = Depends(get_partner_service),
):
    """
    Create a partner. All files are uploaded concurrently; files that fail
    are listed in failed_uploads and the partner is still created.
    """
    data = PartnerCreate(
        name=name,
        regions=_parse_list(regions, "regions") or [],
        partner_url=partner_url,
        benefits_description=benefits_description,
        description=description,
        status=status,
        reference_style_analysis=_parse_json(reference_style_analysis, "reference_style_analysis"),
    )
    files = await _partner_files(logo, brand_manual, reference_banners, product_photos)

    partner, failed = await service.create_partner(data, files)
    return PartnerResponse(partner=partner.to_response_dict(), failed_uploads=failed)


@router.get("/{partner_id}")
async def get_partner(
    partner_id: str,
    service: PartnerService = Depends(get_partner_service),
) -> Dict[str, Any]:
    partner = await service.get_partner(partner_id)
    return partner.to_response_dict()


@router.put("/{partner_id}", response_model=PartnerResponse)
async def update_partner(
    partner_id: str,
    name: Optional[str] = Form(None),
    regions: Optional[str] = Form(None),
    partner_url: Optional[str] = Form(None),
    benefits_description: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    status: Optional[PartnerStatus] = Form(None),
    reference_style_analysis: Optional[str] = Form(None),
    existing_reference_banners_urls: Optional[str] = Form(None),
    existing_product_photos_urls: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    brand_manual: Optional[UploadFile] = File(None),
    reference_banners: Optional[List[UploadFile]] = File(None),
    product_photos: Optional[List[UploadFile]] = File(None),
    service: PartnerService = Depends(get_partner_service),
):
    """Partial update; only submitted form fields change."""
    fields: Dict[str, Any] = {
        "name": name,
        "regions": _parse_list(regions, "regions"),
        "partner_url": partner_url,
        "benefits_description": benefits_description,
        "description": description,
        "status": status,
        "reference_style_analysis": _parse_json(reference_style_analysis, "reference_style_analysis"),
        "existing_reference_banners_urls": _parse_list(
            existing_reference_banners_urls, "existing_reference_banners_urls"
        ),
        "existing_product_photos_urls": _parse_list(existing_product_photos_urls, "existing_product_photos_urls"),
    }
    data = PartnerUpdate(**{k: v for k, v in fields.items() if v is not None})
    files = await _partner_files(logo, brand_manual, reference_banners, product_photos)

    partner, failed = await service.update_partner(partner_id, data, files)
    return PartnerResponse(partner=partner.to_response_dict(), failed_uploads=failed)


@router.delete("/{partner_id}")
async def delete_partner(
    partner_id: str,
    service: PartnerService = Depends(get_partner_service),
):
    await service.delete_partner(partner_id)
    return {"deleted": partner_id}


# =============================================================================
# Product Photos
# =============================================================================

@router.get("/{partner_id}/product-photos", response_model=List[ProductPhoto])
async def list_product_photos(
    partner_id: str,
    service: PartnerService = Depends(get_partner_service),
):
    return await service.list_product_photos(partner_id)


@router.post("/{partner_id}/product-photos", response_model=ProductPhoto, status_code=201)
async def add_product_photo(
    partner_id: str,
    file: UploadFile = File(...),
    service: PartnerService = Depends(get_partner_service),
):
    uploaded = await _read_upload(file)
    if uploaded is None:
        raise ValidationError("No file provided")
    return await service.add_product_photo(partner_id, uploaded)


@router.delete("/{partner_id}/product-photos")
async def remove_product_photo(
    partner_id: str,
    url: str,
    service: PartnerService = Depends(get_partner_service),
) -> Dict[str, Any]:
    partner = await service.remove_product_photo(partner_id, url)
    return partner.to_response_dict()


# =============================================================================
# Reference Style
# =============================================================================

@router.post("/{partner_id}/style-analysis")
async def analyze_reference_style(
    partner_id: str,
    reference_banners: Optional[List[UploadFile]] = File(None),
    service: PartnerService = Depends(get_partner_service),
    resolver: UploadFallbackResolver = Depends(get_resolver),
) -> Dict[str, Any]:
    """
    Run the reference-style analysis and store it on the partner.

    Uploaded banners are analyzed when given; otherwise the partner's
    stored reference banners are fetched through the upload resolver.
    """
    images = await _read_uploads(reference_banners)
    partner = await service.analyze_reference_style(partner_id, images, fetch=resolver.fetch_image)
    return partner.to_response_dict()
