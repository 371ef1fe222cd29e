"""
Partner Model

A partner is a brand banners are generated for. Besides its profile it
holds the URLs of its stored assets: logo, brand manual, reference
banners and product photos.
"""

import uuid
from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlmodel import SQLModel, Field, Column, JSON


def utc_now() -> datetime:
    """Naive UTC timestamp, the form the database columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PartnerStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class Partner(SQLModel, table=True):
    __tablename__ = "partners"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )
    name: str = Field(index=True)
    regions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    partner_url: Optional[str] = None
    benefits_description: Optional[str] = None
    description: Optional[str] = None

    # Stored asset URLs
    logo_url: Optional[str] = None
    brand_manual_url: Optional[str] = None
    reference_banners_urls: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    product_photos_urls: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Output of a style analysis over the reference banners, used in prompts
    reference_style_analysis: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    status: str = Field(default=PartnerStatus.ACTIVE.value)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self):
        self.updated_at = utc_now()

    def to_response_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "regions": list(self.regions or []),
            "partner_url": self.partner_url,
            "benefits_description": self.benefits_description,
            "description": self.description,
            "logo_url": self.logo_url,
            "brand_manual_url": self.brand_manual_url,
            "reference_banners_urls": list(self.reference_banners_urls or []),
            "product_photos_urls": list(self.product_photos_urls or []),
            "reference_style_analysis": self.reference_style_analysis,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# =============================================================================
# Request/Response Schemas
# =============================================================================

class PartnerCreate(BaseModel):
    name: str = PydanticField(..., min_length=1, max_length=200)
    regions: List[str] = PydanticField(default_factory=list)
    partner_url: Optional[str] = None
    benefits_description: Optional[str] = None
    description: Optional[str] = None
    status: PartnerStatus = PartnerStatus.ACTIVE
    reference_style_analysis: Optional[Dict[str, Any]] = None


class PartnerUpdate(BaseModel):
    """
    Partial update. Unset fields keep their value.

    existing_* lists replace the stored URL lists before new uploads are
    appended; leave them unset to keep every stored URL.
    """
    name: Optional[str] = PydanticField(default=None, min_length=1, max_length=200)
    regions: Optional[List[str]] = None
    partner_url: Optional[str] = None
    benefits_description: Optional[str] = None
    description: Optional[str] = None
    status: Optional[PartnerStatus] = None
    reference_style_analysis: Optional[Dict[str, Any]] = None
    logo_url: Optional[str] = None
    brand_manual_url: Optional[str] = None
    existing_reference_banners_urls: Optional[List[str]] = None
    existing_product_photos_urls: Optional[List[str]] = None


class UploadOutcome(BaseModel):
    """Result of one file in a concurrent upload batch, tagged with its position."""
    index: int
    folder: str
    filename: str
    url: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.url is not None


class PartnerResponse(BaseModel):
    partner: Dict[str, Any]
    failed_uploads: List[UploadOutcome] = PydanticField(default_factory=list)


class ProductPhoto(BaseModel):
    id: str
    partner_id: str
    url: str
    filename: str
