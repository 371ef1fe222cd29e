"""
Banner Model

Two kinds of rows share the table:
- legacy rows, saved as a desktop/mobile pair a moment apart
- enhanced rows, a single desktop banner with main/description/CTA copy
"""

import uuid
from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import ForeignKey, String
from sqlmodel import SQLModel, Field, Column

from banner_studio.modules.partners.models import utc_now


class BannerImageType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


class Banner(SQLModel, table=True):
    __tablename__ = "banners"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )
    partner_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("partners.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    image_url: str
    image_type: str = Field(default=BannerImageType.DESKTOP.value)
    prompt_used: Optional[str] = None
    banner_title: Optional[str] = None

    # Enhanced banner copy
    product_description: Optional[str] = None
    main_text: Optional[str] = None
    description_text: Optional[str] = None
    cta_text: Optional[str] = None
    discount_percentage: Optional[int] = None

    created_at: datetime = Field(default_factory=utc_now, index=True)

    @property
    def is_enhanced(self) -> bool:
        return bool(self.main_text or self.description_text or self.cta_text)

    def to_response_dict(self, partner_name: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "partner_name": partner_name,
            "image_url": self.image_url,
            "image_type": self.image_type,
            "prompt_used": self.prompt_used,
            "banner_title": self.banner_title,
            "product_description": self.product_description,
            "main_text": self.main_text,
            "description_text": self.description_text,
            "cta_text": self.cta_text,
            "discount_percentage": self.discount_percentage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# =============================================================================
# Request/Response Schemas
# =============================================================================

class BannerPairCreate(BaseModel):
    """Save a generated desktop/mobile pair."""
    partner_id: str
    desktop_url: str = PydanticField(..., min_length=1)
    mobile_url: str = PydanticField(..., min_length=1)
    prompt: Optional[str] = None
    banner_title: Optional[str] = None


class BannerCreate(BaseModel):
    """Save a single banner image with its copy."""
    partner_id: str
    image_url: str = PydanticField(..., min_length=1)
    image_type: BannerImageType = BannerImageType.DESKTOP
    prompt_used: Optional[str] = None
    banner_title: Optional[str] = None
    product_description: Optional[str] = None
    main_text: Optional[str] = None
    description_text: Optional[str] = None
    cta_text: Optional[str] = None
    discount_percentage: Optional[int] = PydanticField(default=None, ge=0, le=100)
    store_image: bool = PydanticField(default=True, description="Copy the image into owned storage first")


class BannerGroup(BaseModel):
    """
    One entry of the banner history.

    Enhanced rows are listed on their own; legacy rows are folded into
    desktop/mobile pairs.
    """
    id: str
    partner_id: str
    partner_name: Optional[str] = None
    banner_title: Optional[str] = None
    prompt_used: Optional[str] = None
    enhanced: bool
    image_url: Optional[str] = None
    desktop_url: Optional[str] = None
    mobile_url: Optional[str] = None
    main_text: Optional[str] = None
    description_text: Optional[str] = None
    cta_text: Optional[str] = None
    discount_percentage: Optional[int] = None
    product_description: Optional[str] = None
    banner_ids: List[str] = PydanticField(default_factory=list)
    created_at: datetime


class BannerDeleteResponse(BaseModel):
    deleted_ids: List[str]
    deleted_objects: int


class OpenAIBannerCreate(BaseModel):
    """Generate a full 3:2 banner with OpenAI from the partner's assets."""
    partner_id: str
    promotional_text: str = PydanticField(..., min_length=1)
    cta_text: str = PydanticField(..., min_length=1)
    benefits: List[str] = PydanticField(default_factory=list)
    promotion_discount: Optional[str] = None
    custom_prompt: Optional[str] = None
    banner_title: Optional[str] = None


class BackgroundLayerCreate(BaseModel):
    """Generate a text-free background after the partner's reference style."""
    partner_id: str
