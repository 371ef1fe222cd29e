"""
Banner Editor Schemas

A composition is a background plus an ordered list of assets (logo,
product, text, CTA) positioned in canvas pixels.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class AssetType(str, Enum):
    LOGO = "logo"
    TEXT = "text"
    CTA = "cta"
    PRODUCT = "product"


IMAGE_ASSETS = {AssetType.LOGO, AssetType.PRODUCT}


class Point(BaseModel):
    x: float = 0
    y: float = 0


class Size(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class BannerAsset(BaseModel):
    id: str
    type: AssetType
    position: Point = Field(default_factory=Point)
    size: Size
    rotation: float = 0

    # Image assets
    image_url: Optional[str] = None

    # Text and CTA assets
    text: Optional[str] = None
    font_size: int = Field(default=24, gt=0, le=512)
    font_family: Optional[str] = None
    color: str = "#FFFFFF"
    font_weight: str = "normal"
    text_align: str = Field(default="left", pattern="^(left|center|right)$")

    # CTA button styling
    background_color: Optional[str] = None
    border_radius: int = Field(default=0, ge=0)
    border_color: Optional[str] = None
    border_width: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_content(self) -> "BannerAsset":
        if self.type in IMAGE_ASSETS and not self.image_url:
            raise ValueError(f"{self.type.value} asset requires image_url")
        if self.type not in IMAGE_ASSETS and not self.text:
            raise ValueError(f"{self.type.value} asset requires text")
        return self


class BannerComposition(BaseModel):
    id: Optional[str] = None
    banner_id: Optional[str] = None
    background_image_url: Optional[str] = None
    background_color: str = "#FFFFFF"
    canvas_size: Size = Field(default_factory=lambda: Size(width=1440, height=352))
    zoom: float = 1.0
    assets: List[BannerAsset] = Field(default_factory=list)


class ExportFormat(str, Enum):
    PNG = "png"
    JPG = "jpg"

    @property
    def content_type(self) -> str:
        return "image/png" if self == ExportFormat.PNG else "image/jpeg"


class ExportOptions(BaseModel):
    format: ExportFormat = ExportFormat.PNG
    quality: float = Field(default=0.92, gt=0, le=1)
    scale: float = Field(default=1.0, gt=0, le=4)


class RenderRequest(BaseModel):
    composition: BannerComposition
    options: ExportOptions = Field(default_factory=ExportOptions)


class ExportRequest(RenderRequest):
    filename: Optional[str] = Field(default=None, description="Object path in the banners bucket")


class ExportResponse(BaseModel):
    url: str
    bucket: str
    path: str
    format: ExportFormat
    width: int
    height: int
    size: int
