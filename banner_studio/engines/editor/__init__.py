"""Banner editor: composition model, Pillow renderer and desktop framing."""

from banner_studio.engines.editor.colors import BrandColors, extract_brand_colors, extract_palette
from banner_studio.engines.editor.framing import (
    FramedBanner,
    FramingOptions,
    create_framed_banner,
    has_extendable_background,
)
from banner_studio.engines.editor.render import render_composition
from banner_studio.engines.editor.schemas import BannerAsset, BannerComposition, ExportOptions

__all__ = [
    "render_composition",
    "BannerAsset",
    "BannerComposition",
    "ExportOptions",
    "BrandColors",
    "extract_brand_colors",
    "extract_palette",
    "FramedBanner",
    "FramingOptions",
    "create_framed_banner",
    "has_extendable_background",
]
