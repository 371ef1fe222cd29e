"""Palette and brand-color extraction with Pillow quantization."""

import io
from typing import Dict, List, Optional, Sequence

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from banner_studio.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BRAND_COLORS = {"primary": "#3B82F6", "secondary": "#E5E7EB"}


class BrandColors(BaseModel):
    primary: Optional[str] = None
    secondary: Optional[str] = None


def rgb_to_hex(rgb: Sequence[int]) -> str:
    return "#" + "".join(f"{int(c):02x}" for c in rgb[:3])


def lighten(rgb: Sequence[int], factor: float = 0.7) -> List[int]:
    return [min(255, round(c + (255 - c) * factor)) for c in rgb[:3]]


def extract_palette(image: Image.Image, num_colors: int = 8) -> List[str]:
    """Most frequent colors first, ignoring transparent pixels."""
    rgba = image.convert("RGBA")
    small = rgba.resize((150, 150))
    opaque = Image.new("RGB", small.size, (255, 255, 255))
    opaque.paste(small, mask=small.getchannel("A"))

    paletted = opaque.quantize(colors=max(1, num_colors))
    palette = paletted.getpalette() or []
    counts = sorted(paletted.getcolors(maxcolors=150 * 150) or [], reverse=True)

    result = []
    for _, index in counts[:num_colors]:
        base = index * 3
        if base + 2 < len(palette):
            result.append(rgb_to_hex(palette[base:base + 3]))

    if not result:
        result = [rgb_to_hex(opaque.resize((1, 1)).getpixel((0, 0)))]
    return result


def _is_near_white(hex_color: str) -> bool:
    r, g, b = (int(hex_color[i:i + 2], 16) for i in (1, 3, 5))
    return min(r, g, b) > 235


def extract_brand_colors(logo: Optional[bytes] = None) -> Dict[str, str]:
    """
    Primary and secondary brand colors from a logo.

    The two most frequent non-white logo colors; a single color gets a
    lighter tint as secondary. No logo, or one that does not decode,
    gives the default blue/gray pair.
    """
    if not logo:
        return dict(DEFAULT_BRAND_COLORS)

    try:
        with Image.open(io.BytesIO(logo)) as img:
            palette = extract_palette(img, num_colors=6)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("brand_color_extraction_failed", error=str(e))
        return dict(DEFAULT_BRAND_COLORS)

    colors = [c for c in palette if not _is_near_white(c)] or palette
    primary = colors[0]
    if len(colors) > 1:
        secondary = colors[1]
    else:
        secondary = rgb_to_hex(lighten([int(primary[i:i + 2], 16) for i in (1, 3, 5)]))
    return {"primary": primary, "secondary": secondary}
