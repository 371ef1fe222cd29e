"""
Banner framing.

Places a generated banner on a wider desktop canvas (1440x338 by default)
and fills the sides so the frame continues the banner's own background.

Fill choice, first match wins:
1. Brand primary given and background confidence < 0.8 -> solid brand primary
2. "uniform-solid" background with confidence > 0.85     -> solid background color
3. Uniform background with confidence > 0.7              -> solid background color
4. Brand primary given                                    -> primary -> secondary gradient
5. Otherwise                                              -> left edge -> right edge gradient

The banner is fitted into 92% of the frame width and 96% of its height,
centered, with a faint shadow unless the background is confidently uniform.
"""

import io
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageFilter, UnidentifiedImageError
from pydantic import BaseModel, Field

from banner_studio.core.exceptions import UpstreamError, ValidationError
from banner_studio.core.logging import get_logger
from banner_studio.engines.editor.colors import BrandColors, extract_palette, lighten, rgb_to_hex
from banner_studio.engines.editor.render import ImageFetcher

logger = get_logger(__name__)

OPAQUE_ALPHA = 200
EDGE_COLUMNS = 3
EXTENDABLE_EDGE_WIDTH = 50
EXTENDABLE_TOLERANCE = 40
EXTENDABLE_RATIO = 0.8


class FramingOptions(BaseModel):
    target_width: int = Field(default=1440, gt=0, le=4096)
    target_height: int = Field(default=338, gt=0, le=4096)
    fallback_color: str = "#1a365d"
    brand_colors: Optional[BrandColors] = None


class ExtractedColors(BaseModel):
    dominant: str
    secondary: str
    palette: List[str]
    left_edge_color: str
    right_edge_color: str


@dataclass
class BackgroundMatch:
    background_color: str
    left_edge_color: str
    right_edge_color: str
    is_uniform: bool
    confidence: float
    strategy: str


@dataclass
class FramedBanner:
    data: bytes
    original_image_url: str
    width: int
    height: int
    fill: str
    background: BackgroundMatch
    colors: ExtractedColors


def _rgb(color: str) -> Tuple[int, int, int]:
    try:
        return ImageColor.getrgb(color)[:3]
    except ValueError as e:
        raise ValidationError(f"Invalid color: {color!r}") from e


# =============================================================================
# Background analysis
# =============================================================================

def _opaque_colors(block: np.ndarray) -> np.ndarray:
    """Opaque pixels of an RGBA block packed as 0xRRGGBB."""
    pixels = block[block[..., 3] > OPAQUE_ALPHA][:, :3].astype(np.int32)
    return (pixels[:, 0] << 16) | (pixels[:, 1] << 8) | pixels[:, 2]


def _dominant(packed: np.ndarray, fallback: str) -> Tuple[str, float]:
    """Most common color and the share of samples it covers."""
    if packed.size == 0:
        return fallback, 0.0
    values, counts = np.unique(packed, return_counts=True)
    best = int(counts.argmax())
    return f"#{int(values[best]):06x}", float(counts[best]) / packed.size


def analyze_background(image: Image.Image, fallback_color: str = "#1a365d") -> BackgroundMatch:
    """Exact-color statistics of the outer columns, borders and corners."""
    pixels = np.asarray(image.convert("RGBA"))
    height, width = pixels.shape[:2]

    columns = min(EDGE_COLUMNS, width)
    left = _opaque_colors(pixels[:, :columns])
    right = _opaque_colors(pixels[:, width - columns:])
    left_color, left_confidence = _dominant(left, fallback_color)
    right_color, right_confidence = _dominant(right, fallback_color)

    # (x, y, w, h): top and bottom bands, wide side bands, corners
    areas = [
        (0, 0, width, 20), (0, height - 20, width, 20),
        (0, 0, 50, height), (width - 50, 0, 50, height),
        (0, 0, 100, 100), (width - 100, 0, 100, 100),
        (0, height - 100, 100, 100), (width - 100, height - 100, 100, 100),
    ]
    samples = [left, right]
    for x, y, w, h in areas:
        samples.append(_opaque_colors(pixels[max(0, y):y + h:4, max(0, x):x + w:4]))

    background, ratio = _dominant(np.concatenate(samples), fallback_color)

    strategy = "edge-sampling"
    confidence = (left_confidence + right_confidence) / 2
    is_uniform = ratio > 0.7
    if left_color == right_color and background in (left_color, right_color) and ratio > 0.8:
        strategy = "uniform-solid"
        confidence = max(0.9, ratio)
        is_uniform = True
    elif ratio > 0.6:
        strategy = "background-dominant"
        confidence = ratio
        is_uniform = True

    return BackgroundMatch(
        background_color=background,
        left_edge_color=left_color,
        right_edge_color=right_color,
        is_uniform=is_uniform,
        confidence=confidence,
        strategy=strategy,
    )


def is_extendable(image: Image.Image) -> bool:
    """
    Whether both side strips are close to a single color.

    Strips are 50px wide and min(200px, 60% of the height) tall, vertically
    centered. A strip passes when 80% of its pixels are within 40 per
    channel of its first pixel.
    """
    pixels = np.asarray(image.convert("RGB")).astype(np.int16)
    height, width = pixels.shape[:2]
    edge = min(EXTENDABLE_EDGE_WIDTH, width)
    sample_height = max(1, int(min(200, height * 0.6)))
    top = (height - sample_height) // 2

    def consistent(strip: np.ndarray) -> bool:
        flat = strip.reshape(-1, 3)
        if flat.size == 0:
            return False
        close = (np.abs(flat - flat[0]) <= EXTENDABLE_TOLERANCE).all(axis=1)
        return float(close.mean()) >= EXTENDABLE_RATIO

    rows = pixels[top:top + sample_height]
    return consistent(rows[:, :edge]) and consistent(rows[:, width - edge:])


# =============================================================================
# Frame
# =============================================================================

def _gradient(size: Tuple[int, int], stops: Sequence[Tuple[float, str]]) -> Image.Image:
    """Horizontal linear gradient through (position 0..1, color) stops."""
    width, height = size
    positions = [position * max(1, width - 1) for position, _ in stops]
    colors = np.array([_rgb(color) for _, color in stops], dtype=np.float64)
    xs = np.arange(width)
    row = np.stack([np.interp(xs, positions, colors[:, c]) for c in range(3)], axis=-1)
    band = np.broadcast_to(np.round(row).astype(np.uint8)[np.newaxis], (height, width, 3))
    return Image.fromarray(np.ascontiguousarray(band)).convert("RGBA")


def choose_fill(match: BackgroundMatch, brand: Optional[BrandColors]) -> Tuple[str, List[Tuple[float, str]]]:
    primary = brand.primary if brand else None
    secondary = brand.secondary if brand else None

    if primary and match.confidence < 0.8:
        return "brand", [(0, primary), (1, primary)]
    if match.strategy == "uniform-solid" and match.confidence > 0.85:
        return "solid", [(0, match.background_color), (1, match.background_color)]
    if match.is_uniform and match.confidence > 0.7:
        return "solid", [(0, match.background_color), (1, match.background_color)]
    if primary:
        if secondary:
            return "brand-gradient", [(0, primary), (0.2, primary), (0.8, secondary), (1, secondary)]
        return "brand", [(0, primary), (1, primary)]

    left, right = match.left_edge_color, match.right_edge_color
    if left == right:
        return "edge", [(0, left), (1, left)]
    return "edge-gradient", [(0, left), (0.05, left), (0.95, right), (1, right)]


def fit_box(image_size: Tuple[int, int], frame_size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    """(x, y, width, height) of the banner inside the frame."""
    iw, ih = image_size
    fw, fh = frame_size
    max_w, max_h = fw * 0.92, fh * 0.96
    aspect = iw / ih
    if aspect > max_w / max_h:
        w, h = max_w, max_w / aspect
    else:
        w, h = max_h * aspect, max_h
    w, h = max(1, int(round(w))), max(1, int(round(h)))
    return (fw - w) // 2, (fh - h) // 2, w, h


def _extracted_colors(image: Image.Image, match: BackgroundMatch, brand: Optional[BrandColors]) -> ExtractedColors:
    palette = extract_palette(image, num_colors=8)
    dominant = palette[0]
    if len(palette) > 1:
        secondary = palette[1]
    else:
        secondary = rgb_to_hex(lighten(_rgb(dominant)))

    brand = brand or BrandColors()
    if brand.primary:
        merged = [brand.primary, brand.secondary or brand.primary] + palette[2:]
    else:
        merged = [match.background_color] + palette[1:]
    return ExtractedColors(
        dominant=dominant,
        secondary=secondary,
        palette=merged,
        left_edge_color=brand.primary or match.left_edge_color,
        right_edge_color=brand.secondary or match.right_edge_color,
    )


def frame_image(image: Image.Image, options: FramingOptions) -> Tuple[Image.Image, str, BackgroundMatch]:
    """Frame an already decoded banner. Returns (frame, fill name, background analysis)."""
    size = (options.target_width, options.target_height)
    match = analyze_background(image, options.fallback_color)
    fill, stops = choose_fill(match, options.brand_colors)
    canvas = _gradient(size, stops)

    x, y, w, h = fit_box(image.size, size)
    banner = image.convert("RGBA").resize((w, h), Image.Resampling.LANCZOS)

    if not match.is_uniform or match.confidence < 0.8:
        shadow = Image.new("RGBA", size, (0, 0, 0, 0))
        shadow.paste((0, 0, 0, 255), (x, y + 1, x + w, y + 1 + h), banner.getchannel("A").point(lambda a: a * 8 // 100))
        canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(2)))

    canvas.alpha_composite(banner, (x, y))
    return canvas.convert("RGB"), fill, match


def decode_image(data: bytes, url: str) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.copy()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Could not decode banner image: {url}", details={"error": str(e)}) from e


def _frame_and_encode(image: Image.Image, url: str, options: FramingOptions) -> FramedBanner:
    framed, fill, match = frame_image(image, options)
    buffer = io.BytesIO()
    framed.save(buffer, format="PNG")
    return FramedBanner(
        data=buffer.getvalue(),
        original_image_url=url,
        width=framed.size[0],
        height=framed.size[1],
        fill=fill,
        background=match,
        colors=_extracted_colors(image, match, options.brand_colors),
    )


async def create_framed_banner(image_url: str, options: FramingOptions, fetch: ImageFetcher) -> FramedBanner:
    """Fetch a banner and return it framed as PNG with the colors it was framed with."""
    image = decode_image(await fetch(image_url), image_url)
    framed = await asyncio.to_thread(_frame_and_encode, image, image_url, options)
    logger.info(
        "banner_framed",
        fill=framed.fill,
        strategy=framed.background.strategy,
        confidence=round(framed.background.confidence, 3),
        width=framed.width,
        height=framed.height
    )
    return framed


async def has_extendable_background(image_url: str, fetch: ImageFetcher) -> bool:
    """is_extendable for a URL; an image that cannot be fetched or decoded is not extendable."""
    try:
        image = decode_image(await fetch(image_url), image_url)
    except (UpstreamError, ValidationError) as e:
        logger.warning("extendable_check_failed", image_url=image_url, error=e.message)
        return False
    return await asyncio.to_thread(is_extendable, image)


# =============================================================================
# API schemas
# =============================================================================

class FrameRequest(BaseModel):
    image_url: str = Field(..., min_length=1)
    options: FramingOptions = Field(default_factory=FramingOptions)
    filename: Optional[str] = Field(default=None, description="Object path in the banners bucket")


class FrameResponse(BaseModel):
    url: str
    bucket: str
    path: str
    original_image_url: str
    width: int
    height: int
    fill: str
    strategy: str
    confidence: float
    extendable: bool
    colors: ExtractedColors


class ExtendableRequest(BaseModel):
    image_url: str = Field(..., min_length=1)


class ExtendableResponse(BaseModel):
    image_url: str
    extendable: bool
