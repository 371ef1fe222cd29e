"""
Banner composition renderer.

Draws the background (cover-cropped to the canvas), then each asset in
list order: logo/product images fitted into their box, text with size,
color, weight and alignment, and CTA buttons as rounded rectangles with
a centered label. Rotation is applied per asset around its center.
"""

import io
import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Dict, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

from banner_studio.core.exceptions import ValidationError
from banner_studio.core.logging import get_logger
from banner_studio.engines.editor.schemas import (
    IMAGE_ASSETS,
    AssetType,
    BannerAsset,
    BannerComposition,
    ExportFormat,
    ExportOptions,
)

logger = get_logger(__name__)

ImageFetcher = Callable[[str], Awaitable[bytes]]

FONT_CANDIDATES = {
    False: [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "C:\\Windows\\Fonts\\arial.ttf",
    ],
    True: [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
        "C:\\Windows\\Fonts\\arialbd.ttf",
    ],
}


def _load_font(size: int, bold: bool = False):
    for candidate in FONT_CANDIDATES[bold]:
        if Path(candidate).exists():
            return ImageFont.truetype(candidate, size=size)
    return ImageFont.load_default(size=size)


def _color(value: str, default: Tuple[int, int, int, int] = (255, 255, 255, 255)) -> Tuple[int, int, int, int]:
    try:
        rgb = ImageColor.getcolor(value, "RGBA")
    except (ValueError, AttributeError):
        return default
    return rgb


def _resize_cover(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Resize to cover the target canvas without stretching, then center-crop."""
    tw, th = size
    iw, ih = img.size
    scale = max(tw / iw, th / ih)
    nw, nh = max(tw, round(iw * scale)), max(th, round(ih * scale))
    resized = img.resize((nw, nh), Image.Resampling.LANCZOS)
    left = (nw - tw) // 2
    top = (nh - th) // 2
    return resized.crop((left, top, left + tw, top + th))


def _fit_contain(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Fit inside the box keeping aspect ratio, centered on a transparent layer."""
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    fitted = img.copy()
    fitted.thumbnail(size, Image.Resampling.LANCZOS)
    if fitted.size[0] < size[0] and fitted.size[1] < size[1]:
        scale = min(size[0] / fitted.size[0], size[1] / fitted.size[1])
        fitted = fitted.resize(
            (max(1, int(fitted.size[0] * scale)), max(1, int(fitted.size[1] * scale))),
            Image.Resampling.LANCZOS
        )
    offset = ((size[0] - fitted.size[0]) // 2, (size[1] - fitted.size[1]) // 2)
    layer.paste(fitted, offset, fitted)
    return layer


def _text_x(align: str, box_width: int, text_width: int) -> int:
    if align == "center":
        return (box_width - text_width) // 2
    if align == "right":
        return box_width - text_width
    return 0


def _draw_text_layer(asset: BannerAsset, size: Tuple[int, int], scale: float) -> Image.Image:
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    bold = asset.font_weight in ("bold", "bolder", "600", "700", "800", "900")
    font = _load_font(max(1, int(asset.font_size * scale)), bold=bold)
    bbox = draw.multiline_textbbox((0, 0), asset.text, font=font, align=asset.text_align)
    text_width = bbox[2] - bbox[0]
    draw.multiline_text(
        (_text_x(asset.text_align, size[0], text_width) - bbox[0], -bbox[1]),
        asset.text,
        font=font,
        fill=_color(asset.color),
        align=asset.text_align
    )
    return layer


def _draw_cta_layer(asset: BannerAsset, size: Tuple[int, int], scale: float) -> Image.Image:
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    radius = int(asset.border_radius * scale)
    border = int(asset.border_width * scale)
    draw.rounded_rectangle(
        [(0, 0), (size[0] - 1, size[1] - 1)],
        radius=radius,
        fill=_color(asset.background_color or "#ED8924"),
        outline=_color(asset.border_color) if asset.border_color and border else None,
        width=border
    )

    bold = asset.font_weight not in ("normal", "lighter", "300", "400")
    font = _load_font(max(1, int(asset.font_size * scale)), bold=bold)
    bbox = draw.textbbox((0, 0), asset.text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(
        ((size[0] - tw) // 2 - bbox[0], (size[1] - th) // 2 - bbox[1]),
        asset.text,
        font=font,
        fill=_color(asset.color)
    )
    return layer


def _paste_rotated(canvas: Image.Image, layer: Image.Image, box: Tuple[int, int, int, int], rotation: float):
    x, y, w, h = box
    if rotation:
        # PIL rotates counter-clockwise; editor rotation is clockwise degrees
        layer = layer.rotate(-rotation, resample=Image.Resampling.BICUBIC, expand=True)
    cx, cy = x + w / 2, y + h / 2
    dest = (int(round(cx - layer.size[0] / 2)), int(round(cy - layer.size[1] / 2)))
    # paste onto a canvas-sized overlay clips layers hanging off the edge
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    overlay.paste(layer, dest)
    canvas.alpha_composite(overlay)


def render_composition_image(
    composition: BannerComposition,
    images: Dict[str, Image.Image],
    options: ExportOptions,
) -> Image.Image:
    """Render to an RGBA image at canvas size times options.scale."""
    scale = options.scale
    width = max(1, int(round(composition.canvas_size.width * scale)))
    height = max(1, int(round(composition.canvas_size.height * scale)))

    canvas = Image.new("RGBA", (width, height), _color(composition.background_color))
    if composition.background_image_url:
        background = images[composition.background_image_url].convert("RGBA")
        canvas.alpha_composite(_resize_cover(background, (width, height)))

    for asset in composition.assets:
        box = (
            int(round(asset.position.x * scale)),
            int(round(asset.position.y * scale)),
            max(1, int(round(asset.size.width * scale))),
            max(1, int(round(asset.size.height * scale))),
        )
        size = (box[2], box[3])
        if asset.type in IMAGE_ASSETS:
            layer = _fit_contain(images[asset.image_url].convert("RGBA"), size)
        elif asset.type == AssetType.CTA:
            layer = _draw_cta_layer(asset, size, scale)
        else:
            layer = _draw_text_layer(asset, size, scale)
        _paste_rotated(canvas, layer, box, asset.rotation)

    return canvas


def encode_export(image: Image.Image, options: ExportOptions) -> bytes:
    buffer = io.BytesIO()
    if options.format == ExportFormat.JPG:
        flattened = Image.new("RGB", image.size, (255, 255, 255))
        flattened.paste(image, mask=image.getchannel("A"))
        flattened.save(buffer, format="JPEG", quality=int(round(options.quality * 100)))
    else:
        image.save(buffer, format="PNG")
    return buffer.getvalue()


async def load_composition_images(composition: BannerComposition, fetch: ImageFetcher) -> Dict[str, Image.Image]:
    """Fetch and decode every image the composition references, concurrently."""
    urls = []
    if composition.background_image_url:
        urls.append(composition.background_image_url)
    urls.extend(a.image_url for a in composition.assets if a.type in IMAGE_ASSETS)
    urls = list(dict.fromkeys(urls))

    payloads = await asyncio.gather(*(fetch(url) for url in urls))

    images = {}
    for url, data in zip(urls, payloads):
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                images[url] = img.copy()
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError(f"Could not decode composition image: {url}", details={"error": str(e)}) from e
    return images


async def render_composition(
    composition: BannerComposition,
    options: ExportOptions,
    fetch: ImageFetcher,
) -> Tuple[bytes, Tuple[int, int]]:
    """Render and encode a composition. Returns (bytes, (width, height))."""
    images = await load_composition_images(composition, fetch)
    image = await asyncio.to_thread(render_composition_image, composition, images, options)
    data = await asyncio.to_thread(encode_export, image, options)
    logger.info(
        "composition_rendered",
        assets=len(composition.assets),
        format=options.format.value,
        width=image.size[0],
        height=image.size[1],
        size=len(data)
    )
    return data, image.size
