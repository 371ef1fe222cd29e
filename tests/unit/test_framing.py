import io

import pytest
from PIL import Image

from banner_studio.core.exceptions import UpstreamError
from banner_studio.engines.editor import (
    BrandColors,
    FramingOptions,
    create_framed_banner,
    extract_brand_colors,
    has_extendable_background,
)
from banner_studio.engines.editor.colors import DEFAULT_BRAND_COLORS
from banner_studio.engines.editor.framing import analyze_background, fit_box, frame_image, is_extendable


def decode(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


def two_tone(width=200, height=100) -> Image.Image:
    image = Image.new("RGB", (width, height), (200, 0, 0))
    image.paste((0, 0, 200), (width // 2, 0, width, height))
    return image


# =============================================================================
# Brand colors
# =============================================================================

def test_brand_colors_default_without_logo():
    assert extract_brand_colors(None) == DEFAULT_BRAND_COLORS
    assert extract_brand_colors(b"not an image") == DEFAULT_BRAND_COLORS


def test_brand_colors_from_single_color_logo(make_png):
    colors = extract_brand_colors(make_png(64, 64, color=(200, 0, 0)))

    assert colors["primary"] == "#c80000"
    assert colors["secondary"] != colors["primary"]
    assert colors["secondary"].startswith("#")


# =============================================================================
# Background analysis
# =============================================================================

def test_solid_banner_is_uniform():
    match = analyze_background(Image.new("RGB", (200, 50), (10, 80, 160)))

    assert match.strategy == "uniform-solid"
    assert match.is_uniform
    assert match.confidence >= 0.9
    assert match.background_color == "#0a50a0"


def test_two_tone_banner_samples_edges():
    match = analyze_background(two_tone())

    assert match.strategy == "edge-sampling"
    assert not match.is_uniform
    assert (match.left_edge_color, match.right_edge_color) == ("#c80000", "#0000c8")


def test_fit_box_keeps_aspect_and_centers():
    assert fit_box((200, 100), (1440, 338)) == (395, 7, 649, 324)


def test_extendable_needs_consistent_sides(make_png):
    assert is_extendable(Image.new("RGB", (200, 100), (30, 30, 30)))
    assert not is_extendable(decode(make_png(200, 100, noise=1.0)))


# =============================================================================
# Framing
# =============================================================================

def test_uniform_banner_fills_with_its_background():
    frame, fill, _ = frame_image(Image.new("RGB", (200, 50), (10, 80, 160)), FramingOptions())

    assert frame.size == (1440, 338)
    assert fill == "solid"
    assert frame.getpixel((0, 0)) == (10, 80, 160)
    assert frame.getpixel((1439, 337)) == (10, 80, 160)


def test_busy_banner_uses_brand_primary(make_png):
    options = FramingOptions(brand_colors=BrandColors(primary="#ff6600", secondary="#222222"))

    frame, fill, match = frame_image(decode(make_png(200, 50, noise=1.0)), options)

    assert match.confidence < 0.8
    assert fill == "brand"
    assert frame.getpixel((0, 0)) == (255, 102, 0)


def test_two_tone_banner_gets_edge_gradient():
    frame, fill, _ = frame_image(two_tone(), FramingOptions(target_width=1000, target_height=200))

    assert fill == "edge-gradient"
    assert frame.size == (1000, 200)
    assert frame.getpixel((0, 0)) == (200, 0, 0)
    assert frame.getpixel((999, 0)) == (0, 0, 200)


@pytest.mark.asyncio
async def test_create_framed_banner_reports_colors(make_png):
    source = make_png(200, 50, color=(10, 80, 160))

    async def fetch(url):
        assert url == "https://cdn.example.com/b.png"
        return source

    framed = await create_framed_banner("https://cdn.example.com/b.png", FramingOptions(), fetch)

    assert (framed.width, framed.height) == (1440, 338)
    assert decode(framed.data).size == (1440, 338)
    assert framed.colors.dominant == "#0a50a0"
    assert framed.colors.left_edge_color == "#0a50a0"
    assert framed.original_image_url == "https://cdn.example.com/b.png"


@pytest.mark.asyncio
async def test_unfetchable_banner_is_not_extendable():
    async def fetch(url):
        raise UpstreamError("gone", service="acquisition")

    assert await has_extendable_background("https://cdn.example.com/gone.png", fetch) is False
