import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from banner_studio.core.exceptions import NotFoundError, UpstreamError
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.engines.editor import extract_brand_colors
from banner_studio.engines.generation import OpenAIBannerGenerator, OpenAIBannerRequest
from banner_studio.modules.banners.service import BannerService
from banner_studio.modules.banners.workflow import OpenAIBannerInput, OpenAIBannerWorkflow
from banner_studio.modules.partners.models import Partner

CDN = "https://cdn.example.com"


def images_response(b64=None, url=None):
    return SimpleNamespace(data=[SimpleNamespace(b64_json=b64, url=url)])


def make_client(response) -> MagicMock:
    client = MagicMock()
    client.images.generate = AsyncMock(return_value=response)
    client.images.edit = AsyncMock(return_value=response)
    return client


def make_request(**kwargs) -> OpenAIBannerRequest:
    return OpenAIBannerRequest(partner_name="Acme", promotional_text="Summer sale", cta_text="Shop now", **kwargs)


def png_route(make_png, color=(200, 0, 0)):
    data = make_png(64, 64, color=color, noise=0.5)

    def route(request):
        return httpx.Response(200, content=data, headers={"content-type": "image/png"})

    route.data = data
    return route


@pytest.fixture
def resolver(storage, upstream):
    return UploadFallbackResolver(storage, http_client=upstream.client(), relay_templates=[])


# =============================================================================
# Generator
# =============================================================================

@pytest.mark.asyncio
async def test_generate_without_references(make_png):
    payload = make_png(30, 20)
    client = make_client(images_response(b64=base64.b64encode(payload).decode()))
    generator = OpenAIBannerGenerator(client=client, model="gpt-image-1")

    result = await generator.generate(make_request(promotion_discount="30% OFF", brand_colors={"primary": "#c80000"}))

    assert result.data == payload
    assert result.url is None
    client.images.edit.assert_not_awaited()
    kwargs = client.images.generate.await_args.kwargs
    assert kwargs["model"] == "gpt-image-1"
    assert kwargs["size"] == "1536x1024"
    assert kwargs["n"] == 1
    assert '"Summer sale"' in kwargs["prompt"]
    assert '"30% OFF"' in kwargs["prompt"]
    assert "primary: #c80000" in kwargs["prompt"]
    assert result.prompt == kwargs["prompt"]


@pytest.mark.asyncio
async def test_references_go_to_image_edit(resolver, upstream, make_png):
    # Arrange
    upstream.add(f"{CDN}/logo.png", png_route(make_png))
    upstream.add(f"{CDN}/missing.png", httpx.Response(404))
    for i in range(4):
        upstream.add(f"{CDN}/product-{i}.png", png_route(make_png, color=(0, 0, 200)))
    client = make_client(images_response(url="https://oaidalleapi.example.com/out.png"))
    generator = OpenAIBannerGenerator(client=client, fetch=resolver.fetch_image)

    # Act
    result = await generator.generate(make_request(
        logo_url=f"{CDN}/logo.png",
        reference_banner_urls=[f"{CDN}/missing.png", "blob:local-preview"],
        product_photo_urls=[f"{CDN}/product-{i}.png" for i in range(4)],
    ))

    # Assert
    assert result.url == "https://oaidalleapi.example.com/out.png"
    assert result.reference_count == 3
    client.images.generate.assert_not_awaited()
    kwargs = client.images.edit.await_args.kwargs
    assert [name for name, _, _ in kwargs["image"]] == ["reference-1.png", "reference-2.png", "reference-3.png"]
    assert all(mime == "image/png" for _, _, mime in kwargs["image"])
    assert "REFERENCE IMAGES (3 provided)" in kwargs["prompt"]
    assert f"{CDN}/product-3.png" not in upstream.urls


@pytest.mark.asyncio
async def test_empty_image_response_is_upstream_error():
    generator = OpenAIBannerGenerator(client=make_client(SimpleNamespace(data=[])))

    with pytest.raises(UpstreamError, match="No image generated"):
        await generator.generate(make_request())


@pytest.mark.asyncio
async def test_quota_errors_read_clearly():
    request = httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    client = make_client(None)
    client.images.generate = AsyncMock(side_effect=openai.RateLimitError(
        "You exceeded your current quota",
        response=httpx.Response(429, request=request),
        body=None,
    ))

    with pytest.raises(UpstreamError) as exc:
        await OpenAIBannerGenerator(client=client).generate(make_request())

    assert exc.value.message == "OpenAI API quota exceeded"
    assert exc.value.details["service"] == "openai"


# =============================================================================
# Workflow
# =============================================================================

@pytest.fixture
async def partner(session) -> Partner:
    partner = Partner(
        name="Acme",
        partner_url="https://acme.example.com",
        logo_url=f"{CDN}/logo.png",
        reference_banners_urls=[f"{CDN}/ref.png"],
    )
    session.add(partner)
    await session.commit()
    await session.refresh(partner)
    return partner


@pytest.fixture
def banners(session, storage, resolver) -> BannerService:
    return BannerService(session, storage, resolver, bucket="banners")


@pytest.mark.asyncio
async def test_openai_banner_is_stored_with_brand_colors(banners, resolver, partner, upstream, storage, make_png):
    # Arrange
    logo = png_route(make_png)
    upstream.add(f"{CDN}/logo.png", logo)
    upstream.add(f"{CDN}/ref.png", png_route(make_png, color=(0, 0, 200)))
    generated = make_png(30, 20, color=(0, 200, 0))
    client = make_client(images_response(b64=base64.b64encode(generated).decode()))
    workflow = OpenAIBannerWorkflow(banners, OpenAIBannerGenerator(client=client, fetch=resolver.fetch_image))

    # Act
    banner = await workflow.create_openai_banner(OpenAIBannerInput(
        partner_id=partner.id,
        promotional_text="Summer sale",
        cta_text="Shop now",
        banner_title="Summer",
    ))

    # Assert
    prompt = client.images.edit.await_args.kwargs["prompt"]
    assert f"primary: {extract_brand_colors(logo.data)['primary']}" in prompt
    assert "Website: https://acme.example.com" in prompt
    assert banner.prompt_used == prompt
    assert banner.banner_title == "Summer"
    assert f"/banners/openai-banner/{partner.id}/" in banner.image_url
    path = storage.path_from_url(banner.image_url, "banners")
    assert (storage.base_path / "banners" / path).read_bytes() == generated


@pytest.mark.asyncio
async def test_openai_banner_url_goes_through_resolver(banners, partner, upstream, storage, make_png):
    partner.logo_url = None
    partner.reference_banners_urls = []
    upstream.add("https://oaidalleapi.example.com/out.png", png_route(make_png, color=(0, 200, 0)))
    client = make_client(images_response(url="https://oaidalleapi.example.com/out.png"))
    workflow = OpenAIBannerWorkflow(banners, OpenAIBannerGenerator(client=client))

    banner = await workflow.create_openai_banner(OpenAIBannerInput(
        partner_id=partner.id, promotional_text="Sale", cta_text="Go",
    ))

    assert "primary: #3B82F6" in client.images.generate.await_args.kwargs["prompt"]
    assert f"/banners/openai-banner/{partner.id}/" in banner.image_url
    assert await storage.exists(storage.path_from_url(banner.image_url, "banners"), "banners")


@pytest.mark.asyncio
async def test_unreachable_logo_falls_back_to_default_colors(banners, partner, upstream, make_png):
    upstream.add(f"{CDN}/logo.png", httpx.Response(404))
    upstream.add(f"{CDN}/ref.png", png_route(make_png))
    workflow = OpenAIBannerWorkflow(banners, OpenAIBannerGenerator(client=make_client(None)))

    assert await workflow.brand_colors(partner) == {"primary": "#3B82F6", "secondary": "#E5E7EB"}


@pytest.mark.asyncio
async def test_unknown_partner_stops_before_generation(banners):
    client = make_client(None)
    workflow = OpenAIBannerWorkflow(banners, OpenAIBannerGenerator(client=client))

    with pytest.raises(NotFoundError):
        await workflow.create_openai_banner(OpenAIBannerInput(partner_id="missing", promotional_text="a", cta_text="b"))

    client.images.generate.assert_not_awaited()
    client.images.edit.assert_not_awaited()
