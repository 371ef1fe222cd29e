import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from banner_studio.core.exceptions import NotFoundError, UpstreamError, ValidationError
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.engines.generation import FluxClient, ProductAnalyzer
from banner_studio.modules.banners.service import BannerService
from banner_studio.modules.banners.workflow import EnhancedBannerInput, EnhancedBannerWorkflow
from banner_studio.modules.partners.models import Partner

SAMPLE_URL = "https://delivery-us1.bfl.ai/gen/out.png"


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_analyzer(content="A red running sneaker on a white background") -> ProductAnalyzer:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=chat_response(content))
    return ProductAnalyzer(client=client, model="gpt-4o-mini")


# =============================================================================
# Product analysis
# =============================================================================

@pytest.mark.asyncio
async def test_analyzer_sends_image_as_data_url(make_png):
    analyzer = make_analyzer()

    description = await analyzer.analyze(make_png(32, 32), "image/png")

    assert description.startswith("A red running sneaker")
    kwargs = analyzer.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    image_part = kwargs["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_analyzer_empty_answer_is_upstream_error(make_png):
    with pytest.raises(UpstreamError):
        await make_analyzer(content="  ").analyze(make_png(32, 32), "image/png")


@pytest.mark.asyncio
async def test_analyzer_rejects_non_images():
    with pytest.raises(ValidationError):
        await make_analyzer().analyze(b"%PDF", "application/pdf")


# =============================================================================
# Workflow
# =============================================================================

class FluxApi:
    def __init__(self):
        self.created = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.created.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "task-9"})
        return httpx.Response(200, json={"id": "task-9", "status": "Ready", "result": {"sample": SAMPLE_URL}})


@pytest.fixture
async def partner(session) -> Partner:
    partner = Partner(
        name="Acme",
        reference_style_analysis={"reference_style": {"brand_personality": {"tone": "bold and energetic"}}},
    )
    session.add(partner)
    await session.commit()
    await session.refresh(partner)
    return partner


@pytest.fixture
def flux_api():
    return FluxApi()


@pytest.fixture
def workflow(session, storage, upstream, flux_api):
    resolver = UploadFallbackResolver(storage, http_client=upstream.client(), relay_templates=[])
    banners = BannerService(session, storage, resolver, bucket="banners")
    flux = FluxClient(
        api_key="k",
        base_url="https://api.bfl.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(flux_api)),
        sleep=AsyncMock(),
    )
    return EnhancedBannerWorkflow(banners, make_analyzer(), flux)


@pytest.mark.asyncio
async def test_create_enhanced_banner(workflow, partner, flux_api, upstream, storage, make_png):
    # Arrange
    upstream.add("http://test/api/image-proxy", httpx.Response(
        200, content=make_png(64, 64, noise=1.0), headers={"content-type": "image/png"}
    ))

    # Act
    banner = await workflow.create_enhanced_banner(EnhancedBannerInput(
        partner_id=partner.id,
        product_image=make_png(100, 100),
        product_content_type="image/png",
        main_text="Run faster",
        description_text="New season sneakers",
        cta_text="Shop now",
        discount_percentage=20,
    ))

    # Assert
    request = flux_api.created[0]
    assert (request["width"], request["height"]) == (1440, 352)
    assert request["image_prompt"]
    assert "Tone: bold and energetic" in request["prompt"]
    assert "A red running sneaker" in request["prompt"]

    assert banner.is_enhanced
    assert banner.cta_text == "Shop now"
    assert banner.discount_percentage == 20
    assert banner.product_description.startswith("A red running sneaker")
    assert f"/banners/enhanced-banner/{partner.id}/" in banner.image_url
    assert await storage.exists(storage.path_from_url(banner.image_url, "banners"), "banners")


@pytest.mark.asyncio
async def test_unknown_partner_stops_before_generation(workflow, flux_api, make_png):
    with pytest.raises(NotFoundError):
        await workflow.create_enhanced_banner(EnhancedBannerInput(
            partner_id="missing",
            product_image=make_png(),
            product_content_type="image/png",
            main_text="a",
            description_text="b",
            cta_text="c",
        ))

    assert flux_api.created == []
    workflow.analyzer.client.chat.completions.create.assert_not_awaited()
