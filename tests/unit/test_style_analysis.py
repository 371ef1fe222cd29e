import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from banner_studio.core.exceptions import ConfigurationError, UpstreamError, ValidationError
from banner_studio.core.storage import UploadedFile
from banner_studio.engines.generation import StyleAnalyzer, parse_style_analysis
from banner_studio.engines.generation.prompts import STYLE_SECTIONS
from banner_studio.modules.partners.models import PartnerCreate
from banner_studio.modules.partners.service import PartnerFiles, PartnerService

ANALYSIS = {
    "reference_style": {
        "color_palette": {"dominant_colors": ["#0072B8"], "temperature": "cool"},
        "brand_personality": {"visual_tone": "calm and trustworthy"},
    }
}


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_analyzer(content=None, error=None) -> StyleAnalyzer:
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        answer = content if content is not None else f"```json\n{json.dumps(ANALYSIS)}\n```"
        client.chat.completions.create = AsyncMock(return_value=chat_response(answer))
    return StyleAnalyzer(client=client, model="gpt-4o")


def reference(name="ref.png") -> UploadedFile:
    return UploadedFile(filename=name, content_type="image/png", data=b"png-bytes")


# =============================================================================
# Parsing
# =============================================================================

def test_parse_tolerates_fences_and_prose():
    text = f"Here is the analysis:\n```json\n{json.dumps(ANALYSIS)}\n```\nLet me know!"

    assert parse_style_analysis(text) == ANALYSIS


@pytest.mark.parametrize("text", ["no json here", '{"colors": ["#fff"]}', "{broken"])
def test_parse_rejects_unusable_answers(text):
    with pytest.raises(UpstreamError):
        parse_style_analysis(text)


# =============================================================================
# Analyzer
# =============================================================================

@pytest.mark.asyncio
async def test_all_references_go_in_one_request():
    analyzer = make_analyzer()

    analysis = await analyzer.analyze_reference_style(
        [reference("a.png"), reference("b.png")], "Acme", "Sneakers", ["US", "MX"]
    )

    assert analysis == ANALYSIS
    kwargs = analyzer.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["temperature"] == 0.1
    content = kwargs["messages"][0]["content"]
    prompt = content[0]["text"]
    assert "Acme" in prompt
    assert "US, MX" in prompt
    assert all(section in prompt for section in STYLE_SECTIONS)
    assert [part["type"] for part in content[1:]] == ["image_url", "image_url"]


@pytest.mark.asyncio
async def test_analysis_needs_images():
    with pytest.raises(ValidationError):
        await make_analyzer().analyze_reference_style([], "Acme")


# =============================================================================
# Partner service
# =============================================================================

@pytest.mark.asyncio
async def test_create_partner_stores_style_analysis(session, storage):
    analyzer = make_analyzer()
    service = PartnerService(session, storage, bucket="partner-assets", style_analyzer=analyzer)

    partner, failed = await service.create_partner(
        PartnerCreate(name="Acme", description="Sneakers"),
        PartnerFiles(reference_banners=[reference()]),
    )

    assert failed == []
    assert partner.reference_style_analysis == ANALYSIS
    analyzer.client.chat.completions.create.assert_awaited_once()


@pytest.mark.asyncio
async def test_given_analysis_is_not_recomputed(session, storage):
    analyzer = make_analyzer()
    service = PartnerService(session, storage, bucket="partner-assets", style_analyzer=analyzer)

    partner, _ = await service.create_partner(
        PartnerCreate(name="Acme", reference_style_analysis={"reference_style": {}}),
        PartnerFiles(reference_banners=[reference()]),
    )

    assert partner.reference_style_analysis == {"reference_style": {}}
    analyzer.client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_analysis_leaves_partner_without_one(session, storage):
    service = PartnerService(
        session, storage, bucket="partner-assets", style_analyzer=make_analyzer(content="I cannot help with that")
    )

    partner, _ = await service.create_partner(
        PartnerCreate(name="Acme"), PartnerFiles(reference_banners=[reference()])
    )

    assert partner.reference_style_analysis is None
    assert len(partner.reference_banners_urls) == 1


@pytest.mark.asyncio
async def test_reanalysis_replaces_stored_style(session, storage):
    service = PartnerService(session, storage, bucket="partner-assets", style_analyzer=make_analyzer())
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))
    assert partner.reference_style_analysis is None

    updated = await service.analyze_reference_style(partner.id, [reference()])

    assert updated.reference_style_analysis == ANALYSIS
    assert (await service.get_partner(partner.id)).reference_style_analysis == ANALYSIS


@pytest.mark.asyncio
async def test_reanalysis_without_analyzer_is_a_configuration_error(session, storage):
    service = PartnerService(session, storage, bucket="partner-assets")
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))

    with pytest.raises(ConfigurationError):
        await service.analyze_reference_style(partner.id, [reference()])


@pytest.mark.asyncio
async def test_reanalysis_loads_stored_references(session, storage):
    analyzer = make_analyzer()
    service = PartnerService(session, storage, bucket="partner-assets", style_analyzer=analyzer)
    partner, _ = await service.create_partner(PartnerCreate(name="Acme", regions=["BR"]))
    partner.reference_banners_urls = ["https://cdn.example.com/refs/summer.jpg?v=2"]
    await session.commit()
    fetch = AsyncMock(return_value=b"jpeg-bytes")

    updated = await service.analyze_reference_style(partner.id, fetch=fetch)

    fetch.assert_awaited_once_with("https://cdn.example.com/refs/summer.jpg?v=2")
    assert updated.reference_style_analysis == ANALYSIS
    content = analyzer.client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert "BR" in content[0]["text"]


@pytest.mark.asyncio
async def test_reanalysis_without_references_is_rejected(session, storage):
    service = PartnerService(session, storage, bucket="partner-assets", style_analyzer=make_analyzer())
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))

    with pytest.raises(ValidationError):
        await service.analyze_reference_style(partner.id, fetch=AsyncMock())
