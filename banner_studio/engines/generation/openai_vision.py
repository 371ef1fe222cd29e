"""
Image analysis with OpenAI vision models.

ProductAnalyzer produces the marketing description of a product photo
that feeds the banner background prompt. StyleAnalyzer extracts the
visual style of a partner's reference banners as a JSON document stored
on the partner (reference_style_analysis).
"""

import re
import json
import base64
from typing import Any, Dict, Optional, Sequence

from banner_studio.core.config import settings
from banner_studio.core.exceptions import ConfigurationError, UpstreamError, ValidationError
from banner_studio.core.logging import get_logger, with_logging
from banner_studio.core.storage import UploadedFile
from banner_studio.engines.generation.prompts import PRODUCT_ANALYSIS_PROMPT, build_style_analysis_prompt

logger = get_logger(__name__)

MAX_ANALYSIS_IMAGE_BYTES = 10 * 1024 * 1024
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def build_openai_client(api_key: Optional[str] = None):
    """AsyncOpenAI client for the given or configured key."""
    api_key = api_key or settings.OPENAI_API_KEY
    if not api_key:
        raise ConfigurationError(
            "OpenAI API key not configured",
            details={"setting": "OPENAI_API_KEY"}
        )

    from openai import AsyncOpenAI  # type: ignore

    return AsyncOpenAI(api_key=api_key)


def check_image(data: bytes, content_type: str):
    if not (content_type or "").startswith("image/"):
        raise ValidationError(f"Invalid file type: {content_type}. Expected image/*")
    if not data:
        raise ValidationError("Empty file")
    if len(data) > MAX_ANALYSIS_IMAGE_BYTES:
        raise ValidationError("File too large (max 10MB)")


def image_part(data: bytes, content_type: str) -> Dict[str, Any]:
    data_url = f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"
    return {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}}


class VisionModel:
    """Chat-completions vision call shared by the analyzers."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None) -> None:
        self.model = model or settings.OPENAI_VISION_MODEL
        self.client = client if client is not None else build_openai_client(api_key)

    async def complete(self, content: list, max_tokens: int, temperature: float, purpose: str) -> str:
        from openai import OpenAIError  # type: ignore

        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as e:
            raise UpstreamError(f"{purpose} failed: {e}", service="openai") from e

        text = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not text:
            raise UpstreamError(f"No {purpose.lower()} content received from OpenAI", service="openai")
        return text


class ProductAnalyzer(VisionModel):

    @with_logging("product_analysis")
    async def analyze(self, data: bytes, content_type: str) -> str:
        """Describe a product photo in 150-300 words."""
        check_image(data, content_type)

        description = await self.complete(
            [{"type": "text", "text": PRODUCT_ANALYSIS_PROMPT}, image_part(data, content_type)],
            max_tokens=400,
            temperature=0.3,
            purpose="Product analysis",
        )

        logger.info("product_analysis_completed", model=self.model, words=len(description.split()))
        return description


def parse_style_analysis(text: str) -> Dict[str, Any]:
    """
    The JSON object in a model answer, tolerating markdown fences or prose
    around it.

    Raises:
        UpstreamError: no JSON object, or one without "reference_style"
    """
    match = JSON_OBJECT.search(text)
    try:
        parsed = json.loads(match.group(0) if match else text)
    except json.JSONDecodeError as e:
        raise UpstreamError(
            "Failed to parse style analysis response from OpenAI",
            service="openai",
            body=text
        ) from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("reference_style"), dict):
        raise UpstreamError(
            "Style analysis response has no reference_style object",
            service="openai",
            body=text
        )
    return parsed


class StyleAnalyzer(VisionModel):

    @with_logging("style_analysis")
    async def analyze_reference_style(
        self,
        images: Sequence[UploadedFile],
        partner_name: str,
        description: Optional[str] = None,
        regions: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """All reference banners go into one request; the answer is {"reference_style": {...}}."""
        if not images:
            raise ValidationError("No images provided for style analysis")
        for image in images:
            check_image(image.data, image.content_type)

        content = [{"type": "text", "text": build_style_analysis_prompt(partner_name, description, regions)}]
        content += [image_part(image.data, image.content_type) for image in images]

        text = await self.complete(content, max_tokens=2000, temperature=0.1, purpose="Style analysis")
        analysis = parse_style_analysis(text)

        logger.info(
            "style_analysis_completed",
            model=self.model,
            images=len(images),
            sections=sorted(analysis["reference_style"])
        )
        return analysis
