"""
Full banner generation with OpenAI image models.

Without reference images the prompt goes to images.generate at 3:2
(1536x1024). With references (logo, reference banners, product photos)
up to four of them are fetched and sent to images.edit so the model can
place them in the design.
"""

import io
import base64
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from banner_studio.core.config import settings
from banner_studio.core.exceptions import UpstreamError
from banner_studio.core.logging import get_logger, with_logging
from banner_studio.engines.generation.openai_vision import build_openai_client
from banner_studio.engines.generation.prompts import build_comprehensive_prompt

logger = get_logger(__name__)

Fetch = Callable[[str], Awaitable[bytes]]
ReferenceFile = Tuple[str, bytes, str]


@dataclass
class OpenAIBannerRequest:
    partner_name: str
    promotional_text: str
    cta_text: str
    partner_url: Optional[str] = None
    benefits: List[str] = field(default_factory=list)
    promotion_discount: Optional[str] = None
    custom_prompt: Optional[str] = None
    brand_colors: Optional[dict] = None
    logo_url: Optional[str] = None
    reference_banner_urls: List[str] = field(default_factory=list)
    product_photo_urls: List[str] = field(default_factory=list)

    @property
    def reference_urls(self) -> List[str]:
        urls = ([self.logo_url] if self.logo_url else []) + self.reference_banner_urls + self.product_photo_urls
        return [u for u in urls if u and u.startswith(("http://", "https://"))]


@dataclass
class GeneratedBannerImage:
    prompt: str
    data: Optional[bytes] = None
    url: Optional[str] = None
    reference_count: int = 0


def _friendly_error(error: Exception) -> str:
    from openai import AuthenticationError, RateLimitError  # type: ignore

    text = str(error)
    if isinstance(error, AuthenticationError) or "API key" in text:
        return "OpenAI API key is missing or invalid"
    if isinstance(error, RateLimitError) or "quota" in text:
        return "OpenAI API quota exceeded"
    if "content_policy" in text or "safety system" in text:
        return "Content policy violation; modify the prompt and try again"
    return f"Failed to generate banner: {text}"


def _mime_type(data: bytes) -> Optional[str]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


class OpenAIBannerGenerator:
    """Banner images from AsyncOpenAI.images; references fetched through `fetch`."""

    name = "openai-images"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client=None, fetch: Optional[Fetch] = None) -> None:
        self.model = model or settings.OPENAI_IMAGE_MODEL
        self.client = client if client is not None else build_openai_client(api_key)
        self.fetch = fetch

    async def load_references(self, urls: Sequence[str]) -> List[ReferenceFile]:
        """Fetch up to OPENAI_MAX_REFERENCE_IMAGES references; failures are skipped."""
        files: List[ReferenceFile] = []
        if self.fetch is None:
            return files

        for url in list(urls)[:settings.OPENAI_MAX_REFERENCE_IMAGES]:
            try:
                data = await self.fetch(url)
            except UpstreamError as e:
                logger.warning("reference_image_skipped", url=url, error=e.message)
                continue
            mime = _mime_type(data)
            if mime is None:
                logger.warning("reference_image_skipped", url=url, error="not an image")
                continue
            ext = mime.split("/")[-1].replace("jpeg", "jpg")
            files.append((f"reference-{len(files) + 1}.{ext}", data, mime))
        return files

    @with_logging("openai_banner_generation")
    async def generate(self, request: OpenAIBannerRequest) -> GeneratedBannerImage:
        """
        Raises:
            UpstreamError: the API call failed or returned no image
        """
        from openai import OpenAIError  # type: ignore

        references = await self.load_references(request.reference_urls)
        prompt = build_comprehensive_prompt(
            request.partner_name,
            request.promotional_text,
            request.cta_text,
            partner_url=request.partner_url,
            benefits=request.benefits,
            promotion_discount=request.promotion_discount,
            custom_prompt=request.custom_prompt,
            brand_colors=request.brand_colors,
            has_logo=bool(request.logo_url),
            has_reference_banners=bool(request.reference_banner_urls),
            has_product_photos=bool(request.product_photo_urls),
            reference_image_count=len(references),
        )

        try:
            if references:
                result = await self.client.images.edit(
                    model=self.model,
                    image=references,
                    prompt=prompt,
                )
            else:
                result = await self.client.images.generate(
                    model=self.model,
                    prompt=prompt,
                    size=settings.OPENAI_IMAGE_SIZE,
                    quality=settings.OPENAI_IMAGE_QUALITY,
                    n=1,
                )
        except OpenAIError as e:
            raise UpstreamError(_friendly_error(e), service="openai") from e

        if not getattr(result, "data", None):
            raise UpstreamError("No image generated by OpenAI API", service="openai")

        image = result.data[0]
        if getattr(image, "b64_json", None):
            generated = GeneratedBannerImage(prompt=prompt, data=base64.b64decode(image.b64_json))
        elif getattr(image, "url", None):
            generated = GeneratedBannerImage(prompt=prompt, url=image.url)
        else:
            raise UpstreamError("Invalid response format from OpenAI API", service="openai")

        generated.reference_count = len(references)
        logger.info(
            "openai_banner_generated",
            model=self.model,
            references=len(references),
            inline=generated.data is not None
        )
        return generated
