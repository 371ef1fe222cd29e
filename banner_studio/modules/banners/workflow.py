"""
Banner Generation Workflows

Enhanced: product photo -> OpenAI analysis -> styled prompt -> Flux task
(1440x352, photo as image prompt) -> poll -> copy result into the banners
bucket -> banner row with the editor copy.

OpenAI: partner brand colors and reference images -> 3:2 prompt ->
images.generate / images.edit -> stored in the banners bucket -> banner row.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from banner_studio.core.exceptions import UpstreamError
from banner_studio.core.logging import LogContext, get_logger
from banner_studio.engines.editor.colors import DEFAULT_BRAND_COLORS, extract_brand_colors
from banner_studio.engines.generation import (
    DEFAULT_BANNER_SIZE,
    FluxClient,
    FluxTaskRequest,
    OpenAIBannerGenerator,
    OpenAIBannerRequest,
    ProductAnalyzer,
    build_banner_prompt,
    prepare_image_prompt,
    validate_flux_dimensions,
)
from banner_studio.modules.banners.models import Banner, BannerCreate, BannerImageType
from banner_studio.modules.banners.service import BannerService, banner_object_path
from banner_studio.modules.partners.models import Partner

logger = get_logger(__name__)

ENHANCED_FOLDER = "enhanced-banner"
OPENAI_FOLDER = "openai-banner"


@dataclass
class EnhancedBannerInput:
    partner_id: str
    product_image: bytes
    product_content_type: str
    main_text: str
    description_text: str
    cta_text: str
    discount_percentage: Optional[int] = None
    banner_title: Optional[str] = None


class EnhancedBannerWorkflow:
    def __init__(self, banners: BannerService, analyzer: ProductAnalyzer, flux: FluxClient):
        self.banners = banners
        self.analyzer = analyzer
        self.flux = flux

    async def create_enhanced_banner(self, data: EnhancedBannerInput) -> Banner:
        with LogContext(operation="enhanced_banner"):
            partner = await self.banners.get_partner(data.partner_id)

            description = await self.analyzer.analyze(data.product_image, data.product_content_type)

            width, height = validate_flux_dimensions(*DEFAULT_BANNER_SIZE)
            prompt = build_banner_prompt(
                partner.name,
                description,
                width,
                height,
                style_analysis=partner.reference_style_analysis,
            )
            image_prompt = prepare_image_prompt(data.product_image, data.product_content_type)

            task, result = await self.flux.generate(FluxTaskRequest(
                prompt=prompt,
                width=width,
                height=height,
                image_prompt=image_prompt,
            ))
            logger.info("enhanced_banner_generated", partner_id=partner.id, task_id=task.id)

            filename = banner_object_path(ENHANCED_FOLDER, partner.id)
            return await self.banners.save_banner(
                BannerCreate(
                    partner_id=partner.id,
                    image_url=result.sample_url,
                    image_type=BannerImageType.DESKTOP,
                    prompt_used=prompt,
                    banner_title=data.banner_title,
                    product_description=description,
                    main_text=data.main_text,
                    description_text=data.description_text,
                    cta_text=data.cta_text,
                    discount_percentage=data.discount_percentage,
                    store_image=True,
                ),
                filename=filename,
            )


@dataclass
class OpenAIBannerInput:
    partner_id: str
    promotional_text: str
    cta_text: str
    benefits: List[str] = field(default_factory=list)
    promotion_discount: Optional[str] = None
    custom_prompt: Optional[str] = None
    banner_title: Optional[str] = None


class OpenAIBannerWorkflow:
    def __init__(self, banners: BannerService, generator: OpenAIBannerGenerator):
        self.banners = banners
        self.generator = generator

    async def brand_colors(self, partner: Partner) -> dict:
        """Colors of the partner logo; defaults when there is none or it cannot be fetched."""
        if not partner.logo_url:
            return dict(DEFAULT_BRAND_COLORS)
        try:
            logo = await self.banners.resolver.fetch_image(partner.logo_url)
        except UpstreamError as e:
            logger.warning("brand_colors_logo_unavailable", partner_id=partner.id, error=e.message)
            return dict(DEFAULT_BRAND_COLORS)
        return extract_brand_colors(logo)

    async def create_openai_banner(self, data: OpenAIBannerInput) -> Banner:
        with LogContext(operation="openai_banner"):
            partner = await self.banners.get_partner(data.partner_id)

            generated = await self.generator.generate(OpenAIBannerRequest(
                partner_name=partner.name,
                promotional_text=data.promotional_text,
                cta_text=data.cta_text,
                partner_url=partner.partner_url,
                benefits=data.benefits,
                promotion_discount=data.promotion_discount,
                custom_prompt=data.custom_prompt,
                brand_colors=await self.brand_colors(partner),
                logo_url=partner.logo_url,
                reference_banner_urls=list(partner.reference_banners_urls or []),
                product_photo_urls=list(partner.product_photos_urls or []),
            ))

            filename = banner_object_path(OPENAI_FOLDER, partner.id)
            image_url = generated.url
            if generated.data is not None:
                path = await self.banners.storage.upload(generated.data, filename, self.banners.bucket, "image/png")
                image_url = self.banners.storage.get_public_url(path, self.banners.bucket)

            return await self.banners.save_banner(
                BannerCreate(
                    partner_id=partner.id,
                    image_url=image_url,
                    image_type=BannerImageType.DESKTOP,
                    prompt_used=generated.prompt,
                    banner_title=data.banner_title,
                    store_image=generated.data is None,
                ),
                filename=filename,
            )
