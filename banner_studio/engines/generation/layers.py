"""
Flux banner layers.

A layered banner is built from a background generated without product or
text (1440x352, no image prompt) and a square product cutout generated
from the product photo (512x512, photo as image prompt). The editor then
lays them out with the copy.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from banner_studio.core.logging import LogContext, get_logger
from banner_studio.engines.generation.flux import (
    DEFAULT_BANNER_SIZE,
    FluxClient,
    FluxTaskRequest,
    prepare_image_prompt,
    validate_flux_dimensions,
)
from banner_studio.engines.generation.prompts import build_background_prompt, build_product_cutout_prompt

logger = get_logger(__name__)

PRODUCT_CUTOUT_SIZE = (512, 512)
BACKGROUND_SAFETY_TOLERANCE = 3
PRODUCT_SAFETY_TOLERANCE = 2


class GeneratedLayer(BaseModel):
    image_url: str
    prompt: str
    task_id: str
    width: int
    height: int


class BannerLayerGenerator:
    """Background and product-cutout generation on top of FluxClient."""

    def __init__(self, flux: FluxClient):
        self.flux = flux

    async def _generate(self, request: FluxTaskRequest, layer: str) -> GeneratedLayer:
        task, result = await self.flux.generate(request)
        logger.info("banner_layer_generated", layer=layer, task_id=task.id)
        return GeneratedLayer(
            image_url=result.sample_url,
            prompt=request.prompt,
            task_id=task.id,
            width=request.width,
            height=request.height,
        )

    async def generate_banner_background(self, style_analysis: Optional[Dict[str, Any]] = None) -> GeneratedLayer:
        """Text-free background colored after the partner's reference style."""
        with LogContext(operation="banner_background"):
            width, height = validate_flux_dimensions(*DEFAULT_BANNER_SIZE)
            if not (style_analysis or {}).get("reference_style"):
                logger.warning("banner_background_without_style_analysis")
            request = FluxTaskRequest(
                prompt=build_background_prompt(style_analysis, width, height),
                width=width,
                height=height,
                safety_tolerance=BACKGROUND_SAFETY_TOLERANCE,
                image_prompt=None,
            )
            return await self._generate(request, "background")

    async def generate_product_cutout(self, product_image: bytes, content_type: str,
                                      product_description: str) -> GeneratedLayer:
        """Isolated product on a transparent background, guided by the photo."""
        with LogContext(operation="product_cutout"):
            width, height = validate_flux_dimensions(*PRODUCT_CUTOUT_SIZE)
            request = FluxTaskRequest(
                prompt=build_product_cutout_prompt(product_description),
                width=width,
                height=height,
                safety_tolerance=PRODUCT_SAFETY_TOLERANCE,
                image_prompt=prepare_image_prompt(product_image, content_type),
            )
            return await self._generate(request, "product_cutout")
