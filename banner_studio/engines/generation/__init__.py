"""Banner generation providers: Flux and OpenAI image generation, OpenAI image analysis."""

from banner_studio.engines.generation.flux import (
    DEFAULT_BANNER_SIZE,
    FluxClient,
    FluxResult,
    FluxTask,
    FluxTaskRequest,
    prepare_image_prompt,
    validate_flux_dimensions,
)
from banner_studio.engines.generation.layers import BannerLayerGenerator, GeneratedLayer
from banner_studio.engines.generation.openai_images import (
    GeneratedBannerImage,
    OpenAIBannerGenerator,
    OpenAIBannerRequest,
)
from banner_studio.engines.generation.openai_vision import ProductAnalyzer, StyleAnalyzer, parse_style_analysis
from banner_studio.engines.generation.prompts import build_banner_prompt

__all__ = [
    "DEFAULT_BANNER_SIZE",
    "FluxClient",
    "FluxResult",
    "FluxTask",
    "FluxTaskRequest",
    "prepare_image_prompt",
    "validate_flux_dimensions",
    "BannerLayerGenerator",
    "GeneratedLayer",
    "GeneratedBannerImage",
    "OpenAIBannerGenerator",
    "OpenAIBannerRequest",
    "ProductAnalyzer",
    "StyleAnalyzer",
    "parse_style_analysis",
    "build_banner_prompt",
]
