"""
FastAPI Dependencies

Provides dependency injection for:
- Object URL registry (one per app, held on app.state)
- Outbound HTTP client (per-request)
- Upload fallback resolver (per-request)
- Background-removal pipeline (singleton; model sessions are expensive)
- Partner / banner services (per-request with session)
- Flux client, OpenAI analyzers and image generator (per-request, fail on
  missing keys; the partner service runs without style analysis instead)
"""

from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from banner_studio.core.config import settings
from banner_studio.core.database import get_session
from banner_studio.core.object_urls import ObjectUrlRegistry
from banner_studio.core.storage import IStorage, get_storage
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.engines.background_removal import BackgroundRemovalPipeline
from banner_studio.engines.generation import (
    BannerLayerGenerator,
    FluxClient,
    OpenAIBannerGenerator,
    ProductAnalyzer,
    StyleAnalyzer,
)
from banner_studio.modules.banners.service import BannerService
from banner_studio.modules.banners.workflow import EnhancedBannerWorkflow, OpenAIBannerWorkflow
from banner_studio.modules.partners.service import PartnerService


# =============================================================================
# Global Singletons
# =============================================================================

_pipeline: Optional[BackgroundRemovalPipeline] = None


def get_registry(request: Request) -> ObjectUrlRegistry:
    """Returns the app-wide object URL registry created in the lifespan."""
    return request.app.state.registry


def build_pipeline(registry: ObjectUrlRegistry) -> BackgroundRemovalPipeline:
    """Create the process-wide pipeline; model sessions load lazily."""
    global _pipeline
    if _pipeline is None or _pipeline.registry is not registry:
        _pipeline = BackgroundRemovalPipeline(registry)
    return _pipeline


def get_pipeline(registry: ObjectUrlRegistry = Depends(get_registry)) -> BackgroundRemovalPipeline:
    return build_pipeline(registry)


# =============================================================================
# Outbound HTTP
# =============================================================================

async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Per-request client for proxies and acquisition."""
    async with httpx.AsyncClient(
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        follow_redirects=True
    ) as client:
        yield client


def get_resolver(
    storage: IStorage = Depends(get_storage),
    registry: ObjectUrlRegistry = Depends(get_registry),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> UploadFallbackResolver:
    return UploadFallbackResolver(storage, http_client=http_client, registry=registry)


# =============================================================================
# Services
# =============================================================================

def get_partner_service(
    session: AsyncSession = Depends(get_session),
    storage: IStorage = Depends(get_storage),
) -> PartnerService:
    style_analyzer = StyleAnalyzer() if settings.OPENAI_API_KEY else None
    return PartnerService(session, storage, style_analyzer=style_analyzer)


def get_banner_service(
    session: AsyncSession = Depends(get_session),
    storage: IStorage = Depends(get_storage),
    resolver: UploadFallbackResolver = Depends(get_resolver),
) -> BannerService:
    return BannerService(session, storage, resolver)


# =============================================================================
# Generation Providers
# =============================================================================

def get_flux_client(http_client: httpx.AsyncClient = Depends(get_http_client)) -> FluxClient:
    """Raises ConfigurationError when FLUX_API_KEY is unset."""
    return FluxClient(http_client=http_client)


def get_product_analyzer() -> ProductAnalyzer:
    """Raises ConfigurationError when OPENAI_API_KEY is unset."""
    return ProductAnalyzer()


def get_enhanced_workflow(
    banners: BannerService = Depends(get_banner_service),
    analyzer: ProductAnalyzer = Depends(get_product_analyzer),
    flux: FluxClient = Depends(get_flux_client),
) -> EnhancedBannerWorkflow:
    return EnhancedBannerWorkflow(banners, analyzer, flux)


def get_style_analyzer() -> StyleAnalyzer:
    """Raises ConfigurationError when OPENAI_API_KEY is unset."""
    return StyleAnalyzer()


def get_openai_generator(resolver: UploadFallbackResolver = Depends(get_resolver)) -> OpenAIBannerGenerator:
    """Reference images are fetched through the upload resolver."""
    return OpenAIBannerGenerator(fetch=resolver.fetch_image)


def get_openai_workflow(
    banners: BannerService = Depends(get_banner_service),
    generator: OpenAIBannerGenerator = Depends(get_openai_generator),
) -> OpenAIBannerWorkflow:
    return OpenAIBannerWorkflow(banners, generator)


def get_layer_generator(flux: FluxClient = Depends(get_flux_client)) -> BannerLayerGenerator:
    return BannerLayerGenerator(flux)
