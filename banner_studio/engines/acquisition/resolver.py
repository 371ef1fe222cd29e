"""
Upload Fallback Resolver

Persists a remote image into owned object storage. AI-provider delivery
URLs are fetched through the server proxy and then through public relays;
anything else is fetched directly. When no strategy yields a usable image,
or the bucket is missing, the original URL is returned unchanged.

Flow:
1. External host? -> server proxy, then each relay in order
   Otherwise      -> direct fetch
2. Accepted bytes -> coerce content type -> upload (upsert)
3. Nothing accepted / bucket missing -> passthrough (original URL)
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence
from urllib.parse import quote

import httpx

from banner_studio.core.config import settings
from banner_studio.core.exceptions import BucketNotFoundError, UpstreamError
from banner_studio.core.fallback import Attempt, AttemptOutcome, attempt_in_order
from banner_studio.core.logging import get_logger, LogContext
from banner_studio.core.metrics import record_acquisition_attempt, record_acquisition_resolution
from banner_studio.core.object_urls import ObjectUrlRegistry
from banner_studio.core.storage import IStorage
from banner_studio.engines.acquisition.checks import (
    classify_proxy_failure,
    coerce_content_type,
    decodes_as_image,
    is_image_content_type,
)
from banner_studio.engines.acquisition.domains import host_of, is_external_image_url, is_public_host
from banner_studio.engines.acquisition.schemas import (
    AcquisitionAttempt,
    AcquisitionSource,
    AcquisitionStrategy,
    FetchedImage,
    ProxyFailureKind,
    ResolveResult,
)

logger = get_logger(__name__)


def build_relay_url(template: str, image_url: str) -> str:
    """Fill a relay template with the encoded ({url}) or raw ({raw_url}) source."""
    return template.format(url=quote(image_url, safe=""), raw_url=image_url)


class UploadFallbackResolver:
    """Fetch a remote image by the first strategy that works and store it."""

    def __init__(
        self,
        storage: IStorage,
        http_client: Optional[httpx.AsyncClient] = None,
        registry: Optional[ObjectUrlRegistry] = None,
        proxy_template: Optional[str] = None,
        relay_templates: Optional[Sequence[str]] = None,
        external_domains: Optional[Sequence[str]] = None,
        min_bytes: Optional[int] = None,
        decode_timeout: Optional[float] = None,
        resolve_dns: Optional[bool] = None,
    ):
        self.storage = storage
        self.http_client = http_client
        self.registry = registry
        self.proxy_template = proxy_template or settings.IMAGE_PROXY_URL
        self.relay_templates = list(
            relay_templates if relay_templates is not None else settings.PUBLIC_RELAY_TEMPLATES
        )
        self.external_domains = list(external_domains or settings.EXTERNAL_IMAGE_DOMAINS)
        self.min_bytes = min_bytes if min_bytes is not None else settings.MIN_IMAGE_BYTES
        self.decode_timeout = decode_timeout or settings.IMAGE_LOAD_TIMEOUT_SECONDS
        self.resolve_dns = settings.DIRECT_FETCH_RESOLVE_DNS if resolve_dns is None else resolve_dns
        self.own_url_prefix = settings.PUBLIC_BASE_URL.rstrip("/") + "/"

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True
        ) as client:
            yield client

    # =========================================================================
    # Strategy planning
    # =========================================================================

    def plan(self, image_url: str) -> List[AcquisitionSource]:
        """Ordered sources for a URL. Passthrough is implicit and always last."""
        if not is_external_image_url(image_url, self.external_domains):
            return [AcquisitionSource(AcquisitionStrategy.DIRECT, image_url)]

        sources = [
            AcquisitionSource(
                AcquisitionStrategy.SERVER_PROXY,
                build_relay_url(self.proxy_template, image_url)
            )
        ]
        relays = [self.proxy_template] + self.relay_templates
        for index, template in enumerate(relays):
            sources.append(
                AcquisitionSource(
                    AcquisitionStrategy.PUBLIC_RELAY,
                    build_relay_url(template, image_url),
                    relay_index=index
                )
            )
        return sources

    # =========================================================================
    # Fetching
    # =========================================================================

    async def may_fetch_directly(self, url: str) -> bool:
        """This service's own URLs, or http(s) hosts that only reach the public internet."""
        if url.startswith(self.own_url_prefix):
            return True
        return await is_public_host(host_of(url), resolve_dns=self.resolve_dns)

    async def _fetch(self, client: httpx.AsyncClient, source: AcquisitionSource) -> FetchedImage:
        direct = source.strategy == AcquisitionStrategy.DIRECT
        if direct and self.registry is not None:
            local = self.registry.resolve(source.fetch_url)
            if local is not None:
                return self._check_direct(local.data, local.content_type, 200)

        if direct and not await self.may_fetch_directly(source.fetch_url):
            return FetchedImage(ok=False, reason="refusing to fetch a non-public host")

        try:
            # Redirects could lead a direct fetch to a private host
            response = await client.get(source.fetch_url, follow_redirects=not direct)
        except httpx.TransportError as e:
            return FetchedImage(
                ok=False,
                failure_kind=ProxyFailureKind.NETWORK_UNREACHABLE,
                reason=f"{type(e).__name__}: {e}"
            )

        content_type = response.headers.get("content-type")

        if source.strategy == AcquisitionStrategy.DIRECT:
            if not response.is_success:
                return FetchedImage(ok=False, status_code=response.status_code,
                                    reason=f"HTTP {response.status_code}")
            return self._check_direct(response.content, content_type, response.status_code)

        if source.strategy == AcquisitionStrategy.SERVER_PROXY:
            return self._check_server_proxy(response, content_type)

        return await self._check_relay(response, content_type)

    def _check_direct(self, data: bytes, content_type: Optional[str], status_code: int) -> FetchedImage:
        if len(data) < self.min_bytes:
            return FetchedImage(ok=False, status_code=status_code,
                                reason=f"payload too small ({len(data)} bytes)")
        return FetchedImage(ok=True, data=data, content_type=content_type, status_code=status_code)

    def _check_server_proxy(self, response: httpx.Response, content_type: Optional[str]) -> FetchedImage:
        data = response.content
        if response.is_success and is_image_content_type(content_type) and len(data) >= self.min_bytes:
            return FetchedImage(ok=True, data=data, content_type=content_type,
                                status_code=response.status_code)

        kind = classify_proxy_failure(response.status_code, response.text)
        return FetchedImage(
            ok=False,
            status_code=response.status_code,
            content_type=content_type,
            failure_kind=kind,
            reason=f"proxy returned {response.status_code} {content_type or 'no content-type'}"
        )

    async def _check_relay(self, response: httpx.Response, content_type: Optional[str]) -> FetchedImage:
        data = response.content
        if not response.is_success:
            return FetchedImage(ok=False, status_code=response.status_code,
                                reason=f"HTTP {response.status_code}")
        if not is_image_content_type(content_type):
            return FetchedImage(ok=False, status_code=response.status_code, content_type=content_type,
                                reason=f"non-image content-type {content_type!r}")
        if len(data) < self.min_bytes:
            return FetchedImage(ok=False, status_code=response.status_code,
                                reason=f"payload too small ({len(data)} bytes)")
        if not await decodes_as_image(data, self.decode_timeout):
            return FetchedImage(ok=False, status_code=response.status_code,
                                reason="payload does not decode as an image")
        return FetchedImage(ok=True, data=data, content_type=content_type, status_code=response.status_code)

    # =========================================================================
    # Resolve
    # =========================================================================

    def _on_attempt(self, attempt: Attempt[AcquisitionSource, FetchedImage]):
        record_acquisition_attempt(attempt.strategy.label, attempt.succeeded)
        if attempt.succeeded:
            logger.info("acquisition_attempt_succeeded", strategy=attempt.strategy.label)
            return
        fetched = attempt.result
        logger.warning(
            "acquisition_attempt_failed",
            strategy=attempt.strategy.label,
            failure_kind=fetched.failure_kind.value if fetched and fetched.failure_kind else None,
            reason=fetched.reason if fetched else attempt.error_message
        )

    @staticmethod
    def _summarize(attempt: Attempt[AcquisitionSource, FetchedImage]) -> AcquisitionAttempt:
        fetched = attempt.result
        return AcquisitionAttempt(
            strategy=attempt.strategy.strategy,
            relay_index=attempt.strategy.relay_index,
            source_url=attempt.strategy.fetch_url,
            succeeded=attempt.succeeded,
            status_code=fetched.status_code if fetched else None,
            result_size=len(fetched.data) if fetched and fetched.ok else None,
            failure_kind=fetched.failure_kind if fetched else None,
            error=fetched.reason if fetched else attempt.error_message,
        )

    def _passthrough(self, image_url: str, attempts: List[AcquisitionAttempt], reason: str) -> ResolveResult:
        attempts.append(AcquisitionAttempt(
            strategy=AcquisitionStrategy.PASSTHROUGH,
            source_url=image_url,
            succeeded=True,
            result_url=image_url,
        ))
        record_acquisition_attempt(AcquisitionStrategy.PASSTHROUGH.value, True)
        record_acquisition_resolution("passthrough")
        logger.warning("acquisition_passthrough", image_url=image_url, reason=reason)
        return ResolveResult(url=image_url, stored=False, strategy=AcquisitionStrategy.PASSTHROUGH,
                             attempts=attempts)

    async def acquire(
        self, sources: List[AcquisitionSource]
    ) -> AttemptOutcome[AcquisitionSource, FetchedImage]:
        async with self._client() as client:
            return await attempt_in_order(
                sources,
                run=lambda source: self._fetch(client, source),
                accept=lambda fetched: fetched.ok,
                degrade=lambda: FetchedImage(ok=False, reason="all strategies failed"),
                on_attempt=self._on_attempt,
            )

    async def fetch_image(self, image_url: str) -> bytes:
        """
        Bytes of an image by the same strategies resolve() uses, without storing.

        Raises:
            UpstreamError: no strategy produced the image
        """
        outcome = await self.acquire(self.plan(image_url))
        if not outcome.succeeded:
            last = outcome.attempts[-1] if outcome.attempts else None
            reason = (last.result.reason if last and last.result else None) or (last.error_message if last else None)
            raise UpstreamError(
                f"Could not fetch image: {image_url}",
                service="acquisition",
                body=reason
            )
        return outcome.value.data

    async def resolve(self, image_url: str, filename: str, bucket: Optional[str] = None) -> ResolveResult:
        """
        Store the image at bucket/filename and return its public URL.

        Returns the original URL when nothing could be fetched or the bucket
        does not exist. Other storage errors propagate.
        """
        bucket = bucket or settings.BANNERS_BUCKET

        with LogContext(operation="resolve_upload"):
            sources = self.plan(image_url)
            logger.info(
                "resolve_started",
                image_url=image_url,
                external=sources[0].strategy != AcquisitionStrategy.DIRECT,
                strategies=[s.label for s in sources]
            )

            outcome = await self.acquire(sources)

            attempts = [self._summarize(a) for a in outcome.attempts]
            if not outcome.succeeded:
                return self._passthrough(image_url, attempts, "all strategies failed")

            fetched = outcome.value
            content_type = coerce_content_type(fetched.content_type)

            try:
                path = await self.storage.upload(fetched.data, filename, bucket, content_type, upsert=True)
            except BucketNotFoundError:
                return self._passthrough(image_url, attempts, f"bucket {bucket!r} not found")

            public_url = self.storage.get_public_url(path, bucket)
            attempts[-1].result_url = public_url
            record_acquisition_resolution("stored")
            logger.info(
                "resolve_completed",
                strategy=outcome.winning.strategy.label,
                bucket=bucket,
                path=path,
                size=len(fetched.data)
            )

            return ResolveResult(
                url=public_url,
                stored=True,
                strategy=outcome.winning.strategy.strategy,
                bucket=bucket,
                path=path,
                content_type=content_type,
                size=len(fetched.data),
                attempts=attempts,
            )
