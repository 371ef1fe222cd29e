"""
Flux (Black Forest Labs) Client

Submits generation tasks and polls for their result over httpx.

Task lifecycle: create_task -> poll get_result until "Ready" (result.sample
holds the image URL). "Error", "Content Moderated" and "Request Moderated"
end polling at once; transport and HTTP errors are retried until the last
attempt.
"""

import io
import base64
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from banner_studio.core.config import settings
from banner_studio.core.exceptions import ConfigurationError, GenerationError, UpstreamError, ValidationError
from banner_studio.core.logging import get_logger, with_logging
from banner_studio.core.metrics import record_flux_task

logger = get_logger(__name__)

DEFAULT_BANNER_SIZE = (1440, 352)
MIN_IMAGE_PROMPT_SIDE = 256
MAX_IMAGE_PROMPT_BYTES = 10 * 1024 * 1024


class FluxStatus(str, Enum):
    READY = "Ready"
    PENDING = "Pending"
    TASK_NOT_FOUND = "Task not found"
    ERROR = "Error"
    CONTENT_MODERATED = "Content Moderated"
    REQUEST_MODERATED = "Request Moderated"


TERMINAL_FAILURES = {FluxStatus.ERROR.value, FluxStatus.CONTENT_MODERATED.value, FluxStatus.REQUEST_MODERATED.value}


class FluxTaskRequest(BaseModel):
    prompt: str
    width: int
    height: int
    prompt_upsampling: bool = False
    seed: Optional[int] = None
    safety_tolerance: int = 2
    output_format: str = "png"
    image_prompt: Optional[str] = None


class FluxTask(BaseModel):
    id: str
    polling_url: Optional[str] = None


class FluxResult(BaseModel):
    id: Optional[str] = None
    status: str
    result: Optional[Dict[str, Any]] = None
    progress: Optional[float] = None
    details: Optional[Any] = None

    @property
    def sample_url(self) -> Optional[str]:
        return (self.result or {}).get("sample")


def validate_flux_dimensions(width: int, height: int) -> Tuple[int, int]:
    """Round both sides to the nearest multiple of 32."""
    def round32(value: int) -> int:
        return max(32, int(round(value / 32)) * 32)

    return round32(width), round32(height)


def prepare_image_prompt(data: bytes, content_type: str) -> str:
    """
    Base64 PNG of an image for Flux image prompting.

    Images smaller than 256px on a side are upscaled, keeping aspect ratio.
    """
    if not (content_type or "").startswith("image/"):
        raise ValidationError(f"Invalid file type for Flux: {content_type}. Expected image/*")
    if not data:
        raise ValidationError("Empty image file")
    if len(data) > MAX_IMAGE_PROMPT_BYTES:
        raise ValidationError("Image too large for Flux (max 10MB)")

    try:
        with Image.open(io.BytesIO(data)) as img:
            image = img.convert("RGBA") if img.mode in ("RGBA", "LA", "P") else img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Could not decode image for Flux: {e}") from e

    width, height = image.size
    if width < MIN_IMAGE_PROMPT_SIDE or height < MIN_IMAGE_PROMPT_SIDE:
        scale = MIN_IMAGE_PROMPT_SIDE / min(width, height)
        target = (max(MIN_IMAGE_PROMPT_SIDE, round(width * scale)), max(MIN_IMAGE_PROMPT_SIDE, round(height * scale)))
        logger.info("flux_image_prompt_upscaled", original=f"{width}x{height}", target=f"{target[0]}x{target[1]}")
        image = image.resize(target, Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class FluxClient:
    """Async client for the BFL API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.FLUX_API_KEY
        if not self.api_key:
            raise ConfigurationError(
                "Flux API key not configured",
                details={"setting": "FLUX_API_KEY"}
            )
        self.base_url = (base_url or settings.FLUX_API_BASE_URL).rstrip("/")
        self.model = model or settings.FLUX_MODEL
        self.http_client = http_client
        self._sleep = sleep

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-key": self.api_key}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.http_client is not None:
            response = await self.http_client.request(method, url, headers=self.headers, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.request(method, url, headers=self.headers, **kwargs)

        if not response.is_success:
            raise UpstreamError(
                f"Flux API error: {response.status_code} {response.reason_phrase}",
                service="flux",
                http_status=response.status_code,
                body=response.text
            )
        return response

    async def create_task(self, request: FluxTaskRequest) -> FluxTask:
        response = await self._request(
            "POST",
            f"{self.base_url}/{self.model}",
            json=request.model_dump()
        )
        task = FluxTask.model_validate(response.json())
        logger.info("flux_task_created", task_id=task.id, width=request.width, height=request.height)
        return task

    async def get_result(self, task_id: str, polling_url: Optional[str] = None) -> FluxResult:
        if polling_url:
            response = await self._request("GET", polling_url)
        else:
            response = await self._request("GET", f"{self.base_url}/get_result", params={"id": task_id})
        return FluxResult.model_validate(response.json())

    async def poll_for_result(
        self,
        task_id: str,
        polling_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> FluxResult:
        """
        Poll until the task is Ready.

        Raises:
            GenerationError: failed/moderated task, or no result in time
        """
        max_attempts = max_attempts or settings.FLUX_POLL_MAX_ATTEMPTS
        interval = settings.FLUX_POLL_INTERVAL_SECONDS if interval is None else interval

        for attempt in range(1, max_attempts + 1):
            try:
                result = await self.get_result(task_id, polling_url)
            except (httpx.HTTPError, UpstreamError) as e:
                logger.warning("flux_poll_failed", task_id=task_id, attempt=attempt, error=str(e))
                if attempt == max_attempts:
                    record_flux_task("poll_error")
                    raise GenerationError(
                        f"Polling Flux task failed: {e}",
                        task_id=task_id
                    ) from e
                await self._sleep(interval)
                continue

            logger.debug("flux_poll", task_id=task_id, attempt=attempt, status=result.status,
                         progress=result.progress)

            if result.status == FluxStatus.READY.value:
                if not result.sample_url:
                    record_flux_task("missing_sample")
                    raise GenerationError("Flux task is ready but returned no image", task_id=task_id,
                                          status=result.status)
                record_flux_task("ready")
                return result

            if result.status in TERMINAL_FAILURES:
                record_flux_task(result.status.lower().replace(" ", "_"))
                raise GenerationError(
                    f"Task failed with status: {result.status}",
                    task_id=task_id,
                    status=result.status,
                    details={"flux_details": result.details}
                )

            await self._sleep(interval)

        record_flux_task("timeout")
        raise GenerationError("Timeout: Task did not complete within expected time", task_id=task_id)

    @with_logging("flux_generation")
    async def generate(self, request: FluxTaskRequest) -> Tuple[FluxTask, FluxResult]:
        task = await self.create_task(request)
        result = await self.poll_for_result(task.id, task.polling_url)
        return task, result
