"""
Background-Removal Pipeline

Validate -> analyze brightness -> primary attempt -> optional white-halo
cleanup -> register result URL.

When the primary attempt fails, its classified error kind picks the entry
point into the fallback ladder (cpu -> fp16 -> quantized-relay ->
quantized-basic), which then runs strictly forward until a tier succeeds
or all are exhausted. Fallback results are returned as produced, without
the cleanup pass.

Inference, decoding and encoding run in worker threads.
"""

import io
import time
import asyncio
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from banner_studio.core.config import settings
from banner_studio.core.exceptions import BackgroundRemovalError, ValidationError
from banner_studio.core.fallback import Attempt, AttemptsExhausted, attempt_in_order
from banner_studio.core.logging import get_logger, LogContext
from banner_studio.core.metrics import record_removal_tier, track_tier_latency
from banner_studio.core.object_urls import ObjectUrlRegistry
from banner_studio.engines.background_removal.analysis import analyze_brightness
from banner_studio.engines.background_removal.inference import (
    InferenceBackend,
    RembgInference,
    classify_failure,
)
from banner_studio.engines.background_removal.postprocess import remove_white_halo
from banner_studio.engines.background_removal.schemas import (
    FALLBACK_LADDER,
    LADDER_ENTRY,
    ComputeDevice,
    ImageBrightnessSample,
    ModelPrecision,
    OutputFormat,
    PerformanceInfo,
    RemovalConfig,
    RemovalFailure,
    RemovalResult,
    RemovalState,
    RemovalTier,
)

logger = get_logger(__name__)

SUPPORTED_FORMATS = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
HIGH_BRIGHTNESS_THRESHOLD = 180
REDUCED_OUTPUT_QUALITY = 0.8


def _decode(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.copy()


def encode_output(image: Image.Image, config: RemovalConfig) -> bytes:
    buffer = io.BytesIO()
    if config.output_format == OutputFormat.WEBP:
        image.save(buffer, format="WEBP", quality=int(config.output_quality * 100))
    else:
        image.save(buffer, format="PNG")
    return buffer.getvalue()


class BackgroundRemovalPipeline:
    """Cut out product photos with a configuration ladder behind the primary attempt."""

    def __init__(
        self,
        registry: ObjectUrlRegistry,
        inference: Optional[InferenceBackend] = None,
        quantized_model_path: Optional[str] = None,
    ):
        self.registry = registry
        self.inference = inference or RembgInference()
        self.quantized_model_path = quantized_model_path or settings.REMBG_QUANTIZED_MODEL_PATH

    # =========================================================================
    # Validation
    # =========================================================================

    def size_limits(self, has_gpu: bool):
        if has_gpu:
            return settings.MAX_REMOVAL_SIZE_GPU_BYTES, settings.WARN_REMOVAL_SIZE_GPU_BYTES
        return settings.MAX_REMOVAL_SIZE_CPU_BYTES, settings.WARN_REMOVAL_SIZE_CPU_BYTES

    def validate(self, data: bytes, content_type: str, has_gpu: bool) -> List[str]:
        """
        Reject unusable input; return warnings for input that is merely slow.

        Raises:
            ValidationError: not an image, empty, or over the size limit
        """
        content_type = (content_type or "").lower()
        if not content_type.startswith("image/"):
            raise ValidationError(
                "Invalid file type. Please select an image file.",
                details={"content_type": content_type}
            )
        if not data:
            raise ValidationError("Image file is empty")

        max_bytes, warn_bytes = self.size_limits(has_gpu)
        size_mb = len(data) / (1024 * 1024)
        if len(data) > max_bytes:
            raise ValidationError(
                f"File too large ({size_mb:.1f}MB). Maximum size is {max_bytes // (1024 * 1024)}MB.",
                details={"size_bytes": len(data), "max_bytes": max_bytes}
            )

        warnings = []
        if len(data) > warn_bytes:
            warnings.append(f"Large file ({size_mb:.1f}MB) may take longer to process.")
        if content_type not in SUPPORTED_FORMATS:
            warnings.append(f"Format {content_type} may not be fully supported.")
        return warnings

    # =========================================================================
    # Configuration
    # =========================================================================

    def select_primary_config(self, brightness: ImageBrightnessSample, has_gpu: bool) -> RemovalConfig:
        bright = (
            brightness.is_likely_white_background
            or brightness.average_brightness > HIGH_BRIGHTNESS_THRESHOLD
        )
        if has_gpu and bright:
            return RemovalConfig(ModelPrecision.FULL, ComputeDevice.GPU)
        device = ComputeDevice.GPU if has_gpu else ComputeDevice.CPU
        return RemovalConfig(ModelPrecision.FP16, device)

    def config_for_tier(self, tier: RemovalTier, primary: RemovalConfig) -> RemovalConfig:
        if tier == RemovalTier.PRIMARY:
            return primary
        if tier == RemovalTier.FALLBACK_CPU:
            return primary.replace(compute_device=ComputeDevice.CPU)
        if tier == RemovalTier.FALLBACK_FP16:
            return RemovalConfig(ModelPrecision.FP16, ComputeDevice.CPU)
        if tier == RemovalTier.FALLBACK_QUANTIZED_RELAY:
            return RemovalConfig(
                ModelPrecision.QUANTIZED,
                ComputeDevice.CPU,
                model_path=self.quantized_model_path
            )
        return RemovalConfig(
            ModelPrecision.QUANTIZED,
            ComputeDevice.CPU,
            output_format=OutputFormat.WEBP,
            output_quality=REDUCED_OUTPUT_QUALITY
        )

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run_tier(self, tier: RemovalTier, image: Image.Image, config: RemovalConfig) -> Image.Image:
        with track_tier_latency(tier.value):
            try:
                return await asyncio.to_thread(self.inference.remove, image, config)
            except RemovalFailure:
                raise
            except Exception as e:
                raise RemovalFailure(classify_failure(e, config), e, config) from e

    async def _post_process(self, output: Image.Image, config: RemovalConfig) -> Image.Image:
        # A failed cleanup fails the primary tier and sends the image down the ladder
        try:
            return await asyncio.to_thread(remove_white_halo, output)
        except Exception as e:
            raise RemovalFailure(classify_failure(e, config), e, config) from e

    async def remove_background(
        self,
        data: bytes,
        content_type: str,
        filename: str = "image",
    ) -> RemovalResult:
        """
        Remove the background of an image and register the result URL.

        Raises:
            ValidationError: input rejected before inference
            BackgroundRemovalError: every tier failed
        """
        start = time.time()
        states = [RemovalState.ANALYZING]
        tiers_attempted: List[RemovalTier] = []

        with LogContext(operation="background_removal"):
            has_gpu = self.inference.has_gpu()
            warnings = self.validate(data, content_type, has_gpu)
            for warning in warnings:
                logger.warning("background_removal_input_warning", warning=warning, filename=filename)

            try:
                image = await asyncio.to_thread(_decode, data)
            except (UnidentifiedImageError, OSError) as e:
                raise ValidationError(f"Could not decode image: {e}", details={"filename": filename}) from e

            brightness = analyze_brightness(image)

            states.append(RemovalState.CONFIGURING_PRIMARY)
            primary = self.select_primary_config(brightness, has_gpu)
            logger.info(
                "background_removal_started",
                filename=filename,
                size=len(data),
                has_gpu=has_gpu,
                average_brightness=brightness.average_brightness,
                white_background=brightness.is_likely_white_background,
                model_precision=primary.model_precision.value,
                compute_device=primary.compute_device.value
            )

            states.append(RemovalState.RUNNING_PRIMARY)
            tiers_attempted.append(RemovalTier.PRIMARY)
            post_processed = False
            try:
                output = await self._run_tier(RemovalTier.PRIMARY, image, primary)

                if brightness.is_likely_white_background:
                    states.append(RemovalState.POST_PROCESSING)
                    output = await self._post_process(output, primary)
                    post_processed = True

                record_removal_tier(RemovalTier.PRIMARY.value, True)
                tier, config = RemovalTier.PRIMARY, primary

            except RemovalFailure as failure:
                record_removal_tier(RemovalTier.PRIMARY.value, False)
                entry = LADDER_ENTRY[failure.kind]
                ladder = FALLBACK_LADDER[FALLBACK_LADDER.index(entry):]
                logger.warning(
                    "background_removal_primary_failed",
                    error_kind=failure.kind.value,
                    error=str(failure.cause),
                    entry_tier=entry.value
                )

                async def run(fallback: RemovalTier):
                    states.append(RemovalState(fallback.value))
                    tiers_attempted.append(fallback)
                    fallback_config = self.config_for_tier(fallback, primary)
                    return fallback, fallback_config, await self._run_tier(fallback, image, fallback_config)

                def on_attempt(attempt: Attempt):
                    record_removal_tier(attempt.strategy.value, attempt.succeeded)
                    if not attempt.succeeded:
                        logger.warning(
                            "background_removal_tier_failed",
                            tier=attempt.strategy.value,
                            error=attempt.error_message
                        )

                try:
                    outcome = await attempt_in_order(ladder, run, on_attempt=on_attempt)
                except AttemptsExhausted as exhausted:
                    states.append(RemovalState.FAILED)
                    last = exhausted.last_error
                    message = str(last.cause) if isinstance(last, RemovalFailure) else str(last)
                    raise BackgroundRemovalError(
                        message,
                        tiers_attempted=[t.value for t in tiers_attempted]
                    ) from last

                tier, config, output = outcome.value

            states.append(RemovalState.DONE)
            encoded = await asyncio.to_thread(encode_output, output, config)
            content_type_out = config.output_format.content_type
            result_url = self.registry.register(encoded, content_type_out)

            duration_ms = int((time.time() - start) * 1000)
            logger.info(
                "background_removal_completed",
                tier=tier.value,
                post_processed=post_processed,
                original_size=len(data),
                processed_size=len(encoded),
                duration_ms=duration_ms
            )

            return RemovalResult(
                result_url=result_url,
                result_bytes=encoded,
                content_type=content_type_out,
                original_size=len(data),
                processed_size=len(encoded),
                tier=tier,
                config=config,
                brightness=brightness,
                post_processed=post_processed,
                states=states,
                tiers_attempted=tiers_attempted,
                warnings=warnings,
                duration_ms=duration_ms,
            )

    # =========================================================================
    # Warm-up & capabilities
    # =========================================================================

    def preload(self) -> bool:
        """Warm the primary model sessions. Failures are logged, never raised."""
        preload = getattr(self.inference, "preload", None)
        if preload is None:
            return False
        try:
            has_gpu = self.inference.has_gpu()
            configs = [RemovalConfig(ModelPrecision.FP16, ComputeDevice.GPU if has_gpu else ComputeDevice.CPU)]
            if has_gpu:
                configs.insert(0, RemovalConfig(ModelPrecision.FULL, ComputeDevice.GPU))
            preload(configs)
            logger.info("background_removal_preloaded", configs=len(configs))
            return True
        except Exception as e:
            logger.warning("background_removal_preload_failed", error=str(e), error_type=type(e).__name__)
            return False

    def performance_info(self) -> PerformanceInfo:
        has_gpu = self.inference.has_gpu()
        max_bytes, _ = self.size_limits(has_gpu)
        return PerformanceInfo(
            has_gpu=has_gpu,
            recommended_size="Up to 4K resolution" if has_gpu else "Up to 2K resolution",
            max_size_bytes=max_bytes,
            processing_speed="Fast (GPU accelerated)" if has_gpu else "Moderate (CPU only)",
        )
