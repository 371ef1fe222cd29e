"""
Background Removal Schemas

Configuration, heuristic sample, tier/state enums and result types for
the background-removal pipeline.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ModelPrecision(str, Enum):
    FULL = "full"
    FP16 = "fp16"
    QUANTIZED = "quantized"


class ComputeDevice(str, Enum):
    GPU = "gpu"
    CPU = "cpu"


class OutputFormat(str, Enum):
    PNG = "png"
    WEBP = "webp"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"


class RemovalTier(str, Enum):
    """Primary attempt plus the fallback ladder, in cascade order."""
    PRIMARY = "primary"
    FALLBACK_CPU = "fallback_cpu"
    FALLBACK_FP16 = "fallback_fp16"
    FALLBACK_QUANTIZED_RELAY = "fallback_quantized_relay"
    FALLBACK_QUANTIZED_BASIC = "fallback_quantized_basic"


FALLBACK_LADDER: List[RemovalTier] = [
    RemovalTier.FALLBACK_CPU,
    RemovalTier.FALLBACK_FP16,
    RemovalTier.FALLBACK_QUANTIZED_RELAY,
    RemovalTier.FALLBACK_QUANTIZED_BASIC,
]


class RemovalErrorKind(str, Enum):
    """Classification of a failed inference, decided where it failed."""
    GPU = "gpu"
    MEMORY = "memory"
    NETWORK = "network"
    UNKNOWN = "unknown"


# First fallback tier for each failure kind; the ladder continues from there
LADDER_ENTRY = {
    RemovalErrorKind.GPU: RemovalTier.FALLBACK_CPU,
    RemovalErrorKind.MEMORY: RemovalTier.FALLBACK_FP16,
    RemovalErrorKind.NETWORK: RemovalTier.FALLBACK_QUANTIZED_RELAY,
    RemovalErrorKind.UNKNOWN: RemovalTier.FALLBACK_QUANTIZED_BASIC,
}


class RemovalState(str, Enum):
    ANALYZING = "analyzing"
    CONFIGURING_PRIMARY = "configuring_primary"
    RUNNING_PRIMARY = "running_primary"
    POST_PROCESSING = "post_processing"
    FALLBACK_CPU = "fallback_cpu"
    FALLBACK_FP16 = "fallback_fp16"
    FALLBACK_QUANTIZED_RELAY = "fallback_quantized_relay"
    FALLBACK_QUANTIZED_BASIC = "fallback_quantized_basic"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RemovalConfig:
    """Inference settings for one attempt. Replaced wholesale per tier."""
    model_precision: ModelPrecision
    compute_device: ComputeDevice
    output_format: OutputFormat = OutputFormat.PNG
    output_quality: float = 1.0
    model_path: Optional[str] = None

    def replace(self, **changes) -> "RemovalConfig":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class ImageBrightnessSample:
    average_brightness: float
    corner_white_count: int
    is_likely_white_background: bool


class RemovalFailure(Exception):
    """An inference attempt failed; carries its classification."""

    def __init__(self, kind: RemovalErrorKind, cause: Exception, config: Optional[RemovalConfig] = None):
        self.kind = kind
        self.cause = cause
        self.config = config
        super().__init__(f"{kind.value}: {cause}")


@dataclass
class RemovalResult:
    result_url: str
    result_bytes: bytes
    content_type: str
    original_size: int
    processed_size: int
    tier: RemovalTier
    config: RemovalConfig
    brightness: ImageBrightnessSample
    post_processed: bool = False
    states: List[RemovalState] = field(default_factory=list)
    tiers_attempted: List[RemovalTier] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_ms: int = 0


# =============================================================================
# API Schemas
# =============================================================================

class RemovalConfigSchema(BaseModel):
    model_precision: ModelPrecision
    compute_device: ComputeDevice
    output_format: OutputFormat
    output_quality: float


class BrightnessSchema(BaseModel):
    average_brightness: float
    corner_white_count: int
    is_likely_white_background: bool


class RemovalResponse(BaseModel):
    """Response from POST /api/v1/background-removal."""
    result_url: str
    content_type: str
    original_size: int
    processed_size: int
    tier: RemovalTier
    config: RemovalConfigSchema
    brightness: BrightnessSchema
    post_processed: bool
    states: List[RemovalState]
    tiers_attempted: List[RemovalTier]
    warnings: List[str] = Field(default_factory=list)
    duration_ms: int

    @classmethod
    def from_result(cls, result: RemovalResult) -> "RemovalResponse":
        return cls(
            result_url=result.result_url,
            content_type=result.content_type,
            original_size=result.original_size,
            processed_size=result.processed_size,
            tier=result.tier,
            config=RemovalConfigSchema(**{
                k: getattr(result.config, k)
                for k in ("model_precision", "compute_device", "output_format", "output_quality")
            }),
            brightness=BrightnessSchema(**dataclasses.asdict(result.brightness)),
            post_processed=result.post_processed,
            states=result.states,
            tiers_attempted=result.tiers_attempted,
            warnings=result.warnings,
            duration_ms=result.duration_ms,
        )


class PerformanceInfo(BaseModel):
    has_gpu: bool
    recommended_size: str
    max_size_bytes: int
    processing_speed: str
