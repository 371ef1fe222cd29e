"""Background removal: brightness heuristic, rembg inference, fallback ladder."""

from banner_studio.engines.background_removal.pipeline import BackgroundRemovalPipeline
from banner_studio.engines.background_removal.inference import RembgInference
from banner_studio.engines.background_removal.schemas import (
    ComputeDevice,
    ModelPrecision,
    RemovalConfig,
    RemovalErrorKind,
    RemovalResult,
    RemovalTier,
)

__all__ = [
    "BackgroundRemovalPipeline",
    "RembgInference",
    "ComputeDevice",
    "ModelPrecision",
    "RemovalConfig",
    "RemovalErrorKind",
    "RemovalResult",
    "RemovalTier",
]
