"""
rembg Inference Backend

Wraps rembg sessions keyed by (model, device). rembg and onnxruntime are
imported lazily so the API process starts without loading them.

Failures are classified here, where the exception is caught, into
RemovalErrorKind by exception type and the device that ran. Message text
is never inspected.
"""

import socket
import urllib.error
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
from PIL import Image

from banner_studio.core.config import settings
from banner_studio.core.logging import get_logger
from banner_studio.engines.background_removal.schemas import (
    ComputeDevice,
    ModelPrecision,
    RemovalConfig,
    RemovalErrorKind,
    RemovalFailure,
)

logger = get_logger(__name__)

GPU_PROVIDERS = (
    "CUDAExecutionProvider",
    "TensorrtExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
)
CPU_PROVIDER = "CPUExecutionProvider"
CUSTOM_MODEL_NAME = "u2net_custom"

NETWORK_ERRORS = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    urllib.error.URLError,
    httpx.TransportError,
)
# Network errors from requests (used by rembg's model download) without
# importing it here
NETWORK_ERROR_NAMES = {"ConnectionError", "Timeout", "ConnectTimeout", "ReadTimeout", "SSLError"}


def classify_failure(exc: Exception, config: RemovalConfig) -> RemovalErrorKind:
    if isinstance(exc, MemoryError):
        return RemovalErrorKind.MEMORY
    if isinstance(exc, NETWORK_ERRORS):
        return RemovalErrorKind.NETWORK
    if any(cls.__name__ in NETWORK_ERROR_NAMES for cls in type(exc).__mro__[:-1]):
        return RemovalErrorKind.NETWORK
    if config.compute_device == ComputeDevice.GPU:
        return RemovalErrorKind.GPU
    return RemovalErrorKind.UNKNOWN


class InferenceBackend(Protocol):
    """Anything that can cut out a foreground for a given configuration."""

    def has_gpu(self) -> bool:
        ...

    def remove(self, image: Image.Image, config: RemovalConfig) -> Image.Image:
        ...


class RembgInference:
    """rembg-backed inference with a per-(model, device) session cache."""

    def __init__(
        self,
        model_names: Optional[Dict[ModelPrecision, str]] = None,
    ):
        self.model_names = model_names or {
            ModelPrecision.FULL: settings.REMBG_MODEL_FULL,
            ModelPrecision.FP16: settings.REMBG_MODEL_FP16,
            ModelPrecision.QUANTIZED: settings.REMBG_MODEL_QUANTIZED,
        }
        self._sessions: Dict[Tuple[str, str, Optional[str]], Any] = {}
        self._providers: Optional[List[str]] = None

    def available_providers(self) -> List[str]:
        if self._providers is None:
            import onnxruntime

            self._providers = list(onnxruntime.get_available_providers())
        return self._providers

    def has_gpu(self) -> bool:
        return any(p in GPU_PROVIDERS for p in self.available_providers())

    def providers_for(self, device: ComputeDevice) -> List[str]:
        if device == ComputeDevice.GPU:
            gpu = [p for p in self.available_providers() if p in GPU_PROVIDERS]
            return gpu[:1] + [CPU_PROVIDER]
        return [CPU_PROVIDER]

    def model_name_for(self, config: RemovalConfig) -> str:
        if config.model_path:
            return CUSTOM_MODEL_NAME
        return self.model_names[config.model_precision]

    def _session(self, config: RemovalConfig):
        model_name = self.model_name_for(config)
        key = (model_name, config.compute_device.value, config.model_path)
        if key not in self._sessions:
            from rembg import new_session

            kwargs: Dict[str, Any] = {"providers": self.providers_for(config.compute_device)}
            if config.model_path:
                kwargs["model_path"] = config.model_path

            logger.info("rembg_session_loading", model=model_name, device=config.compute_device.value)
            self._sessions[key] = new_session(model_name, **kwargs)
        return self._sessions[key]

    def preload(self, configs: List[RemovalConfig]) -> None:
        """Create sessions ahead of the first request."""
        for config in configs:
            self._session(config)

    def remove(self, image: Image.Image, config: RemovalConfig) -> Image.Image:
        """
        Cut out the foreground of an image.

        Raises:
            RemovalFailure: classified inference or session failure
        """
        try:
            from rembg import remove

            session = self._session(config)
            output = remove(image, session=session)
        except Exception as e:
            kind = classify_failure(e, config)
            logger.warning(
                "rembg_inference_failed",
                model=self.model_name_for(config),
                device=config.compute_device.value,
                error_kind=kind.value,
                error_type=type(e).__name__,
                error=str(e)
            )
            raise RemovalFailure(kind, e, config) from e

        return output.convert("RGBA")
