"""Image acquisition: domain checks, proxy failure classification, upload resolver."""

from banner_studio.engines.acquisition.resolver import UploadFallbackResolver, build_relay_url
from banner_studio.engines.acquisition.schemas import (
    AcquisitionAttempt,
    AcquisitionStrategy,
    ProxyFailureKind,
    ResolveResult,
)

__all__ = [
    "UploadFallbackResolver",
    "build_relay_url",
    "AcquisitionAttempt",
    "AcquisitionStrategy",
    "ProxyFailureKind",
    "ResolveResult",
]
