"""
Image Acquisition Schemas

Strategy and failure enums, the per-attempt record kept for every resolve
call, and the API-facing result.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class AcquisitionStrategy(str, Enum):
    """Ways of getting remote image bytes, in the order they are tried."""
    DIRECT = "direct"
    SERVER_PROXY = "server_proxy"
    PUBLIC_RELAY = "public_relay"
    PASSTHROUGH = "passthrough"


class ProxyFailureKind(str, Enum):
    """Why the server proxy did not return an image."""
    NETWORK_UNREACHABLE = "network_unreachable"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class AcquisitionSource:
    """One concrete thing to try: a strategy and the URL it fetches."""
    strategy: AcquisitionStrategy
    fetch_url: str
    relay_index: Optional[int] = None

    @property
    def label(self) -> str:
        if self.relay_index is None:
            return self.strategy.value
        return f"{self.strategy.value}_{self.relay_index}"

    def __str__(self) -> str:
        return self.label


@dataclass
class FetchedImage:
    """Outcome of a single fetch, accepted or not."""
    ok: bool
    data: bytes = b""
    content_type: Optional[str] = None
    status_code: Optional[int] = None
    failure_kind: Optional[ProxyFailureKind] = None
    reason: Optional[str] = None


# =============================================================================
# API Schemas
# =============================================================================

class AcquisitionAttempt(BaseModel):
    """Record of one strategy attempt, kept in order for every resolve call."""
    strategy: AcquisitionStrategy
    relay_index: Optional[int] = None
    source_url: str
    succeeded: bool
    status_code: Optional[int] = None
    result_size: Optional[int] = None
    result_url: Optional[str] = None
    failure_kind: Optional[ProxyFailureKind] = None
    error: Optional[str] = None


class ResolveResult(BaseModel):
    """Where a remote image ended up."""
    url: str = Field(..., description="Stored public URL, or the original URL on passthrough")
    stored: bool
    strategy: AcquisitionStrategy
    bucket: Optional[str] = None
    path: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    attempts: List[AcquisitionAttempt] = Field(default_factory=list)


class ResolveUploadRequest(BaseModel):
    image_url: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1, description="Destination object path inside the bucket")
    bucket: Optional[str] = None
