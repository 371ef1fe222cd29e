"""
Global Exception Handling

Provides the service exception hierarchy and structured JSON error
responses for FastAPI.
"""

import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse

from banner_studio.core.logging import get_logger, request_id_var, operation_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class BannerStudioError(Exception):
    """Base exception for Banner Studio."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.operation = operation or operation_var.get()
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BannerStudioError):
    """Raised when input validation fails."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=400, **kwargs)


class NotFoundError(BannerStudioError):
    """Raised when a partner, banner or object does not exist."""

    def __init__(self, resource: str, resource_id: str, **kwargs):
        super().__init__(f"{resource} '{resource_id}' not found", code=404, **kwargs)
        self.details["resource"] = resource
        self.details["id"] = resource_id


class ConfigurationError(BannerStudioError):
    """Raised when a required setting (API key, storage) is missing."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=500, **kwargs)


class UpstreamError(BannerStudioError):
    """Raised when an external API call fails (Flux, OpenAI, relays)."""

    def __init__(
        self,
        message: str,
        service: str,
        http_status: Optional[int] = None,
        body: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, code=502, **kwargs)
        self.http_status = http_status
        self.details["service"] = service
        self.details["http_status"] = http_status
        if body:
            self.details["body"] = body[:2000]


class GenerationError(UpstreamError):
    """Raised when an image generation task fails, is moderated or times out."""

    def __init__(self, message: str, task_id: Optional[str] = None, status: Optional[str] = None, **kwargs):
        super().__init__(message, service="flux", **kwargs)
        self.details["task_id"] = task_id
        self.details["task_status"] = status


class StorageError(BannerStudioError):
    """Raised when storage operations fail."""

    def __init__(self, message: str, code: int = 500, **kwargs):
        super().__init__(message, code=code, **kwargs)


class BucketNotFoundError(StorageError):
    """Raised when the destination bucket does not exist."""

    def __init__(self, bucket: str, **kwargs):
        super().__init__(f"Bucket not found: {bucket}", code=404, **kwargs)
        self.details["bucket"] = bucket


class BackgroundRemovalError(BannerStudioError):
    """Raised when every background-removal tier has failed."""

    def __init__(self, message: str, tiers_attempted: Optional[list] = None, **kwargs):
        super().__init__(
            f"Background removal failed after all fallback attempts: {message}",
            code=500,
            operation="background_removal",
            **kwargs
        )
        self.details["tiers_attempted"] = tiers_attempted or []


# =============================================================================
# Exception Handlers
# =============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(BannerStudioError)
    async def banner_studio_exception_handler(request: Request, exc: BannerStudioError):
        log = logger.warning if exc.code < 500 else logger.error
        log(
            "banner_studio_exception",
            error=exc.message,
            error_type=type(exc).__name__,
            code=exc.code,
            details=exc.details,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=exc.code,
            content={
                "error": exc.message,
                "code": exc.code,
                "operation": exc.operation,
                "details": exc.details,
                "request_id": request_id_var.get(),
                "timestamp": _timestamp()
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "code": exc.status_code,
                "request_id": request_id_var.get(),
                "timestamp": _timestamp()
            },
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "code": 500,
                "request_id": request_id_var.get(),
                "timestamp": _timestamp()
            }
        )
