"""
Proxy Endpoints

GET  /api/image-proxy?url=...   - Fetch an allow-listed remote image for the browser
*    /api/flux/{path}           - Relay Flux API calls with the server-side key

Both answer OPTIONS with a bare 200 and add their own CORS headers, so the
browser can call them from any origin. Error bodies are {error, details}.
"""

from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from banner_studio.api.dependencies import get_http_client
from banner_studio.core.config import settings
from banner_studio.core.logging import get_logger
from banner_studio.core.metrics import record_proxy_request
from banner_studio.engines.acquisition.domains import host_of, is_allowed_proxy_target

logger = get_logger(__name__)
router = APIRouter()

IMAGE_PROXY_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, x-key",
}

FLUX_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, x-key",
}


def _error(status_code: int, body: Dict[str, Any], headers: Dict[str, str], proxy: str) -> JSONResponse:
    record_proxy_request(proxy, status_code)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# =============================================================================
# Image Proxy
# =============================================================================

@router.options("/image-proxy")
async def image_proxy_preflight():
    return Response(status_code=200, headers=IMAGE_PROXY_CORS)


@router.get("/image-proxy")
async def image_proxy(
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Fetch an image from an allow-listed host and return its bytes.

    The upstream status is mirrored on failure.
    """
    if not url:
        return _error(400, {"error": "Missing URL parameter"}, IMAGE_PROXY_CORS, "image")
    if host_of(url) is None:
        return _error(400, {"error": "Invalid URL"}, IMAGE_PROXY_CORS, "image")
    if not is_allowed_proxy_target(url):
        logger.warning("image_proxy_domain_rejected", host=host_of(url))
        return _error(403, {"error": "Domain not allowed"}, IMAGE_PROXY_CORS, "image")

    try:
        upstream = await client.get(url, headers={"User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"})
    except httpx.HTTPError as e:
        logger.error("image_proxy_failed", url=url, error=str(e), error_type=type(e).__name__)
        return _error(500, {"error": "Internal server error", "details": str(e)}, IMAGE_PROXY_CORS, "image")

    if not upstream.is_success:
        logger.warning("image_proxy_upstream_error", url=url, status=upstream.status_code)
        return _error(
            upstream.status_code,
            {"error": f"Failed to fetch image: {upstream.status_code} {upstream.reason_phrase}"},
            IMAGE_PROXY_CORS,
            "image"
        )

    data = upstream.content
    record_proxy_request("image", 200)
    return Response(
        content=data,
        media_type=upstream.headers.get("content-type") or "image/png",
        headers={
            **IMAGE_PROXY_CORS,
            "Content-Length": str(len(data)),
            "Cache-Control": "public, max-age=3600",
        }
    )


@router.api_route("/image-proxy", methods=["POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def image_proxy_method_not_allowed():
    return _error(405, {"error": "Method not allowed"}, IMAGE_PROXY_CORS, "image")


# =============================================================================
# Flux Relay
# =============================================================================

def build_flux_target(base_url: str, path: str, query: str = "") -> str:
    """
    Map a relay path onto the Flux API.

    flux-pro*        -> {base}/{path}
    get_result*      -> {base}/get_result?{query}
    *result*         -> {base}/get_result?id={last segment}
    anything else    -> {base}/{path}?{query}
    """
    base = base_url.rstrip("/")
    path = path.strip("/")

    if path.startswith("flux-pro"):
        return f"{base}/{path}"
    if path.startswith("get_result"):
        return f"{base}/get_result?{query}" if query else f"{base}/get_result"
    if "result" in path:
        return f"{base}/get_result?id={path.rsplit('/', 1)[-1]}"
    return f"{base}/{path}?{query}" if query else f"{base}/{path}"


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


@router.api_route("/flux/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])
async def flux_relay(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Forward a call to the Flux API, adding the x-key header."""
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=FLUX_CORS)

    if not settings.FLUX_API_KEY:
        return _error(
            500,
            {"error": "Flux API key not configured", "details": "Set FLUX_API_KEY on the server"},
            FLUX_CORS,
            "flux"
        )

    target = build_flux_target(settings.FLUX_API_BASE_URL, path, request.url.query)
    headers = {"Content-Type": "application/json", "x-key": settings.FLUX_API_KEY}

    body = None
    if request.method in ("POST", "PUT"):
        raw = await request.body()
        if raw:
            body = raw

    try:
        upstream = await client.request(request.method, target, headers=headers, content=body)
    except httpx.HTTPError as e:
        logger.error("flux_relay_failed", target=target, error=str(e), error_type=type(e).__name__)
        return _error(500, {"error": "Internal server error", "details": str(e)}, FLUX_CORS, "flux")

    payload = _json_or_text(upstream)
    if not upstream.is_success:
        logger.warning("flux_relay_upstream_error", target=target, status=upstream.status_code)
        return _error(
            upstream.status_code,
            {
                "error": "Flux API error",
                "status": upstream.status_code,
                "statusText": upstream.reason_phrase,
                "details": payload,
            },
            FLUX_CORS,
            "flux"
        )

    record_proxy_request("flux", upstream.status_code)
    logger.debug("flux_relayed", method=request.method, target=target, status=upstream.status_code)
    return JSONResponse(status_code=upstream.status_code, content=payload, headers=FLUX_CORS)
