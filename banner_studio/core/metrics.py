"""
Prometheus Metrics for Observability

Tracks acquisition strategies, background-removal tiers, proxy traffic
and HTTP latency. Exposes /api/v1/metrics for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Upload Fallback Resolver
acquisition_attempts_total = Counter(
    "acquisition_attempts_total",
    "Image acquisition attempts by strategy and outcome",
    labelnames=["strategy", "outcome"]
)

acquisition_resolutions_total = Counter(
    "acquisition_resolutions_total",
    "Resolved uploads by final result (stored or passthrough)",
    labelnames=["result"]
)

# Background Removal
background_removal_total = Counter(
    "background_removal_total",
    "Background removal attempts by tier and outcome",
    labelnames=["tier", "outcome"]
)

background_removal_latency_seconds = Histogram(
    "background_removal_latency_seconds",
    "Time spent in each background removal tier",
    labelnames=["tier", "status"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]
)

# Proxies
proxy_requests_total = Counter(
    "proxy_requests_total",
    "Requests handled by the image proxy and the Flux relay",
    labelnames=["proxy", "status"]
)

# Generation
flux_tasks_total = Counter(
    "flux_tasks_total",
    "Flux generation tasks by final status",
    labelnames=["status"]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "banner_studio",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_tier_latency(tier: str):
    """
    Context manager to track background-removal tier latency.

    Usage:
        with track_tier_latency("primary"):
            # run inference
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        background_removal_latency_seconds.labels(tier=tier, status=status).observe(duration)


def record_acquisition_attempt(strategy: str, succeeded: bool):
    """Record one acquisition strategy attempt."""
    acquisition_attempts_total.labels(
        strategy=strategy,
        outcome="success" if succeeded else "failure"
    ).inc()


def record_acquisition_resolution(result: str):
    """Record how a resolve call ended: stored or passthrough."""
    acquisition_resolutions_total.labels(result=result).inc()


def record_removal_tier(tier: str, succeeded: bool):
    """Record a background-removal tier outcome."""
    background_removal_total.labels(
        tier=tier,
        outcome="success" if succeeded else "failure"
    ).inc()


def record_proxy_request(proxy: str, status: int):
    """Record a proxied request and the status returned to the caller."""
    proxy_requests_total.labels(proxy=proxy, status=str(status)).inc()


def record_flux_task(status: str):
    """Record the final status of a Flux task."""
    flux_tasks_total.labels(status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
