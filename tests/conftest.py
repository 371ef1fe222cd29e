import io
import os
import tempfile
from typing import AsyncGenerator, Callable, Dict, Union

import numpy as np
import pytest
from PIL import Image

# Settings are read at import time, so point them at a scratch directory first
_TEST_ROOT = tempfile.mkdtemp(prefix="banner-studio-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["LOCAL_STORAGE_PATH"] = os.path.join(_TEST_ROOT, "storage")
os.environ["PUBLIC_BASE_URL"] = "http://test"
os.environ["IMAGE_PROXY_URL"] = "http://test/api/image-proxy?url={url}"
os.environ["LOG_FORMAT_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["REMBG_PRELOAD"] = "false"
os.environ["DIRECT_FETCH_RESOLVE_DNS"] = "false"
os.environ["FLUX_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

import httpx  # noqa: E402
from fastapi import Depends  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import banner_studio.core.database  # noqa: E402,F401
from banner_studio.api.dependencies import get_http_client, get_pipeline, get_registry  # noqa: E402
from banner_studio.core.object_urls import ObjectUrlRegistry  # noqa: E402
from banner_studio.core.storage import LocalStorage  # noqa: E402
from banner_studio.engines.background_removal import BackgroundRemovalPipeline  # noqa: E402
from banner_studio.main import app  # noqa: E402


# =============================================================================
# Images
# =============================================================================

@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """
    PNG bytes of a solid image, optionally with a centered block of noise.

    noise is the side fraction of the noisy block; noise makes the file
    incompressible enough to pass the 1 KB acquisition floor.
    """
    rng = np.random.default_rng(0)

    def _make(width=64, height=64, color=(255, 255, 255), noise=0.0, fmt="PNG", mode="RGB") -> bytes:
        pixels = np.empty((height, width, 3), dtype=np.uint8)
        pixels[:, :] = color
        if noise:
            nh, nw = max(1, int(height * noise)), max(1, int(width * noise))
            top, left = (height - nh) // 2, (width - nw) // 2
            pixels[top:top + nh, left:left + nw] = rng.integers(0, 256, (nh, nw, 3), dtype=np.uint8)
        image = Image.fromarray(pixels).convert(mode)
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


# =============================================================================
# Fakes
# =============================================================================

class FakeInference:
    """Inference backend that raises queued errors, then returns the image as RGBA."""

    def __init__(self, has_gpu: bool = False, failures=None):
        self._has_gpu = has_gpu
        self.failures = list(failures or [])
        self.calls = []

    def has_gpu(self) -> bool:
        return self._has_gpu

    def remove(self, image, config):
        self.calls.append(config)
        if self.failures:
            raise self.failures.pop(0)
        return image.convert("RGBA")


@pytest.fixture
def make_inference() -> Callable[..., FakeInference]:
    return FakeInference


Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class Upstream:
    """Route table behind an httpx.MockTransport; unknown URLs answer 404."""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests = []

    def add(self, url: str, route: Route):
        self.routes[url] = route

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        route = (
            self.routes.get(url)
            or self.routes.get(url.split("?", 1)[0])
            or self.routes.get(request.url.host)
        )
        if route is None:
            return httpx.Response(404, text="Not Found")
        return route(request) if callable(route) else route

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def urls(self):
        return [str(r.url) for r in self.requests]


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


# =============================================================================
# Storage & Database
# =============================================================================

@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(base_path=str(tmp_path / "storage"), buckets=["partner-assets", "banners"])


@pytest.fixture
def registry() -> ObjectUrlRegistry:
    registry = ObjectUrlRegistry("http://test")
    yield registry
    registry.revoke_all()


@pytest.fixture
async def session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'unit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    maker = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as s:
        yield s
    await engine.dispose()


# =============================================================================
# API Client
# =============================================================================

@pytest.fixture
def inference() -> FakeInference:
    return FakeInference()


@pytest.fixture
async def client(upstream, inference) -> AsyncGenerator[AsyncClient, None]:
    async def _http_client():
        async with upstream.client() as http_client:
            yield http_client

    def _pipeline(registry: ObjectUrlRegistry = Depends(get_registry)):
        return BackgroundRemovalPipeline(registry, inference=inference)

    app.dependency_overrides[get_http_client] = _http_client
    app.dependency_overrides[get_pipeline] = _pipeline

    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    app.dependency_overrides.clear()
