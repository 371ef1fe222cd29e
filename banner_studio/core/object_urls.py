"""
Object URL Registry

Holds processed image bytes in memory behind short-lived URLs served by
GET /api/v1/objects/{token}. URLs are reference counted and can be revoked
one at a time, per scope, or all at once.

The registry is owned by whoever creates it (the application lifespan, a
request, a test) and is passed explicitly to code that registers results.
"""

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Set

from banner_studio.core.logging import get_logger

logger = get_logger(__name__)

OBJECTS_ROUTE = "/api/v1/objects"


@dataclass
class RegisteredObject:
    token: str
    data: bytes
    content_type: str
    refcount: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self) -> int:
        return len(self.data)


class ObjectUrlRegistry:
    """Reference-counted registry of locally addressable result URLs."""

    def __init__(self, base_url: str = ""):
        self.base_url = base_url.rstrip("/")
        self._objects: Dict[str, RegisteredObject] = {}

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, url: str) -> bool:
        return self.is_valid(url)

    def url_for(self, token: str) -> str:
        return f"{self.base_url}{OBJECTS_ROUTE}/{token}"

    def token_from_url(self, url: str) -> Optional[str]:
        """Extract the token from a registry URL, or accept a bare token."""
        marker = f"{OBJECTS_ROUTE}/"
        if marker in url:
            return url.split(marker, 1)[1].split("?", 1)[0] or None
        return url if url in self._objects else None

    def register(self, data: bytes, content_type: str = "image/png") -> str:
        """Store bytes and return a URL addressing them."""
        token = uuid.uuid4().hex
        self._objects[token] = RegisteredObject(token=token, data=data, content_type=content_type)
        logger.debug("object_url_registered", token=token, size=len(data))
        return self.url_for(token)

    def resolve(self, url: str) -> Optional[RegisteredObject]:
        token = self.token_from_url(url)
        if token is None:
            return None
        return self._objects.get(token)

    def is_valid(self, url: str) -> bool:
        return self.resolve(url) is not None

    def retain(self, url: str) -> int:
        """Add a reference. Returns the new count."""
        obj = self.resolve(url)
        if obj is None:
            raise KeyError(f"Unknown or revoked object URL: {url}")
        obj.refcount += 1
        return obj.refcount

    def release(self, url: str) -> bool:
        """Drop a reference. Returns True when this revoked the URL."""
        obj = self.resolve(url)
        if obj is None:
            return False
        obj.refcount -= 1
        if obj.refcount <= 0:
            return self.revoke(url)
        return False

    def revoke(self, url: str) -> bool:
        """Revoke a URL regardless of its reference count."""
        token = self.token_from_url(url)
        if token is None or token not in self._objects:
            return False
        del self._objects[token]
        logger.debug("object_url_revoked", token=token)
        return True

    def revoke_all(self) -> int:
        """Revoke every URL. Calling it on an empty registry is a no-op."""
        count = len(self._objects)
        self._objects.clear()
        if count:
            logger.info("object_urls_revoked", count=count)
        return count

    @contextmanager
    def scope(self) -> Iterator["ObjectUrlScope"]:
        """
        Yield a scope whose registered URLs are revoked on exit.

        Usage:
            with registry.scope() as scope:
                url = scope.register(png_bytes)
        """
        scope = ObjectUrlScope(self)
        try:
            yield scope
        finally:
            scope.close()


class ObjectUrlScope:
    """A view on a registry that remembers what it registered."""

    def __init__(self, registry: ObjectUrlRegistry):
        self.registry = registry
        self._urls: Set[str] = set()

    def register(self, data: bytes, content_type: str = "image/png") -> str:
        url = self.registry.register(data, content_type)
        self._urls.add(url)
        return url

    def resolve(self, url: str) -> Optional[RegisteredObject]:
        return self.registry.resolve(url)

    def close(self) -> int:
        revoked = sum(1 for url in self._urls if self.registry.revoke(url))
        self._urls.clear()
        return revoked
