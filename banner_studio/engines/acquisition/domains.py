"""Host matching for external image URLs, the proxy allow-list and direct-fetch targets."""

import asyncio
import ipaddress
import socket
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from banner_studio.core.config import settings

# Names that never point at the public internet
PRIVATE_NAME_SUFFIXES = (".localhost", ".local", ".internal", ".localdomain")


def host_of(url: str) -> Optional[str]:
    """Lowercased host of an absolute http(s) URL, or None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return parsed.hostname.lower()


def host_matches(host: Optional[str], domains: Iterable[str]) -> bool:
    """Exact host or any subdomain of one of the domains."""
    if not host:
        return False
    for domain in domains:
        domain = domain.lower().lstrip(".")
        if host == domain or host.endswith("." + domain):
            return True
    return False


def is_external_image_url(url: str, domains: Optional[Iterable[str]] = None) -> bool:
    """True for AI-provider delivery URLs that cannot be fetched directly."""
    return host_matches(host_of(url), domains or settings.EXTERNAL_IMAGE_DOMAINS)


def is_allowed_proxy_target(url: str, domains: Optional[Iterable[str]] = None) -> bool:
    return host_matches(host_of(url), domains or settings.IMAGE_PROXY_ALLOWED_DOMAINS)


def is_global_address(address: str) -> bool:
    try:
        return ipaddress.ip_address(address).is_global
    except ValueError:
        return False


async def lookup_addresses(host: str) -> List[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


async def is_public_host(host: Optional[str], resolve_dns: bool = True) -> bool:
    """
    True when the host can only reach the public internet.

    Loopback, link-local, private and reserved addresses are refused, both as
    literals and, with resolve_dns, as what a name resolves to. A name that
    does not resolve is refused.
    """
    if not host:
        return False
    if host == "localhost" or host.endswith(PRIVATE_NAME_SUFFIXES):
        return False

    try:
        return ipaddress.ip_address(host).is_global
    except ValueError:
        pass

    if not resolve_dns:
        return True

    try:
        addresses = await lookup_addresses(host)
    except (socket.gaierror, UnicodeError):
        return False
    return bool(addresses) and all(is_global_address(a) for a in addresses)
