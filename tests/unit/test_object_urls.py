from datetime import datetime, timedelta, timezone

import pytest

from banner_studio.core.object_urls import ObjectUrlRegistry


def test_register_and_resolve():
    registry = ObjectUrlRegistry("http://test")

    url = registry.register(b"png-bytes", "image/png")

    assert url.startswith("http://test/api/v1/objects/")
    assert registry.resolve(url).data == b"png-bytes"
    assert url in registry
    assert len(registry) == 1


def test_revoke_all_twice_is_a_no_op():
    registry = ObjectUrlRegistry()
    registry.register(b"a")
    registry.register(b"b")

    assert registry.revoke_all() == 2
    assert registry.revoke_all() == 0
    assert len(registry) == 0


def test_release_revokes_at_zero_references():
    registry = ObjectUrlRegistry()
    url = registry.register(b"data")
    registry.retain(url)

    assert registry.release(url) is False
    assert registry.is_valid(url)
    assert registry.release(url) is True
    assert not registry.is_valid(url)


def test_retain_unknown_url_raises():
    registry = ObjectUrlRegistry()

    with pytest.raises(KeyError):
        registry.retain("http://test/api/v1/objects/missing")


def test_scope_revokes_only_its_own_urls():
    registry = ObjectUrlRegistry()
    outside = registry.register(b"kept")

    with registry.scope() as scope:
        inside = scope.register(b"temporary")
        assert scope.resolve(inside).data == b"temporary"

    assert not registry.is_valid(inside)
    assert registry.is_valid(outside)


def test_token_from_url_accepts_bare_tokens():
    registry = ObjectUrlRegistry("http://test")
    url = registry.register(b"x")
    token = url.rsplit("/", 1)[-1]

    assert registry.token_from_url(token) == token
    assert registry.token_from_url(url + "?download=1") == token
    assert registry.token_from_url("https://elsewhere.example/image.png") is None


def test_registered_objects_carry_aware_utc_timestamps():
    registry = ObjectUrlRegistry()
    url = registry.register(b"data")

    created_at = registry.resolve(url).created_at

    assert created_at.tzinfo is timezone.utc
    assert abs(datetime.now(timezone.utc) - created_at) < timedelta(minutes=1)
