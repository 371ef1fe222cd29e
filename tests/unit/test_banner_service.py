import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

import banner_studio.core.storage as storage_module
from banner_studio.core.exceptions import NotFoundError
from banner_studio.engines.acquisition import UploadFallbackResolver
from banner_studio.modules.banners.models import Banner, BannerCreate, BannerPairCreate
from banner_studio.modules.banners.service import BannerService, default_banner_title, group_banners
from banner_studio.modules.partners.models import Partner

T0 = datetime(2024, 5, 1, 12, 0, 10)


def legacy(partner_id, image_type, at, url=None) -> Banner:
    return Banner(
        partner_id=partner_id,
        image_url=url or f"https://x.test/{image_type}-{at.isoformat()}.png",
        image_type=image_type,
        banner_title="Summer",
        created_at=at,
    )


# =============================================================================
# Grouping
# =============================================================================

def test_legacy_rows_fold_into_pairs():
    desktop = legacy("p1", "desktop", T0)
    mobile = legacy("p1", "mobile", T0 + timedelta(seconds=2))

    groups = group_banners([(mobile, "Acme"), (desktop, "Acme")])

    assert len(groups) == 1
    group = groups[0]
    assert not group.enhanced
    assert group.id == desktop.id
    assert group.desktop_url == desktop.image_url
    assert group.mobile_url == mobile.image_url
    assert group.image_url == desktop.image_url
    assert sorted(group.banner_ids) == sorted([desktop.id, mobile.id])
    assert group.partner_name == "Acme"


def test_enhanced_rows_stand_alone_and_sort_newest_first():
    enhanced = Banner(partner_id="p1", image_url="https://x.test/e.png", main_text="50% off",
                      created_at=T0 + timedelta(minutes=5))
    older_pair = [legacy("p1", "desktop", T0), legacy("p1", "mobile", T0)]
    other_partner = legacy("p2", "desktop", T0)

    groups = group_banners([(b, None) for b in [*older_pair, other_partner, enhanced]])

    assert groups[0].enhanced
    assert groups[0].image_url == "https://x.test/e.png"
    assert groups[0].main_text == "50% off"
    assert len(groups) == 3
    assert {g.partner_id for g in groups[1:]} == {"p1", "p2"}


def test_default_banner_title():
    assert default_banner_title("Acme", T0) == "Banner - Acme - 2024-05-01"


# =============================================================================
# Service
# =============================================================================

@pytest.fixture
async def partner(session) -> Partner:
    partner = Partner(name="Acme")
    session.add(partner)
    await session.commit()
    await session.refresh(partner)
    return partner


@pytest.fixture
def service(session, storage, upstream):
    resolver = UploadFallbackResolver(storage, http_client=upstream.client(), relay_templates=[])
    return BannerService(session, storage, resolver, bucket="banners")


@pytest.mark.asyncio
async def test_save_banner_pair_stores_both_images(service, partner, storage, upstream, make_png):
    # Arrange
    upstream.add("https://cdn.example.com/d.png", httpx.Response(
        200, content=make_png(128, 32, noise=1.0), headers={"content-type": "image/png"}
    ))
    upstream.add("https://cdn.example.com/m.png", httpx.Response(
        200, content=make_png(32, 64, noise=1.0), headers={"content-type": "image/png"}
    ))

    # Act
    banners = await service.save_banner_pair(BannerPairCreate(
        partner_id=partner.id,
        desktop_url="https://cdn.example.com/d.png",
        mobile_url="https://cdn.example.com/m.png",
        prompt="summer sale",
    ))

    # Assert
    desktop, mobile = banners
    assert desktop.image_type == "desktop"
    assert mobile.image_type == "mobile"
    assert f"/banners/banner-desktop/{partner.id}/" in desktop.image_url
    assert f"/banners/banner-mobile/{partner.id}/" in mobile.image_url
    assert desktop.banner_title.startswith("Banner - Acme - ")
    assert await storage.exists(storage.path_from_url(desktop.image_url, "banners"), "banners")

    groups = await service.list_banners(partner.id)
    assert len(groups) == 1
    assert groups[0].partner_name == "Acme"


@pytest.mark.asyncio
async def test_concurrent_pair_saves_keep_their_own_images(session, storage, upstream, make_png, monkeypatch):
    # Arrange: every save lands on the same millisecond
    monkeypatch.setattr(storage_module, "time", SimpleNamespace(time=lambda: 1_700_000_000.0))
    partners = [Partner(name="Acme"), Partner(name="Globex")]
    session.add_all(partners)
    await session.commit()

    payloads = {}
    for partner in partners:
        for kind in ("desktop", "mobile"):
            url = f"https://cdn.example.com/{partner.id}/{kind}.png"
            payloads[url] = make_png(64, 64, noise=1.0)
            upstream.add(url, httpx.Response(200, content=payloads[url], headers={"content-type": "image/png"}))

    async def save(partner):
        resolver = UploadFallbackResolver(storage, http_client=upstream.client(), relay_templates=[])
        async with AsyncSession(session.bind, expire_on_commit=False) as own_session:
            service = BannerService(own_session, storage, resolver, bucket="banners")
            return await service.save_banner_pair(BannerPairCreate(
                partner_id=partner.id,
                desktop_url=f"https://cdn.example.com/{partner.id}/desktop.png",
                mobile_url=f"https://cdn.example.com/{partner.id}/mobile.png",
            ))

    # Act
    saved = await asyncio.gather(*(save(p) for p in partners))

    # Assert
    paths = [storage.path_from_url(b.image_url, "banners") for pair in saved for b in pair]
    assert len(set(paths)) == 4
    for partner, (desktop, mobile) in zip(partners, saved):
        for banner, kind in ((desktop, "desktop"), (mobile, "mobile")):
            path = storage.path_from_url(banner.image_url, "banners")
            assert path.startswith(f"banner-{kind}/{partner.id}/1700000000000-")
            stored = (storage.base_path / "banners" / path).read_bytes()
            assert stored == payloads[f"https://cdn.example.com/{partner.id}/{kind}.png"]


@pytest.mark.asyncio
async def test_save_banner_keeps_source_url_when_not_stored(service, partner, upstream):
    banner = await service.save_banner(BannerCreate(
        partner_id=partner.id,
        image_url="https://cdn.example.com/keep.png",
        main_text="Hello",
        store_image=False,
    ))

    assert banner.image_url == "https://cdn.example.com/keep.png"
    assert banner.is_enhanced
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_save_banner_for_unknown_partner(service):
    with pytest.raises(NotFoundError):
        await service.save_banner(BannerCreate(partner_id="missing", image_url="https://x.test/a.png"))


@pytest.mark.asyncio
async def test_delete_removes_rows_within_window_and_their_objects(service, session, partner, storage):
    # Arrange
    await storage.upload(b"desktop", "banner-desktop-1.png", "banners")
    stored_url = storage.get_public_url("banner-desktop-1.png", "banners")
    target = legacy(partner.id, "desktop", T0, url=stored_url)
    sibling = legacy(partner.id, "mobile", T0 + timedelta(seconds=30))
    unrelated = legacy(partner.id, "desktop", T0 + timedelta(minutes=5))
    session.add_all([target, sibling, unrelated])
    await session.commit()
    target_id, sibling_id, unrelated_id = target.id, sibling.id, unrelated.id

    # Act
    deleted_ids, removed_objects = await service.delete_banner(target_id)

    # Assert
    assert sorted(deleted_ids) == sorted([target_id, sibling_id])
    assert removed_objects == 1
    assert not await storage.exists("banner-desktop-1.png", "banners")
    remaining, _ = await service.get_banner(unrelated_id)
    assert remaining.id == unrelated_id


@pytest.mark.asyncio
async def test_stats_helpers(service, session, partner):
    session.add_all([legacy(partner.id, "desktop", T0), legacy(partner.id, "mobile", T0)])
    await session.commit()

    assert await service.count_by_partner() == {partner.id: 2}
    assert len(await service.recent(limit=1)) == 1


@pytest.mark.asyncio
async def test_get_missing_banner(service):
    with pytest.raises(NotFoundError):
        await service.get_banner("missing")
