from datetime import datetime, timedelta, timezone

import pytest

from banner_studio.core.exceptions import NotFoundError, StorageError, ValidationError
from banner_studio.core.storage import LocalStorage, UploadedFile
from banner_studio.modules.banners.models import Banner
from banner_studio.modules.partners.models import PartnerCreate, PartnerStatus, PartnerUpdate, utc_now
from banner_studio.modules.partners.service import PartnerFiles, PartnerService


class FlakyStorage(LocalStorage):
    """Fails any upload whose payload is b'fail'."""

    async def upload(self, file_data, path, bucket, content_type="image/png", upsert=True):
        if file_data == b"fail":
            raise StorageError("simulated outage")
        return await super().upload(file_data, path, bucket, content_type, upsert)


def image(name: str, data: bytes = b"png-bytes") -> UploadedFile:
    return UploadedFile(filename=name, content_type="image/png", data=data)


@pytest.fixture
def flaky_storage(tmp_path):
    return FlakyStorage(base_path=str(tmp_path / "storage"), buckets=["partner-assets", "banners"])


@pytest.fixture
def service(session, flaky_storage):
    return PartnerService(session, flaky_storage, bucket="partner-assets")


@pytest.mark.asyncio
async def test_create_partner_uploads_assets(service, flaky_storage):
    # Arrange
    files = PartnerFiles(
        logo=image("logo.png"),
        reference_banners=[image("ref-1.png"), image("ref-2.png")],
        product_photos=[image("shoe.png")],
    )

    # Act
    partner, failed = await service.create_partner(
        PartnerCreate(name="  Acme  ", regions=["US", "MX"]), files
    )

    # Assert
    assert failed == []
    assert partner.name == "Acme"
    assert partner.regions == ["US", "MX"]
    assert partner.status == PartnerStatus.ACTIVE.value
    assert "/partner-assets/logos/" in partner.logo_url
    assert partner.brand_manual_url is None
    assert len(partner.reference_banners_urls) == 2
    assert all("/reference-banners/" in url for url in partner.reference_banners_urls)
    path = flaky_storage.path_from_url(partner.product_photos_urls[0], "partner-assets")
    assert await flaky_storage.exists(path, "partner-assets")


@pytest.mark.asyncio
async def test_failed_uploads_are_reported_not_dropped(service):
    files = PartnerFiles(reference_banners=[image("ok.png"), image("broken.png", b"fail"), image("ok2.png")])

    partner, failed = await service.create_partner(PartnerCreate(name="Acme"), files)

    assert len(partner.reference_banners_urls) == 2
    assert len(failed) == 1
    assert failed[0].filename == "broken.png"
    assert failed[0].index == 1
    assert failed[0].folder == "reference-banners"
    assert failed[0].error == "simulated outage"


@pytest.mark.asyncio
async def test_update_keeps_unset_fields_and_appends_uploads(service):
    partner, _ = await service.create_partner(
        PartnerCreate(name="Acme", description="shoes"),
        PartnerFiles(reference_banners=[image("a.png"), image("b.png")]),
    )
    keep = partner.reference_banners_urls[1]

    updated, failed = await service.update_partner(
        partner.id,
        PartnerUpdate(status=PartnerStatus.INACTIVE, existing_reference_banners_urls=[keep]),
        PartnerFiles(reference_banners=[image("c.png")]),
    )

    assert failed == []
    assert updated.description == "shoes"
    assert updated.status == "inactive"
    assert len(updated.reference_banners_urls) == 2
    assert updated.reference_banners_urls[0] == keep
    assert updated.updated_at >= partner.created_at


@pytest.mark.asyncio
async def test_update_without_existing_lists_keeps_stored_urls(service):
    partner, _ = await service.create_partner(
        PartnerCreate(name="Acme"), PartnerFiles(product_photos=[image("a.png")])
    )
    original = list(partner.product_photos_urls)

    updated, _ = await service.update_partner(
        partner.id, PartnerUpdate(), PartnerFiles(product_photos=[image("b.png")])
    )

    assert updated.product_photos_urls[:1] == original
    assert len(updated.product_photos_urls) == 2


@pytest.mark.asyncio
async def test_list_partners_filters_by_status(service):
    await service.create_partner(PartnerCreate(name="Active"))
    await service.create_partner(PartnerCreate(name="Pending", status=PartnerStatus.PENDING))

    pending = await service.list_partners(status="pending")

    assert [p.name for p in pending] == ["Pending"]
    assert len(await service.list_partners()) == 2


@pytest.mark.asyncio
async def test_product_photos(service, flaky_storage):
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))

    photo = await service.add_product_photo(partner.id, image("shoe.png"))
    photos = await service.list_product_photos(partner.id)

    assert photo.id == f"{partner.id}-0"
    assert f"/product-photos/{partner.id}/" in photo.url
    assert [p.url for p in photos] == [photo.url]

    await service.remove_product_photo(partner.id, photo.url)

    assert await service.list_product_photos(partner.id) == []
    assert not await flaky_storage.exists(
        flaky_storage.path_from_url(photo.url, "partner-assets"), "partner-assets"
    )


@pytest.mark.asyncio
async def test_product_photo_errors(service):
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))

    with pytest.raises(ValidationError):
        await service.add_product_photo(partner.id, UploadedFile("doc.pdf", "application/pdf", b"%PDF"))
    with pytest.raises(StorageError):
        await service.add_product_photo(partner.id, image("shoe.png", b"fail"))
    with pytest.raises(NotFoundError):
        await service.remove_product_photo(partner.id, "https://elsewhere.test/x.png")


@pytest.mark.asyncio
async def test_delete_partner_removes_its_banners(service, session):
    partner, _ = await service.create_partner(PartnerCreate(name="Acme"))
    banner = Banner(partner_id=partner.id, banner_title="t", image_url="https://x.test/a.png")
    session.add(banner)
    await session.commit()
    banner_id = banner.id

    await service.delete_partner(partner.id)

    with pytest.raises(NotFoundError):
        await service.get_partner(partner.id)
    assert await session.get(Banner, banner_id) is None


@pytest.mark.asyncio
async def test_timestamps_are_naive_utc(service):
    before = datetime.now(timezone.utc).replace(tzinfo=None)

    partner, _ = await service.create_partner(PartnerCreate(name="Acme"), PartnerFiles())

    assert utc_now().tzinfo is None
    assert partner.created_at.tzinfo is None
    assert before - timedelta(seconds=1) <= partner.created_at <= utc_now()
