"""
Partner Service

CRUD for partners and their stored assets. Multi-file uploads run
concurrently and come back as tagged outcomes, so a failed file is
reported next to the ones that made it instead of being dropped.

Bucket layout (partner-assets):
    logos/{ts}-{rand}.{ext}
    brand-manuals/{ts}-{rand}.{ext}
    reference-banners/{ts}-{rand}.{ext}
    product-photos/{ts}-{rand}.{ext}
    product-photos/{partner_id}/{ts}-{rand}.{ext}
"""

import asyncio
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from banner_studio.core.config import settings
from banner_studio.core.exceptions import ConfigurationError, NotFoundError, StorageError, UpstreamError, ValidationError
from banner_studio.core.logging import get_logger
from banner_studio.core.storage import IStorage, UploadedFile, generate_object_path
from banner_studio.engines.generation.openai_vision import StyleAnalyzer
from banner_studio.modules.banners.models import Banner
from banner_studio.modules.partners.models import (
    Partner,
    PartnerCreate,
    PartnerUpdate,
    ProductPhoto,
    UploadOutcome,
)

logger = get_logger(__name__)

LOGOS_FOLDER = "logos"
BRAND_MANUALS_FOLDER = "brand-manuals"
REFERENCE_BANNERS_FOLDER = "reference-banners"
PRODUCT_PHOTOS_FOLDER = "product-photos"


@dataclass
class PartnerFiles:
    logo: Optional[UploadedFile] = None
    brand_manual: Optional[UploadedFile] = None
    reference_banners: List[UploadedFile] = field(default_factory=list)
    product_photos: List[UploadedFile] = field(default_factory=list)


@dataclass
class UploadedAssets:
    logo: List[UploadOutcome]
    brand_manual: List[UploadOutcome]
    reference_banners: List[UploadOutcome]
    product_photos: List[UploadOutcome]

    @property
    def failed(self) -> List[UploadOutcome]:
        return [
            o for group in (self.logo, self.brand_manual, self.reference_banners, self.product_photos)
            for o in group if not o.succeeded
        ]


def _urls(outcomes: Sequence[UploadOutcome]) -> List[str]:
    return [o.url for o in sorted(outcomes, key=lambda o: o.index) if o.succeeded]


class PartnerService:
    """Partner persistence plus asset uploads."""

    def __init__(
        self,
        session: AsyncSession,
        storage: IStorage,
        bucket: Optional[str] = None,
        style_analyzer: Optional[StyleAnalyzer] = None,
    ):
        self.session = session
        self.storage = storage
        self.bucket = bucket or settings.PARTNER_ASSETS_BUCKET
        self.style_analyzer = style_analyzer

    # =========================================================================
    # Uploads
    # =========================================================================

    async def _upload_one(self, index: int, file: UploadedFile, folder: str) -> UploadOutcome:
        outcome = UploadOutcome(index=index, folder=folder, filename=file.filename)
        path = generate_object_path(folder, file.extension)
        try:
            stored = await self.storage.upload(
                file.data, path, self.bucket,
                content_type=file.content_type or "application/octet-stream",
                upsert=False
            )
        except StorageError as e:
            logger.warning("partner_asset_upload_failed", folder=folder, filename=file.filename, error=e.message)
            outcome.error = e.message
            return outcome

        outcome.path = stored
        outcome.url = self.storage.get_public_url(stored, self.bucket)
        return outcome

    async def upload_files(self, files: Sequence[UploadedFile], folder: str) -> List[UploadOutcome]:
        """Upload concurrently; outcome i belongs to files[i]."""
        return list(await asyncio.gather(
            *(self._upload_one(i, f, folder) for i, f in enumerate(files))
        ))

    async def _upload_assets(self, files: PartnerFiles) -> UploadedAssets:
        logo, manual, references, photos = await asyncio.gather(
            self.upload_files([files.logo] if files.logo else [], LOGOS_FOLDER),
            self.upload_files([files.brand_manual] if files.brand_manual else [], BRAND_MANUALS_FOLDER),
            self.upload_files(files.reference_banners, REFERENCE_BANNERS_FOLDER),
            self.upload_files(files.product_photos, PRODUCT_PHOTOS_FOLDER),
        )
        assets = UploadedAssets(logo, manual, references, photos)
        if assets.failed:
            logger.warning("partner_uploads_incomplete", failed=len(assets.failed))
        return assets

    # =========================================================================
    # Reference Style
    # =========================================================================

    async def _analyze_quietly(
        self, images: Sequence[UploadedFile], name: str, description: Optional[str], regions: Sequence[str]
    ) -> Optional[Dict[str, Any]]:
        """Style analysis for a new partner; a failure leaves the partner without one."""
        if self.style_analyzer is None:
            return None
        try:
            return await self.style_analyzer.analyze_reference_style(images, name, description, regions)
        except (UpstreamError, ValidationError) as e:
            logger.warning("partner_style_analysis_failed", partner_name=name, error=e.message)
            return None

    async def analyze_reference_style(
        self,
        partner_id: str,
        images: Sequence[UploadedFile] = (),
        fetch: Optional[Callable[[str], Awaitable[bytes]]] = None,
    ) -> Partner:
        """
        Analyze reference banners and store the result on the partner.

        Without images, the partner's stored reference banners are loaded
        with `fetch`.

        Raises:
            ConfigurationError: no style analyzer (OPENAI_API_KEY unset)
            ValidationError: no images
            UpstreamError: a stored banner could not be fetched, or the analysis failed
        """
        if self.style_analyzer is None:
            raise ConfigurationError("OpenAI API key not configured", details={"setting": "OPENAI_API_KEY"})
        partner = await self.get_partner(partner_id)

        images = list(images)
        if not images and fetch is not None:
            for url in partner.reference_banners_urls or []:
                name = url.split("?", 1)[0].rsplit("/", 1)[-1] or "reference.png"
                images.append(UploadedFile(
                    filename=name,
                    content_type=mimetypes.guess_type(name)[0] or "image/png",
                    data=await fetch(url),
                ))
        if not images:
            raise ValidationError("Partner has no reference banners to analyze")

        analysis = await self.style_analyzer.analyze_reference_style(
            images, partner.name, partner.description, partner.regions or []
        )
        return await self.set_style_analysis(partner_id, analysis)

    async def set_style_analysis(self, partner_id: str, analysis: Optional[Dict[str, Any]]) -> Partner:
        partner = await self.get_partner(partner_id)
        partner.reference_style_analysis = analysis
        partner.touch()
        self.session.add(partner)
        await self.session.commit()
        await self.session.refresh(partner)
        logger.info("partner_style_analysis_saved", partner_id=partner_id, cleared=analysis is None)
        return partner

    # =========================================================================
    # CRUD
    # =========================================================================

    async def list_partners(self, status: Optional[str] = None) -> List[Partner]:
        statement = select(Partner).order_by(Partner.created_at.desc())
        if status:
            statement = statement.where(Partner.status == status)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get_partner(self, partner_id: str) -> Partner:
        partner = await self.session.get(Partner, partner_id)
        if partner is None:
            raise NotFoundError("Partner", partner_id)
        return partner

    async def create_partner(
        self,
        data: PartnerCreate,
        files: Optional[PartnerFiles] = None,
    ) -> Tuple[Partner, List[UploadOutcome]]:
        files = files or PartnerFiles()
        assets = await self._upload_assets(files)
        logo_urls = _urls(assets.logo)
        manual_urls = _urls(assets.brand_manual)

        style_analysis = data.reference_style_analysis
        references = [
            file for file, outcome in zip(files.reference_banners, assets.reference_banners)
            if outcome.succeeded
        ]
        if style_analysis is None and references:
            style_analysis = await self._analyze_quietly(references, data.name.strip(), data.description, data.regions)

        partner = Partner(
            name=data.name.strip(),
            regions=list(data.regions),
            partner_url=data.partner_url,
            benefits_description=data.benefits_description,
            description=data.description,
            status=data.status.value,
            reference_style_analysis=style_analysis,
            logo_url=logo_urls[0] if logo_urls else None,
            brand_manual_url=manual_urls[0] if manual_urls else None,
            reference_banners_urls=_urls(assets.reference_banners),
            product_photos_urls=_urls(assets.product_photos),
        )
        self.session.add(partner)
        await self.session.commit()
        await self.session.refresh(partner)

        logger.info(
            "partner_created",
            partner_id=partner.id,
            reference_banners=len(partner.reference_banners_urls),
            product_photos=len(partner.product_photos_urls)
        )
        return partner, assets.failed

    async def update_partner(
        self,
        partner_id: str,
        data: PartnerUpdate,
        files: Optional[PartnerFiles] = None,
    ) -> Tuple[Partner, List[UploadOutcome]]:
        partner = await self.get_partner(partner_id)
        assets = await self._upload_assets(files or PartnerFiles())

        changes = data.model_dump(exclude_unset=True)
        existing_references = changes.pop("existing_reference_banners_urls", None)
        existing_photos = changes.pop("existing_product_photos_urls", None)
        if "status" in changes and changes["status"] is not None:
            changes["status"] = data.status.value
        if "name" in changes and changes["name"] is not None:
            changes["name"] = changes["name"].strip()

        for key, value in changes.items():
            setattr(partner, key, value)

        logo_urls = _urls(assets.logo)
        if logo_urls:
            partner.logo_url = logo_urls[0]
        manual_urls = _urls(assets.brand_manual)
        if manual_urls:
            partner.brand_manual_url = manual_urls[0]

        base_references = existing_references if existing_references is not None else partner.reference_banners_urls
        base_photos = existing_photos if existing_photos is not None else partner.product_photos_urls
        # Assign new lists so the JSON columns are flagged dirty
        partner.reference_banners_urls = list(base_references or []) + _urls(assets.reference_banners)
        partner.product_photos_urls = list(base_photos or []) + _urls(assets.product_photos)
        partner.touch()

        self.session.add(partner)
        await self.session.commit()
        await self.session.refresh(partner)

        logger.info("partner_updated", partner_id=partner.id, fields=sorted(changes))
        return partner, assets.failed

    async def delete_partner(self, partner_id: str) -> None:
        partner = await self.get_partner(partner_id)
        await self.session.execute(delete(Banner).where(Banner.partner_id == partner_id))
        await self.session.delete(partner)
        await self.session.commit()
        logger.info("partner_deleted", partner_id=partner_id)

    # =========================================================================
    # Product Photos
    # =========================================================================

    async def add_product_photo(self, partner_id: str, file: UploadedFile) -> ProductPhoto:
        if not (file.content_type or "").startswith("image/"):
            raise ValidationError("Product photos must be images", details={"content_type": file.content_type})

        partner = await self.get_partner(partner_id)
        outcome = await self._upload_one(0, file, f"{PRODUCT_PHOTOS_FOLDER}/{partner_id}")
        if not outcome.succeeded:
            raise StorageError(f"Failed to upload product photo: {outcome.error}")

        partner.product_photos_urls = list(partner.product_photos_urls or []) + [outcome.url]
        partner.touch()
        self.session.add(partner)
        await self.session.commit()

        index = len(partner.product_photos_urls) - 1
        logger.info("product_photo_added", partner_id=partner_id, path=outcome.path)
        return ProductPhoto(
            id=f"{partner_id}-{index}",
            partner_id=partner_id,
            url=outcome.url,
            filename=outcome.path.rsplit("/", 1)[-1],
        )

    async def list_product_photos(self, partner_id: str) -> List[ProductPhoto]:
        partner = await self.get_partner(partner_id)
        return [
            ProductPhoto(
                id=f"{partner_id}-{index}",
                partner_id=partner_id,
                url=url,
                filename=url.split("?", 1)[0].rsplit("/", 1)[-1] or f"photo-{index + 1}",
            )
            for index, url in enumerate(partner.product_photos_urls or [])
        ]

    async def remove_product_photo(self, partner_id: str, photo_url: str) -> Partner:
        """Drop the URL from the partner; deleting the stored object is best effort."""
        partner = await self.get_partner(partner_id)
        urls = list(partner.product_photos_urls or [])
        if photo_url not in urls:
            raise NotFoundError("Product photo", photo_url)

        partner.product_photos_urls = [u for u in urls if u != photo_url]
        partner.touch()
        self.session.add(partner)
        await self.session.commit()
        await self.session.refresh(partner)

        path = self.storage.path_from_url(photo_url, self.bucket)
        if path:
            try:
                await self.storage.delete(path, self.bucket)
            except StorageError as e:
                logger.warning("product_photo_storage_delete_failed", path=path, error=e.message)

        logger.info("product_photo_removed", partner_id=partner_id)
        return partner
