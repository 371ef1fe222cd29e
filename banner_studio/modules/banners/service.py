"""
Banner Service

Saves generated banners (copying their images into owned storage through
the upload resolver), lists them as a grouped history, and deletes a
banner together with the rows saved alongside it.

Bucket layout (banners):
    banner-desktop/{partner_id}/{ts}-{rand}.png
    banner-mobile/{partner_id}/{ts}-{rand}.png
    banner/{partner_id}/{ts}-{rand}.png
    enhanced-banner/{partner_id}/{ts}-{rand}.png
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from banner_studio.core.config import settings
from banner_studio.core.exceptions import NotFoundError, StorageError
from banner_studio.core.logging import get_logger
from banner_studio.core.storage import IStorage, generate_object_path
from banner_studio.engines.acquisition.resolver import UploadFallbackResolver
from banner_studio.modules.banners.models import (
    Banner,
    BannerCreate,
    BannerGroup,
    BannerImageType,
    BannerPairCreate,
)
from banner_studio.modules.partners.models import Partner, utc_now

logger = get_logger(__name__)

# Rows of one save are written within this window of each other
RELATED_WINDOW = timedelta(seconds=60)

DESKTOP_FOLDER = "banner-desktop"
MOBILE_FOLDER = "banner-mobile"
BANNER_FOLDER = "banner"


def banner_object_path(folder: str, partner_id: str) -> str:
    """'{folder}/{partner_id}/{epoch_ms}-{random}.png'"""
    return generate_object_path(f"{folder}/{partner_id}", ".png")


def default_banner_title(partner_name: str, when: Optional[datetime] = None) -> str:
    return f"Banner - {partner_name} - {(when or utc_now()).strftime('%Y-%m-%d')}"


def group_banners(rows: List[Tuple[Banner, Optional[str]]]) -> List[BannerGroup]:
    """
    Fold (banner, partner_name) rows into history entries, newest first.

    Legacy rows are grouped by partner and creation minute.
    """
    groups: List[BannerGroup] = []
    legacy: Dict[Tuple[str, str], BannerGroup] = {}

    for banner, partner_name in rows:
        if banner.is_enhanced:
            groups.append(BannerGroup(
                id=banner.id,
                partner_id=banner.partner_id,
                partner_name=partner_name,
                banner_title=banner.banner_title,
                prompt_used=banner.prompt_used,
                enhanced=True,
                image_url=banner.image_url,
                desktop_url=banner.image_url if banner.image_type == BannerImageType.DESKTOP.value else None,
                mobile_url=banner.image_url if banner.image_type == BannerImageType.MOBILE.value else None,
                main_text=banner.main_text,
                description_text=banner.description_text,
                cta_text=banner.cta_text,
                discount_percentage=banner.discount_percentage,
                product_description=banner.product_description,
                banner_ids=[banner.id],
                created_at=banner.created_at,
            ))
            continue

        key = (banner.partner_id, banner.created_at.strftime("%Y-%m-%dT%H:%M"))
        group = legacy.get(key)
        if group is None:
            group = BannerGroup(
                id=banner.id,
                partner_id=banner.partner_id,
                partner_name=partner_name,
                banner_title=banner.banner_title,
                prompt_used=banner.prompt_used,
                enhanced=False,
                created_at=banner.created_at,
            )
            legacy[key] = group
            groups.append(group)

        group.banner_ids.append(banner.id)
        group.banner_title = group.banner_title or banner.banner_title
        group.prompt_used = group.prompt_used or banner.prompt_used
        if banner.image_type == BannerImageType.MOBILE.value:
            group.mobile_url = banner.image_url
        else:
            group.desktop_url = banner.image_url
            group.id = banner.id
        group.image_url = group.desktop_url or group.mobile_url
        group.created_at = max(group.created_at, banner.created_at)

    groups.sort(key=lambda g: g.created_at, reverse=True)
    return groups


class BannerService:
    """Banner persistence on top of the upload resolver."""

    def __init__(
        self,
        session: AsyncSession,
        storage: IStorage,
        resolver: UploadFallbackResolver,
        bucket: Optional[str] = None,
    ):
        self.session = session
        self.storage = storage
        self.resolver = resolver
        self.bucket = bucket or settings.BANNERS_BUCKET

    async def get_partner(self, partner_id: str) -> Partner:
        partner = await self.session.get(Partner, partner_id)
        if partner is None:
            raise NotFoundError("Partner", partner_id)
        return partner

    # =========================================================================
    # Create
    # =========================================================================

    async def save_banner_pair(self, data: BannerPairCreate) -> List[Banner]:
        """Store desktop and mobile images concurrently and insert both rows."""
        partner = await self.get_partner(data.partner_id)
        desktop, mobile = await asyncio.gather(
            self.resolver.resolve(data.desktop_url, banner_object_path(DESKTOP_FOLDER, partner.id), self.bucket),
            self.resolver.resolve(data.mobile_url, banner_object_path(MOBILE_FOLDER, partner.id), self.bucket),
        )

        title = data.banner_title or default_banner_title(partner.name)
        banners = [
            Banner(
                partner_id=partner.id,
                image_url=desktop.url,
                image_type=BannerImageType.DESKTOP.value,
                prompt_used=data.prompt,
                banner_title=title,
            ),
            Banner(
                partner_id=partner.id,
                image_url=mobile.url,
                image_type=BannerImageType.MOBILE.value,
                prompt_used=data.prompt,
                banner_title=title,
            ),
        ]
        self.session.add_all(banners)
        await self.session.commit()
        for banner in banners:
            await self.session.refresh(banner)

        logger.info(
            "banner_pair_saved",
            partner_id=partner.id,
            desktop_stored=desktop.stored,
            mobile_stored=mobile.stored
        )
        return banners

    async def save_banner(self, data: BannerCreate, filename: Optional[str] = None) -> Banner:
        partner = await self.get_partner(data.partner_id)

        image_url = data.image_url
        if data.store_image:
            filename = filename or banner_object_path(BANNER_FOLDER, partner.id)
            resolved = await self.resolver.resolve(data.image_url, filename, self.bucket)
            image_url = resolved.url

        banner = Banner(
            partner_id=partner.id,
            image_url=image_url,
            image_type=data.image_type.value,
            prompt_used=data.prompt_used,
            banner_title=data.banner_title or default_banner_title(partner.name),
            product_description=data.product_description,
            main_text=data.main_text,
            description_text=data.description_text,
            cta_text=data.cta_text,
            discount_percentage=data.discount_percentage,
        )
        self.session.add(banner)
        await self.session.commit()
        await self.session.refresh(banner)

        logger.info("banner_saved", banner_id=banner.id, partner_id=partner.id, enhanced=banner.is_enhanced)
        return banner

    # =========================================================================
    # Read
    # =========================================================================

    async def list_banners(self, partner_id: Optional[str] = None) -> List[BannerGroup]:
        statement = (
            select(Banner, Partner.name)
            .join(Partner, Partner.id == Banner.partner_id, isouter=True)
            .order_by(Banner.created_at.desc())
        )
        if partner_id:
            statement = statement.where(Banner.partner_id == partner_id)
        result = await self.session.execute(statement)
        return group_banners([(banner, name) for banner, name in result.all()])

    async def get_banner(self, banner_id: str) -> Tuple[Banner, Optional[str]]:
        result = await self.session.execute(
            select(Banner, Partner.name)
            .join(Partner, Partner.id == Banner.partner_id, isouter=True)
            .where(Banner.id == banner_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Banner", banner_id)
        return row[0], row[1]

    async def count_by_partner(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(Banner.partner_id, func.count(Banner.id)).group_by(Banner.partner_id)
        )
        return {partner_id: count for partner_id, count in result.all()}

    async def recent(self, limit: int = 10) -> List[Banner]:
        result = await self.session.execute(
            select(Banner).order_by(Banner.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_banner(self, banner_id: str) -> Tuple[List[str], int]:
        """
        Delete a banner and every banner of the same partner created within
        60 seconds of it, plus their stored images.

        Returns (deleted banner ids, number of storage objects removed).
        """
        banner, _ = await self.get_banner(banner_id)

        result = await self.session.execute(
            select(Banner).where(
                Banner.partner_id == banner.partner_id,
                Banner.created_at >= banner.created_at - RELATED_WINDOW,
                Banner.created_at <= banner.created_at + RELATED_WINDOW,
            )
        )
        related = list(result.scalars().all())

        removed_objects = 0
        for row in related:
            path = self.storage.path_from_url(row.image_url, self.bucket)
            if not path:
                continue
            try:
                if await self.storage.delete(path, self.bucket):
                    removed_objects += 1
            except StorageError as e:
                logger.warning("banner_storage_delete_failed", banner_id=row.id, path=path, error=e.message)

        for row in related:
            await self.session.delete(row)
        await self.session.commit()

        deleted_ids = [row.id for row in related]
        logger.info("banners_deleted", banner_id=banner_id, deleted=len(deleted_ids), objects=removed_objects)
        return deleted_ids, removed_objects
