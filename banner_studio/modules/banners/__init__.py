"""
Banners Module

Banner rows, the grouped history and the enhanced generation workflow.
"""

from banner_studio.modules.banners.models import Banner, BannerImageType

__all__ = ["Banner", "BannerImageType"]
