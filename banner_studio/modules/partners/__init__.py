"""
Partners Module

Partner profiles and their stored brand assets.
"""

from banner_studio.modules.partners.models import Partner, PartnerStatus

__all__ = ["Partner", "PartnerStatus"]
