"""
Services module for PropertyWebBuilder
"""

from services.ai_service import AIService
from services.contact_service import ContactService
from services.fair_housing import FairHousingComplianceChecker
from services.ntfy_service import NtfyService, PlatformNtfyService
from services.social_post_generator import SocialPostGenerator
from services.subdomain_service import SubdomainGenerator, SubdomainPoolService
from services.subscription_service import SubscriptionService
from services.tenant_service import TenantService

__all__ = [
    "AIService",
    "ContactService",
    "FairHousingComplianceChecker",
    "NtfyService",
    "PlatformNtfyService",
    "SocialPostGenerator",
    "SubdomainGenerator",
    "SubdomainPoolService",
    "SubscriptionService",
    "TenantService",
]
