"""
FamilyVault AI Module

Captions uploaded images with a provider fallback chain.
"""

from .providers import CaptionProvider, GeminiProvider, ProviderResult, RuleBasedProvider
from .service import SUPPORTED_IMAGE_MIMES, Caption, CaptionService

__all__ = [
    "Caption",
    "CaptionProvider",
    "CaptionService",
    "GeminiProvider",
    "ProviderResult",
    "RuleBasedProvider",
    "SUPPORTED_IMAGE_MIMES",
]
