"""
Caption Providers Module

- GeminiProvider: Google Gemini vision via REST
- RuleBasedProvider: Stock caption fallback
"""

from .base import CaptionProvider, ProviderResult, ProviderStatus
from .gemini import GeminiProvider
from .rule_based import RuleBasedProvider

__all__ = [
    "CaptionProvider",
    "ProviderResult",
    "ProviderStatus",
    "GeminiProvider",
    "RuleBasedProvider",
]
