"""
Rule-Based Fallback Provider

Returns the stock caption used when no AI provider is available or every
provider failed. No external dependencies, works offline.
"""

import logging

from .base import CaptionProvider, ProviderResult, ProviderStatus

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Shared media upload"


class RuleBasedProvider(CaptionProvider):
    """
    Rule-based fallback provider.

    Always available.
    """

    provider_id = "rule_based"

    def __init__(self):
        super().__init__(model="static")

    def detect_availability(self) -> ProviderStatus:
        return ProviderStatus(
            provider_id=self.provider_id,
            available=True,
            models=["static"],
        )

    def execute(self, data: bytes, mime_type: str, timeout: int = 60) -> ProviderResult:
        """Produce the stock caption."""
        return ProviderResult(
            success=True,
            output={"description": DEFAULT_DESCRIPTION, "tags": ["Gallery"]},
            provider_id=self.provider_id,
            model=self.model,
        )
