"""
Caption Service

Turns an uploaded image into a short description and a few gallery tags.
Handles provider selection and the fallback chain; never raises, the
rule-based provider always produces something usable.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config.settings import CaptionSettings, get_settings
from .providers import CaptionProvider, GeminiProvider, RuleBasedProvider
from .providers.rule_based import DEFAULT_DESCRIPTION

logger = logging.getLogger(__name__)


SUPPORTED_IMAGE_MIMES = frozenset({
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/heic",
    "image/heif",
})


@dataclass
class Caption:
    """Description and tags attached to a catalog entry."""

    description: str
    tags: List[str] = field(default_factory=list)
    provider_id: str = ""


class CaptionService:
    """
    Caption orchestrator.

    Provider chain: Gemini (when an API key is configured and captioning is
    enabled), then the rule-based fallback.
    """

    def __init__(
        self,
        settings: Optional[CaptionSettings] = None,
        providers: Optional[List[CaptionProvider]] = None,
    ):
        self.settings = settings or get_settings().caption
        self.fallback = RuleBasedProvider()
        self.providers = providers if providers is not None else self._default_chain()

    def _default_chain(self) -> List[CaptionProvider]:
        if not self.settings.enabled or not self.settings.api_key:
            return []
        return [
            GeminiProvider(
                api_key=self.settings.api_key,
                model=self.settings.model,
                base_url=self.settings.base_url,
            )
        ]

    def describe(self, data: bytes, mime_type: str) -> Caption:
        """
        Caption an image.

        Args:
            data: Raw image bytes
            mime_type: MIME type of the upload

        Returns:
            Caption; falls back to the stock caption on any failure
        """
        if mime_type not in SUPPORTED_IMAGE_MIMES:
            logger.info(f"[caption] Unsupported MIME type {mime_type}, using stock caption")
            return Caption(DEFAULT_DESCRIPTION, ["Gallery", "File"], self.fallback.provider_id)

        chain = [p.provider_id for p in self.providers] + [self.fallback.provider_id]
        logger.debug(f"[caption] Provider chain: {' -> '.join(chain)}")

        for provider in self.providers:
            status = provider.detect_availability()
            if not status.available:
                logger.info(f"[caption] Skipping {provider.provider_id}: {status.error}")
                continue

            result = provider.execute(data, mime_type, timeout=self.settings.timeout)
            caption = self._to_caption(result.output, result.provider_id) if result.success else None
            if caption is not None:
                logger.info(
                    f"[caption] {provider.provider_id} succeeded in {result.execution_time_ms}ms"
                )
                return caption

            logger.warning(
                f"[caption] Fallback: {provider.provider_id} failed "
                f"(reason: {result.error or 'malformed output'}), trying next..."
            )

        result = self.fallback.execute(data, mime_type)
        return self._to_caption(result.output, result.provider_id)

    @staticmethod
    def _to_caption(output, provider_id: str) -> Optional[Caption]:
        if not isinstance(output, dict):
            return None
        description = output.get("description")
        if not isinstance(description, str) or not description.strip():
            return None
        tags = output.get("tags") or []
        if not isinstance(tags, list):
            tags = []
        return Caption(
            description=description.strip(),
            tags=[str(t) for t in tags if str(t).strip()],
            provider_id=provider_id,
        )
