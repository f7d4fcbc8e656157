"""
Gemini Provider

Google Gemini vision captions via the Generative Language REST API.
Recommended model: gemini-3-flash-preview (fast, cheap, good enough for
one-line captions).
"""

import base64
import json
import logging
from typing import Optional

import requests

from .base import CAPTION_PROMPT, CaptionProvider, ProviderResult, ProviderStatus

logger = logging.getLogger(__name__)


class GeminiProvider(CaptionProvider):
    """
    Gemini REST provider.

    Sends the image inline (base64) and asks for a JSON object
    {"description": str, "tags": [str]} via a response schema.
    """

    provider_id = "gemini"

    KNOWN_MODELS = [
        "gemini-3-flash-preview",
        "gemini-3-pro-preview",
        "gemini-2.5-flash",
        "gemini-2.5-pro",
    ]

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-3-flash-preview",
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Generative Language API key
            model: Model to use (default: gemini-3-flash-preview)
            base_url: API root override
            session: Optional requests session (tests inject a mock)
        """
        super().__init__(model=model)
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.session = session or requests.Session()

    def detect_availability(self) -> ProviderStatus:
        """Gemini is usable whenever an API key is configured."""
        if not self.api_key:
            return ProviderStatus(
                provider_id=self.provider_id,
                available=False,
                error="No Gemini API key configured (set GEMINI_API_KEY)",
            )
        return ProviderStatus(
            provider_id=self.provider_id,
            available=True,
            models=self.KNOWN_MODELS,
        )

    def _request_body(self, data: bytes, mime_type: str) -> dict:
        return {
            "contents": [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(data).decode("ascii"),
                            }
                        },
                        {"text": CAPTION_PROMPT},
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": {
                    "type": "OBJECT",
                    "properties": {
                        "description": {
                            "type": "STRING",
                            "description": "Brief description of the image content.",
                        },
                        "tags": {
                            "type": "ARRAY",
                            "items": {"type": "STRING"},
                            "description": "Three relevant one-word tags.",
                        },
                    },
                    "required": ["description", "tags"],
                    "propertyOrdering": ["description", "tags"],
                },
            },
        }

    @staticmethod
    def _response_text(payload: dict) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()

    def execute(self, data: bytes, mime_type: str, timeout: int = 60) -> ProviderResult:
        """
        Caption an image with Gemini.

        Returns:
            ProviderResult with parsed JSON output
        """

        def _execute():
            logger.info(f"[caption] Provider: gemini ({self.model}), {len(data)} bytes")

            try:
                response = self.session.post(
                    f"{self.base_url}/models/{self.model}:generateContent",
                    params={"key": self.api_key},
                    json=self._request_body(data, mime_type),
                    timeout=timeout,
                )
            except requests.exceptions.Timeout:
                logger.warning(f"[caption] WARNING: Provider gemini failed: timeout after {timeout}s")
                return ProviderResult(
                    success=False,
                    error=f"Timeout after {timeout}s",
                    provider_id=self.provider_id,
                    model=self.model,
                )

            if not response.ok:
                return ProviderResult(
                    success=False,
                    error=f"Gemini returned error: HTTP {response.status_code}",
                    raw_response=response.text,
                    provider_id=self.provider_id,
                    model=self.model,
                )

            raw_response = self._response_text(response.json())
            if not raw_response:
                return ProviderResult(
                    success=False,
                    error="Empty response from Gemini",
                    provider_id=self.provider_id,
                    model=self.model,
                )

            try:
                output = self.parse_json_response(raw_response)
            except json.JSONDecodeError as e:
                logger.warning(f"[caption] JSON parse error: {e}")
                return ProviderResult(
                    success=False,
                    error=f"Invalid JSON response: {e}",
                    raw_response=raw_response,
                    provider_id=self.provider_id,
                    model=self.model,
                )

            return ProviderResult(
                success=True,
                output=output,
                raw_response=raw_response,
                provider_id=self.provider_id,
                model=self.model,
            )

        return self._timed_execute(_execute)
