"""
Caption Provider Base

Interface shared by caption providers plus the helpers they all need:
pulling a JSON object out of free-form model text and turning unexpected
exceptions into failed results.
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


CAPTION_PROMPT = (
    "Describe this image briefly (max 15 words) and provide 3 relevant "
    "one-word tags for a photo gallery."
)

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?```", re.DOTALL)


@dataclass
class ProviderResult:
    """Outcome of one captioning attempt."""

    success: bool
    output: Optional[Dict[str, Any]] = None
    raw_response: Optional[str] = None
    error: Optional[str] = None
    provider_id: str = ""
    model: str = ""
    execution_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProviderStatus:
    """Whether a provider can be used right now."""

    provider_id: str
    available: bool
    models: List[str] = field(default_factory=list)
    error: Optional[str] = None


class CaptionProvider(ABC):
    """Something that can describe an image as {"description", "tags"}."""

    provider_id: str = ""

    def __init__(self, model: str = ""):
        self.model = model

    @abstractmethod
    def detect_availability(self) -> ProviderStatus:
        """Report whether credentials/configuration allow this provider to run."""

    @abstractmethod
    def execute(self, data: bytes, mime_type: str, timeout: int = 60) -> ProviderResult:
        """
        Caption an image.

        Args:
            data: Raw image bytes
            mime_type: MIME type of the image
            timeout: Seconds before the request is abandoned

        Returns:
            ProviderResult whose output has "description" and "tags"
        """

    def parse_json_response(self, response: str) -> Dict[str, Any]:
        """
        Parse the JSON object in a model reply.

        Accepts a bare JSON document, a markdown-fenced block, or an object
        embedded in surrounding prose.

        Raises:
            json.JSONDecodeError: If none of the candidates parse
        """
        text = response.strip()
        for candidate in self._json_candidates(text):
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue

        preview = text if len(text) <= 200 else text[:200] + "..."
        raise json.JSONDecodeError(f"No valid JSON found in response. Preview: {preview}", text, 0)

    def _json_candidates(self, text: str) -> Iterator[str]:
        yield text
        for block in _FENCED_BLOCK.findall(text):
            yield block.strip()
        start = text.find("{")
        if start != -1:
            embedded = self._balanced_object(text, start)
            if embedded is not None:
                yield embedded

    @staticmethod
    def _balanced_object(text: str, start: int) -> Optional[str]:
        """Slice of text holding the {...} that opens at start (string-aware)."""
        depth = 0
        quoted = False
        escaped = False
        for pos in range(start, len(text)):
            char = text[pos]
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                quoted = not quoted
            elif quoted:
                continue
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        return None

    def _timed_execute(self, execute_fn: Callable[[], ProviderResult]) -> ProviderResult:
        """Run execute_fn, stamping elapsed time; exceptions become failed results."""
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            result = execute_fn()
        except Exception as e:
            logger.error(f"[caption] Provider {self.provider_id} error: {e}")
            return ProviderResult(
                success=False,
                error=str(e),
                provider_id=self.provider_id,
                model=self.model,
                execution_time_ms=elapsed_ms(),
            )
        result.execution_time_ms = elapsed_ms()
        return result
