"""
Media Detection Utility

Works out the MIME type and media kind of a file about to be uploaded.

Detection strategy (in order):
1. Explicit MIME type supplied by the caller
2. File extension lookup (known tables first, then the mimetypes registry)
3. Fallback to application/octet-stream
"""

import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class MediaType(str, Enum):
    """Type of media content."""
    IMAGE = "image"
    VIDEO = "video"
    UNKNOWN = "unknown"


DEFAULT_MIME_TYPE = "application/octet-stream"

# Extension -> MIME for formats the platform registry often lacks
EXTENSION_MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.gif': 'image/gif',
    '.heic': 'image/heic',
    '.heif': 'image/heif',
    '.avif': 'image/avif',
    '.mp4': 'video/mp4',
    '.m4v': 'video/mp4',
    '.mov': 'video/quicktime',
    '.webm': 'video/webm',
    '.mkv': 'video/x-matroska',
    '.avi': 'video/x-msvideo',
}


@dataclass
class MediaInfo:
    """Information about a local media file."""
    type: MediaType
    mime_type: str
    detection_method: str

    @property
    def is_video(self) -> bool:
        return self.type == MediaType.VIDEO

    @property
    def is_image(self) -> bool:
        return self.type == MediaType.IMAGE


def get_extension(name: Union[str, Path]) -> Optional[str]:
    """Lowercase extension with dot (e.g. '.mp4') or None."""
    suffix = Path(str(name)).suffix.lower()
    return suffix or None


def media_type_for_mime(mime_type: Optional[str]) -> MediaType:
    """Classify a MIME type."""
    if not mime_type:
        return MediaType.UNKNOWN
    mime_type = mime_type.split(';')[0].strip().lower()
    if mime_type.startswith('video/'):
        return MediaType.VIDEO
    if mime_type.startswith('image/'):
        return MediaType.IMAGE
    return MediaType.UNKNOWN


def guess_mime_type(name: Union[str, Path]) -> Optional[str]:
    """Guess a MIME type from a file name."""
    ext = get_extension(name)
    if ext in EXTENSION_MIME_TYPES:
        return EXTENSION_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(str(name))
    return guessed


def detect_media(name: Union[str, Path], mime_type: Optional[str] = None) -> MediaInfo:
    """
    Detect MIME type and media kind for a file.

    Args:
        name: File name or path (only the extension is used)
        mime_type: MIME type reported by the caller, if any

    Returns:
        MediaInfo with detected type and MIME
    """
    if mime_type:
        mime_type = mime_type.split(';')[0].strip().lower()
        return MediaInfo(
            type=media_type_for_mime(mime_type),
            mime_type=mime_type,
            detection_method="explicit",
        )

    guessed = guess_mime_type(name)
    if guessed:
        return MediaInfo(
            type=media_type_for_mime(guessed),
            mime_type=guessed,
            detection_method="extension",
        )

    logger.debug(f"Could not detect MIME type for {name}")
    return MediaInfo(
        type=MediaType.UNKNOWN,
        mime_type=DEFAULT_MIME_TYPE,
        detection_method="fallback",
    )
