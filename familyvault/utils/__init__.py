"""
FamilyVault Utils Package

Utility functions and helpers for the FamilyVault client.
"""

from .media_detection import (
    MediaType,
    MediaInfo,
    detect_media,
    guess_mime_type,
    media_type_for_mime,
    get_extension,
)

__all__ = [
    'MediaType',
    'MediaInfo',
    'detect_media',
    'guess_mime_type',
    'media_type_for_mime',
    'get_extension',
]
