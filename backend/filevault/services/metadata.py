"""Derive category-specific metadata for a stored file.

Nothing here parses binary containers. Duration is estimated from the
declared size and an assumed bitrate, so it is only approximate (VBR audio,
multi-track video and container overhead all skew it).
"""
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from filevault.services.classifier import Category, is_text_like, is_timed_media

if TYPE_CHECKING:
    from filevault.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

DEFAULT_BITRATE_KBPS = 128

# Checked in order against the declared MIME type
BITRATE_TABLE_KBPS: tuple[tuple[str, int], ...] = (
    ("mp3", 128),
    ("wav", 1411),
    ("flac", 1000),
    ("mp4", 1000),
    ("avi", 1500),
    ("mkv", 2000),
)


@dataclass
class ExtractedMetadata:
    duration: int | None = None
    character_count: int | None = None


@dataclass
class TextStats:
    character_count: int
    word_count: int
    line_count: int


def text_stats(content: str) -> TextStats:
    return TextStats(
        character_count=len(content),
        word_count=len(content.split()),
        line_count=content.count("\n") + 1,
    )


def decode_text(data: bytes) -> str:
    """UTF-8 decode, substituting undecodable bytes instead of failing."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Content is not valid UTF-8, counting with replacement characters")
        return data.decode("utf-8", errors="replace")


def bitrate_for(mime_type: str | None) -> int:
    mime = (mime_type or "").lower()
    for marker, kbps in BITRATE_TABLE_KBPS:
        if marker in mime:
            return kbps
    return DEFAULT_BITRATE_KBPS


def estimate_duration(size_bytes: int, mime_type: str | None) -> int:
    """Seconds of playback for ``size_bytes`` at the assumed bitrate, at least 1."""
    bitrate = bitrate_for(mime_type)
    seconds = (max(size_bytes, 0) * 8) / (bitrate * 1000)
    # Round half up, not to even
    estimated = math.floor(seconds + 0.5)
    return estimated if estimated > 0 else 1


async def _character_count(storage: "FileStorageService", stored_name: str) -> int:
    try:
        data = await storage.read_bytes(stored_name)
    except Exception as e:
        logger.warning(f"Could not read {stored_name} for character count: {e}")
        return 0
    stats = text_stats(decode_text(data))
    logger.info(
        f"Text metadata for {stored_name}: {stats.character_count} chars, "
        f"{stats.word_count} words, {stats.line_count} lines"
    )
    return stats.character_count


async def extract_metadata(
    category: Category,
    storage: "FileStorageService",
    stored_name: str,
    declared_size: int,
    mime_type: str | None = None,
    filename: str | None = None,
) -> ExtractedMetadata:
    """Return duration or character count for the file, never raising."""
    meta = ExtractedMetadata()
    try:
        if category is Category.TEXT or is_text_like(mime_type, filename):
            meta.character_count = await _character_count(storage, stored_name)
        elif is_timed_media(category, mime_type):
            meta.duration = estimate_duration(declared_size, mime_type)
            logger.info(
                f"Estimated {meta.duration}s for {stored_name} "
                f"({declared_size} bytes at {bitrate_for(mime_type)} kbps)"
            )
    except Exception:
        logger.warning(f"Metadata extraction failed for {stored_name}", exc_info=True)
        return ExtractedMetadata()
    return meta
