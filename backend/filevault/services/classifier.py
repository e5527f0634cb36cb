"""Map a declared content type and filename to a file category.

classify() is total: anything unrecognised is ``other``, never an error.
"""
from enum import Enum
from pathlib import Path


class Category(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    ARCHIVE = "archive"
    PDF = "pdf"
    OTHER = "other"


MIME_ALLOW_LISTS: dict[Category, frozenset[str]] = {
    Category.IMAGE: frozenset({
        "image/jpeg", "image/jpg", "image/png", "image/gif", "image/bmp", "image/webp",
        "image/svg+xml", "image/tiff",
    }),
    Category.VIDEO: frozenset({
        "video/mp4", "video/avi", "video/mkv", "video/mov", "video/wmv", "video/flv",
        "video/quicktime", "video/webm", "video/x-matroska", "video/x-msvideo",
    }),
    Category.AUDIO: frozenset({
        "audio/mp3", "audio/mpeg", "audio/wav", "audio/x-wav", "audio/flac",
        "audio/aac", "audio/ogg", "audio/webm",
    }),
    Category.TEXT: frozenset({
        "text/plain", "text/html", "text/css", "text/javascript", "text/markdown",
        "text/csv", "application/json", "application/xml", "text/xml",
    }),
    Category.PDF: frozenset({"application/pdf"}),
    Category.DOCUMENT: frozenset({
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/rtf",
        "application/vnd.oasis.opendocument.text",
    }),
    Category.SPREADSHEET: frozenset({
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.oasis.opendocument.spreadsheet",
    }),
    Category.PRESENTATION: frozenset({
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.oasis.opendocument.presentation",
    }),
    Category.ARCHIVE: frozenset({
        "application/zip", "application/rar", "application/x-rar-compressed",
        "application/x-7z-compressed", "application/gzip", "application/x-tar",
    }),
}

# Extension fallback only applies to text-like files
TEXT_EXTENSIONS = frozenset({".txt", ".md", ".json", ".xml", ".csv"})

TEXT_MIME_EXTRAS = frozenset({"application/json", "application/xml"})

# Older records carried plural tags
_LEGACY_CATEGORY_NAMES = {
    "images": Category.IMAGE,
    "videos": Category.VIDEO,
    "audios": Category.AUDIO,
    "documents": Category.DOCUMENT,
    "spreadsheets": Category.SPREADSHEET,
    "presentations": Category.PRESENTATION,
    "archives": Category.ARCHIVE,
    "pdfs": Category.PDF,
}


def _mime(mime_type: str | None) -> str:
    # Drop parameters such as "; charset=utf-8"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def _extension(filename: str | None) -> str:
    return Path(filename or "").suffix.lower()


def classify(mime_type: str | None, filename: str | None = None) -> Category:
    mime = _mime(mime_type)
    for category, allowed in MIME_ALLOW_LISTS.items():
        if mime in allowed:
            return category
    if _extension(filename) in TEXT_EXTENSIONS:
        return Category.TEXT
    return Category.OTHER


def is_text_like(mime_type: str | None, filename: str | None = None) -> bool:
    """True for anything whose content should be decoded and counted."""
    mime = _mime(mime_type)
    return (
        classify(mime_type, filename) is Category.TEXT
        or mime.startswith("text/")
        or mime in TEXT_MIME_EXTRAS
        or _extension(filename) in TEXT_EXTENSIONS
    )


def is_timed_media(category: Category, mime_type: str | None) -> bool:
    mime = _mime(mime_type)
    return (
        category in (Category.AUDIO, Category.VIDEO)
        or mime.startswith("audio/")
        or mime.startswith("video/")
    )


def normalize_category(value: str | None) -> Category:
    """Coerce a stored category tag into the closed set."""
    key = (value or "").strip().lower()
    if key in _LEGACY_CATEGORY_NAMES:
        return _LEGACY_CATEGORY_NAMES[key]
    try:
        return Category(key)
    except ValueError:
        return Category.OTHER
