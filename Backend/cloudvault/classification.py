"""Media-type classification and upload validation rules.

The listing filter (`category_clause`) and the admin aggregation (`classify`)
are both derived from the rules below so UI filters and totals agree.
"""
from sqlalchemy import String, and_, func, not_, or_

IMAGE = "image"
VIDEO = "video"
AUDIO = "audio"
DOCUMENT = "document"
OTHER = "other"

CATEGORIES = (IMAGE, VIDEO, AUDIO, DOCUMENT, OTHER)

_PREFIX_CATEGORIES = (
    ("image/", IMAGE),
    ("video/", VIDEO),
    ("audio/", AUDIO),
)

_DOCUMENT_EXACT = ("application/pdf",)
_DOCUMENT_SUBSTRINGS = ("document", "word")
_DOCUMENT_PREFIXES = ("text/",)

ALLOWED_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "audio/mp3",
    "audio/wav",
    "audio/mpeg",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
})

DEFAULT_MAX_MEGABYTES = 50


def _is_document(media_type: str) -> bool:
    return (
        media_type in _DOCUMENT_EXACT
        or any(s in media_type for s in _DOCUMENT_SUBSTRINGS)
        or media_type.startswith(_DOCUMENT_PREFIXES)
    )


def classify(media_type: str | None) -> str:
    media_type = (media_type or "").lower()
    for prefix, category in _PREFIX_CATEGORIES:
        if media_type.startswith(prefix):
            return category
    if _is_document(media_type):
        return DOCUMENT
    return OTHER


def is_allowed_type(media_type: str | None) -> bool:
    return (media_type or "").lower() in ALLOWED_TYPES


def is_within_size_limit(byte_size: int, max_megabytes: int = DEFAULT_MAX_MEGABYTES) -> bool:
    return byte_size <= max_megabytes * 1024 * 1024


def is_previewable(media_type: str | None) -> bool:
    category = classify(media_type)
    return category in (IMAGE, VIDEO, AUDIO) or "pdf" in (media_type or "").lower()


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def category_clause(column, category: str):
    """SQL predicate selecting rows whose media type classifies as `category`."""
    lowered = func.lower(column, type_=String)
    prefix_matches = {
        cat: lowered.like(f"{prefix}%") for prefix, cat in _PREFIX_CATEGORIES
    }
    document = or_(
        lowered.in_(_DOCUMENT_EXACT),
        *[lowered.like(f"%{s}%") for s in _DOCUMENT_SUBSTRINGS],
        *[lowered.like(f"{p}%") for p in _DOCUMENT_PREFIXES],
    )
    any_prefix = or_(*prefix_matches.values())

    if category in prefix_matches:
        return prefix_matches[category]
    if category == DOCUMENT:
        return and_(not_(any_prefix), document)
    if category == OTHER:
        return and_(not_(any_prefix), not_(document))
    raise ValueError(f"Unknown category: {category}")
