"""Creator Safety Vetting - Media Type Router
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Decides whether an untyped media reference is a video or an image.
Pure string and byte inspection: no I/O, never blocks.
"""

from typing import Optional
from urllib.parse import parse_qs, urlparse

from vetting_models import MEDIA_KINDS, MediaItem

UNKNOWN = "unknown"

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".mkv", ".m4v", ".flv", ".wmv", ".3gp")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff", ".svg")

VIDEO_PATH_HINTS = ("/video/", "/videos/")
IMAGE_PATH_HINTS = ("/image/", "/images/", "/photo/", "/photos/")

# Query parameters that sometimes carry the format (?format=mp4, ?type=image)
FORMAT_QUERY_PARAMS = ("format", "type", "mime", "ext")
VIDEO_QUERY_HINTS = ("video", "mp4", "mov", "webm")
IMAGE_QUERY_HINTS = ("image", "jpg", "jpeg", "png", "webp", "gif")

MIN_SIGNATURE_LENGTH = 12  # Bytes needed to check every signature below


def classify_url(locator: Optional[str]) -> str:
    """Classify by extension, then path segment, then query parameters."""
    if not locator:
        return UNKNOWN

    parsed = urlparse(locator.strip())
    path = parsed.path.lower()

    if path.endswith(VIDEO_EXTENSIONS):
        return "video"
    if path.endswith(IMAGE_EXTENSIONS):
        return "image"

    if any(hint in path for hint in VIDEO_PATH_HINTS):
        return "video"
    if any(hint in path for hint in IMAGE_PATH_HINTS):
        return "image"

    query = parse_qs(parsed.query)
    for param in FORMAT_QUERY_PARAMS:
        for value in query.get(param, []):
            value = value.lower()
            if any(hint in value for hint in VIDEO_QUERY_HINTS):
                return "video"
            if any(hint in value for hint in IMAGE_QUERY_HINTS):
                return "image"

    return UNKNOWN


def classify_bytes(data: Optional[bytes]) -> str:
    """Classify by leading magic bytes."""
    if not data or len(data) < MIN_SIGNATURE_LENGTH:
        return UNKNOWN

    # ISO base media (MP4, MOV, M4V, 3GP): 'ftyp' box at offset 4
    if data[4:8] == b"ftyp":
        return "video"
    # Matroska / WebM (EBML header)
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return "video"
    if data[:4] == b"RIFF" and data[8:11] == b"AVI":
        return "video"

    if data[:3] == b"\xff\xd8\xff":
        return "image"   # JPEG
    if data[:4] == b"\x89PNG":
        return "image"
    if data[:3] == b"GIF":
        return "image"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image"

    return UNKNOWN


def classify(locator: Optional[str] = None, data: Optional[bytes] = None) -> str:
    """Bytes win over the URL when both are given."""
    kind = classify_bytes(data)
    if kind != UNKNOWN:
        return kind
    return classify_url(locator)


def detect_media_type(
    locator: Optional[str] = None,
    data: Optional[bytes] = None,
    type_hint: Optional[str] = None,
    default: str = "image",
) -> str:
    """Resolve a concrete kind: explicit hint, then bytes, then URL, then default."""
    if type_hint in MEDIA_KINDS:
        return type_hint
    kind = classify(locator, data)
    return default if kind == UNKNOWN else kind


def build_media_item(
    item_id: str,
    locator: str,
    raw_bytes: Optional[bytes] = None,
    content_type: Optional[str] = None,
    type_hint: Optional[str] = None,
    default: str = "image",
) -> MediaItem:
    """Create a MediaItem with its kind resolved."""
    if type_hint is None and content_type:
        major = content_type.split("/", 1)[0].lower()
        if major in MEDIA_KINDS:
            type_hint = major
    kind = detect_media_type(locator, raw_bytes, type_hint, default)
    return MediaItem(
        id=item_id,
        kind=kind,
        locator=locator,
        raw_bytes=raw_bytes,
        content_type=content_type,
    )
