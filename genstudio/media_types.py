"""MIME lookups by file extension and data-URI header."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

IMAGE_MIME_BY_EXT = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

VIDEO_MIME_BY_EXT = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
}

DEFAULT_MIME = {"image": "image/jpeg", "video": "video/mp4"}

_EXT_BY_MIME = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=.-]+)*;base64,", re.IGNORECASE)


def extension_of(ref: str) -> str:
    path = urlparse(ref).path if "://" in ref else ref
    return PurePosixPath(path).suffix.lower()


def mime_from_extension(ref: str, kind: str = "image") -> str | None:
    table = VIDEO_MIME_BY_EXT if kind == "video" else IMAGE_MIME_BY_EXT
    return table.get(extension_of(ref))


def detect_mime(ref: str, content_type: str | None = None, kind: str = "image") -> str:
    """Content-type header if it matches ``kind``, else extension, else the safe default."""
    if content_type:
        mime = content_type.split(";")[0].strip().lower()
        if mime.startswith(f"{kind}/"):
            return mime
    return mime_from_extension(ref, kind) or DEFAULT_MIME[kind]


def extension_for_mime(mime: str, default_mime: str = "image/jpeg") -> str:
    return _EXT_BY_MIME.get(mime.lower(), _EXT_BY_MIME.get(default_mime, ""))


def is_data_uri(value: str) -> bool:
    return bool(_DATA_URI_RE.match(value or ""))


def mime_from_data_uri(value: str) -> str | None:
    m = _DATA_URI_RE.match(value or "")
    return m.group("mime").lower() if m and m.group("mime") else None


def strip_data_uri_prefix(value: str) -> str:
    """Raw base64 from either a data URI or already-raw base64."""
    return _DATA_URI_RE.sub("", value, count=1)
