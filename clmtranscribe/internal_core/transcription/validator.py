from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Containers that commonly carry audio-only payloads.
ALLOWED_EXACT_CONTENT_TYPES = frozenset(
    {
        "application/ogg",
        "video/mp4",
        "video/quicktime",
        "video/x-msvideo",
    }
)
ALLOWED_CONTENT_TYPE_PREFIX = "audio/"

SUPPORTED_EXTENSIONS = ("mp3", "wav", "m4a", "flac", "ogg", "mp4", "avi", "mov", "webm")


@dataclass(frozen=True)
class UploadVerdict:
    accepted: bool
    reason: str = ""


def format_megabytes(num_bytes: int) -> str:
    mb = num_bytes / (1024 * 1024)
    if mb == int(mb):
        return f"{int(mb)}MB"
    return f"{mb:.1f}MB"


def normalize_content_type(content_type: Optional[str]) -> str:
    return str(content_type or "").split(";", 1)[0].strip().lower()


def is_allowed_content_type(content_type: Optional[str]) -> bool:
    mt = normalize_content_type(content_type)
    if not mt:
        return False
    if mt.startswith(ALLOWED_CONTENT_TYPE_PREFIX) and len(mt) > len(ALLOWED_CONTENT_TYPE_PREFIX):
        return True
    return mt in ALLOWED_EXACT_CONTENT_TYPES


def validate_upload(
    *,
    size_bytes: Optional[int],
    content_type: Optional[str],
    max_bytes: int,
) -> UploadVerdict:
    """
    Admit or reject an upload from its declared metadata alone.

    Runs before anything touches the staging directory or spawns a process,
    so a rejected upload costs nothing beyond the request itself.
    """
    size = int(size_bytes or 0)
    if size > max_bytes:
        return UploadVerdict(
            False,
            f"File too large. Maximum size is {format_megabytes(max_bytes)}.",
        )
    if size <= 0:
        return UploadVerdict(False, "File is empty.")
    if not is_allowed_content_type(content_type):
        shown = normalize_content_type(content_type) or "missing"
        return UploadVerdict(
            False,
            f"Only audio files are supported (content type: {shown}). "
            f"Supported formats: {', '.join(ext.upper() for ext in SUPPORTED_EXTENSIONS)}.",
        )
    return UploadVerdict(True)
