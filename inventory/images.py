# inventory/images.py
"""
Rewrite externally supplied image references into one cacheable URL.

Spreadsheet editors paste shared-drive links in whatever shape the drive UI
offered at the time. All of them encode the same file identifier, so they are
rewritten to a single direct-fetch template. Anything that is already a plain
http(s) URL is kept; everything else becomes the storefront placeholder.

normalize_image_ref() is pure and idempotent: items are re-normalized on every
sync run, so normalize(normalize(x)) must equal normalize(x).
"""
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from .models import PLACEHOLDER_IMAGE

CANONICAL_TEMPLATE = "https://lh3.googleusercontent.com/d/{file_id}=w1000"

_FILE_ID = r"([A-Za-z0-9_-]+)"
_DRIVE_HOST = r"(?:drive|docs)\.google\.com"


@dataclass(frozen=True)
class ImageRefPattern:
    name: str
    regex: "re.Pattern[str]"

    def can_parse(self, ref: str) -> bool:
        return self.regex.search(ref) is not None

    def extract_id(self, ref: str) -> Optional[str]:
        m = self.regex.search(ref)
        return m.group(1) if m else None


# Tried in order; first match wins.
PATTERNS: List[ImageRefPattern] = [
    ImageRefPattern(
        "file-view",
        re.compile(_DRIVE_HOST + r"/file/d/" + _FILE_ID, re.IGNORECASE),
    ),
    ImageRefPattern(
        "open-by-id",
        re.compile(_DRIVE_HOST + r"/open\?(?:[^#]*&)?id=" + _FILE_ID, re.IGNORECASE),
    ),
    ImageRefPattern(
        "thumbnail-by-id",
        re.compile(_DRIVE_HOST + r"/thumbnail\?(?:[^#]*&)?id=" + _FILE_ID, re.IGNORECASE),
    ),
    ImageRefPattern(
        "direct-download",
        re.compile(_DRIVE_HOST + r"/uc\?(?:[^#]*&)?id=" + _FILE_ID, re.IGNORECASE),
    ),
    ImageRefPattern(
        "canonical",
        re.compile(r"lh3\.googleusercontent\.com/d/" + _FILE_ID, re.IGNORECASE),
    ),
]

_DRIVE_LINK = re.compile(_DRIVE_HOST, re.IGNORECASE)


def extract_file_id(ref: str) -> Optional[str]:
    for pattern in PATTERNS:
        if pattern.can_parse(ref):
            return pattern.extract_id(ref)
    return None


def _is_direct_url(ref: str) -> bool:
    if any(ch.isspace() for ch in ref):
        return False
    try:
        parsed = urlparse(ref)
    except ValueError:
        # e.g. an unclosed IPv6 bracket in the host
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_image_ref(raw: Optional[str]) -> str:
    if not raw:
        return PLACEHOLDER_IMAGE
    ref = raw.strip()
    if not ref:
        return PLACEHOLDER_IMAGE

    file_id = extract_file_id(ref)
    if file_id:
        return CANONICAL_TEMPLATE.format(file_id=file_id)

    # Folder links and other drive pages are not images
    if _DRIVE_LINK.search(ref):
        return PLACEHOLDER_IMAGE

    if _is_direct_url(ref):
        return ref
    return PLACEHOLDER_IMAGE
