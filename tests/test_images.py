import pytest

from inventory.images import CANONICAL_TEMPLATE, extract_file_id, normalize_image_ref
from inventory.models import PLACEHOLDER_IMAGE

FILE_ID = "12tUUp-6A5cIe2NMOCk9oVqgGrjqO1pSz"
CANONICAL = CANONICAL_TEMPLATE.format(file_id=FILE_ID)


@pytest.mark.parametrize(
    "raw",
    [
        f"https://drive.google.com/file/d/{FILE_ID}/view?usp=sharing",
        f"https://drive.google.com/open?id={FILE_ID}",
        f"https://drive.google.com/thumbnail?id={FILE_ID}&sz=w1000",
        f"https://drive.google.com/uc?export=view&id={FILE_ID}",
        f"  https://drive.google.com/file/d/{FILE_ID}/view  ",
    ],
)
def test_legacy_drive_formats_share_one_canonical_url(raw):
    assert normalize_image_ref(raw) == CANONICAL


def test_canonical_url_is_kept():
    assert normalize_image_ref(CANONICAL) == CANONICAL
    assert extract_file_id(CANONICAL) == FILE_ID


def test_direct_image_url_passes_through():
    url = "https://cdn.example.com/images/widget.png"
    assert normalize_image_ref(url) == url
    assert normalize_image_ref(f" {url}\n") == url


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "   ",
        "not a url",
        "ftp://example.com/image.png",
        "https://drive.google.com/drive/folders/abc123",
        "/images/local.png",
        "http://[abc/img.png",
        "https://[::1/x.png",
    ],
)
def test_unusable_refs_become_placeholder(raw):
    assert normalize_image_ref(raw) == PLACEHOLDER_IMAGE


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "garbage ☃",
        PLACEHOLDER_IMAGE,
        CANONICAL,
        f"https://drive.google.com/open?id={FILE_ID}",
        f"https://drive.google.com/thumbnail?id={FILE_ID}&sz=w1000",
        "https://cdn.example.com/a b.png",
        "https://cdn.example.com/widget.png ",
        "http://",
        "lh3.googleusercontent.com/d/abc",
        "http://[abc/img.png",
        "https://[::1/x.png",
    ],
)
def test_normalize_is_idempotent(raw):
    once = normalize_image_ref(raw)
    assert normalize_image_ref(once) == once
