"""Upload validation tests: size bounds, declared type and magic bytes."""

import pytest
from fakes import JPEG_BYTES, PNG_BYTES

from pixelift.services.exceptions import InvalidFileError
from pixelift.services.image_validation import sniff_mime_type, validate_image_file

MIN_BYTES = 1024
MAX_BYTES = 10 * 1024 * 1024
WEBP_BYTES = b"RIFF" + b"\x00\x10\x00\x00" + b"WEBP" + b"\x30" * 2048


def test_sniff_mime_type():
    assert sniff_mime_type(JPEG_BYTES) == "image/jpeg"
    assert sniff_mime_type(PNG_BYTES) == "image/png"
    assert sniff_mime_type(WEBP_BYTES) == "image/webp"
    assert sniff_mime_type(b"GIF89a" + b"\x00" * 10) is None


@pytest.mark.parametrize(
    "data,content_type,expected",
    [
        (JPEG_BYTES, "image/jpeg", "image/jpeg"),
        (JPEG_BYTES, "image/jpg", "image/jpeg"),
        (PNG_BYTES, "image/png", "image/png"),
        (WEBP_BYTES, "image/webp", "image/webp"),
    ],
)
def test_accepts_supported_images(data, content_type, expected):
    assert validate_image_file(data, content_type, MIN_BYTES, MAX_BYTES) == expected


def test_rejects_too_small_file():
    with pytest.raises(InvalidFileError, match="too small"):
        validate_image_file(JPEG_BYTES[:512], "image/jpeg", MIN_BYTES, MAX_BYTES)


def test_rejects_too_large_file():
    data = b"\xff\xd8\xff\xe0" + b"\x00" * MAX_BYTES
    with pytest.raises(InvalidFileError, match="too large"):
        validate_image_file(data, "image/jpeg", MIN_BYTES, MAX_BYTES)


def test_size_bounds_are_inclusive():
    exact_min = b"\xff\xd8\xff\xe0" + b"\x00" * (MIN_BYTES - 4)
    assert validate_image_file(exact_min, "image/jpeg", MIN_BYTES, MAX_BYTES) == "image/jpeg"


def test_rejects_unsupported_type():
    with pytest.raises(InvalidFileError, match="Unsupported format"):
        validate_image_file(JPEG_BYTES, "image/gif", MIN_BYTES, MAX_BYTES)


def test_rejects_missing_content_type():
    with pytest.raises(InvalidFileError) as exc_info:
        validate_image_file(JPEG_BYTES, None, MIN_BYTES, MAX_BYTES)
    assert exc_info.value.code == "INVALID_FILE"
    assert exc_info.value.status_code == 400


def test_rejects_content_not_matching_declared_type():
    with pytest.raises(InvalidFileError, match="does not match"):
        validate_image_file(PNG_BYTES, "image/jpeg", MIN_BYTES, MAX_BYTES)
