"""Image upload validation.

Validates uploaded files before they reach the object store.
"""

from pixelift.services.exceptions import InvalidFileError

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")

FILE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def sniff_mime_type(data: bytes) -> str | None:
    """Detect the image type from its magic bytes.

    Args:
        data: Raw file bytes

    Returns:
        "image/jpeg", "image/png" or "image/webp", or None if unrecognized
    """
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_image_file(
    data: bytes, content_type: str | None, min_bytes: int, max_bytes: int
) -> str:
    """Validate an uploaded image.

    Args:
        data: Raw file bytes
        content_type: MIME type declared by the client
        min_bytes: Smallest accepted size
        max_bytes: Largest accepted size

    Returns:
        Normalized MIME type ("image/jpg" is reported as "image/jpeg")

    Raises:
        InvalidFileError: If size, declared type or content do not check out
    """
    size = len(data)
    if size > max_bytes:
        raise InvalidFileError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
        )
    if size < min_bytes:
        raise InvalidFileError(
            f"File too small. Minimum size is {min_bytes // 1024}KB (got {size} bytes)"
        )

    declared = (content_type or "").split(";")[0].strip().lower()
    if declared not in SUPPORTED_MIME_TYPES:
        raise InvalidFileError(
            f"Unsupported format {declared or 'unknown'}. "
            f"Supported formats: {', '.join(SUPPORTED_MIME_TYPES)}"
        )
    if declared == "image/jpg":
        declared = "image/jpeg"

    detected = sniff_mime_type(data)
    if detected != declared:
        raise InvalidFileError(
            f"File content does not match declared type {declared} "
            f"(detected {detected or 'unknown'})"
        )

    return declared
