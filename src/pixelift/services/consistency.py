"""Structural consistency checks for COMPLETED photos.

A photo can reach COMPLETED with a result that is not really an enhanced
image (legacy writers, partial failures). These checks find such photos so
the stuck-job scanner can reprocess them.
"""

from typing import Callable
from urllib.parse import urlparse

from pixelift.models.photo import Photo

ConsistencyCheck = Callable[[Photo], str | None]


def _last_segment(ref: str) -> str:
    path = urlparse(ref).path or ref
    return path.rstrip("/").rsplit("/", 1)[-1]


def find_inconsistency(photo: Photo) -> str | None:
    """Return the issue that makes a photo's result untrustworthy.

    Args:
        photo: Photo to inspect (normally COMPLETED)

    Returns:
        Issue label, or None if the result looks like a real enhancement:
        - "missing_result": result_ref is empty
        - "result_equals_source": result_ref is the source reference
        - "result_derived_from_source": result file name is the source name
          or refers to an original upload
        - "result_identical_to_source": result bytes hash to the source hash
    """
    if not photo.result_ref:
        return "missing_result"

    if photo.result_ref == photo.source_ref:
        return "result_equals_source"

    result_name = _last_segment(photo.result_ref)
    if result_name and result_name == _last_segment(photo.source_ref):
        return "result_derived_from_source"
    if "original" in result_name.lower():
        return "result_derived_from_source"

    if photo.result_sha256 and photo.result_sha256 == photo.source_sha256:
        return "result_identical_to_source"

    return None
