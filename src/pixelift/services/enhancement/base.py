"""Enhancement service interface."""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class EnhancementResult:
    """Output of one enhancement service call."""

    image: bytes
    mime_type: str
    confidence: float | None = None  # 0-100 when the service reports one
    analysis: dict = field(default_factory=dict)
    processing_time: float = 0.0  # seconds spent inside the service


class EnhancementService(Protocol):
    """Black-box image enhancement: image bytes in, enhanced bytes out.

    Implementations raise UpstreamTimeoutError or UpstreamServiceError.
    """

    model_id: str

    async def enhance(self, image: bytes, mime_type: str) -> EnhancementResult: ...
