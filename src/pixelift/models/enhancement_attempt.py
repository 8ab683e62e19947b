"""EnhancementAttempt entity - Track enhancement service invocations."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from pixelift.core.timezone import utcnow


class EnhancementAttempt(SQLModel, table=True):
    """EnhancementAttempt records one external service call for retry analysis and debugging."""

    __tablename__ = "enhancement_attempts"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    photo_id: UUID = Field(foreign_key="photos.id", index=True)
    triggered_by: str = Field(max_length=100)  # "user", "upload-service", "stuck-photo-monitor", ...
    service: str = Field(max_length=255)  # enhancement model identifier
    status: str = Field(default="running", max_length=50)  # "running", "succeeded", "failed"
    error_code: Optional[str] = Field(default=None, max_length=50)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    confidence: Optional[float] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)
