"""Photo entity - one enhancement job with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from pixelift.core.timezone import utcnow


class PhotoStatus(str, Enum):
    """Enhancement job lifecycle status."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Forward transitions driven by the orchestrator.
TRANSITIONS: dict[PhotoStatus, frozenset[PhotoStatus]] = {
    PhotoStatus.PENDING: frozenset({PhotoStatus.PROCESSING}),
    PhotoStatus.PROCESSING: frozenset({PhotoStatus.COMPLETED, PhotoStatus.FAILED}),
    PhotoStatus.COMPLETED: frozenset(),
    PhotoStatus.FAILED: frozenset({PhotoStatus.PROCESSING}),
}

# Only the stuck-job scanner may move a photo back to PENDING.
RECOVERY_TRANSITIONS: dict[PhotoStatus, frozenset[PhotoStatus]] = {
    PhotoStatus.COMPLETED: frozenset({PhotoStatus.PENDING}),
    PhotoStatus.FAILED: frozenset({PhotoStatus.PENDING}),
}


def source_statuses(target: PhotoStatus, recovery: bool = False) -> list[PhotoStatus]:
    """Return the statuses from which ``target`` may be entered.

    Repositories use this as the guard of their compare-and-swap updates.

    Args:
        target: Status to transition into
        recovery: Include scanner-only recovery transitions instead of forward ones

    Returns:
        Statuses allowed as the current status, in declaration order
    """
    table = RECOVERY_TRANSITIONS if recovery else TRANSITIONS
    return [status for status in PhotoStatus if target in table.get(status, frozenset())]


class Photo(SQLModel, table=True):
    """Photo is the job record for one submitted image.

    Invariant: result_ref is set iff status is COMPLETED, and it never equals
    source_ref. owner_id and source_ref never change after creation.
    """

    __tablename__ = "photos"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: UUID = Field(foreign_key="users.id", index=True)
    source_ref: str = Field(max_length=1024)
    result_ref: Optional[str] = Field(default=None, max_length=1024)
    status: PhotoStatus = Field(default=PhotoStatus.PENDING, index=True)

    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)

    original_filename: Optional[str] = Field(default=None, max_length=255)
    content_type: str = Field(max_length=50)
    size_bytes: int = Field(ge=0)
    source_sha256: Optional[str] = Field(default=None, max_length=64)
    result_sha256: Optional[str] = Field(default=None, max_length=64)

    attempt_count: int = Field(default=0, ge=0)
    last_error_code: Optional[str] = Field(default=None, max_length=50)
    last_error: Optional[str] = Field(default=None, max_length=1000)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    # Status changes only; cosmetic edits go to details_updated_at
    updated_at: datetime = Field(default_factory=utcnow)
    details_updated_at: Optional[datetime] = Field(default=None)

    @property
    def is_complete(self) -> bool:
        """True once the photo reached COMPLETED or FAILED (polling can stop)."""
        return self.status in (PhotoStatus.COMPLETED, PhotoStatus.FAILED)

    def update_details(self, title: Optional[str], description: Optional[str]) -> None:
        """Update owner-editable cosmetic fields.

        Args:
            title: New title (None keeps the current value)
            description: New description (None keeps the current value)
        """
        if title is not None:
            self.title = title.strip() or None
        if description is not None:
            self.description = description.strip() or None
        self.details_updated_at = utcnow()
