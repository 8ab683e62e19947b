"""Read-only status lookup used by clients polling an enhancement."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pixelift.core.timezone import utcnow
from pixelift.models.photo import PhotoStatus
from pixelift.services.exceptions import NotFoundError
from pixelift.uow import UowFactory


@dataclass
class StatusView:
    """Snapshot of a photo's progress plus the client polling contract."""

    photo_id: UUID
    status: PhotoStatus
    source_ref: str
    result_ref: str | None
    title: str | None
    is_complete: bool
    elapsed_seconds: int
    estimated_remaining_seconds: int | None
    last_updated: datetime
    last_error_code: str | None
    poll_interval_seconds: int
    poll_timeout_seconds: int


class StatusQueryService:
    """Answers "how far along is my photo" without mutating anything."""

    def __init__(
        self,
        uow_factory: UowFactory,
        expected_processing_seconds: int = 30,
        poll_interval_seconds: int = 3,
        poll_timeout_seconds: int = 300,
    ):
        self.uow_factory = uow_factory
        self.expected_processing_seconds = expected_processing_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds

    async def get_status(self, photo_id: UUID, caller_id: UUID) -> StatusView:
        """Look up a photo owned by ``caller_id``.

        Elapsed time runs from upload until now, or until the last update once
        the photo is COMPLETED or FAILED.

        Raises:
            NotFoundError: Photo missing or owned by someone else
        """
        async with await self.uow_factory() as uow:
            photo = await uow.photos.get_owned(photo_id, caller_id)
        if photo is None:
            raise NotFoundError()

        end = photo.updated_at if photo.is_complete else utcnow()
        elapsed = max(0, int((end - photo.created_at).total_seconds()))
        remaining = (
            None if photo.is_complete else max(0, self.expected_processing_seconds - elapsed)
        )

        return StatusView(
            photo_id=photo.id,
            status=photo.status,
            source_ref=photo.source_ref,
            result_ref=photo.result_ref if photo.status == PhotoStatus.COMPLETED else None,
            title=photo.title,
            is_complete=photo.is_complete,
            elapsed_seconds=elapsed,
            estimated_remaining_seconds=remaining,
            last_updated=photo.updated_at,
            last_error_code=photo.last_error_code,
            poll_interval_seconds=self.poll_interval_seconds,
            poll_timeout_seconds=self.poll_timeout_seconds,
        )
