"""Photo repository for Pixelift backend.

Provides data access methods for Photo (job record) entities. Every status
change is a compare-and-swap UPDATE guarded on the current status, so two
concurrent callers can never both win the same transition.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pixelift.core.timezone import utcnow
from pixelift.models.photo import Photo, PhotoStatus, source_statuses


class PhotoRepository:
    """Repository for Photo entities.

    Status mutations return True when the guarded UPDATE matched a row and
    False when another caller had already moved the photo on.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, photo: Photo) -> Photo:
        """Persist new photo to database.

        Args:
            photo: Photo entity to persist

        Returns:
            Persisted photo
        """
        self.session.add(photo)
        await self.session.flush()
        return photo

    async def get_by_id(self, photo_id: UUID) -> Photo | None:
        """Retrieve photo by UUID, always reloading row state from the database.

        Args:
            photo_id: Photo's unique identifier

        Returns:
            Photo if found, None otherwise
        """
        result = await self.session.execute(
            select(Photo).where(Photo.id == photo_id).execution_options(populate_existing=True)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_owned(self, photo_id: UUID, owner_id: UUID) -> Photo | None:
        """Retrieve photo only if it belongs to ``owner_id``.

        Args:
            photo_id: Photo's unique identifier
            owner_id: Expected owner

        Returns:
            Photo if found and owned, None otherwise
        """
        result = await self.session.execute(
            select(Photo)
            .where(Photo.id == photo_id, Photo.owner_id == owner_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_owner(
        self, owner_id: UUID, offset: int = 0, limit: int = 20
    ) -> tuple[list[Photo], int]:
        """Retrieve an owner's photos with pagination and total count.

        Args:
            owner_id: Owner's unique identifier
            offset: Number of photos to skip (default: 0)
            limit: Maximum number of photos to return (default: 20)

        Returns:
            Tuple of (photos newest first, total count across all pages)
        """
        count_stmt = select(func.count(Photo.id)).where(Photo.owner_id == owner_id)  # type: ignore[arg-type]
        total = (await self.session.execute(count_stmt)).scalar() or 0

        data_stmt = (
            select(Photo)
            .where(Photo.owner_id == owner_id)  # type: ignore[arg-type]
            .order_by(Photo.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        photos = list((await self.session.execute(data_stmt)).scalars().all())
        return (photos, total)

    async def claim_for_processing(self, photo_id: UUID) -> bool:
        """Claim a photo for enhancement (PENDING/FAILED -> PROCESSING).

        Query:
            UPDATE photos SET status = 'PROCESSING', attempt_count = attempt_count + 1
            WHERE id = :photo_id AND status IN ('PENDING', 'FAILED')

        Args:
            photo_id: Photo's unique identifier

        Returns:
            True if this caller won the claim
        """
        result = await self.session.execute(
            update(Photo)
            .where(
                Photo.id == photo_id,  # type: ignore[arg-type]
                Photo.status.in_(source_statuses(PhotoStatus.PROCESSING)),  # type: ignore[attr-defined]
            )
            .values(
                status=PhotoStatus.PROCESSING,
                attempt_count=Photo.attempt_count + 1,
                last_error_code=None,
                last_error=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def mark_completed(self, photo_id: UUID, result_ref: str, result_sha256: str) -> bool:
        """Record the enhanced result (PROCESSING -> COMPLETED) in one UPDATE.

        The guard also refuses a result reference equal to the source reference.

        Args:
            photo_id: Photo's unique identifier
            result_ref: Object store reference of the enhanced image
            result_sha256: Content hash of the enhanced image

        Returns:
            True if the photo was completed

        Raises:
            ValueError: If result_ref is empty
        """
        if not result_ref:
            raise ValueError("result_ref cannot be empty")

        result = await self.session.execute(
            update(Photo)
            .where(
                Photo.id == photo_id,  # type: ignore[arg-type]
                Photo.status.in_(source_statuses(PhotoStatus.COMPLETED)),  # type: ignore[attr-defined]
                Photo.source_ref != result_ref,  # type: ignore[arg-type]
            )
            .values(
                status=PhotoStatus.COMPLETED,
                result_ref=result_ref,
                result_sha256=result_sha256,
                last_error_code=None,
                last_error=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def mark_failed(self, photo_id: UUID, error_code: str, error_message: str) -> bool:
        """Record a failed attempt (PROCESSING -> FAILED).

        Args:
            photo_id: Photo's unique identifier
            error_code: Classified error code
            error_message: Error description (truncated to 1000 characters)

        Returns:
            True if the photo was marked failed
        """
        result = await self.session.execute(
            update(Photo)
            .where(
                Photo.id == photo_id,  # type: ignore[arg-type]
                Photo.status.in_(source_statuses(PhotoStatus.FAILED)),  # type: ignore[attr-defined]
            )
            .values(
                status=PhotoStatus.FAILED,
                result_ref=None,
                result_sha256=None,
                last_error_code=error_code,
                last_error=error_message[:1000],
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def reset_for_recovery(self, photo_id: UUID, expected: PhotoStatus) -> bool:
        """Move a photo back to PENDING and clear its result (scanner only).

        Args:
            photo_id: Photo's unique identifier
            expected: Status the scanner observed; the reset only applies if
                the photo is still in it

        Returns:
            True if the photo was reset

        Raises:
            ValueError: If ``expected`` is not a recoverable status
        """
        if expected not in source_statuses(PhotoStatus.PENDING, recovery=True):
            raise ValueError(f"Cannot recover photos from {expected.value}")

        result = await self.session.execute(
            update(Photo)
            .where(Photo.id == photo_id, Photo.status == expected)  # type: ignore[arg-type]
            .values(
                status=PhotoStatus.PENDING,
                result_ref=None,
                result_sha256=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def get_stale_pending(self, cutoff: datetime, limit: int = 50) -> list[Photo]:
        """Retrieve photos still PENDING that were created before ``cutoff``.

        Args:
            cutoff: Photos created before this instant are stale
            limit: Maximum number of photos to return (default: 50)

        Returns:
            Stale photos, oldest first
        """
        result = await self.session.execute(
            select(Photo)
            .where(Photo.status == PhotoStatus.PENDING, Photo.created_at < cutoff)  # type: ignore[arg-type]
            .order_by(Photo.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_stale_pending(self, cutoff: datetime) -> int:
        """Count photos still PENDING that were created before ``cutoff``."""
        result = await self.session.execute(
            select(func.count(Photo.id)).where(
                Photo.status == PhotoStatus.PENDING,  # type: ignore[arg-type]
                Photo.created_at < cutoff,  # type: ignore[arg-type]
            )
        )
        return result.scalar() or 0

    async def get_completed(self, limit: int = 500) -> list[Photo]:
        """Retrieve the most recently updated COMPLETED photos.

        Args:
            limit: Scan window size (default: 500)

        Returns:
            COMPLETED photos, most recently updated first
        """
        result = await self.session.execute(
            select(Photo)
            .where(Photo.status == PhotoStatus.COMPLETED)  # type: ignore[arg-type]
            .order_by(Photo.updated_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def fail_orphaned_processing(self, cutoff: datetime) -> int:
        """Fail photos left in PROCESSING since before ``cutoff``.

        A crashed process can leave a claim behind; failing it makes the photo
        retryable by its owner.

        Query:
            UPDATE photos SET status = 'FAILED', last_error_code = 'INTERNAL'
            WHERE status = 'PROCESSING' AND updated_at < :cutoff

        Args:
            cutoff: Claims older than this instant are orphaned

        Returns:
            Number of photos failed
        """
        result = await self.session.execute(
            update(Photo)
            .where(Photo.status == PhotoStatus.PROCESSING, Photo.updated_at < cutoff)  # type: ignore[arg-type]
            .values(
                status=PhotoStatus.FAILED,
                result_ref=None,
                result_sha256=None,
                last_error_code="INTERNAL",
                last_error="Processing was interrupted before a result was recorded",
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]
