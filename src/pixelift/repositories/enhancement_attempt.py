"""EnhancementAttempt repository for Pixelift backend.

Provides data access methods for EnhancementAttempt entities.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pixelift.core.timezone import utcnow
from pixelift.models.enhancement_attempt import EnhancementAttempt


class EnhancementAttemptRepository:
    """Repository for EnhancementAttempt entities.

    Tracks enhancement service invocations for retry analysis and debugging.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, attempt: EnhancementAttempt) -> EnhancementAttempt:
        """Persist new attempt to database.

        Args:
            attempt: EnhancementAttempt entity to persist

        Returns:
            Persisted attempt with generated ID
        """
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def get_by_id(self, attempt_id: UUID) -> EnhancementAttempt | None:
        """Retrieve attempt by UUID."""
        result = await self.session.execute(
            select(EnhancementAttempt).where(EnhancementAttempt.id == attempt_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_photo(self, photo_id: UUID) -> list[EnhancementAttempt]:
        """Retrieve all attempts for a photo.

        Args:
            photo_id: Photo's unique identifier

        Returns:
            List of attempts ordered by creation time (oldest first)
        """
        result = await self.session.execute(
            select(EnhancementAttempt)
            .where(EnhancementAttempt.photo_id == photo_id)  # type: ignore[arg-type]
            .order_by(EnhancementAttempt.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def finish(
        self,
        attempt_id: UUID,
        succeeded: bool,
        duration_ms: int,
        error_code: str | None = None,
        error_message: str | None = None,
        confidence: float | None = None,
    ) -> EnhancementAttempt | None:
        """Close an attempt with its outcome.

        Args:
            attempt_id: Attempt's unique identifier
            succeeded: Whether the photo reached COMPLETED
            duration_ms: Wall time spent on the attempt
            error_code: Classified error code for failed attempts
            error_message: Error description (truncated to 1000 characters)
            confidence: Confidence reported by the enhancement service

        Returns:
            Updated attempt, or None if it does not exist
        """
        attempt = await self.get_by_id(attempt_id)
        if attempt is None:
            return None

        attempt.status = "succeeded" if succeeded else "failed"
        attempt.duration_ms = duration_ms
        attempt.error_code = error_code
        attempt.error_message = error_message[:1000] if error_message else None
        attempt.confidence = confidence
        attempt.completed_at = utcnow()
        self.session.add(attempt)
        await self.session.flush()
        return attempt
