"""Enhancement orchestrator - drives one photo through the enhancement state machine.

One invocation:
1. Authorizes the caller and claims the photo (PENDING/FAILED -> PROCESSING)
   with a compare-and-swap that commits before any external call
2. Fetches the source, calls the enhancement service once and stores the
   result, all inside the processing-time budget
3. Writes COMPLETED (result_ref + status in one update) or FAILED with a
   classified error code

The photo never stays in PROCESSING after the invocation returns or raises.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass, field
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from pixelift.models.enhancement_attempt import EnhancementAttempt
from pixelift.models.photo import Photo, PhotoStatus
from pixelift.services.caller import AdminToken, Caller, EndUser, InternalService
from pixelift.services.consistency import find_inconsistency
from pixelift.services.enhancement.base import EnhancementResult, EnhancementService
from pixelift.services.exceptions import (
    AlreadyProcessingError,
    AlreadyTerminalError,
    EnhancementError,
    InternalError,
    NotFoundError,
    StorageError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from pixelift.services.image_validation import FILE_EXTENSIONS
from pixelift.services.storage.base import BlobStore
from pixelift.uow import UowFactory

logger = structlog.get_logger()


@dataclass
class EnhancementMetrics:
    """Timing and size figures of one enhancement."""

    total_time_seconds: float = 0.0
    processing_time_seconds: float = 0.0
    original_size_bytes: int = 0
    enhanced_size_bytes: int = 0
    confidence: float | None = None
    analysis: dict = field(default_factory=dict)


@dataclass
class EnhancementOutcome:
    """Result returned to the caller of enhance()."""

    photo_id: UUID
    status: PhotoStatus
    result_ref: str | None
    metrics: EnhancementMetrics
    already_completed: bool = False


@dataclass
class _ClaimedPhoto:
    photo_id: UUID
    source_ref: str
    content_type: str
    attempt_id: UUID


def can_act_on(caller: Caller, photo: Photo) -> bool:
    """Check whether ``caller`` may enhance or inspect ``photo``.

    End users only reach their own photos. Internal services acting for a
    user are held to the same rule; without a user they act on any photo.
    """
    if isinstance(caller, AdminToken):
        return True
    if isinstance(caller, InternalService):
        return caller.user_id is None or caller.user_id == photo.owner_id
    if isinstance(caller, EndUser):
        return caller.user_id == photo.owner_id
    return False


class EnhancementOrchestrator:
    """Runs enhancement jobs against the external service."""

    def __init__(
        self,
        uow_factory: UowFactory,
        enhancement_service: EnhancementService,
        blob_store: BlobStore,
        processing_budget_seconds: float = 50.0,
    ):
        """Initialize orchestrator.

        Args:
            uow_factory: Factory for database units of work
            enhancement_service: External enhancement service adapter
            blob_store: Object store holding source and result images
            processing_budget_seconds: Hard limit for fetch + enhance + store
        """
        self.uow_factory = uow_factory
        self.enhancement_service = enhancement_service
        self.blob_store = blob_store
        self.processing_budget_seconds = processing_budget_seconds

    async def enhance(self, photo_id: UUID, caller: Caller) -> EnhancementOutcome:
        """Enhance a photo.

        Args:
            photo_id: Photo to enhance
            caller: Resolved caller identity

        Returns:
            EnhancementOutcome with status COMPLETED

        Raises:
            NotFoundError: Photo missing or not visible to the caller
            AlreadyProcessingError: Another invocation holds the claim
            AlreadyTerminalError: Photo is COMPLETED but its result is inconsistent
            EnhancementError: Attempt failed; the photo is FAILED with this error's code
        """
        claim = await self._claim(photo_id, caller)
        if isinstance(claim, EnhancementOutcome):
            return claim

        log = logger.bind(photo_id=str(photo_id), caller=caller.label)
        log.info("photo.enhancement.started", budget_seconds=self.processing_budget_seconds)
        started = time.monotonic()

        error: EnhancementError | None = None
        result: EnhancementResult | None = None
        result_ref: str | None = None
        result_sha256: str | None = None
        source_size = 0

        try:
            async with asyncio.timeout(self.processing_budget_seconds):
                source = await self.blob_store.get(claim.source_ref)
                source_size = len(source)
                result = await self.enhancement_service.enhance(source, claim.content_type)

                if not result.image:
                    raise UpstreamServiceError("Enhancement service returned an empty image")
                result_sha256 = hashlib.sha256(result.image).hexdigest()
                if result_sha256 == hashlib.sha256(source).hexdigest():
                    raise UpstreamServiceError(
                        "Enhancement service returned the source image unchanged"
                    )

                extension = FILE_EXTENSIONS.get(
                    result.mime_type, FILE_EXTENSIONS.get(claim.content_type, "")
                )
                result_ref = await self.blob_store.put(
                    result.image, f"{photo_id}-enhanced{extension}", result.mime_type
                )
                if result_ref == claim.source_ref:
                    raise StorageError("Object store returned the source reference for the result")

        except asyncio.CancelledError:
            await self._record_failure(
                claim, InternalError("Enhancement was cancelled"), started
            )
            raise
        except TimeoutError:
            error = UpstreamTimeoutError(
                f"Processing exceeded the {self.processing_budget_seconds:g}s budget"
            )
        except EnhancementError as e:
            error = e
        except Exception as e:
            log.exception("photo.enhancement.unexpected_error", error_type=type(e).__name__)
            error = InternalError(f"Unexpected error: {e}")

        if error is None and result is not None and result_ref and result_sha256:
            try:
                await self._record_success(claim, result, result_ref, result_sha256, started)
            except StorageError as e:
                error = e
            except SQLAlchemyError as e:
                error = StorageError(f"Failed to record enhancement result: {e}")

        if error is not None:
            await self._record_failure(claim, error, started)
            log.warning(
                "photo.enhancement.failed",
                error_code=error.code,
                error=error.message,
                duration_seconds=round(time.monotonic() - started, 3),
            )
            raise error

        assert result is not None
        metrics = EnhancementMetrics(
            total_time_seconds=round(time.monotonic() - started, 3),
            processing_time_seconds=round(result.processing_time, 3),
            original_size_bytes=source_size,
            enhanced_size_bytes=len(result.image),
            confidence=result.confidence,
            analysis=result.analysis,
        )
        log.info(
            "photo.enhancement.completed",
            result_ref=result_ref,
            total_time_seconds=metrics.total_time_seconds,
            processing_time_seconds=metrics.processing_time_seconds,
            confidence=metrics.confidence,
        )
        return EnhancementOutcome(
            photo_id=photo_id,
            status=PhotoStatus.COMPLETED,
            result_ref=result_ref,
            metrics=metrics,
        )

    async def _claim(
        self, photo_id: UUID, caller: Caller
    ) -> _ClaimedPhoto | EnhancementOutcome:
        """Claim the photo, or short-circuit for an already consistent result."""
        async with await self.uow_factory() as uow:
            photo = await uow.photos.get_by_id(photo_id)
            if photo is None or not can_act_on(caller, photo):
                raise NotFoundError()

            if photo.status == PhotoStatus.PROCESSING:
                raise AlreadyProcessingError()

            if photo.status == PhotoStatus.COMPLETED:
                issue = find_inconsistency(photo)
                if issue is not None:
                    raise AlreadyTerminalError(
                        f"Photo is COMPLETED with an inconsistent result ({issue})"
                    )
                logger.info(
                    "photo.enhancement.already_completed",
                    photo_id=str(photo_id),
                    caller=caller.label,
                )
                return EnhancementOutcome(
                    photo_id=photo_id,
                    status=PhotoStatus.COMPLETED,
                    result_ref=photo.result_ref,
                    metrics=EnhancementMetrics(original_size_bytes=photo.size_bytes),
                    already_completed=True,
                )

            if not await uow.photos.claim_for_processing(photo_id):
                # Lost the compare-and-swap to a concurrent invocation
                current = await uow.photos.get_by_id(photo_id)
                if current is not None and current.status == PhotoStatus.COMPLETED:
                    raise AlreadyTerminalError()
                raise AlreadyProcessingError()

            attempt = await uow.attempts.add(
                EnhancementAttempt(
                    photo_id=photo_id,
                    triggered_by=caller.label,
                    service=self.enhancement_service.model_id,
                )
            )

            return _ClaimedPhoto(
                photo_id=photo_id,
                source_ref=photo.source_ref,
                content_type=photo.content_type,
                attempt_id=attempt.id,
            )

    async def _record_success(
        self,
        claim: _ClaimedPhoto,
        result: EnhancementResult,
        result_ref: str,
        result_sha256: str,
        started: float,
    ) -> None:
        async with await self.uow_factory() as uow:
            if not await uow.photos.mark_completed(claim.photo_id, result_ref, result_sha256):
                raise StorageError("Photo left PROCESSING before the result was recorded")
            await uow.attempts.finish(
                claim.attempt_id,
                succeeded=True,
                duration_ms=int((time.monotonic() - started) * 1000),
                confidence=result.confidence,
            )

    async def _record_failure(
        self, claim: _ClaimedPhoto, error: EnhancementError, started: float
    ) -> None:
        try:
            async with await self.uow_factory() as uow:
                marked = await uow.photos.mark_failed(claim.photo_id, error.code, error.message)
                await uow.attempts.finish(
                    claim.attempt_id,
                    succeeded=False,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error_code=error.code,
                    error_message=error.message,
                )
            if not marked:
                logger.warning(
                    "photo.enhancement.fail_skipped",
                    photo_id=str(claim.photo_id),
                    reason="photo_not_processing",
                )
        except SQLAlchemyError as e:
            # Left in PROCESSING; the recovery worker fails orphaned claims
            logger.error(
                "photo.enhancement.fail_not_recorded",
                photo_id=str(claim.photo_id),
                error_code=error.code,
                error=str(e),
                error_type=type(e).__name__,
            )
