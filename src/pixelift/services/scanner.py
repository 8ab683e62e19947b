"""Stuck-job scanner for recovering photos the pipeline lost track of.

This module provides the StuckJobScanner which:
1. Re-triggers PENDING photos that were never picked up (stale sweep)
2. Resets and reprocesses COMPLETED photos whose result is not a real
   enhancement (inconsistent sweep)
3. Fails PROCESSING claims abandoned by a crashed process

Both sweeps have a dry-run variant that reports candidates without mutating
anything. Per-photo failures are collected into the sweep result and never
abort the batch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from pixelift.core.config import Settings
from pixelift.core.timezone import utcnow
from pixelift.models.photo import PhotoStatus
from pixelift.services.caller import InternalService
from pixelift.services.consistency import ConsistencyCheck, find_inconsistency
from pixelift.services.enhancement.base import EnhancementService
from pixelift.services.exceptions import PipelineError
from pixelift.services.orchestrator import EnhancementOrchestrator
from pixelift.services.storage.base import BlobStore
from pixelift.uow import UowFactory

logger = structlog.get_logger()

STALE_SWEEP_SERVICE = "stuck-photo-monitor"
INCONSISTENT_SWEEP_SERVICE = "stuck-completed-fixer"


@dataclass
class SweepItem:
    """Outcome for one photo touched by a sweep."""

    photo_id: UUID
    succeeded: bool
    status: str | None = None  # photo status after the attempt
    result_ref: str | None = None
    issue: str | None = None  # inconsistent sweep only
    error_code: str | None = None
    error_detail: str | None = None


@dataclass
class SweepResult:
    """Aggregate result of a mutating sweep."""

    sweep: str  # "stale" or "inconsistent"
    scanned: int
    processed: int
    succeeded: int
    failed: int
    items: list[SweepItem] = field(default_factory=list)
    cutoff: datetime | None = None


@dataclass
class StaleCandidate:
    photo_id: UUID
    owner_id: UUID
    created_at: datetime
    stuck_seconds: int


@dataclass
class StaleScanReport:
    """Dry-run result of the stale sweep."""

    count: int  # all stale photos, not only this batch
    cutoff: datetime
    candidates: list[StaleCandidate] = field(default_factory=list)


@dataclass
class InconsistentCandidate:
    photo_id: UUID
    owner_id: UUID
    issue: str
    source_ref: str
    result_ref: str | None


@dataclass
class InconsistentScanReport:
    """Dry-run result of the inconsistent sweep."""

    scanned: int
    count: int
    candidates: list[InconsistentCandidate] = field(default_factory=list)


class StuckJobScanner:
    """Finds and recovers stuck photos."""

    def __init__(
        self,
        uow_factory: UowFactory,
        orchestrator: EnhancementOrchestrator,
        stale_after_seconds: int = 300,
        batch_size: int = 50,
        scan_window: int = 500,
        consistency_check: ConsistencyCheck = find_inconsistency,
    ):
        """Initialize scanner.

        Args:
            uow_factory: Factory for database units of work
            orchestrator: Orchestrator used to reprocess photos
            stale_after_seconds: Age after which a PENDING photo is stale
            batch_size: Maximum photos reprocessed per sweep
            scan_window: Most recent COMPLETED photos inspected per inconsistent sweep
            consistency_check: Returns an issue label for a bad COMPLETED photo
        """
        self.uow_factory = uow_factory
        self.orchestrator = orchestrator
        self.stale_after_seconds = stale_after_seconds
        self.batch_size = batch_size
        self.scan_window = scan_window
        self.consistency_check = consistency_check

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        uow_factory: UowFactory,
        enhancement_service: EnhancementService,
        blob_store: BlobStore,
    ) -> "StuckJobScanner":
        """Build a scanner and its orchestrator from application settings."""
        orchestrator = EnhancementOrchestrator(
            uow_factory=uow_factory,
            enhancement_service=enhancement_service,
            blob_store=blob_store,
            processing_budget_seconds=settings.processing_budget_seconds,
        )
        return cls(
            uow_factory,
            orchestrator,
            stale_after_seconds=settings.stale_after_seconds,
            batch_size=settings.recovery_batch_size,
            scan_window=settings.inconsistent_scan_window,
        )

    def stale_cutoff(self) -> datetime:
        return utcnow() - timedelta(seconds=self.stale_after_seconds)

    async def preview_stale(self) -> StaleScanReport:
        """List stale PENDING photos without touching them."""
        cutoff = self.stale_cutoff()
        now = utcnow()
        async with await self.uow_factory() as uow:
            total = await uow.photos.count_stale_pending(cutoff)
            photos = await uow.photos.get_stale_pending(cutoff, limit=self.batch_size)

        return StaleScanReport(
            count=total,
            cutoff=cutoff,
            candidates=[
                StaleCandidate(
                    photo_id=photo.id,
                    owner_id=photo.owner_id,
                    created_at=photo.created_at,
                    stuck_seconds=int((now - photo.created_at).total_seconds()),
                )
                for photo in photos
            ],
        )

    async def recover_stale(self) -> SweepResult:
        """Re-trigger stale PENDING photos, oldest first.

        Returns:
            SweepResult with one item per re-triggered photo
        """
        cutoff = self.stale_cutoff()
        async with await self.uow_factory() as uow:
            photos = await uow.photos.get_stale_pending(cutoff, limit=self.batch_size)

        logger.info("scanner.stale.started", candidates=len(photos), cutoff=cutoff.isoformat())

        items = []
        for photo in photos:
            caller = InternalService(service=STALE_SWEEP_SERVICE, user_id=photo.owner_id)
            items.append(await self._reprocess(photo.id, caller))

        result = self._summarize("stale", len(photos), items, cutoff=cutoff)
        logger.info(
            "scanner.stale.completed",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def preview_inconsistent(self) -> InconsistentScanReport:
        """List COMPLETED photos failing the consistency check without touching them."""
        async with await self.uow_factory() as uow:
            photos = await uow.photos.get_completed(limit=self.scan_window)

        candidates = []
        for photo in photos:
            issue = self.consistency_check(photo)
            if issue is not None:
                candidates.append(
                    InconsistentCandidate(
                        photo_id=photo.id,
                        owner_id=photo.owner_id,
                        issue=issue,
                        source_ref=photo.source_ref,
                        result_ref=photo.result_ref,
                    )
                )

        return InconsistentScanReport(
            scanned=len(photos), count=len(candidates), candidates=candidates
        )

    async def recover_inconsistent(self) -> SweepResult:
        """Reset inconsistent COMPLETED photos to PENDING and reprocess them.

        At most batch_size photos are reprocessed per sweep; the rest are left
        for the next one. The reset is a compare-and-swap from COMPLETED; a
        photo that changed status since it was scanned is reported as failed
        and left alone.
        """
        report = await self.preview_inconsistent()
        batch = report.candidates[: self.batch_size]
        logger.info(
            "scanner.inconsistent.started",
            scanned=report.scanned,
            candidates=report.count,
            batch=len(batch),
        )

        items = []
        for candidate in batch:
            try:
                async with await self.uow_factory() as uow:
                    reset = await uow.photos.reset_for_recovery(
                        candidate.photo_id, expected=PhotoStatus.COMPLETED
                    )
            except Exception as e:
                logger.exception(
                    "scanner.inconsistent.reset_error",
                    photo_id=str(candidate.photo_id),
                    error_type=type(e).__name__,
                )
                items.append(
                    SweepItem(
                        photo_id=candidate.photo_id,
                        succeeded=False,
                        issue=candidate.issue,
                        error_code="INTERNAL",
                        error_detail=str(e),
                    )
                )
                continue

            if not reset:
                items.append(
                    SweepItem(
                        photo_id=candidate.photo_id,
                        succeeded=False,
                        issue=candidate.issue,
                        error_code="STATUS_CHANGED",
                        error_detail="Photo is no longer COMPLETED",
                    )
                )
                continue

            logger.info(
                "scanner.inconsistent.reset",
                photo_id=str(candidate.photo_id),
                issue=candidate.issue,
            )
            caller = InternalService(service=INCONSISTENT_SWEEP_SERVICE, user_id=candidate.owner_id)
            item = await self._reprocess(candidate.photo_id, caller)
            item.issue = candidate.issue
            items.append(item)

        result = self._summarize("inconsistent", report.scanned, items)
        logger.info(
            "scanner.inconsistent.completed",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def fail_orphaned_processing(self) -> int:
        """Fail PROCESSING claims older than the staleness threshold.

        Returns:
            Number of photos moved to FAILED
        """
        async with await self.uow_factory() as uow:
            count = await uow.photos.fail_orphaned_processing(self.stale_cutoff())
        if count:
            logger.warning("scanner.orphaned_processing_failed", count=count)
        return count

    async def _reprocess(self, photo_id: UUID, caller: InternalService) -> SweepItem:
        try:
            outcome = await self.orchestrator.enhance(photo_id, caller)
        except PipelineError as e:
            logger.warning(
                "scanner.item_failed",
                photo_id=str(photo_id),
                caller=caller.label,
                error_code=e.code,
                error=e.message,
            )
            return SweepItem(
                photo_id=photo_id,
                succeeded=False,
                status=await self._current_status(photo_id),
                error_code=e.code,
                error_detail=e.message,
            )
        except Exception as e:
            logger.exception(
                "scanner.item_error",
                photo_id=str(photo_id),
                caller=caller.label,
                error_type=type(e).__name__,
            )
            return SweepItem(
                photo_id=photo_id, succeeded=False, error_code="INTERNAL", error_detail=str(e)
            )

        return SweepItem(
            photo_id=photo_id,
            succeeded=True,
            status=outcome.status.value,
            result_ref=outcome.result_ref,
        )

    async def _current_status(self, photo_id: UUID) -> str | None:
        try:
            async with await self.uow_factory() as uow:
                photo = await uow.photos.get_by_id(photo_id)
        except SQLAlchemyError as e:
            logger.warning(
                "scanner.status_lookup_failed", photo_id=str(photo_id), error=str(e)
            )
            return None
        return photo.status.value if photo else None

    @staticmethod
    def _summarize(
        sweep: str, scanned: int, items: list[SweepItem], cutoff: datetime | None = None
    ) -> SweepResult:
        succeeded = sum(1 for item in items if item.succeeded)
        return SweepResult(
            sweep=sweep,
            scanned=scanned,
            processed=len(items),
            succeeded=succeeded,
            failed=len(items) - succeeded,
            items=items,
            cutoff=cutoff,
        )
