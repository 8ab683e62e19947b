"""Recovery worker for photos the enhancement pipeline lost track of.

Runs the stuck-job scanner on a fixed interval:
- At startup, fails PROCESSING claims abandoned by a crashed process
- Every SCAN_INTERVAL_SECONDS, re-triggers stale PENDING photos and repairs
  COMPLETED photos whose result is inconsistent
"""

import asyncio

import structlog

from pixelift.core.config import Settings
from pixelift.services.scanner import StuckJobScanner

logger = structlog.get_logger()


async def run_recovery_cycle(scanner: StuckJobScanner) -> None:
    """Run both sweeps once."""
    stale = await scanner.recover_stale()
    inconsistent = await scanner.recover_inconsistent()

    if stale.processed or inconsistent.processed:
        logger.info(
            "worker.recovery_cycle",
            stale_processed=stale.processed,
            stale_failed=stale.failed,
            inconsistent_processed=inconsistent.processed,
            inconsistent_failed=inconsistent.failed,
        )


async def run_recovery_worker(scanner: StuckJobScanner, settings: Settings) -> None:
    """Main worker loop for stuck-photo recovery.

    Workflow:
    1. Run startup recovery (fail orphaned PROCESSING photos)
    2. Run both sweeps, then wait SCAN_INTERVAL_SECONDS
    3. Handle CancelledError for graceful shutdown

    Args:
        scanner: Stuck-job scanner wired to the orchestrator
        settings: Application settings (scan interval)
    """
    # Startup recovery: fail orphaned claims so owners can retry them
    await scanner.fail_orphaned_processing()

    logger.info(
        "worker.started",
        worker="recovery",
        scan_interval=settings.scan_interval_seconds,
        stale_after_seconds=settings.stale_after_seconds,
    )

    try:
        while True:
            try:
                await run_recovery_cycle(scanner)

                # Wait for next scan
                await asyncio.sleep(settings.scan_interval_seconds)

            except asyncio.CancelledError:
                # Propagate cancellation for graceful shutdown
                raise

            except Exception as e:
                # Unexpected error in scan loop - log and continue with backoff
                logger.error(
                    "worker.error",
                    worker="recovery",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        # Graceful shutdown
        logger.info("worker.stopped", worker="recovery")
        raise
