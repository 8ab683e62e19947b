"""Recovery worker tests."""

import asyncio
from datetime import timedelta

import pytest

from pixelift.core.config import Settings
from pixelift.core.timezone import utcnow
from pixelift.models.photo import PhotoStatus
from pixelift.services.orchestrator import EnhancementOrchestrator
from pixelift.services.scanner import StuckJobScanner
from pixelift.workers import run_recovery_cycle, run_recovery_worker


@pytest.fixture
def scanner(uow_factory, enhancement_service, blob_store):
    orchestrator = EnhancementOrchestrator(uow_factory, enhancement_service, blob_store)
    return StuckJobScanner(uow_factory, orchestrator, stale_after_seconds=300)


async def status_of(uow_factory, photo_id) -> PhotoStatus:
    async with await uow_factory() as uow:
        return (await uow.photos.get_by_id(photo_id)).status


@pytest.mark.asyncio
async def test_cycle_runs_both_sweeps(scanner, uow_factory, blob_store, make_user, make_photo):
    user = await make_user()
    stale = await make_photo(user, created_at=utcnow() - timedelta(minutes=10))
    source_ref = await blob_store.put(b"\xff\xd8\xff" + b"\x07" * 2048, "s.jpg", "image/jpeg")
    bogus = await make_photo(
        user, PhotoStatus.COMPLETED, source_ref=source_ref, result_ref=source_ref
    )

    await run_recovery_cycle(scanner)

    assert await status_of(uow_factory, stale.id) == PhotoStatus.COMPLETED
    async with await uow_factory() as uow:
        repaired = await uow.photos.get_by_id(bogus.id)
    assert repaired.result_ref != repaired.source_ref


@pytest.mark.asyncio
async def test_worker_fails_orphans_then_sweeps_until_cancelled(
    scanner, uow_factory, make_user, make_photo
):
    user = await make_user()
    orphan = await make_photo(
        user, PhotoStatus.PROCESSING, updated_at=utcnow() - timedelta(minutes=30)
    )
    stale = await make_photo(user, created_at=utcnow() - timedelta(minutes=10))
    settings = Settings()  # type: ignore[call-arg]
    settings = settings.model_copy(update={"scan_interval_seconds": 3600})

    task = asyncio.create_task(run_recovery_worker(scanner, settings))
    for _ in range(100):
        if await status_of(uow_factory, stale.id) == PhotoStatus.COMPLETED:
            break
        await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await status_of(uow_factory, stale.id) == PhotoStatus.COMPLETED
    # The orphan was failed at startup, then left for its owner to retry
    assert await status_of(uow_factory, orphan.id) == PhotoStatus.FAILED
