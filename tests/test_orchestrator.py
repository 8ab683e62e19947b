"""Enhancement orchestrator tests.

Tests focus on the per-photo state machine:
- PENDING/FAILED -> PROCESSING -> COMPLETED with a result distinct from the source
- Every failure path ends in FAILED with a classified error code
- Double claims and re-runs never call the enhancement service twice
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from pixelift.core.timezone import utcnow
from pixelift.models.photo import PhotoStatus
from pixelift.services.caller import AdminToken, EndUser, InternalService
from pixelift.services.exceptions import (
    AlreadyProcessingError,
    AlreadyTerminalError,
    FetchError,
    InternalError,
    NotFoundError,
    StorageError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from pixelift.services.orchestrator import EnhancementOrchestrator


@pytest.fixture
def orchestrator(uow_factory, enhancement_service, blob_store):
    return EnhancementOrchestrator(
        uow_factory, enhancement_service, blob_store, processing_budget_seconds=5.0
    )


async def load(uow_factory, photo_id):
    async with await uow_factory() as uow:
        return await uow.photos.get_by_id(photo_id)


def assert_result_invariant(photo):
    """result_ref is set iff the photo is COMPLETED, and never equals the source."""
    assert (photo.result_ref is not None) == (photo.status == PhotoStatus.COMPLETED)
    assert photo.result_ref != photo.source_ref


@pytest.mark.asyncio
async def test_enhance_completes_pending_photo(
    orchestrator, uow_factory, enhancement_service, blob_store, make_user, make_photo
):
    user = await make_user(credits=0)
    photo = await make_photo(user)

    outcome = await orchestrator.enhance(photo.id, EndUser(user.id))

    assert outcome.status == PhotoStatus.COMPLETED
    assert outcome.result_ref is not None
    assert outcome.result_ref != photo.source_ref
    assert outcome.metrics.confidence == 91.5
    assert outcome.metrics.original_size_bytes == photo.size_bytes
    assert outcome.metrics.enhanced_size_bytes > 0
    assert len(enhancement_service.calls) == 1
    assert blob_store.names[outcome.result_ref] == f"{photo.id}-enhanced.jpg"

    stored = await load(uow_factory, photo.id)
    assert stored.status == PhotoStatus.COMPLETED
    assert stored.result_ref == outcome.result_ref
    assert stored.result_sha256 != stored.source_sha256
    assert stored.attempt_count == 1
    assert_result_invariant(stored)

    async with await uow_factory() as uow:
        attempts = await uow.attempts.get_by_photo(photo.id)
        # Enhancement never touches the ledger
        assert await uow.users.get_balance(user.id) == 0
    assert [a.status for a in attempts] == ["succeeded"]
    assert attempts[0].triggered_by == "user"
    assert attempts[0].service == enhancement_service.model_id


@pytest.mark.asyncio
async def test_completed_consistent_photo_is_a_noop(
    orchestrator, enhancement_service, make_user, make_photo
):
    user = await make_user()
    photo = await make_photo(
        user,
        PhotoStatus.COMPLETED,
        result_ref="https://blobs.test/ipfs/enhanced-cid",
        result_sha256="b" * 64,
        source_sha256="a" * 64,
    )

    outcome = await orchestrator.enhance(photo.id, EndUser(user.id))

    assert outcome.already_completed is True
    assert outcome.result_ref == "https://blobs.test/ipfs/enhanced-cid"
    assert enhancement_service.calls == []


@pytest.mark.asyncio
async def test_completed_inconsistent_photo_is_rejected(
    orchestrator, uow_factory, enhancement_service, make_user, make_photo, blob_store
):
    user = await make_user()
    source_ref = await blob_store.put(b"source", "source.jpg", "image/jpeg")
    photo = await make_photo(
        user, PhotoStatus.COMPLETED, source_ref=source_ref, result_ref=source_ref
    )

    with pytest.raises(AlreadyTerminalError):
        await orchestrator.enhance(photo.id, EndUser(user.id))

    assert enhancement_service.calls == []
    assert (await load(uow_factory, photo.id)).status == PhotoStatus.COMPLETED


@pytest.mark.asyncio
async def test_processing_photo_is_rejected(
    orchestrator, enhancement_service, make_user, make_photo
):
    user = await make_user()
    photo = await make_photo(user, PhotoStatus.PROCESSING)

    with pytest.raises(AlreadyProcessingError):
        await orchestrator.enhance(photo.id, EndUser(user.id))

    assert enhancement_service.calls == []


@pytest.mark.asyncio
async def test_concurrent_enhance_calls_service_once(
    orchestrator, uow_factory, enhancement_service, make_user, make_photo
):
    user = await make_user()
    photo = await make_photo(user)
    enhancement_service.gate = asyncio.Event()

    first = asyncio.create_task(orchestrator.enhance(photo.id, EndUser(user.id)))
    await asyncio.wait_for(enhancement_service.started.wait(), timeout=5)

    with pytest.raises(AlreadyProcessingError):
        await orchestrator.enhance(photo.id, EndUser(user.id))

    enhancement_service.gate.set()
    outcome = await first

    assert outcome.status == PhotoStatus.COMPLETED
    assert len(enhancement_service.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "setup,expected_error,expected_code",
    [
        ("service_error", UpstreamServiceError, "AI_SERVICE_ERROR"),
        ("fetch_error", FetchError, "IMAGE_FETCH_FAILED"),
        ("storage_error", StorageError, "STORAGE_ERROR"),
        ("unchanged_output", UpstreamServiceError, "AI_SERVICE_ERROR"),
        ("empty_output", UpstreamServiceError, "AI_SERVICE_ERROR"),
        ("unexpected_error", InternalError, "INTERNAL"),
    ],
)
async def test_failures_end_in_failed_with_code(
    orchestrator,
    uow_factory,
    enhancement_service,
    blob_store,
    make_user,
    make_photo,
    setup,
    expected_error,
    expected_code,
):
    user = await make_user()
    photo = await make_photo(user)

    if setup == "service_error":
        enhancement_service.error = UpstreamServiceError("Rate limit exceeded: 429")
    elif setup == "fetch_error":
        blob_store.get_error = FetchError("Failed to fetch image (502)")
    elif setup == "storage_error":
        blob_store.put_error = StorageError("Upload failed (503)")
    elif setup == "unchanged_output":
        enhancement_service.output = blob_store.blobs[photo.source_ref]
    elif setup == "empty_output":
        enhancement_service.output = b""
    elif setup == "unexpected_error":
        enhancement_service.error = RuntimeError("boom")

    with pytest.raises(expected_error) as exc_info:
        await orchestrator.enhance(photo.id, EndUser(user.id))

    assert exc_info.value.code == expected_code
    stored = await load(uow_factory, photo.id)
    assert stored.status == PhotoStatus.FAILED
    assert stored.last_error_code == expected_code
    assert_result_invariant(stored)

    async with await uow_factory() as uow:
        attempts = await uow.attempts.get_by_photo(photo.id)
    assert attempts[-1].status == "failed"
    assert attempts[-1].error_code == expected_code


@pytest.mark.asyncio
async def test_budget_exceeded_fails_with_timeout(
    uow_factory, enhancement_service, blob_store, make_user, make_photo
):
    orchestrator = EnhancementOrchestrator(
        uow_factory, enhancement_service, blob_store, processing_budget_seconds=0.05
    )
    user = await make_user()
    photo = await make_photo(user)
    enhancement_service.delay = 2.0

    with pytest.raises(UpstreamTimeoutError):
        await orchestrator.enhance(photo.id, EndUser(user.id))

    stored = await load(uow_factory, photo.id)
    assert stored.status == PhotoStatus.FAILED
    assert stored.last_error_code == "PROCESSING_TIMEOUT"


@pytest.mark.asyncio
async def test_failed_photo_retry_completes_without_new_debit(
    orchestrator, uow_factory, enhancement_service, make_user, make_photo
):
    user = await make_user(credits=0)
    photo = await make_photo(user)
    enhancement_service.error = UpstreamServiceError("Service unavailable")

    with pytest.raises(UpstreamServiceError):
        await orchestrator.enhance(photo.id, EndUser(user.id))

    enhancement_service.error = None
    outcome = await orchestrator.enhance(photo.id, EndUser(user.id))

    assert outcome.status == PhotoStatus.COMPLETED
    stored = await load(uow_factory, photo.id)
    assert stored.attempt_count == 2
    assert stored.last_error_code is None
    async with await uow_factory() as uow:
        assert await uow.users.get_balance(user.id) == 0


@pytest.mark.asyncio
async def test_result_write_conflict_leaves_photo_failed(
    orchestrator, uow_factory, enhancement_service, make_user, make_photo
):
    """The photo left PROCESSING while the service ran: completion is refused."""
    user = await make_user()
    photo = await make_photo(user)
    enhancement_service.gate = asyncio.Event()

    task = asyncio.create_task(orchestrator.enhance(photo.id, EndUser(user.id)))
    await asyncio.wait_for(enhancement_service.started.wait(), timeout=5)
    async with await uow_factory() as uow:
        await uow.photos.fail_orphaned_processing(utcnow() + timedelta(seconds=1))
    enhancement_service.gate.set()

    with pytest.raises(StorageError):
        await task

    stored = await load(uow_factory, photo.id)
    assert stored.status == PhotoStatus.FAILED
    assert_result_invariant(stored)


@pytest.mark.asyncio
async def test_caller_authorization(orchestrator, make_user, make_photo):
    owner = await make_user()
    stranger = await make_user()
    photo = await make_photo(owner)

    with pytest.raises(NotFoundError):
        await orchestrator.enhance(photo.id, EndUser(stranger.id))
    with pytest.raises(NotFoundError):
        await orchestrator.enhance(photo.id, InternalService("cron-processor", stranger.id))
    with pytest.raises(NotFoundError):
        await orchestrator.enhance(uuid4(), AdminToken())

    outcome = await orchestrator.enhance(photo.id, InternalService("cron-processor"))
    assert outcome.status == PhotoStatus.COMPLETED
