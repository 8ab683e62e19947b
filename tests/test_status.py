"""Status query service tests."""

from datetime import timedelta
from uuid import uuid4

import pytest

from pixelift.core.timezone import utcnow
from pixelift.models.photo import PhotoStatus
from pixelift.services.exceptions import NotFoundError
from pixelift.services.status import StatusQueryService


@pytest.fixture
def status_service(uow_factory):
    return StatusQueryService(
        uow_factory,
        expected_processing_seconds=30,
        poll_interval_seconds=3,
        poll_timeout_seconds=300,
    )


@pytest.mark.asyncio
async def test_pending_photo_reports_estimate(status_service, make_user, make_photo):
    user = await make_user()
    photo = await make_photo(user, created_at=utcnow() - timedelta(seconds=10), title="Beach")

    view = await status_service.get_status(photo.id, user.id)

    assert view.status == PhotoStatus.PENDING
    assert view.is_complete is False
    assert view.result_ref is None
    assert view.title == "Beach"
    assert 10 <= view.elapsed_seconds < 15
    assert 15 < view.estimated_remaining_seconds <= 20
    assert view.poll_interval_seconds == 3
    assert view.poll_timeout_seconds == 300


@pytest.mark.asyncio
async def test_overdue_photo_estimate_floors_at_zero(status_service, make_user, make_photo):
    user = await make_user()
    photo = await make_photo(
        user, PhotoStatus.PROCESSING, created_at=utcnow() - timedelta(minutes=5)
    )

    view = await status_service.get_status(photo.id, user.id)

    assert view.elapsed_seconds >= 300
    assert view.estimated_remaining_seconds == 0


@pytest.mark.asyncio
async def test_completed_photo_freezes_elapsed_time(status_service, make_user, make_photo):
    user = await make_user()
    created = utcnow() - timedelta(minutes=10)
    photo = await make_photo(
        user,
        PhotoStatus.COMPLETED,
        result_ref="https://blobs.test/ipfs/enhanced",
        created_at=created,
        updated_at=created + timedelta(seconds=42),
    )

    view = await status_service.get_status(photo.id, user.id)

    assert view.is_complete is True
    assert view.result_ref == "https://blobs.test/ipfs/enhanced"
    assert view.elapsed_seconds == 42
    assert view.estimated_remaining_seconds is None


@pytest.mark.asyncio
async def test_failed_photo_reports_error_code(status_service, make_user, make_photo):
    user = await make_user()
    photo = await make_photo(user, PhotoStatus.FAILED, last_error_code="PROCESSING_TIMEOUT")

    view = await status_service.get_status(photo.id, user.id)

    assert view.is_complete is True
    assert view.last_error_code == "PROCESSING_TIMEOUT"
    assert view.estimated_remaining_seconds is None


@pytest.mark.asyncio
async def test_other_users_photo_is_not_found(status_service, make_user, make_photo):
    owner = await make_user()
    stranger = await make_user()
    photo = await make_photo(owner)

    with pytest.raises(NotFoundError):
        await status_service.get_status(photo.id, stranger.id)
    with pytest.raises(NotFoundError):
        await status_service.get_status(uuid4(), owner.id)
