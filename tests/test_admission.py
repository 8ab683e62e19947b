"""Admission controller tests.

Tests focus on the credit and validation gate in front of the pipeline:
- Accepted uploads create a PENDING photo and debit exactly one credit
- Rejected uploads leave no photo and no debit behind
- Unlimited (ADMIN) accounts are never debited
"""

import asyncio
from uuid import uuid4

import pytest
from fakes import JPEG_BYTES, PNG_BYTES

from pixelift.models.photo import PhotoStatus
from pixelift.models.user import UserRole
from pixelift.services.admission import AdmissionController
from pixelift.services.exceptions import (
    InsufficientCreditsError,
    InvalidFileError,
    StorageError,
    UnauthorizedError,
)


@pytest.fixture
def admission(uow_factory, blob_store):
    return AdmissionController(uow_factory, blob_store, purchase_url="/pricing")


async def count_photos(uow_factory, owner_id) -> int:
    async with await uow_factory() as uow:
        _, total = await uow.photos.list_by_owner(owner_id)
    return total


@pytest.mark.asyncio
async def test_submit_creates_pending_photo_and_debits(
    admission, uow_factory, blob_store, make_user
):
    user = await make_user(credits=1)

    result = await admission.submit(
        user.id, JPEG_BYTES, "image/jpeg", filename="me.jpg", title=" Portrait "
    )

    assert result.credits_remaining == 0
    assert result.unlimited is False
    async with await uow_factory() as uow:
        photo = await uow.photos.get_by_id(result.photo_id)
        assert await uow.users.get_balance(user.id) == 0

    assert photo.status == PhotoStatus.PENDING
    assert photo.owner_id == user.id
    assert photo.result_ref is None
    assert photo.title == "Portrait"
    assert photo.original_filename == "me.jpg"
    assert photo.size_bytes == len(JPEG_BYTES)
    assert photo.source_sha256 is not None
    assert blob_store.blobs[photo.source_ref] == JPEG_BYTES
    assert blob_store.names[photo.source_ref] == f"{photo.id}.jpg"


@pytest.mark.asyncio
async def test_zero_balance_is_rejected_without_side_effects(
    admission, uow_factory, blob_store, make_user
):
    user = await make_user(credits=0)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await admission.submit(user.id, JPEG_BYTES, "image/jpeg")

    assert exc_info.value.to_dict()["purchase_url"] == "/pricing"
    assert exc_info.value.status_code == 402
    assert await count_photos(uow_factory, user.id) == 0
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_invalid_file_is_rejected_before_balance_check(
    admission, uow_factory, blob_store, make_user
):
    user = await make_user(credits=1)

    with pytest.raises(InvalidFileError):
        await admission.submit(user.id, PNG_BYTES, "image/jpeg")

    async with await uow_factory() as uow:
        assert await uow.users.get_balance(user.id) == 1
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_unknown_owner_is_unauthorized(admission):
    with pytest.raises(UnauthorizedError):
        await admission.submit(uuid4(), JPEG_BYTES, "image/jpeg")


@pytest.mark.asyncio
async def test_unlimited_account_is_not_debited(admission, uow_factory, make_user):
    admin = await make_user(credits=0, role=UserRole.ADMIN)

    first = await admission.submit(admin.id, JPEG_BYTES, "image/jpeg")
    second = await admission.submit(admin.id, PNG_BYTES, "image/png")

    assert first.unlimited and second.unlimited
    assert second.credits_remaining == 0
    assert await count_photos(uow_factory, admin.id) == 2
    async with await uow_factory() as uow:
        assert await uow.users.get_balance(admin.id) == 0


@pytest.mark.asyncio
async def test_storage_failure_creates_nothing(admission, uow_factory, blob_store, make_user):
    user = await make_user(credits=1)
    blob_store.put_error = StorageError("Pinata unavailable")

    with pytest.raises(StorageError):
        await admission.submit(user.id, JPEG_BYTES, "image/jpeg")

    assert await count_photos(uow_factory, user.id) == 0
    async with await uow_factory() as uow:
        assert await uow.users.get_balance(user.id) == 1


@pytest.mark.asyncio
async def test_concurrent_uploads_with_one_credit(admission, uow_factory, make_user):
    """Two uploads racing for the last credit: one photo, balance 0, one rejection."""
    user = await make_user(credits=1)

    results = await asyncio.gather(
        admission.submit(user.id, JPEG_BYTES, "image/jpeg"),
        admission.submit(user.id, PNG_BYTES, "image/png"),
        return_exceptions=True,
    )

    accepted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, InsufficientCreditsError)]
    assert len(accepted) == 1
    assert len(rejected) == 1
    assert await count_photos(uow_factory, user.id) == 1
    async with await uow_factory() as uow:
        assert await uow.users.get_balance(user.id) == 0
