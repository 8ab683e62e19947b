"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

import pytest

from pixelift.models.photo import Photo
from pixelift.models.user import User


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Changes made within the context persist after the context exits."""
    async with await uow_factory() as uow:
        user = await uow.users.add(User(email="Commit@Example.com", credits=3))
        user_id = user.id

    async with await uow_factory() as uow:
        found = await uow.users.get_by_id(user_id)
        assert found is not None
        assert found.email == "commit@example.com"
        assert found.credits == 3


@pytest.mark.asyncio
async def test_uow_rolls_back_on_exception(uow_factory):
    """An exception inside the context discards every change."""
    user_id = None

    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            user = await uow.users.add(User(email="rollback@example.com", credits=1))
            user_id = user.id
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.users.get_by_id(user_id) is None


@pytest.mark.asyncio
async def test_photo_insert_and_debit_are_atomic(uow_factory, make_user):
    """A failure after the debit rolls back both the photo and the debit."""
    user = await make_user(credits=1)

    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            photo = await uow.photos.add(
                Photo(
                    owner_id=user.id,
                    source_ref="https://blobs.test/ipfs/a",
                    content_type="image/jpeg",
                    size_bytes=2048,
                )
            )
            assert await uow.users.debit(user.id) == 0
            raise RuntimeError("crash after debit")

    async with await uow_factory() as uow:
        assert await uow.photos.get_by_id(photo.id) is None
        assert await uow.users.get_balance(user.id) == 1
