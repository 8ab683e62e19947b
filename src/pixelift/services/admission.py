"""Admission of new photo uploads.

Validates the file, checks the owner's credit balance, stores the source
image and creates the PENDING photo together with the credit debit.
"""

import hashlib
from dataclasses import dataclass
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import SQLAlchemyError

from pixelift.models.photo import Photo, PhotoStatus
from pixelift.services.exceptions import (
    InsufficientCreditsError,
    StorageError,
    UnauthorizedError,
)
from pixelift.services.image_validation import FILE_EXTENSIONS, validate_image_file
from pixelift.services.storage.base import BlobStore
from pixelift.uow import UowFactory

logger = structlog.get_logger()


@dataclass
class AdmissionResult:
    """Outcome of an accepted upload."""

    photo_id: UUID
    credits_remaining: int  # informational only for unlimited accounts
    unlimited: bool


class AdmissionController:
    """Accepts uploads and charges one credit per created photo."""

    def __init__(
        self,
        uow_factory: UowFactory,
        blob_store: BlobStore,
        min_file_bytes: int = 1024,
        max_file_bytes: int = 10 * 1024 * 1024,
        purchase_url: str | None = None,
    ):
        self.uow_factory = uow_factory
        self.blob_store = blob_store
        self.min_file_bytes = min_file_bytes
        self.max_file_bytes = max_file_bytes
        self.purchase_url = purchase_url

    async def submit(
        self,
        owner_id: UUID,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
        title: str | None = None,
        description: str | None = None,
    ) -> AdmissionResult:
        """Admit an upload as a new PENDING photo.

        Nothing is written when validation or the balance check fails. The
        photo insert and the credit debit commit in one transaction; if the
        debit loses a race against a concurrent upload the insert is rolled
        back and the already stored source blob is left unreferenced.

        Args:
            owner_id: Authenticated uploader
            data: Raw file bytes
            content_type: MIME type declared by the client
            filename: Original client file name
            title: Optional photo title
            description: Optional photo description

        Returns:
            AdmissionResult with the new photo ID and remaining credits

        Raises:
            InvalidFileError: File size or type rejected
            UnauthorizedError: Owner account does not exist
            InsufficientCreditsError: Balance below one credit
            StorageError: Source upload or record write failed
        """
        mime_type = validate_image_file(
            data, content_type, self.min_file_bytes, self.max_file_bytes
        )

        async with await self.uow_factory() as uow:
            user = await uow.users.get_by_id(owner_id)
        if user is None:
            raise UnauthorizedError("User account not found")
        unlimited = user.is_unlimited
        if not unlimited and user.credits < 1:
            logger.info("admission.rejected", owner_id=str(owner_id), credits=user.credits)
            raise InsufficientCreditsError(purchase_url=self.purchase_url)

        photo_id = uuid4()
        source_ref = await self.blob_store.put(
            data, f"{photo_id}{FILE_EXTENSIONS[mime_type]}", mime_type
        )

        try:
            async with await self.uow_factory() as uow:
                await uow.photos.add(
                    Photo(
                        id=photo_id,
                        owner_id=owner_id,
                        source_ref=source_ref,
                        status=PhotoStatus.PENDING,
                        title=(title or "").strip() or None,
                        description=(description or "").strip() or None,
                        original_filename=filename,
                        content_type=mime_type,
                        size_bytes=len(data),
                        source_sha256=hashlib.sha256(data).hexdigest(),
                    )
                )

                if unlimited:
                    remaining = user.credits
                else:
                    balance = await uow.users.debit(owner_id)
                    if balance is None:
                        raise InsufficientCreditsError(purchase_url=self.purchase_url)
                    remaining = balance

        except InsufficientCreditsError:
            logger.warning(
                "admission.debit_lost_race",
                owner_id=str(owner_id),
                photo_id=str(photo_id),
                orphaned_blob=source_ref,
            )
            raise
        except SQLAlchemyError as e:
            logger.error(
                "admission.record_failed",
                owner_id=str(owner_id),
                photo_id=str(photo_id),
                orphaned_blob=source_ref,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError("Failed to save photo record") from e

        logger.info(
            "admission.accepted",
            photo_id=str(photo_id),
            owner_id=str(owner_id),
            size_bytes=len(data),
            content_type=mime_type,
            credits_remaining=remaining,
            unlimited=unlimited,
        )
        return AdmissionResult(photo_id=photo_id, credits_remaining=remaining, unlimited=unlimited)
