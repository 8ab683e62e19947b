"""Photo enhancement API endpoints.

This module implements the REST surface of the enhancement pipeline:
- POST /photos - Upload a photo (one credit) and start enhancement
- POST /photos/enhance - Run or retry enhancement of a photo
- GET /photos/status - Poll enhancement progress
- GET|POST /photos/recover/stale - Preview or recover stale PENDING photos
- GET|POST /photos/recover/inconsistent - Preview or repair bad COMPLETED photos
- GET /photos, GET|PATCH /photos/{photo_id} - Owner's photo library

Error responses carry ``{"detail": {"code": ..., "message": ...}}``.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Query,
    UploadFile,
    status,
)
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pixelift.api.dependencies import (
    get_admission_controller,
    get_caller,
    get_dispatcher,
    get_end_user,
    get_orchestrator,
    get_privileged_caller,
    get_scanner,
    get_status_service,
    get_uow_factory,
    to_http_error,
)
from pixelift.models.photo import Photo, PhotoStatus
from pixelift.services.admission import AdmissionController
from pixelift.services.caller import Caller, EndUser, InternalService
from pixelift.services.dispatcher import TriggerDispatcher
from pixelift.services.exceptions import NotFoundError, PipelineError
from pixelift.services.orchestrator import EnhancementOrchestrator
from pixelift.services.scanner import StuckJobScanner
from pixelift.services.status import StatusQueryService
from pixelift.uow import UowFactory

logger = structlog.get_logger()
router = APIRouter(prefix="/photos", tags=["photos"])

UPLOAD_SERVICE = "upload-service"


# Request/Response Models


class CamelModel(BaseModel):
    """Base model serializing field names in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class UploadResponse(CamelModel):
    job_id: UUID = Field(..., description="ID of the created photo (enhancement job)")
    message: str
    credits_remaining: int = Field(
        ..., description="Balance after the debit (informational for unlimited accounts)"
    )
    unlimited: bool = Field(default=False, description="True if the account is never debited")


class EnhanceRequest(CamelModel):
    job_id: UUID = Field(..., description="Photo to enhance")


class MetricsDTO(CamelModel):
    total_time_seconds: float
    processing_time_seconds: float
    original_size_bytes: int
    enhanced_size_bytes: int
    confidence: float | None = None
    analysis: dict = Field(default_factory=dict)


class EnhanceResponse(CamelModel):
    job_id: UUID = Field(..., validation_alias=AliasChoices("jobId", "job_id", "photo_id"))
    status: PhotoStatus
    result_ref: str | None = None
    metrics: MetricsDTO
    already_completed: bool = Field(
        default=False, description="True if the photo was already enhanced (nothing was run)"
    )


class StatusResponse(CamelModel):
    job_id: UUID = Field(..., validation_alias=AliasChoices("jobId", "job_id", "photo_id"))
    status: PhotoStatus
    source_ref: str
    result_ref: str | None = None
    title: str | None = None
    is_complete: bool = Field(..., description="True for COMPLETED and FAILED")
    elapsed_seconds: int
    estimated_remaining_seconds: int | None = Field(
        default=None, description="Expected seconds left (null once complete)"
    )
    last_updated: datetime
    last_error_code: str | None = None
    poll_interval_seconds: int = Field(..., description="Seconds between client polls")
    poll_timeout_seconds: int = Field(
        ..., description="Client stops polling after this and offers a manual retry"
    )


class StaleCandidateDTO(CamelModel):
    photo_id: UUID
    owner_id: UUID
    created_at: datetime
    stuck_seconds: int


class StaleScanResponse(CamelModel):
    dry_run: bool = True
    count: int = Field(..., description="All stale PENDING photos (not only this batch)")
    cutoff: datetime
    photos: list[StaleCandidateDTO] = Field(
        ..., validation_alias=AliasChoices("photos", "candidates")
    )


class InconsistentCandidateDTO(CamelModel):
    photo_id: UUID
    owner_id: UUID
    issue: str
    source_ref: str
    result_ref: str | None = None


class InconsistentScanResponse(CamelModel):
    dry_run: bool = True
    scanned: int = Field(..., description="COMPLETED photos inspected")
    count: int
    photos: list[InconsistentCandidateDTO] = Field(
        ..., validation_alias=AliasChoices("photos", "candidates")
    )


class SweepItemDTO(CamelModel):
    photo_id: UUID
    succeeded: bool
    status: str | None = None
    result_ref: str | None = None
    issue: str | None = None
    error_code: str | None = None
    error_detail: str | None = None


class SweepResponse(CamelModel):
    sweep: str
    scanned: int
    processed: int
    succeeded: int
    failed: int
    cutoff: datetime | None = None
    results: list[SweepItemDTO] = Field(..., validation_alias=AliasChoices("results", "items"))


class PhotoDTO(CamelModel):
    """Data Transfer Object for a photo in library responses."""

    id: UUID
    status: PhotoStatus
    source_ref: str
    result_ref: str | None = None
    title: str | None = None
    description: str | None = None
    original_filename: str | None = None
    content_type: str
    size_bytes: int
    attempt_count: int
    last_error_code: str | None = None
    created_at: datetime
    updated_at: datetime
    details_updated_at: datetime | None = None


class PhotosResponse(CamelModel):
    photos: list[PhotoDTO]
    total: int = Field(..., description="Total number of photos (across all pages)")
    offset: int
    limit: int


class UpdatePhotoRequest(CamelModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


# API Endpoints


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_photo(
    background_tasks: BackgroundTasks,
    user: Annotated[EndUser, Depends(get_end_user)],
    admission: Annotated[AdmissionController, Depends(get_admission_controller)],
    dispatcher: Annotated[TriggerDispatcher, Depends(get_dispatcher)],
    file: UploadFile = File(...),
    title: str | None = Form(default=None, max_length=255),
    description: str | None = Form(default=None, max_length=2000),
) -> UploadResponse:
    """Upload a photo and start its enhancement.

    One credit is debited per accepted upload (unlimited accounts excepted).
    Enhancement is triggered after the response is sent.

    Errors:
        400 INVALID_FILE, 401 UNAUTHORIZED, 402 INSUFFICIENT_CREDITS, 503 STORAGE_ERROR
    """
    # Anything past the limit is rejected without reading the rest
    data = await file.read(admission.max_file_bytes + 1)
    try:
        result = await admission.submit(
            owner_id=user.user_id,
            data=data,
            content_type=file.content_type,
            filename=file.filename,
            title=title,
            description=description,
        )
    except PipelineError as e:
        raise to_http_error(e)

    background_tasks.add_task(
        dispatcher.dispatch,
        result.photo_id,
        InternalService(service=UPLOAD_SERVICE, user_id=user.user_id),
    )

    return UploadResponse(
        job_id=result.photo_id,
        message="Photo uploaded. Enhancement has started.",
        credits_remaining=result.credits_remaining,
        unlimited=result.unlimited,
    )


@router.post("/enhance", response_model=EnhanceResponse)
async def enhance_photo(
    request: EnhanceRequest,
    caller: Annotated[Caller, Depends(get_caller)],
    orchestrator: Annotated[EnhancementOrchestrator, Depends(get_orchestrator)],
) -> EnhanceResponse:
    """Run enhancement of a PENDING photo or retry a FAILED one.

    Retrying never charges another credit. A photo that is already COMPLETED
    is returned as-is.

    Errors:
        404 PHOTO_NOT_FOUND, 409 ALREADY_PROCESSING / ALREADY_TERMINAL,
        408 PROCESSING_TIMEOUT, 502 AI_SERVICE_ERROR / IMAGE_FETCH_FAILED,
        503 STORAGE_ERROR, 500 INTERNAL
    """
    try:
        outcome = await orchestrator.enhance(request.job_id, caller)
    except PipelineError as e:
        raise to_http_error(e)
    return EnhanceResponse.model_validate(outcome)


@router.get("/status", response_model=StatusResponse)
async def get_photo_status(
    user: Annotated[EndUser, Depends(get_end_user)],
    status_service: Annotated[StatusQueryService, Depends(get_status_service)],
    job_id: UUID = Query(..., alias="jobId"),
) -> StatusResponse:
    """Poll the progress of one of the caller's photos."""
    try:
        view = await status_service.get_status(job_id, user.user_id)
    except PipelineError as e:
        raise to_http_error(e)
    return StatusResponse.model_validate(view)


@router.get("/recover/stale", response_model=StaleScanResponse)
async def preview_stale_photos(
    caller: Annotated[Caller, Depends(get_privileged_caller)],
    scanner: Annotated[StuckJobScanner, Depends(get_scanner)],
) -> StaleScanResponse:
    """List PENDING photos older than the staleness threshold (dry run)."""
    report = await scanner.preview_stale()
    logger.info("scanner.stale.previewed", caller=caller.label, count=report.count)
    return StaleScanResponse.model_validate(report)


@router.post("/recover/stale", response_model=SweepResponse)
async def recover_stale_photos(
    caller: Annotated[Caller, Depends(get_privileged_caller)],
    scanner: Annotated[StuckJobScanner, Depends(get_scanner)],
) -> SweepResponse:
    """Re-trigger enhancement of stale PENDING photos."""
    logger.info("scanner.stale.requested", caller=caller.label)
    result = await scanner.recover_stale()
    return SweepResponse.model_validate(result)


@router.get("/recover/inconsistent", response_model=InconsistentScanResponse)
async def preview_inconsistent_photos(
    caller: Annotated[Caller, Depends(get_privileged_caller)],
    scanner: Annotated[StuckJobScanner, Depends(get_scanner)],
) -> InconsistentScanResponse:
    """List COMPLETED photos whose result is not a real enhancement (dry run)."""
    report = await scanner.preview_inconsistent()
    logger.info("scanner.inconsistent.previewed", caller=caller.label, count=report.count)
    return InconsistentScanResponse.model_validate(report)


@router.post("/recover/inconsistent", response_model=SweepResponse)
async def recover_inconsistent_photos(
    caller: Annotated[Caller, Depends(get_privileged_caller)],
    scanner: Annotated[StuckJobScanner, Depends(get_scanner)],
) -> SweepResponse:
    """Reset inconsistent COMPLETED photos to PENDING and reprocess them."""
    logger.info("scanner.inconsistent.requested", caller=caller.label)
    result = await scanner.recover_inconsistent()
    return SweepResponse.model_validate(result)


@router.get("", response_model=PhotosResponse)
async def list_photos(
    user: Annotated[EndUser, Depends(get_end_user)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
) -> PhotosResponse:
    """List the caller's photos, newest first."""
    async with await uow_factory() as uow:
        photos, total = await uow.photos.list_by_owner(user.user_id, offset=offset, limit=limit)

    return PhotosResponse(
        photos=[PhotoDTO.model_validate(photo) for photo in photos],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{photo_id}", response_model=PhotoDTO)
async def get_photo(
    photo_id: UUID,
    user: Annotated[EndUser, Depends(get_end_user)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> PhotoDTO:
    """Get one of the caller's photos."""
    async with await uow_factory() as uow:
        photo = await uow.photos.get_owned(photo_id, user.user_id)
    if photo is None:
        raise to_http_error(NotFoundError())
    return PhotoDTO.model_validate(photo)


@router.patch("/{photo_id}", response_model=PhotoDTO)
async def update_photo(
    photo_id: UUID,
    request: UpdatePhotoRequest,
    user: Annotated[EndUser, Depends(get_end_user)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> PhotoDTO:
    """Update title and description of one of the caller's photos."""
    async with await uow_factory() as uow:
        photo: Photo | None = await uow.photos.get_owned(photo_id, user.user_id)
        if photo is None:
            raise to_http_error(NotFoundError())
        photo.update_details(request.title, request.description)
        await uow.photos.add(photo)

    logger.info("photo.details_updated", photo_id=str(photo_id), owner_id=str(user.user_id))
    return PhotoDTO.model_validate(photo)
