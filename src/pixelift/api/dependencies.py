"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Caller resolution (end users, internal services, admin token)
- Access to app-scoped resources (UoW factory, collaborator adapters)
- Construction of pipeline services from settings
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from pixelift.core.config import Settings
from pixelift.services.admission import AdmissionController
from pixelift.services.caller import Caller, EndUser, is_privileged, resolve_caller
from pixelift.services.dispatcher import TriggerDispatcher
from pixelift.services.enhancement.base import EnhancementService
from pixelift.services.exceptions import PipelineError, UnauthorizedError
from pixelift.services.orchestrator import EnhancementOrchestrator
from pixelift.services.scanner import StuckJobScanner
from pixelift.services.status import StatusQueryService
from pixelift.services.storage.base import BlobStore
from pixelift.uow import UowFactory


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def to_http_error(error: PipelineError) -> HTTPException:
    """Translate a pipeline error into an HTTP error with a typed body.

    The response body is ``{"detail": {"code": ..., "message": ...}}``.
    """
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def get_uow_factory(request: Request) -> UowFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.photos.get_by_id(photo_id)
    """
    return request.app.state.uow_factory


def get_enhancement_service(request: Request) -> EnhancementService:
    """Get the enhancement service adapter from app state."""
    return request.app.state.enhancement_service


def get_blob_store(request: Request) -> BlobStore:
    """Get the object store adapter from app state."""
    return request.app.state.blob_store


def get_caller(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
    x_internal_service: Annotated[str | None, Header()] = None,
    x_internal_token: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Caller:
    """Resolve the request's credentials into a caller identity.

    Raises:
        HTTPException: 401 Unauthorized if no credential checks out
    """
    try:
        return resolve_caller(
            settings,
            authorization=authorization,
            internal_service=x_internal_service,
            internal_token=x_internal_token,
            user_id=x_user_id,
        )
    except UnauthorizedError as e:
        raise to_http_error(e)


def get_end_user(caller: Annotated[Caller, Depends(get_caller)]) -> EndUser:
    """Require an authenticated end user."""
    if not isinstance(caller, EndUser):
        raise to_http_error(UnauthorizedError("User session required"))
    return caller


def get_privileged_caller(caller: Annotated[Caller, Depends(get_caller)]) -> Caller:
    """Require an internal service or the admin token."""
    if not is_privileged(caller):
        raise to_http_error(UnauthorizedError("Internal service or admin token required"))
    return caller


def get_orchestrator(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
    enhancement_service: Annotated[EnhancementService, Depends(get_enhancement_service)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> EnhancementOrchestrator:
    return EnhancementOrchestrator(
        uow_factory=uow_factory,
        enhancement_service=enhancement_service,
        blob_store=blob_store,
        processing_budget_seconds=settings.processing_budget_seconds,
    )


def get_admission_controller(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AdmissionController:
    return AdmissionController(
        uow_factory=uow_factory,
        blob_store=blob_store,
        min_file_bytes=settings.min_file_bytes,
        max_file_bytes=settings.max_file_bytes,
        purchase_url=settings.purchase_url,
    )


def get_dispatcher(
    orchestrator: Annotated[EnhancementOrchestrator, Depends(get_orchestrator)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TriggerDispatcher:
    return TriggerDispatcher(
        orchestrator,
        max_attempts=settings.trigger_max_attempts,
        backoff_seconds=settings.trigger_backoff_seconds,
    )


def get_scanner(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
    orchestrator: Annotated[EnhancementOrchestrator, Depends(get_orchestrator)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StuckJobScanner:
    return StuckJobScanner(
        uow_factory,
        orchestrator,
        stale_after_seconds=settings.stale_after_seconds,
        batch_size=settings.recovery_batch_size,
        scan_window=settings.inconsistent_scan_window,
    )


def get_status_service(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StatusQueryService:
    return StatusQueryService(
        uow_factory,
        expected_processing_seconds=settings.expected_processing_seconds,
        poll_interval_seconds=settings.client_poll_interval_seconds,
        poll_timeout_seconds=settings.client_poll_timeout_seconds,
    )
