"""Pipeline error hierarchy.

Every error carries a stable ``code`` reported to clients and stored on the
photo, and the HTTP ``status_code`` the route layer answers with:

- PipelineError: Base for all pipeline errors
- Admission/query errors: surfaced synchronously to the caller
- Enhancement errors: classify why an enhancement attempt ended in FAILED
"""


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self) -> dict:
        """Serialize for HTTP error bodies and sweep reports."""
        return {"code": self.code, "message": self.message}


class UnauthorizedError(PipelineError):
    """Authentication required."""

    code = "UNAUTHORIZED"
    status_code = 401


class InvalidFileError(PipelineError):
    """Uploaded file violates size or type constraints."""

    code = "INVALID_FILE"
    status_code = 400


class InsufficientCreditsError(PipelineError):
    """Insufficient credits. Please purchase more credits to continue."""

    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, message: str = "", purchase_url: str | None = None):
        super().__init__(message)
        self.purchase_url = purchase_url

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.purchase_url:
            data["purchase_url"] = self.purchase_url
        return data


class NotFoundError(PipelineError):
    """Photo not found."""

    code = "PHOTO_NOT_FOUND"
    status_code = 404


class AlreadyProcessingError(PipelineError):
    """Photo is already being processed."""

    code = "ALREADY_PROCESSING"
    status_code = 409


class AlreadyTerminalError(PipelineError):
    """Photo is in a terminal state and cannot be claimed."""

    code = "ALREADY_TERMINAL"
    status_code = 409


# Enhancement failure classification
class EnhancementError(PipelineError):
    """Base exception for errors that fail an enhancement attempt."""

    pass


class UpstreamTimeoutError(EnhancementError):
    """Processing time budget exceeded."""

    code = "PROCESSING_TIMEOUT"
    status_code = 408


class UpstreamServiceError(EnhancementError):
    """Enhancement service failed."""

    code = "AI_SERVICE_ERROR"
    status_code = 502


class FetchError(EnhancementError):
    """Source image could not be fetched."""

    code = "IMAGE_FETCH_FAILED"
    status_code = 502


class StorageError(EnhancementError):
    """Object store or record store write failed."""

    code = "STORAGE_ERROR"
    status_code = 503


class InternalError(EnhancementError):
    """Unexpected internal error."""

    code = "INTERNAL"
    status_code = 500
