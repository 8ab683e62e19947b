"""Trigger dispatcher - starts enhancement right after an upload is admitted."""

import asyncio
from dataclasses import dataclass
from uuid import UUID

import structlog

from pixelift.services.caller import Caller
from pixelift.services.exceptions import (
    AlreadyProcessingError,
    AlreadyTerminalError,
    NotFoundError,
    PipelineError,
)
from pixelift.services.orchestrator import EnhancementOrchestrator

logger = structlog.get_logger()


@dataclass
class DispatchResult:
    """Summary of one dispatch run."""

    photo_id: UUID
    attempts: int
    succeeded: bool  # the orchestrator completed the photo
    handed_off: bool = False  # photo already left PENDING; someone else owns it
    last_error_code: str | None = None
    warning: str | None = None


class TriggerDispatcher:
    """Invokes the orchestrator with bounded retries and linear backoff.

    Never raises: a photo that could not be triggered stays in the database
    and is picked up later by the stuck-job scanner.
    """

    def __init__(
        self,
        orchestrator: EnhancementOrchestrator,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ):
        self.orchestrator = orchestrator
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    async def dispatch(self, photo_id: UUID, caller: Caller) -> DispatchResult:
        """Trigger enhancement of a freshly admitted photo.

        Attempt ``n`` that fails is followed by a delay of ``n * backoff_seconds``.

        Args:
            photo_id: Photo to enhance
            caller: Identity the orchestrator sees

        Returns:
            DispatchResult describing how the run ended
        """
        log = logger.bind(photo_id=str(photo_id), caller=caller.label)
        last_error_code: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.orchestrator.enhance(photo_id, caller)
                log.info("dispatcher.triggered", attempt=attempt)
                return DispatchResult(photo_id=photo_id, attempts=attempt, succeeded=True)

            except (AlreadyProcessingError, AlreadyTerminalError) as e:
                log.info("dispatcher.handed_off", attempt=attempt, reason=e.code)
                return DispatchResult(
                    photo_id=photo_id, attempts=attempt, succeeded=False, handed_off=True
                )

            except NotFoundError as e:
                log.warning("dispatcher.photo_missing", attempt=attempt)
                return DispatchResult(
                    photo_id=photo_id, attempts=attempt, succeeded=False, last_error_code=e.code
                )

            except PipelineError as e:
                last_error_code = e.code
                log.warning(
                    "dispatcher.attempt_failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error_code=e.code,
                    error=e.message,
                )

            except Exception as e:
                last_error_code = "INTERNAL"
                log.exception(
                    "dispatcher.attempt_error",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error_type=type(e).__name__,
                )

            if attempt < self.max_attempts:
                await asyncio.sleep(attempt * self.backoff_seconds)

        warning = "Enhancement could not be started; it will retry automatically"
        log.warning(
            "dispatcher.exhausted",
            attempts=self.max_attempts,
            last_error_code=last_error_code,
            message=warning,
        )
        return DispatchResult(
            photo_id=photo_id,
            attempts=self.max_attempts,
            succeeded=False,
            last_error_code=last_error_code,
            warning=warning,
        )
