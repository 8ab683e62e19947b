"""Caller identities resolved once at the HTTP boundary.

Services receive one of three caller variants instead of raw headers:

- EndUser: an authenticated account acting on its own photos
- InternalService: a trusted backend job, optionally acting for a user
- AdminToken: an operator holding the internal API key
"""

import hmac
from dataclasses import dataclass
from uuid import UUID

from pixelift.core.config import Settings
from pixelift.services.exceptions import UnauthorizedError
from pixelift.services.session_token import verify_session_token

ALLOWED_INTERNAL_SERVICES = frozenset(
    {
        "upload-service",
        "cron-processor",
        "legacy-cleanup",
        "stuck-photo-monitor",
        "stuck-completed-fixer",
    }
)


@dataclass(frozen=True)
class EndUser:
    user_id: UUID

    @property
    def label(self) -> str:
        return "user"


@dataclass(frozen=True)
class InternalService:
    service: str
    user_id: UUID | None = None

    @property
    def label(self) -> str:
        return self.service


@dataclass(frozen=True)
class AdminToken:
    @property
    def label(self) -> str:
        return "admin"


Caller = EndUser | InternalService | AdminToken


def resolve_caller(
    settings: Settings,
    authorization: str | None = None,
    internal_service: str | None = None,
    internal_token: str | None = None,
    user_id: str | None = None,
) -> Caller:
    """Resolve request credentials into a caller identity.

    Args:
        settings: Application settings holding the shared secrets
        authorization: Authorization header value
        internal_service: X-Internal-Service header value
        internal_token: X-Internal-Token header value
        user_id: X-User-Id header value (internal callers acting for a user)

    Returns:
        EndUser, InternalService or AdminToken

    Raises:
        UnauthorizedError: If no credential checks out
    """
    if internal_service:
        secret = settings.internal_service_secret
        if (
            internal_service in ALLOWED_INTERNAL_SERVICES
            and secret
            and internal_token
            and hmac.compare_digest(internal_token.encode(), secret.encode())
        ):
            acting_for = None
            if user_id:
                try:
                    acting_for = UUID(user_id)
                except ValueError as e:
                    raise UnauthorizedError("Invalid X-User-Id header") from e
            return InternalService(service=internal_service, user_id=acting_for)
        raise UnauthorizedError("Unknown internal service or invalid internal token")

    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if settings.internal_api_key and hmac.compare_digest(
            token.encode(), settings.internal_api_key.encode()
        ):
            return AdminToken()

        session_user = verify_session_token(token, settings.session_secret)
        if session_user is not None:
            return EndUser(user_id=session_user)

    raise UnauthorizedError()


def is_privileged(caller: Caller) -> bool:
    """True for internal services and admin tokens (scanner and recovery access)."""
    return isinstance(caller, (InternalService, AdminToken))
