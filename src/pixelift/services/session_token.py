"""HMAC session tokens for end-user authentication.

Session tokens are issued by the account service, which shares
SESSION_SECRET with this backend. A token has the form
``<user_id>.<hex HMAC-SHA256 of user_id>``; this module only issues tokens
for tests and support tooling, and verifies them on every request.
"""

import hashlib
import hmac
from uuid import UUID


def _sign(payload: str, secret: str) -> str:
    return hmac.new(
        key=secret.encode("utf-8"), msg=payload.encode("utf-8"), digestmod=hashlib.sha256
    ).hexdigest()


def issue_session_token(user_id: UUID, secret: str) -> str:
    """Build a session token for ``user_id``.

    Args:
        user_id: Account the token authenticates
        secret: Shared signing key (SESSION_SECRET)

    Returns:
        Token string ``<user_id>.<signature>``
    """
    payload = str(user_id)
    return f"{payload}.{_sign(payload, secret)}"


def verify_session_token(token: str, secret: str) -> UUID | None:
    """Verify a session token and extract the user ID.

    Args:
        token: Bearer token from the Authorization header
        secret: Shared signing key (SESSION_SECRET)

    Returns:
        Authenticated user ID, or None if the token is malformed, the
        signature does not match, or no secret is configured

    Security:
        Uses hmac.compare_digest() for constant-time comparison.
    """
    if not secret or "." not in token:
        return None

    payload, _, signature = token.rpartition(".")
    expected = _sign(payload, secret)
    if not hmac.compare_digest(expected.encode(), signature.lower().encode()):
        return None

    try:
        return UUID(payload)
    except ValueError:
        return None
