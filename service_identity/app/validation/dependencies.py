"""
FastAPI dependencies that establish the caller's identity.
"""

from typing import Optional, Tuple

from fastapi import Request

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context
from .token_verifier import TokenVerifier, VerifiedIdentity

SESSION_COOKIE = "firebase-token"

logger = get_logger("identity.auth")


def extract_token(request: Request) -> Tuple[Optional[str], str]:
    """Return the presented token and where it came from.

    A bearer Authorization header wins; the session cookie is only consulted
    when no bearer header was sent.
    """
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip(), "header"

    return request.cookies.get(SESSION_COOKIE), "cookie"


async def get_auth_user(request: Request) -> VerifiedIdentity:
    """Verify the caller's token and return their identity, or raise 401."""
    verifier: TokenVerifier = request.app.state.token_verifier

    token, source = extract_token(request)
    if not token:
        raise AuthenticationError("No token in header or cookie")

    result = await verifier.verify(token)
    if not result.ok:
        logger.info("Request authentication failed", source=source, failure=result.failure.value)
        raise AuthenticationError(
            f"{source.capitalize()} token verification failed",
            details={"failure": result.failure.value, "reason": result.reason},
        )

    set_user_context(user_id=result.identity.subject_id, auth_source=source)
    return result.identity
