"""
Bearer-token gate for render submissions.
"""

import secrets
from typing import Optional

from .errors import UnauthorizedError

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an `Authorization: Bearer <token>` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def verify_bearer_token(authorization: Optional[str], secret: str) -> None:
    """
    Compare the presented bearer token against the configured secret.

    An empty secret rejects every request.

    Raises:
        UnauthorizedError: On a missing, malformed or mismatching credential
    """
    token = extract_bearer_token(authorization)
    if not secret or token is None:
        raise UnauthorizedError("Unauthorized")
    if not secrets.compare_digest(token.encode(), secret.encode()):
        raise UnauthorizedError("Unauthorized")
