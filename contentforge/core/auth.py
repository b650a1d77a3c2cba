"""Authentication dependency.

The job API only needs a stable principal identifier. ``require_auth``
verifies the bearer token and returns an ``AuthContext``; user accounts,
registration and login live in a separate service that issues the tokens.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .token_factory import decode_token
from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Resolved authenticated principal."""

    user_id: str
    username: str = ""


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthContext:
    """Require a valid JWT and return the caller's AuthContext."""
    if credentials is None:
        logger.warning("Missing Authorization header")
        raise AuthenticationError("Missing authentication token")

    payload = decode_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if payload is None:
        logger.warning("Token verification failed")
        raise AuthenticationError("Invalid or expired token")

    return AuthContext(user_id=payload.sub, username=payload.username)
