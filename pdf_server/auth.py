"""
Authentication Module

Optional bearer-token authentication using a shared secret.
When BEARER_AUTH_SECRET_KEY is unset every request is allowed.
"""

import logging
import secrets
from typing import Optional

from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthFailure

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


async def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[HTTPAuthorizationCredentials]:
    """
    Verify the shared secret bearer token.

    Args:
        request: Incoming request (settings are read from app state)
        credentials: Bearer token from the Authorization header

    Returns:
        The credentials if valid, or None when auth is disabled

    Raises:
        AuthFailure: 401 if the token is missing or does not match
    """
    expected_secret = request.app.state.settings.bearer_auth_secret_key
    if not expected_secret:
        return credentials

    if credentials is None:
        raise AuthFailure("missing authorization bearer token")

    if not secrets.compare_digest(credentials.credentials.encode(), expected_secret.encode()):
        logger.warning(f"Rejected invalid bearer token for {request.method} {request.url.path}")
        raise AuthFailure("invalid authorization bearer token")

    return credentials
