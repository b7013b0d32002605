"""
Bearer token dependency. Userinfo uses it, and resource routers mount it the same way
to sit behind the token check.
"""
import logging
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mock_idp.errors import invalid_token
from mock_idp.tokens import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing or not Bearer."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise invalid_token("Authorization header with a Bearer token is required.")
    return credentials.credentials


def verify_access_token(token: str) -> dict:
    """Signature and expiry check. Returns decoded claims or raises the invalid_token error."""
    try:
        return decode_token(token)
    except jwt.ExpiredSignatureError:
        raise invalid_token("Lifetime validation failed, the token is expired.")
    except jwt.InvalidTokenError as e:
        logger.debug("Bearer token rejected: %s", e)
        raise invalid_token("Signature validation failed.")


def get_claims(
    token: Annotated[str, Depends(get_bearer_token)],
) -> dict:
    """Dependency: valid Bearer token -> decoded claims."""
    return verify_access_token(token)
