"""
Access token and ID token builder (HS256 JWTs, v2.0 claim layout) and verification.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt

from mock_idp.config import ACCESS_TOKEN_EXPIRES, ISSUER, JWT_ALGORITHM, OIDC_SCOPES, TENANT_ID
from mock_idp.directory import UserIdentity
from mock_idp.ids import generate_id
from mock_idp.keys import get_signing_secret

logger = logging.getLogger(__name__)


def resource_scopes(scope: str) -> str:
    """Drop OIDC scopes; what remains goes into the access token scp claim."""
    return " ".join(s for s in scope.split() if s not in OIDC_SCOPES)


def _identity_claims(user: UserIdentity, client_id: str, now: datetime, expires_in: int) -> dict:
    claims = {
        "aud": client_id,
        "iss": ISSUER,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        "sub": user.sub,
        "oid": user.sub,
        "tid": TENANT_ID,
        "name": user.name,
        "roles": list(user.roles),
        "uti": generate_id(),
        "ver": "2.0",
    }
    if user.email:
        claims["preferred_username"] = user.email
        claims["email"] = user.email
    return claims


def _encode(payload: dict) -> str:
    return jwt.encode(payload, get_signing_secret(), algorithm=JWT_ALGORITHM, headers={"typ": "JWT"})


def build_access_token(
    user: UserIdentity,
    client_id: str,
    scope: str,
    nonce: str | None = None,
    *,
    now: datetime | None = None,
    expires_in: int = ACCESS_TOKEN_EXPIRES,
) -> str:
    now = now or datetime.now(timezone.utc)
    payload = _identity_claims(user, client_id, now, expires_in)
    payload["appid"] = client_id
    payload["azp"] = client_id
    scp = resource_scopes(scope)
    if scp:
        payload["scp"] = scp
    if user.department:
        payload["department"] = user.department
    if user.job_title:
        payload["jobTitle"] = user.job_title
    if nonce:
        payload["nonce"] = nonce
    return _encode(payload)


def build_id_token(
    user: UserIdentity,
    client_id: str,
    nonce: str | None = None,
    *,
    now: datetime | None = None,
    expires_in: int = ACCESS_TOKEN_EXPIRES,
) -> str:
    now = now or datetime.now(timezone.utc)
    payload = _identity_claims(user, client_id, now, expires_in)
    if nonce:
        payload["nonce"] = nonce
    return _encode(payload)


def decode_token(token: str) -> dict:
    """
    Verify signature and expiry of a token issued by this server and return its claims.
    Audience is not checked (every client id is accepted). Raises jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        get_signing_secret(),
        algorithms=[JWT_ALGORITHM],
        options={"verify_aud": False, "require": ["exp", "sub"]},
    )
