"""
Grant handlers for the token endpoint: authorization_code, refresh_token, client_credentials.
Each takes the parsed token request and the credential store, and returns the token
response body or raises OAuthError.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from mock_idp.config import ACCESS_TOKEN_EXPIRES, PKCE_STRICT, REFRESH_TOKEN_EXPIRES
from mock_idp.directory import UserIdentity, resolve_user, service_principal
from mock_idp.errors import CODE_PKCE_MISMATCH, invalid_client, invalid_grant, invalid_request
from mock_idp.ids import generate_secret
from mock_idp.pkce import verify_code_verifier
from mock_idp.store import CredentialStore, RefreshTokenGrant
from mock_idp.tokens import build_access_token, build_id_token

logger = logging.getLogger(__name__)

_REFRESH_TOKEN_BYTES = 48


@dataclass
class TokenRequest:
    grant_type: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
    refresh_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    scope: str | None = None


def _issue_refresh_token(store: CredentialStore, user: UserIdentity, client_id: str, scope: str) -> str:
    value = generate_secret(_REFRESH_TOKEN_BYTES)
    store.add_refresh_token(
        RefreshTokenGrant(
            token=value,
            client_id=client_id,
            scope=scope,
            user_id=user.sub,
            email=user.email,
            display_name=user.name,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=REFRESH_TOKEN_EXPIRES),
        )
    )
    return value


def _user_bundle(store: CredentialStore, user: UserIdentity, client_id: str, scope: str, nonce: str | None) -> dict:
    """Access token, ID token and a freshly stored refresh token."""
    return {
        "token_type": "Bearer",
        "scope": scope,
        "expires_in": ACCESS_TOKEN_EXPIRES,
        "ext_expires_in": ACCESS_TOKEN_EXPIRES,
        "access_token": build_access_token(user, client_id, scope, nonce),
        "refresh_token": _issue_refresh_token(store, user, client_id, scope),
        "id_token": build_id_token(user, client_id, nonce),
    }


def authorization_code_grant(req: TokenRequest, store: CredentialStore) -> dict:
    if not req.code:
        raise invalid_request("The request body must contain the following parameter: 'code'.")

    # Removed on first lookup, whatever happens next
    stored = store.take_code(req.code)
    if stored is None:
        logger.debug("authorization_code grant: unknown or already redeemed code (client_id=%s)", req.client_id)
        raise invalid_grant("The provided authorization code or refresh token has expired or was already redeemed.")
    if stored.expired():
        logger.debug("authorization_code grant: expired code (client_id=%s)", stored.client_id)
        raise invalid_grant("The provided authorization code has expired.")

    if stored.code_challenge:
        if req.code_verifier:
            if not verify_code_verifier(req.code_verifier, stored.code_challenge, stored.code_challenge_method):
                logger.debug("authorization_code grant: PKCE mismatch (client_id=%s)", stored.client_id)
                raise invalid_grant("The code_verifier does not match the code_challenge supplied in the authorization request.", CODE_PKCE_MISMATCH)
        elif PKCE_STRICT:
            logger.debug("authorization_code grant: code_verifier missing in strict mode (client_id=%s)", stored.client_id)
            raise invalid_grant("The request body must contain the following parameter: 'code_verifier'.", CODE_PKCE_MISMATCH)

    user = resolve_user(stored.email)
    response = _user_bundle(store, user, stored.client_id, stored.scope, stored.nonce)
    logger.info("authorization_code grant: tokens issued for client_id=%s sub=%s", stored.client_id, user.sub)
    return response


def refresh_token_grant(req: TokenRequest, store: CredentialStore) -> dict:
    if not req.refresh_token:
        raise invalid_request("The request body must contain the following parameter: 'refresh_token'.")

    stored = store.take_refresh_token(req.refresh_token)
    if stored is None:
        logger.debug("refresh_token grant: unknown or already redeemed token (client_id=%s)", req.client_id)
        raise invalid_grant("The provided authorization code or refresh token has expired or was already redeemed.")
    if stored.expired():
        logger.debug("refresh_token grant: expired token (client_id=%s)", stored.client_id)
        raise invalid_grant("The refresh token has expired.")

    # Rotate: the presented token is gone; the bundle carries its replacement
    user = resolve_user(stored.email)
    response = _user_bundle(store, user, stored.client_id, stored.scope, None)
    logger.info(
        "refresh_token grant: new tokens issued for client_id=%s sub=%s (refresh token rotated)",
        stored.client_id,
        user.sub,
    )
    return response


def client_credentials_grant(req: TokenRequest, store: CredentialStore) -> dict:
    if not req.client_id or not req.client_secret:
        raise invalid_client("Client authentication failed: client_id and client_secret are required.")

    scope = req.scope or f"{req.client_id}/.default"
    principal = service_principal(req.client_id)
    logger.info("client_credentials grant: token issued for client_id=%s", req.client_id)
    return {
        "token_type": "Bearer",
        "scope": scope,
        "expires_in": ACCESS_TOKEN_EXPIRES,
        "ext_expires_in": ACCESS_TOKEN_EXPIRES,
        "access_token": build_access_token(principal, req.client_id, scope),
    }


GRANT_HANDLERS: dict[str, Callable[[TokenRequest, CredentialStore], dict]] = {
    "authorization_code": authorization_code_grant,
    "refresh_token": refresh_token_grant,
    "client_credentials": client_credentials_grant,
}
