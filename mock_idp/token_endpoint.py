"""
Token endpoint (POST /token and POST /{tenant}/v2.0/token).
grant_type picks exactly one handler from GRANT_HANDLERS; state lives only in the credential store.
"""
import logging

from fastapi import APIRouter, Depends, Form

from mock_idp.errors import unsupported_grant_type
from mock_idp.grants import GRANT_HANDLERS, TokenRequest
from mock_idp.store import CredentialStore, get_credential_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/token")
@router.post("/{tenant}/v2.0/token")
def token(
    grant_type: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    code_verifier: str | None = Form(None),
    refresh_token: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    scope: str | None = Form(None),
    store: CredentialStore = Depends(get_credential_store),
):
    """
    authorization_code: exchange code (+ code_verifier) for access, ID and refresh tokens.
    refresh_token: rotate the refresh token and issue new tokens.
    client_credentials: service token only; no refresh token, no ID token.
    """
    handler = GRANT_HANDLERS.get(grant_type or "")
    if handler is None:
        logger.debug("Rejected token request with grant_type=%r", grant_type)
        raise unsupported_grant_type(grant_type)
    req = TokenRequest(
        grant_type=grant_type,
        code=code,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        refresh_token=refresh_token,
        client_id=client_id,
        client_secret=client_secret,
        scope=scope,
    )
    return handler(req, store)
