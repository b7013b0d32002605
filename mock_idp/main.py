"""
Mock identity provider: authorization code + PKCE, refresh token rotation,
client credentials, OIDC discovery and userinfo for a single mock tenant.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mock_idp.authorize import router as authorize_router
from mock_idp.errors import OAuthError, oauth_error_handler
from mock_idp.keys import get_signing_secret
from mock_idp.store import get_credential_store
from mock_idp.token_endpoint import router as token_router
from mock_idp.userinfo import router as userinfo_router
from mock_idp.well_known import router as well_known_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Resolve the signing secret and build the credential store on startup."""
    get_signing_secret()
    get_credential_store()
    yield


app = FastAPI(title="Mock Identity Provider", version="1.0.0", lifespan=lifespan)
app.add_exception_handler(OAuthError, oauth_error_handler)
app.include_router(authorize_router, tags=["authorize"])
app.include_router(token_router, tags=["token"])
app.include_router(userinfo_router, tags=["userinfo"])
app.include_router(well_known_router, tags=["well-known"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "mock_idp"}


if __name__ == "__main__":
    import uvicorn

    from mock_idp.config import PORT

    uvicorn.run(
        "mock_idp.main:app",
        host="127.0.0.1",
        port=PORT,
        reload=True,
    )
