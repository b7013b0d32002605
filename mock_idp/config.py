"""
Mock identity provider configuration.
No secrets in this file; the signing secret comes from env or a generated key file.
"""
import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# HTTP port for `python -m mock_idp.main`
PORT = int(os.environ.get("PORT", "3000"))

# Public base URL; tenant-scoped endpoints and the issuer hang off it
BASE_URL = os.environ.get("OAUTH_BASE_URL", f"http://127.0.0.1:{PORT}").rstrip("/")

# The single mock tenant (directory) id
TENANT_ID = os.environ.get("MOCK_TENANT_ID", "72f988bf-86f1-41af-91ab-2d7cd011db47")

# Issuer embedded in every token: <base>/<tenant>/v2.0
ISSUER = f"{BASE_URL}/{TENANT_ID}/v2.0"

# Client id used when the authorize form omits client_id
DEFAULT_CLIENT_ID = os.environ.get("MOCK_CLIENT_ID", "swagger-editor")

# Scope used when the authorize form omits scope
DEFAULT_SCOPE = os.environ.get("DEFAULT_SCOPE", "openid profile email protocol.read")

# OIDC scopes; never copied into the access token scp claim
OIDC_SCOPES = {"openid", "profile", "email", "offline_access"}

# Authorization code lifetime (seconds)
CODE_TTL_SECONDS = int(os.environ.get("OAUTH_CODE_TTL_SECONDS", "300"))

# Access token and ID token lifetime (seconds)
ACCESS_TOKEN_EXPIRES = int(os.environ.get("OAUTH_ACCESS_TOKEN_EXPIRES", "3600"))

# Refresh token lifetime (seconds), independent of the access token. Default 90 days.
REFRESH_TOKEN_EXPIRES = int(os.environ.get("OAUTH_REFRESH_TOKEN_EXPIRES", str(90 * 24 * 3600)))

# Shared HS256 secret. If unset, a secret is loaded from / generated into OAUTH_SIGNING_SECRET_PATH.
JWT_SECRET = os.environ.get("JWT_SECRET", "").strip() or None
SIGNING_SECRET_PATH = os.environ.get("OAUTH_SIGNING_SECRET_PATH", ".mock_idp_secret")
JWT_ALGORITHM = "HS256"

# Credential store backend: "memory" (dicts + lock) or "sql" (SQLAlchemy)
CREDENTIAL_STORE = os.environ.get("CREDENTIAL_STORE", "memory").strip().lower()

# Only used by the sql backend. In-memory SQLite by default (nothing survives a restart).
DATABASE_URL = os.environ.get("AUTH_DATABASE_URL", "sqlite:///:memory:")

# When true, a code issued with a PKCE challenge must be redeemed with a code_verifier
PKCE_STRICT = _env_bool("PKCE_STRICT")

# App roles stamped on client_credentials tokens
SERVICE_ROLES = [r.strip() for r in os.environ.get("SERVICE_ROLES", "Protocol.Read.All").split(",") if r.strip()]
