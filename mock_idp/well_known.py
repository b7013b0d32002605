"""
OpenID Connect discovery for the mock tenant.
"""
from fastapi import APIRouter

from mock_idp.config import BASE_URL, JWT_ALGORITHM, OIDC_SCOPES
from mock_idp.grants import GRANT_HANDLERS
from mock_idp.pkce import SUPPORTED_METHODS
from mock_idp.userinfo import USERINFO_CLAIMS

router = APIRouter()


@router.get("/{tenant}/v2.0/.well-known/openid-configuration")
def openid_configuration(tenant: str):
    """OpenID Connect discovery document; URLs are templated on the path tenant."""
    base = f"{BASE_URL}/{tenant}"
    return {
        "issuer": f"{base}/v2.0",
        "authorization_endpoint": f"{base}/v2.0/authorize",
        "token_endpoint": f"{base}/v2.0/token",
        "userinfo_endpoint": f"{base}/v2.0/userinfo",
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": list(GRANT_HANDLERS),
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": [JWT_ALGORITHM],
        "token_endpoint_auth_methods_supported": ["client_secret_post"],
        "code_challenge_methods_supported": list(SUPPORTED_METHODS),
        "scopes_supported": sorted(OIDC_SCOPES),
        "claims_supported": [
            "aud",
            "iss",
            "iat",
            "nbf",
            "exp",
            *USERINFO_CLAIMS,
            "roles",
            "nonce",
        ],
        "tenant_region_scope": "NA",
    }
