"""
OIDC UserInfo endpoint (GET /{tenant}/v2.0/userinfo). Bearer token required.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from mock_idp.bearer import get_claims

router = APIRouter()

USERINFO_CLAIMS = ("sub", "oid", "tid", "name", "preferred_username", "email")


@router.get("/{tenant}/v2.0/userinfo")
def userinfo(claims: Annotated[dict, Depends(get_claims)]):
    """Project a fixed subset of claims from the verified token; absent claims are omitted."""
    return {name: claims[name] for name in USERINFO_CLAIMS if name in claims}
