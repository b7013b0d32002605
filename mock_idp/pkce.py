"""
PKCE (RFC 7636) verification for the token endpoint. S256 and plain; anything else fails closed.
"""
import hashlib
import hmac
from base64 import urlsafe_b64encode

SUPPORTED_METHODS = ("S256", "plain")


def s256_challenge(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_verifier(code_verifier: str, code_challenge: str, method: str | None) -> bool:
    """True if the verifier satisfies the stored challenge under method."""
    if method == "S256":
        try:
            computed = s256_challenge(code_verifier)
        except UnicodeEncodeError:
            return False
    elif method == "plain":
        computed = code_verifier
    else:
        return False
    return hmac.compare_digest(computed.encode("utf-8"), code_challenge.encode("utf-8"))
