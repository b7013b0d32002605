"""
Shared HS256 signing secret.
Taken from JWT_SECRET if set; otherwise loaded from a file, or generated and saved there
so tokens survive a reload of the dev server. No key material in code.
"""
import logging
from pathlib import Path

from mock_idp.ids import generate_secret

logger = logging.getLogger(__name__)

_SECRET_BYTES = 48


def load_or_create_secret(path: str | None) -> str:
    """Read the secret from path, or generate and save one. Returns the secret."""
    if not path:
        path = ".mock_idp_secret"
    p = Path(path)
    if p.exists():
        try:
            secret = p.read_text(encoding="utf-8").strip()
            if secret:
                return secret
            logger.warning("Signing secret file %s is empty; generating new secret", path)
        except OSError as e:
            logger.warning("Failed to read signing secret from %s: %s; generating new secret", path, e)
    secret = generate_secret(_SECRET_BYTES)
    try:
        p.write_text(secret, encoding="utf-8")
        logger.info("Generated and saved signing secret to %s", path)
    except OSError as e:
        logger.warning("Could not save signing secret to %s: %s", path, e)
    return secret


# Module-level state (set at app startup or on first use)
_secret: str | None = None


def get_signing_secret() -> str:
    """Return the secret used to sign and verify every token."""
    global _secret
    if _secret is None:
        from mock_idp.config import JWT_SECRET, SIGNING_SECRET_PATH

        _secret = JWT_SECRET or load_or_create_secret(SIGNING_SECRET_PATH)
    return _secret
