"""
Random and derived identifiers. Every opaque secret and v4-shaped id in the server comes from here.
"""
import hashlib
import secrets
import uuid


def generate_secret(nbytes: int = 32) -> str:
    """Opaque URL-safe secret with nbytes of entropy (32 bytes -> 43 chars)."""
    return secrets.token_urlsafe(nbytes)


def generate_id() -> str:
    """Random v4 UUID string (trace ids, token ids)."""
    return str(uuid.uuid4())


def derive_id(seed: str) -> str:
    """
    Stable v4-shaped UUID derived from seed. Same seed, same id; used for subject ids
    so tokens for one email are always attributable to one subject.
    """
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))
