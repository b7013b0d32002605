"""
Mock user directory. Known users come from a fixed table; any other email gets a
deterministic synthesized identity so every login succeeds and stays stable.
"""
import re
from dataclasses import dataclass, field

from mock_idp.config import SERVICE_ROLES
from mock_idp.ids import derive_id

DEFAULT_USER_ROLES = ["Protocol.Reader"]


@dataclass(frozen=True)
class UserIdentity:
    sub: str
    name: str
    email: str
    department: str | None = None
    job_title: str | None = None
    roles: list[str] = field(default_factory=list)


def _known(email: str, name: str, department: str, job_title: str, roles: list[str]) -> UserIdentity:
    return UserIdentity(
        sub=derive_id(email),
        name=name,
        email=email,
        department=department,
        job_title=job_title,
        roles=roles,
    )


# Keyed by lowercased email
USERS: dict[str, UserIdentity] = {
    u.email: u
    for u in (
        _known("jane.smith@contoso.com", "Jane Smith", "Quality Assurance", "QA Manager", ["Protocol.Admin"]),
        _known("john.doe@contoso.com", "John Doe", "Manufacturing", "Plant Engineer", ["Protocol.Reader"]),
        _known(
            "maria.garcia@contoso.com",
            "Maria Garcia",
            "Regulatory Affairs",
            "Compliance Lead",
            ["Protocol.Reader", "Snapshot.Writer"],
        ),
        _known("demo-user@contoso.com", "Demo User", "Engineering", "Developer", ["Protocol.Reader"]),
    )
}


def display_name_from_email(email: str) -> str:
    """'bob.van-dyke@x' -> 'Bob Van Dyke'. Falls back to the raw local part."""
    local = email.split("@", 1)[0]
    parts = [p for p in re.split(r"[._\-+]+", local) if p]
    if not parts:
        return local or email
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def synthesize_user(email: str) -> UserIdentity:
    """Pure: same email always yields the same identity."""
    normalized = email.strip().lower()
    return UserIdentity(
        sub=derive_id(normalized),
        name=display_name_from_email(normalized),
        email=normalized,
        roles=list(DEFAULT_USER_ROLES),
    )


def resolve_user(email: str) -> UserIdentity:
    """Directory entry for email (case-insensitive), else a synthesized identity."""
    normalized = email.strip().lower()
    return USERS.get(normalized) or synthesize_user(normalized)


def service_principal(client_id: str) -> UserIdentity:
    """Identity for client_credentials tokens; subject derived from the client id."""
    return UserIdentity(
        sub=derive_id(f"client:{client_id}"),
        name=client_id,
        email="",
        roles=list(SERVICE_ROLES),
    )
