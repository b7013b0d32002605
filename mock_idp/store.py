"""
Credential store for authorization codes and refresh tokens.

Only two operations matter: add, and take (look up and remove in one step). A take
for a given key succeeds for at most one caller; everyone else sees None. Expiry is
checked by the caller after the take, so nothing here runs on a timer.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from mock_idp.database import init_db, make_engine, make_session_factory
from mock_idp.models import AuthorizationCodeRow, RefreshTokenRow

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class AuthorizationCodeGrant:
    code: str
    client_id: str
    redirect_uri: str
    scope: str
    user_id: str
    email: str
    display_name: str
    expires_at: datetime
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    nonce: str | None = None

    def expired(self, now: datetime | None = None) -> bool:
        return _as_utc(self.expires_at) <= (now or datetime.now(timezone.utc))


@dataclass(frozen=True)
class RefreshTokenGrant:
    token: str
    client_id: str
    scope: str
    user_id: str
    email: str
    display_name: str
    expires_at: datetime

    def expired(self, now: datetime | None = None) -> bool:
        return _as_utc(self.expires_at) <= (now or datetime.now(timezone.utc))


class CredentialStore(ABC):
    """Exclusive owner of issued codes and refresh tokens."""

    @abstractmethod
    def add_code(self, grant: AuthorizationCodeGrant) -> None: ...

    @abstractmethod
    def take_code(self, code: str) -> AuthorizationCodeGrant | None: ...

    @abstractmethod
    def add_refresh_token(self, grant: RefreshTokenGrant) -> None: ...

    @abstractmethod
    def take_refresh_token(self, token: str) -> RefreshTokenGrant | None: ...


class MemoryCredentialStore(CredentialStore):
    """Dicts guarded by one lock. Entries linger past expiry until their next take."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._codes: dict[str, AuthorizationCodeGrant] = {}
        self._refresh_tokens: dict[str, RefreshTokenGrant] = {}

    def add_code(self, grant: AuthorizationCodeGrant) -> None:
        with self._lock:
            self._codes[grant.code] = grant

    def take_code(self, code: str) -> AuthorizationCodeGrant | None:
        with self._lock:
            return self._codes.pop(code, None)

    def add_refresh_token(self, grant: RefreshTokenGrant) -> None:
        with self._lock:
            self._refresh_tokens[grant.token] = grant

    def take_refresh_token(self, token: str) -> RefreshTokenGrant | None:
        with self._lock:
            return self._refresh_tokens.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes) + len(self._refresh_tokens)


class SqlCredentialStore(CredentialStore):
    """
    SQLAlchemy-backed store. take reads the row, then deletes it by key and only
    returns it when the delete removed exactly one row, so concurrent takes of one
    key have a single winner even across connections.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        # StaticPool shares one SQLite connection between threads; serialize access to it
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, database_url: str) -> "SqlCredentialStore":
        engine = make_engine(database_url)
        init_db(engine)
        return cls(make_session_factory(engine))

    def add_code(self, grant: AuthorizationCodeGrant) -> None:
        row = AuthorizationCodeRow(
            code=grant.code,
            client_id=grant.client_id,
            redirect_uri=grant.redirect_uri,
            scope=grant.scope,
            user_id=grant.user_id,
            email=grant.email,
            display_name=grant.display_name,
            code_challenge=grant.code_challenge,
            code_challenge_method=grant.code_challenge_method,
            nonce=grant.nonce,
            expires_at=grant.expires_at,
        )
        self._add(row)

    def take_code(self, code: str) -> AuthorizationCodeGrant | None:
        row = self._take(AuthorizationCodeRow, AuthorizationCodeRow.code, code)
        if row is None:
            return None
        return AuthorizationCodeGrant(
            code=row.code,
            client_id=row.client_id,
            redirect_uri=row.redirect_uri,
            scope=row.scope,
            user_id=row.user_id,
            email=row.email,
            display_name=row.display_name,
            expires_at=_as_utc(row.expires_at),
            code_challenge=row.code_challenge,
            code_challenge_method=row.code_challenge_method,
            nonce=row.nonce,
        )

    def add_refresh_token(self, grant: RefreshTokenGrant) -> None:
        row = RefreshTokenRow(
            token=grant.token,
            client_id=grant.client_id,
            scope=grant.scope,
            user_id=grant.user_id,
            email=grant.email,
            display_name=grant.display_name,
            expires_at=grant.expires_at,
        )
        self._add(row)

    def take_refresh_token(self, token: str) -> RefreshTokenGrant | None:
        row = self._take(RefreshTokenRow, RefreshTokenRow.token, token)
        if row is None:
            return None
        return RefreshTokenGrant(
            token=row.token,
            client_id=row.client_id,
            scope=row.scope,
            user_id=row.user_id,
            email=row.email,
            display_name=row.display_name,
            expires_at=_as_utc(row.expires_at),
        )

    def _add(self, row) -> None:
        with self._lock:
            db = self._session_factory()
            try:
                db.add(row)
                db.commit()
            finally:
                db.close()

    def _take(self, model, key_column, key: str):
        with self._lock:
            db = self._session_factory()
            try:
                row = db.execute(select(model).where(key_column == key)).scalar_one_or_none()
                if row is None:
                    return None
                db.expunge(row)
                result = db.execute(delete(model).where(key_column == key))
                db.commit()
                if result.rowcount != 1:
                    logger.debug("Lost take race for %s", model.__tablename__)
                    return None
                return row
            finally:
                db.close()


def build_credential_store(kind: str, database_url: str | None = None) -> CredentialStore:
    """Construct the configured backend ("memory" or "sql")."""
    if kind == "memory":
        return MemoryCredentialStore()
    if kind == "sql":
        return SqlCredentialStore.from_url(database_url or "sqlite:///:memory:")
    raise ValueError(f"Unknown credential store backend: {kind!r}")


_store: CredentialStore | None = None
_store_lock = threading.Lock()


def get_credential_store() -> CredentialStore:
    """Dependency: process-wide store, built from config on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                from mock_idp.config import CREDENTIAL_STORE, DATABASE_URL

                _store = build_credential_store(CREDENTIAL_STORE, DATABASE_URL)
                logger.info("Credential store backend: %s", CREDENTIAL_STORE)
    return _store
