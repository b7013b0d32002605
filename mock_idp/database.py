"""
Database engine and session factory for the SQL credential store.
"""
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mock_idp.models import Base


def make_engine(database_url: str) -> Engine:
    # SQLite: in-memory needs StaticPool so all connections share the same DB
    # File-based SQLite needs check_same_thread=False for FastAPI's thread pool
    if database_url.startswith("sqlite:///:memory:") or database_url == "sqlite://":
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    connect_args = {"check_same_thread": False} if "sqlite" in database_url else {}
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create the credential tables."""
    Base.metadata.create_all(bind=engine)
