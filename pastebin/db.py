from __future__ import annotations

import typing as t

from flask import Flask, current_app
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

if t.TYPE_CHECKING:
    from pastebin.repositories.paste_repository import PasteStore


Base = declarative_base()

STORE_EXTENSION_KEY = "pastebin.store"


def is_in_memory_sqlite(database_uri: str) -> bool:
    url = make_url(database_uri)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def build_engine(
    database_uri: str,
    *,
    echo: bool = False,
    engine_options: t.Mapping[str, t.Any] | None = None,
) -> Engine:
    """
    Create a SQLAlchemy engine for ``database_uri``.

    In-memory SQLite databases are bound to a single shared connection so that
    every session sees the same tables.
    """
    options = dict(engine_options or {})
    if is_in_memory_sqlite(database_uri):
        # One DBAPI connection for every thread: a rollback in one request can
        # discard another's uncommitted write. Only safe for serial tests.
        options = {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return create_engine(database_uri, echo=echo, **options)


def init_db(app: Flask) -> PasteStore:
    """
    Build the engine and paste store for the Flask app.

    Reads the database URL from ``app.config['SQLALCHEMY_DATABASE_URI']``. The
    store is registered on ``app.extensions`` and also returned so callers can
    hand it to the services and the purge worker explicitly.
    """
    from pastebin.domain import models as _models  # noqa: F401
    from pastebin.repositories.paste_repository import PasteStore

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        raise RuntimeError(
            "SQLALCHEMY_DATABASE_URI is not configured on the Flask app."
        )
    if is_in_memory_sqlite(database_uri) and not app.config.get("TESTING", False):
        raise RuntimeError(
            "In-memory SQLite shares one connection across requests and is "
            "only supported under testing; point DATABASE_URL at a real database."
        )

    engine = build_engine(
        database_uri,
        echo=app.config.get("SQLALCHEMY_ECHO", False),
        engine_options=app.config.get("SQLALCHEMY_ENGINE_OPTIONS"),
    )
    if app.config.get("CREATE_SCHEMA", False):
        Base.metadata.create_all(engine)

    store = PasteStore(
        session_factory=sessionmaker(bind=engine, autoflush=False, autocommit=False),
        increment_strategy=app.config.get("PASTE_INCREMENT_STRATEGY", "auto"),
        fetch_attempts=app.config.get("STORE_FETCH_ATTEMPTS", 2),
    )
    app.extensions[STORE_EXTENSION_KEY] = store
    return store


def get_store() -> PasteStore:
    """Return the paste store bound to the current Flask app."""
    try:
        return current_app.extensions[STORE_EXTENSION_KEY]
    except KeyError as exc:
        raise RuntimeError("Paste store is not initialized. Call init_db(app) first.") from exc
