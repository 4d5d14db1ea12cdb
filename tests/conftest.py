from __future__ import annotations

from typing import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pastebin import create_app
from pastebin.db import Base, build_engine
from pastebin.domain import models as _models  # noqa: F401
from pastebin.repositories.paste_repository import PasteStore


@pytest.fixture(scope="function")
def database_url(tmp_path) -> str:
    """
    File-backed SQLite database per test.

    A file (rather than ``:memory:``) gives every thread its own connection,
    which the concurrency tests rely on.
    """

    return f"sqlite+pysqlite:///{tmp_path / 'pastes.db'}"


@pytest.fixture(scope="function")
def engine(database_url: str) -> Generator[Engine, None, None]:
    engine = build_engine(
        database_url,
        engine_options={"connect_args": {"timeout": 30}},
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def store(session_factory: sessionmaker[Session]) -> PasteStore:
    return PasteStore(session_factory=session_factory)


@pytest.fixture(params=["returning", "locking"])
def any_store(request, engine: Engine, session_factory: sessionmaker[Session]) -> PasteStore:
    """The store under each increment strategy the dialect can run."""

    if request.param == "returning" and not engine.dialect.update_returning:
        pytest.skip("SQLite build without UPDATE ... RETURNING")
    return PasteStore(session_factory=session_factory, increment_strategy=request.param)


@pytest.fixture
def app(database_url: str) -> Flask:
    return create_app(
        "testing",
        {
            "SQLALCHEMY_DATABASE_URI": database_url,
            "PUBLIC_BASE_URL": None,
        },
    )


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()
