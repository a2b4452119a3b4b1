# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RECONCILE_SWEEP_ENABLED", "false")
os.environ.setdefault("RECONCILE_BACKOFF_SECONDS", "0")

from vote_tally.core.security import create_access_token
from vote_tally.db.session import Base, build_engine
from vote_tally.db.session import get_db as app_get_session
from vote_tally.main import app as fastapi_app
from vote_tally.models import Subject, Vote


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite so concurrent sessions really share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'votes.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_subject(session_factory: sessionmaker[Session]) -> Callable[..., str]:
    """Return a helper that persists a subject and returns its id."""

    def _make(subject_id: str = "caption-1", score: int = 0) -> str:
        with session_factory() as session:
            session.add(Subject(id=subject_id, score=score))
            session.commit()
        return subject_id

    return _make


@pytest.fixture()
def subject_id(make_subject: Callable[..., str]) -> str:
    """Create a baseline subject with a zero score."""
    return make_subject("caption-1")


@pytest.fixture()
def read_state(session_factory: sessionmaker[Session]) -> Callable[[str], tuple[int, int, int]]:
    """Return a helper reporting ``(score, ledger_sum, row_count)`` for a subject."""

    def _read(subject_id: str) -> tuple[int, int, int]:
        with session_factory() as session:
            score = session.execute(
                select(Subject.score).where(Subject.id == subject_id)
            ).scalar_one()
            values = list(
                session.execute(select(Vote.value).where(Vote.subject_id == subject_id)).scalars()
            )
        return score, sum(values), len(values)

    return _read


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(
    app: FastAPI,
    session_factory: sessionmaker[Session],
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def voter_headers() -> Callable[[str], dict[str, str]]:
    """Return a helper building authorization headers for a voter id."""

    def _headers(voter_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(voter_id)}"}

    return _headers


@pytest.fixture()
def auth_token(voter_headers: Callable[[str], dict[str, str]]) -> dict[str, str]:
    """Return authorization headers for the primary test voter."""
    return voter_headers("voter-alice")


@pytest.fixture()
def other_auth_token(voter_headers: Callable[[str], dict[str, str]]) -> dict[str, str]:
    """Return authorization headers for the secondary test voter."""
    return voter_headers("voter-bob")
