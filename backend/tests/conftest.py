import os
from collections.abc import Callable, Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import permission_gate
from app.core.metrics import reset_metrics
from app.db import models  # noqa: F401
from app.db.base import Base
from app.db.models.role import Role
from app.db.models.user import User
from app.db.session import get_db
from app.main import app


@pytest.fixture()
def session_factory(monkeypatch) -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    # The gate opens its own session for the role lookup.
    monkeypatch.setattr(permission_gate, "SessionLocal", TestingSessionLocal)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def _get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def make_role(session_factory) -> Callable[..., int]:
    def _make(name: str, permissions=None, description: str = "") -> int:
        with session_factory() as db:
            role = Role(name=name, description=description, permissions=permissions or {})
            db.add(role)
            db.commit()
            return role.id

    return _make


@pytest.fixture()
def make_user(session_factory) -> Callable[..., User]:
    def _make(
        username: str,
        *,
        role_id: int | None = None,
        password: str = "x",
        is_active: bool = True,
        full_name: str | None = None,
    ) -> User:
        with session_factory() as db:
            user = User(
                username=username,
                hashed_password=password,
                full_name=full_name or username.title(),
                role_id=role_id,
                is_active=is_active,
                token_version=0,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            db.expunge(user)
            return user

    return _make
