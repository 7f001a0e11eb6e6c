"""Shared fixtures: in-memory database, local object store and API client."""
import os
import tempfile
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="cloudvault-test-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cloudvault import models
from cloudvault.auth import Principal, create_access_token
from cloudvault.database import Base, get_db
from cloudvault.main import app
from cloudvault.storage import LocalObjectStore, get_object_store

MB = 1024 * 1024
GB = 1024 * MB


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(tmp_path / "objects", "http://testserver/storage")


@pytest.fixture
def client(session_factory, store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, user_id="user-1", email=None, role="user",
              storage_used=0, storage_limit=5 * GB, created_at=None):
    user = models.User(
        id=user_id,
        email=email or f"{user_id}@example.com",
        role=role,
        storage_used=storage_used,
        storage_limit=storage_limit,
    )
    if created_at is not None:
        user.created_at = created_at
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_file(db, user, name="file.txt", type="text/plain", size=100,
              folder_id=None, original_name=None, created_at=None):
    created_at = created_at or datetime.now(timezone.utc)
    f = models.File(
        user_id=user.id,
        name=name,
        original_name=original_name or name,
        size=size,
        type=type,
        folder_id=folder_id,
        storage_path=f"{user.id}/{name}",
        uploaded_at=created_at,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(f)
    db.commit()
    db.refresh(f)
    return f


def principal_of(user):
    return Principal.from_user(user)


def auth_headers(user_id="user-1", email=None):
    token = create_access_token({"sub": user_id, "email": email or f"{user_id}@example.com"})
    return {"Authorization": f"Bearer {token}"}
