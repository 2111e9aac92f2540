"""Shared fixtures: an in-memory database, model factories and an app client."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("TZ", "UTC")
os.environ.setdefault("ATTENDANCE_TZ", "UTC")
os.environ.setdefault("ATTENDANCE_RESET_HOUR", "6")
os.environ.setdefault("SUPABASE_URL", "https://hosted.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

from timeflow.db.session import Base
from timeflow.models import (
    Profile,
    Project,
    ProjectMember,
    ProjectTimeEntry,
    Screenshot,
    TimeEntry,
)
from timeflow.services.auth_bridge import AuthClient
from timeflow.services.storage import StorageClient

JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_profile(db, *, role="employee", full_name=None, email=None, team=None, manager_id=None, **extra):
    profile = Profile(
        full_name=full_name or f"{role.title()} User",
        email=email,
        role=role,
        team=team,
        manager_id=manager_id,
        **extra,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_entry(db, profile, start, hours=1.0, *, description=None, project=None, billable=True, app_version=None):
    seconds = int(hours * 3600)
    entry = TimeEntry(
        user_id=profile.id,
        start_time=start,
        end_time=start + timedelta(seconds=seconds),
        duration=seconds,
        description=description,
        app_version=app_version,
    )
    if project is not None:
        entry.project_links = [ProjectTimeEntry(project_id=project.id, billable=billable)]
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def make_project(db, creator, *, name="Website", status="active", members=(), managers=()):
    project = Project(
        name=name,
        status=status,
        created_by=creator.id,
        project_managers=[m.id for m in managers],
    )
    project.members = [ProjectMember(user_id=m.id) for m in members]
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def make_screenshot(db, entry, taken_at, *, kind="screenshot", path="shots/a.png"):
    shot = Screenshot(time_entry_id=entry.id, storage_path=path, type=kind, taken_at=taken_at)
    db.add(shot)
    db.commit()
    db.refresh(shot)
    return shot


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def bearer_for(profile, *, secret=JWT_SECRET, audience="authenticated", expires_in=3600):
    claims = {
        "sub": profile.id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "email": profile.email,
    }
    return {"Authorization": f"Bearer {jwt.encode(claims, secret, algorithm='HS256')}"}


class RecordingTransport(httpx.MockTransport):
    """Mock transport that also keeps every request it served."""

    def __init__(self, handler):
        self.requests = []

        def record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


def default_auth_handler(request):
    return httpx.Response(404, json={"msg": f"unexpected {request.method} {request.url.path}"})


@pytest.fixture()
def auth_handler():
    """Replace ``auth_handler.handler`` in a test to script the hosted auth API."""

    class Holder:
        handler = staticmethod(default_auth_handler)

    return Holder


@pytest.fixture()
def auth_transport(auth_handler):
    return RecordingTransport(lambda request: auth_handler.handler(request))


@pytest.fixture()
def auth_client(auth_transport):
    return AuthClient(
        "https://hosted.test/auth/v1",
        "anon-key",
        service_role_key="service-key",
        transport=auth_transport,
    )


@pytest.fixture()
def storage_handler():
    class Holder:
        handler = staticmethod(lambda request: httpx.Response(200, json=[]))

    return Holder


@pytest.fixture()
def storage_transport(storage_handler):
    return RecordingTransport(lambda request: storage_handler.handler(request))


@pytest.fixture()
def storage_client(storage_transport):
    return StorageClient("https://hosted.test/storage/v1", "service-key", transport=storage_transport)


@pytest.fixture()
def client(db_session, session_factory, auth_client, storage_client):
    from fastapi.testclient import TestClient

    from timeflow import app
    from timeflow.db.session import get_db, get_session_factory
    from timeflow.services.auth_bridge import get_auth_client
    from timeflow.services.storage import get_storage_client

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_auth_client] = lambda: auth_client
    app.dependency_overrides[get_storage_client] = lambda: storage_client
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
