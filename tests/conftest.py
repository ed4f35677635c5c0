import os

# Settings are read at import time by the engine and the storage client
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-min-32-chars")
os.environ.setdefault("APP_URL", "http://localhost:3000")

from datetime import datetime
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

import statichost.models  # noqa: F401
from statichost.core.security import create_access_token, get_password_hash
from statichost.database.database import get_session
from statichost.main import app
from statichost.models.enums import Role, SiteStatus
from statichost.models.site import Site, SiteCreate
from statichost.models.user import User
from statichost.services import deploy as deploy_service
from statichost.services import site as site_service
from statichost.services.deploy import IncomingFile
from statichost.services.storage import (
    StoredFile,
    build_key,
    cache_control_for,
    site_prefix,
)
from statichost.services.validation import get_mime_type, is_html_file

PASSWORD = "Password123"
INDEX_HTML = b"<!DOCTYPE html><html><body><h1>Hello</h1></body></html>"


class InMemoryStorage:
    """Dict-backed stand-in for the MinIO storage service."""

    bucket_name = "test-bucket"

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.healthy = True

    def ensure_bucket_exists(self):
        return None

    def upload_site_file(self, site_id, path, content, content_type=None):
        key = build_key(site_id, path)
        if key == site_prefix(site_id):
            raise ValueError(f"Invalid file path: {path!r}")
        if is_html_file(path):
            content_type = "text/html; charset=utf-8"
        self.objects[key] = (content, content_type or get_mime_type(path))
        return key

    def get_site_file(self, site_id, path):
        stored = self.objects.get(build_key(site_id, path))
        if stored is None:
            return None
        content, content_type = stored
        return StoredFile(
            content=content,
            content_type=content_type,
            cache_control=cache_control_for(path),
            size=len(content),
            last_modified=datetime.now(),
        )

    def site_file_exists(self, site_id, path):
        return build_key(site_id, path) in self.objects

    def list_site_files(self, site_id):
        prefix = site_prefix(site_id)
        return [
            {"path": key[len(prefix):], "size": len(content), "last_modified": None}
            for key, (content, _) in self.objects.items()
            if key.startswith(prefix)
        ]

    def delete_site_files(self, site_id):
        prefix = site_prefix(site_id)
        keys = [key for key in self.objects if key.startswith(prefix)]
        for key in keys:
            del self.objects[key]
        return len(keys)

    def get_public_url(self, slug, path=""):
        return f"http://localhost:3000/s/{slug}/{path.lstrip('/')}".rstrip("/")

    def ping(self):
        return self.healthy


@pytest.fixture(name="storage", autouse=True)
def storage_fixture():
    """Replace the object store everywhere it is used, for every test."""
    storage = InMemoryStorage()
    targets = (
        "statichost.services.site.storage_service",
        "statichost.services.deploy.storage_service",
        "statichost.services.admin.storage_service",
        "statichost.routers.download.storage_service",
    )
    patchers = [patch(target, storage) for target in targets]
    for patcher in patchers:
        patcher.start()
    yield storage
    for patcher in patchers:
        patcher.stop()


@pytest.fixture(name="session")
def session_fixture():
    """
    Create and yield a SQLModel Session bound to a fresh in-memory SQLite database.

    Yields:
        Session: A SQLModel Session connected to the created in-memory SQLite database; the session is closed when the fixture tears down.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """TestClient sharing the test session; the lifespan (bucket check, telemetry) is not run."""

    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(name="user_factory")
def user_factory_fixture(session: Session):
    """
    Create a factory that persists users directly, bypassing registration.

    Returns:
        create_callable (Callable[..., User]): Takes the e-mail plus optional `name`,
        `admin`, `verified` and quota keyword arguments.
    """

    def create(
        email: str,
        name: str = "Test User",
        admin: bool = False,
        verified: bool = True,
        **fields,
    ) -> User:
        roles = [Role.USER.value, Role.ADMIN.value] if admin else [Role.USER.value]
        user = User(
            email=email,
            name=name,
            hashed_password=get_password_hash(PASSWORD),
            roles=roles,
            email_verified=verified,
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return create


@pytest.fixture(name="user")
def user_fixture(user_factory) -> User:
    return user_factory("owner@example.com", name="Site Owner")


@pytest.fixture(name="other_user")
def other_user_fixture(user_factory) -> User:
    return user_factory("other@example.com", name="Other User")


@pytest.fixture(name="admin")
def admin_fixture(user_factory) -> User:
    return user_factory("admin@example.com", name="Admin", admin=True)


@pytest.fixture(name="headers_for")
def headers_for_fixture():
    def headers(user: User) -> dict[str, str]:
        token = create_access_token({"sub": user.email})
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture(name="user_headers")
def user_headers_fixture(user, headers_for) -> dict[str, str]:
    return headers_for(user)


@pytest.fixture(name="admin_headers")
def admin_headers_fixture(admin, headers_for) -> dict[str, str]:
    return headers_for(admin)


@pytest.fixture(name="site")
def site_fixture(session: Session, user: User) -> Site:
    """A pending site of `user` without any files."""
    return site_service.create_site(session, user, SiteCreate(name="My Site"))


@pytest.fixture(name="published_site")
def published_site_fixture(session: Session, user: User, site: Site) -> Site:
    """`site` with an index page and a stylesheet, activated."""
    deploy_service.upload_files(
        session,
        site,
        user,
        [
            IncomingFile("index.html", INDEX_HTML, "text/html"),
            IncomingFile("style.css", b"body { color: red; }", "text/css"),
        ],
    )
    site.status = SiteStatus.ACTIVE
    site.public_url = f"http://localhost:3000/s/{site.slug}"
    session.add(site)
    session.commit()
    session.refresh(site)
    return site
