import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("BLOB_BACKEND", "local")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from backend import server  # noqa: E402
from backend.app import models  # noqa: E402
from backend.app.database import Base, get_db  # noqa: E402
from backend.app.firebase_service import LocalBlobStore, StoredBlob, get_blob_store  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class RecordingBlobStore(LocalBlobStore):
    """Local blob store that remembers every call and can be told to fail."""

    def __init__(self, media_root, media_url="/media"):
        super().__init__(media_root, media_url)
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def store(self, key, data, content_type, *, public_read=True) -> StoredBlob:
        self.calls.append(
            {"key": key, "size": len(data), "content_type": content_type, "public_read": public_read}
        )
        if self.fail_with is not None:
            raise self.fail_with
        return super().store(key, data, content_type, public_read=public_read)


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
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def blob_store(tmp_path):
    return RecordingBlobStore(tmp_path / "media")


@pytest.fixture
def client(session_factory, blob_store):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    server.app.dependency_overrides[get_db] = _override_get_db
    server.app.dependency_overrides[get_blob_store] = lambda: blob_store
    try:
        yield TestClient(server.app)
    finally:
        server.app.dependency_overrides.clear()


@pytest.fixture
def school_form():
    """Return a builder for multipart ``(data, files)`` tuples."""

    def _build(image=None, **overrides):
        data = {
            "name": "Springfield Elementary",
            "address": "19 Plympton Street",
            "city": "Springfield",
            "state": "Oregon",
            "contact": "9876543210",
            "email_id": "office@springfield.edu",
        }
        for key, value in overrides.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        if image is None:
            image = ("campus.png", PNG_BYTES, "image/png")
        files = {"image": image} if image is not False else {}
        return data, files

    return _build


@pytest.fixture
def make_school(db_session):
    """Insert a school row directly with an explicit creation time."""

    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(name: str, minutes: int = 0, **fields) -> models.School:
        values = {
            "name": name,
            "address": f"{name} Road",
            "city": "Pune",
            "state": "Maharashtra",
            "contact": 9123456780,
            "email_id": "info@example.org",
            "image": f"/media/{name.lower().replace(' ', '-')}.png",
            "created_at": base_time + timedelta(minutes=minutes),
        }
        values.update(fields)
        school = models.School(**values)
        db_session.add(school)
        db_session.commit()
        return school

    return _make


