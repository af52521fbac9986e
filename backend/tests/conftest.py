"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file and its own public upload tree under
pytest's tmp_path; the FastAPI app is pointed at them through dependency
overrides.
"""
import io
from datetime import datetime
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker
from starlette.datastructures import FormData, Headers, UploadFile

from app.config import settings
from app.database import Base, build_engine, get_session_factory
from app.main import app
from app.services.attachment_store import AttachmentStore, IncomingFile, get_attachment_store
from app.services.task_repository import TaskRepository
from app.services.task_service import TaskService

PDF_BYTES = b"%PDF-1.4\n% test document\n"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'taskdesk-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def public_dir(tmp_path):
    path = tmp_path / "public"
    (path / "uploads").mkdir(parents=True)
    return path


@pytest.fixture
def store(session_factory, public_dir):
    return AttachmentStore(session_factory, public_dir=public_dir)


@pytest.fixture
def service(db, store):
    return TaskService(db, store)


@pytest.fixture
def client(session_factory, store):
    """Test client bound to the per-test database and upload tree."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_attachment_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unpost_token():
    """Bearer token whose role carries the tasks.unpost permission."""
    claims = {"sub": "admin", "role": {"name": "admin", "permissions": ["tasks.view", "tasks.unpost"]}}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def make_task(db):
    """Insert a task row directly; keyword arguments override the defaults."""
    def _make(**overrides: Any):
        data: Dict[str, Any] = {
            "code": "T-1001",
            "company": {"id": None, "name": "Acme Traders", "city": "Lahore"},
            "contact": {"name": "Sara", "phone": "0300-1234567"},
            "working": "Install the billing module",
            "date_time": datetime(2026, 1, 1, 9, 0),
            "priority": "Normal",
            "status": "pending",
            "created_by": "creator-1",
        }
        data.update(overrides)
        return TaskRepository(db).create(data)
    return _make


def incoming(filename: str = "report.pdf", data: bytes = PDF_BYTES, content_type: str = "application/pdf") -> IncomingFile:
    return IncomingFile(filename=filename, content_type=content_type, data=data)


def upload(filename: str = "report.pdf", data: bytes = PDF_BYTES, content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def form(*items) -> FormData:
    """Build multipart form data from (key, value) pairs."""
    return FormData(list(items))
