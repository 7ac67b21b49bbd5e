# test/conftest.py - shared fixtures
import os
import tempfile
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="brotodesk-test-"))

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["ENVIRONMENT"] = "test"
os.environ["USE_S3"] = "false"
os.environ["USE_S3_ONLY"] = "false"
os.environ["UPLOADS_DIR"] = str(_TMP / "uploads")
os.environ["LOG_FILE"] = str(_TMP / "logs" / "app.log")
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["RATE_LIMIT_ASSISTANT_PER_MINUTE"] = "100000"

import email_validator
from fastapi.testclient import TestClient

import config
from app import app
from auth.security import create_access_token
from database.connection import Database
from database.models import (
    UserRole, Complaint, ComplaintCategory, ComplaintUrgency, ComplaintStatus
)
from services.auth_service import AuthService

# Fixture users live under the reserved .test domain; email-validator's
# documented test switch lets EmailStr accept it
email_validator.TEST_ENVIRONMENT = True

PASSWORD = "Secret#123"


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Fresh in-memory database and upload directory per test."""
    monkeypatch.setattr(config, "UPLOADS_DIR", tmp_path / "uploads")
    monkeypatch.setattr(config, "s3_client", None)
    monkeypatch.setattr(config, "USE_S3_ONLY", False)
    config.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

    db = Database("sqlite://")
    db.create_tables()
    config.db = db
    yield db
    config.db = None
    db.drop_tables()
    db.dispose()


@pytest.fixture
def session(database):
    """A session for arranging and inspecting state outside requests."""
    s = database.SessionLocal()
    yield s
    s.close()


@pytest.fixture
def client():
    """HTTP test client; lifespan is not run, the database fixture stands in for it."""
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(database, email, name, role=UserRole.STUDENT, phone=None, batch=None):
    with database.get_session() as s:
        user = AuthService.create_user(
            s, email=email, password=PASSWORD, name=name, role=role, phone=phone, batch=batch
        )
        user_id = user.id
    token = create_access_token({"sub": user_id, "email": email, "role": role.value})
    return {
        "id": user_id,
        "email": email,
        "name": name,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture
def student(database):
    return make_user(database, "s1@brotodesk.test", "Student One", batch="BCR-42")


@pytest.fixture
def other_student(database):
    return make_user(database, "s2@brotodesk.test", "Student Two")


@pytest.fixture
def admin(database):
    return make_user(database, "admin@brotodesk.test", "Admin", role=UserRole.ADMIN)


def make_complaint(database, student_id, title="Wifi down in hostel", status=ComplaintStatus.PENDING):
    with database.get_session() as s:
        complaint = Complaint(
            student_id=student_id,
            title=title,
            category=ComplaintCategory.INTERNET,
            description="The hostel wifi has been down since Monday evening.",
            urgency=ComplaintUrgency.HIGH,
            status=status,
        )
        s.add(complaint)
        s.flush()
        complaint_id = complaint.id
    return complaint_id


@pytest.fixture
def complaint(database, student):
    return make_complaint(database, student["id"])
