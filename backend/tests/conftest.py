"""
Shared fixtures: in-memory SQLite, a scripted AI client, local blob storage
in tmp_path, and a TestClient wired to all three.
"""
from __future__ import annotations

import json
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["STORAGE_BACKEND"] = "local"
os.environ["PDF_PROCESSING_MODE"] = "native"

from typing import List, Optional, Sequence, Union  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tender.api import deps  # noqa: E402
from tender.db import models  # noqa: E402
from tender.db.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from tender.main import app  # noqa: E402
from tender.services.ai_client import Attachment  # noqa: E402
from tender.services.storage_service import LocalStorageService  # noqa: E402


def analysis_json(**overrides) -> str:
    """A well-formed analysis reply, wrapped in the chatter models tend to add."""
    payload = {
        "caseNumber": "CV-2024-001234",
        "parties": ["Jane Johnson (plaintiff)", "MegaCorp Inc. (defendant)"],
        "deadlines": [
            {"date": "March 15, 2024", "description": "File motion to compel", "priority": "high"}
        ],
        "keyFacts": ["Contract signed January 2023", "Payment withheld since June"],
        "confidence": 0.92,
        "suggestedActions": [
            {
                "title": "File motion to compel",
                "description": "Draft and file the motion before the deadline",
                "rationale": "Missing the deadline waives the objection",
                "priority": "high",
            },
            {
                "title": "Request payment records",
                "description": "Serve a document request for payment ledgers",
                "rationale": "Establishes the breach timeline",
                "priority": "medium",
            },
        ],
    }
    payload.update(overrides)
    return "Here is the analysis:\n```json\n" + json.dumps(payload) + "\n```"


class FakeAIClient:
    """
    Scripted GenerativeClient. Each call pops the next reply; an Exception
    instance is raised instead of returned. When the script runs out the
    default reply is used.
    """

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None, default: str = "Happy to help."):
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[tuple[str, list]] = []

    def script(self, *replies: Union[str, Exception]) -> None:
        self.replies.extend(replies)

    def generate(self, prompt: str, attachments: Optional[Sequence[Attachment]] = None) -> str:
        self.calls.append((prompt, list(attachments or [])))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_ai():
    return FakeAIClient()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageService(str(tmp_path / "blobs"))


@pytest.fixture
def user(db):
    account = models.User(email="counsel@example.com", password_hash="not-a-real-hash", full_name="Counsel")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def case(db, user):
    c = models.Case(owner_id=user.id, name="Johnson v. MegaCorp", case_number="CV-2024-001234")
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def client(session_factory, fake_ai, storage):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_ai_client] = lambda: fake_ai
    app.dependency_overrides[deps.get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str = "counsel@example.com", password: str = "password123") -> dict:
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "fullName": "Test Counsel"},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def auth_client(client):
    """TestClient holding a session cookie for a freshly registered account."""
    register(client)
    return client


@pytest.fixture
def register_user():
    return register


@pytest.fixture
def make_analysis():
    return analysis_json
