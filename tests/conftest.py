"""
Pytest configuration for the chat search test suite.

Configures:
- pytest-asyncio (auto mode, set in pyproject.toml) for async tests
- an isolated in-memory SQLite database per test
- a deterministic, offline embedding client
"""
import sys
import hashlib
import re
from datetime import datetime, timedelta
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

DIMENSIONS = 1536
_TOKEN_RE = re.compile(r"[a-z0-9]+")


class FakeEmbeddingClient:
    """
    Bag-of-words embedder: each token adds 1.0 to a hashed slot.

    Identical texts get identical vectors (similarity 1.0), texts with no
    shared words are orthogonal (similarity 0.0).
    """

    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.calls = []

    def _vector(self, text):
        vector = [0.0] * self.dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            slot = int(hashlib.sha256(token.encode()).hexdigest()[:8], 16) % self.dimensions
            vector[slot] += 1.0
        return vector

    def embed(self, text):
        from app.embeddings.errors import EmptyContentError

        if not text or not text.strip():
            raise EmptyContentError()
        self.calls.append(text)
        return self._vector(text)

    def embed_batch(self, texts):
        filtered = [t for t in texts if t and t.strip()]
        if not filtered:
            return []
        self.calls.append(list(filtered))
        return [self._vector(t) for t in filtered]


@pytest.fixture
def engine():
    """Fresh in-memory database shared across sessions and threads."""
    from app.db import init_db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_client():
    return FakeEmbeddingClient()


@pytest.fixture
def config():
    from app.embeddings.config import EmbeddingConfig
    return EmbeddingConfig(processing_delay_ms=0)


@pytest.fixture
def services(session_factory, config, fake_client):
    """Wired services with a manual (non-threaded) queue."""
    from app.embeddings import build_services

    services = build_services(
        session_factory,
        config=config,
        client=fake_client,
        autostart_queue=False,
    )
    yield services
    services.queue.clear()


@pytest.fixture
def make_chat(db):
    from app.memory import service as memory_service

    def _make_chat(user_id="user-a", title="Test chat"):
        return memory_service.create_chat(db, user_id=user_id, title=title)

    return _make_chat


@pytest.fixture
def make_message(db):
    """Insert a message directly (no embedding hook). Later calls are newer."""
    from app.memory.models import Message

    base = datetime(2025, 1, 1, 12, 0, 0)
    counter = {"n": 0}

    def _make_message(chat, parts, role="user", created_at=None):
        counter["n"] += 1
        message = Message(
            chat_id=chat.id,
            role=role,
            parts=parts,
            created_at=created_at or base + timedelta(minutes=counter["n"]),
        )
        db.add(message)
        db.commit()
        db.refresh(message)
        return message

    return _make_message


def text_parts(text):
    return [{"type": "text", "text": text}]
