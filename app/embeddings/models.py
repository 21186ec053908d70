"""
SQLAlchemy models for message embeddings and search sessions.
"""

import json
from datetime import datetime
from typing import List
from uuid import uuid4
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.db import Base


def _uuid() -> str:
    return str(uuid4())


class MessageEmbedding(Base):
    """
    One embedding per message.

    embedding: JSON-encoded float array (1536 floats for text-embedding-3-small)
    content_hash: sha256 hex of the extracted text the vector was computed from
    """
    __tablename__ = "message_embeddings"

    id = Column(String(36), primary_key=True, default=_uuid)
    message_id = Column(
        String(36),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    embedding = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    message = relationship("Message", back_populates="embedding")

    @property
    def vector(self) -> List[float]:
        return json.loads(self.embedding)


class SearchSession(Base):
    """Audit row written for every search: inserted first, then patched with result_count."""
    __tablename__ = "search_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    query = Column(Text, nullable=False)
    query_embedding = Column(Text, nullable=True)  # JSON-encoded float array
    result_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_search_sessions_user_created", "user_id", "created_at"),
    )
