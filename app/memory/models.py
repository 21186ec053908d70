# app/memory/models.py
"""
SQLAlchemy ORM models for chat storage.

Chats and messages are owned by the chat layer; the semantic search
subsystem only reads them. Message bodies are stored as a JSON list of
parts (text, image, file, ...), not as flat text.
"""

from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from app.db import Base


def _uuid() -> str:
    return str(uuid4())


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="New chat")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan")


class Message(Base):
    """
    Chat message storage.

    `parts` holds the structured body, e.g.
    [{"type": "text", "text": "Hello"}, {"type": "image", "url": "..."}].
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # "user", "assistant", "system"
    parts = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    chat = relationship("Chat", back_populates="messages")
    embedding = relationship(
        "MessageEmbedding",
        back_populates="message",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
