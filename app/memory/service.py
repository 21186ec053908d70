# FILE: app/memory/service.py
"""
Chat/message service layer.

Only the narrow surface the semantic search subsystem needs lives here:
reading messages back, finding messages that still lack embeddings, and
saving a message (which hands it to the embedding subsystem when
auto-generation is on).
"""
import logging
from typing import Any, Callable, List, Optional, TYPE_CHECKING
from sqlalchemy.orm import Session
from app.memory import models

if TYPE_CHECKING:
    from app.embeddings import EmbeddingServices

logger = logging.getLogger(__name__)


# ============== CHAT ==============

def create_chat(db: Session, user_id: str, title: str = "New chat") -> models.Chat:
    chat = models.Chat(user_id=user_id, title=title)
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def get_chat(db: Session, chat_id: str) -> Optional[models.Chat]:
    return db.query(models.Chat).filter(models.Chat.id == chat_id).first()


# ============== MESSAGE ==============

def get_message_by_id(db: Session, message_id: str) -> Optional[models.Message]:
    return db.query(models.Message).filter(models.Message.id == message_id).first()


def get_messages_missing_embeddings(db: Session, limit: int) -> List[models.Message]:
    """Messages with no embedding row, newest first (left join, embedding absent)."""
    from app.embeddings.models import MessageEmbedding

    return (
        db.query(models.Message)
        .outerjoin(MessageEmbedding, MessageEmbedding.message_id == models.Message.id)
        .filter(MessageEmbedding.message_id.is_(None))
        .order_by(models.Message.created_at.desc())
        .limit(limit)
        .all()
    )


def get_recent_messages(db: Session, limit: int) -> List[models.Message]:
    return (
        db.query(models.Message)
        .order_by(models.Message.created_at.desc())
        .limit(limit)
        .all()
    )


def count_messages(db: Session) -> int:
    return db.query(models.Message).count()


def _embed_message_if_enabled(services: Optional["EmbeddingServices"], message: models.Message) -> None:
    """Hand a freshly saved message to the embedding subsystem per the configured mode."""
    if services is None:
        return

    from app.embeddings.config import EmbeddingMode

    config = services.config
    if not config.auto_generate:
        return

    try:
        if config.mode == EmbeddingMode.QUEUE:
            services.queue.enqueue(message.id, "normal")
        elif config.mode == EmbeddingMode.REALTIME:
            services.pipeline.process(message)
        # cron / manual: picked up later by the sweep or an explicit call
    except Exception as e:
        # Don't fail the save if embedding fails
        logger.warning(f"[memory.service] Failed to embed message {message.id}: {e}")


def save_message(
    db: Session,
    chat_id: str,
    role: str,
    parts: List[Any],
    services: Optional["EmbeddingServices"] = None,
) -> models.Message:
    """Persist a message, then enqueue/process its embedding if auto-generation is on."""
    message = models.Message(chat_id=chat_id, role=role, parts=list(parts or []))
    db.add(message)
    db.commit()
    db.refresh(message)

    _embed_message_if_enabled(services, message)
    return message


class SqlMessageStore:
    """
    Message store backed by the chat tables; each call opens its own session.

    Returned messages are detached but fully loaded (id, chat_id, role, parts,
    created_at).
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_message_by_id(self, message_id: str) -> Optional[models.Message]:
        db = self.session_factory()
        try:
            return get_message_by_id(db, message_id)
        finally:
            db.close()

    def get_messages_missing_embeddings(self, limit: int) -> List[models.Message]:
        db = self.session_factory()
        try:
            return get_messages_missing_embeddings(db, limit)
        finally:
            db.close()

    def get_recent_messages(self, limit: int) -> List[models.Message]:
        db = self.session_factory()
        try:
            return get_recent_messages(db, limit)
        finally:
            db.close()

    def count_messages(self) -> int:
        db = self.session_factory()
        try:
            return count_messages(db)
        finally:
            db.close()
