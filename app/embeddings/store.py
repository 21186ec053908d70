"""
Embedding persistence and similarity queries.

One row per message, keyed on the unique message_id. All writes go through
upsert(), which relies on the database's ON CONFLICT handling, so concurrent
writers for the same message converge on the last write without duplicates.

Similarity is 1 - cosine_distance (i.e. plain cosine similarity), scored
exactly over the user's embeddings. An ANN index (HNSW over cosine distance)
would slot in behind similarity_search() with the same ranking semantics.
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence
from uuid import uuid4

import numpy as np
from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.memory.models import Chat, Message

from .config import EMBEDDING_DIMENSIONS
from .models import MessageEmbedding, SearchSession

logger = logging.getLogger(__name__)


@dataclass
class SimilarityHit:
    message_id: str
    chat_id: str
    chat_title: str
    parts: Any
    role: str
    created_at: datetime
    similarity: float


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of `matrix` against `query`; zero-norm rows score 0."""
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    if query_norm == 0:
        return np.zeros(matrix.shape[0])
    denom = row_norms * query_norm
    dots = matrix @ query
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)


class EmbeddingStore:
    """
    Usage:
        store = EmbeddingStore(SessionLocal)
        store.upsert(message_id, vector, content_hash)
        hits = store.similarity_search(user_id, query_vector, threshold=0.7, limit=20)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dimensions: int = EMBEDDING_DIMENSIONS,
    ):
        self.session_factory = session_factory
        self.dimensions = dimensions

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ============ EMBEDDINGS ============

    def get(self, message_id: str) -> Optional[MessageEmbedding]:
        with self._session() as db:
            return (
                db.query(MessageEmbedding)
                .filter(MessageEmbedding.message_id == message_id)
                .first()
            )

    def exists(self, message_id: str) -> bool:
        with self._session() as db:
            return db.query(
                db.query(MessageEmbedding.id)
                .filter(MessageEmbedding.message_id == message_id)
                .exists()
            ).scalar()

    def upsert(self, message_id: str, vector: Sequence[float], content_hash: str) -> None:
        """Insert the row for message_id, or overwrite its vector and hash."""
        if len(vector) != self.dimensions:
            raise ValueError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )

        now = datetime.utcnow()
        payload = json.dumps([float(x) for x in vector])

        with self._session() as db:
            insert = self._insert_for(db)
            stmt = insert(MessageEmbedding).values(
                id=str(uuid4()),
                message_id=message_id,
                embedding=payload,
                content_hash=content_hash,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[MessageEmbedding.message_id],
                set_={
                    "embedding": stmt.excluded.embedding,
                    "content_hash": stmt.excluded.content_hash,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            db.execute(stmt)
            db.commit()

    @staticmethod
    def _insert_for(db: Session):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise ValueError(f"Unsupported database dialect for embedding upsert: '{dialect}'")

    def count_embeddings(self) -> int:
        with self._session() as db:
            return db.query(func.count(MessageEmbedding.id)).scalar() or 0

    def count_user_corpus(self, user_id: str) -> Dict[str, int]:
        """Chats, messages and embeddings owned by a user (search diagnostics)."""
        with self._session() as db:
            chats = db.query(func.count(Chat.id)).filter(Chat.user_id == user_id).scalar() or 0
            messages = (
                db.query(func.count(Message.id))
                .join(Chat, Message.chat_id == Chat.id)
                .filter(Chat.user_id == user_id)
                .scalar()
            ) or 0
            embeddings = (
                db.query(func.count(MessageEmbedding.id))
                .join(Message, MessageEmbedding.message_id == Message.id)
                .join(Chat, Message.chat_id == Chat.id)
                .filter(Chat.user_id == user_id)
                .scalar()
            ) or 0
        return {"chats": chats, "messages": messages, "embeddings": embeddings}

    # ============ SEARCH ============

    def similarity_search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        threshold: float,
        limit: int,
    ) -> List[SimilarityHit]:
        """
        Rank the user's message embeddings by cosine similarity to query_vector.

        Keeps hits with similarity strictly above threshold, highest first,
        at most `limit`. Ties keep message creation order.
        """
        if limit <= 0:
            return []

        with self._session() as db:
            rows = (
                db.query(
                    MessageEmbedding.embedding,
                    Message.id,
                    Message.chat_id,
                    Message.parts,
                    Message.role,
                    Message.created_at,
                    Chat.title,
                )
                .join(Message, MessageEmbedding.message_id == Message.id)
                .join(Chat, Message.chat_id == Chat.id)
                .filter(Chat.user_id == user_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )

        if not rows:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        vectors = []
        candidates = []
        for row in rows:
            try:
                vector = json.loads(row[0])
            except (json.JSONDecodeError, TypeError):
                logger.warning(f"[embedding_store] Unreadable embedding for message {row[1]}, skipping")
                continue
            if len(vector) != len(query):
                logger.warning(
                    f"[embedding_store] Message {row[1]} has {len(vector)}-dim embedding, "
                    f"query has {len(query)}, skipping"
                )
                continue
            vectors.append(vector)
            candidates.append(row)

        if not candidates:
            return []

        scores = cosine_similarities(np.asarray(vectors, dtype=np.float64), query)
        order = np.argsort(-scores, kind="stable")

        hits: List[SimilarityHit] = []
        for idx in order:
            score = float(scores[idx])
            if score <= threshold:
                break
            _, message_id, chat_id, parts, role, created_at, title = candidates[idx]
            hits.append(SimilarityHit(
                message_id=message_id,
                chat_id=chat_id,
                chat_title=title,
                parts=parts,
                role=role,
                created_at=created_at,
                similarity=score,
            ))
            if len(hits) >= limit:
                break

        return hits

    # ============ SEARCH SESSIONS ============

    def create_search_session(
        self,
        user_id: str,
        query: str,
        query_vector: Sequence[float],
    ) -> str:
        with self._session() as db:
            session = SearchSession(
                user_id=user_id,
                query=query,
                query_embedding=json.dumps([float(x) for x in query_vector]),
                result_count=0,
            )
            db.add(session)
            db.commit()
            return session.id

    def update_search_session_count(self, session_id: str, result_count: int) -> None:
        with self._session() as db:
            db.query(SearchSession).filter(SearchSession.id == session_id).update(
                {SearchSession.result_count: result_count}
            )
            db.commit()
