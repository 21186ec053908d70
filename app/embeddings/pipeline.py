"""
Embedding pipeline: message -> searchable text -> fingerprint -> vector -> store.

Incremental: a message whose extracted text hashes to the stored
content_hash is skipped, so re-running over unchanged messages costs no
embedding calls. Blank messages (no text parts) never get a row.

Errors from the embedding client or the store propagate out of process();
batch helpers log and skip per-item failures so one bad message does not
abort a sweep.
"""

import logging
import time
from typing import Any, Callable, List, Optional, Sequence

from .client import EmbeddingClient
from .config import EmbeddingConfig
from .content import extract_searchable_content, generate_content_hash
from .schemas import EmbeddingStats
from .store import EmbeddingStore

logger = logging.getLogger(__name__)


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


class EmbeddingPipeline:
    """
    Usage:
        pipeline = EmbeddingPipeline(client, store, message_store, config)
        pipeline.process(message)             # one message, inline
        pipeline.process_missing_batch(10)    # sweep messages without embeddings
        pipeline.get_stats()
    """

    def __init__(
        self,
        client: EmbeddingClient,
        store: EmbeddingStore,
        message_store,
        config: Optional[EmbeddingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.store = store
        self.message_store = message_store
        self.config = config or EmbeddingConfig()
        self._sleep = sleep

    # ============ SINGLE MESSAGE ============

    def process(self, message: Any) -> bool:
        """
        Embed one message if its text is non-blank and changed.

        Returns True if an embedding was written, False for a no-op.
        """
        message_id = _field(message, "id")
        content = extract_searchable_content(_field(message, "parts"))
        if not content:
            logger.debug(f"[embedding_pipeline] Message {message_id} has no text content, skipping")
            return False

        content_hash = generate_content_hash(content)

        existing = self.store.get(message_id)
        if existing is not None and existing.content_hash == content_hash:
            logger.debug(f"[embedding_pipeline] Message {message_id} unchanged, skipping")
            return False

        vector = self.client.embed(content)
        self.store.upsert(message_id, vector, content_hash)

        action = "Re-embedded" if existing is not None else "Embedded"
        logger.info(f"[embedding_pipeline] {action} message {message_id}")
        return True

    def process_message_id(self, message_id: str) -> None:
        """Load a message by id and process it. Unknown ids are logged, not raised."""
        message = self.message_store.get_message_by_id(message_id)
        if message is None:
            logger.warning(f"[embedding_pipeline] Message not found: {message_id}")
            return
        self.process(message)

    def ensure_embedding(self, message_id: str) -> bool:
        """
        Create the embedding for message_id if it has none.

        Returns True if the message now has (or already had) an embedding.
        """
        if self.store.exists(message_id):
            return True

        message = self.message_store.get_message_by_id(message_id)
        if message is None:
            logger.warning(f"[embedding_pipeline] ensure_embedding: message not found: {message_id}")
            return False

        return self.process(message)

    # ============ BATCHES ============

    def process_missing_batch(self, batch_size: Optional[int] = None) -> int:
        """
        Embed up to batch_size messages that have no embedding row, newest first.

        Returns the number of messages successfully embedded. Messages with no
        text are skipped and not counted.
        """
        if batch_size is None:
            batch_size = self.config.batch_size
        if batch_size <= 0:
            return 0
        messages = self.message_store.get_messages_missing_embeddings(batch_size)
        logger.info(f"[embedding_pipeline] Found {len(messages)} messages without embeddings")

        processed = 0
        for i, message in enumerate(messages):
            message_id = _field(message, "id")
            try:
                if not extract_searchable_content(_field(message, "parts")):
                    logger.debug(f"[embedding_pipeline] Skipping message {message_id} - no text content")
                    continue
                if self.process(message):
                    processed += 1
            except Exception as e:
                logger.error(f"[embedding_pipeline] Failed to embed message {message_id}: {e}")
                continue

            if i < len(messages) - 1:
                self._throttle()

        logger.info(f"[embedding_pipeline] Successfully processed {processed} message embeddings")
        return processed

    def ensure_recent_messages(self, limit: int = 50) -> int:
        """Embed any of the `limit` newest messages that still lack an embedding."""
        messages = self.message_store.get_recent_messages(limit)
        processed = 0
        for i, message in enumerate(messages):
            message_id = _field(message, "id")
            try:
                if self.store.exists(message_id):
                    continue
                if self.process(message):
                    processed += 1
            except Exception as e:
                logger.error(f"[embedding_pipeline] Failed to embed recent message {message_id}: {e}")
                continue

            if i < len(messages) - 1:
                self._throttle()
        return processed

    def batch_create_embeddings(
        self,
        message_ids: Sequence[str],
        batch_size: Optional[int] = None,
    ) -> int:
        """Embed the given messages that lack embeddings, batch_size ids at a time."""
        if batch_size is None:
            batch_size = self.config.batch_size
        if batch_size <= 0:
            return 0
        ids: List[str] = list(message_ids)
        processed = 0

        for start in range(0, len(ids), batch_size):
            for message_id in ids[start:start + batch_size]:
                try:
                    if self.store.exists(message_id):
                        continue
                    message = self.message_store.get_message_by_id(message_id)
                    if message is not None and self.process(message):
                        processed += 1
                except Exception as e:
                    logger.error(f"[embedding_pipeline] Failed to embed message {message_id}: {e}")

            if start + batch_size < len(ids):
                self._throttle()

        return processed

    def _throttle(self) -> None:
        if self.config.processing_delay > 0:
            self._sleep(self.config.processing_delay)

    # ============ STATS ============

    def get_stats(self) -> EmbeddingStats:
        total = self.message_store.count_messages()
        embedded = self.store.count_embeddings()
        coverage = round(100 * embedded / total, 2) if total > 0 else 0
        return EmbeddingStats(
            total_messages=total,
            messages_with_embeddings=embedded,
            coverage=coverage,
        )
