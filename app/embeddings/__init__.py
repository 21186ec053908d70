"""
Semantic search over chat history.
Provides embedding generation, storage, background processing and
user-scoped vector similarity search.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .client import EmbeddingClient, OpenAIEmbeddingClient
from .config import EmbeddingConfig, EmbeddingMode
from .content import extract_searchable_content, generate_content_hash
from .errors import EmbeddingError, EmptyContentError, RemoteEmbeddingError, SearchError
from .models import MessageEmbedding, SearchSession
from .pipeline import EmbeddingPipeline
from .queue import EmbeddingJob, EmbeddingQueue, JobPriority, JobState
from .schemas import (
    EmbeddingStats,
    QueueStatus,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from .search import SearchEngine, SearchOutcome
from .store import EmbeddingStore, SimilarityHit


@dataclass
class EmbeddingServices:
    """Everything the app needs, built once at startup and passed around explicitly."""
    config: EmbeddingConfig
    client: EmbeddingClient
    store: EmbeddingStore
    pipeline: EmbeddingPipeline
    queue: EmbeddingQueue
    search: SearchEngine


def build_services(
    session_factory: Callable[[], Session],
    config: Optional[EmbeddingConfig] = None,
    client: Optional[EmbeddingClient] = None,
    autostart_queue: bool = True,
) -> EmbeddingServices:
    from app.memory.service import SqlMessageStore

    config = config or EmbeddingConfig.from_env()
    client = client or OpenAIEmbeddingClient(
        model=config.model,
        dimensions=config.dimensions,
        timeout=config.request_timeout,
    )
    store = EmbeddingStore(session_factory, dimensions=config.dimensions)
    pipeline = EmbeddingPipeline(client, store, SqlMessageStore(session_factory), config)
    queue = EmbeddingQueue(
        pipeline.process_message_id,
        max_retries=config.max_retries,
        processing_delay_ms=config.processing_delay_ms,
        enable_retries=config.enable_retries,
        autostart=autostart_queue,
    )
    return EmbeddingServices(
        config=config,
        client=client,
        store=store,
        pipeline=pipeline,
        queue=queue,
        search=SearchEngine(client, store),
    )


__all__ = [
    # Wiring
    "EmbeddingServices",
    "build_services",
    # Config
    "EmbeddingConfig",
    "EmbeddingMode",
    # Components
    "EmbeddingClient",
    "OpenAIEmbeddingClient",
    "EmbeddingStore",
    "SimilarityHit",
    "EmbeddingPipeline",
    "EmbeddingQueue",
    "EmbeddingJob",
    "JobPriority",
    "JobState",
    "SearchEngine",
    "SearchOutcome",
    # Pure helpers
    "extract_searchable_content",
    "generate_content_hash",
    # Errors
    "EmbeddingError",
    "EmptyContentError",
    "RemoteEmbeddingError",
    "SearchError",
    # Models
    "MessageEmbedding",
    "SearchSession",
    # Schemas
    "EmbeddingStats",
    "QueueStatus",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
]
