"""
FastAPI routes for semantic search and embedding maintenance.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from app.auth import AuthResult, require_user

from . import EmbeddingServices
from .config import (
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    MAX_SEARCH_LIMIT,
    MAX_SIMILARITY_THRESHOLD,
    MAX_SYNC_BATCH_SIZE,
    MIN_QUERY_LENGTH,
    MIN_SIMILARITY_THRESHOLD,
    EmbeddingMode,
)
from .errors import EmbeddingError
from .schemas import (
    CronResponse,
    EmbeddingStats,
    EnsureResponse,
    PopulateRequest,
    PopulateResponse,
    QueueStatus,
    SearchRequest,
    SearchResponse,
    SyncResponse,
)

logger = logging.getLogger(__name__)


def get_services(request: Request) -> EmbeddingServices:
    """FastAPI dependency returning the services built at startup."""
    services = getattr(request.app.state, "embedding_services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Embedding services not initialised")
    return services


search_router = APIRouter(
    prefix="/search",
    tags=["search"],
)

router = APIRouter(
    prefix="/embeddings",
    tags=["embeddings"],
)

cron_router = APIRouter(
    prefix="/cron",
    tags=["cron"],
)


# ============ SEARCH ============

@search_router.get("", response_model=SearchResponse)
def search_messages(
    q: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    threshold: Optional[float] = Query(default=None),
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    """
    Semantic search across the caller's chat history.
    A failed search returns an empty result set, same as no matches.
    """
    if not q or len(q.strip()) < MIN_QUERY_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Query must be at least {MIN_QUERY_LENGTH} characters long",
        )

    limit = limit if limit and limit > 0 else DEFAULT_SEARCH_LIMIT
    threshold = threshold if threshold else DEFAULT_SIMILARITY_THRESHOLD

    return services.search.search(SearchRequest(
        user_id=auth.user_id,
        query=q.strip(),
        limit=min(limit, MAX_SEARCH_LIMIT),
        threshold=max(MIN_SIMILARITY_THRESHOLD, min(threshold, MAX_SIMILARITY_THRESHOLD)),
    ))


@search_router.post("/sync", response_model=SyncResponse)
def sync_missing_embeddings(
    batch_size: Optional[int] = Query(default=None, alias="batchSize"),
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    """Embed a batch of messages that have no embedding yet."""
    batch_size = batch_size if batch_size and batch_size > 0 else services.config.batch_size
    try:
        processed = services.pipeline.process_missing_batch(min(batch_size, MAX_SYNC_BATCH_SIZE))
        stats = services.pipeline.get_stats()
    except Exception as e:
        logger.exception(f"[embeddings.router] Embedding sync failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return SyncResponse(success=True, processed_count=processed, stats=stats)


@search_router.get("/sync", response_model=SyncResponse)
def sync_status(
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    return SyncResponse(success=True, stats=_stats_or_500(services))


# ============ EMBEDDINGS ============

@router.post("/populate", response_model=PopulateResponse)
def populate_embeddings(
    req: Optional[PopulateRequest] = None,
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    """Process one batch of messages missing embeddings and report coverage before/after."""
    batch_size = req.batch_size if req else services.config.batch_size

    initial_stats = _stats_or_500(services)
    if initial_stats.total_messages == 0:
        return JSONResponse(
            status_code=400,
            content={
                "error": "No messages found in database",
                "stats": initial_stats.model_dump(),
            },
        )

    try:
        processed = services.pipeline.process_missing_batch(batch_size)
    except Exception as e:
        logger.exception(f"[embeddings.router] Embedding population failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    final_stats = _stats_or_500(services)
    return PopulateResponse(
        processed=processed,
        initial_stats=initial_stats,
        final_stats=final_stats,
        remaining=final_stats.total_messages - final_stats.messages_with_embeddings,
    )


@router.get("/populate", response_model=EmbeddingStats)
def embedding_stats(
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    return _stats_or_500(services)


@router.post("/ensure/{message_id}", response_model=EnsureResponse)
def ensure_message_embedding(
    message_id: str,
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    """Create the embedding for one message if it does not have one yet."""
    try:
        ensured = services.pipeline.ensure_embedding(message_id)
    except EmbeddingError as e:
        logger.error(f"[embeddings.router] Embedding model error for {message_id}: {e}")
        raise HTTPException(status_code=502, detail="Embedding model unavailable")
    except Exception as e:
        logger.exception(f"[embeddings.router] ensure_embedding failed for {message_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return EnsureResponse(message_id=message_id, ensured=ensured)


@router.get("/queue", response_model=QueueStatus)
def queue_status(
    auth: AuthResult = Depends(require_user),
    services: EmbeddingServices = Depends(get_services),
):
    return services.queue.status()


# ============ CRON ============

@cron_router.api_route("/embeddings", methods=["GET", "POST"], response_model=CronResponse)
def run_embedding_cron(
    authorization: Optional[str] = Header(default=None),
    services: EmbeddingServices = Depends(get_services),
):
    """
    Scheduled sweep: embed a batch of messages missing embeddings.
    Guarded by CRON_SECRET (Bearer) when one is configured.
    """
    config = services.config
    if not (config.cron_enabled or config.mode == EmbeddingMode.CRON):
        raise HTTPException(status_code=403, detail="Embedding cron is disabled")

    if config.cron_secret and not secrets.compare_digest(
        authorization or "", f"Bearer {config.cron_secret}"
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info("[cron] Starting scheduled embedding processing...")
    try:
        processed = services.pipeline.process_missing_batch(config.cron_batch_size)
        stats = services.pipeline.get_stats()
    except Exception as e:
        logger.exception(f"[cron] Embedding processing failed: {e}")
        failure = CronResponse(
            success=False,
            error="Internal server error",
            timestamp=datetime.utcnow(),
        )
        return JSONResponse(status_code=500, content=failure.model_dump(mode="json"))

    logger.info(f"[cron] Processed {processed} embeddings. Coverage: {stats.coverage}%")
    return CronResponse(
        success=True,
        processed=processed,
        stats=stats,
        timestamp=datetime.utcnow(),
    )


def _stats_or_500(services: EmbeddingServices) -> EmbeddingStats:
    try:
        return services.pipeline.get_stats()
    except Exception as e:
        logger.exception(f"[embeddings.router] Failed to read embedding stats: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
