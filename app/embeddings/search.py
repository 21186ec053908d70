"""
Semantic search over a user's chat history.

Search is best-effort: search() never raises and returns an empty response
on any failure, so a broken embedding call looks like "no results" to the
caller. search_or_error() exposes the failure for callers (and tests) that
need to tell the two apart; the failure is always logged.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .client import EmbeddingClient
from .content import extract_searchable_content
from .errors import SearchError
from .schemas import SearchRequest, SearchResponse, SearchResult
from .store import EmbeddingStore

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    response: SearchResponse
    error: Optional[SearchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SearchEngine:
    def __init__(self, client: EmbeddingClient, store: EmbeddingStore):
        self.client = client
        self.store = store

    def search(self, request: SearchRequest) -> SearchResponse:
        return self.search_or_error(request).response

    def search_or_error(self, request: SearchRequest) -> SearchOutcome:
        try:
            return SearchOutcome(response=self._search(request))
        except Exception as e:
            logger.exception(f"[search] Search failed for user {request.user_id}: {e}")
            return SearchOutcome(
                response=SearchResponse(results=[], total=0),
                error=SearchError(str(e), cause=e),
            )

    def _search(self, request: SearchRequest) -> SearchResponse:
        query = request.query.strip()
        logger.info(
            f"[search] user={request.user_id} limit={request.limit} "
            f"threshold={request.threshold} query={query[:80]!r}"
        )
        if logger.isEnabledFor(logging.DEBUG):
            corpus = self.store.count_user_corpus(request.user_id)
            logger.debug(
                f"[search] User has {corpus['chats']} chats, {corpus['messages']} messages, "
                f"{corpus['embeddings']} embeddings"
            )

        query_vector = self.client.embed(query)

        # Recorded before ranking so the intent is logged even if ranking fails
        session_id = self.store.create_search_session(request.user_id, request.query, query_vector)

        hits = self.store.similarity_search(
            request.user_id,
            query_vector,
            threshold=request.threshold,
            limit=request.limit,
        )

        results = [
            SearchResult(
                message_id=hit.message_id,
                chat_id=hit.chat_id,
                chat_title=hit.chat_title,
                content=extract_searchable_content(hit.parts),
                similarity=hit.similarity,
                created_at=hit.created_at,
                role=hit.role,
            )
            for hit in hits
        ]

        for i, result in enumerate(results[:5], start=1):
            logger.debug(f"[search]   {i}. [{result.similarity * 100:.1f}%] {result.role}: {result.content[:80]}")

        self.store.update_search_session_count(session_id, len(results))
        logger.info(f"[search] Returning {len(results)} results")

        return SearchResponse(results=results, total=len(results))
