"""
Embedding model client.

Turns text into fixed-length dense vectors via the OpenAI embeddings API.
No retry happens here: remote errors (network, auth, rate limit) reach the
caller unchanged, and the background queue decides whether to try again.
"""

import logging
import os
from typing import List, Optional, Protocol, Sequence

from .config import EMBEDDING_DIMENSIONS, EMBEDDING_MODEL, DEFAULT_REQUEST_TIMEOUT
from .errors import EmptyContentError, RemoteEmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    dimensions: int

    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class OpenAIEmbeddingClient:
    """
    Usage:
        client = OpenAIEmbeddingClient()
        vector = client.embed("hello")            # 1536 floats
        vectors = client.embed_batch(["a", " "])  # one vector: blanks are dropped
    """

    def __init__(
        self,
        model: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        api_key = self._api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RemoteEmbeddingError(
                "OPENAI_API_KEY is not set; cannot generate embeddings."
            )

        from openai import OpenAI

        self._client = OpenAI(api_key=api_key, timeout=self.timeout)
        return self._client

    def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmptyContentError()

        response = self._get_client().embeddings.create(
            model=self.model,
            input=text,
        )
        return [float(x) for x in response.data[0].embedding]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed many texts in one call.

        Blank entries are dropped first, so the result lines up with the
        filtered input, not the original one.
        """
        filtered = [t for t in texts if t and t.strip()]
        if not filtered:
            return []

        response = self._get_client().embeddings.create(
            model=self.model,
            input=filtered,
        )
        logger.debug(f"[embeddings] Batch call returned {len(response.data)} vectors")
        # The API tags each vector with its input index
        ordered = sorted(response.data, key=lambda item: item.index)
        return [[float(x) for x in item.embedding] for item in ordered]
