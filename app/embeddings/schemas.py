"""
Pydantic schemas for message parts, search and embedding endpoints.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError


# ============ MESSAGE PARTS ============

class TextPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text"]
    text: str


class ImagePart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["image"]
    url: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class FilePart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["file"]
    name: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class OtherPart(BaseModel):
    """Any part kind this subsystem does not understand (tool calls, reasoning, ...)."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None


MessagePart = Union[TextPart, ImagePart, FilePart, OtherPart]

_PART_TYPES = {
    "text": TextPart,
    "image": ImagePart,
    "file": FilePart,
}


def parse_part(raw: Any) -> Optional[MessagePart]:
    """
    Leniently parse one stored part.

    Returns None for entries that are not objects. Objects whose fields do not
    fit their declared kind (e.g. a "text" part without a string `text`)
    degrade to OtherPart rather than raising.
    """
    if isinstance(raw, BaseModel):
        return raw
    if not isinstance(raw, dict):
        return None

    kind = raw.get("type")
    model = _PART_TYPES.get(kind) if isinstance(kind, str) else None
    if model is not None:
        try:
            return model.model_validate(raw)
        except ValidationError:
            pass
    return OtherPart.model_validate({"type": kind if isinstance(kind, str) else None})


# ============ SEARCH ============

class SearchRequest(BaseModel):
    """Semantic search over one user's chat history."""
    user_id: str
    query: str
    limit: int = 20
    threshold: float = 0.7


class SearchResult(BaseModel):
    """Single search hit with its cosine similarity."""
    message_id: str
    chat_id: str
    chat_title: str
    content: str
    similarity: float
    created_at: datetime
    role: str


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    total: int = 0


# ============ STATS / QUEUE ============

class EmbeddingStats(BaseModel):
    total_messages: int
    messages_with_embeddings: int
    coverage: float  # percent, 2 decimals


class QueueStatus(BaseModel):
    queue_length: int
    processing: bool
    next_job_id: Optional[str] = None


# ============ POPULATE / SYNC / CRON ============

class PopulateRequest(BaseModel):
    batch_size: int = Field(default=10, ge=1)


class PopulateResponse(BaseModel):
    processed: int
    initial_stats: EmbeddingStats
    final_stats: EmbeddingStats
    remaining: int


class SyncResponse(BaseModel):
    success: bool = True
    stats: EmbeddingStats
    processed_count: Optional[int] = None


class CronResponse(BaseModel):
    success: bool
    processed: int = 0
    stats: Optional[EmbeddingStats] = None
    timestamp: datetime
    error: Optional[str] = None


class EnsureResponse(BaseModel):
    message_id: str
    ensured: bool
