"""
Searchable text extraction and content fingerprints.

Both functions are pure. Extraction runs twice per message lifetime: once at
embed time (to build the text that gets embedded and hashed) and again at
search time (stored messages keep their structured parts, not flat text).
"""

import hashlib
from typing import Any

from .schemas import TextPart, parse_part


def extract_searchable_content(parts: Any) -> str:
    """
    Join the text parts of a message body into one searchable string.

    Non-text parts (images, files, tool calls) and malformed entries are
    skipped. Anything that is not a list/tuple yields "".
    """
    if not isinstance(parts, (list, tuple)):
        return ""

    texts = []
    for raw in parts:
        part = parse_part(raw)
        if not isinstance(part, TextPart):
            continue
        text = part.text.strip()
        if text:
            texts.append(text)

    return " ".join(texts).strip()


def generate_content_hash(content: str) -> str:
    """SHA-256 of the trimmed content, lowercase hex (64 chars)."""
    return hashlib.sha256((content or "").strip().encode("utf-8")).hexdigest()
