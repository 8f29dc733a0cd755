"""
Evidence Pointer Schema
========================

A structured citation proving where an asserted value came from.

Every AI-produced claim that asserts a non-null value must carry at
least one pointer. A pointer names the kind of source (an intake field,
a chat message, an uploaded document, or a WF3 rule result), the id of
that source, and a path or span locating the claim inside it.

Snippets are bounded to ``MAX_SNIPPET_LENGTH`` characters. Longer
snippets are truncated when a pointer is constructed, never rejected.

Schema:
    {
      "source_type": "message",
      "source_id": "msg_0042",
      "path_or_span": "chars:118-164",
      "snippet": "he has threatened me before"
    }
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

MAX_SNIPPET_LENGTH = 200


class SourceType(str, Enum):
    """
    Kind of source an evidence pointer refers to.

    - FIELD:    a structured intake field (path_or_span is a field path)
    - MESSAGE:  an intake chat message (path_or_span is a character span)
    - DOCUMENT: an uploaded document (page or span)
    - WF3:      a rules-engine result (path_or_span is a rule id)
    """
    FIELD = "field"
    MESSAGE = "message"
    DOCUMENT = "document"
    WF3 = "wf3"


class EvidencePointer(BaseModel):
    """Citation of one source location."""
    source_type: SourceType = Field(description="Kind of source")
    source_id: str = Field(min_length=1, description="Identifier of the source record")
    path_or_span: str = Field(min_length=1, description="Location of the claim within the source")
    snippet: Optional[str] = Field(
        default=None,
        max_length=MAX_SNIPPET_LENGTH,
        description="Verbatim excerpt, at most 200 characters"
    )

    @field_validator("snippet", mode="before")
    @classmethod
    def _bound_snippet(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value) > MAX_SNIPPET_LENGTH:
            return value[:MAX_SNIPPET_LENGTH]
        return value
