"""
Evidence Pointers
==================

Constructors and validation for the citations attached to every
AI-asserted value.

Pointers built with the constructors below always have their snippet
bounded to ``MAX_SNIPPET_LENGTH`` characters. Raw pointer dicts coming
back from the model go through ``bound_evidence_snippets`` first and are
then checked by ``validate_evidence_pointers``, which reports every
problem instead of raising.

Usage:
    from lexintake.ai.evidence import message_pointer, validate_evidence_pointers
    pointer = message_pointer("msg_0042", "chars:118-164", "he has threatened me")
    errors = validate_evidence_pointers([pointer.model_dump(mode="json")])
    assert errors == []
"""

from __future__ import annotations

from typing import Any, Optional

from lexintake.schemas.evidence import MAX_SNIPPET_LENGTH, EvidencePointer, SourceType
from lexintake.utils import truncate

_SOURCE_TYPES = frozenset(source.value for source in SourceType)


def _bound(snippet: Optional[str]) -> Optional[str]:
    if not snippet:
        return None
    return truncate(snippet, MAX_SNIPPET_LENGTH)


def _pointer(source_type: SourceType, source_id: str, path_or_span: str, snippet: Optional[str]) -> EvidencePointer:
    return EvidencePointer(
        source_type=source_type,
        source_id=source_id,
        path_or_span=path_or_span,
        snippet=_bound(snippet),
    )


def field_pointer(source_id: str, path_or_span: str, snippet: Optional[str] = None) -> EvidencePointer:
    """Cite a structured intake field (``path_or_span`` is the field path)."""
    return _pointer(SourceType.FIELD, source_id, path_or_span, snippet)


def message_pointer(source_id: str, path_or_span: str, snippet: Optional[str] = None) -> EvidencePointer:
    """Cite a span of an intake chat message."""
    return _pointer(SourceType.MESSAGE, source_id, path_or_span, snippet)


def document_pointer(source_id: str, path_or_span: str, snippet: Optional[str] = None) -> EvidencePointer:
    """Cite a location inside an uploaded document."""
    return _pointer(SourceType.DOCUMENT, source_id, path_or_span, snippet)


def wf3_pointer(source_id: str, path_or_span: str, snippet: Optional[str] = None) -> EvidencePointer:
    """Cite a rules-engine result (``path_or_span`` is usually a rule id)."""
    return _pointer(SourceType.WF3, source_id, path_or_span, snippet)


def validate_evidence_pointers(pointers: Any) -> list[str]:
    """
    Check raw evidence pointers.

    Args:
        pointers: The decoded ``evidence`` value of one item.

    Returns:
        List of validation errors (empty = valid).
    """
    if not isinstance(pointers, list):
        return ["evidence must be an array"]

    errors = []
    for idx, pointer in enumerate(pointers):
        if isinstance(pointer, EvidencePointer):
            continue
        if not isinstance(pointer, dict):
            errors.append(f"evidence[{idx}]: pointer must be an object")
            continue
        if pointer.get("source_type") not in _SOURCE_TYPES:
            errors.append(f"evidence[{idx}]: source_type invalid ({pointer.get('source_type')!r})")
        source_id = pointer.get("source_id")
        if not isinstance(source_id, str) or not source_id:
            errors.append(f"evidence[{idx}]: source_id missing")
        path_or_span = pointer.get("path_or_span")
        if not isinstance(path_or_span, str) or not path_or_span:
            errors.append(f"evidence[{idx}]: path_or_span missing")
        snippet = pointer.get("snippet")
        if snippet is not None:
            if not isinstance(snippet, str):
                errors.append(f"evidence[{idx}]: snippet must be a string")
            elif len(snippet) > MAX_SNIPPET_LENGTH:
                errors.append(f"evidence[{idx}]: snippet longer than {MAX_SNIPPET_LENGTH} characters")
    return errors


def bound_evidence_snippets(pointers: Any) -> Any:
    """
    Truncate over-long snippets in raw pointer dicts.

    Returns a new list; entries that are not dicts, and values that are
    not lists, are passed through untouched for the validator to report.
    """
    if not isinstance(pointers, list):
        return pointers
    bounded = []
    for pointer in pointers:
        if isinstance(pointer, dict) and isinstance(pointer.get("snippet"), str):
            pointer = {**pointer, "snippet": truncate(pointer["snippet"], MAX_SNIPPET_LENGTH)}
        bounded.append(pointer)
    return bounded
