"""
Task Output Validation
=======================

Two-phase validation of one task's raw model output.

Phase 1, structural (can fail the task):
    - the output must be a JSON object (a dict, or a string decoding to one)
    - the task's expected top-level key must be present

Phase 2, per item (never fails the task):
    - a present key holding something other than a list degrades to []
    - each item is kept only if its evidence pointers validate and the
      item model accepts it (types, evidence-for-asserted-value rule)
    - county suggestions must be canonical county values

Dropped items are logged at DEBUG and otherwise invisible.

Usage:
    from lexintake.ai.validation import validate_task_output
    output = validate_task_output(definition, raw, counties=table)
    output.model_dump(mode="json")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from lexintake.ai.evidence import bound_evidence_snippets, validate_evidence_pointers
from lexintake.ai.tasks import TaskDefinition
from lexintake.errors import TaskStructuralError
from lexintake.reference.counties import CountyTable
from lexintake.schemas.run import (
    CountyDeference,
    CountyMention,
    CountyMentionsOutput,
    DocumentClassification,
    DocumentClassificationsOutput,
    ExtractionItem,
    ExtractionsOutput,
    FlagItem,
    FlagsOutput,
    InconsistenciesOutput,
    InconsistencyItem,
    ReviewAttention,
    ReviewAttentionEntry,
    ReviewAttentionOutput,
)

logger = logging.getLogger("lexintake.ai.validation")

ItemT = TypeVar("ItemT", bound=BaseModel)


# ── Phase 1: structure ─────────────────────────────────────────────

def parse_task_output(raw: Any) -> dict[str, Any]:
    """
    Accept a decoded object or a JSON string.

    Raises:
        TaskStructuralError: Not JSON, or not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TaskStructuralError(f"Invalid JSON output: {e}") from e
        if not isinstance(parsed, dict):
            raise TaskStructuralError("Parsed output is not an object")
        return parsed
    raise TaskStructuralError(f"Output is not JSON (got {type(raw).__name__})")


def _require_key(output: dict[str, Any], key: str) -> Any:
    if key not in output:
        raise TaskStructuralError(f"Output is missing required key '{key}'")
    return output[key]


# ── Phase 2: items ─────────────────────────────────────────────────

def filter_items(raw_items: Any, model: type[ItemT], label: str) -> list[ItemT]:
    """
    Validate each raw item independently, keeping only the valid ones.

    Args:
        raw_items: The value found under the task's list key.
        model: Item model to validate against.
        label: Used in debug logs.
    """
    if not isinstance(raw_items, list):
        logger.debug(f"{label}: expected a list, got {type(raw_items).__name__}; treating as empty")
        return []

    kept: list[ItemT] = []
    for idx, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, dict):
            logger.debug(f"{label}[{idx}] dropped: not an object")
            continue

        item = dict(raw_item)
        if "evidence" in item:
            item["evidence"] = bound_evidence_snippets(item["evidence"])
        errors = validate_evidence_pointers(item.get("evidence"))
        if errors:
            logger.debug(f"{label}[{idx}] dropped: {'; '.join(errors)}")
            continue

        try:
            kept.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug(f"{label}[{idx}] dropped: {e.error_count()} validation errors")
            continue

    if len(kept) < len(raw_items):
        logger.debug(f"{label}: kept {len(kept)}/{len(raw_items)} items")
    return kept


def _canonical_mentions(mentions: list[CountyMention], counties: Optional[CountyTable]) -> list[CountyMention]:
    """Keep canonical suggestions; repair exact-but-differently-spelled ones; drop the rest."""
    if counties is None or not len(counties):
        return mentions
    kept = []
    for mention in mentions:
        suggestion = mention.suggested_county
        if suggestion is None or counties.is_canonical(suggestion):
            kept.append(mention)
            continue
        match = counties.match_mention(suggestion)
        if match.match_type == "EXACT":
            kept.append(mention.model_copy(update={"suggested_county": match.suggested_county}))
        else:
            logger.debug(f"county_mentions: dropped non-canonical suggestion {suggestion!r}")
    return kept


def _deference(raw: Any) -> CountyDeference:
    if not isinstance(raw, dict):
        return CountyDeference()
    value = raw.get("wf3_canonical_county_value")
    return CountyDeference(
        wf3_canonical_county_present=raw.get("wf3_canonical_county_present") is True,
        wf3_canonical_county_value=value if isinstance(value, str) else None,
    )


def _filter_entries(raw_items: Any, label: str) -> list[ReviewAttentionEntry]:
    """Review-attention entries carry no evidence; only their shape is checked."""
    if not isinstance(raw_items, list):
        return []
    kept = []
    for idx, raw_item in enumerate(raw_items):
        try:
            kept.append(ReviewAttentionEntry.model_validate(raw_item))
        except ValidationError:
            logger.debug(f"{label}[{idx}] dropped: invalid review attention entry")
    return kept


def _review_attention(raw: Any) -> ReviewAttention:
    if not isinstance(raw, dict):
        return ReviewAttention()
    return ReviewAttention(
        high_priority_items=_filter_entries(raw.get("high_priority_items"), "high_priority_items"),
        medium_priority_items=_filter_entries(raw.get("medium_priority_items"), "medium_priority_items"),
        low_priority_items=_filter_entries(raw.get("low_priority_items"), "low_priority_items"),
    )


# ── Entry point ────────────────────────────────────────────────────

def validate_task_output(
    definition: TaskDefinition,
    raw: Any,
    counties: Optional[CountyTable] = None,
) -> BaseModel:
    """
    Validate one task's raw output.

    Args:
        definition: Registry entry of the task.
        raw: What the provider returned.
        counties: Reference table for county suggestions.

    Returns:
        The task's output model (ExtractionsOutput, FlagsOutput, ...).

    Raises:
        TaskStructuralError: Phase 1 failed; the task is FAILED.
    """
    output = parse_task_output(raw)
    key = definition.output_key
    value = _require_key(output, key)

    if key == "extractions":
        return ExtractionsOutput(extractions=filter_items(value, ExtractionItem, key))
    if key == "flags":
        return FlagsOutput(flags=filter_items(value, FlagItem, definition.flag_category or key))
    if key == "inconsistencies":
        return InconsistenciesOutput(inconsistencies=filter_items(value, InconsistencyItem, key))
    if key == "county_mentions":
        mentions = _canonical_mentions(filter_items(value, CountyMention, key), counties)
        return CountyMentionsOutput(county_mentions=mentions, deference=_deference(output.get("deference")))
    if key == "document_classifications":
        return DocumentClassificationsOutput(
            document_classifications=filter_items(value, DocumentClassification, key)
        )
    if key == "review_attention":
        return ReviewAttentionOutput(review_attention=_review_attention(value))
    raise TaskStructuralError(f"No validator for output key '{key}'")
