"""
WF4 Prompt Bundle
==================

Versioned prompt templates for the AI task orchestrator.

Every task prompt shares one system prompt (``wf4.system.v1``) that fixes
the ground rules: JSON only, no legal advice, evidence for every
asserted value. The per-task user prompt describes the expected output
shape; the task input is appended as JSON by ``build_user_content``.

The bundle is hashed (``prompt_hash``) into every run's input hash, so
editing any template or bumping ``PROMPT_BUNDLE_VERSION`` makes the next
run over an unchanged intake execute again instead of being reused.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

from lexintake.utils import compute_content_hash

PROMPT_BUNDLE_VERSION = "v0.1"


class PromptIds:
    """Stable identifiers of the bundle's prompts."""
    SYSTEM = "wf4.system.v1"
    EXTRACT = "wf4.task.extract.schema_fields.v1"
    DV = "wf4.task.flags.dv_indicators.v1"
    JURISDICTION = "wf4.task.flags.jurisdiction_complexity.v1"
    CUSTODY = "wf4.task.flags.custody_conflict.v1"
    CONSISTENCY = "wf4.task.consistency.cross_field.v1"
    COUNTY_MENTIONS = "wf4.task.normalize.county_mentions.v1"
    DOCUMENT_CLASSIFY = "wf4.task.classify.documents.v1"
    REVIEW_ATTENTION = "wf4.task.review_attention.summary.v1"


# ── System prompt ──────────────────────────────────────────────────

SYSTEM_PROMPT = """You are an intake analysis assistant for a family-law firm in Georgia (USA).
You read a submitted client intake and produce structured observations for a human reviewer (an attorney or paralegal).

RULES:
1. Return a single JSON object and nothing else. No markdown, no commentary.
2. Never give legal advice and never address the client.
3. Every item that asserts a value (a non-null value, a present flag, a document type) MUST carry at least one evidence pointer.
4. Evidence pointers have this shape:
   {"source_type": "field|message|document|wf3", "source_id": "...", "path_or_span": "...", "snippet": "..."}
   - field:    source_id is the intake id, path_or_span is the field path (e.g. "$.children[0].child_dob")
   - message:  source_id is the message_id, path_or_span is a character span (e.g. "chars:10-54")
   - document: source_id is the document_id, path_or_span is a page or span
   - wf3:      source_id is the wf3_run_id, path_or_span is a rule_id
   - snippet is an optional verbatim excerpt of at most 200 characters
5. Only cite sources that appear in the input. Do not invent ids.
6. When the input does not support a value, return null (or flag_present=false) instead of guessing.
7. confidence_score is a number between 0 and 1; confidence_level is one of LOW, MED, HIGH.
8. The rules engine (wf3_snapshot) is authoritative for validation results and canonical field values. Do not contradict it."""


# ── Task templates ─────────────────────────────────────────────────

@dataclass(frozen=True)
class PromptTemplate:
    id: str
    system: str
    user: str


_FLAG_SHAPE = """{"flags": [{"flag_key": "...", "flag_present": true, "confidence_score": 0.0, "confidence_level": "LOW|MED|HIGH", "evidence": [...], "why_it_matters_for_review": "...", "notes_for_reviewer": "..."}]}"""

PROMPT_TEMPLATES: dict[str, PromptTemplate] = {
    PromptIds.EXTRACT: PromptTemplate(
        id=PromptIds.EXTRACT,
        system=PromptIds.SYSTEM,
        user=(
            "Extract values for the fields listed in schema_allowlist from the intake snapshot "
            "(structured fields, free text, messages and documents). Only use keys from the allowlist.\n"
            'Output: {"extractions": [{"field_key": "...", "value": <any or null>, "value_type": "string|number|boolean|date|array|object", '
            '"confidence_score": 0.0, "confidence_level": "LOW|MED|HIGH", "confidence_rationale_code": "...", '
            '"evidence": [...], "notes_for_reviewer": "..."}]}\n'
            "Return JSON only."
        ),
    ),
    PromptIds.DV: PromptTemplate(
        id=PromptIds.DV,
        system=PromptIds.SYSTEM,
        user=(
            "Detect domestic violence indicators (threats, physical harm, protective orders, stalking, "
            "coercive control, safety concerns for children).\n"
            f"Output: {_FLAG_SHAPE}\n"
            "Return JSON only."
        ),
    ),
    PromptIds.JURISDICTION: PromptTemplate(
        id=PromptIds.JURISDICTION,
        system=PromptIds.SYSTEM,
        user=(
            "Detect jurisdiction complexity signals (recent moves, parties or children living in another "
            "state or county, residency shorter than six months, existing orders from other courts, "
            "military service).\n"
            f"Output: {_FLAG_SHAPE}\n"
            "Return JSON only."
        ),
    ),
    PromptIds.CUSTODY: PromptTemplate(
        id=PromptIds.CUSTODY,
        system=PromptIds.SYSTEM,
        user=(
            "Detect custody conflict signals (disagreement about custody type or schedule, relocation "
            "requests, interference with parenting time, concerns about the other parent's care).\n"
            f"Output: {_FLAG_SHAPE}\n"
            "Return JSON only."
        ),
    ),
    PromptIds.CONSISTENCY: PromptTemplate(
        id=PromptIds.CONSISTENCY,
        system=PromptIds.SYSTEM,
        user=(
            "Find fields that contradict each other (dates out of order, counts that do not match, "
            "statements in messages that conflict with structured answers).\n"
            'Output: {"inconsistencies": [{"inconsistency_key": "...", "fields_involved": ["..."], "summary": "...", '
            '"severity": "LOW|MED|HIGH", "confidence_score": 0.0, "evidence": [...], "notes_for_reviewer": "..."}]}\n'
            "Every inconsistency needs evidence. Return JSON only."
        ),
    ),
    PromptIds.COUNTY_MENTIONS: PromptTemplate(
        id=PromptIds.COUNTY_MENTIONS,
        system=PromptIds.SYSTEM,
        user=(
            "List every county mentioned in the intake and suggest the canonical county from "
            "reference.ga_counties. If wf3_snapshot.canonical_fields already holds a county, report it "
            "under deference and do not override it.\n"
            'Output: {"county_mentions": [{"raw_mention": "...", "suggested_county": "<value from reference.ga_counties or null>", '
            '"match_type": "EXACT|FUZZY|NONE", "confidence_score": 0.0, "evidence": [...], "notes_for_reviewer": "..."}], '
            '"deference": {"wf3_canonical_county_present": false, "wf3_canonical_county_value": null}}\n'
            "Return JSON only."
        ),
    ),
    PromptIds.DOCUMENT_CLASSIFY: PromptTemplate(
        id=PromptIds.DOCUMENT_CLASSIFY,
        system=PromptIds.SYSTEM,
        user=(
            "Classify each uploaded document (for example: marriage_certificate, birth_certificate, "
            "existing_court_order, financial_statement, tax_return, pay_stub, protective_order, other). "
            "Use null when the type cannot be determined.\n"
            'Output: {"document_classifications": [{"document_id": "...", "document_type": "<type or null>", '
            '"confidence_score": 0.0, "confidence_level": "LOW|MED|HIGH", "evidence": [...], "notes_for_reviewer": "..."}]}\n'
            "Return JSON only."
        ),
    ),
    PromptIds.REVIEW_ATTENTION: PromptTemplate(
        id=PromptIds.REVIEW_ATTENTION,
        system=PromptIds.SYSTEM,
        user=(
            "Summarize what the reviewer should look at first, based on wf4_outputs. Each entry "
            "references the flag keys, inconsistency keys or field keys it is based on.\n"
            'Output: {"review_attention": {"high_priority_items": [{"item": "...", "references": ["..."]}], '
            '"medium_priority_items": [...], "low_priority_items": [...]}}\n'
            "Return JSON only."
        ),
    ),
}

SYSTEM_PROMPTS: dict[str, str] = {PromptIds.SYSTEM: SYSTEM_PROMPT}


def get_template(prompt_id: str) -> PromptTemplate:
    """Template for a prompt id. Raises KeyError for unknown ids."""
    return PROMPT_TEMPLATES[prompt_id]


def system_prompt_for(template: PromptTemplate) -> str:
    return SYSTEM_PROMPTS[template.system]


def prompt_hash() -> str:
    """SHA-256 over every template and the bundle version."""
    return compute_content_hash({
        "templates": {prompt_id: asdict(template) for prompt_id, template in PROMPT_TEMPLATES.items()},
        "system": SYSTEM_PROMPTS,
        "bundle": PROMPT_BUNDLE_VERSION,
    })


def build_user_content(user_prompt: str, task_input: dict[str, Any]) -> str:
    """The user message sent to the model: instructions, then the input as JSON."""
    return f"{user_prompt}\n\nInput JSON:\n{json.dumps(task_input, ensure_ascii=False, default=str)}"
