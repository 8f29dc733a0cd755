"""
Intake and Snapshot Schemas
============================

``IntakeRecord`` is the stored intake as the rules engine sees it.
``IntakeSnapshot`` and ``Wf3Snapshot`` are the immutable point-in-time
views handed to the AI orchestrator (WF4). The orchestrator only reads
them; both are frozen.

Snapshots are hashed (canonical JSON) to derive a run's ``input_hash``,
so they must not carry volatile data such as load timestamps.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Stored intake ──────────────────────────────────────────────────

class MessageSnapshot(_FrozenModel):
    """One intake chat message, in transcript order."""
    message_id: str
    role: str = Field(description="Who wrote the message (client, assistant, system)")
    content: str
    created_at: str


class DocumentSnapshot(_FrozenModel):
    """Metadata of one uploaded intake document."""
    document_id: str
    filename: Optional[str] = None
    mimetype: Optional[str] = None
    text_extract: Optional[str] = None
    created_at: str


class DocumentRecord(DocumentSnapshot):
    """A stored document, including its mutable classification blob."""
    model_config = ConfigDict(frozen=False)

    classification: dict[str, Any] = Field(
        default_factory=dict,
        description="Classification data; AI results are merged under the 'wf4' key"
    )

    def to_snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot(**self.model_dump(exclude={"classification"}))


class IntakeRecord(BaseModel):
    """An intake as stored: ownership, lifecycle state and raw answers."""
    intake_id: str
    firm_id: Optional[str] = None
    status: str = Field(default="draft", description="draft | submitted | ...")
    submitted_at: Optional[str] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict, description="Answers keyed by field")
    free_text_fields: dict[str, Any] = Field(default_factory=dict)
    messages: list[MessageSnapshot] = Field(default_factory=list)
    documents: list[DocumentRecord] = Field(default_factory=list)
    created_at: str

    @property
    def is_submitted(self) -> bool:
        return bool(self.submitted_at) or self.status == "submitted"


# ── AI orchestrator inputs ─────────────────────────────────────────

class IntakeSnapshot(_FrozenModel):
    """Read-only view of a submitted intake."""
    intake_id: str
    submission_id: Optional[str] = None
    firm_id: Optional[str] = None
    structured_fields: dict[str, Any] = Field(default_factory=dict)
    free_text_fields: dict[str, Any] = Field(default_factory=dict)
    messages: list[MessageSnapshot] = Field(default_factory=list)
    documents: list[DocumentSnapshot] = Field(default_factory=list)
    created_at: str


class RuleResultSummary(_FrozenModel):
    """Pass/fail of one rule from the WF3 evaluation."""
    rule_id: str
    passed: bool
    field_paths: list[str] = Field(default_factory=list)
    message: Optional[str] = None


class ValidationSummary(_FrozenModel):
    rule_results: list[RuleResultSummary] = Field(default_factory=list)
    required_fields_missing: list[str] = Field(default_factory=list)


class Wf3Snapshot(_FrozenModel):
    """Read-only view of a persisted rules-engine evaluation."""
    wf3_run_id: str = Field(description="Evaluation record id")
    validation_summary: ValidationSummary = Field(default_factory=ValidationSummary)
    canonical_fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Field path → canonical value from reference normalizations"
    )
    created_at: str
