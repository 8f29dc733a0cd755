"""
AI Run Schema
==============

Contracts produced by the AI task orchestrator (WF4).

Item models (extractions, flags, inconsistencies, county mentions,
document classifications, review-attention entries) describe what one
LLM task asserted. Each item independently enforces the evidence
invariant: an item asserting a non-null value without at least one
evidence pointer fails validation and is dropped by the orchestrator.

Item fields are strictly typed (no string-to-number or number-to-bool
coercion). Confidence levels are case-insensitive and accept MEDIUM or
MODERATE for MED; any other level drops the item. Unknown keys returned
by the model are ignored.

``RunLog`` is the audit record of one orchestration run; ``RunOutput``
holds the validated payload of every task plus the raw per-task trace.

Data Flow:
    raw task JSON → item models (filtered) → RunOutput → RunLog
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)

from lexintake.schemas.evidence import EvidencePointer

Number = Union[StrictInt, StrictFloat]

_LEVEL_ALIASES = {"MEDIUM": "MED", "MODERATE": "MED"}


def _normalize_level(value: Any) -> Any:
    """Upper-case a level string and map known spellings onto LOW/MED/HIGH."""
    if not isinstance(value, str):
        return value
    level = value.strip().upper()
    return _LEVEL_ALIASES.get(level, level)


ConfidenceLevel = Annotated[Literal["LOW", "MED", "HIGH"], BeforeValidator(_normalize_level)]


class RunStatus(str, Enum):
    """
    Aggregate status of an AI run.

    - SUCCESS: every task succeeded
    - PARTIAL: some but not all tasks failed
    - FAIL:    every task failed, or no provider was configured
    """
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAIL = "FAIL"


class TaskStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# ── Items ──────────────────────────────────────────────────────────

class _Item(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def _require_evidence(self, asserted: bool) -> None:
        if asserted and not getattr(self, "evidence"):
            raise ValueError("Item asserts a value but carries no evidence")


class ExtractionItem(_Item):
    """A schema field value extracted from the intake."""
    field_key: StrictStr
    value: Any = Field(description="Extracted value; null when nothing was found")
    value_type: StrictStr
    confidence_score: Number
    confidence_level: ConfidenceLevel
    confidence_rationale_code: StrictStr
    evidence: list[EvidencePointer]
    notes_for_reviewer: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _evidence_for_value(self) -> "ExtractionItem":
        self._require_evidence(self.value is not None)
        return self


class FlagItem(_Item):
    """A review flag (DV indicator, jurisdiction complexity, custody conflict)."""
    flag_key: StrictStr
    flag_present: StrictBool
    confidence_score: Number
    confidence_level: ConfidenceLevel
    evidence: list[EvidencePointer]
    why_it_matters_for_review: StrictStr
    notes_for_reviewer: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _evidence_for_present_flag(self) -> "FlagItem":
        self._require_evidence(self.flag_present)
        return self


class InconsistencyItem(_Item):
    """Two or more fields that contradict each other."""
    inconsistency_key: StrictStr
    fields_involved: list[StrictStr]
    summary: StrictStr
    severity: ConfidenceLevel
    confidence_score: Number
    evidence: list[EvidencePointer] = Field(min_length=1)
    notes_for_reviewer: Optional[StrictStr] = None


class CountyMention(_Item):
    """A county named somewhere in the intake, with a canonical suggestion."""
    raw_mention: StrictStr
    suggested_county: Optional[StrictStr] = None
    match_type: Literal["EXACT", "FUZZY", "NONE"]
    confidence_score: Number
    evidence: list[EvidencePointer] = Field(min_length=1)
    notes_for_reviewer: Optional[StrictStr] = None


class DocumentClassification(_Item):
    """Document type assigned to one uploaded document."""
    document_id: StrictStr = Field(min_length=1)
    document_type: Optional[StrictStr] = None
    confidence_score: Number
    confidence_level: ConfidenceLevel
    evidence: list[EvidencePointer]
    notes_for_reviewer: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _evidence_for_type(self) -> "DocumentClassification":
        self._require_evidence(bool(self.document_type))
        return self


class ReviewAttentionEntry(_Item):
    """One thing a reviewer should look at, with references to earlier outputs."""
    item: StrictStr
    references: list[StrictStr]


class ReviewAttention(BaseModel):
    high_priority_items: list[ReviewAttentionEntry] = Field(default_factory=list)
    medium_priority_items: list[ReviewAttentionEntry] = Field(default_factory=list)
    low_priority_items: list[ReviewAttentionEntry] = Field(default_factory=list)


class CountyDeference(BaseModel):
    """Whether WF3 already produced a canonical county the AI should defer to."""
    wf3_canonical_county_present: bool = False
    wf3_canonical_county_value: Optional[str] = None


# ── Per-task outputs ───────────────────────────────────────────────

class ExtractionsOutput(BaseModel):
    extractions: list[ExtractionItem] = Field(default_factory=list)


class FlagsOutput(BaseModel):
    flags: list[FlagItem] = Field(default_factory=list)


class InconsistenciesOutput(BaseModel):
    inconsistencies: list[InconsistencyItem] = Field(default_factory=list)


class CountyMentionsOutput(BaseModel):
    county_mentions: list[CountyMention] = Field(default_factory=list)
    deference: CountyDeference = Field(default_factory=CountyDeference)


class DocumentClassificationsOutput(BaseModel):
    document_classifications: list[DocumentClassification] = Field(default_factory=list)


class ReviewAttentionOutput(BaseModel):
    review_attention: ReviewAttention = Field(default_factory=ReviewAttention)


class FlagsByCategory(BaseModel):
    dv_indicators: Optional[FlagsOutput] = None
    jurisdiction_complexity: Optional[FlagsOutput] = None
    custody_conflict: Optional[FlagsOutput] = None


class TaskResult(BaseModel):
    """Outcome of one task in one run."""
    task_id: str
    prompt_id: str
    status: TaskStatus
    output: Optional[dict[str, Any]] = Field(default=None, description="Validated output, null on failure")
    error: Optional[str] = None


class RunOutput(BaseModel):
    """Union of every task's validated output plus the raw per-task trace."""
    extractions: Optional[ExtractionsOutput] = None
    flags: Optional[FlagsByCategory] = None
    inconsistencies: Optional[InconsistenciesOutput] = None
    county_mentions: Optional[CountyMentionsOutput] = None
    document_classifications: Optional[DocumentClassificationsOutput] = None
    review_attention: Optional[ReviewAttentionOutput] = None
    task_outputs: dict[str, TaskResult] = Field(default_factory=dict)

    def all_flags(self) -> dict[str, list[FlagItem]]:
        """Flag items keyed by category, skipping categories that did not run."""
        if self.flags is None:
            return {}
        out: dict[str, list[FlagItem]] = {}
        for category in ("dv_indicators", "jurisdiction_complexity", "custody_conflict"):
            bucket = getattr(self.flags, category)
            if bucket is not None:
                out[category] = bucket.flags
        return out


# ── Usage & run log ────────────────────────────────────────────────

class ModelUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0


class UsageSummary(ModelUsage):
    """Token and cost totals for one provider instance, also broken out per model."""
    per_model: dict[str, ModelUsage] = Field(default_factory=dict)


class TaskStatusEntry(BaseModel):
    prompt_id: str
    status: TaskStatus
    error: Optional[str] = None


class RunLog(BaseModel):
    """
    Audit record of one AI orchestration run.

    Immutable once written. A second run over identical inputs returns
    the stored RunLog instead of executing again (see ``input_hash``).
    """
    wf4_run_id: str
    intake_id: str
    wf3_run_id: Optional[str] = None
    started_at: str
    completed_at: str
    status: RunStatus
    model_provider: Optional[str] = None
    model_name: Optional[str] = None
    prompt_hash: str = Field(description="Hash of the prompt templates and bundle version")
    input_hash: str = Field(description="Hash of snapshots, prompts and task catalog")
    prompt_bundle_version: str
    per_task: dict[str, TaskStatusEntry] = Field(default_factory=dict)
    input_refs: dict[str, Optional[str]] = Field(default_factory=dict)
    usage: Optional[UsageSummary] = None
    cost_usd: Optional[float] = None

    @property
    def firm_id(self) -> Optional[str]:
        return self.input_refs.get("firm_id")

    @property
    def failed_tasks(self) -> list[str]:
        return [task_id for task_id, entry in self.per_task.items() if entry.status == TaskStatus.FAILED]


class FlagRecord(BaseModel):
    """A derived review flag row written after a run (present flags only)."""
    firm_id: str
    intake_id: str
    ai_run_id: str
    flag_key: str
    severity: Literal["low", "medium", "high"]
    summary: str
    details: dict[str, Any] = Field(default_factory=dict)
