"""
Rules Engine Result Schema
===========================

Output contracts of the rules engine (WF3).

Every rule evaluated for a payload yields a ``RuleEvaluation``, pass or
fail. Failures are additionally emitted as ``RuleFinding`` objects and
routed into ``blocks`` or ``warnings`` by severity. Successful reference
lookups produce ``CountyNormalization`` side records.

All models here are frozen: a result describes one evaluation run and
is never edited after the fact.

Data Flow:
    payload + RuleCatalog + CountyTable → RulesEngineResult → EvaluationRecord
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from lexintake.schemas.rules import Severity


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class RuleFinding(_FrozenModel):
    """A failed rule, as surfaced to reviewers."""
    rule_id: str = Field(description="Rule that produced the finding")
    severity: Severity = Field(description="block or warning")
    message: str = Field(description="The rule's message template")
    field_paths: list[str] = Field(default_factory=list, description="Fields the rule is about")
    evidence: dict[str, Any] = Field(default_factory=dict, description="Data proving the verdict")
    evaluated_at: str = Field(description="ISO 8601 evaluation timestamp")
    ruleset_version: str = Field(description="Catalog version the rule came from")


class RuleEvaluation(_FrozenModel):
    """Trace entry for one rule, whatever the outcome (including skipped rules)."""
    rule_id: str
    severity: Severity
    passed: bool
    field_paths: list[str] = Field(default_factory=list)
    evidence: dict[str, Any] = Field(default_factory=dict)
    message: str = Field(default="", description="Empty when the rule passed")
    evaluated_at: str
    ruleset_version: str

    @property
    def skipped(self) -> bool:
        """True when ``applies_when`` did not hold for the payload."""
        return self.evidence.get("skipped") is True


class CountyNormalization(_FrozenModel):
    """Canonical value found for a free-text county field."""
    kind: Literal["county_normalization"] = "county_normalization"
    field_path: str = Field(description="Path of the normalized field")
    input_value: str = Field(description="Raw value found in the payload")
    normalized_value: str = Field(description="Canonical slug (or name when no slug)")
    match_strategy: Literal["slug", "name"] = Field(description="Which reference key matched")
    source: str = Field(description="Reference source identifier from the rule")


class RulesEngineResult(_FrozenModel):
    """
    Aggregate verdict for one payload under one ruleset version.

    Deterministic given (payload, catalog, reference data, evaluated_at).
    """
    ruleset_version: str
    evaluated_at: str
    required_fields_missing: list[str] = Field(
        default_factory=list,
        description="Paths missing under block-severity missing_or_null rules, first-seen order"
    )
    blocks: list[RuleFinding] = Field(default_factory=list)
    warnings: list[RuleFinding] = Field(default_factory=list)
    normalizations: list[CountyNormalization] = Field(default_factory=list)
    rule_evaluations: list[RuleEvaluation] = Field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocks)

    def normalization_for(self, field_path: str) -> Optional[CountyNormalization]:
        for normalization in self.normalizations:
            if normalization.field_path == field_path:
                return normalization
        return None


class EvaluationRecord(_FrozenModel):
    """
    A persisted rules-engine result (one versioned evaluation row).

    Created once per (intake_id, ruleset_version) and never updated.
    ``version`` increases monotonically per intake.
    """
    extraction_id: str = Field(description="Primary key of the evaluation row")
    intake_id: str
    firm_id: Optional[str] = None
    version: int = Field(ge=1, description="Per-intake sequence number")
    schema_version: str = Field(description="Intake schema the payload was collected under")
    ruleset_version: str = Field(description="Catalog version the result was produced under")
    rules_engine: Optional[RulesEngineResult] = Field(
        default=None,
        description="The evaluation itself; absent only for rows written by other producers"
    )
    created_at: str
