"""
Rule Catalog Schema
====================

Declarative rule definitions evaluated by the rules engine (WF3).

A catalog is a versioned list of rules. Each rule carries an
applicability conjunction (``applies_when``) and exactly one evidence
strategy, discriminated on its ``type`` tag. Every object in the
catalog has a closed key set: unknown keys are rejected, not ignored.

Example rule:
    {
      "rule_id": "ga.dom.county.valid",
      "name": "County of residence is a Georgia county",
      "description": "...",
      "severity": "block",
      "applies_when": {"all": [{"path": "$.county_of_residence", "exists": true}]},
      "field_paths": ["$.county_of_residence"],
      "message_template": "County of residence is not a recognised Georgia county.",
      "evidence_strategy": {
        "type": "csv_lookup",
        "csv": "ga_counties.csv",
        "input_path": "$.county_of_residence",
        "match_on": ["county_slug", "county_name"],
        "output": "county_slug"
      }
    }
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    field_validator,
    model_validator,
)

from lexintake.rules.paths import parse_path


def _check_field_path(value: str) -> str:
    parse_path(value)
    return value


FieldPath = Annotated[StrictStr, AfterValidator(_check_field_path)]
"""A string that parses as a field path (``$.a.b[2].c``)."""

Severity = Literal["block", "warning"]

STRATEGY_TYPES = ("missing_or_null", "csv_lookup", "enum_membership", "type_check", "date_order")


class _CatalogModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# ── Applicability ──────────────────────────────────────────────────

class RuleCondition(_CatalogModel):
    """
    One conjunct of ``applies_when``.

    At least one of ``exists``, ``equals`` or a numeric comparator must
    be given. ``equals`` may legitimately be ``null``, so presence is
    tracked through the set of explicitly provided fields.
    """
    path: FieldPath = Field(description="Field path to test")
    exists: Optional[StrictBool] = Field(default=None, description="Required presence")
    equals: Any = Field(default=None, description="At least one value must equal this")
    gt: Optional[float] = Field(default=None, description="Some value > gt")
    gte: Optional[float] = Field(default=None, description="Some value >= gte")
    lt: Optional[float] = Field(default=None, description="Some value < lt")
    lte: Optional[float] = Field(default=None, description="Some value <= lte")

    @field_validator("gt", "gte", "lt", "lte", mode="before")
    @classmethod
    def _numeric_threshold(cls, value: Any) -> Any:
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ValueError("Comparator threshold must be a number")
        return value

    @model_validator(mode="after")
    def _requires_a_test(self) -> "RuleCondition":
        if self.exists is None and not self.has_equals and not self.comparators():
            raise ValueError("Condition needs at least one of exists, equals, gt, gte, lt, lte")
        return self

    @property
    def has_equals(self) -> bool:
        return "equals" in self.model_fields_set

    def comparators(self) -> list[tuple[str, float]]:
        """Comparators actually set on this condition, in a fixed order."""
        return [
            (name, getattr(self, name))
            for name in ("gt", "gte", "lt", "lte")
            if getattr(self, name) is not None
        ]


class AppliesWhen(_CatalogModel):
    """Conjunction of conditions. An empty list always applies."""
    all: list[RuleCondition] = Field(default_factory=list)


# ── Evidence strategies ────────────────────────────────────────────

class MissingOrNullStrategy(_CatalogModel):
    """Fails when any listed path is missing."""
    type: Literal["missing_or_null"]
    paths: list[FieldPath] = Field(min_length=1)


class CsvLookupStrategy(_CatalogModel):
    """Normalizes one field against the county reference table."""
    type: Literal["csv_lookup"]
    csv: StrictStr = Field(description="Reference source identifier, reported in evidence")
    input_path: FieldPath
    match_on: list[StrictStr] = Field(description="Reference columns consulted (informational)")
    output: StrictStr = Field(description="Reference column holding the canonical value")


class EnumMembershipStrategy(_CatalogModel):
    """Every present value must be one of ``allowed_values``."""
    type: Literal["enum_membership"]
    path: FieldPath
    allowed_values: list[StrictStr] = Field(min_length=1)


class TypeCheckStrategy(_CatalogModel):
    """Every present value must have the expected primitive type."""
    type: Literal["type_check"]
    path: FieldPath
    expected_type: Literal["number", "boolean", "date"]


class DateOrderStrategy(_CatalogModel):
    """``earlier_path <operator> later_path`` when both are dates."""
    type: Literal["date_order"]
    earlier_path: FieldPath
    later_path: FieldPath
    operator: Literal["<", "<=", ">", ">="]


EvidenceStrategy = Annotated[
    Union[
        MissingOrNullStrategy,
        CsvLookupStrategy,
        EnumMembershipStrategy,
        TypeCheckStrategy,
        DateOrderStrategy,
    ],
    Field(discriminator="type"),
]


# ── Rules & catalog ────────────────────────────────────────────────

class RuleDefinition(_CatalogModel):
    """A single declarative rule."""
    rule_id: StrictStr = Field(min_length=1, description="Unique within the catalog")
    name: StrictStr = Field(default="", description="Short human-readable title")
    description: StrictStr = Field(default="", description="What the rule protects against")
    severity: Severity = Field(description="block: submission cannot proceed; warning: advisory")
    applies_when: AppliesWhen = Field(default_factory=AppliesWhen)
    field_paths: list[FieldPath] = Field(
        default_factory=list,
        description="Fields the rule is about (informational, surfaced in findings)"
    )
    message_template: StrictStr = Field(description="Message attached to a failed evaluation")
    evidence_strategy: EvidenceStrategy


class RuleCatalog(_CatalogModel):
    """A versioned, ordered list of rules."""
    ruleset_version: StrictStr = Field(min_length=1, description="Opaque version stamp")
    rules: list[RuleDefinition]

    def rule_ids(self) -> list[str]:
        return [rule.rule_id for rule in self.rules]

    def field_paths(self) -> list[str]:
        """Every field path referenced by the catalog, first-seen order."""
        seen: dict[str, None] = {}
        for rule in self.rules:
            for path in rule.field_paths:
                seen.setdefault(path, None)
        return list(seen)
