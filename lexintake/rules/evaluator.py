"""
Rule Evaluator
===============

Evaluates a JSON payload against a validated RuleCatalog.

The evaluator is a pure function. It does no I/O and reads no clock
(the evaluation timestamp is passed in). Rules run independently in
catalog order and each sees only the unmodified payload and the county
reference table.

Per rule:
    1. ``applies_when`` (conjunction). Not applicable → recorded as
       skipped (passed, evidence ``{"skipped": true}``).
    2. Dispatch on the evidence strategy type.
    3. Always record a RuleEvaluation; failures also produce a
       RuleFinding routed to ``blocks`` or ``warnings`` by severity.

Usage:
    from lexintake.rules.evaluator import evaluate_rules
    result = evaluate_rules(payload, catalog, counties, evaluated_at="2025-01-01T00:00:00Z")
"""

from __future__ import annotations

import logging
import operator
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from lexintake.reference.counties import CountyTable
from lexintake.rules.paths import (
    collapse,
    is_finite_number,
    is_missing,
    present_values,
    resolve,
)
from lexintake.schemas.findings import (
    CountyNormalization,
    RuleEvaluation,
    RuleFinding,
    RulesEngineResult,
)
from lexintake.schemas.rules import (
    CsvLookupStrategy,
    DateOrderStrategy,
    EnumMembershipStrategy,
    MissingOrNullStrategy,
    RuleCatalog,
    RuleCondition,
    RuleDefinition,
    TypeCheckStrategy,
)
from lexintake.utils import parse_iso_timestamp

logger = logging.getLogger("lexintake.rules.evaluator")

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


@dataclass
class StrategyOutcome:
    """What one evidence strategy concluded about the payload."""
    passed: bool
    evidence: dict[str, Any]
    missing_paths: list[str] = field(default_factory=list)
    normalization: Optional[CountyNormalization] = None


# ── Value helpers ──────────────────────────────────────────────────

def strict_equals(left: Any, right: Any) -> bool:
    """Equality where booleans never equal numbers (``True != 1``)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def parse_calendar_date(value: Any) -> Optional[datetime]:
    """
    Parse a calendar date string.

    Accepts ISO 8601 dates (``2024-03-01``), ISO datetimes (with or
    without offset, ``Z`` allowed) and US ``MM/DD/YYYY``. Aware
    datetimes are converted to naive UTC so every result compares.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.combine(date.fromisoformat(text), datetime.min.time())
    except ValueError:
        pass
    try:
        parsed = parse_iso_timestamp(text)
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%m/%d/%Y")
    except ValueError:
        return None


def _matches_type(value: Any, expected_type: str) -> bool:
    if expected_type == "number":
        return is_finite_number(value)
    if expected_type == "boolean":
        return isinstance(value, bool)
    if expected_type == "date":
        return parse_calendar_date(value) is not None
    return False


# ── Applicability ──────────────────────────────────────────────────

def condition_holds(payload: Any, condition: RuleCondition) -> bool:
    """Evaluate one ``applies_when`` conjunct against the payload."""
    values = present_values(payload, condition.path)

    if condition.exists is not None and bool(values) != condition.exists:
        return False

    if condition.has_equals and not any(strict_equals(v, condition.equals) for v in values):
        return False

    for name, threshold in condition.comparators():
        compare = _COMPARATORS[name]
        if not any(is_finite_number(v) and compare(v, threshold) for v in values):
            return False

    return True


def rule_applies(payload: Any, rule: RuleDefinition) -> bool:
    return all(condition_holds(payload, condition) for condition in rule.applies_when.all)


# ── Strategies ─────────────────────────────────────────────────────

def _eval_missing_or_null(payload: Any, strategy: MissingOrNullStrategy) -> StrategyOutcome:
    values: dict[str, Any] = {}
    missing: list[str] = []
    for path in strategy.paths:
        resolved = resolve(payload, path)
        if is_missing(resolved):
            missing.append(path)
            values[path] = None
        else:
            values[path] = collapse(resolved)
    return StrategyOutcome(passed=not missing, evidence={"paths": values}, missing_paths=missing)


def _eval_csv_lookup(payload: Any, strategy: CsvLookupStrategy, counties: CountyTable) -> StrategyOutcome:
    values = present_values(payload, strategy.input_path)
    if not values:
        # Absence is a presence rule's concern, not this one's
        return StrategyOutcome(
            passed=True,
            evidence={"input_path": strategy.input_path, "input_value": None},
        )

    value = values[0]
    raw_value = value if isinstance(value, str) else str(value)
    match = counties.normalize(raw_value)
    if match is None:
        return StrategyOutcome(
            passed=False,
            evidence={
                "input_path": strategy.input_path,
                "input_value": raw_value,
                "error": "Unknown county",
                "source": strategy.csv,
            },
        )

    normalization = CountyNormalization(
        field_path=strategy.input_path,
        input_value=raw_value,
        normalized_value=match.normalized_value,
        match_strategy="slug" if match.match_strategy == "slug_exact" else "name",
        source=strategy.csv,
    )
    return StrategyOutcome(
        passed=True,
        evidence={
            "input_path": strategy.input_path,
            "input_value": raw_value,
            "normalized_value": match.normalized_value,
            "match_strategy": match.match_strategy,
            "source": strategy.csv,
        },
        normalization=normalization,
    )


def _eval_enum_membership(payload: Any, strategy: EnumMembershipStrategy) -> StrategyOutcome:
    values = present_values(payload, strategy.path)
    allowed = set(strategy.allowed_values)
    invalid = [v for v in values if not isinstance(v, str) or v not in allowed]
    evidence: dict[str, Any] = {"path": strategy.path, "value": collapse(values)}
    if values:
        evidence["allowed_values"] = list(strategy.allowed_values)
    if invalid:
        evidence["invalid_values"] = invalid
    return StrategyOutcome(passed=not invalid, evidence=evidence)


def _eval_type_check(payload: Any, strategy: TypeCheckStrategy) -> StrategyOutcome:
    values = present_values(payload, strategy.path)
    invalid = [v for v in values if not _matches_type(v, strategy.expected_type)]
    evidence: dict[str, Any] = {
        "path": strategy.path,
        "value": collapse(values),
        "expected_type": strategy.expected_type,
    }
    if invalid:
        evidence["invalid_values"] = invalid
    return StrategyOutcome(passed=not invalid, evidence=evidence)


def _eval_date_order(payload: Any, strategy: DateOrderStrategy) -> StrategyOutcome:
    earlier_values = present_values(payload, strategy.earlier_path)
    later_values = present_values(payload, strategy.later_path)
    earlier = earlier_values[0] if earlier_values else None
    later = later_values[0] if later_values else None
    evidence = {
        "earlier_path": strategy.earlier_path,
        "later_path": strategy.later_path,
        "earlier_value": earlier,
        "later_value": later,
        "operator": strategy.operator,
    }

    earlier_date = parse_calendar_date(earlier)
    later_date = parse_calendar_date(later)
    if earlier_date is None or later_date is None:
        # Ordering never blocks on absence or unparseable input
        return StrategyOutcome(passed=True, evidence=evidence)

    passed = _COMPARATORS[strategy.operator](earlier_date, later_date)
    return StrategyOutcome(passed=passed, evidence=evidence)


def evaluate_strategy(payload: Any, rule: RuleDefinition, counties: CountyTable) -> StrategyOutcome:
    """Single dispatch point over the evidence strategy variants."""
    strategy = rule.evidence_strategy
    if isinstance(strategy, MissingOrNullStrategy):
        return _eval_missing_or_null(payload, strategy)
    if isinstance(strategy, CsvLookupStrategy):
        return _eval_csv_lookup(payload, strategy, counties)
    if isinstance(strategy, EnumMembershipStrategy):
        return _eval_enum_membership(payload, strategy)
    if isinstance(strategy, TypeCheckStrategy):
        return _eval_type_check(payload, strategy)
    if isinstance(strategy, DateOrderStrategy):
        return _eval_date_order(payload, strategy)
    raise TypeError(f"Unsupported evidence strategy: {type(strategy).__name__}")


# ── Entry point ────────────────────────────────────────────────────

def evaluate_rules(
    payload: Any,
    catalog: RuleCatalog,
    counties: CountyTable,
    evaluated_at: str,
) -> RulesEngineResult:
    """
    Evaluate every rule of the catalog against a payload.

    Args:
        payload: The intake answers (usually prepared by ``build_rules_payload``).
        catalog: A validated rule catalog.
        counties: County reference table for ``csv_lookup`` rules.
        evaluated_at: ISO 8601 timestamp stamped on every evaluation.

    Returns:
        RulesEngineResult, identical for identical inputs.
    """
    ruleset_version = catalog.ruleset_version
    required_missing: dict[str, None] = {}
    blocks: list[RuleFinding] = []
    warnings: list[RuleFinding] = []
    normalizations: dict[str, CountyNormalization] = {}
    evaluations: list[RuleEvaluation] = []

    for rule in catalog.rules:
        if not rule_applies(payload, rule):
            evaluations.append(RuleEvaluation(
                rule_id=rule.rule_id,
                severity=rule.severity,
                passed=True,
                field_paths=list(rule.field_paths),
                evidence={"skipped": True},
                message="",
                evaluated_at=evaluated_at,
                ruleset_version=ruleset_version,
            ))
            continue

        outcome = evaluate_strategy(payload, rule, counties)

        if rule.severity == "block" and isinstance(rule.evidence_strategy, MissingOrNullStrategy):
            for path in outcome.missing_paths:
                required_missing.setdefault(path, None)

        if outcome.normalization is not None:
            normalizations[outcome.normalization.field_path] = outcome.normalization

        if not outcome.passed:
            finding = RuleFinding(
                rule_id=rule.rule_id,
                severity=rule.severity,
                message=rule.message_template,
                field_paths=list(rule.field_paths),
                evidence=outcome.evidence,
                evaluated_at=evaluated_at,
                ruleset_version=ruleset_version,
            )
            (blocks if rule.severity == "block" else warnings).append(finding)

        evaluations.append(RuleEvaluation(
            rule_id=rule.rule_id,
            severity=rule.severity,
            passed=outcome.passed,
            field_paths=list(rule.field_paths),
            evidence=outcome.evidence,
            message="" if outcome.passed else rule.message_template,
            evaluated_at=evaluated_at,
            ruleset_version=ruleset_version,
        ))

    logger.debug(
        f"Evaluated {len(evaluations)} rules ({ruleset_version}): "
        f"{len(blocks)} blocks, {len(warnings)} warnings"
    )
    return RulesEngineResult(
        ruleset_version=ruleset_version,
        evaluated_at=evaluated_at,
        required_fields_missing=list(required_missing),
        blocks=blocks,
        warnings=warnings,
        normalizations=list(normalizations.values()),
        rule_evaluations=evaluations,
    )
