"""
Rule Catalog Loader / Validator
================================

Parses a rule catalog document and validates it as a whole before the
evaluator ever sees it. Validation is total: every violation is
collected as a ``CatalogIssue(path, message)`` and reported together
in one ``CatalogInvalidError``, so a catalog author gets complete
feedback in a single pass.

Rejected:
    - unknown keys at any level (root, rule, condition, strategy)
    - missing ``ruleset_version``; ``rules`` that is not an array
    - duplicate ``rule_id``
    - unknown evidence strategy ``type``; wrong value types
    - conditions with none of exists / equals / gt / gte / lt / lte
    - field paths that do not parse

Usage:
    from lexintake.rules.catalog import load_rule_catalog
    catalog = load_rule_catalog()                      # packaged catalog
    catalog = load_rule_catalog("catalogs/ga_v2.json") # memoized per path
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lexintake.config import DATA_DIR
from lexintake.errors import CatalogInvalidError, CatalogIssue
from lexintake.schemas.rules import STRATEGY_TYPES, RuleCatalog

logger = logging.getLogger("lexintake.rules.catalog")

DEFAULT_CATALOG_PATH = DATA_DIR / "rule_catalog.json"


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = "root"
    previous = None
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif previous == "evidence_strategy" and part in STRATEGY_TYPES:
            # Discriminated-union branch name, not a document key
            pass
        else:
            path += f".{part}"
        previous = part
    return path


def _issues_from_validation_error(error: ValidationError) -> list[CatalogIssue]:
    issues = []
    for item in error.errors():
        issues.append(CatalogIssue(path=_format_loc(tuple(item["loc"])), message=item["msg"]))
    return issues


def _duplicate_rule_ids(raw: dict[str, Any]) -> list[CatalogIssue]:
    rules = raw.get("rules")
    if not isinstance(rules, list):
        return []
    seen: dict[str, int] = {}
    issues = []
    for idx, rule in enumerate(rules):
        if not isinstance(rule, dict) or not isinstance(rule.get("rule_id"), str):
            continue
        rule_id = rule["rule_id"]
        if rule_id in seen:
            issues.append(CatalogIssue(
                path=f"root.rules[{idx}].rule_id",
                message=f"Duplicate rule_id {rule_id!r} (first defined at rules[{seen[rule_id]}])",
            ))
        else:
            seen[rule_id] = idx
    return issues


def validate_rule_catalog(raw: Any) -> RuleCatalog:
    """
    Validate a parsed catalog document.

    Args:
        raw: The decoded JSON document.

    Returns:
        The validated, immutable RuleCatalog.

    Raises:
        CatalogInvalidError: With every issue found.
    """
    if not isinstance(raw, dict):
        raise CatalogInvalidError([CatalogIssue("root", "Expected a JSON object")])

    issues = _duplicate_rule_ids(raw)
    catalog = None
    try:
        catalog = RuleCatalog.model_validate(raw)
    except ValidationError as e:
        issues.extend(_issues_from_validation_error(e))

    if issues:
        raise CatalogInvalidError(issues)
    return catalog


def collect_catalog_issues(raw: Any) -> list[CatalogIssue]:
    """Like ``validate_rule_catalog`` but returns the issues (empty = valid)."""
    try:
        validate_rule_catalog(raw)
    except CatalogInvalidError as e:
        return e.issues
    return []


@lru_cache(maxsize=8)
def _load_cached(resolved_path: str) -> RuleCatalog:
    try:
        with open(resolved_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise CatalogInvalidError([CatalogIssue("root", f"Invalid JSON: {e}")]) from e
    except OSError as e:
        raise CatalogInvalidError([CatalogIssue("root", f"Cannot read {resolved_path}: {e}")]) from e

    catalog = validate_rule_catalog(raw)
    logger.info(
        f"Loaded rule catalog {catalog.ruleset_version} "
        f"({len(catalog.rules)} rules) from {resolved_path}"
    )
    return catalog


def load_rule_catalog(path: str | Path | None = None) -> RuleCatalog:
    """Load and validate a catalog, memoized by resolved path."""
    resolved = Path(path or DEFAULT_CATALOG_PATH).resolve()
    return _load_cached(str(resolved))


def clear_catalog_cache() -> None:
    _load_cached.cache_clear()
