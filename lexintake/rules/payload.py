"""
Rules Payload Preparation
==========================

Intake forms store repeatable sections (children, assets, debts) as
parallel flat arrays, one per field::

    {"child_full_name": ["Amy", "Ben"], "child_dob": ["2015-04-02", ""]}

Rules address them as arrays of objects (``$.children[].child_dob``).
``build_rules_payload`` assembles the structured sections from the flat
arrays, but only when the structured section is absent or empty, and
folds the custody answers into a ``children_custody`` object.

The input payload is never mutated.
"""

from __future__ import annotations

from typing import Any

REPEATABLE_GROUPS: dict[str, tuple[str, ...]] = {
    "children": (
        "child_full_name",
        "child_dob",
        "child_current_residence",
        "biological_relation",
        "special_needs",
    ),
    "assets": (
        "asset_type",
        "ownership",
        "estimated_value",
        "title_holder",
        "acquired_pre_marriage",
    ),
    "debts": (
        "debt_type",
        "amount",
        "responsible_party",
        "incurred_during_marriage",
    ),
}

CUSTODY_KEYS = (
    "custody_type_requested",
    "parenting_plan_exists",
    "modification_existing_order",
    "current_parenting_schedule",
    "school_district",
)

_ABSENT = object()


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if value is None or value == "":
        return []
    return [value]


def _has_value(value: Any) -> bool:
    if value is None or value is _ABSENT:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return bool(value)
    return True


def build_repeatable_group(payload: dict[str, Any], keys: tuple[str, ...]) -> list[dict[str, Any]]:
    """
    Zip parallel field arrays into entry objects.

    Entries where every field is blank are dropped; a field missing
    from an entry (shorter array) is omitted rather than set to null.
    """
    columns = [_as_list(payload.get(key)) for key in keys]
    count = max((len(column) for column in columns), default=0)

    entries: list[dict[str, Any]] = []
    for index in range(count):
        entry: dict[str, Any] = {}
        for key, column in zip(keys, columns):
            value = column[index] if index < len(column) else _ABSENT
            if value is not _ABSENT:
                entry[key] = value
        if any(_has_value(value) for value in entry.values()):
            entries.append(entry)
    return entries


def build_rules_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the payload with structured sections filled in."""
    prepared = dict(payload)

    for section, keys in REPEATABLE_GROUPS.items():
        existing = payload.get(section)
        if isinstance(existing, list) and existing:
            continue
        entries = build_repeatable_group(payload, keys)
        if entries:
            prepared[section] = entries

    existing_custody = payload.get("children_custody")
    custody = dict(existing_custody) if isinstance(existing_custody, dict) else {}
    for key in CUSTODY_KEYS:
        if key in payload and key not in custody:
            custody[key] = payload[key]
    if custody:
        prepared["children_custody"] = custody

    return prepared
