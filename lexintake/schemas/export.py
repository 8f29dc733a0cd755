"""
Schema Export
==============

JSON Schema export for the lexintake data contracts.

Useful for catalog authors (the rule catalog schema documents every
allowed key) and for services in other languages that read the
evaluation and run records.

Usage:
    from lexintake.schemas.export import export_all_schemas
    export_all_schemas("schemas/")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from lexintake.schemas.evidence import EvidencePointer
from lexintake.schemas.findings import EvaluationRecord, RulesEngineResult
from lexintake.schemas.rules import RuleCatalog
from lexintake.schemas.run import RunLog, RunOutput
from lexintake.schemas.snapshots import IntakeSnapshot, Wf3Snapshot
from lexintake.utils import save_json

logger = logging.getLogger("lexintake.schemas.export")

SCHEMAS: dict[str, type[BaseModel]] = {
    "rule_catalog": RuleCatalog,
    "rules_engine_result": RulesEngineResult,
    "evaluation_record": EvaluationRecord,
    "evidence_pointer": EvidencePointer,
    "intake_snapshot": IntakeSnapshot,
    "wf3_snapshot": Wf3Snapshot,
    "run_log": RunLog,
    "run_output": RunOutput,
}


def get_json_schema(schema_name: str) -> dict[str, Any]:
    """
    Export the JSON Schema for a lexintake data contract.

    Args:
        schema_name: One of the keys of ``SCHEMAS``.

    Returns:
        JSON Schema dict.
    """
    if schema_name not in SCHEMAS:
        raise ValueError(f"Unknown schema: {schema_name}. Use: {list(SCHEMAS.keys())}")
    return SCHEMAS[schema_name].model_json_schema()


def export_all_schemas(output_dir: str | Path) -> list[Path]:
    """
    Export all JSON Schemas to files.

    Creates one ``<name>_schema.json`` file per contract.

    Returns:
        Paths of the written files.
    """
    output_dir = Path(output_dir)
    written = []
    for name in SCHEMAS:
        path = save_json(get_json_schema(name), output_dir / f"{name}_schema.json")
        logger.info(f"Exported schema: {path}")
        written.append(path)
    return written
