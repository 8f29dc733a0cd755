"""
Derived Records
================

Rows derived from a completed AI run and written on a best-effort basis:

- one FlagRecord per *present* flag, across the three flag categories
- one classification update per classified document, merged into the
  document's existing classification under the ``wf4`` key
"""

from __future__ import annotations

from typing import Any, Literal

from lexintake.ai.tasks import FLAG_TASKS, TaskIds
from lexintake.schemas.run import FlagRecord, RunLog, RunOutput


def map_severity(confidence_level: str) -> Literal["low", "medium", "high"]:
    if confidence_level == "HIGH":
        return "high"
    if confidence_level == "MED":
        return "medium"
    return "low"


def build_flag_records(run_log: RunLog, run_output: RunOutput) -> list[FlagRecord]:
    """Flag rows for a run. Empty when the run has no firm."""
    firm_id = run_log.firm_id
    if not firm_id:
        return []

    records = []
    for category, flags in run_output.all_flags().items():
        task_id = FLAG_TASKS[category]
        task_status = run_log.per_task.get(task_id)
        for flag in flags:
            if not flag.flag_present:
                continue
            records.append(FlagRecord(
                firm_id=firm_id,
                intake_id=run_log.intake_id,
                ai_run_id=run_log.wf4_run_id,
                flag_key=flag.flag_key,
                severity=map_severity(flag.confidence_level),
                summary=flag.why_it_matters_for_review,
                details={
                    "task_id": task_id,
                    "prompt_id": task_status.prompt_id if task_status else None,
                    "flag": flag.model_dump(mode="json"),
                },
            ))
    return records


def build_classification_updates(run_log: RunLog, run_output: RunOutput) -> dict[str, dict[str, Any]]:
    """``document_id -> {"wf4": {...}}`` for every classified document."""
    if run_output.document_classifications is None:
        return {}

    updates: dict[str, dict[str, Any]] = {}
    for item in run_output.document_classifications.document_classifications:
        updates[item.document_id] = {
            "wf4": {
                "document_type": item.document_type,
                "confidence_score": item.confidence_score,
                "confidence_level": item.confidence_level,
                "evidence": [pointer.model_dump(mode="json") for pointer in item.evidence],
                "notes_for_reviewer": item.notes_for_reviewer,
                "ai_run_id": run_log.wf4_run_id,
                "task_id": TaskIds.DOCUMENT_CLASSIFY,
                "updated_at": run_log.completed_at,
            }
        }
    return updates


def merge_classification(existing: Any, update: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge that keeps every existing key the update does not replace."""
    base = existing if isinstance(existing, dict) else {}
    return {**base, **update}
