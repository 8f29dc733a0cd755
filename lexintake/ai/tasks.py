"""
WF4 Task Catalog
=================

The ordered list of AI tasks a run executes, loaded from a JSON
document, plus the in-code registry binding each task id to its
prompt and to the top-level key its output must carry.

Order matters: the review-attention summary consumes the accumulated
outputs of every earlier task, so it must stay last. The catalog
document is hashed into each run's input hash.

Usage:
    from lexintake.ai.tasks import load_task_catalog, get_task_definition
    catalog = load_task_catalog()
    for task in catalog.tasks:
        definition = get_task_definition(task.task_id)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from lexintake.ai.prompts import PromptIds
from lexintake.config import DATA_DIR

logger = logging.getLogger("lexintake.ai.tasks")

DEFAULT_TASK_CATALOG_PATH = DATA_DIR / "task_catalog.json"


class TaskIds:
    EXTRACT = "wf4.extract.schema_fields.v1"
    DV = "wf4.flags.dv_indicators.v1"
    JURISDICTION = "wf4.flags.jurisdiction_complexity.v1"
    CUSTODY = "wf4.flags.custody_conflict.v1"
    CONSISTENCY = "wf4.consistency.cross_field.v1"
    COUNTY_MENTIONS = "wf4.normalize.county_mentions.v1"
    DOCUMENT_CLASSIFY = "wf4.classify.documents.v1"
    REVIEW_ATTENTION = "wf4.review_attention.summary.v1"


# ── Catalog document ───────────────────────────────────────────────

class TaskSpec(BaseModel):
    """One task as described in the catalog document."""
    task_id: str = Field(min_length=1)
    description: str = ""
    input_fields: list[str] = Field(default_factory=list)
    output_schema: dict[str, Any] = Field(default_factory=dict)
    confidence_model: str = ""
    evidence_strategy: str = ""
    failure_mode: str = ""


class TaskCatalog(BaseModel):
    version: str
    workflow: str
    name: str
    principles: dict[str, bool] = Field(default_factory=dict)
    tasks: list[TaskSpec]

    def task_ids(self) -> list[str]:
        return [task.task_id for task in self.tasks]


@lru_cache(maxsize=4)
def _load_cached(resolved_path: str) -> TaskCatalog:
    with open(resolved_path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    catalog = TaskCatalog.model_validate(raw)
    logger.info(f"Loaded task catalog {catalog.version} ({len(catalog.tasks)} tasks) from {resolved_path}")
    return catalog


def load_task_catalog(path: str | Path | None = None) -> TaskCatalog:
    """Load the task catalog, memoized by resolved path."""
    resolved = Path(path or DEFAULT_TASK_CATALOG_PATH).resolve()
    return _load_cached(str(resolved))


def clear_task_catalog_cache() -> None:
    _load_cached.cache_clear()


# ── Registry ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskDefinition:
    """
    How the orchestrator runs and validates one task.

    ``output_key`` is the top-level key the raw output must contain;
    its absence is a structural failure. ``flag_category`` is set for
    the three flag tasks and names their slot in ``RunOutput.flags``.
    """
    task_id: str
    prompt_id: str
    output_key: str
    flag_category: Optional[str] = None


TASK_DEFINITIONS: dict[str, TaskDefinition] = {
    definition.task_id: definition
    for definition in (
        TaskDefinition(TaskIds.EXTRACT, PromptIds.EXTRACT, "extractions"),
        TaskDefinition(TaskIds.DV, PromptIds.DV, "flags", flag_category="dv_indicators"),
        TaskDefinition(TaskIds.JURISDICTION, PromptIds.JURISDICTION, "flags", flag_category="jurisdiction_complexity"),
        TaskDefinition(TaskIds.CUSTODY, PromptIds.CUSTODY, "flags", flag_category="custody_conflict"),
        TaskDefinition(TaskIds.CONSISTENCY, PromptIds.CONSISTENCY, "inconsistencies"),
        TaskDefinition(TaskIds.COUNTY_MENTIONS, PromptIds.COUNTY_MENTIONS, "county_mentions"),
        TaskDefinition(TaskIds.DOCUMENT_CLASSIFY, PromptIds.DOCUMENT_CLASSIFY, "document_classifications"),
        TaskDefinition(TaskIds.REVIEW_ATTENTION, PromptIds.REVIEW_ATTENTION, "review_attention"),
    )
}

FLAG_TASKS: dict[str, str] = {
    definition.flag_category: task_id
    for task_id, definition in TASK_DEFINITIONS.items()
    if definition.flag_category
}


def get_task_definition(task_id: str) -> TaskDefinition:
    """
    Registry entry for a catalog task.

    Raises:
        KeyError: The catalog names a task this version cannot run.
    """
    try:
        return TASK_DEFINITIONS[task_id]
    except KeyError:
        raise KeyError(f"Unknown WF4 task: {task_id}") from None
