"""
Task Catalog & Prompt Bundle Tests
===================================

Tests the WF4 task catalog and prompts:
    - Packaged catalog order and registry coverage
    - Catalog loading and caching
    - Prompt templates, system prompt and bundle hash
    - Input hash sensitivity
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from lexintake.ai.orchestrator import compute_input_hash, run_status
from lexintake.ai.prompts import (
    PROMPT_BUNDLE_VERSION,
    PROMPT_TEMPLATES,
    PromptIds,
    build_user_content,
    get_template,
    prompt_hash,
    system_prompt_for,
)
from lexintake.ai.tasks import (
    DEFAULT_TASK_CATALOG_PATH,
    FLAG_TASKS,
    TASK_DEFINITIONS,
    TaskIds,
    clear_task_catalog_cache,
    get_task_definition,
    load_task_catalog,
)
from lexintake.schemas.run import RunStatus
from lexintake.schemas.snapshots import IntakeSnapshot, Wf3Snapshot
from tests.conftest import FIXED_NOW


@pytest.mark.unit
class TestTaskCatalog:
    """The packaged catalog and the in-code registry agree."""

    def test_packaged_order(self):
        assert load_task_catalog().task_ids() == [
            TaskIds.EXTRACT,
            TaskIds.DV,
            TaskIds.JURISDICTION,
            TaskIds.CUSTODY,
            TaskIds.CONSISTENCY,
            TaskIds.COUNTY_MENTIONS,
            TaskIds.DOCUMENT_CLASSIFY,
            TaskIds.REVIEW_ATTENTION,
        ]

    def test_review_attention_last(self):
        assert load_task_catalog().task_ids()[-1] == TaskIds.REVIEW_ATTENTION

    def test_every_task_registered(self):
        for task_id in load_task_catalog().task_ids():
            definition = get_task_definition(task_id)
            assert definition.prompt_id in PROMPT_TEMPLATES

    def test_unknown_task(self):
        with pytest.raises(KeyError, match="Unknown WF4 task"):
            get_task_definition("wf4.unknown.v1")

    def test_flag_tasks(self):
        assert FLAG_TASKS == {
            "dv_indicators": TaskIds.DV,
            "jurisdiction_complexity": TaskIds.JURISDICTION,
            "custody_conflict": TaskIds.CUSTODY,
        }
        assert all(TASK_DEFINITIONS[task_id].output_key == "flags" for task_id in FLAG_TASKS.values())

    def test_catalog_metadata(self):
        catalog = load_task_catalog()
        assert catalog.workflow == "wf4"
        assert catalog.version == "wf4_task_catalog_v1"

    def test_load_custom_catalog(self, tmp_path):
        raw = json.loads(DEFAULT_TASK_CATALOG_PATH.read_text(encoding="utf-8"))
        raw["tasks"] = raw["tasks"][:2]
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps(raw), encoding="utf-8")

        assert load_task_catalog(path).task_ids() == [TaskIds.EXTRACT, TaskIds.DV]

    def test_cached_until_cleared(self, tmp_path):
        raw = json.loads(DEFAULT_TASK_CATALOG_PATH.read_text(encoding="utf-8"))
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps(raw), encoding="utf-8")
        first = load_task_catalog(path)

        raw["version"] = "wf4_task_catalog_v2"
        path.write_text(json.dumps(raw), encoding="utf-8")
        assert load_task_catalog(path) is first

        clear_task_catalog_cache()
        assert load_task_catalog(path).version == "wf4_task_catalog_v2"

    def test_invalid_catalog(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps({"version": "v1", "workflow": "wf4", "name": "x", "tasks": [{}]}), encoding="utf-8")
        with pytest.raises(ValidationError):
            load_task_catalog(path)


@pytest.mark.unit
class TestPrompts:

    def test_every_template_uses_system_prompt(self):
        for prompt_id, template in PROMPT_TEMPLATES.items():
            assert template.id == prompt_id
            assert "evidence" in system_prompt_for(template)

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            get_template("wf4.task.unknown.v1")

    def test_user_content_appends_input(self):
        content = build_user_content("Classify.", {"county": "Fulton", "note": "café"})
        instructions, payload = content.split("\n\nInput JSON:\n")
        assert instructions == "Classify."
        assert json.loads(payload) == {"county": "Fulton", "note": "café"}
        assert "café" in payload

    def test_prompt_hash_stable(self):
        assert prompt_hash() == prompt_hash()
        assert len(prompt_hash()) == 64

    def test_bundle_version(self):
        assert PROMPT_BUNDLE_VERSION == "v0.1"

    def test_templates_name_their_output_key(self):
        for task_id, definition in TASK_DEFINITIONS.items():
            assert definition.output_key in get_template(definition.prompt_id).user, task_id

    def test_extract_prompt_routes_to_extraction_template(self):
        assert get_task_definition(TaskIds.EXTRACT).prompt_id == PromptIds.EXTRACT


@pytest.mark.unit
class TestInputHash:
    """The input hash identifies one logical AI run."""

    def snapshots(self, **intake_overrides):
        intake = IntakeSnapshot(intake_id="intake-1", firm_id="firm-1", created_at=FIXED_NOW, **intake_overrides)
        wf3 = Wf3Snapshot(wf3_run_id="eval-1", created_at=FIXED_NOW)
        return intake, wf3

    def test_deterministic(self):
        intake, wf3 = self.snapshots()
        catalog = load_task_catalog()
        assert compute_input_hash(intake, wf3, catalog, "p") == compute_input_hash(intake, wf3, catalog, "p")

    def test_key_order_irrelevant(self):
        a, wf3 = self.snapshots(structured_fields={"a": 1, "b": 2})
        b, _ = self.snapshots(structured_fields={"b": 2, "a": 1})
        catalog = load_task_catalog()
        assert compute_input_hash(a, wf3, catalog, "p") == compute_input_hash(b, wf3, catalog, "p")

    def test_sensitive_to_inputs(self):
        intake, wf3 = self.snapshots()
        changed, _ = self.snapshots(structured_fields={"client_county": "cobb"})
        catalog = load_task_catalog()
        base = compute_input_hash(intake, wf3, catalog, "p")
        assert compute_input_hash(changed, wf3, catalog, "p") != base
        assert compute_input_hash(intake, wf3, catalog, "q") != base
        smaller = catalog.model_copy(update={"tasks": catalog.tasks[:1]})
        assert compute_input_hash(intake, wf3, smaller, "p") != base

    @pytest.mark.parametrize("failed,total,status", [
        (0, 8, RunStatus.SUCCESS),
        (1, 8, RunStatus.PARTIAL),
        (7, 8, RunStatus.PARTIAL),
        (8, 8, RunStatus.FAIL),
    ])
    def test_run_status(self, failed, total, status):
        assert run_status(failed, total) == status
