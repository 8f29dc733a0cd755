"""
Derived Record Tests
=====================

Tests flag rows and document classification updates built from a run.
"""

from __future__ import annotations

import pytest

from lexintake.ai.records import (
    build_classification_updates,
    build_flag_records,
    map_severity,
    merge_classification,
)
from lexintake.ai.tasks import TaskIds
from lexintake.schemas.run import (
    DocumentClassification,
    DocumentClassificationsOutput,
    FlagItem,
    FlagsByCategory,
    FlagsOutput,
    RunLog,
    RunOutput,
    RunStatus,
    TaskStatus,
    TaskStatusEntry,
)
from tests.conftest import message_evidence


def make_run_log(firm_id="firm-1") -> RunLog:
    return RunLog(
        wf4_run_id="run-1",
        intake_id="intake-1",
        wf3_run_id="eval-1",
        started_at="2026-01-11T00:00:00.000Z",
        completed_at="2026-01-11T00:00:09.000Z",
        status=RunStatus.SUCCESS,
        prompt_hash="p",
        input_hash="i",
        prompt_bundle_version="v0.1",
        per_task={
            TaskIds.DV: TaskStatusEntry(prompt_id="wf4.task.flags.dv_indicators.v1", status=TaskStatus.SUCCESS),
        },
        input_refs={"intake_id": "intake-1", "wf3_run_id": "eval-1", "firm_id": firm_id},
    )


def make_flag(key: str, present: bool, level: str = "HIGH") -> FlagItem:
    return FlagItem(
        flag_key=key,
        flag_present=present,
        confidence_score=0.5,
        confidence_level=level,
        evidence=[message_evidence()] if present else [],
        why_it_matters_for_review=f"{key} matters",
    )


@pytest.mark.unit
class TestFlagRecords:
    def test_present_flags_only(self):
        output = RunOutput(flags=FlagsByCategory(
            dv_indicators=FlagsOutput(flags=[make_flag("dv.threats", True), make_flag("dv.weapons", False)]),
            custody_conflict=FlagsOutput(flags=[make_flag("custody.contested", True, "MED")]),
        ))
        records = build_flag_records(make_run_log(), output)
        assert [(r.flag_key, r.severity) for r in records] == [("dv.threats", "high"), ("custody.contested", "medium")]

    def test_record_details(self):
        output = RunOutput(flags=FlagsByCategory(dv_indicators=FlagsOutput(flags=[make_flag("dv.threats", True)])))
        record = build_flag_records(make_run_log(), output)[0]
        assert (record.firm_id, record.intake_id, record.ai_run_id) == ("firm-1", "intake-1", "run-1")
        assert record.summary == "dv.threats matters"
        assert record.details["task_id"] == TaskIds.DV
        assert record.details["prompt_id"] == "wf4.task.flags.dv_indicators.v1"
        assert record.details["flag"]["evidence"][0]["source_id"] == "msg-1"

    def test_prompt_id_none_when_task_not_logged(self):
        output = RunOutput(flags=FlagsByCategory(custody_conflict=FlagsOutput(flags=[make_flag("custody.contested", True)])))
        assert build_flag_records(make_run_log(), output)[0].details["prompt_id"] is None

    def test_no_firm_no_records(self):
        output = RunOutput(flags=FlagsByCategory(dv_indicators=FlagsOutput(flags=[make_flag("dv.threats", True)])))
        assert build_flag_records(make_run_log(firm_id=None), output) == []

    def test_no_flags(self):
        assert build_flag_records(make_run_log(), RunOutput()) == []

    @pytest.mark.parametrize("level,severity", [("HIGH", "high"), ("MED", "medium"), ("LOW", "low"), ("?", "low")])
    def test_map_severity(self, level, severity):
        assert map_severity(level) == severity


@pytest.mark.unit
class TestClassificationUpdates:
    def test_updates_keyed_by_document(self):
        output = RunOutput(document_classifications=DocumentClassificationsOutput(document_classifications=[
            DocumentClassification(
                document_id="doc-1",
                document_type="pay_stub",
                confidence_score=0.8,
                confidence_level="HIGH",
                evidence=[{"source_type": "document", "source_id": "doc-1", "path_or_span": "page:1"}],
            ),
        ]))
        updates = build_classification_updates(make_run_log(), output)
        wf4 = updates["doc-1"]["wf4"]
        assert wf4["document_type"] == "pay_stub"
        assert wf4["ai_run_id"] == "run-1"
        assert wf4["task_id"] == TaskIds.DOCUMENT_CLASSIFY
        assert wf4["updated_at"] == "2026-01-11T00:00:09.000Z"
        assert wf4["evidence"][0]["source_type"] == "document"

    def test_no_classifications(self):
        assert build_classification_updates(make_run_log(), RunOutput()) == {}

    def test_merge_keeps_other_keys(self):
        merged = merge_classification({"manual": {"type": "x"}, "wf4": {"old": True}}, {"wf4": {"new": True}})
        assert merged == {"manual": {"type": "x"}, "wf4": {"new": True}}

    def test_merge_into_non_dict(self):
        assert merge_classification(None, {"wf4": {}}) == {"wf4": {}}
