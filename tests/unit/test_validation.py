"""
Task Output Validation Tests
=============================

Tests the two-phase validation of raw task outputs:
    - Phase 1 structural failures (not JSON, wrong shape, missing key)
    - Phase 2 per-item filtering (evidence rule, types, pointers)
    - County suggestion canonicalization and deference parsing
    - Review-attention entries
"""

from __future__ import annotations

import json

import pytest

from lexintake.ai.tasks import TaskIds, get_task_definition
from lexintake.ai.validation import filter_items, parse_task_output, validate_task_output
from lexintake.errors import TaskStructuralError
from lexintake.schemas.run import ExtractionItem, FlagItem
from tests.conftest import field_evidence, message_evidence


def extraction(**overrides):
    item = {
        "field_key": "$.date_of_marriage",
        "value": "2012-06-09",
        "value_type": "date",
        "confidence_score": 0.9,
        "confidence_level": "HIGH",
        "confidence_rationale_code": "EXPLICIT_FIELD",
        "evidence": [field_evidence("$.date_of_marriage")],
    }
    item.update(overrides)
    return item


def flag(**overrides):
    item = {
        "flag_key": "dv.threats",
        "flag_present": True,
        "confidence_score": 0.8,
        "confidence_level": "HIGH",
        "evidence": [message_evidence()],
        "why_it_matters_for_review": "Safety planning.",
    }
    item.update(overrides)
    return item


def mention(suggested, **overrides):
    item = {
        "raw_mention": "Fulton County",
        "suggested_county": suggested,
        "match_type": "EXACT",
        "confidence_score": 0.9,
        "evidence": [message_evidence("chars:41-54", "Fulton County")],
    }
    item.update(overrides)
    return item


@pytest.mark.unit
class TestStructural:
    """Phase 1: failures that fail the whole task."""

    def test_dict_accepted(self):
        assert parse_task_output({"a": 1}) == {"a": 1}

    def test_json_string_accepted(self):
        assert parse_task_output('{"extractions": []}') == {"extractions": []}

    @pytest.mark.parametrize("raw,message", [
        ("not json", "Invalid JSON"),
        ("[1, 2]", "not an object"),
        ([1, 2], "not JSON"),
        (None, "not JSON"),
    ])
    def test_rejected(self, raw, message):
        with pytest.raises(TaskStructuralError, match=message):
            parse_task_output(raw)

    def test_missing_key_fails_task(self):
        with pytest.raises(TaskStructuralError, match="extractions"):
            validate_task_output(get_task_definition(TaskIds.EXTRACT), {"items": []})

    def test_present_non_list_degrades_to_empty(self):
        output = validate_task_output(get_task_definition(TaskIds.EXTRACT), {"extractions": "none"})
        assert output.extractions == []


@pytest.mark.unit
class TestItemFiltering:
    """Phase 2: invalid items are dropped, valid ones kept."""

    def test_valid_items_kept(self):
        items = filter_items([extraction(), extraction(field_key="$.client_county", value="fulton")], ExtractionItem, "x")
        assert [item.field_key for item in items] == ["$.date_of_marriage", "$.client_county"]

    def test_value_without_evidence_dropped(self):
        assert filter_items([extraction(evidence=[])], ExtractionItem, "x") == []

    def test_null_value_needs_no_evidence(self):
        items = filter_items([extraction(value=None, evidence=[])], ExtractionItem, "x")
        assert items[0].value is None

    def test_present_flag_without_evidence_dropped(self):
        assert filter_items([flag(evidence=[])], FlagItem, "x") == []

    def test_absent_flag_without_evidence_kept(self):
        assert filter_items([flag(flag_present=False, evidence=[])], FlagItem, "x")[0].flag_present is False

    def test_invalid_pointer_drops_item(self):
        bad = extraction(evidence=[{"source_type": "email", "source_id": "x", "path_or_span": "y"}])
        assert filter_items([bad, extraction()], ExtractionItem, "x")[0].field_key == "$.date_of_marriage"
        assert len(filter_items([bad], ExtractionItem, "x")) == 0

    def test_missing_evidence_key_dropped(self):
        item = extraction()
        del item["evidence"]
        assert filter_items([item], ExtractionItem, "x") == []

    def test_long_snippet_bounded_not_dropped(self):
        item = extraction(evidence=[field_evidence("$.a", "s" * 400)])
        kept = filter_items([item], ExtractionItem, "x")
        assert len(kept[0].evidence[0].snippet) == 200

    @pytest.mark.parametrize("overrides", [
        {"confidence_score": "0.9"},
        {"confidence_score": True},
        {"confidence_level": "VERY_HIGH"},
        {"confidence_level": 2},
        {"field_key": 7},
    ])
    def test_wrong_types_dropped(self, overrides):
        assert filter_items([extraction(**overrides)], ExtractionItem, "x") == []

    @pytest.mark.parametrize("level,expected", [
        ("MEDIUM", "MED"),
        ("moderate", "MED"),
        (" high ", "HIGH"),
        ("Low", "LOW"),
    ])
    def test_confidence_level_spellings_normalized(self, level, expected):
        kept = filter_items([extraction(confidence_level=level)], ExtractionItem, "x")
        assert kept[0].confidence_level == expected

    def test_flag_present_must_be_boolean(self):
        assert filter_items([flag(flag_present="true")], FlagItem, "x") == []

    def test_non_object_items_dropped(self):
        assert filter_items(["item", 3, None, extraction()], ExtractionItem, "x")[0].value == "2012-06-09"

    def test_unknown_keys_ignored(self):
        item = filter_items([extraction(model_comment="sure")], ExtractionItem, "x")[0]
        assert not hasattr(item, "model_comment")


@pytest.mark.unit
class TestTaskOutputs:
    """validate_task_output per task kind."""

    def test_flags_output(self):
        output = validate_task_output(get_task_definition(TaskIds.DV), {"flags": [flag(), flag(evidence=[])]})
        assert [f.flag_key for f in output.flags] == ["dv.threats"]

    def test_inconsistencies_require_evidence(self):
        item = {
            "inconsistency_key": "children_count_mismatch",
            "fields_involved": ["$.children_count", "$.children"],
            "summary": "Count says 2, one child listed.",
            "severity": "MED",
            "confidence_score": 0.7,
            "evidence": [],
        }
        good = {**item, "evidence": [field_evidence("$.children_count", "2")]}
        output = validate_task_output(get_task_definition(TaskIds.CONSISTENCY), json.dumps({"inconsistencies": [item, good]}))
        assert len(output.inconsistencies) == 1

    def test_county_mentions_canonical_kept(self, counties):
        output = validate_task_output(
            get_task_definition(TaskIds.COUNTY_MENTIONS),
            {"county_mentions": [mention("fulton")]},
            counties=counties,
        )
        assert output.county_mentions[0].suggested_county == "fulton"
        assert output.deference.wf3_canonical_county_present is False

    def test_county_mentions_exact_spelling_repaired(self, counties):
        output = validate_task_output(
            get_task_definition(TaskIds.COUNTY_MENTIONS),
            {"county_mentions": [mention("Fulton County")]},
            counties=counties,
        )
        assert output.county_mentions[0].suggested_county == "fulton"

    def test_county_mentions_unknown_dropped(self, counties):
        output = validate_task_output(
            get_task_definition(TaskIds.COUNTY_MENTIONS),
            {"county_mentions": [mention("Atlantis"), mention(None, match_type="NONE")]},
            counties=counties,
        )
        assert [m.suggested_county for m in output.county_mentions] == [None]

    def test_county_mentions_need_evidence(self, counties):
        output = validate_task_output(
            get_task_definition(TaskIds.COUNTY_MENTIONS),
            {"county_mentions": [mention("fulton", evidence=[])]},
            counties=counties,
        )
        assert output.county_mentions == []

    @pytest.mark.parametrize("raw,present,value", [
        ({"wf3_canonical_county_present": True, "wf3_canonical_county_value": "fulton"}, True, "fulton"),
        ({"wf3_canonical_county_present": "yes", "wf3_canonical_county_value": 5}, False, None),
        ("fulton", False, None),
        (None, False, None),
    ])
    def test_deference(self, counties, raw, present, value):
        output = validate_task_output(
            get_task_definition(TaskIds.COUNTY_MENTIONS),
            {"county_mentions": [], "deference": raw},
            counties=counties,
        )
        assert output.deference.wf3_canonical_county_present is present
        assert output.deference.wf3_canonical_county_value == value

    def test_document_type_needs_evidence(self):
        items = [
            {"document_id": "doc-1", "document_type": "pay_stub", "confidence_score": 0.8,
             "confidence_level": "HIGH", "evidence": []},
            {"document_id": "doc-2", "document_type": None, "confidence_score": 0.1,
             "confidence_level": "LOW", "evidence": []},
            {"document_id": "", "document_type": None, "confidence_score": 0.1,
             "confidence_level": "LOW", "evidence": []},
        ]
        output = validate_task_output(get_task_definition(TaskIds.DOCUMENT_CLASSIFY), {"document_classifications": items})
        assert [d.document_id for d in output.document_classifications] == ["doc-2"]

    def test_review_attention(self):
        raw = {"review_attention": {
            "high_priority_items": [{"item": "Threats", "references": ["dv.threats"]}, {"item": 3}],
            "medium_priority_items": "none",
        }}
        output = validate_task_output(get_task_definition(TaskIds.REVIEW_ATTENTION), raw)
        attention = output.review_attention
        assert [e.item for e in attention.high_priority_items] == ["Threats"]
        assert attention.medium_priority_items == []
        assert attention.low_priority_items == []

    def test_review_attention_not_an_object(self):
        output = validate_task_output(get_task_definition(TaskIds.REVIEW_ATTENTION), {"review_attention": []})
        assert output.review_attention.high_priority_items == []
