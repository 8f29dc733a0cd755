"""
Evidence Pointer Tests
=======================

Tests pointer constructors, snippet bounding and raw pointer validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lexintake.ai.evidence import (
    bound_evidence_snippets,
    document_pointer,
    field_pointer,
    message_pointer,
    validate_evidence_pointers,
    wf3_pointer,
)
from lexintake.schemas.evidence import MAX_SNIPPET_LENGTH, EvidencePointer, SourceType


@pytest.mark.unit
class TestConstructors:
    """Tests for the four pointer constructors."""

    @pytest.mark.parametrize("build,source_type", [
        (field_pointer, SourceType.FIELD),
        (message_pointer, SourceType.MESSAGE),
        (document_pointer, SourceType.DOCUMENT),
        (wf3_pointer, SourceType.WF3),
    ])
    def test_source_type(self, build, source_type):
        pointer = build("src-1", "loc")
        assert pointer.source_type == source_type
        assert pointer.snippet is None

    def test_snippet_truncated(self):
        pointer = message_pointer("msg-1", "chars:0-500", "x" * 500)
        assert len(pointer.snippet) == MAX_SNIPPET_LENGTH

    def test_empty_snippet_becomes_none(self):
        assert wf3_pointer("wf3-1", "rule:WF3.REQ.CLIENT_FIRST_NAME", "").snippet is None

    def test_serializes_source_type_as_string(self):
        dumped = field_pointer("intake-1", "$.client_county", "Fulton").model_dump(mode="json")
        assert dumped == {
            "source_type": "field",
            "source_id": "intake-1",
            "path_or_span": "$.client_county",
            "snippet": "Fulton",
        }

    def test_model_truncates_long_snippet(self):
        pointer = EvidencePointer(source_type="message", source_id="m", path_or_span="chars:0-1", snippet="y" * 250)
        assert len(pointer.snippet) == MAX_SNIPPET_LENGTH

    def test_model_rejects_empty_ids(self):
        with pytest.raises(ValidationError):
            EvidencePointer(source_type="field", source_id="", path_or_span="$.a")


@pytest.mark.unit
class TestValidation:
    """Tests for validate_evidence_pointers."""

    def test_valid_pointers(self):
        pointers = [
            field_pointer("intake-1", "$.client_county").model_dump(mode="json"),
            {"source_type": "document", "source_id": "doc-1", "path_or_span": "page:2", "snippet": None},
        ]
        assert validate_evidence_pointers(pointers) == []

    def test_empty_list_is_valid(self):
        assert validate_evidence_pointers([]) == []

    def test_model_instances_accepted(self):
        assert validate_evidence_pointers([message_pointer("msg-1", "chars:0-4")]) == []

    @pytest.mark.parametrize("value", [None, "evidence", {"source_type": "field"}])
    def test_not_an_array(self, value):
        assert validate_evidence_pointers(value) == ["evidence must be an array"]

    def test_reports_every_problem(self):
        errors = validate_evidence_pointers([
            {"source_type": "email", "source_id": "", "path_or_span": 3, "snippet": 12},
            "pointer",
        ])
        assert errors == [
            "evidence[0]: source_type invalid ('email')",
            "evidence[0]: source_id missing",
            "evidence[0]: path_or_span missing",
            "evidence[0]: snippet must be a string",
            "evidence[1]: pointer must be an object",
        ]

    def test_long_snippet_rejected_before_bounding(self):
        pointer = {"source_type": "message", "source_id": "m", "path_or_span": "chars:0-9", "snippet": "z" * 201}
        assert validate_evidence_pointers([pointer]) == ["evidence[0]: snippet longer than 200 characters"]
        assert validate_evidence_pointers(bound_evidence_snippets([pointer])) == []


@pytest.mark.unit
class TestBounding:
    """Tests for bound_evidence_snippets."""

    def test_returns_new_list(self):
        pointers = [{"source_type": "field", "source_id": "i", "path_or_span": "$.a", "snippet": "q" * 300}]
        bounded = bound_evidence_snippets(pointers)
        assert len(bounded[0]["snippet"]) == MAX_SNIPPET_LENGTH
        assert len(pointers[0]["snippet"]) == 300

    def test_non_lists_pass_through(self):
        assert bound_evidence_snippets("nope") == "nope"
        assert bound_evidence_snippets([1, None]) == [1, None]
