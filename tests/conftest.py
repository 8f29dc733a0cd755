"""
lexintake Test Configuration
==============================

Shared fixtures, factories, and a scripted LLM provider for the
entire test suite.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

# ── Ensure test mode ────────────────────────────────────────────
os.environ.pop("LEXINTAKE_OPENAI_API_KEY", None)

from lexintake.ai.prompts import PromptIds
from lexintake.ai.provider import BudgetedProvider
from lexintake.config import LexIntakeConfig, ModelPricing
from lexintake.reference.counties import CountyTable, load_counties, parse_counties_csv
from lexintake.rules.catalog import load_rule_catalog
from lexintake.schemas.rules import RuleCatalog
from lexintake.schemas.snapshots import DocumentRecord, IntakeRecord, MessageSnapshot
from lexintake.store import InMemoryStore

FIXED_NOW = "2026-01-11T00:00:00.000Z"
FIXED_DATETIME = datetime(2026, 1, 11, tzinfo=timezone.utc)

PRICING = {
    "gpt-4.1": ModelPricing(input_per_million=10.0, output_per_million=30.0),
    "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.6),
}
USAGE = {"prompt_tokens": 1000, "completion_tokens": 200, "total_tokens": 1200}


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")


# ── Factories ───────────────────────────────────────────────────

def valid_payload(**overrides: Any) -> dict[str, Any]:
    """A divorce intake that passes every packaged rule."""
    payload: dict[str, Any] = {
        "matter_type": "divorce",
        "client_first_name": "Dana",
        "client_last_name": "Whitfield",
        "client_phone": "404-555-0134",
        "client_email": "dana@example.com",
        "client_county": "fulton",
        "county_of_filing": "Fulton",
        "client_income_monthly": 4200,
        "date_of_marriage": "2012-06-09",
        "date_of_separation": "2024-01-15",
        "grounds_for_divorce": "irretrievably_broken",
        "children_count": 1,
        "child_full_name": ["Amy Whitfield"],
        "child_dob": ["2015-04-02"],
        "custody_type_requested": "joint",
        "assets": [],
    }
    payload.update(overrides)
    return payload


def custody_payload(**overrides: Any) -> dict[str, Any]:
    """A custody-only intake (no marriage details)."""
    payload: dict[str, Any] = {
        "matter_type": "custody",
        "client_first_name": "Rae",
        "client_last_name": "Okafor",
        "client_phone": "478-555-0190",
        "client_email": "rae@example.com",
        "client_county": "Bibb",
        "children_count": 2,
        "children": [
            {"child_full_name": "Jo Okafor", "child_dob": "2016-09-30"},
            {"child_full_name": "Sam Okafor", "child_dob": "2019-02-11"},
        ],
        "children_custody": {"custody_type_requested": "primary_physical"},
    }
    payload.update(overrides)
    return payload


def make_intake(
    intake_id: str = "intake-1",
    firm_id: Optional[str] = "firm-1",
    raw_payload: Optional[dict[str, Any]] = None,
    submitted: bool = True,
    documents: Optional[list[DocumentRecord]] = None,
) -> IntakeRecord:
    """Factory for stored intakes, submitted by default."""
    return IntakeRecord(
        intake_id=intake_id,
        firm_id=firm_id,
        status="submitted" if submitted else "draft",
        submitted_at="2026-01-10T18:00:00.000Z" if submitted else None,
        raw_payload=valid_payload() if raw_payload is None else raw_payload,
        free_text_fields={"situation_summary": "We separated last January. He threatened me twice."},
        messages=[
            MessageSnapshot(
                message_id="msg-1",
                role="client",
                content="He threatened me last month. We live in Fulton County.",
                created_at="2026-01-10T17:55:00.000Z",
            ),
        ],
        documents=documents if documents is not None else [
            DocumentRecord(
                document_id="doc-1",
                filename="marriage_certificate.pdf",
                mimetype="application/pdf",
                text_extract="Certificate of Marriage, Fulton County, June 9, 2012",
                created_at="2026-01-10T17:58:00.000Z",
                classification={"manual": {"document_type": "unknown"}},
            ),
        ],
        created_at="2026-01-10T17:50:00.000Z",
    )


def field_evidence(path: str, snippet: Optional[str] = None) -> dict[str, Any]:
    return {"source_type": "field", "source_id": "intake-1", "path_or_span": path, "snippet": snippet}


def message_evidence(span: str = "chars:0-27", snippet: Optional[str] = "He threatened me last month") -> dict[str, Any]:
    return {"source_type": "message", "source_id": "msg-1", "path_or_span": span, "snippet": snippet}


def default_task_outputs() -> dict[str, dict[str, Any]]:
    """One valid raw output per prompt, as a model would return it."""
    return {
        PromptIds.EXTRACT: {"extractions": [{
            "field_key": "$.date_of_separation",
            "value": "2025-01",
            "value_type": "date",
            "confidence_score": 0.7,
            "confidence_level": "MED",
            "confidence_rationale_code": "FREE_TEXT_STATEMENT",
            "evidence": [field_evidence("$.situation_summary", "We separated last January")],
        }]},
        PromptIds.DV: {"flags": [{
            "flag_key": "dv.threats",
            "flag_present": True,
            "confidence_score": 0.9,
            "confidence_level": "HIGH",
            "evidence": [message_evidence()],
            "why_it_matters_for_review": "Threats may warrant a protective order discussion.",
        }]},
        PromptIds.JURISDICTION: {"flags": [{
            "flag_key": "jurisdiction.out_of_state_party",
            "flag_present": False,
            "confidence_score": 0.8,
            "confidence_level": "HIGH",
            "evidence": [],
            "why_it_matters_for_review": "No out-of-state party mentioned.",
        }]},
        PromptIds.CUSTODY: {"flags": [{
            "flag_key": "custody.contested",
            "flag_present": True,
            "confidence_score": 0.55,
            "confidence_level": "MED",
            "evidence": [field_evidence("$.custody_type_requested", "joint")],
            "why_it_matters_for_review": "Parents may disagree on the schedule.",
        }]},
        PromptIds.CONSISTENCY: {"inconsistencies": []},
        PromptIds.COUNTY_MENTIONS: {
            "county_mentions": [{
                "raw_mention": "Fulton County",
                "suggested_county": "fulton",
                "match_type": "EXACT",
                "confidence_score": 0.95,
                "evidence": [message_evidence("chars:41-54", "Fulton County")],
            }],
            "deference": {"wf3_canonical_county_present": True, "wf3_canonical_county_value": "fulton"},
        },
        PromptIds.DOCUMENT_CLASSIFY: {"document_classifications": [{
            "document_id": "doc-1",
            "document_type": "marriage_certificate",
            "confidence_score": 0.92,
            "confidence_level": "HIGH",
            "evidence": [{"source_type": "document", "source_id": "doc-1", "path_or_span": "page:1"}],
        }]},
        PromptIds.REVIEW_ATTENTION: {"review_attention": {
            "high_priority_items": [{"item": "Client reports threats", "references": ["dv.threats"]}],
            "medium_priority_items": [{"item": "Custody may be contested", "references": ["custody.contested"]}],
            "low_priority_items": [],
        }},
    }


async def zero_spend(firm_id: Optional[str], month_start: datetime) -> float:
    return 0.0


class ScriptedProvider(BudgetedProvider):
    """
    BudgetedProvider whose raw completions come from a script.

    ``script`` maps a prompt id to a list of responses consumed one per
    call; the last one is repeated. A response is a dict (returned as
    JSON), a str (returned verbatim) or an exception (raised). Prompts
    without a script answer with ``default_task_outputs()``.
    """

    provider_name = "scripted"

    def __init__(
        self,
        script: Optional[dict[str, list[Any]]] = None,
        usage: Optional[dict[str, int]] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("firm_id", "firm-1")
        kwargs.setdefault("monthly_spend", zero_spend)
        kwargs.setdefault("pricing", PRICING)
        kwargs.setdefault("now", lambda: FIXED_DATETIME)
        super().__init__(**kwargs)
        self.script = {prompt_id: list(responses) for prompt_id, responses in (script or {}).items()}
        self.call_usage = USAGE if usage is None else usage
        self.defaults = default_task_outputs()
        self.calls: list[tuple[str, str, list[dict[str, str]]]] = []
        self._prompt_id = ""

    async def generate_json(self, prompt_id, system_prompt, user_prompt, task_input):
        self._prompt_id = prompt_id
        return await super().generate_json(prompt_id, system_prompt, user_prompt, task_input)

    async def _complete(self, model, messages):
        self.calls.append((self._prompt_id, model, messages))
        queue = self.script.get(self._prompt_id)
        if queue:
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        else:
            response = self.defaults[self._prompt_id]
        if isinstance(response, BaseException):
            raise response
        content = response if isinstance(response, str) or response is None else json.dumps(response)
        return content, dict(self.call_usage)

    def prompts_called(self) -> list[str]:
        return [prompt_id for prompt_id, _, _ in self.calls]


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config() -> LexIntakeConfig:
    """Default test config (no API key)."""
    return LexIntakeConfig(openai_api_key=None)


@pytest.fixture
def counties() -> CountyTable:
    """The packaged Georgia county table."""
    return load_counties()


@pytest.fixture
def small_counties() -> CountyTable:
    """A hand-written table for matcher edge cases."""
    return parse_counties_csv(
        "state,county_name,county_display,county_slug\n"
        "GA,Appling,Appling County,appling\n"
        "GA,Ben Hill,Ben Hill County,ben-hill\n"
        "GA,Fulton,Fulton County,fulton\n"
        "GA,Forsyth,Forsyth County,forsyth\n"
        "AL,Autauga,Autauga County,autauga\n",
        source="test.csv",
    )


@pytest.fixture
def catalog() -> RuleCatalog:
    """The packaged rule catalog."""
    return load_rule_catalog()


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def provider() -> ScriptedProvider:
    """Scripted provider answering every prompt with a valid output."""
    return ScriptedProvider()
