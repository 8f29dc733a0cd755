"""
Storage Collaborators
======================

Async interfaces the two pipelines need from persistence, plus an
in-memory implementation used by the CLI and the test suite.

Interfaces:
    - IntakeSource:        load a stored intake (rules runner)
    - EvaluationStore:     versioned, idempotent evaluation records (rules runner)
    - SnapshotSource:      intake / WF3 snapshots (AI orchestrator)
    - RunStore:            AI run logs + outputs, monthly spend (AI orchestrator, provider)
    - DerivedRecordStore:  best-effort flag rows and document classifications

Uniqueness constraints (``DuplicateRecordError`` on conflict):
    - evaluations: (intake_id, version) and (intake_id, ruleset_version)
    - runs:        wf4_run_id and (intake_id, input_hash)

A production store maps the same constraints onto unique indexes.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from lexintake.ai.records import merge_classification
from lexintake.errors import (
    DuplicateRecordError,
    IntakeNotFoundError,
    MissingRulesEngineError,
    NotSubmittedError,
    Wf3SnapshotNotFoundError,
)
from lexintake.schemas.findings import EvaluationRecord
from lexintake.schemas.run import FlagRecord, RunLog, RunOutput
from lexintake.schemas.snapshots import (
    IntakeRecord,
    IntakeSnapshot,
    RuleResultSummary,
    ValidationSummary,
    Wf3Snapshot,
)
from lexintake.utils import parse_iso_timestamp

logger = logging.getLogger("lexintake.store")


# ── Interfaces ─────────────────────────────────────────────────────

class IntakeSource(ABC):
    @abstractmethod
    async def load_intake(self, intake_id: str) -> Optional[IntakeRecord]:
        """Return the stored intake, or None when it does not exist."""


class EvaluationStore(ABC):
    @abstractmethod
    async def find_evaluation(self, intake_id: str, ruleset_version: str) -> Optional[EvaluationRecord]:
        """Existing evaluation for (intake, ruleset version), if any."""

    @abstractmethod
    async def latest_version(self, intake_id: str) -> int:
        """Highest evaluation version for the intake, 0 when there is none."""

    @abstractmethod
    async def insert_evaluation(self, record: EvaluationRecord) -> EvaluationRecord:
        """Atomically insert a record. Raises DuplicateRecordError on conflict."""

    @abstractmethod
    async def load_evaluation(self, extraction_id: str) -> Optional[EvaluationRecord]:
        """Evaluation record by id, or None."""


class SnapshotSource(ABC):
    @abstractmethod
    async def load_intake_snapshot(self, intake_id: str) -> IntakeSnapshot:
        """Raises IntakeNotFoundError or NotSubmittedError."""

    @abstractmethod
    async def load_wf3_snapshot(self, wf3_run_id: str) -> Wf3Snapshot:
        """Raises Wf3SnapshotNotFoundError or MissingRulesEngineError."""


class RunStore(ABC):
    @abstractmethod
    async def find_run(self, intake_id: str, input_hash: str) -> Optional[tuple[RunLog, RunOutput]]:
        """Stored run for (intake, input hash), if any."""

    @abstractmethod
    async def insert_run(self, run_log: RunLog, run_output: RunOutput) -> str:
        """Insert a run and return its id. Raises DuplicateRecordError on conflict."""

    @abstractmethod
    async def monthly_spend(self, firm_id: Optional[str], month_start: datetime) -> float:
        """Total AI cost (USD) recorded for the firm since ``month_start``."""


class DerivedRecordStore(ABC):
    @abstractmethod
    async def insert_flags(self, records: list[FlagRecord]) -> None:
        ...

    @abstractmethod
    async def merge_document_classifications(
        self,
        intake_id: str,
        firm_id: str,
        updates: dict[str, dict[str, Any]],
    ) -> int:
        """
        Merge ``updates[document_id]`` into each document's classification
        (top-level keys of the update replace existing ones). Only documents
        of the given intake and firm are touched. Returns the number updated.
        """


# ── Snapshot conversion ────────────────────────────────────────────

def intake_snapshot_from_record(intake: IntakeRecord) -> IntakeSnapshot:
    """Build the AI orchestrator's view of a submitted intake."""
    return IntakeSnapshot(
        intake_id=intake.intake_id,
        submission_id=intake.intake_id,
        firm_id=intake.firm_id,
        structured_fields=copy.deepcopy(intake.raw_payload),
        free_text_fields=copy.deepcopy(intake.free_text_fields),
        messages=list(intake.messages),
        documents=[document.to_snapshot() for document in intake.documents],
        created_at=intake.created_at,
    )


def wf3_snapshot_from_record(record: EvaluationRecord) -> Wf3Snapshot:
    """
    Build the AI orchestrator's view of a rules-engine evaluation.

    ``canonical_fields`` maps each normalized field path to its
    canonical value (the county slug, for instance).

    Raises:
        MissingRulesEngineError: The record carries no rules-engine result.
    """
    result = record.rules_engine
    if result is None:
        raise MissingRulesEngineError(f"Evaluation {record.extraction_id} has no rules_engine result")
    return Wf3Snapshot(
        wf3_run_id=record.extraction_id,
        validation_summary=ValidationSummary(
            rule_results=[
                RuleResultSummary(
                    rule_id=evaluation.rule_id,
                    passed=evaluation.passed,
                    field_paths=list(evaluation.field_paths),
                    message=evaluation.message or None,
                )
                for evaluation in result.rule_evaluations
            ],
            required_fields_missing=list(result.required_fields_missing),
        ),
        canonical_fields={n.field_path: n.normalized_value for n in result.normalizations},
        created_at=record.created_at,
    )


# ── In-memory implementation ───────────────────────────────────────

class InMemoryStore(IntakeSource, EvaluationStore, SnapshotSource, RunStore, DerivedRecordStore):
    """
    Dict-backed store implementing every collaborator interface.

    Records are deep-copied on the way in and out so callers can never
    mutate stored state.
    """

    def __init__(self):
        self.intakes: dict[str, IntakeRecord] = {}
        self.evaluations: dict[str, EvaluationRecord] = {}
        self.runs: dict[str, tuple[RunLog, RunOutput]] = {}
        self.flags: list[FlagRecord] = []

    # ── intakes ────────────────────────────────────────────────────
    def add_intake(self, intake: IntakeRecord) -> None:
        self.intakes[intake.intake_id] = intake.model_copy(deep=True)

    async def load_intake(self, intake_id: str) -> Optional[IntakeRecord]:
        intake = self.intakes.get(intake_id)
        return intake.model_copy(deep=True) if intake else None

    # ── evaluations ────────────────────────────────────────────────
    async def find_evaluation(self, intake_id: str, ruleset_version: str) -> Optional[EvaluationRecord]:
        matches = [
            record for record in self.evaluations.values()
            if record.intake_id == intake_id and record.ruleset_version == ruleset_version
        ]
        if not matches:
            return None
        return max(matches, key=lambda record: record.version)

    async def latest_version(self, intake_id: str) -> int:
        versions = [r.version for r in self.evaluations.values() if r.intake_id == intake_id]
        return max(versions, default=0)

    async def insert_evaluation(self, record: EvaluationRecord) -> EvaluationRecord:
        for existing in self.evaluations.values():
            if existing.intake_id != record.intake_id:
                continue
            if existing.version == record.version:
                raise DuplicateRecordError(
                    f"Evaluation version {record.version} already exists for intake {record.intake_id}"
                )
            if existing.ruleset_version == record.ruleset_version:
                raise DuplicateRecordError(
                    f"Ruleset {record.ruleset_version} already evaluated for intake {record.intake_id}"
                )
        if record.extraction_id in self.evaluations:
            raise DuplicateRecordError(f"Evaluation id {record.extraction_id} already exists")
        self.evaluations[record.extraction_id] = record
        return record

    async def load_evaluation(self, extraction_id: str) -> Optional[EvaluationRecord]:
        return self.evaluations.get(extraction_id)

    # ── snapshots ──────────────────────────────────────────────────
    async def load_intake_snapshot(self, intake_id: str) -> IntakeSnapshot:
        intake = self.intakes.get(intake_id)
        if intake is None:
            raise IntakeNotFoundError(f"Intake {intake_id} not found")
        if not intake.is_submitted:
            raise NotSubmittedError(f"Intake {intake_id} has not been submitted")
        return intake_snapshot_from_record(intake)

    async def load_wf3_snapshot(self, wf3_run_id: str) -> Wf3Snapshot:
        record = self.evaluations.get(wf3_run_id)
        if record is None:
            raise Wf3SnapshotNotFoundError(f"Rules evaluation {wf3_run_id} not found")
        return wf3_snapshot_from_record(record)

    # ── runs ───────────────────────────────────────────────────────
    async def find_run(self, intake_id: str, input_hash: str) -> Optional[tuple[RunLog, RunOutput]]:
        for run_log, run_output in self.runs.values():
            if run_log.intake_id == intake_id and run_log.input_hash == input_hash:
                return run_log.model_copy(deep=True), run_output.model_copy(deep=True)
        return None

    async def insert_run(self, run_log: RunLog, run_output: RunOutput) -> str:
        if run_log.wf4_run_id in self.runs:
            raise DuplicateRecordError(f"Run {run_log.wf4_run_id} already exists")
        if await self.find_run(run_log.intake_id, run_log.input_hash) is not None:
            raise DuplicateRecordError(
                f"Run with input hash {run_log.input_hash[:12]} already exists for intake {run_log.intake_id}"
            )
        self.runs[run_log.wf4_run_id] = (run_log.model_copy(deep=True), run_output.model_copy(deep=True))
        return run_log.wf4_run_id

    async def monthly_spend(self, firm_id: Optional[str], month_start: datetime) -> float:
        total = 0.0
        for run_log, _ in self.runs.values():
            if run_log.firm_id != firm_id or run_log.cost_usd is None:
                continue
            if parse_iso_timestamp(run_log.started_at) >= month_start:
                total += run_log.cost_usd
        return total

    # ── derived records ────────────────────────────────────────────
    async def insert_flags(self, records: list[FlagRecord]) -> None:
        self.flags.extend(record.model_copy(deep=True) for record in records)

    async def merge_document_classifications(
        self,
        intake_id: str,
        firm_id: str,
        updates: dict[str, dict[str, Any]],
    ) -> int:
        intake = self.intakes.get(intake_id)
        if intake is None or intake.firm_id != firm_id:
            return 0
        updated = 0
        for document in intake.documents:
            update = updates.get(document.document_id)
            if update is None:
                continue
            document.classification = merge_classification(document.classification, copy.deepcopy(update))
            updated += 1
        return updated
