"""
Rule Run Orchestrator
======================

Runs the rules engine for one stored intake and persists the result as
a versioned evaluation record.

Flow:
    load intake → check firm / submission → load catalog + counties →
    reuse existing (intake, ruleset_version) record, or evaluate and
    insert at ``latest_version + 1``

Idempotency:
    At most one record exists per (intake, ruleset_version). Concurrent
    runners racing on the same intake resolve through the store's
    uniqueness constraints: the loser of an insert re-queries and
    returns the winner's record with ``written=False``.

Usage:
    from lexintake.rules.runner import RulesRunner
    from lexintake.store import InMemoryStore

    store = InMemoryStore()
    runner = RulesRunner(intakes=store, evaluations=store)
    result = await runner.run("intake-123", firm_id="firm-9")
    print(result.version, result.written)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from lexintake.config import LexIntakeConfig, get_config
from lexintake.errors import (
    DuplicateRecordError,
    FirmMismatchError,
    IntakeNotFoundError,
    NotSubmittedError,
)
from lexintake.reference.counties import load_counties
from lexintake.rules.catalog import load_rule_catalog
from lexintake.rules.evaluator import evaluate_rules
from lexintake.rules.payload import build_rules_payload
from lexintake.schemas.findings import EvaluationRecord
from lexintake.store import EvaluationStore, IntakeSource
from lexintake.utils import generate_id, utc_now_iso

logger = logging.getLogger("lexintake.rules.runner")


@dataclass
class RulesRunResult:
    """Outcome of one runner invocation."""
    evaluation: EvaluationRecord
    ruleset_version: str
    written: bool

    @property
    def extraction_id(self) -> str:
        return self.evaluation.extraction_id

    @property
    def version(self) -> int:
        return self.evaluation.version

    @property
    def is_blocked(self) -> bool:
        engine = self.evaluation.rules_engine
        return engine is not None and engine.is_blocked


class RulesRunner:
    """
    Versioned, idempotent WF3 runner.

    Args:
        intakes: Source of stored intakes.
        evaluations: Store for evaluation records.
        catalog_path: Rule catalog document (packaged default when None).
        counties_path: County table (packaged default when None).
        county_state: Only county rows for this state are loaded.
        schema_version: Stamped on every record.
        max_version_retries: Version allocation attempts under contention.
        clock: Returns the current ISO 8601 timestamp.
        id_factory: Returns a fresh record id.
    """

    def __init__(
        self,
        intakes: IntakeSource,
        evaluations: EvaluationStore,
        catalog_path: Optional[str | Path] = None,
        counties_path: Optional[str | Path] = None,
        county_state: str = "GA",
        schema_version: str = "ga_divorce_custody_v1",
        max_version_retries: int = 3,
        clock: Callable[[], str] = utc_now_iso,
        id_factory: Callable[[], str] = generate_id,
    ):
        self.intakes = intakes
        self.evaluations = evaluations
        self.catalog_path = catalog_path
        self.counties_path = counties_path
        self.county_state = county_state
        self.schema_version = schema_version
        self.max_version_retries = max_version_retries
        self.clock = clock
        self.id_factory = id_factory

    @classmethod
    def from_config(
        cls,
        intakes: IntakeSource,
        evaluations: EvaluationStore,
        config: Optional[LexIntakeConfig] = None,
    ) -> "RulesRunner":
        """Create a runner from configuration (environment / YAML)."""
        config = config or get_config()
        rules = config.rules
        return cls(
            intakes=intakes,
            evaluations=evaluations,
            catalog_path=rules.catalog_path,
            counties_path=rules.counties_path,
            county_state=rules.county_state,
            schema_version=rules.schema_version,
            max_version_retries=rules.max_version_retries,
        )

    async def run(self, intake_id: str, firm_id: Optional[str] = None) -> RulesRunResult:
        """
        Evaluate one intake and persist the result.

        Args:
            intake_id: The intake to evaluate.
            firm_id: Caller's firm; must match the intake's owner when given.

        Returns:
            RulesRunResult. ``written`` is False when an evaluation for the
            current ruleset version already existed.

        Raises:
            IntakeNotFoundError, FirmMismatchError, NotSubmittedError:
                Preconditions; nothing is written.
            CatalogInvalidError, ReferenceDataError: Configuration problems.
            DuplicateRecordError: Version allocation kept conflicting.
        """
        intake = await self.intakes.load_intake(intake_id)
        if intake is None:
            raise IntakeNotFoundError(f"Intake {intake_id} not found")
        if firm_id is not None and intake.firm_id != firm_id:
            raise FirmMismatchError(f"Intake {intake_id} does not belong to firm {firm_id}")
        if not intake.is_submitted:
            raise NotSubmittedError(f"Intake {intake_id} has not been submitted")

        catalog = load_rule_catalog(self.catalog_path)
        ruleset_version = catalog.ruleset_version

        existing = await self.evaluations.find_evaluation(intake_id, ruleset_version)
        if existing is not None:
            logger.info(
                f"Intake {intake_id}: reusing evaluation v{existing.version} ({ruleset_version})"
            )
            return RulesRunResult(evaluation=existing, ruleset_version=ruleset_version, written=False)

        counties = load_counties(self.counties_path, state=self.county_state)
        payload = build_rules_payload(intake.raw_payload)
        created_at = self.clock()
        result = evaluate_rules(payload, catalog, counties, evaluated_at=created_at)
        extraction_id = self.id_factory()

        for attempt in range(1, self.max_version_retries + 1):
            version = await self.evaluations.latest_version(intake_id) + 1
            record = EvaluationRecord(
                extraction_id=extraction_id,
                intake_id=intake_id,
                firm_id=intake.firm_id,
                version=version,
                schema_version=self.schema_version,
                ruleset_version=ruleset_version,
                rules_engine=result,
                created_at=created_at,
            )
            try:
                await self.evaluations.insert_evaluation(record)
            except DuplicateRecordError as e:
                winner = await self.evaluations.find_evaluation(intake_id, ruleset_version)
                if winner is not None:
                    logger.info(
                        f"Intake {intake_id}: concurrent run wrote v{winner.version} first"
                    )
                    return RulesRunResult(evaluation=winner, ruleset_version=ruleset_version, written=False)
                logger.warning(
                    f"Intake {intake_id}: version {version} taken "
                    f"(attempt {attempt}/{self.max_version_retries}): {e}"
                )
                continue

            logger.info(
                f"Intake {intake_id}: wrote evaluation v{version} ({ruleset_version}) "
                f"blocks={len(result.blocks)} warnings={len(result.warnings)} "
                f"missing={len(result.required_fields_missing)}"
            )
            return RulesRunResult(evaluation=record, ruleset_version=ruleset_version, written=True)

        raise DuplicateRecordError(
            f"Could not allocate an evaluation version for intake {intake_id} "
            f"after {self.max_version_retries} attempts"
        )
