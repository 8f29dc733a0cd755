"""
AI Task Orchestrator (WF4)
===========================

Runs the ordered AI task catalog over a submitted intake and its
rules-engine evaluation, validates every task's output, and persists
an immutable run log.

Pipeline:
    snapshots → input_hash → (reuse existing run) →
    task 1 … task N (sequential) → RunOutput + RunLog →
    persist run → best-effort flags / document classifications

Idempotency:
    ``input_hash`` digests the canonical JSON of both snapshots, the
    prompt bundle version, the task catalog and the prompt hash. A run
    already stored for (intake, input_hash) is returned unchanged, so a
    retried request never spends twice.

Failure model:
    - snapshot errors are fatal and raised to the caller
    - a task that raises (provider error, budget, structural failure) is
      recorded as FAILED and the run continues with the next task
    - status: SUCCESS (no failed task), PARTIAL (some), FAIL (all, or no
      provider configured)
    - derived-record writes never fail the run

Usage:
    orchestrator = AITaskOrchestrator(snapshot_source=store, run_store=store,
                                      provider=provider, derived_store=store)
    result = await orchestrator.run("intake-123", wf3_run_id="eval-456")
    print(result.run_log.status)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel

from lexintake.ai.prompts import (
    PROMPT_BUNDLE_VERSION,
    get_template,
    prompt_hash,
    system_prompt_for,
)
from lexintake.ai.provider import LLMProvider
from lexintake.ai.records import build_classification_updates, build_flag_records
from lexintake.ai.tasks import TaskCatalog, TaskDefinition, TaskIds, get_task_definition, load_task_catalog
from lexintake.ai.validation import validate_task_output
from lexintake.errors import DuplicateRecordError
from lexintake.reference.counties import CountyTable, load_counties
from lexintake.schemas.run import (
    FlagsByCategory,
    RunLog,
    RunOutput,
    RunStatus,
    TaskResult,
    TaskStatus,
    TaskStatusEntry,
)
from lexintake.schemas.snapshots import IntakeSnapshot, Wf3Snapshot
from lexintake.store import DerivedRecordStore, RunStore, SnapshotSource
from lexintake.utils import compute_content_hash, generate_id, utc_now_iso

logger = logging.getLogger("lexintake.ai.orchestrator")


@dataclass
class RunResult:
    run_log: RunLog
    run_output: RunOutput
    reused: bool = False


def compute_input_hash(
    intake_snapshot: IntakeSnapshot,
    wf3_snapshot: Wf3Snapshot,
    task_catalog: TaskCatalog,
    prompts_hash: str,
) -> str:
    return compute_content_hash({
        "intake_snapshot": intake_snapshot.model_dump(mode="json"),
        "wf3_snapshot": wf3_snapshot.model_dump(mode="json"),
        "prompt_bundle_version": PROMPT_BUNDLE_VERSION,
        "task_catalog": task_catalog.model_dump(mode="json"),
        "prompt_hash": prompts_hash,
    })


def run_status(failed: int, total: int) -> RunStatus:
    if failed == 0:
        return RunStatus.SUCCESS
    if failed >= total:
        return RunStatus.FAIL
    return RunStatus.PARTIAL


class AITaskOrchestrator:
    """
    Sequential WF4 runner.

    Args:
        snapshot_source: Loads intake and WF3 snapshots.
        run_store: Finds and stores runs.
        provider: LLM provider, reset at the start of every run; None records a FAIL run.
        derived_store: Receives flag rows and classification merges.
        task_catalog: Ordered task catalog (packaged default when None).
        counties: County table for the county-mentions task.
        schema_allowlist: Field keys the extraction task may fill.
        clock: Returns the current ISO 8601 timestamp.
        id_factory: Returns a fresh run id.
    """

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        run_store: RunStore,
        provider: Optional[LLMProvider] = None,
        derived_store: Optional[DerivedRecordStore] = None,
        task_catalog: Optional[TaskCatalog] = None,
        counties: Optional[CountyTable] = None,
        schema_allowlist: Optional[list[str]] = None,
        clock: Callable[[], str] = utc_now_iso,
        id_factory: Callable[[], str] = generate_id,
    ):
        self.snapshot_source = snapshot_source
        self.run_store = run_store
        self.provider = provider
        self.derived_store = derived_store
        self.task_catalog = task_catalog
        self.counties = counties
        self.schema_allowlist = schema_allowlist
        self.clock = clock
        self.id_factory = id_factory

    def _schema_allowlist(self) -> list[str]:
        if self.schema_allowlist is None:
            from lexintake.rules.catalog import load_rule_catalog
            self.schema_allowlist = load_rule_catalog().field_paths()
        return self.schema_allowlist

    # ── Task inputs ────────────────────────────────────────────────
    def build_task_input(
        self,
        task_id: str,
        intake_snapshot: IntakeSnapshot,
        wf3_snapshot: Wf3Snapshot,
        run_output: RunOutput,
    ) -> dict[str, Any]:
        """Input for one task: both snapshots plus task-specific context."""
        if task_id == TaskIds.REVIEW_ATTENTION:
            return {
                "wf4_outputs": run_output.model_dump(mode="json", exclude={"task_outputs"}, exclude_none=True),
            }

        task_input: dict[str, Any] = {
            "intake_snapshot": intake_snapshot.model_dump(mode="json"),
            "wf3_snapshot": wf3_snapshot.model_dump(mode="json"),
        }
        if task_id == TaskIds.EXTRACT:
            task_input["schema_allowlist"] = list(self._schema_allowlist())
        elif task_id == TaskIds.COUNTY_MENTIONS:
            task_input["reference"] = {"ga_counties": list(self.counties.canonical_values) if self.counties else []}
        return task_input

    @staticmethod
    def _store_output(run_output: RunOutput, definition: TaskDefinition, output: BaseModel) -> None:
        if definition.flag_category:
            if run_output.flags is None:
                run_output.flags = FlagsByCategory()
            setattr(run_output.flags, definition.flag_category, output)
        else:
            setattr(run_output, definition.output_key, output)

    async def _run_task(
        self,
        definition: TaskDefinition,
        task_input: dict[str, Any],
    ) -> BaseModel:
        template = get_template(definition.prompt_id)
        raw = await self.provider.generate_json(
            definition.prompt_id,
            system_prompt_for(template),
            template.user,
            task_input,
        )
        return validate_task_output(definition, raw, counties=self.counties)

    # ── Entry point ────────────────────────────────────────────────
    async def run(self, intake_id: str, wf3_run_id: str) -> RunResult:
        """
        Execute (or reuse) the AI run for an intake.

        Raises:
            IntakeNotFoundError, NotSubmittedError: Intake snapshot unavailable.
            Wf3SnapshotNotFoundError, MissingRulesEngineError: WF3 snapshot unavailable.
        """
        started_at = self.clock()
        intake_snapshot = await self.snapshot_source.load_intake_snapshot(intake_id)
        wf3_snapshot = await self.snapshot_source.load_wf3_snapshot(wf3_run_id)

        task_catalog = self.task_catalog or load_task_catalog()
        prompts_hash = prompt_hash()
        input_hash = compute_input_hash(intake_snapshot, wf3_snapshot, task_catalog, prompts_hash)

        existing = await self.run_store.find_run(intake_snapshot.intake_id, input_hash)
        if existing is not None:
            logger.info(f"Intake {intake_id}: reusing run {existing[0].wf4_run_id} (input {input_hash[:12]})")
            return RunResult(run_log=existing[0], run_output=existing[1], reused=True)

        if self.counties is None:
            self.counties = load_counties()
        if self.provider is not None:
            self.provider.reset()

        run_output = RunOutput()
        per_task: dict[str, TaskStatusEntry] = {}
        failed = 0

        if self.provider is None:
            logger.warning(f"Intake {intake_id}: no LLM provider configured, recording FAIL run")
        else:
            for task in task_catalog.tasks:
                definition: Optional[TaskDefinition] = None
                try:
                    definition = get_task_definition(task.task_id)
                    task_input = self.build_task_input(task.task_id, intake_snapshot, wf3_snapshot, run_output)
                    output = await self._run_task(definition, task_input)
                except Exception as e:
                    failed += 1
                    logger.error(f"Task {task.task_id} failed: {type(e).__name__}: {e}")
                    result = TaskResult(
                        task_id=task.task_id,
                        prompt_id=definition.prompt_id if definition else task.task_id,
                        status=TaskStatus.FAILED,
                        error=str(e) or type(e).__name__,
                    )
                else:
                    self._store_output(run_output, definition, output)
                    result = TaskResult(
                        task_id=task.task_id,
                        prompt_id=definition.prompt_id,
                        status=TaskStatus.SUCCESS,
                        output=output.model_dump(mode="json"),
                    )
                run_output.task_outputs[task.task_id] = result
                per_task[task.task_id] = TaskStatusEntry(
                    prompt_id=result.prompt_id,
                    status=result.status,
                    error=result.error,
                )

        usage = self.provider.usage_summary() if self.provider else None
        run_log = RunLog(
            wf4_run_id=self.id_factory(),
            intake_id=intake_snapshot.intake_id,
            wf3_run_id=wf3_snapshot.wf3_run_id,
            started_at=started_at,
            completed_at=self.clock(),
            status=run_status(failed, len(task_catalog.tasks)) if self.provider else RunStatus.FAIL,
            model_provider=self.provider.provider_name if self.provider else None,
            model_name=self.provider.model_name if self.provider else None,
            prompt_hash=prompts_hash,
            input_hash=input_hash,
            prompt_bundle_version=PROMPT_BUNDLE_VERSION,
            per_task=per_task,
            input_refs={
                "intake_id": intake_snapshot.intake_id,
                "wf3_run_id": wf3_snapshot.wf3_run_id,
                "firm_id": intake_snapshot.firm_id,
            },
            usage=usage,
            cost_usd=usage.cost_usd if usage else None,
        )

        try:
            await self.run_store.insert_run(run_log, run_output)
        except DuplicateRecordError:
            existing = await self.run_store.find_run(intake_snapshot.intake_id, input_hash)
            if existing is None:
                raise
            logger.info(f"Intake {intake_id}: concurrent run {existing[0].wf4_run_id} stored first")
            return RunResult(run_log=existing[0], run_output=existing[1], reused=True)

        logger.info(
            f"Intake {intake_id}: run {run_log.wf4_run_id} {run_log.status.value} "
            f"({len(per_task) - failed}/{len(per_task)} tasks, cost ${run_log.cost_usd or 0:.4f})"
        )

        if self.provider is not None:
            await self._store_derived(run_log, run_output)
        return RunResult(run_log=run_log, run_output=run_output)

    async def _store_derived(self, run_log: RunLog, run_output: RunOutput) -> None:
        """Best-effort side persistence; failures are logged, never raised."""
        if self.derived_store is None or not run_log.firm_id:
            return
        try:
            flags = build_flag_records(run_log, run_output)
            if flags:
                await self.derived_store.insert_flags(flags)
        except Exception as e:
            logger.warning(f"Run {run_log.wf4_run_id}: storing flags failed: {e}")
        try:
            updates = build_classification_updates(run_log, run_output)
            if updates:
                await self.derived_store.merge_document_classifications(
                    run_log.intake_id, run_log.firm_id, updates
                )
        except Exception as e:
            logger.warning(f"Run {run_log.wf4_run_id}: storing document classifications failed: {e}")
