"""
lexintake CLI
==============

Command-line interface for catalog authoring, one-off rule evaluation
and local end-to-end runs over an intake file.

Usage:
    python -m lexintake validate-catalog --catalog catalogs/ga_v2.json
    python -m lexintake evaluate payload.json --at 2025-01-01T00:00:00Z
    python -m lexintake process intake.json --output run.json
    python -m lexintake tasks
    python -m lexintake export-schemas --output-dir schemas
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from lexintake.config import get_config
from lexintake.errors import LexIntakeError
from lexintake.utils import load_json, setup_logging, utc_now_iso


def main():
    parser = argparse.ArgumentParser(
        prog="lexintake",
        description="lexintake: legal intake rules engine and AI enrichment",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── validate-catalog ────────────────────────────────────────
    catalog_parser = subparsers.add_parser("validate-catalog", help="Validate a rule catalog")
    catalog_parser.add_argument("--catalog", default=None, help="Catalog JSON (default: configured catalog)")

    # ── evaluate ────────────────────────────────────────────────
    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate a payload against the rule catalog")
    evaluate_parser.add_argument("payload", help="Payload JSON file")
    evaluate_parser.add_argument("--catalog", default=None, help="Catalog JSON (default: configured catalog)")
    evaluate_parser.add_argument("--counties", default=None, help="County CSV (default: configured table)")
    evaluate_parser.add_argument("--at", default=None, help="Evaluation timestamp (default: now)")

    # ── process ─────────────────────────────────────────────────
    process_parser = subparsers.add_parser("process", help="Run WF3 and WF4 over an intake record file")
    process_parser.add_argument("intake", help="Intake record JSON file")
    process_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── tasks ───────────────────────────────────────────────────
    subparsers.add_parser("tasks", help="List the AI task catalog")

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args()

    config = get_config(args.config)
    setup_logging(level="DEBUG" if args.verbose else config.log_level, format_style=config.log_format)

    commands = {
        "validate-catalog": cmd_validate_catalog,
        "evaluate": cmd_evaluate,
        "process": cmd_process,
        "tasks": cmd_tasks,
        "export-schemas": cmd_export_schemas,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)

    try:
        command(args, config)
    except LexIntakeError as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_validate_catalog(args, config):
    """Validate a rule catalog document and report every issue."""
    from lexintake.rules.catalog import collect_catalog_issues

    path = Path(args.catalog or config.rules.catalog_path)
    try:
        raw = load_json(path)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read {path}: {e}")
        sys.exit(1)

    issues = collect_catalog_issues(raw)
    if issues:
        print(f"Validation FAILED: {len(issues)} issues")
        for issue in issues:
            print(f"  - {issue}")
        sys.exit(1)

    rules = raw.get("rules", [])
    print(f"Catalog {raw.get('ruleset_version')} is valid ({len(rules)} rules)")


def cmd_evaluate(args, config):
    """Evaluate one payload and print the rules-engine result."""
    from lexintake.reference.counties import load_counties
    from lexintake.rules.catalog import load_rule_catalog
    from lexintake.rules.evaluator import evaluate_rules
    from lexintake.rules.payload import build_rules_payload

    catalog = load_rule_catalog(args.catalog or config.rules.catalog_path)
    counties = load_counties(args.counties or config.rules.counties_path, state=config.rules.county_state)
    payload = build_rules_payload(load_json(args.payload))

    result = evaluate_rules(payload, catalog, counties, evaluated_at=args.at or utc_now_iso())
    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    if result.is_blocked:
        sys.exit(2)


def cmd_process(args, config):
    """Run both workflows over an intake file using an in-memory store."""
    from lexintake.ai.orchestrator import AITaskOrchestrator
    from lexintake.ai.provider import build_provider
    from lexintake.ai.tasks import load_task_catalog
    from lexintake.reference.counties import load_counties
    from lexintake.rules.catalog import load_rule_catalog
    from lexintake.rules.runner import RulesRunner
    from lexintake.schemas.snapshots import IntakeRecord
    from lexintake.store import InMemoryStore

    intake = IntakeRecord.model_validate(load_json(args.intake))
    store = InMemoryStore()
    store.add_intake(intake)

    async def _process():
        runner = RulesRunner.from_config(intakes=store, evaluations=store, config=config)
        rules_result = await runner.run(intake.intake_id, firm_id=intake.firm_id)
        orchestrator = AITaskOrchestrator(
            snapshot_source=store,
            run_store=store,
            provider=build_provider(config, intake.firm_id, store.monthly_spend),
            derived_store=store,
            task_catalog=load_task_catalog(config.ai.task_catalog_path),
            schema_allowlist=load_rule_catalog(config.rules.catalog_path).field_paths(),
            counties=load_counties(config.rules.counties_path, state=config.rules.county_state),
        )
        ai_result = await orchestrator.run(intake.intake_id, rules_result.extraction_id)
        return rules_result, ai_result

    rules_result, ai_result = asyncio.run(_process())
    engine = rules_result.evaluation.rules_engine

    print(f"\nIntake: {intake.intake_id}")
    print(f"Ruleset: {rules_result.ruleset_version} (evaluation v{rules_result.version})")
    print(f"  Blocks: {len(engine.blocks)}  Warnings: {len(engine.warnings)}")
    for path in engine.required_fields_missing:
        print(f"  Missing: {path}")
    print(f"\nAI run: {ai_result.run_log.wf4_run_id} [{ai_result.run_log.status.value}]")
    for task_id, entry in ai_result.run_log.per_task.items():
        print(f"  {entry.status.value:<8} {task_id}" + (f"  ({entry.error})" if entry.error else ""))
    if ai_result.run_log.cost_usd is not None:
        print(f"  Cost: ${ai_result.run_log.cost_usd:.4f}")

    if args.output:
        output = {
            "evaluation": rules_result.evaluation.model_dump(mode="json"),
            "run_log": ai_result.run_log.model_dump(mode="json"),
            "run_output": ai_result.run_output.model_dump(mode="json"),
        }
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2, ensure_ascii=False)
        print(f"\n  Results saved to {args.output}")


def cmd_tasks(args, config):
    """Print the AI task catalog in execution order."""
    from lexintake.ai.tasks import get_task_definition, load_task_catalog

    catalog = load_task_catalog(config.ai.task_catalog_path)
    print(f"{catalog.name} ({catalog.workflow} {catalog.version})")
    for position, task in enumerate(catalog.tasks, start=1):
        definition = get_task_definition(task.task_id)
        print(f"  {position}. {task.task_id}  →  {definition.prompt_id}")
        if task.description:
            print(f"     {task.description}")


def cmd_export_schemas(args, config):
    """Export JSON schemas for all data contracts."""
    from lexintake.schemas.export import export_all_schemas

    paths = export_all_schemas(args.output_dir)
    for path in paths:
        print(f"Exported: {path}")
    print(f"\n{len(paths)} schemas exported to {args.output_dir}/")


if __name__ == "__main__":
    main()
