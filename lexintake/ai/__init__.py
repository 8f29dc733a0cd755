"""
lexintake AI Task Orchestrator (WF4)
=====================================

Sequential, evidence-grounded LLM enrichment of a submitted intake:

    evidence      — evidence pointer constructors and validation
    prompts       — versioned prompt bundle
    tasks         — ordered task catalog and task registry
    validation    — structural and per-item filtering of task output
    provider      — budgeted, retrying LLM provider with usage accounting
    orchestrator  — the run itself (idempotent by input hash)
    records       — derived flag rows and document classification updates
"""
