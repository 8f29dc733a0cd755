"""
lexintake: Rule Validation and AI Enrichment for Legal Intake
==============================================================

lexintake checks a submitted client intake against a versioned catalog
of declarative rules, then runs a fixed sequence of LLM-backed
extraction and classification tasks over the same record. Nothing the
AI asserts is kept unless it points back at the intake data it came
from.

Architecture Overview:
    Intake payload → Rules engine (WF3) → Evaluation record
                   → AI tasks (WF4) → Run log + validated outputs

Modules:
    - rules:      Field paths, rule catalog, evaluator, versioned runner
    - reference:  Canonical county table and mention matching
    - ai:         Evidence pointers, prompts, task catalog, provider, orchestrator
    - schemas:    Pydantic data contracts shared by both pipelines
    - store:      Storage collaborator interfaces + in-memory store
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
