"""
lexintake Data Schemas
=======================

Pydantic v2 models implementing the data contracts shared by the
rules engine (WF3) and the AI task orchestrator (WF4):

1. RuleCatalog        — Declarative rules with tagged evidence strategies
2. RulesEngineResult  — Per-rule evaluations, findings and normalizations
3. EvidencePointer    — Citation backing every AI-asserted value
4. Snapshots          — Immutable intake / WF3 views handed to WF4
5. RunLog / RunOutput — Audit record and validated outputs of an AI run

All schemas support:
- Runtime validation with Pydantic
- JSON Schema export (``lexintake.schemas.export``)
- Canonical serialization for content hashing
"""

from lexintake.schemas.rules import (
    AppliesWhen,
    CsvLookupStrategy,
    DateOrderStrategy,
    EnumMembershipStrategy,
    MissingOrNullStrategy,
    RuleCatalog,
    RuleCondition,
    RuleDefinition,
    TypeCheckStrategy,
)
from lexintake.schemas.findings import (
    CountyNormalization,
    EvaluationRecord,
    RuleEvaluation,
    RuleFinding,
    RulesEngineResult,
)
from lexintake.schemas.evidence import (
    MAX_SNIPPET_LENGTH,
    EvidencePointer,
    SourceType,
)
from lexintake.schemas.snapshots import (
    DocumentRecord,
    DocumentSnapshot,
    IntakeRecord,
    IntakeSnapshot,
    MessageSnapshot,
    RuleResultSummary,
    ValidationSummary,
    Wf3Snapshot,
)
from lexintake.schemas.run import (
    CountyMention,
    DocumentClassification,
    ExtractionItem,
    FlagItem,
    FlagRecord,
    InconsistencyItem,
    ReviewAttention,
    ReviewAttentionEntry,
    RunLog,
    RunOutput,
    RunStatus,
    TaskResult,
    TaskStatus,
    UsageSummary,
)

__all__ = [
    # Rule catalog
    "AppliesWhen",
    "CsvLookupStrategy",
    "DateOrderStrategy",
    "EnumMembershipStrategy",
    "MissingOrNullStrategy",
    "RuleCatalog",
    "RuleCondition",
    "RuleDefinition",
    "TypeCheckStrategy",
    # Findings
    "CountyNormalization",
    "EvaluationRecord",
    "RuleEvaluation",
    "RuleFinding",
    "RulesEngineResult",
    # Evidence
    "MAX_SNIPPET_LENGTH",
    "EvidencePointer",
    "SourceType",
    # Snapshots
    "DocumentRecord",
    "DocumentSnapshot",
    "IntakeRecord",
    "IntakeSnapshot",
    "MessageSnapshot",
    "RuleResultSummary",
    "ValidationSummary",
    "Wf3Snapshot",
    # AI run
    "CountyMention",
    "DocumentClassification",
    "ExtractionItem",
    "FlagItem",
    "FlagRecord",
    "InconsistencyItem",
    "ReviewAttention",
    "ReviewAttentionEntry",
    "RunLog",
    "RunOutput",
    "RunStatus",
    "TaskResult",
    "TaskStatus",
    "UsageSummary",
]
