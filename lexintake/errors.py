"""
Error Taxonomy
===============

Every failure the rules engine and the AI orchestrator report to a
caller derives from ``LexIntakeError``.

Fatal:
    - CatalogInvalidError:  the rule catalog failed validation (never partially trusted)
    - ReferenceDataError:   the county table could not be loaded

Preconditions (no state mutated):
    - IntakeNotFoundError, NotSubmittedError, FirmMismatchError
    - Wf3SnapshotNotFoundError, MissingRulesEngineError

Per-task (the run continues):
    - BudgetExceededError:  cascades to every remaining task of the run
    - TaskStructuralError:  unparseable or wrong-shape task output

Storage:
    - DuplicateRecordError: uniqueness conflict, treated as "already written"

Item-level validation failures are intentionally NOT exceptions: invalid
items are dropped from their list without surfacing an error.
"""

from __future__ import annotations

from dataclasses import dataclass


class LexIntakeError(Exception):
    """Base class for all lexintake errors."""


@dataclass(frozen=True)
class CatalogIssue:
    """One structural problem found in a rule catalog document."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class CatalogInvalidError(LexIntakeError):
    """The rule catalog document violates the catalog schema."""

    def __init__(self, issues: list[CatalogIssue]):
        self.issues = list(issues)
        lines = "\n".join(f"- {issue}" for issue in self.issues)
        super().__init__(f"Invalid rule catalog ({len(self.issues)} issues):\n{lines}")


class ReferenceDataError(LexIntakeError):
    """The reference (county) table could not be loaded."""


class PathSyntaxError(LexIntakeError, ValueError):
    """A field path does not follow the ``$.a.b[2].c`` grammar."""


class IntakeNotFoundError(LexIntakeError):
    """No intake exists with the requested id."""


class NotSubmittedError(LexIntakeError):
    """The intake exists but has not been submitted."""


class FirmMismatchError(LexIntakeError):
    """The intake belongs to a different firm than the caller's."""


class Wf3SnapshotNotFoundError(LexIntakeError):
    """No rules-engine evaluation exists with the requested id."""


class MissingRulesEngineError(LexIntakeError):
    """The evaluation record exists but carries no rules-engine result."""


class BudgetExceededError(LexIntakeError):
    """The monthly LLM spend ceiling has been reached."""


class TaskStructuralError(LexIntakeError):
    """A task's raw output is not JSON or has the wrong top-level shape."""


class DuplicateRecordError(LexIntakeError):
    """An insert hit a uniqueness constraint at the storage layer."""


class ProviderNotConfiguredError(LexIntakeError):
    """The LLM provider cannot be built from the current configuration."""
