"""Error types and non-fatal issue records.

The engine separates two things:

  - ``SolflowError`` subclasses are raised for misuse of the public API
    (asking for a CFG of something that is not a callable, malformed AST
    input at the top level).
  - ``Issue`` records describe problems found *in the analysed program*
    (inheritance cycles, unresolvable bases, diamond conflicts, a callable
    whose construction failed). They are collected and exposed as
    queryable facts; they never abort the analysis of the rest of the
    program.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ── Issue kinds ──────────────────────────────────────────────────────────────


class IssueKind(str, Enum):
    """Category of a non-fatal issue."""

    # Structural inconsistencies in the analysed program
    INHERITANCE_CYCLE = "inheritance-cycle"
    LINEARIZATION_FAILURE = "linearization-failure"
    UNRESOLVED_BASE = "unresolved-base"
    DIAMOND_CONFLICT = "diamond-conflict"

    # Engine-side degradations
    ANALYSIS_FAILURE = "analysis-failure"
    BOUND_EXCEEDED = "bound-exceeded"


@dataclass(frozen=True)
class Issue:
    """A structural inconsistency or partial failure found during analysis."""

    kind: IssueKind
    message: str
    contract: str = ""
    callable: str = ""
    details: tuple[tuple[str, Any], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "contract": self.contract,
            "callable": self.callable,
            "details": dict(self.details),
        }


# ── Exceptions ───────────────────────────────────────────────────────────────


class SolflowError(Exception):
    """Base class for errors raised by the engine's public API."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidASTError(SolflowError):
    """The top-level input is not a solc JSON AST."""


class NotACallableError(SolflowError):
    """A callable-level query received a node that is not a function or modifier."""


class UnknownConfigurationError(SolflowError):
    """A configuration name is not present in the registry."""
