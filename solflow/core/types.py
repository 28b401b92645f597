"""Shared enums and schemas used across the engine and by consumers."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    EXTERNAL = "external"
    INTERNAL = "internal"
    PRIVATE = "private"


class StateMutability(str, enum.Enum):
    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"


class ContractKind(str, enum.Enum):
    CONTRACT = "contract"
    INTERFACE = "interface"
    LIBRARY = "library"


class CallableKind(str, enum.Enum):
    FUNCTION = "function"
    CONSTRUCTOR = "constructor"
    FALLBACK = "fallback"
    RECEIVE = "receive"
    MODIFIER = "modifier"
    FREE_FUNCTION = "freeFunction"


class FlowMode(str, enum.Enum):
    """Which step relations a reachability query follows."""

    DATA = "data"
    TAINT = "taint"


# ── Shared Schemas ───────────────────────────────────────────────────────────


class Location(BaseModel):
    """Source location of a syntax node.

    Lines and columns are 1-based. They are 0 when the source text was not
    supplied with the AST (only byte offsets are known then).
    """

    file_path: str = ""
    start_line: int = 0
    end_line: int = 0
    start_col: int = 0
    end_col: int = 0
    offset: int = 0
    length: int = 0

    def __str__(self) -> str:
        return f"{self.file_path or '<unknown>'}:{self.start_line}:{self.start_col}"


class FlowStepSchema(BaseModel):
    """One node on a reported source → sink path."""

    kind: str
    display: str
    location: Location
    callable: str = ""


class FlowPathSchema(BaseModel):
    """Serializable source → sink path for downstream reporters."""

    configuration: str
    mode: FlowMode = FlowMode.TAINT
    source: FlowStepSchema
    sink: FlowStepSchema
    steps: list[FlowStepSchema] = Field(default_factory=list)
    truncated: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
