"""Ready-made flow configurations for common smart-contract weaknesses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from solflow.analyzer.configurations.catalog import (
    is_array_index,
    is_checked_value,
    is_delegatecall_target,
    is_external_call_result,
    is_external_call_target,
    is_in_lock_guarded_callable,
    is_low_level_call_result,
    is_selfdestruct_argument,
    is_state_write,
    is_untrusted_input,
    is_validated_by_check,
    is_value_transfer_amount,
)
from solflow.core.configuration import Configuration
from solflow.core.dataflow import DataFlowGraph, FlowNode, FlowNodeKind
from solflow.core.syntax import SyntaxNode
from solflow.core.taint import FlowAnalyzer
from solflow.core.types import FlowMode

logger = logging.getLogger(__name__)


# ── Untrusted input reaching a dangerous operand ─────────────────────────────


@dataclass(frozen=True)
class UntrustedInputConfiguration(Configuration):
    """Shared sources: externally supplied parameters, ``msg.data``/``tx.origin``
    and results of external calls."""

    def is_source(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_untrusted_input(node, graph)


@dataclass(frozen=True)
class TaintedCallTarget(UntrustedInputConfiguration):
    NAME = "tainted-call-target"
    DESCRIPTION = "Caller-controlled data decides which contract an external call goes to"
    CATEGORY = "access-control"

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_external_call_target(node, graph)


@dataclass(frozen=True)
class TaintedDelegatecall(UntrustedInputConfiguration):
    NAME = "tainted-delegatecall"
    DESCRIPTION = "Caller-controlled data reaches the target of delegatecall/callcode"
    CATEGORY = "access-control"

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_delegatecall_target(node, graph)


@dataclass(frozen=True)
class TaintedValueTransfer(UntrustedInputConfiguration):
    NAME = "tainted-value-transfer"
    DESCRIPTION = "Caller-controlled data decides the amount of ether sent"
    CATEGORY = "value-transfer"

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_value_transfer_amount(node, graph)


@dataclass(frozen=True)
class TaintedSelfdestruct(UntrustedInputConfiguration):
    NAME = "tainted-selfdestruct"
    DESCRIPTION = "Caller-controlled data reaches the beneficiary of selfdestruct"
    CATEGORY = "access-control"

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_selfdestruct_argument(node, graph)


@dataclass(frozen=True)
class TaintedArrayIndex(UntrustedInputConfiguration):
    """Unvalidated caller-controlled array index.

    With ``respect_checks`` a read that follows a ``require``/branch check
    of the same local is treated as validated.
    """

    NAME = "tainted-array-index"
    DESCRIPTION = "Caller-controlled data indexes an array without validation"
    CATEGORY = "data-validation"

    respect_checks: bool = True

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_array_index(node, graph)

    def is_barrier(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return self.respect_checks and is_validated_by_check(node, graph)


# ── Reentrancy ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Reentrancy(Configuration):
    """External call followed by a write to state that was read before the call.

    The external call result is linked to every such later write of the
    same callable. Callables guarded by a lock modifier are barriers.
    """

    NAME = "reentrancy"
    DESCRIPTION = "State read before an external call is written after it"
    CATEGORY = "reentrancy"

    def is_source(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return node.position == 0 and is_external_call_result(node, graph)

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_state_write(node, graph)

    def is_barrier(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_in_lock_guarded_callable(node, graph)

    def additional_flow_steps(self, node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
        if not self.is_source(node, graph):
            return ()
        return writes_after_call(node.syntax, graph)


def writes_after_call(call: SyntaxNode, graph: DataFlowGraph) -> list[FlowNode]:
    """State writes that can follow ``call`` and hit state read before it.

    Ordering is taken from the spliced CFG, so reads in a modifier prologue
    and writes in a modifier epilogue count. Lock-guard modifiers are left
    out: releasing the lock after ``_`` is not a stale-state write.
    """
    owner = graph.owner_of(call)
    cfg = graph.spliced_cfg_for(owner) if owner is not None else None
    call_nodes = cfg.nodes_for(call) if cfg is not None else []
    if not call_nodes:
        return []

    candidates = list(graph.nodes_in(owner))
    for _, modifier in graph.modifiers.modifiers_of(owner):
        if not graph.modifiers.is_lock_guard(modifier):
            candidates.extend(graph.nodes_in(modifier))

    read_before: set[SyntaxNode] = set()
    writes: list[tuple[FlowNode, SyntaxNode]] = []
    for flow_node in candidates:
        if flow_node.syntax is None or flow_node.declaration is None:
            continue
        at = cfg.nodes_for(flow_node.syntax)
        if flow_node.kind == FlowNodeKind.STATE_VAR_READ and any(
            cfg.strictly_reaches(a, c) for a in at for c in call_nodes
        ):
            read_before.add(flow_node.declaration)
        elif flow_node.kind == FlowNodeKind.STATE_VAR_WRITE and any(
            cfg.strictly_reaches(c, a) for a in at for c in call_nodes
        ):
            writes.append((flow_node, flow_node.declaration))
    return [write for write, decl in writes if decl in read_before]


# ── Unchecked low-level call results ─────────────────────────────────────────


@dataclass(frozen=True)
class UncheckedReturn(Configuration):
    """Success flags of low-level calls and the checks that consume them.

    A call whose flag reaches no sink is unchecked; see
    ``find_unchecked_calls``.
    """

    NAME = "unchecked-return"
    DESCRIPTION = "Success flag of a low-level call is never checked"
    CATEGORY = "error-handling"

    def is_source(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_low_level_call_result(node, graph)

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return is_checked_value(node, graph)


def find_unchecked_calls(
    flows: FlowAnalyzer,
    configuration: UncheckedReturn | None = None,
) -> list[SyntaxNode]:
    """Low-level call sites whose success flag never reaches a check."""
    configuration = configuration or UncheckedReturn()
    graph = flows.graph
    unchecked: list[SyntaxNode] = []
    for source in flows.sources(configuration):
        result = flows.reach(source, configuration, FlowMode.TAINT)
        if not any(configuration.is_sink(n, graph) for n in result.reached):
            unchecked.append(source.syntax)
    logger.debug(
        "%d unchecked low-level call(s)", len(unchecked),
        extra={"configuration": configuration.name},
    )
    return unchecked


BUILTIN_CONFIGURATIONS: tuple[type[Configuration], ...] = (
    TaintedCallTarget,
    TaintedDelegatecall,
    TaintedValueTransfer,
    TaintedSelfdestruct,
    TaintedArrayIndex,
    Reentrancy,
    UncheckedReturn,
)
