"""Taint steps and bounded source → sink reachability.

Reachability explores flow nodes breadth-first over

  data mode:   local ∪ jump ∪ configuration flow steps
  taint mode:  data mode ∪ taint steps ∪ configuration taint steps

with these limits:
  - barrier nodes are never entered
  - entering a callee (argument → parameter) increases the call depth and
    returning (return → call result) decreases it; a step beyond the
    configuration's ``max_call_depth`` is not taken and the result is marked
    ``truncated``
  - re-entering a callable already on the current call chain (direct or
    mutual recursion) also marks the result ``truncated``
  - results are memoized per (source node, configuration, mode)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from solflow.core.call_graph import CallKind, callee_expression
from solflow.core.dataflow import (
    DataFlowGraph,
    FlowNode,
    FlowNodeKind,
)
from solflow.core.syntax import SyntaxNode
from solflow.core.types import FlowMode, FlowPathSchema, FlowStepSchema

if TYPE_CHECKING:
    from solflow.core.ast_analyzer import CallableDef
    from solflow.core.configuration import Configuration

logger = logging.getLogger(__name__)


# ── Taint steps ──────────────────────────────────────────────────────────────


CONCAT_CALLS = frozenset({"string.concat", "bytes.concat"})
ENCODE_CALLS = frozenset({
    "abi.encode", "abi.encodePacked", "abi.encodeWithSelector",
    "abi.encodeWithSignature", "abi.encodeCall",
})
DECODE_CALLS = frozenset({"abi.decode"})
HASH_FUNCTIONS = frozenset({"keccak256", "sha256", "sha3", "ripemd160"})
PAYLOAD_LOW_LEVEL_CALLS = frozenset({"call", "delegatecall", "staticcall", "callcode"})


def builtin_name(call: SyntaxNode) -> str:
    """``keccak256`` / ``abi.encode`` style name of a builtin call ("" otherwise)."""
    callee = callee_expression(call)
    if callee is None:
        return ""
    if callee.kind == "Identifier":
        return callee.text
    if callee.kind == "MemberAccess":
        base = callee.get("expression")
        if base is not None and base.kind in ("Identifier", "ElementaryTypeNameExpression"):
            return f"{base.text}.{callee.text}"
        return f".{callee.text}"
    return ""


class TaintSteps:
    """Value-changing propagation that plain data flow does not follow."""

    def __init__(self, graph: DataFlowGraph) -> None:
        self.graph = graph
        self._cache: dict[FlowNode, tuple[FlowNode, ...]] = {}

    def taint_step(self, source: FlowNode, target: FlowNode) -> bool:
        return target in self.successors(source)

    def successors(self, node: FlowNode) -> tuple[FlowNode, ...]:
        cached = self._cache.get(node)
        if cached is None:
            try:
                found = self._successors(node)
            except Exception as e:
                logger.warning("Taint step failed at %r: %s", node, e)
                found = []
            seen: list[FlowNode] = []
            for n in found:
                if n not in seen:
                    seen.append(n)
            cached = tuple(seen)
            self._cache[node] = cached
        return cached

    def _successors(self, node: FlowNode) -> list[FlowNode]:
        if node.kind == FlowNodeKind.EXPRESSION and node.syntax is not None:
            return self._expression_steps(node.syntax)
        if node.kind == FlowNodeKind.ARGUMENT and node.syntax is not None:
            return self._argument_steps(node.syntax, node.position)
        return []

    def _expression_steps(self, expr: SyntaxNode) -> list[FlowNode]:
        graph = self.graph
        parent = expr.parent
        if parent is None:
            return []
        pk = parent.kind

        # compound assignment: both the old value and the operand reach the target
        if pk == "Assignment" and parent.text != "=":
            lhs = parent.get("leftHandSide")
            if lhs is None:
                return []
            return [graph.expression_node(parent), *graph.assignment_targets(lhs, parent)]

        if pk == "UnaryOperation" and parent.text in ("++", "--"):
            return graph.assignment_targets(expr, parent)

        if pk == "MemberAccess" and expr.role == "expression":
            if graph.call_site_of_callee(parent) is None:
                return [graph.expression_node(parent)]
        return []

    def _argument_steps(self, call: SyntaxNode, index: int) -> list[FlowNode]:
        graph = self.graph
        if call.kind != "FunctionCall":
            return []
        call_kind = graph.calls.call_kind(call)
        name = builtin_name(call)

        if call_kind == CallKind.BUILTIN:
            if name in CONCAT_CALLS or name in ENCODE_CALLS or name in HASH_FUNCTIONS:
                return [graph.call_result_node(call, 0)]
            if name in DECODE_CALLS and index == 0:
                return [graph.call_result_node(call, i) for i in range(graph.result_arity(call))]
            if name == ".push" and index >= 0:
                callee = callee_expression(call)
                base = callee.get("expression") if callee is not None else None
                if base is not None:
                    return list(graph.write_nodes(base, call)) + self._push_into_local(base, call)
            return []

        if call_kind == CallKind.LOW_LEVEL:
            member = callee_expression(call)
            if member is not None and member.text in PAYLOAD_LOW_LEVEL_CALLS and index == 0:
                return [graph.call_result_node(call, i) for i in range(graph.result_arity(call))]
        return []

    def _push_into_local(self, base: SyntaxNode, call: SyntaxNode) -> list[FlowNode]:
        if base.kind != "Identifier":
            return []
        decl = self.graph.program.referenced_variable(base)
        if not self.graph.is_local_variable(decl):
            return []
        return [FlowNode.post_update(base, call, owner=self.graph.owner_of(call))]


# ── Results ──────────────────────────────────────────────────────────────────


@dataclass
class FlowPath:
    """A reconstructed source → sink path."""
    source: FlowNode
    sink: FlowNode
    nodes: list[FlowNode] = field(default_factory=list)
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.nodes)

    def to_schema(self, configuration: str, mode: FlowMode = FlowMode.TAINT) -> FlowPathSchema:
        def step(node: FlowNode) -> FlowStepSchema:
            owner = node.enclosing_callable()
            return FlowStepSchema(
                kind=node.kind.value,
                display=node.display_string(),
                location=node.location,
                callable=owner.qualified_name if owner is not None else "",
            )

        return FlowPathSchema(
            configuration=configuration,
            mode=mode,
            source=step(self.source),
            sink=step(self.sink),
            steps=[step(n) for n in self.nodes],
            truncated=self.truncated,
        )


@dataclass
class FlowResult:
    """Everything reachable from one source under one configuration."""
    source: FlowNode
    reached: dict[FlowNode, FlowNode | None] = field(default_factory=dict)
    truncated: bool = False

    def reaches(self, node: FlowNode) -> bool:
        return node in self.reached

    def path_to(self, node: FlowNode, max_length: int | None = None) -> list[FlowNode]:
        if node not in self.reached:
            return []
        path: list[FlowNode] = []
        current: FlowNode | None = node
        while current is not None:
            path.append(current)
            current = self.reached[current]
            if max_length is not None and len(path) >= max_length:
                break
        path.reverse()
        return path


# ── Flow analyzer ────────────────────────────────────────────────────────────


class FlowAnalyzer:
    """Bounded, memoized reachability over the data-flow graph."""

    def __init__(
        self,
        graph: DataFlowGraph,
        taint_steps: TaintSteps | None = None,
        max_path_length: int = 500,
        max_paths_per_query: int = 100,
    ) -> None:
        self.graph = graph
        self.taint_steps = taint_steps or TaintSteps(graph)
        self.max_path_length = max_path_length
        self.max_paths_per_query = max_paths_per_query
        self._memo: dict[tuple[FlowNode, Configuration, FlowMode], FlowResult] = {}

    def successors(
        self,
        node: FlowNode,
        configuration: Configuration,
        mode: FlowMode,
    ) -> list[tuple[FlowNode, int]]:
        """(successor, call-depth delta) pairs for one exploration step."""
        result: list[tuple[FlowNode, int]] = []
        for succ in self.graph.local_successors(node):
            result.append((succ, 0))
        for succ in self.graph.jump_successors(node):
            result.append((succ, _depth_delta(node, succ)))
        for succ in configuration.additional_flow_steps(node, self.graph):
            result.append((succ, 0))
        if mode == FlowMode.TAINT:
            for succ in self.taint_steps.successors(node):
                result.append((succ, 0))
            for succ in configuration.additional_taint_steps(node, self.graph):
                result.append((succ, 0))
        return result

    def reach(
        self,
        source: FlowNode,
        configuration: Configuration,
        mode: FlowMode = FlowMode.TAINT,
    ) -> FlowResult:
        key = (source, configuration, mode)
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        limit = configuration.max_call_depth
        result = FlowResult(source=source, reached={source: None})
        best_depth: dict[FlowNode, int] = {source: 0}
        # Callables entered through argument → parameter on the best path to a node
        chains: dict[FlowNode, tuple[CallableDef, ...]] = {source: _frame(source)}
        queue: deque[tuple[FlowNode, int]] = deque([(source, 0)])

        while queue:
            node, depth = queue.popleft()
            chain = chains[node]
            for succ, delta in self.successors(node, configuration, mode):
                next_depth = max(0, depth + delta)
                if next_depth > limit:
                    result.truncated = True
                    continue
                if delta > 0 and succ.callable is not None and succ.callable in chain:
                    # Recursive re-entry: deeper activations are not distinguished
                    result.truncated = True
                known = best_depth.get(succ)
                if known is not None and known <= next_depth:
                    continue
                if configuration.is_barrier(succ, self.graph):
                    continue
                best_depth[succ] = next_depth
                chains[succ] = _next_chain(chain, succ, delta)
                if succ not in result.reached:
                    result.reached[succ] = node
                queue.append((succ, next_depth))

        if result.truncated:
            logger.debug(
                "Flow from %s truncated (call depth limit %d or recursion)",
                source.display_string(), limit,
                extra={"configuration": configuration.name, "depth": limit},
            )
        self._memo[key] = result
        return result

    def has_flow(self, source: FlowNode, sink: FlowNode, configuration: Configuration) -> bool:
        return self.reach(source, configuration, FlowMode.DATA).reaches(sink)

    def has_taint_flow(self, source: FlowNode, sink: FlowNode, configuration: Configuration) -> bool:
        return self.reach(source, configuration, FlowMode.TAINT).reaches(sink)

    def sources(self, configuration: Configuration) -> list[FlowNode]:
        return [n for n in self.graph.nodes() if configuration.is_source(n, self.graph)]

    def sinks(self, configuration: Configuration) -> list[FlowNode]:
        return [n for n in self.graph.nodes() if configuration.is_sink(n, self.graph)]

    def flow_paths(
        self,
        configuration: Configuration,
        mode: FlowMode = FlowMode.TAINT,
        sources: Iterable[FlowNode] | None = None,
    ) -> list[FlowPath]:
        """Source → sink paths for a configuration (bounded in count and length)."""
        sink_set = set(self.sinks(configuration))
        paths: list[FlowPath] = []
        if not sink_set:
            return paths
        for source in (sources if sources is not None else self.sources(configuration)):
            result = self.reach(source, configuration, mode)
            for sink in result.reached:
                if sink not in sink_set:
                    continue
                nodes = result.path_to(sink, self.max_path_length)
                paths.append(FlowPath(
                    source=source, sink=sink, nodes=nodes,
                    truncated=result.truncated or len(nodes) >= self.max_path_length,
                ))
                if len(paths) >= self.max_paths_per_query:
                    logger.debug(
                        "Path limit %d reached for %s", self.max_paths_per_query, configuration.name,
                        extra={"configuration": configuration.name},
                    )
                    return paths
        return paths


def _depth_delta(node: FlowNode, succ: FlowNode) -> int:
    if node.kind == FlowNodeKind.ARGUMENT and succ.kind == FlowNodeKind.PARAMETER:
        return 1
    if node.kind == FlowNodeKind.RETURN and succ.kind == FlowNodeKind.CALL_RESULT:
        return -1
    return 0


def _frame(node: FlowNode) -> tuple[CallableDef, ...]:
    owner = node.enclosing_callable()
    return (owner,) if owner is not None else ()


def _next_chain(chain: tuple[CallableDef, ...], succ: FlowNode, delta: int) -> tuple[CallableDef, ...]:
    """Call chain after stepping to ``succ``; returning into another caller restarts it."""
    owner = succ.enclosing_callable()
    if delta > 0:
        return chain + _frame(succ)
    if delta < 0:
        chain = chain[:-1]
    if owner is None or (chain and chain[-1] is owner):
        return chain
    return (owner,)
