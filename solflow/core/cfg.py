"""Control Flow Graph (CFG) builder for Solidity callables.

Builds a node-level CFG from the body of a function, constructor, fallback,
receive or modifier:

  - Statements and expressions become CFG nodes; expressions are evaluated
    in post-order (operands before their operator)
  - if/else → true/false edges from the condition, converging at a JOIN
  - for/while/do-while → loop header JOIN with a back edge, condition false
    edge leaves the loop; break/continue go to the innermost loop
  - `&&`, `||` and `?:` short-circuit
  - try/catch → success clause plus an exception edge to every catch clause
  - return/revert → EXIT
  - inline assembly and unknown statement kinds → opaque leaves
  - modifiers can be spliced in: each modifier body wraps the next layer at
    its `_` placeholder

Statements after a return/break/revert still get nodes; they have no
predecessors and are reported as dead, never merged into a live path.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable

from solflow.core.errors import NotACallableError
from solflow.core.syntax import SyntaxNode

if TYPE_CHECKING:
    from solflow.core.ast_analyzer import CallableDef, ModifierDef, ModifierInvocation

logger = logging.getLogger(__name__)


# ── CFG Data Structures ─────────────────────────────────────────────────────


class CfgNodeKind(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"
    JOIN = "join"
    SYNTAX = "syntax"


class EdgeKind(str, Enum):
    NORMAL = "normal"
    TRUE = "true"
    FALSE = "false"
    BACK = "back"
    EXCEPTION = "exception"


STATEMENT_KINDS = frozenset({
    "ExpressionStatement",
    "VariableDeclarationStatement",
    "Return",
    "EmitStatement",
    "RevertStatement",
    "IfStatement",
    "ForStatement",
    "WhileStatement",
    "DoWhileStatement",
    "Break",
    "Continue",
    "PlaceholderStatement",
    "InlineAssembly",
    "TryStatement",
    "Throw",
})

_BLOCK_KINDS = frozenset({"Block", "UncheckedBlock"})


@dataclass(eq=False)
class CfgNode:
    """A program point: a syntax node or a synthetic entry/exit/join marker."""
    index: int
    kind: CfgNodeKind
    syntax: SyntaxNode | None = None
    callable: CallableDef | None = field(default=None, repr=False)

    @property
    def is_synthetic(self) -> bool:
        return self.kind != CfgNodeKind.SYNTAX

    def __repr__(self) -> str:
        if self.syntax is None:
            return f"<CfgNode#{self.index} {self.kind.value}>"
        return f"<CfgNode#{self.index} {self.syntax.kind}>"


class CFG:
    """Control flow graph of one callable (arena of nodes, index edges)."""

    def __init__(self, callable_def: CallableDef, spliced: bool = False) -> None:
        self.callable = callable_def
        self.spliced = spliced
        self.nodes: list[CfgNode] = []
        self._succ: list[list[tuple[int, EdgeKind]]] = []
        self._pred: list[list[tuple[int, EdgeKind]]] = []
        self._by_syntax: dict[SyntaxNode, list[int]] = {}
        self._reach_cache: dict[int, frozenset[int]] = {}
        self._live: frozenset[int] | None = None
        self.entry = self.new_node(CfgNodeKind.ENTRY, None, callable_def)
        self.exit = self.new_node(CfgNodeKind.EXIT, None, callable_def)

    # ── Construction ─────────────────────────────────────────────────

    def new_node(
        self,
        kind: CfgNodeKind,
        syntax: SyntaxNode | None,
        owner: CallableDef | None,
    ) -> CfgNode:
        node = CfgNode(index=len(self.nodes), kind=kind, syntax=syntax, callable=owner)
        self.nodes.append(node)
        self._succ.append([])
        self._pred.append([])
        if syntax is not None:
            self._by_syntax.setdefault(syntax, []).append(node.index)
        return node

    def add_edge(self, from_id: int, to_id: int, kind: EdgeKind = EdgeKind.NORMAL) -> None:
        if all(target != to_id for target, _ in self._succ[from_id]):
            self._succ[from_id].append((to_id, kind))
            self._pred[to_id].append((from_id, kind))

    # ── Structure queries ────────────────────────────────────────────

    def successors(self, node: CfgNode) -> list[CfgNode]:
        """Successors in deterministic order (then before else, body before exit)."""
        return [self.nodes[i] for i, _ in self._succ[node.index]]

    def successor_edges(self, node: CfgNode) -> list[tuple[CfgNode, EdgeKind]]:
        return [(self.nodes[i], kind) for i, kind in self._succ[node.index]]

    def predecessors(self, node: CfgNode) -> list[CfgNode]:
        return [self.nodes[i] for i, _ in self._pred[node.index]]

    def predecessor_edges(self, node: CfgNode) -> list[tuple[CfgNode, EdgeKind]]:
        return [(self.nodes[i], kind) for i, kind in self._pred[node.index]]

    def nodes_for(self, syntax: SyntaxNode) -> list[CfgNode]:
        return [self.nodes[i] for i in self._by_syntax.get(syntax, [])]

    def node_for(self, syntax: SyntaxNode) -> CfgNode | None:
        indices = self._by_syntax.get(syntax)
        return self.nodes[indices[0]] if indices else None

    def syntax_nodes(self) -> list[CfgNode]:
        return [n for n in self.nodes if n.syntax is not None]

    @property
    def block_count(self) -> int:
        return len(self.nodes)

    # ── Reachability ─────────────────────────────────────────────────

    def _forward_closure(self, start: int) -> frozenset[int]:
        cached = self._reach_cache.get(start)
        if cached is not None:
            return cached
        visited: set[int] = {start}
        worklist = deque([start])
        while worklist:
            current = worklist.popleft()
            for succ, _ in self._succ[current]:
                if succ not in visited:
                    visited.add(succ)
                    worklist.append(succ)
        result = frozenset(visited)
        self._reach_cache[start] = result
        return result

    def reaches(self, a: CfgNode, b: CfgNode) -> bool:
        """True if ``b`` is reachable from ``a`` (reflexive)."""
        return b.index in self._forward_closure(a.index)

    def strictly_reaches(self, a: CfgNode, b: CfgNode) -> bool:
        """True if there is a path of at least one edge from ``a`` to ``b``."""
        return any(b.index in self._forward_closure(s) for s, _ in self._succ[a.index])

    def reachable_nodes(self) -> list[CfgNode]:
        return [self.nodes[i] for i in sorted(self._live_set())]

    def is_reachable(self, node: CfgNode) -> bool:
        return node.index in self._live_set()

    def dead_nodes(self) -> list[CfgNode]:
        live = self._live_set()
        return [n for n in self.nodes if n.index not in live]

    def _live_set(self) -> frozenset[int]:
        if self._live is None:
            self._live = self._forward_closure(self.entry.index)
        return self._live

    def statement_reachability(self) -> dict[SyntaxNode, bool]:
        """Classify every statement of the body as reachable (True) or dead."""
        result: dict[SyntaxNode, bool] = {}
        live = self._live_set()
        for syntax, indices in self._by_syntax.items():
            if syntax.kind in STATEMENT_KINDS or (
                syntax.parent is not None
                and syntax.parent.kind in _BLOCK_KINDS
                and syntax.kind not in _BLOCK_KINDS
            ):
                result[syntax] = any(i in live for i in indices)
        return result

    def dead_statements(self) -> list[SyntaxNode]:
        return [s for s, live in self.statement_reachability().items() if not live]

    def __repr__(self) -> str:
        return f"<CFG {self.callable!r} nodes={len(self.nodes)}>"


# ── CFG Builder ──────────────────────────────────────────────────────────────


Pending = list[tuple[int, EdgeKind]]


@dataclass
class _LoopContext:
    breaks: Pending = field(default_factory=list)
    continues: Pending = field(default_factory=list)


ModifierResolver = Callable[["ModifierInvocation"], "ModifierDef | None"]


class CFGBuilder:
    """Build a node-level Control Flow Graph from a callable body.

    Handles:
    - Sequential statements and post-order expression evaluation
    - if/else → branch on the condition node, merge at a JOIN
    - for/while/do-while → loop header, back edge, false edge exits
    - break/continue → innermost loop exit / continue target
    - try/catch → success clause and exception edges to catch clauses
    - return/revert → edge to the exit of the current layer
    - modifier splicing at placeholders
    """

    def __init__(self, modifier_resolver: ModifierResolver | None = None) -> None:
        self._resolve_modifier = modifier_resolver
        self._cfg: CFG | None = None
        self._loops: list[_LoopContext] = []
        self._returns: list[Pending] = []
        self._owner: CallableDef | None = None
        self._layers: list[CallableDef] = []

    def build(self, callable_def: CallableDef, splice_modifiers: bool = False) -> CFG:
        """Build the CFG for a callable; optionally splice its modifiers."""
        if callable_def is None or not hasattr(callable_def, "body"):
            raise NotACallableError("CFG construction needs a function or modifier definition")

        layers: list[CallableDef] = []
        if splice_modifiers and self._resolve_modifier is not None:
            for invocation in getattr(callable_def, "modifiers", []):
                modifier = self._resolve_modifier(invocation)
                if modifier is not None and modifier.body is not None:
                    layers.append(modifier)
        layers.append(callable_def)

        cfg = CFG(callable_def, spliced=len(layers) > 1)
        self._cfg = cfg
        self._loops = []
        self._returns = []
        self._layers = layers

        exits = self._build_layer(0, [(cfg.entry.index, EdgeKind.NORMAL)])
        self._connect(exits, cfg.exit.index)
        logger.debug("Built CFG for %s: %d nodes", callable_def.qualified_name, len(cfg.nodes))
        return cfg

    # ── Layers (modifier splicing) ───────────────────────────────────

    def _build_layer(self, depth: int, preds: Pending) -> Pending:
        owner = self._layers[depth]
        previous_owner = self._owner
        previous_loops = self._loops
        self._owner = owner
        self._loops = []
        self._returns.append([])
        try:
            body = owner.body
            if body is None:
                out = preds
            else:
                out = self._process_statement(body, preds, depth)
        finally:
            returns = self._returns.pop()
            self._owner = previous_owner
            self._loops = previous_loops
        return out + returns

    # ── Helpers ──────────────────────────────────────────────────────

    def _node(self, syntax: SyntaxNode | None, kind: CfgNodeKind = CfgNodeKind.SYNTAX) -> int:
        assert self._cfg is not None
        return self._cfg.new_node(kind, syntax, self._owner).index

    def _connect(self, preds: Pending, target: int) -> None:
        assert self._cfg is not None
        for source, kind in preds:
            self._cfg.add_edge(source, target, kind)

    def _step(self, syntax: SyntaxNode, preds: Pending) -> Pending:
        """Create a node for ``syntax`` after ``preds`` and fall through."""
        index = self._node(syntax)
        self._connect(preds, index)
        return [(index, EdgeKind.NORMAL)]

    def _join(self, preds: Pending) -> Pending:
        if not preds:
            return []
        if len(preds) == 1 and preds[0][1] == EdgeKind.NORMAL:
            return preds
        index = self._node(None, CfgNodeKind.JOIN)
        self._connect(preds, index)
        return [(index, EdgeKind.NORMAL)]

    # ── Statements ───────────────────────────────────────────────────

    def _process_statement(self, stmt: SyntaxNode | None, preds: Pending, depth: int) -> Pending:
        if stmt is None:
            return preds
        nt = stmt.kind

        if nt in _BLOCK_KINDS:
            for child in stmt.get_list("statements"):
                preds = self._process_statement(child, preds, depth)
            return preds

        if nt == "IfStatement":
            return self._process_if(stmt, preds, depth)

        if nt in ("ForStatement", "WhileStatement"):
            return self._process_loop(stmt, preds, depth)

        if nt == "DoWhileStatement":
            return self._process_do_while(stmt, preds, depth)

        if nt == "TryStatement":
            return self._process_try(stmt, preds, depth)

        if nt == "Return":
            preds = self._expression(stmt.get("expression"), preds)
            out = self._step(stmt, preds)
            self._returns[-1].extend(out)
            return []

        if nt in ("RevertStatement", "Throw"):
            preds = self._expression(stmt.get("errorCall"), preds)
            out = self._step(stmt, preds)
            self._terminate(out)
            return []

        if nt == "Break":
            out = self._step(stmt, preds)
            if self._loops:
                self._loops[-1].breaks.extend(out)
                return []
            return out

        if nt == "Continue":
            out = self._step(stmt, preds)
            if self._loops:
                self._loops[-1].continues.extend(out)
                return []
            return out

        if nt == "PlaceholderStatement":
            out = self._step(stmt, preds)
            if depth + 1 < len(self._layers):
                return self._build_layer(depth + 1, out)
            return out

        if nt == "ExpressionStatement":
            expr = stmt.get("expression")
            preds = self._expression(expr, preds)
            out = self._step(stmt, preds)
            if _is_revert_call(expr):
                self._terminate(out)
                return []
            return out

        if nt == "VariableDeclarationStatement":
            preds = self._expression(stmt.get("initialValue"), preds)
            return self._step(stmt, preds)

        if nt == "EmitStatement":
            preds = self._expression(stmt.get("eventCall"), preds)
            return self._step(stmt, preds)

        # InlineAssembly and anything unmodelled: opaque leaf with fallthrough
        return self._step(stmt, preds)

    def _terminate(self, preds: Pending) -> None:
        assert self._cfg is not None
        self._connect(preds, self._cfg.exit.index)

    def _process_if(self, stmt: SyntaxNode, preds: Pending, depth: int) -> Pending:
        """Process an if/else statement."""
        preds = self._step(stmt, preds)
        cond_true, cond_false = self._condition(stmt.get("condition"), preds)

        true_end = self._process_statement(stmt.get("trueBody"), cond_true, depth)

        false_body = stmt.get("falseBody")
        if false_body is not None:
            false_end = self._process_statement(false_body, cond_false, depth)
        else:
            false_end = cond_false

        return self._join(true_end + false_end)

    def _process_loop(self, stmt: SyntaxNode, preds: Pending, depth: int) -> Pending:
        """Process for/while loops."""
        preds = self._step(stmt, preds)
        preds = self._process_statement(stmt.get("initializationExpression"), preds, depth)

        header = self._node(None, CfgNodeKind.JOIN)
        self._connect(preds, header)

        condition = stmt.get("condition")
        if condition is not None:
            body_preds, exit_preds = self._condition(condition, [(header, EdgeKind.NORMAL)])
        else:
            body_preds, exit_preds = [(header, EdgeKind.NORMAL)], []

        context = _LoopContext()
        self._loops.append(context)
        try:
            body_end = self._process_statement(stmt.get("body"), body_preds, depth)
        finally:
            self._loops.pop()

        latch = body_end + context.continues
        loop_expr = stmt.get("loopExpression")
        if loop_expr is not None and latch:
            latch = self._process_statement(loop_expr, latch, depth)
        for source, _ in latch:
            assert self._cfg is not None
            self._cfg.add_edge(source, header, EdgeKind.BACK)

        return exit_preds + context.breaks

    def _process_do_while(self, stmt: SyntaxNode, preds: Pending, depth: int) -> Pending:
        """Process do-while loops (body executes at least once)."""
        preds = self._step(stmt, preds)
        header = self._node(None, CfgNodeKind.JOIN)
        self._connect(preds, header)

        context = _LoopContext()
        self._loops.append(context)
        try:
            body_end = self._process_statement(stmt.get("body"), [(header, EdgeKind.NORMAL)], depth)
        finally:
            self._loops.pop()

        cond_preds = body_end + context.continues
        if not cond_preds:
            return context.breaks
        repeat, leave = self._condition(stmt.get("condition"), cond_preds)
        for source, _ in repeat:
            assert self._cfg is not None
            self._cfg.add_edge(source, header, EdgeKind.BACK)
        return leave + context.breaks

    def _process_try(self, stmt: SyntaxNode, preds: Pending, depth: int) -> Pending:
        """Process try/catch statements."""
        preds = self._step(stmt, preds)
        preds = self._expression(stmt.get("externalCall"), preds)

        ends: Pending = []
        for position, clause in enumerate(stmt.get_list("clauses")):
            if clause is None:
                continue
            edge = EdgeKind.NORMAL if position == 0 else EdgeKind.EXCEPTION
            clause_preds = self._step(clause, [(source, edge) for source, _ in preds])
            ends.extend(self._process_statement(clause.get("block"), clause_preds, depth))
        if not stmt.get_list("clauses"):
            ends = preds
        return self._join(ends)

    # ── Expressions ──────────────────────────────────────────────────

    def _condition(self, expr: SyntaxNode | None, preds: Pending) -> tuple[Pending, Pending]:
        """Evaluate a branch condition; return (true, false) pending edges."""
        if expr is None:
            return preds, []
        out = self._expression(expr, preds)
        return (
            [(source, EdgeKind.TRUE) for source, _ in out],
            [(source, EdgeKind.FALSE) for source, _ in out],
        )

    def _expression(self, expr: SyntaxNode | None, preds: Pending) -> Pending:
        """Evaluate ``expr`` in post-order."""
        if expr is None:
            return preds
        nt = expr.kind

        if nt == "BinaryOperation" and expr.text in ("&&", "||"):
            left_out = self._expression(expr.get("leftExpression"), preds)
            evaluate_right = EdgeKind.TRUE if expr.text == "&&" else EdgeKind.FALSE
            skip_right = EdgeKind.FALSE if expr.text == "&&" else EdgeKind.TRUE
            right_out = self._expression(
                expr.get("rightExpression"),
                [(source, evaluate_right) for source, _ in left_out],
            )
            return self._step(expr, right_out + [(source, skip_right) for source, _ in left_out])

        if nt == "Conditional":
            when_true, when_false = self._condition(expr.get("condition"), preds)
            true_out = self._expression(expr.get("trueExpression"), when_true)
            false_out = self._expression(expr.get("falseExpression"), when_false)
            return self._step(expr, true_out + false_out)

        for child in _operands(expr):
            preds = self._expression(child, preds)
        return self._step(expr, preds)


def _operands(expr: SyntaxNode) -> list[SyntaxNode]:
    """Sub-expressions evaluated before ``expr`` (type names excluded)."""
    nt = expr.kind
    if nt in ("Identifier", "Literal", "ElementaryTypeNameExpression", "NewExpression"):
        return []
    if nt == "FunctionCallOptions":
        operands = [expr.get("expression")]
        operands.extend(expr.get_list("options"))
        return [o for o in operands if o is not None]
    return [
        child for child in expr.children
        if child.kind not in _TYPE_NAME_KINDS
    ]


_TYPE_NAME_KINDS = frozenset({
    "ElementaryTypeName", "UserDefinedTypeName", "Mapping", "ArrayTypeName",
    "FunctionTypeName", "IdentifierPath", "ParameterList",
})


def _is_revert_call(expr: SyntaxNode | None) -> bool:
    if expr is None or expr.kind != "FunctionCall":
        return False
    callee = expr.get("expression")
    return callee is not None and callee.kind == "Identifier" and callee.text == "revert"


# ── Convenience ──────────────────────────────────────────────────────────────


def build_function_cfg(
    callable_def: CallableDef,
    modifier_resolver: ModifierResolver | None = None,
    splice_modifiers: bool = False,
) -> CFG:
    """Build a CFG for a single callable."""
    return CFGBuilder(modifier_resolver).build(callable_def, splice_modifiers)


def build_cfgs(callables: Iterable[CallableDef]) -> dict[CallableDef, CFG]:
    """Build unspliced CFGs for many callables, skipping ones that fail."""
    result: dict[CallableDef, CFG] = {}
    for callable_def in callables:
        try:
            result[callable_def] = build_function_cfg(callable_def)
        except Exception as e:
            logger.warning("CFG construction failed for %s: %s", callable_def.qualified_name, e)
    return result
