"""SSA (Static Single Assignment) construction for Solidity locals.

Builds SSA form over a callable's node-level CFG:

  1. dominators (Cooper, Harvey & Kennedy iterative algorithm over RPO)
  2. dominance frontiers
  3. iterated phi placement per variable at the frontier of its writes
  4. renaming over the dominator tree (iterative DFS)
  5. trivial-phi elimination, so every surviving phi merges >= 2 distinct
     reaching definitions

Tracked variables are the callable's parameters, named return variables,
locals and try/catch clause parameters. State variables are storage and are
handled by the data-flow layer, not by SSA.

Only code reachable from ENTRY takes part; identifiers in dead code have no
SSA use (the CFG reports that code as dead).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from solflow.core.ast_analyzer import CallableDef, Program, VariableScope
from solflow.core.cfg import CFG, CfgNode, CfgNodeKind
from solflow.core.syntax import SyntaxNode

logger = logging.getLogger(__name__)


# ── Data Structures ──────────────────────────────────────────────────────────


class SsaDefKind(str, Enum):
    PARAMETER = "parameter"
    ASSIGNMENT = "assignment"
    DECLARATION = "declaration"
    PHI = "phi"


@dataclass(eq=False)
class SsaDefinition:
    """One definition of a source variable.

    Non-phi definitions have exactly one syntactic write site (``site``);
    a phi lives on the merge node (``cfg_node``) and has no site.
    """
    kind: SsaDefKind
    variable: SyntaxNode
    cfg_node: CfgNode = field(repr=False)
    site: SyntaxNode | None = field(default=None, repr=False)
    index: int = 0

    @property
    def variable_name(self) -> str:
        return self.variable.name

    @property
    def is_phi(self) -> bool:
        return self.kind == SsaDefKind.PHI

    def __repr__(self) -> str:
        return f"<SsaDef#{self.index} {self.kind.value} {self.variable.name}>"


@dataclass
class SsaForm:
    """SSA form of one callable."""
    callable: CallableDef
    cfg: CFG
    definitions: list[SsaDefinition] = field(default_factory=list)
    _use_def: dict[SyntaxNode, SsaDefinition] = field(default_factory=dict, repr=False)
    _def_uses: dict[SsaDefinition, list[SyntaxNode]] = field(default_factory=dict, repr=False)
    _phi_inputs: dict[SsaDefinition, list[SsaDefinition]] = field(default_factory=dict, repr=False)
    _by_site: dict[SyntaxNode, list[SsaDefinition]] = field(default_factory=dict, repr=False)
    _at_exit: dict[SyntaxNode, SsaDefinition] = field(default_factory=dict, repr=False)
    undefined_uses: list[SyntaxNode] = field(default_factory=list, repr=False)

    def definition_of(self, use: SyntaxNode) -> SsaDefinition | None:
        """The unique direct reaching definition of an identifier use."""
        return self._use_def.get(use)

    def uses_of(self, definition: SsaDefinition) -> list[SyntaxNode]:
        return list(self._def_uses.get(definition, []))

    @property
    def uses(self) -> list[SyntaxNode]:
        return list(self._use_def)

    def phi_inputs(self, phi: SsaDefinition) -> list[SsaDefinition]:
        return list(self._phi_inputs.get(phi, []))

    @property
    def phis(self) -> list[SsaDefinition]:
        return [d for d in self.definitions if d.is_phi]

    def definitions_at(self, site: SyntaxNode) -> list[SsaDefinition]:
        """Definitions written by a syntax node (one per written variable)."""
        return list(self._by_site.get(site, []))

    def definition_at(self, site: SyntaxNode, variable: SyntaxNode) -> SsaDefinition | None:
        return next((d for d in self._by_site.get(site, []) if d.variable is variable), None)

    def parameter_definition(self, variable: SyntaxNode) -> SsaDefinition | None:
        return next(
            (d for d in self.definitions
             if d.cfg_node.kind == CfgNodeKind.ENTRY and d.variable is variable),
            None,
        )

    def definition_at_exit(self, variable: SyntaxNode) -> SsaDefinition | None:
        """The definition of ``variable`` that reaches the EXIT node."""
        return self._at_exit.get(variable)

    def definitions_of_variable(self, variable: SyntaxNode) -> list[SsaDefinition]:
        return [d for d in self.definitions if d.variable is variable]


# ── Builder ──────────────────────────────────────────────────────────────────


class SSABuilder:
    """Construct ``SsaForm`` for a callable from its CFG."""

    def __init__(self, program: Program) -> None:
        self._program = program

    def build(self, cfg: CFG) -> SsaForm:
        form = SsaForm(callable=cfg.callable, cfg=cfg)
        live = cfg.reachable_nodes()
        if not live:
            return form

        rpo = self._reverse_postorder(cfg)
        idom = self._dominators(cfg, rpo)
        frontier = self._dominance_frontiers(cfg, rpo, idom)

        writes = self._collect_writes(cfg, rpo)
        variables = self._tracked_variables(cfg.callable, writes)

        phis = self._place_phis(form, cfg, variables, writes, frontier)
        self._rename(form, cfg, rpo, idom, variables, writes, phis)
        self._eliminate_trivial_phis(form)

        logger.debug(
            "SSA for %s: %d definitions, %d phis, %d uses",
            cfg.callable.qualified_name, len(form.definitions), len(form.phis), len(form._use_def),
        )
        return form

    # ── Dominance ────────────────────────────────────────────────────

    def _reverse_postorder(self, cfg: CFG) -> list[CfgNode]:
        order: list[CfgNode] = []
        visited: set[int] = {cfg.entry.index}
        stack: list[tuple[CfgNode, int]] = [(cfg.entry, 0)]
        while stack:
            node, child_pos = stack.pop()
            successors = cfg.successors(node)
            if child_pos < len(successors):
                stack.append((node, child_pos + 1))
                succ = successors[child_pos]
                if succ.index not in visited:
                    visited.add(succ.index)
                    stack.append((succ, 0))
            else:
                order.append(node)
        order.reverse()
        return order

    def _dominators(self, cfg: CFG, rpo: list[CfgNode]) -> dict[int, int]:
        number = {node.index: i for i, node in enumerate(rpo)}
        idom: dict[int, int] = {cfg.entry.index: cfg.entry.index}

        def intersect(a: int, b: int) -> int:
            while a != b:
                while number[a] > number[b]:
                    a = idom[a]
                while number[b] > number[a]:
                    b = idom[b]
            return a

        changed = True
        while changed:
            changed = False
            for node in rpo[1:]:
                preds = [p.index for p in cfg.predecessors(node) if p.index in idom]
                if not preds:
                    continue
                new_idom = preds[0]
                for p in preds[1:]:
                    new_idom = intersect(p, new_idom)
                if idom.get(node.index) != new_idom:
                    idom[node.index] = new_idom
                    changed = True
        return idom

    def _dominance_frontiers(
        self, cfg: CFG, rpo: list[CfgNode], idom: dict[int, int],
    ) -> dict[int, set[int]]:
        frontier: dict[int, set[int]] = {node.index: set() for node in rpo}
        for node in rpo:
            preds = [p.index for p in cfg.predecessors(node) if p.index in idom]
            if len(preds) < 2:
                continue
            for p in preds:
                runner = p
                while runner != idom[node.index]:
                    frontier[runner].add(node.index)
                    runner = idom[runner]
        return frontier

    # ── Writes ───────────────────────────────────────────────────────

    def _collect_writes(
        self, cfg: CFG, rpo: list[CfgNode],
    ) -> dict[int, list[tuple[SyntaxNode, SsaDefKind, SyntaxNode | None]]]:
        """Per live CFG node: (variable, kind, site) for every local it writes."""
        writes: dict[int, list[tuple[SyntaxNode, SsaDefKind, SyntaxNode | None]]] = {}
        callable_def = cfg.callable

        entry_writes = [(p.node, SsaDefKind.PARAMETER, p.node) for p in callable_def.parameters]
        entry_writes += [(p.node, SsaDefKind.DECLARATION, p.node) for p in callable_def.returns]
        if entry_writes:
            writes[cfg.entry.index] = entry_writes

        for node in rpo:
            syntax = node.syntax
            if syntax is None:
                continue
            found = [(var, kind, syntax) for var, kind in self._written_locals(syntax)]
            if found:
                writes[node.index] = found
        return writes

    def _written_locals(self, syntax: SyntaxNode) -> list[tuple[SyntaxNode, SsaDefKind]]:
        nt = syntax.kind
        if nt == "VariableDeclarationStatement":
            return [(d, SsaDefKind.DECLARATION) for d in syntax.get_list("declarations") if d is not None]
        if nt == "TryCatchClause":
            params = syntax.get("parameters")
            if params is None:
                return []
            return [(d, SsaDefKind.DECLARATION) for d in params.get_list("parameters") if d is not None]
        if nt == "Assignment":
            return [(v, SsaDefKind.ASSIGNMENT) for v in self._assigned_locals(syntax.get("leftHandSide"))]
        if nt == "UnaryOperation" and syntax.text in ("++", "--", "delete"):
            target = self._local_of(syntax.get("subExpression"))
            return [(target, SsaDefKind.ASSIGNMENT)] if target is not None else []
        return []

    def _assigned_locals(self, lhs: SyntaxNode | None) -> list[SyntaxNode]:
        if lhs is None:
            return []
        if lhs.kind == "TupleExpression":
            result: list[SyntaxNode] = []
            for component in lhs.get_list("components"):
                result.extend(self._assigned_locals(component))
            return result
        target = self._local_of(lhs)
        return [target] if target is not None else []

    def _local_of(self, expr: SyntaxNode | None) -> SyntaxNode | None:
        if expr is None or expr.kind != "Identifier":
            return None
        decl = self._program.referenced_variable(expr)
        if decl is None:
            return None
        scope = self._program.variable_scope(decl)
        if scope in (VariableScope.LOCAL, VariableScope.PARAMETER, VariableScope.RETURN):
            return decl
        return None

    def _tracked_variables(self, callable_def: CallableDef, writes: dict) -> list[SyntaxNode]:
        seen: dict[SyntaxNode, None] = {}
        for p in [*callable_def.parameters, *callable_def.returns]:
            seen.setdefault(p.node, None)
        for entries in writes.values():
            for var, _, _ in entries:
                seen.setdefault(var, None)
        return list(seen)

    def is_use(self, identifier: SyntaxNode) -> bool:
        """Identifier in a read position (plain `=` targets are not reads)."""
        parent = identifier.parent
        if parent is None:
            return True
        if parent.kind == "Assignment" and identifier.role == "leftHandSide":
            return parent.text != "="
        if parent.kind == "UnaryOperation" and parent.text == "delete":
            return False
        if parent.kind == "TupleExpression" and _is_assignment_target(parent):
            return False
        return True

    # ── Phi placement ────────────────────────────────────────────────

    def _place_phis(
        self,
        form: SsaForm,
        cfg: CFG,
        variables: list[SyntaxNode],
        writes: dict,
        frontier: dict[int, set[int]],
    ) -> dict[int, dict[SyntaxNode, SsaDefinition]]:
        phis: dict[int, dict[SyntaxNode, SsaDefinition]] = {}
        for var in variables:
            def_sites = {i for i, entries in writes.items() if any(v is var for v, _, _ in entries)}
            worklist = list(def_sites)
            placed: set[int] = set()
            while worklist:
                site = worklist.pop()
                for join in frontier.get(site, ()):
                    if join in placed:
                        continue
                    placed.add(join)
                    phi = self._new_definition(form, SsaDefKind.PHI, var, cfg.nodes[join], None)
                    phis.setdefault(join, {})[var] = phi
                    form._phi_inputs[phi] = []
                    if join not in def_sites:
                        worklist.append(join)
        return phis

    def _new_definition(
        self,
        form: SsaForm,
        kind: SsaDefKind,
        variable: SyntaxNode,
        cfg_node: CfgNode,
        site: SyntaxNode | None,
    ) -> SsaDefinition:
        definition = SsaDefinition(
            kind=kind, variable=variable, cfg_node=cfg_node, site=site, index=len(form.definitions),
        )
        form.definitions.append(definition)
        if site is not None and kind != SsaDefKind.PARAMETER:
            form._by_site.setdefault(site, []).append(definition)
        return definition

    # ── Renaming ─────────────────────────────────────────────────────

    def _rename(
        self,
        form: SsaForm,
        cfg: CFG,
        rpo: list[CfgNode],
        idom: dict[int, int],
        variables: list[SyntaxNode],
        writes: dict,
        phis: dict[int, dict[SyntaxNode, SsaDefinition]],
    ) -> None:
        tracked = set(variables)
        children: dict[int, list[int]] = {}
        for node in rpo:
            parent = idom.get(node.index)
            if parent is not None and parent != node.index:
                children.setdefault(parent, []).append(node.index)

        stacks: dict[SyntaxNode, list[SsaDefinition]] = {v: [] for v in variables}
        work: list[tuple[int, bool]] = [(cfg.entry.index, False)]
        pushed: dict[int, list[SyntaxNode]] = {}

        while work:
            index, leaving = work.pop()
            if leaving:
                for var in pushed.pop(index, []):
                    stacks[var].pop()
                continue

            node = cfg.nodes[index]
            node_pushes: list[SyntaxNode] = []

            for var, phi in phis.get(index, {}).items():
                stacks[var].append(phi)
                node_pushes.append(var)

            syntax = node.syntax
            if syntax is not None and syntax.kind == "Identifier":
                decl = self._local_of(syntax)
                if decl is not None and decl in tracked and self.is_use(syntax):
                    stack = stacks[decl]
                    if stack:
                        form._use_def[syntax] = stack[-1]
                    else:
                        form.undefined_uses.append(syntax)

            for var, kind, site in writes.get(index, []):
                definition = self._new_definition(form, kind, var, node, site)
                stacks[var].append(definition)
                node_pushes.append(var)

            if node.kind == CfgNodeKind.EXIT:
                for var, stack in stacks.items():
                    if stack:
                        form._at_exit[var] = stack[-1]

            for succ in cfg.successors(node):
                for var, phi in phis.get(succ.index, {}).items():
                    stack = stacks[var]
                    if stack:
                        form._phi_inputs[phi].append(stack[-1])

            pushed[index] = node_pushes
            work.append((index, True))
            for child in reversed(children.get(index, [])):
                work.append((child, False))

    # ── Trivial phi elimination ──────────────────────────────────────

    def _eliminate_trivial_phis(self, form: SsaForm) -> None:
        replacement: dict[SsaDefinition, SsaDefinition | None] = {}

        def resolve(d: SsaDefinition | None) -> SsaDefinition | None:
            while d is not None and d in replacement:
                d = replacement[d]
            return d

        changed = True
        while changed:
            changed = False
            for phi in list(form._phi_inputs):
                if phi in replacement:
                    continue
                distinct: list[SsaDefinition] = []
                for d in form._phi_inputs[phi]:
                    r = resolve(d)
                    if r is None or r is phi or r in distinct:
                        continue
                    distinct.append(r)
                if len(distinct) <= 1:
                    replacement[phi] = distinct[0] if distinct else None
                    changed = True

        for phi in replacement:
            form._phi_inputs.pop(phi, None)
        for phi, inputs in form._phi_inputs.items():
            resolved: list[SsaDefinition] = []
            for d in inputs:
                r = resolve(d)
                if r is not None and r is not phi and r not in resolved:
                    resolved.append(r)
            form._phi_inputs[phi] = resolved

        for use, d in list(form._use_def.items()):
            r = resolve(d)
            if r is None:
                del form._use_def[use]
                form.undefined_uses.append(use)
            else:
                form._use_def[use] = r
        for var, d in list(form._at_exit.items()):
            r = resolve(d)
            if r is None:
                del form._at_exit[var]
            else:
                form._at_exit[var] = r

        form.definitions = [d for d in form.definitions if d not in replacement]
        for i, d in enumerate(form.definitions):
            d.index = i
        for use, d in form._use_def.items():
            form._def_uses.setdefault(d, []).append(use)


def _is_assignment_target(tuple_node: SyntaxNode) -> bool:
    """True for a tuple that is (nested in) the left-hand side of a plain `=`."""
    node = tuple_node
    while node.parent is not None and node.parent.kind == "TupleExpression":
        node = node.parent
    parent = node.parent
    return (
        parent is not None
        and parent.kind == "Assignment"
        and node.role == "leftHandSide"
        and parent.text == "="
    )


# ── Convenience ──────────────────────────────────────────────────────────────


def build_ssa(cfg: CFG, program: Program) -> SsaForm:
    """Build SSA form for the callable of ``cfg``."""
    return SSABuilder(program).build(cfg)
