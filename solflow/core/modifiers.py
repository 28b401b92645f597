"""Modifier resolution, base-constructor specifiers and lock-guard detection."""

from __future__ import annotations

import logging

from solflow.core.ast_analyzer import (
    CallableDef,
    ContractDef,
    FunctionDef,
    ModifierDef,
    ModifierInvocation,
    Program,
    VariableScope,
)
from solflow.core.call_graph import CallResolver, callee_expression
from solflow.core.inheritance import InheritanceGraph
from solflow.core.syntax import SyntaxNode
from solflow.core.types import CallableKind

logger = logging.getLogger(__name__)


_CHECK_CALLS = frozenset({"require", "assert"})


class ModifierResolver:
    """Bind modifier invocations to the most-derived modifier definition.

    Instances are callable so they can be handed straight to ``CFGBuilder``
    as its ``modifier_resolver``.
    """

    def __init__(
        self,
        program: Program,
        inheritance: InheritanceGraph,
        calls: CallResolver | None = None,
    ) -> None:
        self.program = program
        self.inheritance = inheritance
        self.calls = calls
        self._lock_cache: dict[ModifierDef, bool] = {}

    def __call__(self, invocation: ModifierInvocation) -> ModifierDef | None:
        return self.resolve_modifier(invocation)

    # ── Modifiers ────────────────────────────────────────────────────

    def resolve_modifier(
        self,
        invocation: ModifierInvocation,
        context: ContractDef | None = None,
    ) -> ModifierDef | None:
        """Most-derived modifier named by ``invocation`` (``None`` for base constructors)."""
        if self.is_base_constructor_call(invocation):
            return None
        owner = context or self._invoking_contract(invocation)
        if owner is not None:
            for candidate in self.inheritance.override_candidates(
                owner, invocation.name, kind=CallableKind.MODIFIER,
            ):
                if isinstance(candidate, ModifierDef):
                    return candidate
        name_node = invocation.node.get("modifierName")
        decl = self.program.node_by_id(name_node.referenced_declaration) if name_node is not None else None
        if decl is not None:
            found = self.program.callable_for_node(decl)
            if isinstance(found, ModifierDef):
                return found
        logger.debug("Unresolved modifier %s", invocation.name)
        return None

    def modifiers_of(self, function: CallableDef) -> list[tuple[ModifierInvocation, ModifierDef]]:
        """Resolved modifiers of ``function`` in application order."""
        if not isinstance(function, FunctionDef):
            return []
        result = []
        for invocation in function.modifiers:
            modifier = self.resolve_modifier(invocation)
            if modifier is not None:
                result.append((invocation, modifier))
        return result

    def _invoking_contract(self, invocation: ModifierInvocation) -> ContractDef | None:
        return self.program.enclosing_contract(invocation.node)

    # ── Base constructors ────────────────────────────────────────────

    def is_base_constructor_call(self, invocation: ModifierInvocation) -> bool:
        name_node = invocation.node.get("modifierName")
        if name_node is not None:
            decl = self.program.node_by_id(name_node.referenced_declaration)
            if decl is not None:
                return decl.kind == "ContractDefinition"
        return self.program.contract(invocation.name) is not None

    def resolve_base_constructor(self, invocation: ModifierInvocation) -> FunctionDef | None:
        """Constructor of the base named by a ``Base(args)`` specifier."""
        if not self.is_base_constructor_call(invocation):
            return None
        base = self.program.contract(invocation.name)
        return base.constructor if base is not None else None

    def base_constructor_arguments(
        self, contract: ContractDef,
    ) -> list[tuple[FunctionDef, list[SyntaxNode]]]:
        """(base constructor, argument expressions) pairs given by ``contract``.

        Arguments come from ``is Base(args)`` specifiers and from base
        specifiers in the modifier list of ``contract``'s constructor.
        """
        result: list[tuple[FunctionDef, list[SyntaxNode]]] = []
        for spec in contract.bases:
            if not spec.arguments:
                continue
            base = self.program.contract(spec.name)
            if base is not None and base.constructor is not None:
                result.append((base.constructor, spec.arguments))
        constructor = contract.constructor
        if constructor is not None:
            for invocation in constructor.modifiers:
                target = self.resolve_base_constructor(invocation)
                if target is not None and invocation.arguments:
                    result.append((target, invocation.arguments))
        return result

    # ── Lock guards ──────────────────────────────────────────────────

    def is_lock_guard(self, modifier: ModifierDef) -> bool:
        """Checks a state flag before ``_`` and writes that flag before ``_``."""
        cached = self._lock_cache.get(modifier)
        if cached is None:
            cached = self._detect_lock(modifier)
            self._lock_cache[modifier] = cached
        return cached

    def is_lock_guarded(self, callable_def: CallableDef) -> bool:
        return any(self.is_lock_guard(m) for _, m in self.modifiers_of(callable_def))

    def _detect_lock(self, modifier: ModifierDef) -> bool:
        body = modifier.body
        if body is None or not modifier.has_placeholder:
            return False
        before: list[SyntaxNode] = []
        for stmt in body.get_list("statements"):
            if stmt is None:
                continue
            if stmt.kind == "PlaceholderStatement":
                break
            before.append(stmt)
        before = self._inline_internal_calls(before)

        checked: set[SyntaxNode] = set()
        for stmt in before:
            for condition in self._checked_conditions(stmt):
                checked.update(self._state_reads(condition))
            for var in self._state_writes(stmt):
                if var in checked:
                    return True
        return False

    def _inline_internal_calls(self, statements: list[SyntaxNode]) -> list[SyntaxNode]:
        """Replace ``_guardBefore();`` by the statements of the called function."""
        if self.calls is None:
            return statements
        result: list[SyntaxNode] = []
        for stmt in statements:
            expr = stmt.get("expression") if stmt.kind == "ExpressionStatement" else None
            if expr is not None and expr.kind == "FunctionCall":
                callees = [
                    e.callee for e in self.calls.resolve_call(expr)
                    if e.callee is not None and not e.is_external and e.callee.body is not None
                ]
                if len(callees) == 1:
                    result.extend(s for s in callees[0].body.get_list("statements") if s is not None)
                    continue
            result.append(stmt)
        return result

    def _checked_conditions(self, stmt: SyntaxNode) -> list[SyntaxNode]:
        if stmt.kind == "IfStatement":
            condition = stmt.get("condition")
            return [condition] if condition is not None else []
        expr = stmt.get("expression") if stmt.kind == "ExpressionStatement" else None
        if expr is not None and expr.kind == "FunctionCall":
            callee = callee_expression(expr)
            if callee is not None and callee.kind == "Identifier" and callee.text in _CHECK_CALLS:
                args = [a for a in expr.get_list("arguments") if a is not None]
                return args[:1]
        return []

    def _state_reads(self, expr: SyntaxNode) -> set[SyntaxNode]:
        result: set[SyntaxNode] = set()
        for node in expr.walk():
            if node.kind != "Identifier":
                continue
            decl = self.program.referenced_variable(node)
            if decl is not None and self.program.variable_scope(decl) == VariableScope.STATE:
                result.add(decl)
        return result

    def _state_writes(self, stmt: SyntaxNode) -> set[SyntaxNode]:
        result: set[SyntaxNode] = set()
        for node in stmt.walk():
            target = None
            if node.kind == "Assignment":
                target = node.get("leftHandSide")
            elif node.kind == "UnaryOperation" and node.text in ("++", "--"):
                target = node.get("subExpression")
            if target is None:
                continue
            decl = self.program.root_variable(target)
            if decl is not None and self.program.variable_scope(decl) == VariableScope.STATE:
                result.add(decl)
        return result
