"""Data-flow node model and the local / jump flow-step relations.

A ``FlowNode`` is one of a closed set of kinds:

  EXPRESSION        the value of an expression
  PARAMETER         a parameter on callable entry
  SSA_DEF           an SSA definition of a local / parameter / named return
  RETURN            the i-th value returned by a callable
  CALL_RESULT       the i-th value produced by a call site
  ARGUMENT          the i-th argument passed at a call site (negative
                    indices: receiver, ``value:`` and ``gas:`` options)
  POST_UPDATE       a local container after an element / member was written
  STATE_VAR_READ    a read of a state variable
  STATE_VAR_WRITE   a write into a state variable

Local steps stay inside one callable; jump steps cross callables (arguments
into parameters, returns into call results) or storage (state writes into
state reads). Both are pure functions of the immutable program and are
memoized per graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator

from solflow.core.ast_analyzer import (
    CallableDef,
    FunctionDef,
    Parameter,
    Program,
    VariableScope,
    expression_text,
)
from solflow.core.call_graph import CallKind, CallResolver, call_arguments, callee_expression
from solflow.core.modifiers import ModifierResolver
from solflow.core.ssa import SsaDefKind, SsaDefinition, SsaForm
from solflow.core.syntax import SyntaxNode
from solflow.core.types import Location

if TYPE_CHECKING:
    from solflow.core.cfg import CFG
    from solflow.core.inheritance import InheritanceGraph

logger = logging.getLogger(__name__)


# ── Flow nodes ───────────────────────────────────────────────────────────────


class FlowNodeKind(str, Enum):
    EXPRESSION = "expression"
    PARAMETER = "parameter"
    SSA_DEF = "ssa_def"
    RETURN = "return"
    CALL_RESULT = "call_result"
    ARGUMENT = "argument"
    POST_UPDATE = "post_update"
    STATE_VAR_READ = "state_var_read"
    STATE_VAR_WRITE = "state_var_write"


RECEIVER = -1
VALUE = -2
GAS = -3

_ARGUMENT_NAMES = {RECEIVER: "receiver", VALUE: "value", GAS: "gas"}


@dataclass(frozen=True)
class FlowNode:
    """A data-flow graph node. Equality is structural (kind plus payload).

    Payload per kind:
      EXPRESSION        syntax = the expression
      PARAMETER         callable, position, declaration = parameter decl
      SSA_DEF           definition (syntax = its write site)
      RETURN            callable, position
      CALL_RESULT       syntax = call site, position
      ARGUMENT          syntax = call site, position
      POST_UPDATE       syntax = updated variable expression, site = write
      STATE_VAR_READ    syntax = reading identifier, declaration
      STATE_VAR_WRITE   syntax = write site, declaration
    """

    kind: FlowNodeKind
    syntax: SyntaxNode | None = None
    position: int = 0
    declaration: SyntaxNode | None = None
    definition: SsaDefinition | None = None
    site: SyntaxNode | None = None
    callable: CallableDef | None = field(default=None, compare=False, repr=False)
    owner: CallableDef | None = field(default=None, compare=False, repr=False)

    # ── Constructors ─────────────────────────────────────────────────

    @classmethod
    def expression(cls, expr: SyntaxNode, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.EXPRESSION, syntax=expr, owner=owner)

    @classmethod
    def parameter(cls, callable_def: CallableDef, position: int) -> FlowNode:
        decl = callable_def.parameters[position].node if position < len(callable_def.parameters) else None
        return cls(
            FlowNodeKind.PARAMETER, position=position, declaration=decl,
            callable=callable_def, owner=callable_def,
        )

    @classmethod
    def ssa_definition(cls, definition: SsaDefinition) -> FlowNode:
        return cls(
            FlowNodeKind.SSA_DEF, syntax=definition.site, definition=definition,
            owner=definition.cfg_node.callable,
        )

    @classmethod
    def return_value(cls, callable_def: CallableDef, position: int = 0) -> FlowNode:
        return cls(
            FlowNodeKind.RETURN, position=position, declaration=callable_def.node,
            callable=callable_def, owner=callable_def,
        )

    @classmethod
    def call_result(cls, call: SyntaxNode, position: int = 0, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.CALL_RESULT, syntax=call, position=position, owner=owner)

    @classmethod
    def argument(cls, call: SyntaxNode, index: int, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.ARGUMENT, syntax=call, position=index, owner=owner)

    @classmethod
    def post_update(cls, expr: SyntaxNode, site: SyntaxNode, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.POST_UPDATE, syntax=expr, site=site, owner=owner)

    @classmethod
    def state_read(cls, expr: SyntaxNode, declaration: SyntaxNode, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.STATE_VAR_READ, syntax=expr, declaration=declaration, owner=owner)

    @classmethod
    def state_write(cls, site: SyntaxNode, declaration: SyntaxNode, owner: CallableDef | None = None) -> FlowNode:
        return cls(FlowNodeKind.STATE_VAR_WRITE, syntax=site, declaration=declaration, owner=owner)

    # ── Accessors ────────────────────────────────────────────────────

    def as_expression(self) -> SyntaxNode | None:
        return self.syntax if self.kind == FlowNodeKind.EXPRESSION else None

    def as_parameter(self) -> Parameter | None:
        if self.kind != FlowNodeKind.PARAMETER or self.callable is None:
            return None
        params = self.callable.parameters
        return params[self.position] if self.position < len(params) else None

    def as_ssa_definition(self) -> SsaDefinition | None:
        return self.definition if self.kind == FlowNodeKind.SSA_DEF else None

    def enclosing_callable(self) -> CallableDef | None:
        return self.owner or self.callable

    @property
    def call(self) -> SyntaxNode | None:
        """The call site of ARGUMENT / CALL_RESULT nodes."""
        if self.kind in (FlowNodeKind.ARGUMENT, FlowNodeKind.CALL_RESULT):
            return self.syntax
        return None

    @property
    def location(self) -> Location:
        if self.syntax is not None:
            return self.syntax.location
        if self.declaration is not None:
            return self.declaration.location
        if self.definition is not None:
            return self.definition.variable.location
        return Location()

    def display_string(self) -> str:
        kind = self.kind
        if kind == FlowNodeKind.EXPRESSION:
            return expression_text(self.syntax)
        if kind == FlowNodeKind.PARAMETER:
            name = self.declaration.name if self.declaration is not None else str(self.position)
            return f"parameter {name}"
        if kind == FlowNodeKind.SSA_DEF and self.definition is not None:
            return f"{self.definition.variable_name}#{self.definition.index} ({self.definition.kind.value})"
        if kind == FlowNodeKind.RETURN:
            owner = self.callable.qualified_name if self.callable else "?"
            return f"return[{self.position}] of {owner}"
        if kind == FlowNodeKind.CALL_RESULT:
            return f"result[{self.position}] of {expression_text(self.syntax)}"
        if kind == FlowNodeKind.ARGUMENT:
            label = _ARGUMENT_NAMES.get(self.position, str(self.position))
            return f"argument[{label}] of {expression_text(self.syntax)}"
        if kind == FlowNodeKind.POST_UPDATE:
            return f"{expression_text(self.syntax)} [post-update]"
        if kind == FlowNodeKind.STATE_VAR_READ:
            name = self.declaration.name if self.declaration is not None else "?"
            return f"read of state {name}"
        if kind == FlowNodeKind.STATE_VAR_WRITE:
            name = self.declaration.name if self.declaration is not None else "?"
            return f"write of state {name}"
        return kind.value

    def __repr__(self) -> str:
        return f"<FlowNode {self.kind.value}: {self.display_string()}>"


# ── Operator classification ──────────────────────────────────────────────────

# Operand → result propagation. Comparison and boolean logic do not carry the
# operand's value into the result.
PROPAGATING_BINARY_OPERATORS = frozenset({
    "+", "-", "*", "/", "%", "**", "<<", ">>", "&", "|", "^",
})
NON_PROPAGATING_BINARY_OPERATORS = frozenset({
    "==", "!=", "<", "<=", ">", ">=", "&&", "||",
})
PROPAGATING_UNARY_OPERATORS = frozenset({"-", "~", "++", "--"})
NON_PROPAGATING_UNARY_OPERATORS = frozenset({"!", "delete"})


def operator_propagates(node: SyntaxNode) -> bool:
    """Whether an operand of ``node`` flows into its result."""
    if node.kind == "BinaryOperation":
        return node.text in PROPAGATING_BINARY_OPERATORS
    if node.kind == "UnaryOperation":
        return node.text in PROPAGATING_UNARY_OPERATORS
    return False


EXPRESSION_KINDS = frozenset({
    "Identifier", "Literal", "MemberAccess", "IndexAccess", "IndexRangeAccess",
    "FunctionCall", "BinaryOperation", "UnaryOperation", "Assignment",
    "Conditional", "TupleExpression", "NewExpression", "ElementaryTypeNameExpression",
})

_PATH_KINDS = frozenset({"IndexAccess", "IndexRangeAccess", "MemberAccess"})

_VALUE_FLOW_CALL_KINDS = frozenset({CallKind.TYPE_CONVERSION, CallKind.STRUCT_CONSTRUCTOR})

_ADDRESS_MEMBERS = frozenset({"balance", "code", "codehash"})


# ── Data-flow graph ──────────────────────────────────────────────────────────


class DataFlowGraph:
    """Local and jump flow steps over a program.

    ``ssa_for`` and ``cfg_for`` supply per-callable artifacts (normally the
    engine's cached builders). ``spliced_cfg_for`` gives the CFG with
    modifier bodies wrapped around the function body and is used wherever
    statement order matters; it defaults to ``cfg_for``.
    ``storage_aliasing`` is ``"container"`` or ``"literal-index"``.
    """

    def __init__(
        self,
        program: Program,
        inheritance: InheritanceGraph,
        calls: CallResolver,
        modifiers: ModifierResolver,
        ssa_for: Callable[[CallableDef], SsaForm | None],
        cfg_for: Callable[[CallableDef], CFG | None],
        storage_aliasing: str = "container",
        spliced_cfg_for: Callable[[CallableDef], CFG | None] | None = None,
    ) -> None:
        self.program = program
        self.inheritance = inheritance
        self.calls = calls
        self.modifiers = modifiers
        self.ssa_for = ssa_for
        self.cfg_for = cfg_for
        self.spliced_cfg_for = spliced_cfg_for or cfg_for
        self.storage_aliasing = storage_aliasing
        self._local_cache: dict[FlowNode, tuple[FlowNode, ...]] = {}
        self._jump_cache: dict[FlowNode, tuple[FlowNode, ...]] = {}
        self._phi_users: dict[SsaDefinition, list[SsaDefinition]] | None = None
        self._state_reads: dict[SyntaxNode, list[SyntaxNode]] | None = None
        self._callers: dict[CallableDef, list[tuple[SyntaxNode, int]]] | None = None
        self._nodes: list[FlowNode] | None = None

    # ── Node factories (owner filled in) ─────────────────────────────

    def owner_of(self, syntax: SyntaxNode | None) -> CallableDef | None:
        return self.program.enclosing_callable(syntax) if syntax is not None else None

    def expression_node(self, expr: SyntaxNode) -> FlowNode:
        return FlowNode.expression(expr, owner=self.owner_of(expr))

    def argument_node(self, call: SyntaxNode, index: int) -> FlowNode:
        return FlowNode.argument(call, index, owner=self.owner_of(call))

    def call_result_node(self, call: SyntaxNode, position: int = 0) -> FlowNode:
        return FlowNode.call_result(call, position, owner=self.owner_of(call))

    # ── Classification helpers ───────────────────────────────────────

    def is_state_variable(self, decl: SyntaxNode | None) -> bool:
        return decl is not None and self.program.variable_scope(decl) == VariableScope.STATE

    def is_local_variable(self, decl: SyntaxNode | None) -> bool:
        return decl is not None and self.program.variable_scope(decl) in (
            VariableScope.LOCAL, VariableScope.PARAMETER, VariableScope.RETURN,
        )

    def is_write_root(self, identifier: SyntaxNode) -> bool:
        """True when ``identifier`` is only written (target of a plain ``=`` or ``delete``)."""
        node = identifier
        while node.parent is not None and node.parent.kind in _PATH_KINDS and node.role in (
            "baseExpression", "expression",
        ):
            node = node.parent
        while node.parent is not None and node.parent.kind == "TupleExpression":
            node = node.parent
        parent = node.parent
        if parent is None:
            return False
        if parent.kind == "Assignment" and node.role == "leftHandSide":
            return parent.text == "="
        return parent.kind == "UnaryOperation" and parent.text == "delete"

    def call_site_of_callee(self, expr: SyntaxNode) -> SyntaxNode | None:
        """The FunctionCall whose callee expression is ``expr``."""
        node = expr
        while node.parent is not None and node.parent.kind == "FunctionCallOptions" and node.role == "expression":
            node = node.parent
        parent = node.parent
        if parent is not None and parent.kind == "FunctionCall" and node.role == "expression":
            return parent
        return None

    def result_arity(self, call: SyntaxNode) -> int:
        container = self._destructuring_container(call)
        if container is not None:
            return len(self._destructuring_slots(container))
        callees = self.calls.callees(call) if call.kind == "FunctionCall" else []
        if callees:
            return max(1, max(len(c.returns) for c in callees))
        return 1

    # ── Local steps ──────────────────────────────────────────────────

    def local_flow_step(self, source: FlowNode, target: FlowNode) -> bool:
        return target in self.local_successors(source)

    def local_successors(self, node: FlowNode) -> tuple[FlowNode, ...]:
        cached = self._local_cache.get(node)
        if cached is None:
            try:
                cached = tuple(_dedupe(self._local(node)))
            except Exception as e:
                logger.warning("Local flow step failed at %r: %s", node, e)
                cached = ()
            self._local_cache[node] = cached
        return cached

    def _local(self, node: FlowNode) -> list[FlowNode]:
        kind = node.kind
        if kind == FlowNodeKind.EXPRESSION and node.syntax is not None:
            return self._expression_flows(node.syntax)
        if kind == FlowNodeKind.PARAMETER and node.callable is not None and node.declaration is not None:
            form = self.ssa_for(node.callable)
            definition = form.parameter_definition(node.declaration) if form else None
            return [FlowNode.ssa_definition(definition)] if definition is not None else []
        if kind == FlowNodeKind.SSA_DEF and node.definition is not None:
            return self._definition_flows(node.definition)
        if kind == FlowNodeKind.CALL_RESULT and node.syntax is not None:
            return self._call_result_flows(node.syntax, node.position)
        if kind == FlowNodeKind.POST_UPDATE and node.syntax is not None and node.site is not None:
            return self._post_update_flows(node.syntax, node.site)
        if kind == FlowNodeKind.STATE_VAR_READ and node.syntax is not None:
            return [self.expression_node(node.syntax)]
        return []

    def _expression_flows(self, expr: SyntaxNode) -> list[FlowNode]:
        """Where the value of ``expr`` goes inside its callable."""
        parent = expr.parent
        if parent is None:
            return []
        role = expr.role
        pk = parent.kind

        if pk == "Assignment":
            if role == "rightHandSide" and parent.text == "=":
                lhs = parent.get("leftHandSide")
                flows = [self.expression_node(parent)]
                if lhs is not None and lhs.kind != "TupleExpression":
                    flows += self.assignment_targets(lhs, parent)
                return flows
            return []

        if pk == "VariableDeclarationStatement" and role == "initialValue":
            declarations = parent.get_list("declarations")
            if len(declarations) == 1 and declarations[0] is not None:
                return self._declaration_target(parent, declarations[0])
            return []

        if pk == "VariableDeclaration" and role == "value":
            if self.is_state_variable(parent):
                return [FlowNode.state_write(parent, parent)]
            return []

        if pk == "TupleExpression":
            components = parent.get_list("components")
            if len(components) == 1 or parent.attr("isInlineArray", False):
                return [self.expression_node(parent)]
            container = self._destructuring_container(parent)
            if container is not None:
                return self._destructured_target(container, expr.role_index)
            if parent.parent is not None and parent.parent.kind == "Return":
                owner = self.owner_of(parent)
                return [FlowNode.return_value(owner, expr.role_index)] if owner is not None else []
            return [self.expression_node(parent)]

        if pk == "Conditional":
            if role in ("trueExpression", "falseExpression"):
                return [self.expression_node(parent)]
            return []

        if pk in ("IndexAccess", "IndexRangeAccess"):
            if role == "baseExpression":
                return [self.expression_node(parent)]
            return []

        if pk == "MemberAccess":
            call = self.call_site_of_callee(parent)
            if call is not None:
                if self.calls.call_kind(call) in (CallKind.FUNCTION, CallKind.LOW_LEVEL, CallKind.BUILTIN):
                    return [self.argument_node(call, RECEIVER)]
                return []
            if parent.text == "length" or parent.text in _ADDRESS_MEMBERS:
                return []
            return [self.expression_node(parent)]

        if pk == "FunctionCall" and role == "arguments":
            if self.calls.call_kind(parent) in _VALUE_FLOW_CALL_KINDS:
                return [self.expression_node(parent)]
            return [self.argument_node(parent, expr.role_index)]

        if pk == "FunctionCallOptions" and role == "options":
            call = self.call_site_of_callee(parent)
            names = parent.attr("names", [])
            name = names[expr.role_index] if 0 <= expr.role_index < len(names) else ""
            if call is not None and name in ("value", "gas"):
                return [self.argument_node(call, VALUE if name == "value" else GAS)]
            return []

        if pk == "ModifierInvocation" and role == "arguments":
            return [self.argument_node(parent, expr.role_index)]

        if pk == "InheritanceSpecifier" and role == "arguments":
            return [self.argument_node(parent, expr.role_index)]

        if pk in ("BinaryOperation", "UnaryOperation"):
            if operator_propagates(parent):
                return [self.expression_node(parent)]
            return []

        if pk == "Return" and role == "expression":
            owner = self.owner_of(parent)
            if owner is None:
                return []
            if expr.kind == "FunctionCall" and len(owner.returns) > 1:
                return []
            return [FlowNode.return_value(owner, 0)]

        return []

    def assignment_targets(self, lhs: SyntaxNode, site: SyntaxNode) -> list[FlowNode]:
        """Flow nodes receiving a value assigned to ``lhs`` at ``site``."""
        if lhs.kind == "TupleExpression" and len(lhs.get_list("components")) == 1:
            inner = lhs.get_list("components")[0]
            return self.assignment_targets(inner, site) if inner is not None else []
        root_expr = _root_expression(lhs)
        if root_expr is None:
            return []
        decl = self.program.referenced_variable(root_expr)
        if decl is None:
            return []
        owner = self.owner_of(site)
        if self.is_state_variable(decl):
            return [FlowNode.state_write(site, decl, owner=owner)]
        if not self.is_local_variable(decl):
            return []
        if root_expr is lhs:
            form = self.ssa_for(owner) if owner is not None else None
            definition = form.definition_at(site, decl) if form is not None else None
            return [FlowNode.ssa_definition(definition)] if definition is not None else []
        return [FlowNode.post_update(root_expr, site, owner=owner)]

    def _declaration_target(self, stmt: SyntaxNode, decl: SyntaxNode) -> list[FlowNode]:
        owner = self.owner_of(stmt)
        form = self.ssa_for(owner) if owner is not None else None
        definition = form.definition_at(stmt, decl) if form is not None else None
        return [FlowNode.ssa_definition(definition)] if definition is not None else []

    # ── Destructuring ────────────────────────────────────────────────

    def _destructuring_container(self, value: SyntaxNode) -> SyntaxNode | None:
        """The multi-target assignment/declaration/try that ``value`` feeds."""
        parent = value.parent
        if parent is None:
            return None
        if parent.kind == "VariableDeclarationStatement" and value.role == "initialValue":
            return parent if len(parent.get_list("declarations")) > 1 else None
        if parent.kind == "Assignment" and value.role == "rightHandSide" and parent.text == "=":
            lhs = parent.get("leftHandSide")
            if lhs is not None and lhs.kind == "TupleExpression" and len(lhs.get_list("components")) > 1:
                return parent
            return None
        if parent.kind == "TryStatement" and value.role == "externalCall":
            return parent
        return None

    def _destructuring_slots(self, container: SyntaxNode) -> list[SyntaxNode | None]:
        if container.kind == "VariableDeclarationStatement":
            return container.get_list("declarations")
        if container.kind == "Assignment":
            lhs = container.get("leftHandSide")
            return lhs.get_list("components") if lhs is not None else []
        if container.kind == "TryStatement":
            clauses = [c for c in container.get_list("clauses") if c is not None]
            params = clauses[0].get("parameters") if clauses else None
            return params.get_list("parameters") if params is not None else []
        return []

    def _destructured_target(self, container: SyntaxNode, position: int) -> list[FlowNode]:
        slots = self._destructuring_slots(container)
        if not 0 <= position < len(slots) or slots[position] is None:
            return []
        slot = slots[position]
        if container.kind == "VariableDeclarationStatement":
            return self._declaration_target(container, slot)
        if container.kind == "Assignment":
            return self.assignment_targets(slot, container)
        clause = next(c for c in container.get_list("clauses") if c is not None)
        return self._declaration_target(clause, slot)

    # ── SSA / call results / post-updates ────────────────────────────

    def _definition_flows(self, definition: SsaDefinition) -> list[FlowNode]:
        owner = definition.cfg_node.callable
        form = self.ssa_for(owner) if owner is not None else None
        if form is None:
            return []
        flows = [self.expression_node(use) for use in form.uses_of(definition)]
        flows += [FlowNode.ssa_definition(phi) for phi in self._phis_using(definition, form)]
        param = self.program.parameter_for(definition.variable)
        if param is not None and param.is_return and form.definition_at_exit(definition.variable) is definition:
            flows.append(FlowNode.return_value(owner, param.position))
        if definition.kind == SsaDefKind.PARAMETER and isinstance(owner, FunctionDef):
            flows += [self.expression_node(use) for use in self._modifier_argument_uses(owner, definition.variable)]
        return flows

    def _modifier_argument_uses(self, function: FunctionDef, variable: SyntaxNode) -> list[SyntaxNode]:
        """Reads of ``variable`` in ``function``'s modifier and base-constructor arguments.

        These arguments are evaluated before the body, so only the entry
        definition of a parameter reaches them.
        """
        uses: list[SyntaxNode] = []
        for invocation in function.modifiers:
            for argument in invocation.arguments:
                uses.extend(
                    n for n in argument.walk()
                    if n.kind == "Identifier" and self.program.referenced_variable(n) is variable
                )
        return uses

    def _phis_using(self, definition: SsaDefinition, form: SsaForm) -> list[SsaDefinition]:
        if self._phi_users is None:
            self._phi_users = {}
        users = self._phi_users.get(definition)
        if users is None:
            for phi in form.phis:
                for d in form.phi_inputs(phi):
                    self._phi_users.setdefault(d, []).append(phi)
            for d in form.definitions:
                self._phi_users.setdefault(d, [])
            users = self._phi_users.get(definition, [])
        return users

    def _call_result_flows(self, call: SyntaxNode, position: int) -> list[FlowNode]:
        container = self._destructuring_container(call)
        if container is not None:
            return self._destructured_target(container, position)
        parent = call.parent
        if parent is not None and parent.kind == "Return":
            owner = self.owner_of(parent)
            if owner is not None and len(owner.returns) > 1:
                return [FlowNode.return_value(owner, position)]
        if position == 0:
            return [self.expression_node(call)]
        return []

    def _post_update_flows(self, expr: SyntaxNode, site: SyntaxNode) -> list[FlowNode]:
        """Later uses of the same definition see the updated container."""
        owner = self.owner_of(expr)
        form = self.ssa_for(owner) if owner is not None else None
        if form is None:
            return []
        definition = form.definition_of(expr)
        if definition is None:
            return []
        cfg = form.cfg
        write = cfg.node_for(site)
        written_index = _literal_index(expr)
        flows: list[FlowNode] = []
        for use in form.uses_of(definition):
            if use is expr:
                continue
            use_node = cfg.node_for(use)
            if write is None or use_node is None or not cfg.strictly_reaches(write, use_node):
                continue
            if self._literal_indices_differ(written_index, _literal_index(use)):
                continue
            flows.append(self.expression_node(use))
        return flows

    def _literal_indices_differ(self, a: str | None, b: str | None) -> bool:
        return self.storage_aliasing == "literal-index" and a is not None and b is not None and a != b

    # ── Jump steps ───────────────────────────────────────────────────

    def jump_step(self, source: FlowNode, target: FlowNode) -> bool:
        return target in self.jump_successors(source)

    def jump_successors(self, node: FlowNode) -> tuple[FlowNode, ...]:
        cached = self._jump_cache.get(node)
        if cached is None:
            try:
                cached = tuple(_dedupe(self._jump(node)))
            except Exception as e:
                logger.warning("Jump step failed at %r: %s", node, e)
                cached = ()
            self._jump_cache[node] = cached
        return cached

    def _jump(self, node: FlowNode) -> list[FlowNode]:
        if node.kind == FlowNodeKind.ARGUMENT and node.syntax is not None:
            return self._argument_targets(node.syntax, node.position)
        if node.kind == FlowNodeKind.RETURN and node.callable is not None:
            return [
                self.call_result_node(site, node.position)
                for site, _ in self._call_sites_of(node.callable)
            ]
        if node.kind == FlowNodeKind.STATE_VAR_WRITE and node.declaration is not None:
            written_index = _written_literal_index(node.syntax)
            return [
                FlowNode.state_read(read, node.declaration, owner=self.owner_of(read))
                for read in self.state_reads_of(node.declaration)
                if not self._literal_indices_differ(written_index, _literal_index(read))
            ]
        return []

    def _argument_targets(self, site: SyntaxNode, index: int) -> list[FlowNode]:
        if site.kind == "ModifierInvocation":
            function = self.owner_of(site)
            invocation = None
            if isinstance(function, FunctionDef):
                invocation = next((m for m in function.modifiers if m.node is site), None)
            if invocation is None or index < 0:
                return []
            modifier = self.modifiers.resolve_modifier(invocation)
            target = modifier or self.modifiers.resolve_base_constructor(invocation)
            return [FlowNode.parameter(target, index)] if target is not None and index < target.arity else []

        if site.kind == "InheritanceSpecifier":
            base_name = site.get("baseName")
            base = self.program.contract(base_name.text if base_name is not None else "")
            constructor = base.constructor if base is not None else None
            if constructor is None or not 0 <= index < constructor.arity:
                return []
            return [FlowNode.parameter(constructor, index)]

        if self.calls.call_kind(site) == CallKind.NEW_CONTRACT:
            callee = callee_expression(site)
            type_node = callee.get("typeName") if callee is not None else None
            name = ""
            if type_node is not None:
                path = type_node.get("pathNode")
                name = (path.name if path is not None else "") or type_node.name or type_node.attr("namePath", "")
            contract = self.program.contract(name)
            constructor = contract.constructor if contract is not None else None
            if constructor is None or not 0 <= index < constructor.arity:
                return []
            return [FlowNode.parameter(constructor, index)]

        targets: list[FlowNode] = []
        for edge in self.calls.resolve_call(site):
            callee = edge.callee
            if callee is None:
                continue
            if index == RECEIVER:
                position = 0 if edge.argument_offset == 1 else None
            elif index < 0:
                position = None
            else:
                position = index + edge.argument_offset
            if position is not None and position < callee.arity:
                targets.append(FlowNode.parameter(callee, position))
        return targets

    def _call_sites_of(self, callable_def: CallableDef) -> list[tuple[SyntaxNode, int]]:
        if self._callers is None:
            callers: dict[CallableDef, list[tuple[SyntaxNode, int]]] = {}
            for tree in self.program.trees:
                for node in tree.nodes:
                    if node.kind != "FunctionCall":
                        continue
                    for edge in self.calls.resolve_call(node):
                        if edge.callee is not None:
                            callers.setdefault(edge.callee, []).append((node, edge.argument_offset))
            self._callers = callers
        return self._callers.get(callable_def, [])

    def state_reads_of(self, declaration: SyntaxNode) -> list[SyntaxNode]:
        """Identifiers reading the state variable ``declaration``."""
        if self._state_reads is None:
            reads: dict[SyntaxNode, list[SyntaxNode]] = {}
            for tree in self.program.trees:
                for node in tree.nodes:
                    if node.kind != "Identifier":
                        continue
                    decl = self.program.referenced_variable(node)
                    if self.is_state_variable(decl) and not self.is_write_root(node):
                        reads.setdefault(decl, []).append(node)
            self._state_reads = reads
        return list(self._state_reads.get(declaration, []))

    def state_writes_in(self, callable_def: CallableDef) -> list[FlowNode]:
        """StateVarWrite nodes for every storage write in a callable body."""
        return [n for n in self.nodes_in(callable_def) if n.kind == FlowNodeKind.STATE_VAR_WRITE]

    # ── Node universe ────────────────────────────────────────────────

    def nodes(self) -> list[FlowNode]:
        """Every flow node of the program, in deterministic order."""
        if self._nodes is None:
            result: list[FlowNode] = []
            for callable_def in self.program.all_callables():
                try:
                    result.extend(self.nodes_in(callable_def))
                except Exception as e:
                    logger.warning("Flow node enumeration failed for %s: %s", callable_def.qualified_name, e)
            for contract in self.program.contracts:
                for var in contract.state_variables:
                    value = var.node.get("value")
                    if value is not None:
                        result.extend(self._expression_nodes(value, None))
                        result.append(FlowNode.state_write(var.node, var.node))
                for spec in contract.bases:
                    if spec.node is None:
                        continue
                    for arg in spec.arguments:
                        result.extend(self._expression_nodes(arg, None))
                    result.extend(FlowNode.argument(spec.node, i) for i in range(len(spec.arguments)))
            self._nodes = list(_dedupe(result))
        return self._nodes

    def nodes_in(self, callable_def: CallableDef) -> list[FlowNode]:
        result: list[FlowNode] = [FlowNode.parameter(callable_def, i) for i in range(callable_def.arity)]
        result += [FlowNode.return_value(callable_def, i) for i in range(len(callable_def.returns))]
        form = self.ssa_for(callable_def) if callable_def.is_implemented else None
        if form is not None:
            result += [FlowNode.ssa_definition(d) for d in form.definitions]
        roots: list[SyntaxNode] = []
        if callable_def.body is not None:
            roots.append(callable_def.body)
        if isinstance(callable_def, FunctionDef):
            for invocation in callable_def.modifiers:
                roots.extend(invocation.arguments)
                result += [FlowNode.argument(invocation.node, i, owner=callable_def)
                           for i in range(len(invocation.arguments))]
        for root in roots:
            result.extend(self._expression_nodes(root, callable_def))
        return result

    def _expression_nodes(self, root: SyntaxNode, owner: CallableDef | None) -> Iterator[FlowNode]:
        for node in root.walk():
            kind = node.kind
            if kind not in EXPRESSION_KINDS:
                continue
            yield FlowNode.expression(node, owner=owner)
            if kind == "Identifier":
                decl = self.program.referenced_variable(node)
                if self.is_state_variable(decl) and not self.is_write_root(node):
                    yield FlowNode.state_read(node, decl, owner=owner)
            elif kind == "FunctionCall":
                yield from self._call_nodes(node, owner)
            elif kind == "Assignment":
                lhs = node.get("leftHandSide")
                targets = [lhs]
                if lhs is not None and lhs.kind == "TupleExpression":
                    targets = lhs.get_list("components")
                for target in targets:
                    if target is not None:
                        yield from self.write_nodes(target, node)
            elif kind == "UnaryOperation" and node.text in ("++", "--", "delete"):
                target = node.get("subExpression")
                if target is not None:
                    yield from self.write_nodes(target, node)

    def _call_nodes(self, call: SyntaxNode, owner: CallableDef | None) -> Iterator[FlowNode]:
        call_kind = self.calls.call_kind(call)
        if call_kind in _VALUE_FLOW_CALL_KINDS:
            return
        for i in range(len(call_arguments(call))):
            yield FlowNode.argument(call, i, owner=owner)
        callee = callee_expression(call)
        if callee is not None and callee.kind == "MemberAccess":
            yield FlowNode.argument(call, RECEIVER, owner=owner)
        options = call.get("expression")
        if options is not None and options.kind == "FunctionCallOptions":
            names = options.attr("names", [])
            if "value" in names:
                yield FlowNode.argument(call, VALUE, owner=owner)
            if "gas" in names:
                yield FlowNode.argument(call, GAS, owner=owner)
        if call_kind not in (CallKind.EVENT, CallKind.ERROR):
            for i in range(self.result_arity(call)):
                yield FlowNode.call_result(call, i, owner=owner)
        if call_kind == CallKind.BUILTIN and callee is not None and callee.kind == "MemberAccess" \
                and callee.text == "push":
            base = callee.get("expression")
            if base is not None:
                yield from self.write_nodes(base, call)

    def write_nodes(
        self,
        target: SyntaxNode,
        site: SyntaxNode,
    ) -> Iterator[FlowNode]:
        root_expr = _root_expression(target)
        if root_expr is None:
            return
        decl = self.program.referenced_variable(root_expr)
        owner = self.owner_of(site)
        if self.is_state_variable(decl):
            yield FlowNode.state_write(site, decl, owner=owner)
        elif self.is_local_variable(decl) and root_expr is not target:
            yield FlowNode.post_update(root_expr, site, owner=owner)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _dedupe(nodes: Iterator[FlowNode] | list[FlowNode]) -> Iterator[FlowNode]:
    seen: set[FlowNode] = set()
    for node in nodes:
        if node not in seen:
            seen.add(node)
            yield node


def _root_expression(expr: SyntaxNode | None) -> SyntaxNode | None:
    """The identifier at the root of an lvalue path (``a.b[c]`` → ``a``)."""
    while expr is not None:
        if expr.kind == "Identifier":
            return expr
        if expr.kind in ("IndexAccess", "IndexRangeAccess"):
            expr = expr.get("baseExpression")
        elif expr.kind == "MemberAccess":
            expr = expr.get("expression")
        elif expr.kind == "TupleExpression" and len(expr.get_list("components")) == 1:
            expr = expr.get_list("components")[0]
        else:
            return None
    return None


def _literal_index(identifier: SyntaxNode | None) -> str | None:
    """Literal index directly applied to ``identifier`` (``a[3]`` → ``"3"``)."""
    if identifier is None:
        return None
    parent = identifier.parent
    if parent is None or parent.kind != "IndexAccess" or identifier.role != "baseExpression":
        return None
    index = parent.get("indexExpression")
    if index is not None and index.kind == "Literal":
        return index.text
    return None


def _written_literal_index(site: SyntaxNode | None) -> str | None:
    if site is None:
        return None
    target = None
    if site.kind == "Assignment":
        target = site.get("leftHandSide")
    elif site.kind == "UnaryOperation":
        target = site.get("subExpression")
    root = _root_expression(target)
    return _literal_index(root) if root is not None else None


def root_expression(expr: SyntaxNode | None) -> SyntaxNode | None:
    return _root_expression(expr)
