"""Built-in source, sink and barrier predicates.

Every predicate has the ``(node, graph) -> bool`` shape used by
``Configuration`` so they can be combined freely, including through
``FunctionalConfiguration``.
"""

from __future__ import annotations

from solflow.core.ast_analyzer import FunctionDef, VariableScope
from solflow.core.call_graph import CallKind, callee_expression, receiver
from solflow.core.dataflow import GAS, RECEIVER, VALUE, DataFlowGraph, FlowNode, FlowNodeKind
from solflow.core.syntax import SyntaxNode
from solflow.core.types import CallableKind


# ── Execution context ────────────────────────────────────────────────────────

EXECUTION_CONTEXT_OBJECTS = frozenset({"msg", "tx", "block"})

# Values the transaction sender chooses directly
USER_CONTROLLED_CONTEXT = frozenset({
    "msg.data", "msg.sender", "msg.value", "msg.sig", "tx.origin",
})

VALUE_TRANSFER_MEMBERS = frozenset({"transfer", "send"})
DELEGATING_MEMBERS = frozenset({"delegatecall", "callcode"})
RESULT_RETURNING_LOW_LEVEL = frozenset({"call", "delegatecall", "staticcall", "callcode", "send"})
SELFDESTRUCT_FUNCTIONS = frozenset({"selfdestruct", "suicide"})
CHECK_FUNCTIONS = frozenset({"require", "assert"})

_CONDITION_OWNERS = {
    "IfStatement": "condition",
    "WhileStatement": "condition",
    "DoWhileStatement": "condition",
    "ForStatement": "condition",
    "Conditional": "condition",
}


def context_member(expr: SyntaxNode | None) -> str:
    """``msg.sender`` style name of an execution-context read ("" otherwise)."""
    if expr is None or expr.kind != "MemberAccess":
        return ""
    base = expr.get("expression")
    if base is None or base.kind != "Identifier" or base.text not in EXECUTION_CONTEXT_OBJECTS:
        return ""
    return f"{base.text}.{expr.text}"


def call_member(call: SyntaxNode | None) -> str:
    """Member name of a ``x.member(...)`` call ("" otherwise)."""
    if call is None:
        return ""
    callee = callee_expression(call)
    if callee is None or callee.kind != "MemberAccess":
        return ""
    return callee.text


# ── Sources ──────────────────────────────────────────────────────────────────


def is_execution_context_read(node: FlowNode, graph: DataFlowGraph) -> bool:
    """Reads of ``msg.*``, ``tx.*`` and ``block.*``."""
    return bool(context_member(node.as_expression()))


def is_user_controlled_context_read(node: FlowNode, graph: DataFlowGraph) -> bool:
    return context_member(node.as_expression()) in USER_CONTROLLED_CONTEXT


def is_externally_supplied_parameter(node: FlowNode, graph: DataFlowGraph) -> bool:
    """Parameters of functions any account can call with chosen arguments."""
    if node.kind != FlowNodeKind.PARAMETER:
        return False
    callable_def = node.callable
    if not isinstance(callable_def, FunctionDef):
        return False
    if callable_def.kind != CallableKind.FUNCTION and callable_def.kind != CallableKind.FALLBACK:
        return False
    return callable_def.is_externally_callable


def is_external_call_result(node: FlowNode, graph: DataFlowGraph) -> bool:
    if node.kind != FlowNodeKind.CALL_RESULT or node.syntax is None:
        return False
    return graph.calls.is_external_call(node.syntax)


def is_untrusted_input(node: FlowNode, graph: DataFlowGraph) -> bool:
    """Externally supplied parameters, ``msg.data``/``tx.origin`` and external call results."""
    return (
        is_externally_supplied_parameter(node, graph)
        or context_member(node.as_expression()) in ("msg.data", "tx.origin")
        or is_external_call_result(node, graph)
    )


def is_low_level_call_result(node: FlowNode, graph: DataFlowGraph) -> bool:
    """The success flag of ``call``/``delegatecall``/``staticcall``/``send``."""
    if node.kind != FlowNodeKind.CALL_RESULT or node.position != 0 or node.syntax is None:
        return False
    call = node.syntax
    return graph.calls.call_kind(call) == CallKind.LOW_LEVEL and call_member(call) in RESULT_RETURNING_LOW_LEVEL


# ── Sinks ────────────────────────────────────────────────────────────────────


def _external_argument(node: FlowNode, graph: DataFlowGraph) -> SyntaxNode | None:
    if node.kind != FlowNodeKind.ARGUMENT or node.syntax is None or node.syntax.kind != "FunctionCall":
        return None
    return node.syntax if graph.calls.is_external_call(node.syntax) else None


def is_external_call_target(node: FlowNode, graph: DataFlowGraph) -> bool:
    """The receiver (address or contract reference) of an external call."""
    call = _external_argument(node, graph)
    if call is None or node.position != RECEIVER:
        return False
    base = receiver(call)
    return base is not None and not (base.kind == "Identifier" and base.text in ("this", "super"))


def is_external_call_argument(node: FlowNode, graph: DataFlowGraph) -> bool:
    call = _external_argument(node, graph)
    return call is not None and node.position >= 0


def is_value_transfer_amount(node: FlowNode, graph: DataFlowGraph) -> bool:
    """``{value: x}`` options and the amount of ``transfer``/``send``."""
    if node.kind != FlowNodeKind.ARGUMENT or node.syntax is None:
        return False
    call = node.syntax
    if node.position == VALUE:
        return True
    if node.position == 0 and graph.calls.call_kind(call) == CallKind.LOW_LEVEL:
        return call_member(call) in VALUE_TRANSFER_MEMBERS
    if node.position == 0 and graph.calls.call_kind(call) == CallKind.BUILTIN:
        # legacy ``x.call.value(amount)()`` form
        return call_member(call) == "value"
    return False


def is_delegatecall_target(node: FlowNode, graph: DataFlowGraph) -> bool:
    if node.kind != FlowNodeKind.ARGUMENT or node.position != RECEIVER or node.syntax is None:
        return False
    call = node.syntax
    return graph.calls.call_kind(call) == CallKind.LOW_LEVEL and call_member(call) in DELEGATING_MEMBERS


def is_selfdestruct_argument(node: FlowNode, graph: DataFlowGraph) -> bool:
    if node.kind != FlowNodeKind.ARGUMENT or node.position != 0 or node.syntax is None:
        return False
    callee = callee_expression(node.syntax)
    return callee is not None and callee.kind == "Identifier" and callee.text in SELFDESTRUCT_FUNCTIONS


def is_array_index(node: FlowNode, graph: DataFlowGraph) -> bool:
    """The index expression of an access into an array (mappings excluded)."""
    expr = node.as_expression()
    if expr is None or expr.role != "indexExpression":
        return False
    access = expr.parent
    if access is None or access.kind != "IndexAccess":
        return False
    base = access.get("baseExpression")
    type_string = graph.program.type_of(base)
    if type_string.startswith("mapping"):
        return False
    if "[" in type_string:
        return True
    decl = graph.program.root_variable(base)
    state = graph.program.state_variable_for(decl) if decl is not None else None
    return state is not None and state.is_array


def is_state_write(node: FlowNode, graph: DataFlowGraph) -> bool:
    return node.kind == FlowNodeKind.STATE_VAR_WRITE


def is_gas_argument(node: FlowNode, graph: DataFlowGraph) -> bool:
    return node.kind == FlowNodeKind.ARGUMENT and node.position == GAS


def is_checked_value(node: FlowNode, graph: DataFlowGraph) -> bool:
    """An expression inside a ``require``/``assert`` or branch condition, or a returned value."""
    if node.kind == FlowNodeKind.RETURN:
        return True
    expr = node.as_expression()
    return expr is not None and in_check_condition(expr)


def in_check_condition(expr: SyntaxNode) -> bool:
    child = expr
    for ancestor in expr.ancestors():
        if ancestor.kind == "FunctionCall" and child.role == "arguments" and child.role_index == 0:
            callee = callee_expression(ancestor)
            if callee is not None and callee.kind == "Identifier" and callee.text in CHECK_FUNCTIONS:
                return True
        if _CONDITION_OWNERS.get(ancestor.kind) == child.role:
            return True
        if ancestor.kind in ("ExpressionStatement", "Block", "FunctionDefinition", "ModifierDefinition"):
            return False
        child = ancestor
    return False


# ── Barriers ─────────────────────────────────────────────────────────────────


def is_in_lock_guarded_callable(node: FlowNode, graph: DataFlowGraph) -> bool:
    owner = node.enclosing_callable()
    return owner is not None and graph.modifiers.is_lock_guarded(owner)


def is_validated_by_check(node: FlowNode, graph: DataFlowGraph) -> bool:
    """A local read that follows a ``require``/``assert``/branch check of the same variable."""
    expr = node.as_expression()
    if expr is None or expr.kind != "Identifier" or in_check_condition(expr):
        return False
    decl = graph.program.referenced_variable(expr)
    if decl is None or graph.program.variable_scope(decl) not in (
        VariableScope.LOCAL, VariableScope.PARAMETER,
    ):
        return False
    owner = node.enclosing_callable()
    cfg = graph.cfg_for(owner) if owner is not None else None
    if cfg is None:
        return False
    use_node = cfg.node_for(expr)
    if use_node is None:
        return False
    root = owner.body
    if root is None:
        return False
    for other in root.walk():
        if other.kind != "Identifier" or other is expr:
            continue
        if graph.program.referenced_variable(other) is not decl or not in_check_condition(other):
            continue
        check_node = cfg.node_for(other)
        if check_node is not None and cfg.strictly_reaches(check_node, use_node):
            return True
    return False
