"""Call resolution and the inheritance-aware call graph.

Every ``FunctionCall`` site is first classified by what it syntactically is
(ordinary function call, low-level call, builtin, type conversion, struct
constructor, ``new``, event or error) and only ordinary function calls are
resolved to declarations. Resolution order, first match wins:

  - ``super.f()``       → next implementation after the declaring contract
                          in the context contract's linearization
  - ``f()``             → most-derived override visible from the context
  - ``Base.f()``        → Base's linearization; ``L.f()`` for libraries
  - ``x.f()`` bound via ``using L for T`` → ``L.f`` with argument offset 1
  - ``this.f()``        → the context contract's external function
  - ``i.f()`` on a contract/interface typed receiver → every statically
                          known concrete implementer
  - anything else       → unresolved (a normal outcome, not an error)

Low-level calls on an address (``a.call``, ``a.transfer``, ...) have no
declaration to bind to and always resolve to one unresolved edge.

A call inside contract ``A`` is resolved in ``A`` and in every contract that
derives from ``A`` (virtual dispatch contexts). Results are cached, so
resolution is idempotent.

Traversals over call edges are bounded by ``max_call_depth`` and report
truncation instead of failing; calling back into the current chain
(recursion) is reported the same way.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from solflow.core.ast_analyzer import (
    CallableDef,
    ContractDef,
    FunctionDef,
    Program,
    VariableScope,
)
from solflow.core.config import DEFAULT_MAX_CALL_DEPTH
from solflow.core.inheritance import InheritanceGraph
from solflow.core.syntax import SyntaxNode
from solflow.core.types import CallableKind

logger = logging.getLogger(__name__)


# ── Data Structures ──────────────────────────────────────────────────────────


class CallKind(str, Enum):
    """What a ``FunctionCall`` node syntactically is."""
    FUNCTION = "function"
    LOW_LEVEL = "low_level"
    BUILTIN = "builtin"
    TYPE_CONVERSION = "type_conversion"
    STRUCT_CONSTRUCTOR = "struct_constructor"
    NEW_CONTRACT = "new_contract"
    EVENT = "event"
    ERROR = "error"


class ResolutionKind(str, Enum):
    """How a call site was bound to its callee."""
    INTERNAL = "internal"
    INHERITED = "inherited"
    SUPER = "super"
    THIS_EXTERNAL = "thisExternal"
    INTERFACE_DISPATCH = "interfaceDispatch"
    PARAMETER_DISPATCH = "parameterDispatch"
    UNRESOLVED = "unresolved"


EXTERNAL_RESOLUTIONS = frozenset({
    ResolutionKind.THIS_EXTERNAL,
    ResolutionKind.INTERFACE_DISPATCH,
    ResolutionKind.PARAMETER_DISPATCH,
})

LOW_LEVEL_MEMBERS = frozenset({"call", "delegatecall", "staticcall", "callcode", "send", "transfer"})

BUILTIN_FUNCTIONS = frozenset({
    "require", "assert", "revert", "keccak256", "sha256", "sha3", "ripemd160",
    "ecrecover", "addmod", "mulmod", "selfdestruct", "suicide", "blockhash",
    "gasleft", "type",
})

BUILTIN_MEMBER_CALLS = frozenset({
    "abi.encode", "abi.encodePacked", "abi.encodeWithSelector", "abi.encodeWithSignature",
    "abi.encodeCall", "abi.decode", "string.concat", "bytes.concat",
})

_FUNCTION_KINDS = frozenset({
    CallableKind.FUNCTION, CallableKind.FREE_FUNCTION,
    CallableKind.FALLBACK, CallableKind.RECEIVE,
})


@dataclass(frozen=True, eq=False)
class CallEdge:
    """A resolved (or explicitly unresolved) call from a site to a callee."""
    site: SyntaxNode
    caller: CallableDef | None
    callee: CallableDef | None
    kind: ResolutionKind
    context: ContractDef | None = None
    argument_offset: int = 0

    @property
    def is_unresolved(self) -> bool:
        return self.kind == ResolutionKind.UNRESOLVED

    @property
    def is_external(self) -> bool:
        return self.kind in EXTERNAL_RESOLUTIONS

    def __repr__(self) -> str:
        callee = self.callee.qualified_name if self.callee else "?"
        return f"<CallEdge {self.kind.value} -> {callee}>"


@dataclass
class ReachableSet:
    """Callables reachable through call edges within a depth bound."""
    callables: list[CallableDef] = field(default_factory=list)
    truncated: bool = False

    def __contains__(self, item: CallableDef) -> bool:
        return item in self.callables


# ── Call-site helpers ────────────────────────────────────────────────────────


def callee_expression(site: SyntaxNode) -> SyntaxNode | None:
    """The called expression with ``{value: ..., gas: ...}`` options stripped."""
    expr = site.get("expression")
    while expr is not None and expr.kind == "FunctionCallOptions":
        expr = expr.get("expression")
    return expr


def call_arguments(site: SyntaxNode) -> list[SyntaxNode]:
    return [a for a in site.get_list("arguments") if a is not None]


def call_options(site: SyntaxNode) -> dict[str, SyntaxNode]:
    """``{value: v, gas: g}`` options of a call (also legacy ``.value(v)``)."""
    options: dict[str, SyntaxNode] = {}
    expr = site.get("expression")
    while expr is not None:
        if expr.kind == "FunctionCallOptions":
            names = expr.attr("names", [])
            for name, value in zip(names, expr.get_list("options")):
                if value is not None:
                    options[name] = value
            expr = expr.get("expression")
        elif expr.kind == "FunctionCall":
            inner = expr.get("expression")
            if inner is not None and inner.kind == "MemberAccess" and inner.text in ("value", "gas"):
                args = call_arguments(expr)
                if args:
                    options[inner.text] = args[0]
                expr = inner.get("expression")
            else:
                break
        else:
            break
    return options


def member_name(site: SyntaxNode) -> str:
    callee = callee_expression(site)
    return callee.text if callee is not None and callee.kind == "MemberAccess" else ""


def receiver(site: SyntaxNode) -> SyntaxNode | None:
    """The receiver of a member call (``x`` in ``x.f()``)."""
    callee = callee_expression(site)
    if callee is not None and callee.kind == "MemberAccess":
        return callee.get("expression")
    return None


def contract_type_name(type_string: str) -> str:
    """``"contract IERC20"`` / ``"interface IERC20"`` → ``"IERC20"``."""
    for prefix in ("contract ", "interface ", "library "):
        if type_string.startswith(prefix):
            return type_string[len(prefix):].split(" ")[0]
    return ""


def _normalize_type(type_string: str) -> str:
    for suffix in (" storage ref", " storage pointer", " memory", " calldata", " payable", " pointer"):
        type_string = type_string.replace(suffix, "")
    for prefix in ("contract ", "interface ", "struct ", "enum "):
        if type_string.startswith(prefix):
            type_string = type_string[len(prefix):]
    return type_string.strip()


def _type_matches(arg_type: str, param_type: str) -> bool:
    if not arg_type or not param_type:
        return True
    arg_type, param_type = _normalize_type(arg_type), _normalize_type(param_type)
    if arg_type == param_type:
        return True
    if arg_type.startswith("int_const") or arg_type.startswith("rational_const"):
        return param_type.startswith("uint") or param_type.startswith("int")
    if arg_type.startswith("literal_string"):
        return param_type in ("string", "bytes") or param_type.startswith("bytes")
    if param_type.endswith(arg_type.split(".")[-1]):
        return True
    return False


# ── Call Resolver ────────────────────────────────────────────────────────────


class CallResolver:
    """Classify and resolve call sites against the inheritance graph."""

    def __init__(
        self,
        program: Program,
        inheritance: InheritanceGraph,
        resolve_virtual_dispatch: bool = True,
    ) -> None:
        self.program = program
        self.inheritance = inheritance
        self.resolve_virtual_dispatch = resolve_virtual_dispatch
        self._kind_cache: dict[SyntaxNode, CallKind] = {}
        self._cache: dict[tuple[SyntaxNode, ContractDef | None], tuple[CallEdge, ...]] = {}
        self._site_cache: dict[SyntaxNode, tuple[CallEdge, ...]] = {}

    # ── Classification ───────────────────────────────────────────────

    def call_kind(self, site: SyntaxNode) -> CallKind:
        cached = self._kind_cache.get(site)
        if cached is None:
            cached = self._classify(site)
            self._kind_cache[site] = cached
        return cached

    def _classify(self, site: SyntaxNode) -> CallKind:
        solc_kind = site.attr("kind", "")
        if solc_kind == "typeConversion":
            return CallKind.TYPE_CONVERSION
        if solc_kind == "structConstructorCall":
            return CallKind.STRUCT_CONSTRUCTOR

        callee = callee_expression(site)
        if callee is None:
            return CallKind.FUNCTION
        parent = site.parent
        if parent is not None and parent.kind == "EmitStatement":
            return CallKind.EVENT
        if parent is not None and parent.kind == "RevertStatement":
            return CallKind.ERROR

        if callee.kind == "NewExpression":
            type_node = callee.get("typeName")
            if type_node is not None and type_node.kind == "UserDefinedTypeName":
                return CallKind.NEW_CONTRACT
            return CallKind.BUILTIN
        if callee.kind == "ElementaryTypeNameExpression":
            return CallKind.TYPE_CONVERSION

        if callee.kind == "Identifier":
            decl = self.program.declaration_of(callee)
            if decl is not None:
                return _kind_of_declaration(decl)
            name = callee.text
            if name in BUILTIN_FUNCTIONS:
                return CallKind.BUILTIN
            contract = self.program.enclosing_contract(site)
            if contract is not None:
                for owner in self.inheritance.linearization(contract):
                    if name in owner.structs:
                        return CallKind.STRUCT_CONSTRUCTOR
                    if name in owner.errors:
                        return CallKind.ERROR
                    if name in owner.events:
                        return CallKind.EVENT
            return CallKind.FUNCTION

        if callee.kind == "MemberAccess":
            decl = self.program.node_by_id(callee.referenced_declaration)
            if decl is not None and decl.kind != "FunctionDefinition":
                return _kind_of_declaration(decl)
            base = callee.get("expression")
            member = callee.text
            if base is not None and base.kind in ("Identifier", "ElementaryTypeNameExpression"):
                if f"{base.text}.{member}" in BUILTIN_MEMBER_CALLS:
                    return CallKind.BUILTIN
            if member in LOW_LEVEL_MEMBERS and decl is None:
                base_type = self.program.type_of(base)
                if base_type.startswith("address"):
                    return CallKind.LOW_LEVEL
                if not base_type and (member != "transfer" or len(call_arguments(site)) == 1):
                    return CallKind.LOW_LEVEL
            if member in ("push", "pop") and decl is None:
                base_type = self.program.type_of(base)
                if base_type.endswith("]") or "[]" in base_type or not base_type:
                    if not self._bound_library_functions(site, member):
                        return CallKind.BUILTIN
            if member in ("value", "gas") and decl is None:
                return CallKind.BUILTIN
        return CallKind.FUNCTION

    def is_low_level(self, site: SyntaxNode) -> bool:
        return self.call_kind(site) == CallKind.LOW_LEVEL

    # ── Resolution ───────────────────────────────────────────────────

    def resolve_call(self, site: SyntaxNode, context: ContractDef | None = None) -> list[CallEdge]:
        """Resolve a call site.

        Builtins, conversions, events and non-calls give ``[]``. Low-level
        calls (``a.call``, ``a.delegatecall``, ``a.transfer``, ...) and calls
        that match no declaration give a single unresolved edge.

        With ``context`` the site is resolved in that contract only: an
        unqualified call binds to the first match in its linearization.
        Without ``context`` the site is resolved in its enclosing contract
        and in every derived contract and the union is returned. This
        over-approximates virtual dispatch on purpose, since a function of
        ``Base`` may run as part of any derived contract. Setting
        ``resolve_virtual_dispatch`` off limits it to the enclosing contract.
        """
        if site.kind != "FunctionCall":
            return []
        if context is not None:
            return list(self._resolve_in(site, context))

        cached = self._site_cache.get(site)
        if cached is not None:
            return list(cached)

        enclosing = self.program.enclosing_contract(site)
        contexts: list[ContractDef | None] = [enclosing]
        if enclosing is not None and self.resolve_virtual_dispatch:
            contexts += [c for c in self.inheritance.derived_contracts(enclosing) if c is not enclosing]

        edges: list[CallEdge] = []
        seen: set[tuple] = set()
        for ctx in contexts:
            for edge in self._resolve_in(site, ctx):
                key = (id(edge.callee), edge.kind, edge.argument_offset)
                if key in seen:
                    continue
                seen.add(key)
                edges.append(edge)
        # An unresolved marker only survives when nothing resolved
        resolved = [e for e in edges if not e.is_unresolved]
        result = tuple(resolved) if resolved else tuple(edges[:1])
        self._site_cache[site] = result
        return list(result)

    def is_unresolved(self, site: SyntaxNode) -> bool:
        edges = self.resolve_call(site)
        return bool(edges) and all(e.is_unresolved for e in edges)

    def callees(self, site: SyntaxNode) -> list[CallableDef]:
        return [e.callee for e in self.resolve_call(site) if e.callee is not None]

    def is_external_call(self, site: SyntaxNode) -> bool:
        """A call that transfers control to another (possibly untrusted) contract."""
        kind = self.call_kind(site)
        if kind == CallKind.LOW_LEVEL:
            return True
        if kind != CallKind.FUNCTION:
            return kind == CallKind.NEW_CONTRACT
        edges = self.resolve_call(site)
        if any(e.is_external for e in edges):
            return True
        if edges and all(e.is_unresolved for e in edges):
            base = receiver(site)
            return base is not None and not self._is_static_receiver(base)
        return False

    def _resolve_in(self, site: SyntaxNode, context: ContractDef | None) -> tuple[CallEdge, ...]:
        key = (site, context)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        kind = self.call_kind(site)
        if kind == CallKind.LOW_LEVEL:
            # the target is an address value, never a declaration
            result: tuple[CallEdge, ...] = (CallEdge(
                site=site, caller=self.program.enclosing_callable(site), callee=None,
                kind=ResolutionKind.UNRESOLVED, context=context,
            ),)
        elif kind != CallKind.FUNCTION:
            result = ()
        else:
            result = tuple(self._resolve_function_call(site, context))
        self._cache[key] = result
        return result

    def _resolve_function_call(self, site: SyntaxNode, context: ContractDef | None) -> list[CallEdge]:
        caller = self.program.enclosing_callable(site)
        enclosing = self.program.enclosing_contract(site)
        callee = callee_expression(site)
        args = call_arguments(site)

        def edges(
            targets: list[CallableDef],
            kind: ResolutionKind | None = None,
            offset: int = 0,
        ) -> list[CallEdge]:
            result = []
            for target in self._by_argument_types(targets, args, offset):
                if kind is not None:
                    edge_kind = kind
                elif target.contract is None or target.contract is enclosing:
                    edge_kind = ResolutionKind.INTERNAL
                else:
                    edge_kind = ResolutionKind.INHERITED
                result.append(CallEdge(
                    site=site, caller=caller, callee=target, kind=edge_kind,
                    context=context, argument_offset=offset,
                ))
            return result

        unresolved = [CallEdge(site=site, caller=caller, callee=None,
                               kind=ResolutionKind.UNRESOLVED, context=context)]
        if callee is None:
            return unresolved

        if callee.kind == "Identifier":
            name = callee.text
            decl = self.program.declaration_of(callee)
            if decl is not None and decl.kind == "VariableDeclaration":
                # function-typed variable or parameter
                return unresolved
            if decl is not None and decl.kind == "FunctionDefinition":
                target = self.program.callable_for_node(decl)
                if target is not None and target.kind == CallableKind.FREE_FUNCTION:
                    return edges([target], ResolutionKind.INTERNAL)
            owner = context or enclosing
            if owner is not None:
                if enclosing is not None and enclosing.is_library:
                    owner = enclosing
                targets = self._functions(self.inheritance.override_candidates(owner, name, len(args)))
                if targets:
                    return edges(targets)
            free = [f for f in self.program.free_functions if f.name == name and f.arity == len(args)]
            if free:
                return edges(free, ResolutionKind.INTERNAL)
            return unresolved

        if callee.kind != "MemberAccess":
            return unresolved

        base = callee.get("expression")
        member = callee.text
        if base is None:
            return unresolved

        if base.kind == "Identifier" and base.text == "super":
            if enclosing is None:
                return unresolved
            owner = context or enclosing
            targets = self._functions(self.inheritance.override_candidates(
                owner, member, len(args), start_after=enclosing,
            ))
            return edges(targets, ResolutionKind.SUPER) or unresolved

        if base.kind == "Identifier" and base.text == "this":
            owner = context or enclosing
            if owner is None:
                return unresolved
            targets = [
                t for t in self._functions(self.inheritance.override_candidates(owner, member, len(args)))
                if isinstance(t, FunctionDef) and t.is_externally_callable
            ]
            return edges(targets, ResolutionKind.THIS_EXTERNAL) or unresolved

        static = self._static_contract(base)
        if static is not None:
            if static.is_library:
                targets = [f for f in static.get_functions(member) if f.arity == len(args)]
                return edges(targets, ResolutionKind.INTERNAL) or unresolved
            if enclosing is not None and (
                static is enclosing or self.inheritance.is_ancestor(static, enclosing)
            ):
                targets = self._functions(self.inheritance.override_candidates(static, member, len(args)))
                return edges(targets, ResolutionKind.INHERITED) or unresolved
            return unresolved

        bound = self._bound_library_functions(site, member)
        if bound:
            return edges(bound, ResolutionKind.INTERNAL, offset=1)

        type_name = contract_type_name(self.program.type_of(base))
        target_contract = self.program.contract(type_name) if type_name else None
        if target_contract is not None:
            kind = (
                ResolutionKind.PARAMETER_DISPATCH
                if self._is_parameter(base)
                else ResolutionKind.INTERFACE_DISPATCH
            )
            targets: list[CallableDef] = []
            for implementer in self._concrete_implementers(target_contract):
                for target in self._functions(
                    self.inheritance.override_candidates(implementer, member, len(args))
                ):
                    if target.is_implemented and target not in targets:
                        targets.append(target)
            return edges(targets, kind) or unresolved

        return unresolved

    # ── Helpers ──────────────────────────────────────────────────────

    def _functions(self, candidates: list[CallableDef]) -> list[CallableDef]:
        return [c for c in candidates if c.kind in _FUNCTION_KINDS]

    def _by_argument_types(
        self,
        targets: list[CallableDef],
        args: list[SyntaxNode],
        offset: int,
    ) -> list[CallableDef]:
        """Narrow same-arity overloads by argument type strings when known."""
        if len(targets) < 2:
            return targets
        arg_types = [self.program.type_of(a) for a in args]
        matching = [
            t for t in targets
            if all(
                _type_matches(arg_type, t.parameters[i + offset].type_name)
                for i, arg_type in enumerate(arg_types)
                if i + offset < len(t.parameters)
            )
        ]
        return matching or targets

    def _static_contract(self, base: SyntaxNode) -> ContractDef | None:
        """The contract named by ``base`` when it is a contract/library name."""
        if base.kind not in ("Identifier", "IdentifierPath"):
            return None
        decl = self.program.declaration_of(base)
        if decl is not None and decl.kind == "ContractDefinition":
            return self.program.enclosing_contract(decl)
        if decl is None:
            return self.program.contract(base.text)
        return None

    def _is_static_receiver(self, base: SyntaxNode) -> bool:
        if base.kind == "Identifier" and base.text in ("super", "abi", "bytes", "string"):
            return True
        return self._static_contract(base) is not None

    def _is_parameter(self, base: SyntaxNode) -> bool:
        decl = self.program.root_variable(base)
        return decl is not None and self.program.variable_scope(decl) == VariableScope.PARAMETER

    def _concrete_implementers(self, contract: ContractDef) -> list[ContractDef]:
        return [
            c for c in self.inheritance.derived_contracts(contract)
            if not c.is_interface and not c.is_library and not self.inheritance.is_abstract(c)
        ]

    def _bound_library_functions(self, site: SyntaxNode, member: str) -> list[CallableDef]:
        """``using L for T`` functions callable as ``x.member(...)`` at ``site``."""
        enclosing = self.program.enclosing_contract(site)
        if enclosing is None:
            return []
        base = receiver(site)
        base_type = _normalize_type(self.program.type_of(base)) if base is not None else ""
        argc = len(call_arguments(site)) + 1
        result: list[CallableDef] = []
        for owner in self.inheritance.linearization(enclosing):
            for directive in owner.using_for:
                library = self.program.contract(directive.library)
                if library is None:
                    continue
                if directive.type_name != "*" and base_type and _normalize_type(directive.type_name) != base_type:
                    continue
                for func in library.get_functions(member):
                    if func.arity == argc and func not in result:
                        if base_type and func.parameters and not _type_matches(base_type, func.parameters[0].type_name):
                            continue
                        result.append(func)
        return result


def _kind_of_declaration(decl: SyntaxNode) -> CallKind:
    return {
        "ContractDefinition": CallKind.TYPE_CONVERSION,
        "StructDefinition": CallKind.STRUCT_CONSTRUCTOR,
        "EventDefinition": CallKind.EVENT,
        "ErrorDefinition": CallKind.ERROR,
        "EnumDefinition": CallKind.TYPE_CONVERSION,
        "UserDefinedValueTypeDefinition": CallKind.TYPE_CONVERSION,
    }.get(decl.kind, CallKind.FUNCTION)


# ── Call Graph ───────────────────────────────────────────────────────────────


class CallGraph:
    """Directed graph of resolved calls between callables.

    Outgoing edges of a callable are computed on first use; ``callers_of``
    and ``recursive_callables`` build the whole graph once.
    """

    def __init__(self, program: Program, resolver: CallResolver) -> None:
        self.program = program
        self.resolver = resolver
        self._outgoing: dict[CallableDef, list[CallEdge]] = {}
        self._incoming: dict[CallableDef, list[CallEdge]] | None = None

    def call_sites(self, callable_def: CallableDef) -> list[SyntaxNode]:
        if callable_def.body is None:
            return []
        sites = [n for n in callable_def.body.walk() if n.kind == "FunctionCall"]
        if isinstance(callable_def, FunctionDef):
            for invocation in callable_def.modifiers:
                for arg in invocation.arguments:
                    sites.extend(n for n in arg.walk() if n.kind == "FunctionCall")
        return sites

    def callees_of(self, callable_def: CallableDef) -> list[CallEdge]:
        """All edges leaving ``callable_def`` (unresolved markers included)."""
        edges = self._outgoing.get(callable_def)
        if edges is None:
            edges = []
            for site in self.call_sites(callable_def):
                edges.extend(self.resolver.resolve_call(site))
            self._outgoing[callable_def] = edges
        return list(edges)

    def callers_of(self, callable_def: CallableDef) -> list[CallEdge]:
        if self._incoming is None:
            incoming: dict[CallableDef, list[CallEdge]] = {}
            for caller in self.program.all_callables():
                for edge in self.callees_of(caller):
                    if edge.callee is not None:
                        incoming.setdefault(edge.callee, []).append(edge)
            self._incoming = incoming
        return list(self._incoming.get(callable_def, []))

    def reachable_from(
        self,
        callable_def: CallableDef,
        max_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ) -> ReachableSet:
        """BFS over call edges, at most ``max_depth`` calls deep.

        The result is ``truncated`` when the bound cuts a chain or when a
        chain calls back into one of its own callables (recursion).
        """
        result = ReachableSet()
        best: dict[CallableDef, int] = {callable_def: 0}
        chains: dict[CallableDef, tuple[CallableDef, ...]] = {callable_def: (callable_def,)}
        queue: deque[tuple[CallableDef, int]] = deque([(callable_def, 0)])

        while queue:
            current, depth = queue.popleft()
            chain = chains[current]
            for edge in self.callees_of(current):
                callee = edge.callee
                if callee is None:
                    continue
                if callee in chain:
                    result.truncated = True
                if callee in best and best[callee] <= depth + 1:
                    continue
                if depth + 1 > max_depth:
                    result.truncated = True
                    continue
                best[callee] = depth + 1
                chains[callee] = chain + (callee,)
                queue.append((callee, depth + 1))

        result.callables = [c for c in best if c is not callable_def]
        if self._calls_back(callable_def, best):
            result.callables.insert(0, callable_def)
        if result.truncated:
            logger.debug(
                "Call traversal from %s truncated (depth limit %d or recursion)",
                callable_def.qualified_name, max_depth, extra={"depth": max_depth},
            )
        return result

    def _calls_back(self, callable_def: CallableDef, reached: dict[CallableDef, int]) -> bool:
        return any(
            edge.callee is callable_def
            for c in reached
            for edge in self.callees_of(c)
        )

    def find_path(
        self,
        start: CallableDef,
        target: CallableDef,
        max_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ) -> list[CallableDef] | None:
        """BFS shortest call chain between two callables."""
        if start is target:
            return [start]

        visited: set[CallableDef] = {start}
        queue: deque[list[CallableDef]] = deque([[start]])

        while queue:
            path = queue.popleft()
            if len(path) > max_depth:
                continue
            for edge in self.callees_of(path[-1]):
                callee = edge.callee
                if callee is None:
                    continue
                if callee is target:
                    return path + [callee]
                if callee not in visited:
                    visited.add(callee)
                    queue.append(path + [callee])

        return None

    def recursive_callables(self) -> list[CallableDef]:
        """Callables that can reach themselves through call edges."""
        result: list[CallableDef] = []
        for callable_def in self.program.all_callables():
            visited: set[CallableDef] = set()
            stack = [e.callee for e in self.callees_of(callable_def) if e.callee is not None]
            while stack:
                current = stack.pop()
                if current is callable_def:
                    result.append(callable_def)
                    break
                if current in visited:
                    continue
                visited.add(current)
                stack.extend(e.callee for e in self.callees_of(current) if e.callee is not None)
        return result

    @property
    def entry_points(self) -> list[CallableDef]:
        """Functions reachable from outside the contract system."""
        return [
            c for c in self.program.all_callables()
            if isinstance(c, FunctionDef) and c.is_externally_callable
        ]

    @property
    def unreachable_functions(self) -> list[CallableDef]:
        """Internal/private functions never called by anyone."""
        return [
            c for c in self.program.all_callables()
            if isinstance(c, FunctionDef)
            and not c.is_externally_callable
            and not c.is_constructor
            and not self.callers_of(c)
        ]


# ── Convenience ──────────────────────────────────────────────────────────────


def build_call_graph(program: Program, inheritance: InheritanceGraph | None = None) -> CallGraph:
    """Build a call graph over every callable of a program."""
    inheritance = inheritance or InheritanceGraph(program)
    return CallGraph(program, CallResolver(program, inheritance))
