"""Solidity program model: structured extraction from the solc AST.

Walks one or more ``SyntaxTree`` source units and extracts:
  - Contracts, interfaces and libraries with their declared bases
  - Callables (functions, constructors, fallback/receive, modifiers,
    free functions) with parameters, return parameters and modifier lists
  - State variables, events, errors, structs, enums, using-for directives
  - A declaration index used for identifier resolution and type lookup

Construction is isolated per contract and per callable: a malformed member
is logged, recorded as an ``Issue`` and skipped; the rest of the program is
still modelled.

This is the foundation for CFG, SSA, call resolution and data flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from solflow.core.errors import Issue, IssueKind
from solflow.core.syntax import SyntaxNode, SyntaxTree
from solflow.core.types import CallableKind, ContractKind, StateMutability, Visibility

logger = logging.getLogger(__name__)


# ── Data Models ──────────────────────────────────────────────────────────────


@dataclass(eq=False)
class Parameter:
    """Callable parameter or return parameter."""
    name: str
    type_name: str
    position: int
    node: SyntaxNode = field(repr=False)
    storage_location: str = ""  # memory, storage, calldata
    is_return: bool = False


@dataclass(eq=False)
class ModifierInvocation:
    """A modifier (or base constructor specifier) applied to a function."""
    name: str
    node: SyntaxNode = field(repr=False)
    arguments: list[SyntaxNode] = field(default_factory=list, repr=False)


@dataclass(eq=False)
class CallableDef:
    """Common shape of anything with a body: functions and modifiers."""
    name: str
    kind: CallableKind = CallableKind.FUNCTION
    visibility: Visibility = Visibility.INTERNAL
    is_virtual: bool = False
    has_override: bool = False
    override_names: list[str] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    returns: list[Parameter] = field(default_factory=list)
    body: SyntaxNode | None = field(default=None, repr=False)
    node: SyntaxNode | None = field(default=None, repr=False)
    contract: ContractDef | None = field(default=None, repr=False)

    @property
    def is_implemented(self) -> bool:
        return self.body is not None

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type_name for p in self.parameters)})"

    @property
    def qualified_name(self) -> str:
        owner = self.contract.name if self.contract else ""
        return f"{owner}.{self.name}" if owner else self.name

    @property
    def is_modifier(self) -> bool:
        return self.kind == CallableKind.MODIFIER

    def __repr__(self) -> str:
        return f"<{self.kind.value} {self.qualified_name}>"


@dataclass(eq=False, repr=False)
class FunctionDef(CallableDef):
    """Parsed function definition."""
    state_mutability: StateMutability = StateMutability.NONPAYABLE
    selector: str = ""
    modifiers: list[ModifierInvocation] = field(default_factory=list)

    @property
    def is_constructor(self) -> bool:
        return self.kind == CallableKind.CONSTRUCTOR

    @property
    def is_externally_callable(self) -> bool:
        return self.visibility in (Visibility.PUBLIC, Visibility.EXTERNAL) or self.kind in (
            CallableKind.FALLBACK, CallableKind.RECEIVE,
        )


@dataclass(eq=False, repr=False)
class ModifierDef(CallableDef):
    """Parsed modifier definition."""
    has_placeholder: bool = True  # _; statement


@dataclass(eq=False)
class StateDef:
    """Parsed state variable definition."""
    name: str
    type_name: str
    node: SyntaxNode = field(repr=False)
    visibility: Visibility = Visibility.INTERNAL
    is_constant: bool = False
    is_immutable: bool = False
    contract: ContractDef | None = field(default=None, repr=False)

    @property
    def is_mapping(self) -> bool:
        return self.type_name.startswith("mapping")

    @property
    def is_array(self) -> bool:
        return self.type_name.endswith("]")

    @property
    def is_container(self) -> bool:
        return self.is_mapping or self.is_array


@dataclass
class InheritanceSpec:
    """Base contract named in an ``is`` list."""
    name: str
    node: SyntaxNode | None = field(default=None, repr=False)
    arguments: list[SyntaxNode] = field(default_factory=list, repr=False)


@dataclass
class UsingFor:
    """A ``using L for T`` directive (``type_name`` is ``*`` for wildcard)."""
    library: str
    type_name: str


@dataclass(eq=False)
class ContractDef:
    """Complete parsed contract, interface or library."""
    name: str
    node: SyntaxNode | None = field(default=None, repr=False)
    kind: ContractKind = ContractKind.CONTRACT
    is_abstract_keyword: bool = False
    bases: list[InheritanceSpec] = field(default_factory=list)
    functions: list[FunctionDef] = field(default_factory=list)
    modifiers: list[ModifierDef] = field(default_factory=list)
    state_variables: list[StateDef] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    structs: list[str] = field(default_factory=list)
    enums: list[str] = field(default_factory=list)
    using_for: list[UsingFor] = field(default_factory=list)

    @property
    def is_interface(self) -> bool:
        return self.kind == ContractKind.INTERFACE

    @property
    def is_library(self) -> bool:
        return self.kind == ContractKind.LIBRARY

    @property
    def callables(self) -> list[CallableDef]:
        return [*self.functions, *self.modifiers]

    @property
    def constructor(self) -> FunctionDef | None:
        return next((f for f in self.functions if f.is_constructor), None)

    def get_functions(self, name: str) -> list[FunctionDef]:
        return [f for f in self.functions if f.name == name]

    def get_function(self, name: str) -> FunctionDef | None:
        return next((f for f in self.functions if f.name == name), None)

    def get_modifier(self, name: str) -> ModifierDef | None:
        return next((m for m in self.modifiers if m.name == name), None)

    def get_state_variable(self, name: str) -> StateDef | None:
        return next((v for v in self.state_variables if v.name == name), None)

    def __repr__(self) -> str:
        return f"<{self.kind.value} {self.name}>"


class VariableScope:
    """Where a variable declaration lives."""
    STATE = "state"
    PARAMETER = "parameter"
    RETURN = "return"
    LOCAL = "local"


# ── Program ──────────────────────────────────────────────────────────────────


class Program:
    """All contracts of one compilation, with declaration lookup.

    A ``Program`` is immutable after construction; every lookup table is
    either filled by the analyzer or memoized on first use.
    """

    def __init__(self, trees: list[SyntaxTree]) -> None:
        self.trees = trees
        self.contracts: list[ContractDef] = []
        self.free_functions: list[FunctionDef] = []
        self.issues: list[Issue] = []
        self._by_name: dict[str, ContractDef] = {}
        self._callable_by_node: dict[SyntaxNode, CallableDef] = {}
        self._state_by_node: dict[SyntaxNode, StateDef] = {}
        self._param_by_node: dict[SyntaxNode, Parameter] = {}
        self._decl_cache: dict[SyntaxNode, SyntaxNode | None] = {}

    # ── Registration (analyzer only) ─────────────────────────────────

    def _add_contract(self, contract: ContractDef) -> None:
        self.contracts.append(contract)
        # First definition wins for duplicate names across files
        self._by_name.setdefault(contract.name, contract)
        for func in contract.callables:
            self._register_callable(func)
        for var in contract.state_variables:
            self._state_by_node[var.node] = var

    def _register_callable(self, func: CallableDef) -> None:
        if func.node is not None:
            self._callable_by_node[func.node] = func
        for p in [*func.parameters, *func.returns]:
            self._param_by_node[p.node] = p

    # ── Contract / callable lookup ───────────────────────────────────

    def contract(self, name: str) -> ContractDef | None:
        return self._by_name.get(name)

    def all_callables(self) -> list[CallableDef]:
        result: list[CallableDef] = list(self.free_functions)
        for contract in self.contracts:
            result.extend(contract.callables)
        return result

    def callable_for_node(self, node: SyntaxNode) -> CallableDef | None:
        """The callable whose definition node is ``node``."""
        return self._callable_by_node.get(node)

    def enclosing_callable(self, node: SyntaxNode) -> CallableDef | None:
        if node in self._callable_by_node:
            return self._callable_by_node[node]
        for ancestor in node.ancestors():
            found = self._callable_by_node.get(ancestor)
            if found is not None:
                return found
        return None

    def enclosing_contract(self, node: SyntaxNode) -> ContractDef | None:
        decl = node if node.kind == "ContractDefinition" else node.find_ancestor("ContractDefinition")
        if decl is None:
            return None
        contract = self._by_name.get(decl.name)
        if contract is not None and contract.node is decl:
            return contract
        return next((c for c in self.contracts if c.node is decl), None)

    def state_variable_for(self, decl: SyntaxNode) -> StateDef | None:
        return self._state_by_node.get(decl)

    def parameter_for(self, decl: SyntaxNode) -> Parameter | None:
        return self._param_by_node.get(decl)

    def base_names_closure(self, contract: ContractDef) -> list[ContractDef]:
        """The contract followed by every reachable base (DFS, cycle-safe)."""
        seen: set[str] = set()
        order: list[ContractDef] = []
        stack = [contract]
        while stack:
            current = stack.pop()
            if current.name in seen:
                continue
            seen.add(current.name)
            order.append(current)
            for base in reversed(current.bases):
                resolved = self._by_name.get(base.name)
                if resolved is not None and resolved.name not in seen:
                    stack.append(resolved)
        return order

    # ── Declarations ─────────────────────────────────────────────────

    def declaration_of(self, node: SyntaxNode) -> SyntaxNode | None:
        """Resolve an ``Identifier`` (or ``IdentifierPath``) to its declaration.

        Uses solc's ``referencedDeclaration`` when the id is known, and falls
        back to lexical lookup (enclosing blocks, callable parameters,
        contract state variables through the bases, then contracts).
        """
        if node in self._decl_cache:
            return self._decl_cache[node]
        decl = self._resolve_declaration(node)
        self._decl_cache[node] = decl
        return decl

    def node_by_id(self, node_id: int | None) -> SyntaxNode | None:
        if node_id is None or node_id < 0:
            return None
        for tree in self.trees:
            found = tree.by_id.get(node_id)
            if found is not None:
                return found
        return None

    def _resolve_declaration(self, node: SyntaxNode) -> SyntaxNode | None:
        found = self.node_by_id(node.referenced_declaration)
        if found is not None:
            return found
        if node.kind == "MemberAccess":
            return None
        name = node.text
        if not name:
            return None
        local = _lexical_lookup(node, name)
        if local is not None:
            return local
        contract = self.enclosing_contract(node)
        if contract is not None:
            for owner in self.base_names_closure(contract):
                var = owner.get_state_variable(name)
                if var is not None:
                    return var.node
                funcs = owner.get_functions(name)
                if funcs:
                    return funcs[0].node
                modifier = owner.get_modifier(name)
                if modifier is not None:
                    return modifier.node
        named = self._by_name.get(name)
        if named is not None:
            return named.node
        free = next((f for f in self.free_functions if f.name == name), None)
        return free.node if free is not None else None

    def variable_scope(self, decl: SyntaxNode) -> str | None:
        """Classify a ``VariableDeclaration`` node."""
        if decl.kind != "VariableDeclaration":
            return None
        if decl in self._state_by_node or (decl.parent is not None and decl.parent.kind == "ContractDefinition"):
            return VariableScope.STATE
        param = self._param_by_node.get(decl)
        if param is not None:
            return VariableScope.RETURN if param.is_return else VariableScope.PARAMETER
        return VariableScope.LOCAL

    def referenced_variable(self, expr: SyntaxNode) -> SyntaxNode | None:
        """The variable declaration an ``Identifier`` expression reads or writes."""
        if expr.kind != "Identifier":
            return None
        decl = self.declaration_of(expr)
        if decl is not None and decl.kind == "VariableDeclaration":
            return decl
        return None

    def root_variable(self, expr: SyntaxNode | None) -> SyntaxNode | None:
        """The variable at the root of an lvalue path (``a.b[c].d`` → ``a``)."""
        while expr is not None:
            if expr.kind == "Identifier":
                return self.referenced_variable(expr)
            if expr.kind == "IndexAccess" or expr.kind == "IndexRangeAccess":
                expr = expr.get("baseExpression")
            elif expr.kind == "MemberAccess":
                expr = expr.get("expression")
            elif expr.kind == "TupleExpression" and len(expr.get_list("components")) == 1:
                expr = expr.get_list("components")[0]
            else:
                return None
        return None

    # ── Types ────────────────────────────────────────────────────────

    def type_of(self, expr: SyntaxNode | None) -> str:
        """Best-effort static type string of an expression.

        Prefers solc's ``typeDescriptions``; falls back to the declared type
        of the referenced variable and to a few builtin members.
        """
        if expr is None:
            return ""
        if expr.type_string:
            return expr.type_string
        kind = expr.kind
        if kind == "Identifier":
            if expr.text == "this":
                contract = self.enclosing_contract(expr)
                return f"contract {contract.name}" if contract else "contract"
            decl = self.declaration_of(expr)
            if decl is None:
                return ""
            if decl.kind == "VariableDeclaration":
                return declared_type(decl, self)
            if decl.kind == "ContractDefinition":
                return f"type(contract {decl.name})"
            return ""
        if kind == "MemberAccess":
            base = expr.get("expression")
            if base is not None and base.kind == "Identifier":
                builtin = BUILTIN_MEMBER_TYPES.get(f"{base.text}.{expr.text}")
                if builtin:
                    return builtin
            return ""
        if kind == "FunctionCall":
            callee = expr.get("expression")
            if callee is not None and callee.kind == "ElementaryTypeNameExpression":
                return callee.text
            if callee is not None and callee.kind == "Identifier":
                decl = self.declaration_of(callee)
                if decl is not None and decl.kind == "ContractDefinition":
                    return f"{_contract_kind_word(decl)} {decl.name}"
            return ""
        if kind == "TupleExpression" and len(expr.get_list("components")) == 1:
            return self.type_of(expr.get_list("components")[0])
        return ""


BUILTIN_MEMBER_TYPES: dict[str, str] = {
    "msg.sender": "address",
    "msg.value": "uint256",
    "msg.data": "bytes calldata",
    "msg.sig": "bytes4",
    "tx.origin": "address",
    "tx.gasprice": "uint256",
    "block.timestamp": "uint256",
    "block.number": "uint256",
    "block.coinbase": "address payable",
    "block.difficulty": "uint256",
    "block.prevrandao": "uint256",
    "block.basefee": "uint256",
    "block.chainid": "uint256",
    "block.gaslimit": "uint256",
}


def _contract_kind_word(decl: SyntaxNode) -> str:
    return "interface" if decl.attr("contractKind") == "interface" else "contract"


def _lexical_lookup(node: SyntaxNode, name: str) -> SyntaxNode | None:
    """Find a local/parameter declaration of ``name`` visible at ``node``."""
    child = node
    for ancestor in node.ancestors():
        kind = ancestor.kind
        if kind in ("Block", "UncheckedBlock"):
            for stmt in ancestor.get_list("statements"):
                if stmt is None:
                    continue
                if stmt is child:
                    break
                if stmt.kind == "VariableDeclarationStatement":
                    for decl in stmt.get_list("declarations"):
                        if decl is not None and decl.name == name:
                            return decl
        elif kind == "ForStatement":
            init = ancestor.get("initializationExpression")
            if init is not None and init is not child and init.kind == "VariableDeclarationStatement":
                for decl in init.get_list("declarations"):
                    if decl is not None and decl.name == name:
                        return decl
        elif kind == "TryCatchClause":
            params = ancestor.get("parameters")
            if params is not None:
                for decl in params.get_list("parameters"):
                    if decl is not None and decl.name == name:
                        return decl
        elif kind in ("FunctionDefinition", "ModifierDefinition"):
            for role in ("parameters", "returnParameters"):
                params = ancestor.get(role)
                if params is None:
                    continue
                for decl in params.get_list("parameters"):
                    if decl is not None and decl.name == name:
                        return decl
            return None
        child = ancestor
    return None


# ── Type names ───────────────────────────────────────────────────────────────


def type_name_to_str(type_node: SyntaxNode | None) -> str:
    """Convert an AST TypeName node to a human-readable string."""
    if type_node is None:
        return ""
    nt = type_node.kind

    if nt == "ElementaryTypeName":
        return type_node.name or type_node.type_string

    if nt == "UserDefinedTypeName":
        path = type_node.get("pathNode")
        if path is not None:
            return path.name or path.attr("namePath", "")
        return type_node.name or type_node.attr("namePath", "") or type_node.type_string

    if nt == "Mapping":
        key = type_name_to_str(type_node.get("keyType"))
        val = type_name_to_str(type_node.get("valueType"))
        return f"mapping({key} => {val})"

    if nt == "ArrayTypeName":
        base = type_name_to_str(type_node.get("baseType"))
        length = type_node.get("length")
        return f"{base}[{length.text if length is not None else ''}]"

    if nt == "FunctionTypeName":
        return "function"

    return type_node.type_string or type_node.name or "unknown"


def declared_type(decl: SyntaxNode, program: Program | None = None) -> str:
    """Type string of a ``VariableDeclaration``.

    User-defined names are qualified as ``contract X`` / ``interface X`` when
    the program knows the referenced contract, mirroring solc's typeString.
    """
    if decl.type_string:
        return decl.type_string
    text = type_name_to_str(decl.get("typeName"))
    if program is not None:
        contract = program.contract(text)
        if contract is not None:
            return f"{contract.kind.value if contract.is_interface else 'contract'} {text}"
    return text


def expression_text(node: SyntaxNode | None) -> str:
    """A readable rendering of an expression node."""
    if node is None:
        return ""

    nt = node.kind

    if nt in ("Identifier", "Literal", "ElementaryTypeNameExpression"):
        text = node.text
        if nt == "Literal" and node.attr("kind") == "string":
            return f'"{text}"'
        return text

    if nt == "MemberAccess":
        return f"{expression_text(node.get('expression'))}.{node.text}"

    if nt == "IndexAccess":
        base = expression_text(node.get("baseExpression"))
        idx = expression_text(node.get("indexExpression"))
        return f"{base}[{idx}]"

    if nt == "FunctionCall":
        callee = expression_text(node.get("expression"))
        args = ", ".join(expression_text(a) for a in node.get_list("arguments"))
        return f"{callee}({args})"

    if nt == "FunctionCallOptions":
        return f"{expression_text(node.get('expression'))}{{...}}"

    if nt == "BinaryOperation":
        left = expression_text(node.get("leftExpression"))
        right = expression_text(node.get("rightExpression"))
        return f"{left} {node.text} {right}"

    if nt == "UnaryOperation":
        sub = expression_text(node.get("subExpression"))
        return f"{sub}{node.text}" if node.attr("prefix") is False else f"{node.text}{sub}"

    if nt == "Assignment":
        lhs = expression_text(node.get("leftHandSide"))
        rhs = expression_text(node.get("rightHandSide"))
        return f"{lhs} {node.text} {rhs}"

    if nt == "TupleExpression":
        return "(" + ", ".join(expression_text(c) for c in node.get_list("components")) + ")"

    if nt == "Conditional":
        return (
            f"{expression_text(node.get('condition'))} ? "
            f"{expression_text(node.get('trueExpression'))} : "
            f"{expression_text(node.get('falseExpression'))}"
        )

    if nt == "NewExpression":
        return f"new {type_name_to_str(node.get('typeName'))}"

    if nt == "VariableDeclaration":
        return node.name

    return node.name or nt


# ── AST Visitor ──────────────────────────────────────────────────────────────


class SolidityASTAnalyzer:
    """Walk solc-produced ``SyntaxTree`` source units into a ``Program``.

    Supports AST node types from Solidity 0.5.x through 0.8.x.
    """

    def analyze(self, trees: Iterable[SyntaxTree]) -> Program:
        program = Program(list(trees))
        for tree in program.trees:
            if tree.root is None:
                continue
            for node in tree.root.children:
                try:
                    if node.kind == "ContractDefinition":
                        program._add_contract(self._visit_contract(node, program))
                    elif node.kind == "FunctionDefinition":
                        func = self._visit_function(node, None)
                        func.kind = CallableKind.FREE_FUNCTION
                        program.free_functions.append(func)
                        program._register_callable(func)
                except Exception as e:
                    logger.warning("Skipping %s '%s': %s", node.kind, node.name, e)
                    program.issues.append(Issue(
                        kind=IssueKind.ANALYSIS_FAILURE,
                        message=f"failed to model {node.kind} '{node.name}': {e}",
                        contract=node.name if node.kind == "ContractDefinition" else "",
                    ))
        logger.debug(
            "Modelled %d contracts, %d free functions from %d source units",
            len(program.contracts), len(program.free_functions), len(program.trees),
        )
        return program

    # ── Contract visitor ─────────────────────────────────────────────

    def _visit_contract(self, node: SyntaxNode, program: Program) -> ContractDef:
        """Visit a ContractDefinition node."""
        kind_value = node.attr("contractKind", "contract")
        try:
            kind = ContractKind(kind_value)
        except ValueError:
            kind = ContractKind.CONTRACT
        contract = ContractDef(
            name=node.name,
            node=node,
            kind=kind,
            is_abstract_keyword=bool(node.attr("abstract", False)),
        )

        for base in node.get_list("baseContracts"):
            if base is None:
                continue
            base_name_node = base.get("baseName")
            name = ""
            if base_name_node is not None:
                name = base_name_node.name or base_name_node.attr("namePath", "")
            contract.bases.append(InheritanceSpec(
                name=name,
                node=base,
                arguments=[a for a in base.get_list("arguments") if a is not None],
            ))

        for child in node.get_list("nodes"):
            if child is None:
                continue
            try:
                self._visit_member(contract, child)
            except Exception as e:
                logger.warning(
                    "Skipping %s '%s' in %s: %s", child.kind, child.name, contract.name, e,
                )
                program.issues.append(Issue(
                    kind=IssueKind.ANALYSIS_FAILURE,
                    message=f"failed to model {child.kind} '{child.name}': {e}",
                    contract=contract.name,
                    callable=child.name,
                ))

        return contract

    def _visit_member(self, contract: ContractDef, child: SyntaxNode) -> None:
        nt = child.kind

        if nt == "FunctionDefinition":
            contract.functions.append(self._visit_function(child, contract))

        elif nt == "ModifierDefinition":
            contract.modifiers.append(self._visit_modifier(child, contract))

        elif nt == "VariableDeclaration":
            contract.state_variables.append(self._visit_state_variable(child, contract))

        elif nt == "EventDefinition":
            contract.events.append(child.name)

        elif nt == "ErrorDefinition":
            contract.errors.append(child.name)

        elif nt == "StructDefinition":
            contract.structs.append(child.name)

        elif nt == "EnumDefinition":
            contract.enums.append(child.name)

        elif nt == "UsingForDirective":
            lib = child.get("libraryName")
            lib_name = (lib.name or lib.attr("namePath", "")) if lib is not None else ""
            type_node = child.get("typeName")
            contract.using_for.append(UsingFor(
                library=lib_name,
                type_name=type_name_to_str(type_node) if type_node is not None else "*",
            ))

    # ── Callable visitors ────────────────────────────────────────────

    def _visit_function(self, node: SyntaxNode, contract: ContractDef | None) -> FunctionDef:
        """Visit a FunctionDefinition node."""
        kind_value = node.attr("kind", "function")
        try:
            kind = CallableKind(kind_value)
        except ValueError:
            kind = CallableKind.FUNCTION
        name = node.name or kind.value

        func = FunctionDef(
            name=name,
            kind=kind,
            visibility=_visibility(node.attr("visibility")),
            state_mutability=_mutability(node.attr("stateMutability")),
            body=node.get("body"),
            node=node,
            contract=contract,
            selector=node.attr("functionSelector", ""),
        )
        self._fill_callable(func, node, contract)

        for mod in node.get_list("modifiers"):
            if mod is None:
                continue
            name_node = mod.get("modifierName")
            mod_name = ""
            if name_node is not None:
                mod_name = name_node.name or name_node.attr("namePath", "")
            func.modifiers.append(ModifierInvocation(
                name=mod_name,
                node=mod,
                arguments=[a for a in mod.get_list("arguments") if a is not None],
            ))
        return func

    def _visit_modifier(self, node: SyntaxNode, contract: ContractDef) -> ModifierDef:
        """Visit a ModifierDefinition node."""
        body = node.get("body")
        modifier = ModifierDef(
            name=node.name,
            kind=CallableKind.MODIFIER,
            visibility=_visibility(node.attr("visibility")),
            body=body,
            node=node,
            contract=contract,
            has_placeholder=body is not None and any(
                n.kind == "PlaceholderStatement" for n in body.walk()
            ),
        )
        self._fill_callable(modifier, node, contract)
        return modifier

    def _fill_callable(self, func: CallableDef, node: SyntaxNode, contract: ContractDef | None) -> None:
        func.is_virtual = bool(node.attr("virtual", False)) or (
            contract is not None and contract.is_interface
        )
        overrides = node.get("overrides")
        func.has_override = overrides is not None or node.raw.get("overrides") is not None
        if overrides is not None:
            func.override_names = [
                o.name or o.attr("namePath", "") for o in overrides.get_list("overrides") if o is not None
            ]

        params = node.get("parameters")
        if params is not None:
            func.parameters = self._visit_parameters(params, is_return=False)
        returns = node.get("returnParameters")
        if returns is not None:
            func.returns = self._visit_parameters(returns, is_return=True)

    def _visit_parameters(self, params_node: SyntaxNode, is_return: bool) -> list[Parameter]:
        result: list[Parameter] = []
        for position, p in enumerate(params_node.get_list("parameters")):
            if p is None:
                continue
            result.append(Parameter(
                name=p.name,
                type_name=declared_type(p),
                position=position,
                node=p,
                storage_location=p.attr("storageLocation", ""),
                is_return=is_return,
            ))
        return result

    # ── State variable visitor ───────────────────────────────────────

    def _visit_state_variable(self, node: SyntaxNode, contract: ContractDef) -> StateDef:
        """Visit a VariableDeclaration (state variable)."""
        return StateDef(
            name=node.name,
            type_name=declared_type(node),
            node=node,
            visibility=_visibility(node.attr("visibility")),
            is_constant=bool(node.attr("constant", False)),
            is_immutable=node.attr("mutability") == "immutable",
            contract=contract,
        )


def _visibility(value: Any) -> Visibility:
    """Missing or unknown visibility defaults to ``internal``."""
    try:
        return Visibility(value) if value else Visibility.INTERNAL
    except ValueError:
        return Visibility.INTERNAL


def _mutability(value: Any) -> StateMutability:
    try:
        return StateMutability(value) if value else StateMutability.NONPAYABLE
    except ValueError:
        return StateMutability.NONPAYABLE


# ── Convenience functions ────────────────────────────────────────────────────


def analyze_ast(
    ast: dict[str, Any],
    source_code: str = "",
    file_name: str = "Contract.sol",
) -> Program:
    """Convenience function to model a single solc AST."""
    tree = SyntaxTree.from_solc_ast(ast, source_code, file_name)
    return SolidityASTAnalyzer().analyze([tree])


def analyze_compilation(
    sources_ast: dict[str, Any],
    sources: dict[str, str] | None = None,
) -> Program:
    """Model all source ASTs of a compilation (``{file: ast}``)."""
    sources = sources or {}
    trees = [
        SyntaxTree.from_solc_ast(ast, sources.get(file_name, ""), file_name)
        for file_name, ast in sources_ast.items()
    ]
    return SolidityASTAnalyzer().analyze(trees)
