"""AST access layer over the solc compact-JSON AST.

Wraps the ``nodeType`` dictionaries produced by ``solc --combined-json ast``
(or ``solcx.compile_standard``) in ``SyntaxNode`` objects that know their
parent, their ordered children and their source location. Every node of a
source unit lives in one arena (``SyntaxTree.nodes``) and carries its arena
index, so downstream graphs can use plain integer edges.

Optional fields are tolerated everywhere: a missing child is ``None`` or an
empty list, a missing ``src`` gives an all-zero location, and unknown node
kinds are walked generically in key order.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any, Iterator

from solflow.core.errors import InvalidASTError
from solflow.core.types import Location


# Child fields per node kind, in evaluation / syntactic order. Kinds that are
# not listed here fall back to dictionary order.
CHILD_FIELDS: dict[str, tuple[str, ...]] = {
    "SourceUnit": ("nodes",),
    "ContractDefinition": ("baseContracts", "nodes"),
    "InheritanceSpecifier": ("baseName", "arguments"),
    "FunctionDefinition": ("parameters", "returnParameters", "modifiers", "overrides", "body"),
    "ModifierDefinition": ("parameters", "overrides", "body"),
    "ModifierInvocation": ("modifierName", "arguments"),
    "ParameterList": ("parameters",),
    "VariableDeclaration": ("typeName", "overrides", "value"),
    "Block": ("statements",),
    "UncheckedBlock": ("statements",),
    "ExpressionStatement": ("expression",),
    "VariableDeclarationStatement": ("declarations", "initialValue"),
    "IfStatement": ("condition", "trueBody", "falseBody"),
    "ForStatement": ("initializationExpression", "condition", "loopExpression", "body"),
    "WhileStatement": ("condition", "body"),
    "DoWhileStatement": ("body", "condition"),
    "Return": ("expression",),
    "EmitStatement": ("eventCall",),
    "RevertStatement": ("errorCall",),
    "TryStatement": ("externalCall", "clauses"),
    "TryCatchClause": ("parameters", "block"),
    "Assignment": ("leftHandSide", "rightHandSide"),
    "BinaryOperation": ("leftExpression", "rightExpression"),
    "UnaryOperation": ("subExpression",),
    "Conditional": ("condition", "trueExpression", "falseExpression"),
    "FunctionCall": ("expression", "arguments"),
    "FunctionCallOptions": ("expression", "options"),
    "MemberAccess": ("expression",),
    "IndexAccess": ("baseExpression", "indexExpression"),
    "IndexRangeAccess": ("baseExpression", "startExpression", "endExpression"),
    "TupleExpression": ("components",),
    "NewExpression": ("typeName",),
    "ElementaryTypeNameExpression": ("typeName",),
    "Mapping": ("keyType", "valueType"),
    "ArrayTypeName": ("baseType", "length"),
    "UserDefinedTypeName": ("pathNode",),
    "UsingForDirective": ("libraryName", "typeName"),
    "StructDefinition": ("members",),
    "EventDefinition": ("parameters",),
    "ErrorDefinition": ("parameters",),
}

_SKIPPED_KEYS = frozenset({"typeDescriptions", "documentation", "nameLocation"})


@dataclass(eq=False)
class SyntaxNode:
    """One node of a solc AST.

    Equality and hashing are by identity: two nodes are the same node only
    if they are the same arena entry.
    """

    kind: str
    raw: dict[str, Any] = field(repr=False)
    index: int = 0
    parent: SyntaxNode | None = field(default=None, repr=False)
    role: str = ""            # field name in the parent
    role_index: int = -1      # position when the field holds a list
    children: list[SyntaxNode] = field(default_factory=list, repr=False)
    tree: SyntaxTree | None = field(default=None, repr=False)
    _fields: dict[str, Any] = field(default_factory=dict, repr=False)
    _location: Location | None = field(default=None, repr=False)

    # ── Raw attribute access ─────────────────────────────────────────────

    def attr(self, key: str, default: Any = None) -> Any:
        """Return a scalar attribute of the underlying dictionary."""
        value = self.raw.get(key, default)
        return default if value is None else value

    def get(self, role: str) -> SyntaxNode | None:
        """Return the single child stored under ``role`` (or ``None``)."""
        value = self._fields.get(role)
        if isinstance(value, SyntaxNode):
            return value
        return None

    def get_list(self, role: str) -> list[SyntaxNode | None]:
        """Return the children stored under a list-valued ``role``.

        ``None`` entries are preserved (solc uses them for omitted tuple
        components such as ``(, uint b) = f()``).
        """
        value = self._fields.get(role)
        if isinstance(value, list):
            return value
        if isinstance(value, SyntaxNode):
            return [value]
        return []

    @property
    def id(self) -> int | None:
        value = self.raw.get("id")
        return value if isinstance(value, int) else None

    @property
    def name(self) -> str:
        return self.raw.get("name") or ""

    @property
    def text(self) -> str:
        """Token text of the node: identifier, literal, operator or member."""
        kind = self.kind
        if kind in ("Identifier", "IdentifierPath", "ElementaryTypeName", "UserDefinedTypeName"):
            return self.raw.get("name") or self.raw.get("namePath") or ""
        if kind == "Literal":
            value = self.raw.get("value")
            return value if value is not None else (self.raw.get("hexValue") or "")
        if kind == "MemberAccess":
            return self.raw.get("memberName") or ""
        if kind in ("BinaryOperation", "UnaryOperation", "Assignment"):
            return self.raw.get("operator") or ""
        if kind == "ElementaryTypeNameExpression":
            type_name = self.raw.get("typeName")
            if isinstance(type_name, dict):
                return type_name.get("name") or ""
            return type_name or ""
        return self.raw.get("name") or ""

    @property
    def type_string(self) -> str:
        """The solc ``typeDescriptions.typeString`` (empty when absent)."""
        descriptions = self.raw.get("typeDescriptions") or {}
        return descriptions.get("typeString") or ""

    @property
    def referenced_declaration(self) -> int | None:
        value = self.raw.get("referencedDeclaration")
        return value if isinstance(value, int) else None

    # ── Location ─────────────────────────────────────────────────────────

    @property
    def location(self) -> Location:
        if self._location is None:
            self._location = self.tree.location_of(self) if self.tree else Location()
        return self._location

    # ── Navigation ───────────────────────────────────────────────────────

    def ancestors(self) -> Iterator[SyntaxNode]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def find_ancestor(self, *kinds: str) -> SyntaxNode | None:
        for node in self.ancestors():
            if node.kind in kinds:
                return node
        return None

    def walk(self) -> Iterator[SyntaxNode]:
        """Pre-order traversal of this subtree (iterative)."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def is_inside(self, other: SyntaxNode) -> bool:
        return self is other or any(a is other for a in self.ancestors())

    def __repr__(self) -> str:
        text = self.text
        return f"<{self.kind}#{self.index}{' ' + text if text else ''}>"


class SyntaxTree:
    """Arena of ``SyntaxNode`` objects for one source unit."""

    def __init__(self, file_name: str = "", source_code: str = "") -> None:
        self.file_name = file_name
        self.source_code = source_code
        self.nodes: list[SyntaxNode] = []
        self.by_id: dict[int, SyntaxNode] = {}
        self.root: SyntaxNode | None = None
        # solc ``src`` offsets count UTF-8 bytes
        self._source_bytes = source_code.encode("utf-8")
        self._line_starts = _line_starts(self._source_bytes)

    @classmethod
    def from_solc_ast(
        cls,
        ast: dict[str, Any],
        source_code: str = "",
        file_name: str = "",
    ) -> SyntaxTree:
        """Build a tree from a solc JSON AST (normally a ``SourceUnit``)."""
        if not isinstance(ast, dict) or "nodeType" not in ast:
            raise InvalidASTError("expected a solc AST dictionary with a 'nodeType' key")
        tree = cls(file_name=file_name or ast.get("absolutePath", ""), source_code=source_code)
        tree.root = tree._build(ast, None, "", -1)
        return tree

    def _build(
        self,
        raw: dict[str, Any],
        parent: SyntaxNode | None,
        role: str,
        role_index: int,
    ) -> SyntaxNode:
        # Iterative; expression nesting may exceed the recursion limit.
        root = self._new_node(raw, parent, role, role_index)
        stack = [root]
        while stack:
            node = stack.pop()
            for child_role, value in _child_items(node.raw):
                if isinstance(value, dict):
                    child = self._new_node(value, node, child_role, -1)
                    node._fields[child_role] = child
                    node.children.append(child)
                    stack.append(child)
                else:
                    items: list[SyntaxNode | None] = []
                    for position, item in enumerate(value):
                        if isinstance(item, dict) and "nodeType" in item:
                            child = self._new_node(item, node, child_role, position)
                            items.append(child)
                            node.children.append(child)
                            stack.append(child)
                        else:
                            items.append(None)
                    node._fields[child_role] = items
        return root

    def _new_node(
        self,
        raw: dict[str, Any],
        parent: SyntaxNode | None,
        role: str,
        role_index: int,
    ) -> SyntaxNode:
        node = SyntaxNode(
            kind=raw.get("nodeType", ""),
            raw=raw,
            index=len(self.nodes),
            parent=parent,
            role=role,
            role_index=role_index,
            tree=self,
        )
        self.nodes.append(node)
        if node.id is not None:
            self.by_id[node.id] = node
        return node

    def location_of(self, node: SyntaxNode) -> Location:
        """Translate the ``src`` triple of a node into a ``Location``."""
        src = node.raw.get("src") or ""
        parts = src.split(":")
        if len(parts) < 2:
            return Location(file_path=self.file_name)
        try:
            offset, length = int(parts[0]), int(parts[1])
        except ValueError:
            return Location(file_path=self.file_name)
        if offset < 0 or not self.source_code:
            return Location(file_path=self.file_name, offset=max(offset, 0), length=max(length, 0))
        start_line, start_col = self._position(offset)
        end_line, end_col = self._position(offset + max(length - 1, 0))
        return Location(
            file_path=self.file_name,
            start_line=start_line,
            end_line=end_line,
            start_col=start_col,
            end_col=end_col,
            offset=offset,
            length=length,
        )

    def _position(self, offset: int) -> tuple[int, int]:
        """1-based line and character column of a byte offset."""
        line_index = bisect.bisect_right(self._line_starts, offset) - 1
        prefix = self._source_bytes[self._line_starts[line_index]:offset]
        return line_index + 1, len(prefix.decode("utf-8", errors="replace")) + 1

    def __len__(self) -> int:
        return len(self.nodes)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _line_starts(source: bytes) -> list[int]:
    starts = [0]
    index = source.find(b"\n")
    while index != -1:
        starts.append(index + 1)
        index = source.find(b"\n", index + 1)
    return starts


def _child_items(raw: dict[str, Any]) -> list[tuple[str, Any]]:
    """Child-bearing fields of a raw node, in ``CHILD_FIELDS`` order."""
    kind = raw.get("nodeType", "")
    order = CHILD_FIELDS.get(kind)
    if order is None:
        order = tuple(k for k in raw if k not in _SKIPPED_KEYS)
    items: list[tuple[str, Any]] = []
    for key in order:
        value = raw.get(key)
        if isinstance(value, dict) and "nodeType" in value:
            items.append((key, value))
        elif isinstance(value, list) and any(isinstance(v, dict) and "nodeType" in v for v in value):
            items.append((key, value))
        elif isinstance(value, list) and key in ("components", "arguments", "declarations", "statements"):
            items.append((key, value))
    return items
