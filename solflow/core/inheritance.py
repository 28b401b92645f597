"""Inheritance graph: bases, C3 linearization, overrides and diamonds.

Solidity linearizes bases with C3, listing the most derived contract first
and merging the base linearizations right to left (the last declared base is
the "most derived" one). Everything override-related (most-derived lookup,
``super`` targets, diamond conflicts) is answered from that order.

Structural problems of the analysed program are recorded as ``Issue`` facts
and never raise:
  - a base name with no matching contract       → unresolved-base
  - a contract reachable from itself via bases   → inheritance-cycle
  - a C3 merge that cannot proceed               → linearization-failure
  - a member inherited from several unrelated
    bases without a disambiguating override      → diamond-conflict
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from solflow.core.ast_analyzer import CallableDef, ContractDef, Program
from solflow.core.errors import Issue, IssueKind
from solflow.core.types import CallableKind

logger = logging.getLogger(__name__)


# ── Data Structures ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InheritanceEdge:
    derived: str
    base: str


@dataclass(frozen=True, eq=False)
class OverrideRecord:
    """``overriding`` replaces ``overridden`` in every contract deriving from both."""
    overriding: CallableDef
    overridden: CallableDef


@dataclass(frozen=True)
class Diamond:
    """``base`` is inherited by ``contract`` through more than one direct base."""
    contract: str
    base: str
    via: tuple[str, ...]


@dataclass(eq=False)
class DiamondConflict:
    """A member with several competing most-derived definitions."""
    contract: str
    base: str
    via: tuple[str, ...]
    member: str
    candidates: list[CallableDef] = field(default_factory=list)

    def to_issue(self) -> Issue:
        return Issue(
            kind=IssueKind.DIAMOND_CONFLICT,
            message=(
                f"'{self.member}' is inherited from {', '.join(self.via)} "
                f"without a disambiguating override"
            ),
            contract=self.contract,
            callable=self.member,
            details=(("base", self.base), ("via", self.via)),
        )


# ── Inheritance Graph ────────────────────────────────────────────────────────


class InheritanceGraph:
    """Inheritance queries over all contracts of a ``Program``."""

    def __init__(self, program: Program) -> None:
        self.program = program
        self.issues: list[Issue] = []
        self.cycles: list[list[str]] = []
        self._direct: dict[ContractDef, list[ContractDef]] = {}
        self._linearization: dict[ContractDef, list[ContractDef]] = {}
        self._derived: dict[ContractDef, list[ContractDef]] | None = None
        self._conflicts: dict[ContractDef, list[DiamondConflict]] = {}
        self._depth: dict[ContractDef, int] = {}

        for contract in program.contracts:
            resolved: list[ContractDef] = []
            for spec in contract.bases:
                base = program.contract(spec.name)
                if base is None:
                    self.issues.append(Issue(
                        kind=IssueKind.UNRESOLVED_BASE,
                        message=f"base contract '{spec.name}' of '{contract.name}' is not defined",
                        contract=contract.name,
                    ))
                    logger.debug("Unresolved base %s of %s", spec.name, contract.name)
                    continue
                resolved.append(base)
            self._direct[contract] = resolved

        self._cyclic = self._find_cycles()

    # ── Bases ────────────────────────────────────────────────────────

    def direct_bases(self, contract: ContractDef) -> list[ContractDef]:
        """Resolved bases in declaration order (unknown names omitted)."""
        return list(self._direct.get(contract, []))

    def unresolved_bases(self, contract: ContractDef) -> list[str]:
        known = {b.name for b in self._direct.get(contract, [])}
        return [spec.name for spec in contract.bases if spec.name not in known]

    @property
    def edges(self) -> list[InheritanceEdge]:
        return [
            InheritanceEdge(derived=c.name, base=b.name)
            for c, bases in self._direct.items()
            for b in bases
        ]

    def ancestors(self, contract: ContractDef) -> list[ContractDef]:
        """Transitive bases in linearization order, excluding ``contract``."""
        return [c for c in self.linearization(contract) if c is not contract]

    def is_ancestor(self, ancestor: ContractDef, contract: ContractDef) -> bool:
        return ancestor is not contract and ancestor in self.linearization(contract)

    def derived_contracts(self, contract: ContractDef) -> list[ContractDef]:
        """Every contract whose linearization contains ``contract`` (itself included)."""
        if self._derived is None:
            derived: dict[ContractDef, list[ContractDef]] = {c: [] for c in self.program.contracts}
            for c in self.program.contracts:
                for ancestor in self.linearization(c):
                    derived.setdefault(ancestor, []).append(c)
            self._derived = derived
        return list(self._derived.get(contract, [contract]))

    def inheritance_depth(self, contract: ContractDef) -> int:
        """Length of the longest base chain above ``contract`` (0 without bases)."""
        if contract in self._depth:
            return self._depth[contract]
        # Post-order over the base graph; edges back into the current path
        # (cycles) are ignored.
        stack: list[tuple[ContractDef, bool]] = [(contract, False)]
        on_path: set[ContractDef] = set()
        while stack:
            current, expanded = stack.pop()
            if current in self._depth:
                continue
            if not expanded:
                on_path.add(current)
                stack.append((current, True))
                for base in self._direct.get(current, []):
                    if base not in self._depth and base not in on_path:
                        stack.append((base, False))
                continue
            on_path.discard(current)
            depths = [self._depth[b] for b in self._direct.get(current, []) if b in self._depth]
            self._depth[current] = 1 + max(depths) if depths else 0
        return self._depth[contract]

    # ── Cycles ───────────────────────────────────────────────────────

    def _find_cycles(self) -> set[ContractDef]:
        white, grey, black = 0, 1, 2
        color: dict[ContractDef, int] = {c: white for c in self.program.contracts}
        cyclic: set[ContractDef] = set()

        for root in self.program.contracts:
            if color[root] != white:
                continue
            path: list[ContractDef] = []
            stack: list[tuple[ContractDef, int]] = [(root, 0)]
            while stack:
                node, position = stack.pop()
                if position == 0:
                    color[node] = grey
                    path.append(node)
                bases = self._direct.get(node, [])
                if position < len(bases):
                    stack.append((node, position + 1))
                    base = bases[position]
                    state = color.get(base, white)
                    if state == grey:
                        cycle = path[path.index(base):]
                        cyclic.update(cycle)
                        names = [c.name for c in cycle]
                        self.cycles.append(names)
                        self.issues.append(Issue(
                            kind=IssueKind.INHERITANCE_CYCLE,
                            message=f"inheritance cycle: {' -> '.join(names + [base.name])}",
                            contract=base.name,
                        ))
                        logger.warning("Inheritance cycle: %s", " -> ".join(names))
                    elif state == white:
                        stack.append((base, 0))
                else:
                    color[node] = black
                    path.pop()
        return cyclic

    # ── Linearization ────────────────────────────────────────────────

    def linearization(self, contract: ContractDef) -> list[ContractDef]:
        """C3 linearization, most derived first (``contract`` itself first)."""
        cached = self._linearization.get(contract)
        if cached is not None:
            return cached

        closure = self.program.base_names_closure(contract)
        if any(c in self._cyclic for c in closure):
            result = self._fallback(contract)
        else:
            result = self._c3(contract)
        self._linearization[contract] = result
        return result

    def _c3(self, contract: ContractDef) -> list[ContractDef]:
        bases = self._direct.get(contract, [])
        if not bases:
            return [contract]
        sequences = [list(self.linearization(b)) for b in reversed(bases)]
        sequences.append(list(reversed(bases)))
        merged: list[ContractDef] = [contract]

        while True:
            sequences = [s for s in sequences if s]
            if not sequences:
                return merged
            head = None
            for seq in sequences:
                candidate = seq[0]
                if not any(candidate in s[1:] for s in sequences):
                    head = candidate
                    break
            if head is None:
                self.issues.append(Issue(
                    kind=IssueKind.LINEARIZATION_FAILURE,
                    message=f"linearization of inheritance graph of '{contract.name}' is impossible",
                    contract=contract.name,
                ))
                logger.warning("C3 linearization failed for %s; using DFS order", contract.name)
                return self._fallback(contract)
            merged.append(head)
            for seq in sequences:
                if seq[0] is head:
                    del seq[0]

    def _fallback(self, contract: ContractDef) -> list[ContractDef]:
        return self.program.base_names_closure(contract)

    # ── Abstraction / virtuality ─────────────────────────────────────

    def is_abstract(self, contract: ContractDef) -> bool:
        """Explicitly abstract, an interface, or has an unimplemented member."""
        if contract.is_abstract_keyword or contract.is_interface:
            return True
        seen: set[tuple] = set()
        for owner in self.linearization(contract):
            for member in owner.callables:
                if member.kind == CallableKind.CONSTRUCTOR:
                    continue
                key = _signature_key(member)
                if key in seen:
                    continue
                seen.add(key)
                if not member.is_implemented:
                    return True
        return False

    def is_virtual(self, callable_def: CallableDef) -> bool:
        return callable_def.is_virtual

    def is_override(self, callable_def: CallableDef) -> bool:
        return callable_def.has_override or bool(self.overridden(callable_def))

    # ── Overrides ────────────────────────────────────────────────────

    def overridden(self, callable_def: CallableDef) -> list[CallableDef]:
        """The definitions ``callable_def`` directly overrides."""
        contract = callable_def.contract
        if contract is None or callable_def.kind == CallableKind.CONSTRUCTOR:
            return []
        key = _signature_key(callable_def)
        definitions = [
            member
            for owner in self.ancestors(contract)
            for member in owner.callables
            if member.kind == callable_def.kind and _signature_key(member) == key
        ]
        return self._maximal(definitions)

    def overridden_by(self, callable_def: CallableDef) -> list[CallableDef]:
        """Every definition (in any derived contract) that overrides ``callable_def``."""
        contract = callable_def.contract
        if contract is None:
            return []
        key = _signature_key(callable_def)
        result: list[CallableDef] = []
        for derived in self.derived_contracts(contract):
            if derived is contract:
                continue
            for member in derived.callables:
                if member.kind == callable_def.kind and _signature_key(member) == key:
                    result.append(member)
        return result

    @property
    def override_records(self) -> list[OverrideRecord]:
        records: list[OverrideRecord] = []
        for contract in self.program.contracts:
            for member in contract.callables:
                for base_member in self.overridden(member):
                    records.append(OverrideRecord(overriding=member, overridden=base_member))
        return records

    def override_candidates(
        self,
        contract: ContractDef,
        name: str,
        arity: int | None = None,
        kind: CallableKind | None = None,
        start_after: ContractDef | None = None,
    ) -> list[CallableDef]:
        """Most-derived definitions of ``name`` visible from ``contract``.

        Walks the linearization of ``contract`` (after ``start_after`` when
        given, for ``super`` lookups). One result is the normal case; several
        mean a diamond without a disambiguating override, and all of them are
        returned.
        """
        order = self.linearization(contract)
        if start_after is not None:
            if start_after in order:
                order = order[order.index(start_after) + 1:]
            else:
                order = order[1:]

        by_key: dict[tuple, list[CallableDef]] = {}
        for owner in order:
            for member in owner.callables:
                if member.name != name or member.kind == CallableKind.CONSTRUCTOR:
                    continue
                if kind is not None and member.kind != kind:
                    continue
                if arity is not None and member.arity != arity:
                    continue
                by_key.setdefault(_signature_key(member), []).append(member)

        result: list[CallableDef] = []
        for definitions in by_key.values():
            winners = self._maximal(definitions)
            # The first owner in linearization order is the override; a
            # second maximal definition only competes when it is not an
            # ancestor of the first.
            first = definitions[0]
            if first.contract is contract or len(winners) == 1:
                result.append(first)
            else:
                result.extend(winners)
        return result

    def most_derived_override(
        self,
        contract: ContractDef,
        name: str,
        arity: int | None = None,
    ) -> CallableDef | None:
        """The unique most-derived definition, or ``None`` if absent or ambiguous."""
        candidates = self.override_candidates(contract, name, arity)
        return candidates[0] if len(candidates) == 1 else None

    def _maximal(self, definitions: list[CallableDef]) -> list[CallableDef]:
        """Definitions whose contract is not an ancestor of another's."""
        result: list[CallableDef] = []
        for d in definitions:
            if d.contract is None:
                continue
            dominated = any(
                other is not d
                and other.contract is not None
                and other.contract is not d.contract
                and self.is_ancestor(d.contract, other.contract)
                for other in definitions
            )
            if not dominated:
                result.append(d)
        return result

    # ── Diamonds ─────────────────────────────────────────────────────

    def diamonds(self, contract: ContractDef) -> list[Diamond]:
        """Bases reached through more than one direct base of ``contract``."""
        reached: dict[ContractDef, list[str]] = {}
        for direct in self._direct.get(contract, []):
            for ancestor in self.linearization(direct):
                reached.setdefault(ancestor, []).append(direct.name)
        return [
            Diamond(contract=contract.name, base=base.name, via=tuple(via))
            for base, via in reached.items()
            if len(via) > 1
        ]

    def diamond_conflicts(self, contract: ContractDef) -> list[DiamondConflict]:
        """Members inherited from several unrelated bases without an override here."""
        cached = self._conflicts.get(contract)
        if cached is not None:
            return cached

        conflicts: list[DiamondConflict] = []
        own_keys = {_signature_key(m) for m in contract.callables}
        shared = {d.base: d for d in self.diamonds(contract)}
        by_key: dict[tuple, list[CallableDef]] = {}
        for owner in self.ancestors(contract):
            for member in owner.callables:
                if member.kind == CallableKind.CONSTRUCTOR:
                    continue
                by_key.setdefault(_signature_key(member), []).append(member)

        for key, definitions in by_key.items():
            if key in own_keys:
                continue
            winners = self._maximal(definitions)
            if len(winners) < 2:
                continue
            base_name = ""
            for d in definitions:
                if d.contract is not None and d.contract.name in shared:
                    base_name = d.contract.name
                    break
            conflict = DiamondConflict(
                contract=contract.name,
                base=base_name,
                via=tuple(w.contract.name for w in winners if w.contract is not None),
                member=winners[0].name,
                candidates=winners,
            )
            conflicts.append(conflict)

        self._conflicts[contract] = conflicts
        return conflicts

    def all_issues(self) -> list[Issue]:
        """Structural issues, including diamond conflicts of every contract."""
        issues = list(self.issues)
        for contract in self.program.contracts:
            issues.extend(c.to_issue() for c in self.diamond_conflicts(contract))
        return issues


def _signature_key(callable_def: CallableDef) -> tuple:
    return (callable_def.name, tuple(p.type_name for p in callable_def.parameters))


# ── Convenience ──────────────────────────────────────────────────────────────


def build_inheritance_graph(program: Program) -> InheritanceGraph:
    return InheritanceGraph(program)
