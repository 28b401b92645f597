"""Tests for solflow.core.inheritance."""

from __future__ import annotations

from solflow.core.errors import IssueKind
from solflow.tests import solc_ast as sol


def _foo(override: bool = False, virtual: bool = True):
    return sol.function("foo", body=[], virtual=virtual, override=override)


def _diamond(derived_overrides: bool):
    """A <- B, A <- C, D is B, C; B and C both override foo()."""
    members = [_foo(override=True, virtual=False)] if derived_overrides else []
    return [
        sol.contract("A", _foo()),
        sol.contract("B", _foo(override=True), bases=["A"]),
        sol.contract("C", _foo(override=True), bases=["A"]),
        sol.contract("D", *members, bases=["B", "C"]),
    ]


def _names(contracts):
    return [c.name for c in contracts]


class TestLinearization:
    def test_c3_order_is_most_derived_first(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        d = engine.contract("D")
        assert _names(engine.inheritance.linearization(d)) == ["D", "C", "B", "A"]
        assert _names(engine.inheritance.ancestors(d)) == ["C", "B", "A"]

    def test_single_contract_linearizes_to_itself(self, make_engine):
        engine = make_engine(sol.contract("A"))
        assert _names(engine.inheritance.linearization(engine.contract("A"))) == ["A"]

    def test_inconsistent_order_is_reported(self, make_engine):
        engine = make_engine(
            sol.contract("A"),
            sol.contract("B"),
            sol.contract("X", bases=["A", "B"]),
            sol.contract("Y", bases=["B", "A"]),
            sol.contract("Z", bases=["X", "Y"]),
        )
        order = engine.inheritance.linearization(engine.contract("Z"))
        assert order[0].name == "Z"
        assert set(_names(order)) == {"Z", "X", "Y", "A", "B"}
        kinds = [i.kind for i in engine.issues()]
        assert IssueKind.LINEARIZATION_FAILURE in kinds

    def test_inheritance_depth(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        assert engine.inheritance.inheritance_depth(engine.contract("A")) == 0
        assert engine.inheritance.inheritance_depth(engine.contract("B")) == 1
        assert engine.inheritance.inheritance_depth(engine.contract("D")) == 2

    def test_derived_contracts(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        derived = engine.inheritance.derived_contracts(engine.contract("A"))
        assert set(_names(derived)) == {"A", "B", "C", "D"}


class TestStructuralIssues:
    def test_cycle_is_reported_and_terminates(self, make_engine):
        engine = make_engine(
            sol.contract("A", bases=["B"]),
            sol.contract("B", bases=["A"]),
        )
        order = engine.inheritance.linearization(engine.contract("A"))
        assert order[0].name == "A"
        assert engine.inheritance.cycles
        assert IssueKind.INHERITANCE_CYCLE in [i.kind for i in engine.issues()]
        assert engine.inheritance.inheritance_depth(engine.contract("A")) >= 1

    def test_unresolved_base(self, make_engine):
        engine = make_engine(sol.contract("A", bases=["Missing"]))
        a = engine.contract("A")
        assert engine.inheritance.direct_bases(a) == []
        assert engine.inheritance.unresolved_bases(a) == ["Missing"]
        issues = [i for i in engine.issues() if i.kind == IssueKind.UNRESOLVED_BASE]
        assert len(issues) == 1 and issues[0].contract == "A"


class TestOverrides:
    def test_derived_override_wins(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        d = engine.contract("D")
        candidates = engine.inheritance.override_candidates(d, "foo")
        assert [c.qualified_name for c in candidates] == ["D.foo"]
        assert engine.inheritance.diamond_conflicts(d) == []

    def test_diamond_without_override_is_a_conflict(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=False))
        d = engine.contract("D")
        candidates = engine.inheritance.override_candidates(d, "foo")
        assert sorted(c.qualified_name for c in candidates) == ["B.foo", "C.foo"]
        assert engine.inheritance.most_derived_override(d, "foo") is None
        conflicts = engine.inheritance.diamond_conflicts(d)
        assert len(conflicts) == 1
        assert conflicts[0].member == "foo"
        assert set(conflicts[0].via) == {"B", "C"}
        assert IssueKind.DIAMOND_CONFLICT in [i.kind for i in engine.issues()]

    def test_shared_base_without_competing_members_is_not_a_conflict(self, make_engine):
        engine = make_engine(
            sol.contract("A", _foo()),
            sol.contract("B", bases=["A"]),
            sol.contract("C", bases=["A"]),
            sol.contract("D", bases=["B", "C"]),
        )
        d = engine.contract("D")
        diamonds = engine.inheritance.diamonds(d)
        assert [(x.base, set(x.via)) for x in diamonds] == [("A", {"B", "C"})]
        assert engine.inheritance.diamond_conflicts(d) == []
        assert engine.inheritance.most_derived_override(d, "foo").qualified_name == "A.foo"

    def test_overridden_and_overridden_by(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        d_foo = engine.callable("D", "foo")
        a_foo = engine.callable("A", "foo")
        assert sorted(c.qualified_name for c in engine.inheritance.overridden(d_foo)) == ["B.foo", "C.foo"]
        assert {c.qualified_name for c in engine.inheritance.overridden_by(a_foo)} == {"B.foo", "C.foo", "D.foo"}
        assert engine.inheritance.is_override(d_foo)
        assert engine.inheritance.is_virtual(a_foo)

    def test_super_lookup_starts_after_owner(self, make_engine):
        engine = make_engine(*_diamond(derived_overrides=True))
        d = engine.contract("D")
        after_c = engine.inheritance.override_candidates(d, "foo", start_after=engine.contract("C"))
        assert [c.qualified_name for c in after_c] == ["B.foo"]


class TestAbstractness:
    def test_unimplemented_member_makes_contract_abstract(self, make_engine):
        engine = make_engine(
            sol.contract("Base", sol.function("run", body=None, virtual=True), abstract=True),
            sol.contract("Impl", sol.function("run", body=[], override=True), bases=["Base"]),
            sol.contract("Partial", bases=["Base"]),
            sol.interface("I", sol.function("run", visibility="external")),
        )
        inheritance = engine.inheritance
        assert inheritance.is_abstract(engine.contract("Base"))
        assert not inheritance.is_abstract(engine.contract("Impl"))
        assert inheritance.is_abstract(engine.contract("Partial"))
        assert inheritance.is_abstract(engine.contract("I"))
