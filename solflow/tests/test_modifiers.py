"""Tests for solflow.core.modifiers."""

from __future__ import annotations

from solflow.tests import solc_ast as sol
from solflow.tests.conftest import vault_contract


def _owned():
    return [
        sol.contract(
            "Owned",
            sol.state("owner", "address"),
            sol.modifier("onlyOwner", body=[
                sol.require(sol.binop(sol.member(sol.ident("msg"), "sender"), "==", sol.ident("owner"))),
                sol.placeholder(),
            ], virtual=True),
            sol.function("setOwner", [sol.var("who", "address")],
                         body=[sol.expr(sol.assign(sol.ident("owner"), sol.ident("who")))],
                         modifiers=[sol.modifier_call("onlyOwner")]),
        ),
        sol.contract(
            "Managed",
            sol.modifier("onlyOwner", body=[sol.placeholder()]),
            bases=["Owned"],
        ),
    ]


class TestModifierResolution:
    def test_resolves_in_declaring_contract(self, make_engine):
        engine = make_engine(*_owned())
        set_owner = engine.callable("Owned", "setOwner")
        resolved = engine.modifiers.modifiers_of(set_owner)
        assert [(inv.name, m.qualified_name) for inv, m in resolved] == [("onlyOwner", "Owned.onlyOwner")]

    def test_most_derived_override_in_context(self, make_engine):
        engine = make_engine(*_owned())
        invocation = engine.callable("Owned", "setOwner").modifiers[0]
        resolved = engine.modifiers.resolve_modifier(invocation, context=engine.contract("Managed"))
        assert resolved.qualified_name == "Managed.onlyOwner"

    def test_unknown_modifier_is_none(self, make_engine):
        engine = make_engine(sol.contract(
            "A", sol.function("f", body=[], modifiers=[sol.modifier_call("missing")]),
        ))
        assert engine.modifiers.modifiers_of(engine.callable("A", "f")) == []

    def test_base_constructor_arguments(self, make_engine):
        engine = make_engine(
            sol.contract("Base", sol.state("x"), sol.constructor(
                [sol.var("v")], body=[sol.expr(sol.assign(sol.ident("x"), sol.ident("v")))],
            )),
            sol.contract("Direct", bases=[sol.inherit("Base", sol.lit(5))]),
            sol.contract(
                "ViaConstructor",
                sol.constructor(modifiers=[sol.modifier_call("Base", sol.lit(7))]),
                bases=["Base"],
            ),
        )
        base_ctor = engine.contract("Base").constructor
        direct = engine.modifiers.base_constructor_arguments(engine.contract("Direct"))
        via = engine.modifiers.base_constructor_arguments(engine.contract("ViaConstructor"))
        assert [(c, [a.text for a in args]) for c, args in direct] == [(base_ctor, ["5"])]
        assert [(c, [a.text for a in args]) for c, args in via] == [(base_ctor, ["7"])]
        invocation = engine.contract("ViaConstructor").constructor.modifiers[0]
        assert engine.modifiers.is_base_constructor_call(invocation)
        assert engine.modifiers.resolve_modifier(invocation) is None


class TestLockGuards:
    def test_reentrancy_guard_is_a_lock(self, make_engine):
        engine = make_engine(*vault_contract(guarded=True))
        guard = engine.callable("Vault", "nonReentrant")
        assert engine.modifiers.is_lock_guard(guard)
        assert engine.modifiers.is_lock_guarded(engine.callable("Vault", "withdraw"))

    def test_access_check_is_not_a_lock(self, make_engine):
        engine = make_engine(*_owned())
        assert not engine.modifiers.is_lock_guard(engine.callable("Owned", "onlyOwner"))
        assert not engine.modifiers.is_lock_guarded(engine.callable("Owned", "setOwner"))

    def test_unguarded_function(self, make_engine):
        engine = make_engine(*vault_contract(guarded=False))
        assert not engine.modifiers.is_lock_guarded(engine.callable("Vault", "withdraw"))

    def test_lock_through_internal_helper(self, make_engine):
        engine = make_engine(sol.contract(
            "Guarded",
            sol.state("status"),
            sol.function("_enter", body=[
                sol.require(sol.binop(sol.ident("status"), "!=", sol.lit(2))),
                sol.expr(sol.assign(sol.ident("status"), sol.lit(2))),
            ], visibility="private"),
            sol.function("_exit", body=[sol.expr(sol.assign(sol.ident("status"), sol.lit(1)))],
                         visibility="private"),
            sol.modifier("nonReentrant", body=[
                sol.expr(sol.call(sol.ident("_enter"))),
                sol.placeholder(),
                sol.expr(sol.call(sol.ident("_exit"))),
            ]),
        ))
        assert engine.modifiers.is_lock_guard(engine.callable("Guarded", "nonReentrant"))
