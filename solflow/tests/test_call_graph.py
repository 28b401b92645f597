"""Tests for solflow.core.call_graph: call classification and resolution."""

from __future__ import annotations

from solflow.core.call_graph import CallKind, ResolutionKind, call_options, member_name, receiver
from solflow.tests import solc_ast as sol
from solflow.tests.conftest import find_calls


def _call_stmt(name, *args):
    return sol.expr(sol.call(sol.ident(name), *args))


def _chain(length: int):
    """f0 -> f1 -> ... -> f{length}."""
    functions = [
        sol.function(f"f{i}", body=[_call_stmt(f"f{i + 1}")], visibility="internal")
        for i in range(length)
    ]
    functions.append(sol.function(f"f{length}", body=[], visibility="internal"))
    return sol.contract("Chain", *functions)


def _token_system():
    return [
        sol.interface("IToken", sol.function("transfer", [sol.var("amount")], visibility="external")),
        sol.contract(
            "Token",
            sol.function("transfer", [sol.var("amount")], body=[], visibility="external", override=True),
            bases=["IToken"],
        ),
        sol.contract(
            "Client",
            sol.function("viaAddress", [sol.var("a", "address")], body=[
                sol.expr(sol.call(sol.member(sol.convert("IToken", sol.ident("a")), "transfer"), sol.lit(1))),
            ]),
            sol.function("viaParameter", [sol.var("t", "IToken")], body=[
                sol.expr(sol.call(sol.member(sol.ident("t"), "transfer"), sol.lit(1))),
            ]),
        ),
    ]


class TestClassification:
    def test_builtin_and_low_level(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a", "address")],
            body=[
                sol.require(sol.lit(True)),
                sol.expr(sol.call(sol.member(sol.ident("a"), "call"), sol.lit("", kind="string"))),
                sol.expr(sol.call(sol.member(sol.ident("abi"), "encode"), sol.ident("a"))),
            ],
        )))
        f = engine.callable("A", "f")
        calls = engine.calls
        require = find_calls(f, "require")[0]
        low = find_calls(f, "call")[0]
        encode = find_calls(f, "encode")[0]
        assert calls.call_kind(require) == CallKind.BUILTIN
        assert calls.call_kind(low) == CallKind.LOW_LEVEL
        assert calls.call_kind(encode) == CallKind.BUILTIN
        assert engine.resolve_call(require) == []
        assert engine.resolve_call(encode) == []
        assert engine.is_unresolved(low)
        assert calls.is_external_call(low)
        assert not calls.is_external_call(require)

    def test_event_and_type_conversion(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.event("Done", sol.var("v")),
            sol.function("f", [sol.var("a")], body=[
                sol.emit("Done", sol.ident("a")),
                sol.expr(sol.convert("address", sol.ident("a"))),
            ]),
        ))
        f = engine.callable("A", "f")
        sites = [n for n in f.body.walk() if n.kind == "FunctionCall"]
        kinds = {engine.calls.call_kind(s) for s in sites}
        assert kinds == {CallKind.EVENT, CallKind.TYPE_CONVERSION}

    def test_call_site_helpers(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a", "address"), sol.var("v")],
            body=[sol.expr(sol.call_with(
                sol.member(sol.ident("a"), "call"), {"value": sol.ident("v"), "gas": sol.lit(5000)},
                sol.lit("", kind="string"),
            ))],
        )))
        site = find_calls(engine.callable("A", "f"), "call")[0]
        assert member_name(site) == "call"
        assert receiver(site).text == "a"
        assert set(call_options(site)) == {"value", "gas"}
        assert call_options(site)["value"].text == "v"


class TestResolution:
    def test_internal_call(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f", body=[_call_stmt("g")]),
            sol.function("g", body=[], visibility="internal"),
        ))
        site = find_calls(engine.callable("A", "f"), "g")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [(ResolutionKind.INTERNAL, "A.g")]

    def test_inherited_call(self, make_engine):
        engine = make_engine(
            sol.contract("A", sol.function("g", body=[], visibility="internal")),
            sol.contract("B", sol.function("f", body=[_call_stmt("g")]), bases=["A"]),
        )
        site = find_calls(engine.callable("B", "f"), "g")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [(ResolutionKind.INHERITED, "A.g")]

    def _virtual(self):
        return [
            sol.contract(
                "A",
                sol.function("f", body=[_call_stmt("g")]),
                sol.function("g", body=[], visibility="internal", virtual=True),
            ),
            sol.contract(
                "B",
                sol.function("g", body=[sol.expr(sol.call(sol.member(sol.ident("super"), "g")))],
                             visibility="internal", override=True),
                bases=["A"],
            ),
        ]

    def test_virtual_dispatch_includes_overrides(self, make_engine):
        engine = make_engine(*self._virtual())
        site = find_calls(engine.callable("A", "f"), "g")[0]
        assert {c.qualified_name for c in engine.calls.callees(site)} == {"A.g", "B.g"}

    def test_virtual_dispatch_can_be_disabled(self, make_engine):
        engine = make_engine(*self._virtual(), resolve_virtual_dispatch=False)
        site = find_calls(engine.callable("A", "f"), "g")[0]
        assert [c.qualified_name for c in engine.calls.callees(site)] == ["A.g"]

    def test_context_resolution_takes_first_match(self, make_engine):
        engine = make_engine(*self._virtual())
        site = find_calls(engine.callable("A", "f"), "g")[0]
        in_a = engine.calls.resolve_call(site, context=engine.contract("A"))
        in_b = engine.calls.resolve_call(site, context=engine.contract("B"))
        assert [e.callee.qualified_name for e in in_a] == ["A.g"]
        assert [e.callee.qualified_name for e in in_b] == ["B.g"]

    def test_super_call(self, make_engine):
        engine = make_engine(*self._virtual())
        site = find_calls(engine.callable("B", "g"), "g")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [(ResolutionKind.SUPER, "A.g")]

    def test_this_call_is_external(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f", body=[sol.expr(sol.call(sol.member(sol.ident("this"), "h")))]),
            sol.function("h", body=[], visibility="external"),
        ))
        site = find_calls(engine.callable("A", "f"), "h")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [(ResolutionKind.THIS_EXTERNAL, "A.h")]
        assert edges[0].is_external
        assert engine.calls.is_external_call(site)

    def test_interface_dispatch_to_implementer(self, make_engine):
        engine = make_engine(*_token_system())
        site = find_calls(engine.callable("Client", "viaAddress"), "transfer")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [
            (ResolutionKind.INTERFACE_DISPATCH, "Token.transfer"),
        ]
        assert engine.calls.is_external_call(site)

    def test_parameter_dispatch(self, make_engine):
        engine = make_engine(*_token_system())
        site = find_calls(engine.callable("Client", "viaParameter"), "transfer")[0]
        edges = engine.resolve_call(site)
        assert [(e.kind, e.callee.qualified_name) for e in edges] == [
            (ResolutionKind.PARAMETER_DISPATCH, "Token.transfer"),
        ]

    def test_interface_without_implementer_is_unresolved(self, make_engine):
        engine = make_engine(
            sol.interface("IFoo", sol.function("bar", visibility="external")),
            sol.contract("A", sol.function("f", [sol.var("a", "address")], body=[
                sol.expr(sol.call(sol.member(sol.convert("IFoo", sol.ident("a")), "bar"))),
            ])),
        )
        site = find_calls(engine.callable("A", "f"), "bar")[0]
        assert engine.is_unresolved(site)
        assert engine.resolve_call(site)[0].callee is None
        assert engine.calls.is_external_call(site)

    def test_call_on_address_parameter_is_unresolved(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function("f", [sol.var("a", "address")], body=[
            sol.expr(sol.call(sol.member(sol.ident("a"), "foo"))),
        ])))
        site = find_calls(engine.callable("A", "f"), "foo")[0]
        edges = engine.resolve_call(site)
        assert [e.kind for e in edges] == [ResolutionKind.UNRESOLVED]
        assert engine.is_unresolved(site)

    def test_low_level_calls_on_address_parameter_are_unresolved(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function("f", [sol.var("a", "address")], body=[
            sol.expr(sol.call(sol.member(sol.ident("a"), "call"), sol.lit("", kind="string"))),
            sol.expr(sol.call(sol.member(sol.ident("a"), "delegatecall"), sol.lit("", kind="string"))),
            sol.expr(sol.call(sol.member(sol.ident("a"), "transfer"), sol.lit(1))),
        ])))
        f = engine.callable("A", "f")
        for name in ("call", "delegatecall", "transfer"):
            site = find_calls(f, name)[0]
            assert engine.calls.call_kind(site) == CallKind.LOW_LEVEL
            edges = engine.resolve_call(site)
            assert [(e.kind, e.callee) for e in edges] == [(ResolutionKind.UNRESOLVED, None)]
            assert edges[0].caller is f
            assert engine.is_unresolved(site)
        assert len([e for e in engine.call_graph.callees_of(f) if e.is_unresolved]) == 3

    def test_resolution_is_idempotent(self, make_engine):
        engine = make_engine(*_token_system())
        site = find_calls(engine.callable("Client", "viaAddress"), "transfer")[0]
        first = engine.resolve_call(site)
        second = engine.resolve_call(site)
        assert [e.callee for e in first] == [e.callee for e in second]
        assert [e.kind for e in first] == [e.kind for e in second]

    def test_library_calls(self, make_engine):
        engine = make_engine(
            sol.library("Math", sol.function(
                "inc", [sol.var("x")], body=[sol.ret(sol.binop(sol.ident("x"), "+", sol.lit(1)))],
                returns=[sol.var("")], visibility="internal",
            )),
            sol.contract(
                "A",
                sol.using_for("Math", "uint256"),
                sol.function("bound", [sol.var("a")], body=[
                    sol.expr(sol.call(sol.member(sol.ident("a"), "inc"))),
                ]),
                sol.function("direct", [sol.var("a")], body=[
                    sol.expr(sol.call(sol.member(sol.ident("Math"), "inc"), sol.ident("a"))),
                ]),
            ),
        )
        bound = engine.resolve_call(find_calls(engine.callable("A", "bound"), "inc")[0])
        direct = engine.resolve_call(find_calls(engine.callable("A", "direct"), "inc")[0])
        assert [(e.callee.qualified_name, e.argument_offset) for e in bound] == [("Math.inc", 1)]
        assert [(e.callee.qualified_name, e.argument_offset) for e in direct] == [("Math.inc", 0)]


class TestCallGraph:
    def test_reachable_from_is_bounded(self, make_engine):
        engine = make_engine(_chain(6))
        start = engine.callable("Chain", "f0")
        reached = engine.call_graph.reachable_from(start, max_depth=3)
        assert [c.name for c in reached.callables] == ["f1", "f2", "f3"]
        assert reached.truncated
        full = engine.call_graph.reachable_from(start, max_depth=10)
        assert len(full.callables) == 6
        assert not full.truncated

    def test_find_path(self, make_engine):
        engine = make_engine(_chain(4))
        path = engine.call_graph.find_path(engine.callable("Chain", "f0"), engine.callable("Chain", "f3"))
        assert [c.name for c in path] == ["f0", "f1", "f2", "f3"]
        assert engine.call_graph.find_path(engine.callable("Chain", "f3"), engine.callable("Chain", "f0")) is None

    def test_recursion_is_detected(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("loop", [sol.var("n")], body=[_call_stmt("loop", sol.ident("n"))]),
            sol.function("plain", body=[]),
        ))
        loop = engine.callable("A", "loop")
        assert engine.call_graph.recursive_callables() == [loop]
        reached = engine.call_graph.reachable_from(loop)
        assert loop in reached
        assert reached.truncated
        assert not engine.call_graph.reachable_from(engine.callable("A", "plain")).truncated

    def test_mutual_recursion_truncates_reachability(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("ping", body=[_call_stmt("pong")]),
            sol.function("pong", body=[_call_stmt("ping")], visibility="internal"),
        ))
        ping = engine.callable("A", "ping")
        reached = engine.call_graph.reachable_from(ping)
        assert [c.name for c in reached.callables] == ["ping", "pong"]
        assert reached.truncated

    def test_repeated_callee_is_not_recursion(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f", body=[_call_stmt("g"), _call_stmt("g"), _call_stmt("h")]),
            sol.function("g", body=[_call_stmt("h")], visibility="internal"),
            sol.function("h", body=[], visibility="internal"),
        ))
        reached = engine.call_graph.reachable_from(engine.callable("A", "f"))
        assert {c.name for c in reached.callables} == {"g", "h"}
        assert not reached.truncated

    def test_callers_and_unreachable_functions(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f", body=[_call_stmt("g")]),
            sol.function("g", body=[], visibility="internal"),
            sol.function("orphan", body=[], visibility="private"),
        ))
        g = engine.callable("A", "g")
        assert [e.caller.name for e in engine.call_graph.callers_of(g)] == ["f"]
        assert [c.name for c in engine.call_graph.unreachable_functions] == ["orphan"]
        assert [c.name for c in engine.call_graph.entry_points] == ["f"]
