"""Tests for solflow.core.dataflow and solflow.core.taint."""

from __future__ import annotations

from solflow.core.configuration import FunctionalConfiguration
from solflow.core.dataflow import RECEIVER, VALUE, FlowNode, FlowNodeKind, operator_propagates
from solflow.core.types import FlowMode
from solflow.tests import solc_ast as sol
from solflow.tests.conftest import find_calls, find_identifiers, vault_contract


ANY_FLOW = FunctionalConfiguration(label="any")


def _statements(callable_def):
    return callable_def.body.get_list("statements")


def _initial_value(callable_def, position):
    return _statements(callable_def)[position].get("initialValue")


class TestOperators:
    def test_operator_classification(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a"), sol.var("b")],
            body=[
                sol.let(sol.var("s"), sol.binop(sol.ident("a"), "+", sol.ident("b"))),
                sol.let(sol.var("e", "bool"), sol.binop(sol.ident("a"), "==", sol.ident("b"))),
                sol.let(sol.var("n"), sol.unop("-", sol.ident("a"))),
                sol.let(sol.var("z", "bool"), sol.unop("!", sol.ident("e"))),
            ],
        )))
        f = engine.callable("A", "f")
        assert operator_propagates(_initial_value(f, 0))
        assert not operator_propagates(_initial_value(f, 1))
        assert operator_propagates(_initial_value(f, 2))
        assert not operator_propagates(_initial_value(f, 3))

    def test_arithmetic_carries_value_comparison_does_not(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a"), sol.var("b")],
            body=[
                sol.let(sol.var("s"), sol.binop(sol.ident("a"), "+", sol.ident("b"))),
                sol.let(sol.var("e", "bool"), sol.binop(sol.ident("a"), "==", sol.ident("b"))),
            ],
        )))
        f = engine.callable("A", "f")
        source = FlowNode.parameter(f, 0)
        total = engine.dataflow.expression_node(_initial_value(f, 0))
        equal = engine.dataflow.expression_node(_initial_value(f, 1))
        assert engine.has_flow(source, total, ANY_FLOW)
        assert not engine.has_flow(source, equal, ANY_FLOW)
        assert not engine.has_taint_flow(source, equal, ANY_FLOW)


class TestLocalSteps:
    def test_parameter_flows_to_its_uses(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a")],
            body=[sol.let(sol.var("x"), sol.ident("a"))],
        )))
        f = engine.callable("A", "f")
        graph = engine.dataflow
        param = FlowNode.parameter(f, 0)
        (definition,) = graph.local_successors(param)
        assert definition.kind == FlowNodeKind.SSA_DEF
        use = graph.expression_node(find_identifiers(f, "a")[0])
        assert graph.local_flow_step(definition, use)
        x_def = graph.local_successors(use)
        assert [n.kind for n in x_def] == [FlowNodeKind.SSA_DEF]
        assert x_def[0].definition.variable_name == "x"

    def test_destructured_call_result(self, make_engine):
        engine = make_engine(*vault_contract())
        withdraw = engine.callable("Vault", "withdraw")
        graph = engine.dataflow
        call = find_calls(withdraw, "call")[0]
        flag = graph.call_result_node(call, 0)
        data = graph.call_result_node(call, 1)
        assert graph.result_arity(call) == 2
        (ok_def,) = graph.local_successors(flag)
        assert ok_def.definition.variable_name == "ok"
        assert graph.local_successors(data) == ()

    def test_call_options_and_receiver_become_arguments(self, make_engine):
        engine = make_engine(*vault_contract())
        withdraw = engine.callable("Vault", "withdraw")
        graph = engine.dataflow
        call = find_calls(withdraw, "call")[0]
        amount_use = find_identifiers(withdraw, "amount")[0]
        assert graph.local_successors(graph.expression_node(amount_use)) == (
            graph.argument_node(call, VALUE),
        )
        sender = call.get("expression").get("expression").get("expression")
        assert graph.local_successors(graph.expression_node(sender)) == (
            graph.argument_node(call, RECEIVER),
        )

    def test_state_write_and_read_nodes(self, make_engine):
        engine = make_engine(*vault_contract())
        withdraw = engine.callable("Vault", "withdraw")
        graph = engine.dataflow
        nodes = graph.nodes_in(withdraw)
        reads = [n for n in nodes if n.kind == FlowNodeKind.STATE_VAR_READ]
        writes = graph.state_writes_in(withdraw)
        assert [n.declaration.name for n in reads] == ["balances"]
        assert [n.declaration.name for n in writes] == ["balances"]
        assert graph.jump_step(writes[0], reads[0])

    def test_nodes_are_structurally_equal(self, make_engine):
        engine = make_engine(*vault_contract())
        withdraw = engine.callable("Vault", "withdraw")
        call = find_calls(withdraw, "call")[0]
        assert FlowNode.call_result(call, 0) == engine.dataflow.call_result_node(call, 0)
        assert hash(FlowNode.argument(call, VALUE)) == hash(engine.dataflow.argument_node(call, VALUE))


class TestTaintSteps:
    def test_compound_assignment_is_a_taint_step(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a")],
            body=[
                sol.let(sol.var("t"), sol.lit(0)),
                sol.expr(sol.assign(sol.ident("t"), sol.ident("a"), operator="+=")),
                sol.ret(sol.ident("t")),
            ],
            returns=[sol.var("")],
        )))
        f = engine.callable("A", "f")
        source = FlowNode.parameter(f, 0)
        result = FlowNode.return_value(f, 0)
        assert not engine.has_flow(source, result, ANY_FLOW)
        assert engine.has_taint_flow(source, result, ANY_FLOW)

    def test_hashing_is_a_taint_step(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a")],
            body=[sol.let(sol.var("h", "bytes32"), sol.call(
                sol.ident("keccak256"),
                sol.call(sol.member(sol.ident("abi"), "encodePacked"), sol.ident("a")),
            ))],
        )))
        f = engine.callable("A", "f")
        source = FlowNode.parameter(f, 0)
        digest = engine.dataflow.expression_node(_initial_value(f, 0))
        assert not engine.has_flow(source, digest, ANY_FLOW)
        assert engine.has_taint_flow(source, digest, ANY_FLOW)


class TestInterprocedural:
    def _helper_program(self):
        return sol.contract(
            "A",
            sol.function("f", [sol.var("a")], body=[
                sol.let(sol.var("r"), sol.call(sol.ident("g"), sol.ident("a"))),
                sol.ret(sol.ident("r")),
            ], returns=[sol.var("")]),
            sol.function("g", [sol.var("x")], body=[
                sol.ret(sol.binop(sol.ident("x"), "+", sol.lit(1))),
            ], returns=[sol.var("")], visibility="internal"),
        )

    def test_argument_to_parameter_and_back(self, make_engine):
        engine = make_engine(self._helper_program())
        f = engine.callable("A", "f")
        g = engine.callable("A", "g")
        call = find_calls(f, "g")[0]
        graph = engine.dataflow
        assert graph.jump_successors(graph.argument_node(call, 0)) == (FlowNode.parameter(g, 0),)
        assert graph.call_result_node(call, 0) in graph.jump_successors(FlowNode.return_value(g, 0))
        assert engine.has_flow(FlowNode.parameter(f, 0), FlowNode.return_value(f, 0), ANY_FLOW)

    def test_path_reconstruction(self, make_engine):
        engine = make_engine(self._helper_program())
        f = engine.callable("A", "f")
        result = engine.flows.reach(FlowNode.parameter(f, 0), ANY_FLOW, FlowMode.DATA)
        path = result.path_to(FlowNode.return_value(f, 0))
        assert path[0] == FlowNode.parameter(f, 0)
        assert path[-1] == FlowNode.return_value(f, 0)
        kinds = [n.kind for n in path]
        assert FlowNodeKind.PARAMETER in kinds[1:]
        assert FlowNodeKind.CALL_RESULT in kinds

    def test_state_carries_values_between_functions(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.state("stored"),
            sol.function("set", [sol.var("v")], body=[
                sol.expr(sol.assign(sol.ident("stored"), sol.ident("v"))),
            ]),
            sol.function("get", body=[sol.ret(sol.ident("stored"))], returns=[sol.var("")]),
        ))
        source = FlowNode.parameter(engine.callable("A", "set"), 0)
        sink = FlowNode.return_value(engine.callable("A", "get"), 0)
        assert engine.has_flow(source, sink, ANY_FLOW)

    def test_parameter_reaches_modifier_parameter(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.modifier("atLeast", [sol.var("k")], body=[
                sol.require(sol.binop(sol.ident("k"), ">", sol.lit(0))),
                sol.placeholder(),
            ]),
            sol.function("f", [sol.var("x"), sol.var("y")],
                         modifiers=[sol.modifier_call("atLeast", sol.binop(sol.ident("x"), "+", sol.lit(1)))],
                         body=[]),
        ))
        f = engine.callable("A", "f")
        modifier_parameter = FlowNode.parameter(engine.callable("A", "atLeast"), 0)
        assert engine.has_flow(FlowNode.parameter(f, 0), modifier_parameter, ANY_FLOW)
        assert not engine.has_flow(FlowNode.parameter(f, 1), modifier_parameter, ANY_FLOW)


class TestBounds:
    def test_self_recursion_is_truncated(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "rec", [sol.var("n")],
            body=[sol.ret(sol.call(sol.ident("rec"), sol.ident("n")))],
            returns=[sol.var("")],
        )))
        rec = engine.callable("A", "rec")
        result = engine.flows.reach(FlowNode.parameter(rec, 0), ANY_FLOW)
        call = find_calls(rec, "rec")[0]
        assert result.reaches(engine.dataflow.argument_node(call, 0))
        assert result.truncated

    def test_mutual_recursion_is_truncated(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("even", [sol.var("x")], body=[sol.ret(sol.call(sol.ident("odd"), sol.ident("x")))],
                         returns=[sol.var("")]),
            sol.function("odd", [sol.var("y")], body=[sol.ret(sol.call(sol.ident("even"), sol.ident("y")))],
                         returns=[sol.var("")], visibility="internal"),
        ))
        even = engine.callable("A", "even")
        result = engine.flows.reach(FlowNode.parameter(even, 0), ANY_FLOW)
        assert result.reaches(FlowNode.parameter(engine.callable("A", "odd"), 0))
        assert result.truncated

    def test_repeated_call_is_not_recursion(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f", [sol.var("x")], body=[
                sol.expr(sol.call(sol.ident("g"), sol.ident("x"))),
                sol.expr(sol.call(sol.ident("g"), sol.ident("x"))),
            ]),
            sol.function("g", [sol.var("y")], body=[], visibility="internal"),
        ))
        result = engine.flows.reach(FlowNode.parameter(engine.callable("A", "f"), 0), ANY_FLOW)
        assert result.reaches(FlowNode.parameter(engine.callable("A", "g"), 0))
        assert not result.truncated

    def test_deep_call_chain_is_truncated(self, make_engine):
        depth = 1000
        functions = [
            sol.function(f"f{i}", [sol.var("x")], body=[
                sol.expr(sol.call(sol.ident(f"f{i + 1}"), sol.ident("x"))),
            ], visibility="internal")
            for i in range(depth)
        ]
        functions.append(sol.function(f"f{depth}", [sol.var("x")], body=[], visibility="internal"))
        engine = make_engine(sol.contract("Deep", *functions))
        start = FlowNode.parameter(engine.callable("Deep", "f0"), 0)
        result = engine.flows.reach(start, ANY_FLOW)
        assert result.truncated
        assert result.reaches(FlowNode.parameter(engine.callable("Deep", "f20"), 0))
        assert not result.reaches(FlowNode.parameter(engine.callable("Deep", "f21"), 0))

    def test_configuration_depth_limit(self, make_engine):
        engine = make_engine(sol.contract(
            "A",
            sol.function("f0", [sol.var("x")], body=[sol.expr(sol.call(sol.ident("f1"), sol.ident("x")))]),
            sol.function("f1", [sol.var("x")], body=[sol.expr(sol.call(sol.ident("f2"), sol.ident("x")))],
                         visibility="internal"),
            sol.function("f2", [sol.var("x")], body=[], visibility="internal"),
        ))
        start = FlowNode.parameter(engine.callable("A", "f0"), 0)
        shallow = FunctionalConfiguration(label="shallow", max_call_depth=1)
        result = engine.flows.reach(start, shallow)
        assert result.reaches(FlowNode.parameter(engine.callable("A", "f1"), 0))
        assert not result.reaches(FlowNode.parameter(engine.callable("A", "f2"), 0))
        assert result.truncated

    def test_results_are_memoized_per_configuration(self, make_engine):
        engine = make_engine(*vault_contract())
        withdraw = engine.callable("Vault", "withdraw")
        call = find_calls(withdraw, "call")[0]
        source = engine.dataflow.call_result_node(call, 0)
        first = engine.flows.reach(source, ANY_FLOW)
        assert engine.flows.reach(source, FunctionalConfiguration(label="any")) is first
        assert engine.flows.reach(source, ANY_FLOW, FlowMode.DATA) is not first


class TestBarriers:
    def test_barrier_nodes_are_not_entered(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a")],
            body=[
                sol.let(sol.var("b"), sol.ident("a")),
                sol.let(sol.var("c"), sol.ident("b")),
            ],
        )))
        f = engine.callable("A", "f")
        b_use = find_identifiers(f, "b")[0]
        c_value = engine.dataflow.expression_node(_initial_value(f, 1))

        def blocks_b(node, graph):
            return node.as_expression() is b_use

        blocked = FunctionalConfiguration(label="blocked", barrier=blocks_b)
        source = FlowNode.parameter(f, 0)
        assert engine.has_flow(source, c_value, ANY_FLOW)
        assert not engine.has_flow(source, c_value, blocked)

    def test_source_is_never_a_barrier(self, make_engine):
        engine = make_engine(sol.contract("A", sol.function(
            "f", [sol.var("a")], body=[sol.let(sol.var("b"), sol.ident("a"))],
        )))
        f = engine.callable("A", "f")
        source = FlowNode.parameter(f, 0)

        def everything(node, graph):
            return True

        walled = FunctionalConfiguration(label="walled", barrier=everything)
        result = engine.flows.reach(source, walled)
        assert list(result.reached) == [source]
