"""Tests for solflow.core.ast_analyzer: the program model."""

from __future__ import annotations

from solflow.core.ast_analyzer import SolidityASTAnalyzer, VariableScope, analyze_ast
from solflow.core.errors import IssueKind
from solflow.core.types import CallableKind, ContractKind, Visibility
from solflow.tests import solc_ast as sol
from solflow.tests.conftest import find_callable, find_identifiers


def _token_program():
    return [
        sol.interface("IToken", sol.function("transfer", [sol.var("to", "address"), sol.var("amount")],
                                             visibility="external")),
        sol.contract(
            "Token",
            sol.state("supply", visibility="public"),
            sol.state("balances", sol.mapping("address", "uint256")),
            sol.event("Transfer", sol.var("to", "address")),
            sol.modifier("onlyOwner"),
            sol.function(
                "transfer",
                [sol.var("to", "address"), sol.var("amount")],
                body=[
                    sol.let(sol.var("before"), sol.index(sol.ident("balances"), sol.ident("to"))),
                    sol.expr(sol.assign(
                        sol.index(sol.ident("balances"), sol.ident("to")),
                        sol.binop(sol.ident("before"), "+", sol.ident("amount")),
                    )),
                ],
                modifiers=[sol.modifier_call("onlyOwner")],
                visibility="external",
            ),
            sol.function("helper", body=[]),
            bases=["IToken"],
        ),
        sol.function("free", [sol.var("a")], body=[sol.ret(sol.ident("a"))], returns=[sol.var("")]),
    ]


class TestProgramModel:
    def test_contracts_and_members(self, make_program):
        program = make_program(*_token_program())
        token = program.contract("Token")
        assert token is not None
        assert token.kind == ContractKind.CONTRACT
        assert [b.name for b in token.bases] == ["IToken"]
        assert [v.name for v in token.state_variables] == ["supply", "balances"]
        assert token.get_state_variable("balances").is_mapping
        assert token.events == ["Transfer"]
        assert token.get_modifier("onlyOwner") is not None
        assert program.contract("IToken").is_interface

    def test_function_details(self, make_program):
        program = make_program(*_token_program())
        transfer = find_callable(program, "Token", "transfer")
        assert transfer.visibility == Visibility.EXTERNAL
        assert [p.name for p in transfer.parameters] == ["to", "amount"]
        assert [m.name for m in transfer.modifiers] == ["onlyOwner"]
        assert transfer.is_implemented
        assert transfer.qualified_name == "Token.transfer"
        assert not find_callable(program, "IToken", "transfer").is_implemented

    def test_free_functions(self, make_program):
        program = make_program(*_token_program())
        assert [f.name for f in program.free_functions] == ["free"]
        assert program.free_functions[0].kind == CallableKind.FREE_FUNCTION

    def test_missing_visibility_defaults_to_internal(self):
        func = sol.function("f", body=[])
        del func["visibility"]
        program = analyze_ast(sol.source_unit(sol.contract("A", func)))
        assert program.contract("A").get_function("f").visibility == Visibility.INTERNAL

    def test_variable_scopes(self, make_program):
        program = make_program(*_token_program())
        transfer = find_callable(program, "Token", "transfer")
        balances = program.declaration_of(find_identifiers(transfer, "balances")[0])
        to = program.declaration_of(find_identifiers(transfer, "to")[0])
        before = program.declaration_of(find_identifiers(transfer, "before")[0])
        assert program.variable_scope(balances) == VariableScope.STATE
        assert program.variable_scope(to) == VariableScope.PARAMETER
        assert program.variable_scope(before) == VariableScope.LOCAL

    def test_enclosing_lookups(self, make_program):
        program = make_program(*_token_program())
        transfer = find_callable(program, "Token", "transfer")
        ident = find_identifiers(transfer, "amount")[0]
        assert program.enclosing_callable(ident) is transfer
        assert program.enclosing_contract(ident) is program.contract("Token")

    def test_root_variable_of_lvalue_path(self, make_program):
        program = make_program(*_token_program())
        transfer = find_callable(program, "Token", "transfer")
        access = next(n for n in transfer.body.walk() if n.kind == "IndexAccess")
        assert program.root_variable(access).name == "balances"

    def test_member_failure_is_isolated(self, monkeypatch):
        original = SolidityASTAnalyzer._visit_function

        def flaky(self, node, contract):
            if node.name == "broken":
                raise ValueError("boom")
            return original(self, node, contract)

        monkeypatch.setattr(SolidityASTAnalyzer, "_visit_function", flaky)
        program = analyze_ast(sol.source_unit(sol.contract(
            "A", sol.function("broken", body=[]), sol.function("fine", body=[]),
        )))
        assert [f.name for f in program.contract("A").functions] == ["fine"]
        assert [i.kind for i in program.issues] == [IssueKind.ANALYSIS_FAILURE]
        assert program.issues[0].callable == "broken"
