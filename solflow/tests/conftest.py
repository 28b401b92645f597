"""Shared fixtures for the SolFlow test suite."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from solflow.core.ast_analyzer import CallableDef, Program, analyze_ast
from solflow.core.config import Settings, get_settings
from solflow.core.engine import AnalysisEngine
from solflow.tests import solc_ast as sol


# ── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; tests that patch env need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings()


# ── Engine factories ─────────────────────────────────────────────────────────


@pytest.fixture
def make_engine(settings: Settings) -> Callable[..., AnalysisEngine]:
    """Build an ``AnalysisEngine`` from contract dictionaries."""

    def factory(*members: dict[str, Any], **overrides: Any) -> AnalysisEngine:
        engine_settings = settings.model_copy(update=overrides) if overrides else settings
        return AnalysisEngine.from_ast(sol.source_unit(*members), settings=engine_settings)

    return factory


@pytest.fixture
def make_program() -> Callable[..., Program]:
    def factory(*members: dict[str, Any]) -> Program:
        return analyze_ast(sol.source_unit(*members))

    return factory


def find_callable(program: Program, contract: str, name: str) -> CallableDef:
    owner = program.contract(contract)
    assert owner is not None, f"no contract {contract}"
    found = next((c for c in owner.callables if c.name == name), None)
    assert found is not None, f"no callable {contract}.{name}"
    return found


def find_calls(callable_def: CallableDef, name: str) -> list:
    """FunctionCall nodes in a body whose callee name (identifier or member) is ``name``."""
    result = []
    for node in callable_def.body.walk():
        if node.kind != "FunctionCall":
            continue
        callee = node.get("expression")
        while callee is not None and callee.kind == "FunctionCallOptions":
            callee = callee.get("expression")
        if callee is not None and callee.text == name:
            result.append(node)
    return result


def find_identifiers(callable_def: CallableDef, name: str) -> list:
    return [n for n in callable_def.body.walk() if n.kind == "Identifier" and n.text == name]


# ── Sample programs ──────────────────────────────────────────────────────────


def vault_contract(guarded: bool = False) -> list[dict[str, Any]]:
    """A bank whose ``withdraw`` sends ether before clearing the balance.

    contract Vault {
        mapping(address => uint256) balances;
        bool locked;
        modifier nonReentrant() { require(!locked); locked = true; _; locked = false; }
        function withdraw() public [nonReentrant] {
            uint256 amount = balances[msg.sender];
            (bool ok, ) = msg.sender.call{value: amount}("");
            require(ok);
            balances[msg.sender] = 0;
        }
    }
    """
    guard = sol.modifier("nonReentrant", body=[
        sol.require(sol.unop("!", sol.ident("locked"))),
        sol.expr(sol.assign(sol.ident("locked"), sol.lit(True))),
        sol.placeholder(),
        sol.expr(sol.assign(sol.ident("locked"), sol.lit(False))),
    ])
    withdraw = sol.function(
        "withdraw",
        modifiers=[sol.modifier_call("nonReentrant")] if guarded else [],
        body=[
            sol.let(
                sol.var("amount"),
                sol.index(sol.ident("balances"), sol.member(sol.ident("msg"), "sender")),
            ),
            sol.let(
                [sol.var("ok", "bool"), None],
                sol.call_with(
                    sol.member(sol.member(sol.ident("msg"), "sender"), "call"),
                    {"value": sol.ident("amount")},
                    sol.lit("", kind="string"),
                ),
            ),
            sol.require(sol.ident("ok")),
            sol.expr(sol.assign(
                sol.index(sol.ident("balances"), sol.member(sol.ident("msg"), "sender")),
                sol.lit(0),
            )),
        ],
    )
    return [sol.contract(
        "Vault",
        sol.state("balances", sol.mapping("address", "uint256")),
        sol.state("locked", "bool"),
        guard,
        withdraw,
    )]
