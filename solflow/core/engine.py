"""Analysis engine: builds every artifact of one program once and caches it.

Build order:
  1. SyntaxTree per source unit (solc compact JSON AST)
  2. Program model
  3. Inheritance graph (linearizations, overrides, diamonds)
  4. Call resolver and call graph
  5. Modifier resolver
  6. Per-callable CFG (spliced and unspliced) and SSA, on first use
  7. Data-flow graph and flow analyzer

Per-callable construction failures are logged, recorded as
``analysis-failure`` issues and do not stop the analysis of other callables.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from solflow.core.ast_analyzer import CallableDef, ContractDef, Program, SolidityASTAnalyzer
from solflow.core.call_graph import CallEdge, CallGraph, CallResolver
from solflow.core.cfg import CFG, CFGBuilder
from solflow.core.config import Settings, get_settings
from solflow.core.configuration import Configuration
from solflow.core.dataflow import DataFlowGraph, FlowNode
from solflow.core.errors import Issue, IssueKind, NotACallableError
from solflow.core.inheritance import InheritanceGraph
from solflow.core.modifiers import ModifierResolver
from solflow.core.ssa import SSABuilder, SsaForm
from solflow.core.syntax import SyntaxNode, SyntaxTree
from solflow.core.taint import FlowAnalyzer, FlowPath, TaintSteps
from solflow.core.types import FlowMode

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """Facade over the whole analysis stack for one compilation.

    Usage:
        engine = AnalysisEngine.from_solc_output({"A.sol": ast}, {"A.sol": source})
        for path in engine.flow_paths(TaintedCallTarget()):
            print(path.to_schema("tainted-call-target"))
    """

    def __init__(self, trees: Iterable[SyntaxTree], settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.program: Program = SolidityASTAnalyzer().analyze(trees)
        self.inheritance = InheritanceGraph(self.program)
        self.calls = CallResolver(
            self.program, self.inheritance,
            resolve_virtual_dispatch=self.settings.resolve_virtual_dispatch,
        )
        self.call_graph = CallGraph(self.program, self.calls)
        self.modifiers = ModifierResolver(self.program, self.inheritance, self.calls)

        self._cfgs: dict[tuple[CallableDef, bool], CFG | None] = {}
        self._ssa: dict[CallableDef, SsaForm | None] = {}
        self._failures: list[Issue] = []
        self._ssa_builder = SSABuilder(self.program)

        self.dataflow = DataFlowGraph(
            self.program, self.inheritance, self.calls, self.modifiers,
            ssa_for=self.ssa_for,
            cfg_for=self.cfg_for,
            storage_aliasing=self.settings.storage_aliasing,
            spliced_cfg_for=self.spliced_cfg_for,
        )
        self.taint_steps = TaintSteps(self.dataflow)
        self.flows = FlowAnalyzer(
            self.dataflow, self.taint_steps,
            max_path_length=self.settings.max_path_length,
            max_paths_per_query=self.settings.max_paths_per_query,
        )
        logger.info(
            "Analysis engine ready: %d contracts, %d callables",
            len(self.program.contracts), len(self.program.all_callables()),
        )

    # ── Construction helpers ─────────────────────────────────────────

    @classmethod
    def from_ast(
        cls,
        ast: dict[str, Any],
        source_code: str = "",
        file_name: str = "Contract.sol",
        settings: Settings | None = None,
    ) -> AnalysisEngine:
        return cls([SyntaxTree.from_solc_ast(ast, source_code, file_name)], settings)

    @classmethod
    def from_solc_output(
        cls,
        sources_ast: dict[str, Any],
        sources: dict[str, str] | None = None,
        settings: Settings | None = None,
    ) -> AnalysisEngine:
        """Build from ``{file: ast}`` (solc standard-json ``sources[*].ast``)."""
        sources = sources or {}
        trees = [
            SyntaxTree.from_solc_ast(ast, sources.get(file_name, ""), file_name)
            for file_name, ast in sources_ast.items()
        ]
        return cls(trees, settings)

    # ── Per-callable artifacts ───────────────────────────────────────

    def cfg_for(self, callable_def: CallableDef, splice_modifiers: bool = False) -> CFG | None:
        """CFG of a callable (``None`` when construction failed)."""
        if not isinstance(callable_def, CallableDef):
            raise NotACallableError(f"expected a callable definition, got {type(callable_def).__name__}")
        key = (callable_def, splice_modifiers)
        if key not in self._cfgs:
            try:
                self._cfgs[key] = CFGBuilder(self.modifiers).build(callable_def, splice_modifiers)
            except Exception as e:
                self._record_failure(callable_def, "CFG", e)
                self._cfgs[key] = None
        return self._cfgs[key]

    def spliced_cfg_for(self, callable_def: CallableDef) -> CFG | None:
        return self.cfg_for(callable_def, splice_modifiers=self.settings.splice_modifiers)

    def ssa_for(self, callable_def: CallableDef) -> SsaForm | None:
        """SSA form over the unspliced CFG (``None`` when construction failed)."""
        if callable_def not in self._ssa:
            cfg = self.cfg_for(callable_def)
            form = None
            if cfg is not None:
                try:
                    form = self._ssa_builder.build(cfg)
                except Exception as e:
                    self._record_failure(callable_def, "SSA", e)
            self._ssa[callable_def] = form
        return self._ssa[callable_def]

    def _record_failure(self, callable_def: CallableDef, artifact: str, error: Exception) -> None:
        contract = callable_def.contract.name if callable_def.contract is not None else ""
        logger.warning(
            "%s construction failed for %s: %s", artifact, callable_def.qualified_name, error,
            extra={"contract": contract, "callable": callable_def.name,
                   "issue_kind": IssueKind.ANALYSIS_FAILURE.value},
        )
        self._failures.append(Issue(
            kind=IssueKind.ANALYSIS_FAILURE,
            message=f"{artifact} construction failed: {error}",
            contract=contract,
            callable=callable_def.name,
        ))

    # ── Lookup ───────────────────────────────────────────────────────

    def contract(self, name: str) -> ContractDef | None:
        return self.program.contract(name)

    def callable(self, contract: str, name: str) -> CallableDef | None:
        """First callable ``name`` declared in ``contract`` (modifiers included)."""
        found = self.program.contract(contract)
        if found is None:
            return None
        return next((c for c in found.callables if c.name == name), None)

    def build_all(self) -> None:
        """Construct every CFG and SSA form eagerly (failures become issues)."""
        for callable_def in self.program.all_callables():
            if callable_def.is_implemented:
                self.ssa_for(callable_def)
                self.spliced_cfg_for(callable_def)

    # ── Resolution ───────────────────────────────────────────────────

    def resolve_call(self, site: SyntaxNode) -> list[CallEdge]:
        return self.calls.resolve_call(site)

    def is_unresolved(self, site: SyntaxNode) -> bool:
        return self.calls.is_unresolved(site)

    # ── Flow queries ─────────────────────────────────────────────────

    def has_flow(self, source: FlowNode, sink: FlowNode, configuration: Configuration) -> bool:
        return self.flows.has_flow(source, sink, configuration)

    def has_taint_flow(self, source: FlowNode, sink: FlowNode, configuration: Configuration) -> bool:
        return self.flows.has_taint_flow(source, sink, configuration)

    def flow_paths(self, configuration: Configuration, mode: FlowMode = FlowMode.TAINT) -> list[FlowPath]:
        paths = self.flows.flow_paths(configuration, mode)
        logger.info(
            "%s: %d path(s)", configuration.name, len(paths),
            extra={"configuration": configuration.name},
        )
        return paths

    # ── Issues ───────────────────────────────────────────────────────

    def issues(self) -> list[Issue]:
        """Structural inconsistencies and construction failures found so far."""
        result: list[Issue] = list(self.program.issues)
        result += self.inheritance.all_issues()
        result += self._failures
        return result
