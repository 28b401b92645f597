"""Source / sink / barrier configurations driving reachability queries.

A configuration is an immutable, hashable value: reachability results are
memoized per (source node, configuration, mode), so two queries with equal
configurations share work.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, ClassVar, Iterable

from solflow.core.config import get_settings

if TYPE_CHECKING:
    from solflow.core.dataflow import DataFlowGraph, FlowNode


NodePredicate = Callable[["FlowNode", "DataFlowGraph"], bool]
NodeSteps = Callable[["FlowNode", "DataFlowGraph"], Iterable["FlowNode"]]


def _default_max_call_depth() -> int:
    return get_settings().max_call_depth


@dataclass(frozen=True)
class Configuration(abc.ABC):
    """Abstract base for all flow configurations.

    Subclasses set ``NAME`` / ``DESCRIPTION`` / ``CATEGORY`` and implement
    ``is_source`` and ``is_sink``. Barriers and additional steps default to
    none.
    """

    NAME: ClassVar[str] = ""
    DESCRIPTION: ClassVar[str] = ""
    CATEGORY: ClassVar[str] = ""

    max_call_depth: int = field(default_factory=_default_max_call_depth)

    @property
    def name(self) -> str:
        return self.NAME or type(self).__name__

    @abc.abstractmethod
    def is_source(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        ...

    @abc.abstractmethod
    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        ...

    def is_barrier(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return False

    def additional_flow_steps(self, node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
        return ()

    def additional_taint_steps(self, node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
        return ()


def _never(node: FlowNode, graph: DataFlowGraph) -> bool:
    return False


def _no_steps(node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
    return ()


@dataclass(frozen=True)
class FunctionalConfiguration(Configuration):
    """A configuration assembled from plain callables.

    Usage:
        config = FunctionalConfiguration(
            label="param-to-call",
            source=lambda n, g: n.kind == FlowNodeKind.PARAMETER,
            sink=is_external_call_target,
        )
    """

    label: str = "functional"
    source: NodePredicate = _never
    sink: NodePredicate = _never
    barrier: NodePredicate = _never
    flow_steps: NodeSteps = _no_steps
    taint_steps: NodeSteps = _no_steps

    @property
    def name(self) -> str:
        return self.label

    def is_source(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return self.source(node, graph)

    def is_sink(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return self.sink(node, graph)

    def is_barrier(self, node: FlowNode, graph: DataFlowGraph) -> bool:
        return self.barrier(node, graph)

    def additional_flow_steps(self, node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
        return self.flow_steps(node, graph)

    def additional_taint_steps(self, node: FlowNode, graph: DataFlowGraph) -> Iterable[FlowNode]:
        return self.taint_steps(node, graph)
