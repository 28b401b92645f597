"""Built-in flow configurations, their predicate catalog and the registry."""

from solflow.analyzer.configurations.builtin import (
    BUILTIN_CONFIGURATIONS,
    Reentrancy,
    TaintedArrayIndex,
    TaintedCallTarget,
    TaintedDelegatecall,
    TaintedSelfdestruct,
    TaintedValueTransfer,
    UncheckedReturn,
    find_unchecked_calls,
)

__all__ = [
    "BUILTIN_CONFIGURATIONS",
    "Reentrancy",
    "TaintedArrayIndex",
    "TaintedCallTarget",
    "TaintedDelegatecall",
    "TaintedSelfdestruct",
    "TaintedValueTransfer",
    "UncheckedReturn",
    "find_unchecked_calls",
]
