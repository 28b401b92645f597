"""SolFlow: control-flow, SSA and taint analysis over Solidity ASTs.

Builds, for a solc-compiled program:
  - Per-callable control-flow graphs with optional modifier splicing
  - SSA form for locals, parameters and named returns
  - Inheritance linearization, override and diamond analysis
  - Inheritance-aware call and modifier resolution
  - A data-flow / taint graph with bounded, memoized reachability
"""

__version__ = "0.1.0"
