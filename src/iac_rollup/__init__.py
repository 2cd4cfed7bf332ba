"""Cross-repository matching and aggregation of IaC dependency graphs."""

from iac_rollup.blast_radius import BlastRadiusAnalyzer, BlastRadiusResult
from iac_rollup.config import RollupConfig, RollupSettings
from iac_rollup.matchers import MatcherFactory
from iac_rollup.models import Edge, MatchResult, Node, RepositoryScan, UnifiedGraph
from iac_rollup.rollup import RollupExecutionResult, RollupExecutor

__all__ = [
    "BlastRadiusAnalyzer",
    "BlastRadiusResult",
    "Edge",
    "MatchResult",
    "MatcherFactory",
    "Node",
    "RepositoryScan",
    "RollupConfig",
    "RollupExecutionResult",
    "RollupExecutor",
    "RollupSettings",
    "UnifiedGraph",
]
