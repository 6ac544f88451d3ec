"""Test execution: runner invocation, run sinks and result mapping."""

from ginkgo_tree.execution.results import aggregate, map_results
from ginkgo_tree.execution.run import CancellationToken, Outcome, TestRun
from ginkgo_tree.execution.runner import GinkgoRunner

__all__ = [
    "CancellationToken",
    "GinkgoRunner",
    "Outcome",
    "TestRun",
    "aggregate",
    "map_results",
]
