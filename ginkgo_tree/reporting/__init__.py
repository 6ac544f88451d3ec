"""Run result reporting: YAML report generation."""

from ginkgo_tree.reporting.reporter import RunReporter

__all__ = [
    "RunReporter",
]
