"""YAML report generation for test runs.

Renders the statuses a run applied as a hierarchical report mirroring the
tree (suite -> containers -> leaves), with a summary of counts per status
and an optional rolling per-item history merged from a previous report.
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Any

import yaml

from ginkgo_tree.discovery.tree import LeafNode, Node, SuiteNode, TestTree
from ginkgo_tree.execution.run import (
    ERRORED,
    FAILED,
    PASSED,
    SKIPPED,
    TestRun,
)

# Status used for nodes the run did not reach
NOT_RUN = "not_run"

# Maximum rolling history entries per item
MAX_HISTORY = 500


class RunReporter:
    """Collects a finished TestRun and generates YAML reports."""

    def __init__(self, tree: TestTree) -> None:
        self.tree = tree
        self.run: TestRun | None = None

    def set_run(self, run: TestRun) -> None:
        """Set the run whose outcomes are reported.

        Args:
            run: A finished TestRun.
        """
        self.run = run

    def generate_report(self) -> dict[str, Any]:
        """Generate the report data structure.

        Returns:
            Dictionary representing the full report, suitable for
            YAML serialization.
        """
        now = datetime.datetime.now(tz=datetime.timezone.utc).isoformat()
        report: dict[str, Any] = {
            "generated_at": now,
            "summary": self._compute_summary(),
            "suites": [
                self._format_node(suite) for suite in self.tree
                if self._touched(suite)
            ],
        }
        return {"report": report}

    def generate_report_with_history(
        self, existing_report_path: Path | None = None,
    ) -> dict[str, Any]:
        """Generate report with rolling history appended.

        Reads an existing report, extracts per-item history, appends the
        current outcomes, and trims to MAX_HISTORY entries.

        Args:
            existing_report_path: Path to existing YAML report (optional).

        Returns:
            Report dict with history included.
        """
        report = self.generate_report()

        existing_history: dict[str, list[dict[str, Any]]] = {}
        if existing_report_path and existing_report_path.exists():
            try:
                with open(existing_report_path) as f:
                    existing = yaml.safe_load(f)
                if isinstance(existing, dict) and "report" in existing:
                    existing_history = existing["report"].get("history") or {}
            except (yaml.YAMLError, OSError):
                pass

        history: dict[str, list[dict[str, Any]]] = dict(existing_history)
        outcomes = self.run.outcomes if self.run is not None else {}
        for node_id, outcome in outcomes.items():
            entries = history.setdefault(node_id, [])
            entry: dict[str, Any] = {
                "status": outcome.status,
                "timestamp": report["report"]["generated_at"],
            }
            if outcome.message:
                entry["message"] = outcome.message
            entries.append(entry)
            if len(entries) > MAX_HISTORY:
                history[node_id] = entries[-MAX_HISTORY:]

        report["report"]["history"] = history
        return report

    def write_yaml(self, path: Path) -> None:
        """Write the report as a YAML file."""
        self._dump(self.generate_report(), path)

    def write_yaml_with_history(
        self, path: Path, existing_path: Path | None = None,
    ) -> None:
        """Write report with rolling history as YAML.

        Args:
            path: File path to write.
            existing_path: Path to existing report for history (optional).
        """
        self._dump(self.generate_report_with_history(existing_path), path)

    @staticmethod
    def _dump(report: dict[str, Any], path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(
                report,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

    def _touched(self, suite: SuiteNode) -> bool:
        if self.run is None:
            return False
        if suite.id in self.run.outcomes:
            return True
        return any(n.id in self.run.outcomes for n in suite.walk())

    def _format_node(self, node: Node) -> dict[str, Any]:
        """Format a node and its children for the report."""
        entry: dict[str, Any] = {
            "name": node.label,
            "kind": node.kind,
            "file": node.file,
            "line": node.line,
        }
        outcome = self.run.outcomes.get(node.id) if self.run is not None else None
        entry["status"] = outcome.status if outcome is not None else NOT_RUN
        if outcome is not None and outcome.message:
            entry["message"] = outcome.message
        if isinstance(node, LeafNode):
            entry["key"] = node.leaf_key
            return entry
        children = [self._format_node(child) for child in node.children.values()]
        if children:
            entry["children"] = children
        return entry

    def _compute_summary(self) -> dict[str, Any]:
        """Count leaf outcomes per status.

        Returns:
            Dictionary with total and per-status counts.
        """
        counts = {PASSED: 0, FAILED: 0, SKIPPED: 0, ERRORED: 0}
        if self.run is not None:
            for node_id, outcome in self.run.outcomes.items():
                if isinstance(self.run.nodes.get(node_id), LeafNode):
                    counts[outcome.status] += 1
        return {"total": sum(counts.values()), **counts}
