"""Tests for YAML run reports."""

from __future__ import annotations

import tempfile
from pathlib import Path

import yaml

from ginkgo_tree.discovery.builder import TreeReconciler
from ginkgo_tree.discovery.report import Location, SpecEntry, SuiteReport
from ginkgo_tree.execution.run import TestRun
from ginkgo_tree.reporting.reporter import MAX_HISTORY, NOT_RUN, RunReporter

FILE = "/pkg/widget_test.go"


def _tree() -> TreeReconciler:
    reconciler = TreeReconciler()
    reconciler.reconcile([
        SuiteReport(
            suite_path="/pkg",
            suite_description="Widgets Suite",
            specs=[
                SpecEntry(["Widget"], [Location(FILE, 5)], "creates", Location(FILE, 10)),
                SpecEntry(["Widget"], [Location(FILE, 5)], "breaks", Location(FILE, 20)),
            ],
        ),
        SuiteReport(suite_path="/other", suite_description="Other Suite", specs=[
            SpecEntry([], [], "idle", Location("/other/o_test.go", 3)),
        ]),
    ])
    return reconciler


def _finished_run(reconciler: TreeReconciler) -> TestRun:
    tree = reconciler.tree
    run = TestRun()
    run.passed(tree.find("/pkg::Widget::creates"))
    run.failed(tree.find("/pkg::Widget::breaks"), "expected true")
    run.failed(tree.find("/pkg::Widget"), "expected true")
    run.failed(tree.find("/pkg"), "expected true")
    return run


class TestGenerateReport:
    """Tests for the report structure."""

    def test_summary_counts_leaves_only(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        summary = reporter.generate_report()["report"]["summary"]
        assert summary == {"total": 2, "passed": 1, "failed": 1, "skipped": 0, "errored": 0}

    def test_only_touched_suites(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        suites = reporter.generate_report()["report"]["suites"]
        assert [s["name"] for s in suites] == ["Widgets Suite"]

    def test_hierarchy_and_statuses(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        suite = reporter.generate_report()["report"]["suites"][0]
        assert suite["kind"] == "suite"
        assert suite["status"] == "failed"
        container = suite["children"][0]
        assert container["name"] == "Widget"
        assert container["line"] == 5
        leaves = {c["name"]: c for c in container["children"]}
        assert leaves["creates"]["status"] == "passed"
        assert leaves["creates"]["key"] == f"{FILE}:10"
        assert "message" not in leaves["creates"]
        assert leaves["breaks"]["message"] == "expected true"

    def test_unreached_nodes_marked_not_run(self):
        reconciler = _tree()
        run = TestRun()
        run.passed(reconciler.tree.find("/pkg::Widget::creates"))
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(run)
        suite = reporter.generate_report()["report"]["suites"][0]
        assert suite["status"] == NOT_RUN

    def test_no_run(self):
        reporter = RunReporter(_tree().tree)
        report = reporter.generate_report()["report"]
        assert report["suites"] == []
        assert report["summary"]["total"] == 0


class TestWriteYaml:
    """Tests for writing report files."""

    def test_write_yaml(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out" / "report.yaml"
            reporter.write_yaml(path)
            data = yaml.safe_load(path.read_text())
            assert data["report"]["summary"]["failed"] == 1
            assert "history" not in data["report"]

    def test_history_appended(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "report.yaml"
            reporter.write_yaml_with_history(path, path)
            reporter.write_yaml_with_history(path, path)
            history = yaml.safe_load(path.read_text())["report"]["history"]
            entries = history["/pkg::Widget::breaks"]
            assert [e["status"] for e in entries] == ["failed", "failed"]
            assert entries[0]["message"] == "expected true"
            assert "message" not in history["/pkg::Widget::creates"][0]

    def test_history_trimmed(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "report.yaml"
            old = [{"status": "passed", "timestamp": "t"}] * MAX_HISTORY
            path.write_text(yaml.dump({"report": {"history": {"/pkg::Widget::creates": old}}}))
            report = reporter.generate_report_with_history(path)
            assert len(report["report"]["history"]["/pkg::Widget::creates"]) == MAX_HISTORY

    def test_corrupt_existing_report_ignored(self):
        reconciler = _tree()
        reporter = RunReporter(reconciler.tree)
        reporter.set_run(_finished_run(reconciler))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "report.yaml"
            path.write_text("report: [unclosed")
            report = reporter.generate_report_with_history(path)
            assert len(report["report"]["history"]["/pkg::Widget::breaks"]) == 1
