"""Tests for the run sink and cancellation token."""

from __future__ import annotations

import pytest

from ginkgo_tree.discovery.tree import LeafNode
from ginkgo_tree.execution.run import (
    ERRORED,
    FAILED,
    PASSED,
    SKIPPED,
    CancellationToken,
    Outcome,
    TestRun,
)


def _leaf(name: str = "a") -> LeafNode:
    return LeafNode(id=f"/pkg::{name}", label=name, file="/pkg/a_test.go")


class TestOutcome:
    """Tests for the Outcome value type."""

    def test_rejects_unknown_status(self):
        with pytest.raises(ValueError, match="Unknown terminal status"):
            Outcome("running")

    def test_equality(self):
        assert Outcome(FAILED, "x") == Outcome(FAILED, "x")


class TestTestRun:
    """Tests for status bookkeeping on a run."""

    def test_single_terminal_status(self):
        leaf = _leaf()
        run = TestRun()
        assert run.passed(leaf) is True
        assert run.failed(leaf, "late") is False
        assert run.status_of(leaf.id) == PASSED

    def test_each_status_helper(self):
        run = TestRun()
        run.passed(_leaf("p"))
        run.failed(_leaf("f"))
        run.skipped(_leaf("s"))
        run.errored(_leaf("e"), "launch failed")
        assert run.status_of("/pkg::p") == PASSED
        assert run.status_of("/pkg::f") == FAILED
        assert run.status_of("/pkg::s") == SKIPPED
        assert run.outcomes["/pkg::e"] == Outcome(ERRORED, "launch failed")

    def test_on_status_called_once(self):
        seen = []
        run = TestRun(on_status=lambda node, outcome: seen.append((node.id, outcome.status)))
        leaf = _leaf()
        run.skipped(leaf)
        run.passed(leaf)
        assert seen == [("/pkg::a", SKIPPED)]

    def test_started_recorded(self):
        run = TestRun()
        run.started(_leaf())
        assert run.started_ids == ["/pkg::a"]
        assert run.status_of("/pkg::a") is None

    def test_output_uses_crlf(self):
        chunks = []
        run = TestRun(on_output=chunks.append)
        run.append_output("one\ntwo\r\nthree\n")
        assert chunks == ["one\r\ntwo\r\nthree\r\n"]
        assert run.output == chunks

    def test_has_failures(self):
        run = TestRun()
        run.passed(_leaf("a"))
        assert not run.has_failures
        run.errored(_leaf("b"), "x")
        assert run.has_failures

    def test_end(self):
        run = TestRun()
        run.end()
        assert run.ended


class TestCancellationToken:
    """Tests for cooperative cancellation."""

    def test_callbacks_run_once(self):
        calls = []
        token = CancellationToken()
        token.on_cancel(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert calls == [1]
        assert token.cancelled

    def test_late_registration_runs_immediately(self):
        calls = []
        token = CancellationToken()
        token.cancel()
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]

    def test_failing_callback_does_not_stop_others(self, capsys):
        calls = []
        token = CancellationToken()

        def boom():
            raise RuntimeError("kaput")

        token.on_cancel(boom)
        token.on_cancel(lambda: calls.append(1))
        token.cancel()
        assert calls == [1]
        assert "kaput" in capsys.readouterr().err

    def test_unregistered_callback_not_called(self):
        calls = []
        token = CancellationToken()
        unregister = token.on_cancel(lambda: calls.append("dropped"))
        token.on_cancel(lambda: calls.append("kept"))
        unregister()
        unregister()
        token.cancel()
        assert calls == ["kept"]

    def test_unregister_after_cancel_is_harmless(self):
        token = CancellationToken()
        token.cancel()
        token.on_cancel(lambda: None)()
