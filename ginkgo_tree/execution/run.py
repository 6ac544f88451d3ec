"""Host-facing test run sink and cancellation token.

A ``TestRun`` receives per-item lifecycle callbacks while items execute:
``started``, then exactly one terminal status (``passed``, ``failed``,
``skipped`` or ``errored``).  A second terminal status for the same node in
the same run is ignored.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass

from ginkgo_tree.discovery.tree import Node

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"
ERRORED = "errored"

TERMINAL_STATUSES = frozenset({PASSED, FAILED, SKIPPED, ERRORED})

DEFAULT_FAILURE_MESSAGE = "Failed"


@dataclass(frozen=True)
class Outcome:
    """A terminal status with its optional message."""

    status: str
    message: str | None = None

    def __post_init__(self) -> None:
        if self.status not in TERMINAL_STATUSES:
            raise ValueError(f"Unknown terminal status: {self.status}")


class TestRun:
    """Collects the statuses and output of one run request.

    Hosts subscribe through *on_status* (called once per node with its
    terminal outcome) and *on_output*.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        on_status: Callable[[Node, Outcome], None] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> None:
        self.on_status = on_status
        self.on_output = on_output
        self.started_ids: list[str] = []
        self.outcomes: dict[str, Outcome] = {}
        self.nodes: dict[str, Node] = {}
        self.output: list[str] = []
        self.ended = False

    def started(self, node: Node) -> None:
        self.started_ids.append(node.id)

    def passed(self, node: Node) -> bool:
        return self.apply(node, Outcome(PASSED))

    def failed(self, node: Node, message: str = DEFAULT_FAILURE_MESSAGE) -> bool:
        return self.apply(node, Outcome(FAILED, message))

    def skipped(self, node: Node) -> bool:
        return self.apply(node, Outcome(SKIPPED))

    def errored(self, node: Node, message: str) -> bool:
        return self.apply(node, Outcome(ERRORED, message))

    def apply(self, node: Node, outcome: Outcome) -> bool:
        """Record a terminal outcome; returns False if one was already set."""
        if node.id in self.outcomes:
            return False
        self.outcomes[node.id] = outcome
        self.nodes[node.id] = node
        if self.on_status is not None:
            self.on_status(node, outcome)
        return True

    def append_output(self, text: str) -> None:
        # hosts render run output in a terminal that expects CRLF
        text = text.replace("\r\n", "\n").replace("\n", "\r\n")
        self.output.append(text)
        if self.on_output is not None:
            self.on_output(text)

    def status_of(self, node_id: str) -> str | None:
        outcome = self.outcomes.get(node_id)
        return outcome.status if outcome is not None else None

    def end(self) -> None:
        self.ended = True

    @property
    def has_failures(self) -> bool:
        return any(o.status in (FAILED, ERRORED) for o in self.outcomes.values())


class CancellationToken:
    """Cooperative cancellation signal shared between a host and a run."""

    def __init__(self) -> None:
        self.cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register *callback*; runs immediately if already cancelled.

        Returns:
            A function that unregisters *callback* so a later cancel
            no longer calls it.
        """
        if self.cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                print(f"Run: cancellation callback failed: {e}", file=sys.stderr)
