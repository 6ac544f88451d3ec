"""Map a post-run report back onto tree nodes and aggregate statuses.

Runner spec states map to terminal statuses::

    passed            -> passed
    skipped, pending  -> skipped
    anything else     -> failed (with the runner's failure message)

When a report has no entry for a node (the report was missing, malformed
or did not include it) the process exit code decides: 0 is passed,
anything else is failed.

For a container or suite, every descendant leaf found in the report gets
its own status, then the container's aggregate is applied last: failed
dominates, otherwise passed if any leaf passed, otherwise skipped.
"""

from __future__ import annotations

from ginkgo_tree.discovery.index import LookupIndex
from ginkgo_tree.discovery.report import SpecEntry
from ginkgo_tree.discovery.tree import LeafNode, Node
from ginkgo_tree.execution.run import (
    DEFAULT_FAILURE_MESSAGE,
    FAILED,
    PASSED,
    SKIPPED,
    Outcome,
    TestRun,
)

_SKIPPED_STATES = frozenset({"skipped", "pending"})


def outcome_for_spec(spec: SpecEntry) -> Outcome:
    """Terminal outcome for a reported spec state."""
    if spec.state == "passed":
        return Outcome(PASSED)
    if spec.state in _SKIPPED_STATES:
        return Outcome(SKIPPED)
    return Outcome(FAILED, spec.failure_message or DEFAULT_FAILURE_MESSAGE)


def outcome_for_exit_code(exit_code: int | None) -> Outcome:
    """Fallback outcome when the report says nothing about a node."""
    if exit_code == 0:
        return Outcome(PASSED)
    return Outcome(FAILED, DEFAULT_FAILURE_MESSAGE)


def aggregate(outcomes: list[Outcome]) -> Outcome:
    """Fold leaf outcomes into a container outcome.

    Raises:
        ValueError: If *outcomes* is empty.
    """
    if not outcomes:
        raise ValueError("Cannot aggregate an empty outcome list")
    failed = [o for o in outcomes if o.status == FAILED]
    if failed:
        if len(failed) == 1:
            return Outcome(FAILED, failed[0].message or DEFAULT_FAILURE_MESSAGE)
        return Outcome(FAILED, f"{len(failed)} of {len(outcomes)} specs failed")
    if any(o.status == PASSED for o in outcomes):
        return Outcome(PASSED)
    return Outcome(SKIPPED)


def find_spec(
    leaf: LeafNode, specs: dict[str, SpecEntry], key: str | None = None,
) -> SpecEntry | None:
    """Look a leaf up in an indexed report by key, then its fallback key."""
    for candidate in (key, leaf.leaf_key, leaf.fallback_leaf_key):
        if candidate and candidate in specs:
            return specs[candidate]
    return None


def descendant_leaf_keys(node: Node, index: LookupIndex) -> set[str]:
    """Leaf keys beneath a container or suite.

    Uses the node's own set, falling back to the index when the node
    carries none.
    """
    keys = getattr(node, "descendant_leaf_keys", None)
    if keys:
        return set(keys)
    return index.leaf_keys_under(getattr(node, "container_key", ""))


def _leaves_in_tree_order(
    node: Node, index: LookupIndex,
) -> list[tuple[str, LeafNode]]:
    """Descendant leaves of *node* with their keys, in tree order.

    Keys with no leaf under *node* in the tree are resolved through the
    index and appended after the walked leaves.
    """
    keys = descendant_leaf_keys(node, index)
    leaves: list[tuple[str, LeafNode]] = []
    seen: set[str] = set()
    walk = getattr(node, "walk", None)
    if walk is not None:
        for child in walk():
            if isinstance(child, LeafNode) and child.leaf_key in keys:
                leaves.append((child.leaf_key, child))
                seen.add(child.id)
    covered = {key for key, _ in leaves}
    for key in sorted(keys - covered):
        leaf = index.leaf_key_to_node.get(key)
        if leaf is None or leaf.id in seen:
            continue
        leaves.append((key, leaf))
        seen.add(leaf.id)
    return leaves


def map_results(
    node: Node,
    specs: dict[str, SpecEntry],
    exit_code: int | None,
    index: LookupIndex,
    run: TestRun,
) -> Outcome:
    """Apply a run's results to *node* (and its leaves) on *run*.

    Args:
        node: The suite, container or leaf that was run.
        specs: The post-run report indexed by ``index_report``.
        exit_code: The runner's exit code, used as the fallback signal.
        index: The current lookup index.
        run: The host run sink receiving terminal statuses.

    Returns:
        The outcome computed for *node*.
    """
    if isinstance(node, LeafNode):
        spec = find_spec(node, specs)
        if spec is None:
            outcome = outcome_for_exit_code(exit_code)
        else:
            outcome = outcome_for_spec(spec)
        run.apply(node, outcome)
        return outcome

    found: list[Outcome] = []
    for key, leaf in _leaves_in_tree_order(node, index):
        spec = find_spec(leaf, specs, key)
        if spec is None:
            run.apply(leaf, outcome_for_exit_code(exit_code))
            continue
        outcome = outcome_for_spec(spec)
        run.apply(leaf, outcome)
        found.append(outcome)

    outcome = aggregate(found) if found else outcome_for_exit_code(exit_code)
    run.apply(node, outcome)
    return outcome
