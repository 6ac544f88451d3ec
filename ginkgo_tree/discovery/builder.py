"""Build and reconcile the test tree from discovery reports.

Each discovery pass walks every spec of every suite report, reusing nodes
whose ids already exist, creating missing ones and finally deleting nodes
the report no longer produces.  Reused nodes keep their ids, so host-side
state keyed by id (selection, expansion) survives re-discovery.

Ids are composed as ``parent_id + "::" + name``.  Containers with the same
name under the same parent merge into one node.  A leaf whose id is already
claimed in the same pass (duplicate leaf text, or a container of the same
name) gets an ordinal suffix (``"::does x#2"``) so no spec is lost.

The lookup index is always built into a fresh ``LookupIndex`` and swapped
in only after all suites are built; stale suites are deleted after the swap.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ginkgo_tree.discovery.index import LookupIndex
from ginkgo_tree.discovery.keys import container_key
from ginkgo_tree.discovery.report import Location, SpecEntry, SuiteReport
from ginkgo_tree.discovery.tree import (
    ContainerNode,
    LeafNode,
    Node,
    ParentNode,
    SuiteNode,
    TestTree,
    child_id,
)


@dataclass
class BuildResult:
    """Node ids affected by a discovery pass."""

    touched: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    def extend(self, other: BuildResult) -> None:
        self.touched.extend(other.touched)
        self.created.extend(other.created)
        self.deleted.extend(other.deleted)


class _SuitePass:
    """Bookkeeping for building one suite within one pass."""

    def __init__(self, suite: SuiteNode, report: SuiteReport, index: LookupIndex) -> None:
        self.suite = suite
        self.report = report
        self.index = index
        self.result = BuildResult()
        self.seen: set[str] = set()
        # parent id -> child ids in report order (dict used as ordered set)
        self.order: dict[str, dict[str, None]] = {}

    def _mark(self, parent: ParentNode, node_id: str) -> None:
        if node_id not in self.seen:
            self.seen.add(node_id)
            self.result.touched.append(node_id)
        self.order.setdefault(parent.id, {})[node_id] = None

    def _claim_id(
        self, parent: ParentNode, base_id: str, kind: type,
    ) -> tuple[str, ContainerNode | LeafNode | None]:
        """Pick the id for a child of *kind* and the node to reuse, if any.

        A node of the other kind left over from the previous pass does not
        hold its id; it is evicted so the id stays stable across passes.
        """
        candidate = base_id
        n = 1
        while True:
            existing = parent.children.get(candidate)
            if existing is None:
                return candidate, None
            if isinstance(existing, kind):
                if kind is ContainerNode or candidate not in self.seen:
                    return candidate, existing
            elif candidate not in self.seen:
                self._evict(parent, candidate)
                return candidate, None
            n += 1
            candidate = f"{base_id}#{n}"

    def _evict(self, parent: ParentNode, node_id: str) -> None:
        child = parent.remove_child(node_id)
        if child is None:
            return
        self.result.deleted.append(child.id)
        if isinstance(child, ContainerNode):
            self.result.deleted.extend(n.id for n in child.walk())

    def add_spec(self, spec: SpecEntry) -> None:
        parent: ParentNode = self.suite
        path: list[str] = []
        locations = spec.container_locations
        for i, name in enumerate(spec.container_path):
            location = locations[i] if i < len(locations) else None
            path = path + [name]
            parent = self._container(parent, name, path, location)
        self._leaf(parent, spec)

    def _container(
        self,
        parent: ParentNode,
        name: str,
        path: list[str],
        location: Location | None,
    ) -> ContainerNode:
        node_id, node = self._claim_id(parent, child_id(parent.id, name), ContainerNode)
        file, line = self.report.display_location(location)
        if node is None:
            node = ContainerNode(id=node_id, label=name, file=file, line=line)
            parent.add_child(node)
            self.result.created.append(node_id)
        elif node_id not in self.seen:
            # first visit this pass: drop last generation's leaf keys
            node.descendant_leaf_keys = set()
        node.label = name
        node.file = file
        node.line = line
        node.suite_key = self.suite.suite_key
        node.container_path = list(path)
        node.container_key = container_key(self.suite.suite_key, path)
        self.index.container_key_to_leaf_keys.setdefault(node.container_key, set())
        self._mark(parent, node_id)
        return node

    def _leaf(self, parent: ParentNode, spec: SpecEntry) -> LeafNode:
        node_id, node = self._claim_id(
            parent, child_id(parent.id, spec.leaf_text), LeafNode,
        )
        file, line = self.report.display_location(spec.leaf_location)
        if node is None:
            node = LeafNode(id=node_id, label=spec.leaf_text, file=file, line=line)
            parent.add_child(node)
            self.result.created.append(node_id)
        primary, fallback = self.report.keys_for(spec)
        node.label = spec.leaf_text
        node.file = file
        node.line = line
        node.suite_key = self.suite.suite_key
        node.container_path = list(spec.container_path)
        node.leaf_text = spec.leaf_text
        node.fallback_leaf_key = fallback
        node.has_location = primary != fallback
        node.leaf_key = self.index.register_leaf(node, primary, fallback)
        self._mark(parent, node_id)

        for ancestor in node.ancestors():
            ancestor.descendant_leaf_keys.add(node.leaf_key)
            self.index.register_descendant(ancestor.container_key, node.leaf_key)
        return node

    def prune(self, node: ParentNode) -> None:
        """Drop unseen children and restore report order, recursively."""
        order = self.order.get(node.id, {})
        for cid in [cid for cid in node.children if cid not in order]:
            self._evict(node, cid)
        kept: dict[str, Node] = {}
        for cid in order:
            child = node.children.get(cid)
            if child is not None:
                kept[cid] = child
        node.children = kept
        for child in kept.values():
            if isinstance(child, ContainerNode):
                self.prune(child)


def build_suite(
    tree: TestTree, report: SuiteReport, index: LookupIndex,
) -> BuildResult:
    """Build or update the subtree for one suite report.

    Args:
        tree: The tree to update in place.
        report: The suite's discovery report.
        index: The next-generation index to register keys into.

    Returns:
        BuildResult listing touched, created and deleted node ids.
    """
    key = report.key
    suite = tree.items.get(key)
    created = suite is None
    if suite is None:
        suite = SuiteNode(id=key, label=report.suite_description, file=report.suite_path)
        tree.add(suite)
    suite.label = report.suite_description
    suite.file = report.suite_path
    suite.line = 1
    suite.suite_key = key
    suite.suite_path = report.suite_path
    suite.container_key = container_key(key, [])

    suite.busy = True
    try:
        build = _SuitePass(suite, report, index)
        if created:
            build.result.created.append(suite.id)
        build.result.touched.append(suite.id)
        build.seen.add(suite.id)
        suite.descendant_leaf_keys = set()
        index.container_key_to_leaf_keys.setdefault(suite.container_key, set())

        for spec in report.specs:
            build.add_spec(spec)
        build.prune(suite)
    finally:
        suite.busy = False
    return build.result


def _group_by_suite(reports: list[SuiteReport]) -> list[SuiteReport]:
    """Merge reports that resolve to the same suite key, keeping order."""
    grouped: dict[str, SuiteReport] = {}
    for report in reports:
        existing = grouped.get(report.key)
        if existing is None:
            grouped[report.key] = SuiteReport(
                suite_path=report.suite_path,
                suite_description=report.suite_description,
                specs=list(report.specs),
            )
        else:
            existing.specs.extend(report.specs)
    return list(grouped.values())


class TreeReconciler:
    """Owns the test tree and the current lookup index.

    ``reconcile`` runs a full discovery pass: every suite is built into a
    fresh index, the index is swapped in, and only then are suites that
    were not rediscovered deleted.
    """

    def __init__(self, tree: TestTree | None = None) -> None:
        self.tree = tree if tree is not None else TestTree()
        self.index = LookupIndex()

    def reconcile(self, reports: list[SuiteReport]) -> BuildResult:
        result = BuildResult()
        next_index = LookupIndex()
        rediscovered: set[str] = set()

        for report in _group_by_suite(reports):
            result.extend(build_suite(self.tree, report, next_index))
            rediscovered.add(report.key)

        self.index = next_index

        for suite in self.tree:
            if suite.suite_key in rediscovered:
                continue
            self.tree.delete(suite.id)
            result.deleted.append(suite.id)
            result.deleted.extend(n.id for n in suite.walk())

        return result
