"""Tests for building and reconciling the test tree."""

from __future__ import annotations

import os

from ginkgo_tree.discovery.builder import TreeReconciler, build_suite
from ginkgo_tree.discovery.index import LookupIndex
from ginkgo_tree.discovery.keys import container_key, fallback_leaf_key
from ginkgo_tree.discovery.report import Location, SpecEntry, SuiteReport
from ginkgo_tree.discovery.tree import ContainerNode, LeafNode, TestTree

WIDGET_FILE = "/pkg/widget_test.go"


def _spec(
    path: list[str],
    text: str,
    line: int | None = None,
    file: str = WIDGET_FILE,
    state: str = "passed",
) -> SpecEntry:
    return SpecEntry(
        container_path=list(path),
        container_locations=[Location(file, 10 + i) for i in range(len(path))],
        leaf_text=text,
        leaf_location=Location(file, line) if line else None,
        state=state,
    )


def _suite(*specs: SpecEntry, path: str = "/pkg", name: str = "Widgets Suite") -> SuiteReport:
    return SuiteReport(suite_path=path, suite_description=name, specs=list(specs))


# ---------------------------------------------------------------------------
# Single suite builds
# ---------------------------------------------------------------------------


class TestBuildSuite:
    """Tests for building a single suite subtree."""

    def test_widgets_suite(self):
        """One suite, one container, one located leaf."""
        tree, index = TestTree(), LookupIndex()
        result = build_suite(tree, _suite(_spec(["Widget"], "creates correctly", 42)), index)

        suite = tree.items["/pkg"]
        assert suite.label == "Widgets Suite"
        container = suite.children["/pkg::Widget"]
        assert isinstance(container, ContainerNode)
        leaf = container.children["/pkg::Widget::creates correctly"]
        assert isinstance(leaf, LeafNode)

        expected_key = os.path.normcase(WIDGET_FILE) + ":42"
        assert leaf.leaf_key == expected_key
        assert leaf.has_location
        assert leaf.file == os.path.normcase(WIDGET_FILE)
        assert leaf.line == 42
        assert index.leaf_key_to_node[expected_key] is leaf
        assert index.leaf_keys_under(container.container_key) == {expected_key}
        assert index.leaf_keys_under(suite.container_key) == {expected_key}
        assert sorted(result.created) == sorted([
            "/pkg", "/pkg::Widget", "/pkg::Widget::creates correctly",
        ])
        assert result.deleted == []

    def test_container_metadata(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(_spec(["Outer", "Inner"], "x", 20)), index)
        inner = tree.find("/pkg::Outer::Inner")
        assert inner.container_path == ["Outer", "Inner"]
        assert inner.container_key == container_key("/pkg", ["Outer", "Inner"])
        assert inner.line == 11
        assert inner.parent.id == "/pkg::Outer"

    def test_unlocated_leaf_uses_fallback(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(_spec(["Widget"], "floats")), index)
        leaf = tree.find("/pkg::Widget::floats")
        assert not leaf.has_location
        assert leaf.leaf_key == fallback_leaf_key("/pkg", ["Widget"], "floats")
        assert leaf.file == "/pkg"
        assert leaf.line == 1

    def test_leaf_directly_under_suite(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(_spec([], "top level", 5)), index)
        leaf = tree.find("/pkg::top level")
        assert leaf.parent.id == "/pkg"
        assert index.leaf_keys_under(container_key("/pkg", [])) == {leaf.leaf_key}

    def test_descendant_keys_propagate(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(
            _spec(["A", "B"], "one", 30),
            _spec(["A"], "two", 40),
        ), index)
        a = tree.find("/pkg::A")
        b = tree.find("/pkg::A::B")
        suite = tree.items["/pkg"]
        assert len(a.descendant_leaf_keys) == 2
        assert len(b.descendant_leaf_keys) == 1
        assert suite.descendant_leaf_keys == a.descendant_leaf_keys

    def test_containers_with_same_name_merge(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(
            _spec(["Widget"], "one", 30),
            _spec(["Widget"], "two", 40),
        ), index)
        suite = tree.items["/pkg"]
        assert list(suite.children) == ["/pkg::Widget"]
        assert len(suite.children["/pkg::Widget"].children) == 2

    def test_duplicate_leaf_gets_suffix(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(
            _spec(["Widget"], "works", 30),
            _spec(["Widget"], "works", 40),
        ), index)
        container = tree.find("/pkg::Widget")
        assert list(container.children) == ["/pkg::Widget::works", "/pkg::Widget::works#2"]

    def test_leaf_named_like_container_gets_suffix(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(
            _spec(["A"], "x", 30),
            _spec([], "A", 40),
        ), index)
        suite = tree.items["/pkg"]
        assert isinstance(suite.children["/pkg::A"], ContainerNode)
        assert isinstance(suite.children["/pkg::A#2"], LeafNode)

    def test_colliding_location_registered_under_fallback(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(
            _spec(["Table"], "entry 1", 30),
            _spec(["Table"], "entry 2", 30),
        ), index)
        first = tree.find("/pkg::Table::entry 1")
        second = tree.find("/pkg::Table::entry 2")
        assert first.leaf_key == os.path.normcase(WIDGET_FILE) + ":30"
        assert second.leaf_key == second.fallback_leaf_key
        assert index.leaf_key_to_node[second.leaf_key] is second

    def test_containers_without_locations(self):
        """A spec carrying no container locations still gets its containers."""
        tree, index = TestTree(), LookupIndex()
        spec = SpecEntry(container_path=["Widget", "Inner"], leaf_text="creates")
        build_suite(tree, _suite(spec), index)

        container = tree.find("/pkg::Widget::Inner")
        assert isinstance(container, ContainerNode)
        assert container.file == "/pkg"
        leaf = tree.find("/pkg::Widget::Inner::creates")
        assert leaf.parent is container
        assert tree.find("/pkg::creates") is None

    def test_partial_container_locations(self):
        tree, index = TestTree(), LookupIndex()
        spec = SpecEntry(
            container_path=["Outer", "Inner"],
            container_locations=[Location(WIDGET_FILE, 7)],
            leaf_text="x",
        )
        build_suite(tree, _suite(spec), index)
        assert tree.find("/pkg::Outer").line == 7
        assert tree.find("/pkg::Outer::Inner").line == 1
        assert tree.find("/pkg::Outer::Inner::x") is not None

    def test_busy_cleared(self):
        tree, index = TestTree(), LookupIndex()
        build_suite(tree, _suite(_spec(["Widget"], "x", 3)), index)
        assert tree.items["/pkg"].busy is False


# ---------------------------------------------------------------------------
# Re-discovery
# ---------------------------------------------------------------------------


class TestReconcile:
    """Tests for re-discovery passes over an existing tree."""

    def test_second_pass_is_idempotent(self):
        reconciler = TreeReconciler()
        report = _suite(
            _spec(["Widget"], "creates", 42),
            _spec(["Widget"], "creates", 50),
            _spec([], "floats"),
        )
        reconciler.reconcile([report])
        ids_before = reconciler.tree.all_ids()

        result = reconciler.reconcile([report])
        assert result.created == []
        assert result.deleted == []
        assert reconciler.tree.all_ids() == ids_before
        assert set(result.touched) == ids_before

    def test_nodes_are_reused(self):
        reconciler = TreeReconciler()
        report = _suite(_spec(["Widget"], "creates", 42))
        reconciler.reconcile([report])
        leaf = reconciler.tree.find("/pkg::Widget::creates")
        reconciler.reconcile([report])
        assert reconciler.tree.find("/pkg::Widget::creates") is leaf

    def test_stale_leaf_removed_siblings_kept(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(
            _spec(["W"], "a", 1), _spec(["W"], "b", 2), _spec(["W"], "c", 3),
        )])
        a = reconciler.tree.find("/pkg::W::a")

        result = reconciler.reconcile([_suite(_spec(["W"], "a", 1), _spec(["W"], "c", 3))])
        assert result.deleted == ["/pkg::W::b"]
        assert reconciler.tree.find("/pkg::W::b") is None
        assert reconciler.tree.find("/pkg::W::a") is a
        assert reconciler.tree.find("/pkg::W::c") is not None

    def test_stale_container_removed_with_descendants(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec(["Gone", "Deep"], "x", 1), _spec(["Kept"], "y", 2))])
        result = reconciler.reconcile([_suite(_spec(["Kept"], "y", 2))])
        assert set(result.deleted) == {"/pkg::Gone", "/pkg::Gone::Deep", "/pkg::Gone::Deep::x"}

    def test_stale_keys_dropped_from_container(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec(["W"], "a", 1), _spec(["W"], "b", 2))])
        reconciler.reconcile([_suite(_spec(["W"], "a", 1))])
        container = reconciler.tree.find("/pkg::W")
        assert container.descendant_leaf_keys == {os.path.normcase(WIDGET_FILE) + ":1"}
        assert reconciler.index.leaf_keys_under(container.container_key) == {
            os.path.normcase(WIDGET_FILE) + ":1",
        }

    def test_children_follow_report_order(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec([], "a", 1), _spec([], "b", 2))])
        reconciler.reconcile([_suite(_spec([], "b", 2), _spec([], "a", 1))])
        assert list(reconciler.tree.items["/pkg"].children) == ["/pkg::b", "/pkg::a"]

    def test_leaf_replaced_by_container_keeps_base_id(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec([], "foo", 1))])
        report = _suite(_spec(["foo"], "x", 2))

        result = reconciler.reconcile([report])
        assert reconciler.tree.all_ids() == {"/pkg", "/pkg::foo", "/pkg::foo::x"}
        assert isinstance(reconciler.tree.find("/pkg::foo"), ContainerNode)
        assert "/pkg::foo" in result.deleted
        assert "/pkg::foo" in result.created

        result = reconciler.reconcile([report])
        assert result.created == []
        assert result.deleted == []
        assert reconciler.tree.all_ids() == {"/pkg", "/pkg::foo", "/pkg::foo::x"}

    def test_container_replaced_by_leaf_keeps_base_id(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec(["foo"], "x", 2))])
        report = _suite(_spec([], "foo", 1))

        result = reconciler.reconcile([report])
        assert reconciler.tree.all_ids() == {"/pkg", "/pkg::foo"}
        assert isinstance(reconciler.tree.find("/pkg::foo"), LeafNode)
        assert set(result.deleted) == {"/pkg::foo", "/pkg::foo::x"}

        result = reconciler.reconcile([report])
        assert result.created == []
        assert result.deleted == []

    def test_pruned_nodes_detached(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec(["W"], "a", 1), _spec(["W"], "b", 2))])
        b = reconciler.tree.find("/pkg::W::b")
        reconciler.reconcile([_suite(_spec(["W"], "a", 1))])
        assert b.parent is None

    def test_relabel_keeps_id(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec([], "a", 1), name="Old Name")])
        reconciler.reconcile([_suite(_spec([], "a", 1), name="New Name")])
        assert reconciler.tree.items["/pkg"].label == "New Name"

    def test_stale_suite_deleted(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([
            _suite(_spec([], "a", 1)),
            _suite(_spec([], "b", 1, file="/other/b_test.go"), path="/other", name="Other"),
        ])
        result = reconciler.reconcile([_suite(_spec([], "a", 1))])
        assert list(reconciler.tree.items) == ["/pkg"]
        assert "/other" in result.deleted
        assert "/other::b" in result.deleted

    def test_index_swapped_each_pass(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec([], "a", 1))])
        first = reconciler.index
        reconciler.reconcile([_suite(_spec([], "b", 2))])
        assert reconciler.index is not first
        assert os.path.normcase(WIDGET_FILE) + ":1" not in reconciler.index.leaf_key_to_node
        assert os.path.normcase(WIDGET_FILE) + ":2" in reconciler.index.leaf_key_to_node

    def test_reports_for_same_suite_merge(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([
            _suite(_spec([], "a", 1)),
            _suite(_spec([], "b", 2)),
        ])
        assert set(reconciler.tree.items["/pkg"].children) == {"/pkg::a", "/pkg::b"}

    def test_empty_reconcile_clears_tree(self):
        reconciler = TreeReconciler()
        reconciler.reconcile([_suite(_spec([], "a", 1))])
        reconciler.reconcile([])
        assert len(reconciler.tree) == 0
        assert len(reconciler.index) == 0
