"""Test tree node types and the tree container the host displays.

Three node kinds form the hierarchy suite -> containers -> leaves.  Every
node keeps an explicit ``parent`` back-reference so ancestors are walked
directly instead of being recovered from composite ids.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Union

ID_SEPARATOR = "::"


@dataclass(eq=False)
class _Node:
    """Attributes shared by every tree node."""

    id: str
    label: str
    file: str
    line: int = 1
    parent: ContainerNode | SuiteNode | None = field(default=None, repr=False)

    @property
    def line_range(self) -> tuple[int, int]:
        """0-based half-open range covering the node's single line."""
        start = max(self.line - 1, 0)
        return start, start + 1

    def ancestors(self) -> Iterator[ContainerNode | SuiteNode]:
        """Yield the parent chain, nearest first, ending at the suite."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent


@dataclass(eq=False)
class _ParentNode(_Node):
    children: dict[str, Node] = field(default_factory=dict, repr=False)
    descendant_leaf_keys: set[str] = field(default_factory=set, repr=False)

    def add_child(self, child: Node) -> None:
        child.parent = self
        self.children[child.id] = child

    def remove_child(self, child_id: str) -> Node | None:
        child = self.children.pop(child_id, None)
        if child is not None:
            child.parent = None
        return child

    def walk(self) -> Iterator[Node]:
        """Yield all descendants depth-first in child order."""
        for child in self.children.values():
            yield child
            if isinstance(child, _ParentNode):
                yield from child.walk()


@dataclass(eq=False)
class SuiteNode(_ParentNode):
    """Top-level node for one discovered suite."""

    suite_key: str = ""
    suite_path: str = ""
    container_key: str = ""
    busy: bool = False

    kind = "suite"


@dataclass(eq=False)
class ContainerNode(_ParentNode):
    """A named group between a suite and its leaves."""

    suite_key: str = ""
    container_path: list[str] = field(default_factory=list)
    container_key: str = ""

    kind = "container"


@dataclass(eq=False)
class LeafNode(_Node):
    """An individual runnable spec."""

    suite_key: str = ""
    container_path: list[str] = field(default_factory=list)
    leaf_text: str = ""
    leaf_key: str = ""
    fallback_leaf_key: str = ""
    has_location: bool = False

    kind = "leaf"


Node = Union[SuiteNode, ContainerNode, LeafNode]
ParentNode = Union[SuiteNode, ContainerNode]


def child_id(parent_id: str, name: str) -> str:
    """Id of a child named *name* under the node with *parent_id*."""
    return f"{parent_id}{ID_SEPARATOR}{name}"


class TestTree:
    """The root collection of suite nodes shown by the host."""

    __test__ = False  # not a pytest class

    def __init__(self) -> None:
        self.items: dict[str, SuiteNode] = {}

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[SuiteNode]:
        return iter(list(self.items.values()))

    def add(self, suite: SuiteNode) -> None:
        self.items[suite.id] = suite

    def delete(self, suite_id: str) -> SuiteNode | None:
        return self.items.pop(suite_id, None)

    def walk(self) -> Iterator[Node]:
        """Yield every node, suites first, depth-first."""
        for suite in list(self.items.values()):
            yield suite
            yield from suite.walk()

    def all_ids(self) -> set[str]:
        return {node.id for node in self.walk()}

    def find(self, node_id: str) -> Node | None:
        """Find a node by id, or None."""
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def items_for_file(self, path: str) -> list[Node]:
        """Return container and leaf nodes located in *path*.

        Suites are excluded; they have no single source line to attach
        actions to.
        """
        target = os.path.normcase(os.path.abspath(path))
        return [
            node for node in self.walk()
            if not isinstance(node, SuiteNode)
            and os.path.normcase(os.path.abspath(node.file)) == target
        ]
