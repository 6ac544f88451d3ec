"""Reverse indices used to map run results back onto tree nodes.

``leaf_key_to_node`` maps a leaf key (and each leaf's fallback key) to its
node; ``container_key_to_leaf_keys`` maps a container or suite key to the
keys of every leaf beneath it.  A full discovery pass builds a fresh index
and swaps it in only when every suite has been built.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ginkgo_tree.discovery.tree import LeafNode


@dataclass
class LookupIndex:
    """Leaf and container reverse indices for one discovery generation."""

    leaf_key_to_node: dict[str, LeafNode] = field(default_factory=dict)
    container_key_to_leaf_keys: dict[str, set[str]] = field(default_factory=dict)

    def register_leaf(self, leaf: LeafNode, primary: str, fallback: str) -> str:
        """Index *leaf* and return the key it was registered under.

        The first leaf registered under a key keeps it.  A leaf whose
        primary key is taken is registered under its fallback key instead;
        if that is taken too the leaf stays reachable only through the key
        already held by the earlier leaf.
        """
        owner = self.leaf_key_to_node.get(primary)
        if owner is None or owner is leaf:
            self.leaf_key_to_node[primary] = leaf
            self.leaf_key_to_node.setdefault(fallback, leaf)
            return primary
        self.leaf_key_to_node.setdefault(fallback, leaf)
        return fallback

    def register_descendant(self, container_key: str, leaf_key: str) -> None:
        self.container_key_to_leaf_keys.setdefault(container_key, set()).add(leaf_key)

    def leaf_keys_under(self, container_key: str) -> set[str]:
        return set(self.container_key_to_leaf_keys.get(container_key, ()))

    def __len__(self) -> int:
        return len(self.leaf_key_to_node)
