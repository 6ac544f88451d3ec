"""Stable key derivation for suites, containers and leaf specs.

Keys are plain strings used as map indices.  They are derived purely from a
report entry's identity and never touch the file system::

    suite key       /abs/pkg
    container key   /abs/pkg::C::Outer::Inner
    leaf key        /abs/pkg/widget_test.go:42        (location known)
    fallback key    /abs/pkg::L::Outer::Inner::does a thing

Names are escaped before joining so that a name containing the delimiter
cannot collide with a deeper path (``["a::b"]`` vs ``["a", "b"]``).
"""

from __future__ import annotations

import os

DELIMITER = "::"
CONTAINER_MARKER = "C"
LEAF_MARKER = "L"


def escape_name(name: str) -> str:
    """Escape a container name so it contains no ``:`` characters.

    ``%`` is escaped first so the encoding stays reversible, which makes
    the delimiter join injective.
    """
    return name.replace("%", "%25").replace(":", "%3A")


def join_path(container_path: list[str]) -> str:
    """Join an escaped container path with the key delimiter."""
    return DELIMITER.join(escape_name(name) for name in container_path)


def resolve_path(path: str, base_dir: str | None = None) -> str:
    """Return the canonical absolute form of *path*.

    Relative paths are resolved against *base_dir* (or the current
    directory).  Case is normalized on case-insensitive platforms.
    """
    if not os.path.isabs(path) and base_dir:
        path = os.path.join(base_dir, path)
    return os.path.normcase(os.path.abspath(path))


def suite_key(suite_path: str, base_dir: str | None = None) -> str:
    """Stable identity of a suite, independent of its display label."""
    return resolve_path(suite_path, base_dir)


def container_key(suite_key_: str, container_path: list[str]) -> str:
    """Key of the container reached by *container_path* inside a suite.

    An empty path yields the key under which the suite itself is indexed.
    """
    return (
        f"{suite_key_}{DELIMITER}{CONTAINER_MARKER}{DELIMITER}"
        f"{join_path(container_path)}"
    )


def fallback_leaf_key(
    suite_key_: str,
    container_path: list[str],
    leaf_text: str,
) -> str:
    """Structural key for a leaf, used when no file/line is known.

    The leaf text is escaped like the container names, otherwise
    ``(["a"], "b::c")`` and ``(["a", "b"], "c")`` would share a key.
    """
    return (
        f"{suite_key_}{DELIMITER}{LEAF_MARKER}{DELIMITER}"
        f"{join_path(container_path)}{DELIMITER}{escape_name(leaf_text)}"
    )


def suite_dir(suite_key_: str) -> str:
    """Directory that relative spec locations are resolved against.

    Suite paths normally name a package directory; when they name the
    suite's bootstrap file instead, its parent directory is used.
    """
    if os.path.splitext(suite_key_)[1]:
        return os.path.dirname(suite_key_)
    return suite_key_


def location_key(file: str, line: int, base_dir: str | None = None) -> str:
    """``file:line`` key for a located leaf."""
    return f"{resolve_path(file, base_dir)}:{line}"


def leaf_key(
    suite_key_: str,
    container_path: list[str],
    leaf_text: str,
    file: str | None = None,
    line: int | None = None,
    base_dir: str | None = None,
) -> str:
    """Primary key of a leaf.

    Uses ``file:line`` when both are present, otherwise the structural
    fallback key.
    """
    if file and line:
        return location_key(file, line, base_dir)
    return fallback_leaf_key(suite_key_, container_path, leaf_text)
