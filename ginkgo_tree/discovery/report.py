"""Parse Ginkgo ``--json-report`` output into normalized suite reports.

The report is a JSON array with one object per suite::

    [{"SuitePath": "/abs/pkg",
      "SuiteDescription": "Widgets Suite",
      "SpecReports": [{"ContainerHierarchyTexts": ["Widget"],
                       "ContainerHierarchyLocations": [{"FileName": ..., "LineNumber": 7}],
                       "LeafNodeText": "creates correctly",
                       "LeafNodeLocation": {"FileName": ..., "LineNumber": 42},
                       "State": "passed",
                       "Failure": {"Message": "..."}}]}]

Parsing never raises: malformed input yields an empty list so callers fall
back to exit-code based status.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ginkgo_tree.discovery.keys import fallback_leaf_key, leaf_key, resolve_path, suite_dir, suite_key

UNNAMED_LEAF = "unnamed"

# Runner states with a dedicated meaning; anything else counts as a failure.
KNOWN_STATES = frozenset({"passed", "failed", "skipped", "pending", "unknown"})

# Report keys that introduce a container for spec reports (see collect_spec_reports).
_SPEC_REPORTS_MARKER = "specreport"


@dataclass(frozen=True)
class Location:
    """A 1-based source location; either part may be missing in reports."""

    file: str = ""
    line: int = 0


@dataclass
class SpecEntry:
    """One flattened leaf spec as reported by the runner."""

    container_path: list[str] = field(default_factory=list)
    container_locations: list[Location | None] = field(default_factory=list)
    leaf_text: str = UNNAMED_LEAF
    leaf_location: Location | None = None
    state: str = "unknown"
    failure_message: str | None = None


@dataclass
class SuiteReport:
    """One suite's worth of specs from a single runner invocation."""

    suite_path: str
    suite_description: str
    specs: list[SpecEntry] = field(default_factory=list)

    @property
    def key(self) -> str:
        return suite_key(self.suite_path)

    @property
    def base_dir(self) -> str:
        """Directory relative spec locations are resolved against."""
        return suite_dir(self.key)

    def display_location(
        self, location: Location | None,
    ) -> tuple[str, int]:
        """Resolve a possibly-missing location for display.

        Missing files default to the suite path and missing lines to 1.
        """
        if location is None:
            return self.suite_path, 1
        file = location.file or self.suite_path
        return resolve_path(file, self.base_dir), location.line or 1

    def keys_for(self, spec: SpecEntry) -> tuple[str, str]:
        """Return ``(leaf_key, fallback_leaf_key)`` for a spec of this suite."""
        fallback = fallback_leaf_key(self.key, spec.container_path, spec.leaf_text)
        location = spec.leaf_location
        if location is None:
            return fallback, fallback
        primary = leaf_key(
            self.key,
            spec.container_path,
            spec.leaf_text,
            file=location.file,
            line=location.line,
            base_dir=self.base_dir,
        )
        return primary, fallback


def _parse_location(raw: Any) -> Location | None:
    if not isinstance(raw, dict):
        return None
    file = raw.get("FileName")
    line = raw.get("LineNumber")
    if not isinstance(file, str):
        file = ""
    if not isinstance(line, int) or isinstance(line, bool) or line < 1:
        line = 0
    if not file and not line:
        return None
    return Location(file=file, line=line)


def parse_spec(raw: dict[str, Any]) -> SpecEntry:
    """Normalize a single raw spec report dict."""
    texts = raw.get("ContainerHierarchyTexts") or []
    container_path = [str(t) for t in texts] if isinstance(texts, list) else []

    raw_locations = raw.get("ContainerHierarchyLocations") or []
    if not isinstance(raw_locations, list):
        raw_locations = []
    container_locations: list[Location | None] = []
    for i in range(len(container_path)):
        loc = raw_locations[i] if i < len(raw_locations) else None
        container_locations.append(_parse_location(loc))

    leaf_text = raw.get("LeafNodeText")
    if not isinstance(leaf_text, str) or not leaf_text:
        leaf_text = UNNAMED_LEAF

    state = raw.get("State")
    state = state.lower() if isinstance(state, str) and state else "unknown"

    failure_message = None
    failure = raw.get("Failure")
    if isinstance(failure, dict):
        message = failure.get("Message")
        if isinstance(message, str) and message:
            failure_message = message

    return SpecEntry(
        container_path=container_path,
        container_locations=container_locations,
        leaf_text=leaf_text,
        leaf_location=_parse_location(raw.get("LeafNodeLocation")),
        state=state,
        failure_message=failure_message,
    )


def collect_spec_reports(obj: Any) -> list[dict[str, Any]]:
    """Recursively collect raw spec report dicts from any JSON value.

    Any dict key containing ``specreport`` (case-insensitive) whose value is
    a list contributes its dict elements.  Used for documents that are not a
    plain array of suite reports.
    """
    found: list[dict[str, Any]] = []

    def visit(value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                visit(item)
            return
        if not isinstance(value, dict):
            return
        for k, v in value.items():
            if _SPEC_REPORTS_MARKER in str(k).lower() and isinstance(v, list):
                found.extend(s for s in v if isinstance(s, dict))
            else:
                visit(v)

    visit(obj)
    return found


def _parse_suite(
    raw: dict[str, Any], workspace_dir: str | None,
) -> SuiteReport:
    suite_path = raw.get("SuitePath")
    if not isinstance(suite_path, str) or not suite_path:
        suite_path = workspace_dir or "."
    description = raw.get("SuiteDescription")
    if not isinstance(description, str) or not description:
        description = os.path.basename(suite_path.rstrip("/\\")) or suite_path

    raw_specs = raw.get("SpecReports")
    if not isinstance(raw_specs, list):
        raw_specs = collect_spec_reports(raw)

    return SuiteReport(
        suite_path=resolve_path(suite_path, workspace_dir),
        suite_description=description,
        specs=[parse_spec(s) for s in raw_specs if isinstance(s, dict)],
    )


def parse_report(
    text: str, workspace_dir: str | None = None,
) -> list[SuiteReport]:
    """Parse report text into suite reports.

    Args:
        text: Raw JSON report content.
        workspace_dir: Directory relative suite paths are resolved against.

    Returns:
        List of SuiteReport, empty if the report could not be parsed.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        print(f"Report: could not parse report: {e}", file=sys.stderr)
        return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        print("Report: unexpected top-level JSON value, ignoring", file=sys.stderr)
        return []

    return [_parse_suite(s, workspace_dir) for s in data if isinstance(s, dict)]


def read_report_file(
    path: str | Path, workspace_dir: str | None = None,
) -> list[SuiteReport]:
    """Read and parse a report file, then remove it.

    The file is removed whether or not parsing succeeded.  A missing or
    unreadable file yields an empty list.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Report: could not read {path}: {e}", file=sys.stderr)
        return []
    finally:
        try:
            path.unlink()
        except OSError:
            pass
    if not text.strip():
        return []
    return parse_report(text, workspace_dir)


def index_report(suites: list[SuiteReport]) -> dict[str, SpecEntry]:
    """Index every spec by its leaf key and fallback key.

    The first spec registered under a key wins.
    """
    by_key: dict[str, SpecEntry] = {}
    for suite in suites:
        for spec in suite.specs:
            primary, fallback = suite.keys_for(spec)
            by_key.setdefault(primary, spec)
            by_key.setdefault(fallback, spec)
    return by_key
