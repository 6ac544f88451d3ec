"""Adapter configuration file management.

Reads and writes the .ginkgo_tree_config JSON file that stores the runner
executable, environment overrides, build tags and timing parameters.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

CONFIG_FILENAME = ".ginkgo_tree_config"

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "ginkgo_path": "ginkgo",
    "environment_variables": {},
    "build_tags": [],
    "debounce_seconds": 0.5,
    "discovery_timeout": 300,
    "run_timeout": None,
}


def _defaults() -> dict[str, Any]:
    return json.loads(json.dumps(DEFAULT_CONFIG))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# Checks applied to known keys on load; a failing value keeps its default.
_VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "ginkgo_path": lambda v: isinstance(v, str),
    "environment_variables": lambda v: isinstance(v, dict),
    "build_tags": lambda v: isinstance(v, (list, str)),
    "debounce_seconds": lambda v: _is_number(v) and v >= 0,
    "discovery_timeout": lambda v: v is None or (_is_number(v) and v > 0),
    "run_timeout": lambda v: v is None or (_is_number(v) and v > 0),
}


def _validated(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay *data* on the defaults, dropping values of the wrong shape."""
    merged = _defaults()
    for key, value in data.items():
        check = _VALIDATORS.get(key)
        if check is not None and not check(value):
            print(
                f"Config: ignoring invalid {key}={value!r}, "
                f"using {DEFAULT_CONFIG[key]!r}",
                file=sys.stderr,
            )
            continue
        merged[key] = value
    return merged


class AdapterConfig:
    """Manages the .ginkgo_tree_config JSON configuration file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, Any] = _defaults()
        if path is not None and path.exists():
            self._load()

    def _load(self) -> None:
        """Load config from the file, keeping defaults for bad values.

        An unreadable file or a top level that is not an object leaves
        every setting at its default.
        """
        assert self.path is not None
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            print(f"Config: cannot read {self.path}: {e}", file=sys.stderr)
            return
        if not isinstance(data, dict):
            print(f"Config: {self.path} is not a JSON object", file=sys.stderr)
            return
        self._data = _validated(data)

    def save(self) -> None:
        """Write the current settings, creating parent directories.

        Raises:
            ValueError: If the config has no file path.
        """
        if self.path is None:
            raise ValueError("No config file path specified")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2) + "\n")

    @property
    def config(self) -> dict[str, Any]:
        """Get the full configuration dict."""
        return dict(self._data)

    @property
    def ginkgo_path(self) -> str:
        """Get the runner executable (name on PATH or absolute path)."""
        val = self._data.get("ginkgo_path")
        return str(val) if val else DEFAULT_CONFIG["ginkgo_path"]

    @property
    def environment_variables(self) -> dict[str, str]:
        """Get environment overrides merged onto the inherited environment."""
        val = self._data.get("environment_variables") or {}
        if not isinstance(val, dict):
            return {}
        return {str(k): str(v) for k, v in val.items()}

    @property
    def build_tags(self) -> list[str]:
        """Get build tags passed to the runner as ``--tags``."""
        val = self._data.get("build_tags") or []
        if isinstance(val, str):
            val = val.split(",")
        return [str(t).strip() for t in val if str(t).strip()]

    @property
    def debounce_seconds(self) -> float:
        """Get the re-discovery debounce window."""
        return float(
            self._data.get("debounce_seconds", DEFAULT_CONFIG["debounce_seconds"])
        )

    @property
    def discovery_timeout(self) -> float | None:
        """Get the discovery timeout in seconds (None = unlimited)."""
        val = self._data.get("discovery_timeout", DEFAULT_CONFIG["discovery_timeout"])
        return float(val) if val is not None else None

    @property
    def run_timeout(self) -> float | None:
        """Get the run timeout in seconds (None = unlimited)."""
        val = self._data.get("run_timeout", DEFAULT_CONFIG["run_timeout"])
        return float(val) if val is not None else None

    def set_config(
        self,
        ginkgo_path: str | None = None,
        environment_variables: dict[str, str] | None = None,
        build_tags: list[str] | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        """Update configuration values.

        Raises:
            ValueError: If *debounce_seconds* is negative.
        """
        if ginkgo_path is not None:
            self._data["ginkgo_path"] = ginkgo_path
        if environment_variables is not None:
            self._data["environment_variables"] = dict(environment_variables)
        if build_tags is not None:
            self._data["build_tags"] = list(build_tags)
        if debounce_seconds is not None:
            if debounce_seconds < 0:
                raise ValueError("debounce_seconds must be non-negative")
            self._data["debounce_seconds"] = debounce_seconds
