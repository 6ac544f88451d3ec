"""Ginkgo CLI invocation for discovery and focused runs.

Discovery runs ``ginkgo run --dry-run --json-report=<tmp> -r`` from a
workspace root.  A run targets one tree node:

* located leaf     ``--focus-file=<file>:<line>`` from the file's directory
* container        ``--focus=<escaped name>`` from the suite directory
* unlocated leaf   ``--focus=<escaped leaf text>`` from the suite directory
* suite            no focus, from the suite directory

Processes are spawned with ``subprocess.Popen`` and awaited in the default
thread pool (asyncio subprocesses need a child watcher that is unreliable
in containerized environments).  The temporary report is always removed
after it has been read.
"""

from __future__ import annotations

import asyncio
import functools
import os
import re
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field

from ginkgo_tree.config import AdapterConfig
from ginkgo_tree.discovery.keys import suite_dir
from ginkgo_tree.discovery.report import SuiteReport, read_report_file
from ginkgo_tree.discovery.tree import LeafNode, Node, SuiteNode
from ginkgo_tree.execution.run import CancellationToken


@dataclass
class ProcessResult:
    """Outcome of one runner process."""

    exit_code: int | None
    output: str = ""
    launched: bool = True
    error: str | None = None


@dataclass
class RunnerOutput:
    """Exit code and parsed report of a focused run."""

    exit_code: int | None
    suites: list[SuiteReport] = field(default_factory=list)
    command: list[str] = field(default_factory=list)
    output: str = ""
    error: str | None = None


@dataclass(frozen=True)
class Focus:
    """Where and how to invoke the runner for one node."""

    cwd: str
    focus_file: str | None = None
    focus: str | None = None


def tags_args(build_tags: list[str]) -> list[str]:
    if not build_tags:
        return []
    return [f"--tags={','.join(build_tags)}"]


def build_discovery_args(report_path: str, build_tags: list[str]) -> list[str]:
    """Arguments for a recursive list-only pass writing a JSON report."""
    return [
        "run", "--dry-run", f"--json-report={report_path}", "-r",
        *tags_args(build_tags),
    ]


def build_run_args(
    report_path: str,
    focus: Focus,
    build_tags: list[str],
) -> list[str]:
    """Arguments for a focused run writing a JSON report."""
    args = ["run", f"--json-report={report_path}"]
    if focus.focus_file:
        args.append(f"--focus-file={focus.focus_file}")
    elif focus.focus:
        args.append(f"--focus={focus.focus}")
    return args + tags_args(build_tags)


def focus_for(node: Node) -> Focus:
    """Pick the working directory and focus filter for running *node*."""
    base = suite_dir(node.suite_key)
    if isinstance(node, SuiteNode):
        return Focus(cwd=base)
    if isinstance(node, LeafNode):
        if node.has_location:
            return Focus(
                cwd=os.path.dirname(node.file) or base,
                focus_file=f"{node.file}:{node.line}",
            )
        return Focus(cwd=base, focus=re.escape(node.leaf_text))
    return Focus(cwd=base, focus=re.escape(node.label))


def merged_environment(overrides: dict[str, str]) -> dict[str, str]:
    """Inherited environment with *overrides* applied on top."""
    env = dict(os.environ)
    env.update(overrides)
    return env


def temp_report_path(prefix: str) -> str:
    """Reserve a temporary path for the runner to write its report to."""
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=".json")
    os.close(fd)
    return path


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        try:
            proc.kill()
        except OSError:
            pass


class GinkgoRunner:
    """Spawns the runner for discovery and runs per the adapter config."""

    def __init__(self, config: AdapterConfig | None = None) -> None:
        self.config = config or AdapterConfig()

    def command(self, args: list[str]) -> list[str]:
        return [self.config.ginkgo_path, *args]

    async def execute(
        self,
        args: list[str],
        cwd: str,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run the runner with *args* and wait for it to exit.

        Never raises for launch failures; they are reported through
        ``ProcessResult.launched`` and ``error``.
        """
        cmd = self.command(args)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                env=merged_environment(self.config.environment_variables),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError:
            return ProcessResult(
                exit_code=None, launched=False,
                error=f"Executable not found: {cmd[0]}",
            )
        except OSError as e:
            return ProcessResult(
                exit_code=None, launched=False,
                error=f"OS error running {cmd[0]}: {e}",
            )

        unregister = None
        if token is not None:
            unregister = token.on_cancel(functools.partial(_kill, proc))

        loop = asyncio.get_running_loop()
        try:
            output, _ = await loop.run_in_executor(
                None, functools.partial(proc.communicate, timeout=timeout),
            )
        except subprocess.TimeoutExpired:
            _kill(proc)
            output, _ = await loop.run_in_executor(None, proc.communicate)
            return ProcessResult(
                exit_code=proc.returncode,
                output=output or "",
                error=f"Runner timed out after {timeout} seconds",
            )
        finally:
            if unregister is not None:
                unregister()
        return ProcessResult(exit_code=proc.returncode, output=output or "")

    async def discover(self, workspace_dir: str) -> list[SuiteReport]:
        """Run a list-only pass over *workspace_dir* and parse its report.

        Returns:
            Parsed suite reports; empty when the runner could not be
            launched or produced no readable report.
        """
        report_path = temp_report_path("ginkgo_discovery_")
        args = build_discovery_args(report_path, self.config.build_tags)
        result = await self.execute(
            args, workspace_dir, timeout=self.config.discovery_timeout,
        )
        if not result.launched:
            print(f"Discovery: {result.error}, skipping {workspace_dir}", file=sys.stderr)
            try:
                os.unlink(report_path)
            except OSError:
                pass
            return []
        if result.error:
            print(f"Discovery: {result.error} in {workspace_dir}", file=sys.stderr)
        elif result.exit_code != 0:
            print(
                f"Discovery: runner exited with {result.exit_code} "
                f"in {workspace_dir}, reading partial report",
                file=sys.stderr,
            )
        return read_report_file(report_path, workspace_dir)

    async def run(
        self,
        node: Node,
        token: CancellationToken | None = None,
    ) -> RunnerOutput:
        """Run *node* and parse whatever report the runner left behind."""
        focus = focus_for(node)
        report_path = temp_report_path("ginkgo_run_")
        args = build_run_args(report_path, focus, self.config.build_tags)
        result = await self.execute(
            args, focus.cwd, timeout=self.config.run_timeout, token=token,
        )
        suites = read_report_file(report_path, focus.cwd)
        return RunnerOutput(
            exit_code=result.exit_code,
            suites=suites,
            command=self.command(args),
            output=result.output,
            error=result.error,
        )
