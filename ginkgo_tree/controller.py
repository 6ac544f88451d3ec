"""Test controller: discovery, run and debug for a set of workspace folders.

The controller owns the reconciled tree and the current lookup index.  All
tree mutation happens synchronously inside ``TreeReconciler.reconcile``
after every workspace's discovery process has finished, so a run
completing in between never observes a half-built index.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ginkgo_tree.config import AdapterConfig
from ginkgo_tree.discovery.builder import BuildResult, TreeReconciler
from ginkgo_tree.discovery.index import LookupIndex
from ginkgo_tree.discovery.report import index_report, read_report_file
from ginkgo_tree.discovery.scheduler import RediscoveryScheduler
from ginkgo_tree.discovery.tree import Node, SuiteNode, TestTree
from ginkgo_tree.execution.debug import (
    DebugLauncher,
    DebugRequest,
    build_debug_args,
    wait_for_session,
)
from ginkgo_tree.execution.results import map_results
from ginkgo_tree.execution.run import CancellationToken, TestRun
from ginkgo_tree.execution.runner import (
    GinkgoRunner,
    focus_for,
    merged_environment,
    temp_report_path,
)

RUN_MODES = ("run", "debug")

RUN_TEST_COMMAND = "ginkgo-tree.runTest"
DEBUG_TEST_COMMAND = "ginkgo-tree.debugTest"


@dataclass(frozen=True)
class CodeLens:
    """An editor action attached to a node's line."""

    node: Node
    line: int
    title: str
    command: str


def code_lenses(tree: TestTree, path: str) -> list[CodeLens]:
    """Run and debug actions for every container and leaf in *path*."""
    lenses: list[CodeLens] = []
    for node in tree.items_for_file(path):
        line = node.line_range[0]
        lenses.append(CodeLens(node, line, "Run Test", RUN_TEST_COMMAND))
        lenses.append(CodeLens(node, line, "Debug Test", DEBUG_TEST_COMMAND))
    return lenses


class TestController:
    """Discovers and runs Ginkgo suites below one or more workspace folders."""

    __test__ = False  # not a pytest class

    def __init__(
        self,
        workspace_dirs: Iterable[str],
        config: AdapterConfig | None = None,
        runner: GinkgoRunner | None = None,
        debug_launcher: DebugLauncher | None = None,
        on_discovered: Callable[[BuildResult], None] | None = None,
    ) -> None:
        self.workspace_dirs = [os.path.abspath(d) for d in workspace_dirs]
        self.config = config or AdapterConfig()
        self.runner = runner or GinkgoRunner(self.config)
        self.debug_launcher = debug_launcher
        self.on_discovered = on_discovered
        self.reconciler = TreeReconciler()
        self.scheduler = RediscoveryScheduler(
            self.discover_workspace, self.config.debounce_seconds,
        )

    @property
    def tree(self) -> TestTree:
        return self.reconciler.tree

    @property
    def index(self) -> LookupIndex:
        return self.reconciler.index

    async def discover_workspace(self) -> BuildResult:
        """Run one full discovery pass over every workspace folder."""
        reports = []
        for workspace_dir in self.workspace_dirs:
            reports.extend(await self.runner.discover(workspace_dir))
        result = self.reconciler.reconcile(reports)
        if self.on_discovered is not None:
            self.on_discovered(result)
        return result

    def on_tests_changed(self, path: str | None = None) -> None:
        """File-change notification from the host's watcher."""
        self.scheduler.notify(path)

    async def run(
        self,
        items: Iterable[Node] | None = None,
        mode: str = "run",
        token: CancellationToken | None = None,
        run: TestRun | None = None,
    ) -> TestRun:
        """Run (or debug) *items*, defaulting to every suite.

        Raises:
            ValueError: If *mode* is not ``run`` or ``debug``.
        """
        if mode not in RUN_MODES:
            raise ValueError(f"Unknown run mode: {mode}")
        run = run if run is not None else TestRun()
        token = token if token is not None else CancellationToken()
        targets: list[Node] = list(items) if items is not None else list(self.tree)

        for node in targets:
            if token.cancelled:
                break
            if mode == "debug":
                await self._debug_item(node, run, token)
            else:
                await self._run_item(node, run, token)

        run.end()
        return run

    async def _run_item(
        self, node: Node, run: TestRun, token: CancellationToken,
    ) -> None:
        run.started(node)
        output = await self.runner.run(node, token)
        run.append_output(" ".join(output.command) + "\n")
        if output.output:
            run.append_output(output.output)
        if output.error:
            run.append_output(output.error + "\n")
        map_results(
            node, index_report(output.suites), output.exit_code, self.index, run,
        )

    async def _debug_item(
        self, node: Node, run: TestRun, token: CancellationToken,
    ) -> None:
        run.started(node)
        if self.debug_launcher is None:
            run.errored(node, "Debugging not supported: no debug launcher configured")
            return

        focus = focus_for(node)
        report_path = temp_report_path("ginkgo_debug_")
        request = DebugRequest(
            cwd=focus.cwd,
            args=build_debug_args(report_path, focus),
            build_tags=self.config.build_tags,
            env=merged_environment(self.config.environment_variables),
            report_path=report_path,
        )
        try:
            session = await self.debug_launcher(request)
        except Exception as e:
            message = f"Failed to start debug session: {e}"
            run.append_output(message + "\n")
            run.errored(node, message)
            try:
                os.unlink(report_path)
            except OSError:
                pass
            return

        exit_code = await wait_for_session(session, token)
        suites = read_report_file(report_path, focus.cwd)
        map_results(node, index_report(suites), exit_code, self.index, run)

    def find(self, node_id: str) -> Node | None:
        return self.tree.find(node_id)

    def suites(self) -> list[SuiteNode]:
        return list(self.tree)
