"""Command-line host for the Ginkgo test tree.

Discovers suites below workspace folders, prints the reconciled tree, runs
selected items and writes a YAML report of the statuses they received.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from ginkgo_tree.config import CONFIG_FILENAME, AdapterConfig
from ginkgo_tree.controller import TestController, code_lenses
from ginkgo_tree.discovery.tree import Node, TestTree
from ginkgo_tree.execution.run import ERRORED, FAILED, PASSED, SKIPPED, TestRun
from ginkgo_tree.reporting.reporter import RunReporter

_STATUS_ICONS = {
    PASSED: "+",
    FAILED: "x",
    SKIPPED: "-",
    ERRORED: "!",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Ginkgo test tree - discover and run Ginkgo suites"
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help=f"Path to the {CONFIG_FILENAME} JSON file "
             f"(default: ./{CONFIG_FILENAME} if present)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    discover_parser = subparsers.add_parser(
        "discover", help="Discover suites and print the test tree",
    )
    discover_parser.add_argument(
        "--workspace",
        action="append",
        default=None,
        help="Workspace folder to discover (repeatable, default: cwd)",
    )

    run_parser = subparsers.add_parser(
        "run", help="Discover, then run items and print their statuses",
    )
    run_parser.add_argument(
        "--workspace",
        action="append",
        default=None,
        help="Workspace folder to discover (repeatable, default: cwd)",
    )
    run_parser.add_argument(
        "--item",
        action="append",
        default=None,
        help="Id of the tree item to run (repeatable, default: every suite)",
    )
    run_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to write the YAML run report",
    )
    run_parser.add_argument(
        "--history",
        action="store_true",
        default=False,
        help="Keep rolling per-item history from an existing report at --output",
    )

    lenses_parser = subparsers.add_parser(
        "lenses", help="Print run/debug actions for a test file",
    )
    lenses_parser.add_argument("file", help="Test file to list actions for")
    lenses_parser.add_argument(
        "--workspace",
        action="append",
        default=None,
        help="Workspace folder to discover (repeatable, default: cwd)",
    )
    return parser.parse_args(argv)


def _load_config(path: Path | None) -> AdapterConfig:
    if path is None:
        default = Path(CONFIG_FILENAME)
        return AdapterConfig(default if default.exists() else None)
    return AdapterConfig(path)


def _make_controller(args: argparse.Namespace) -> TestController:
    workspaces = args.workspace or [os.getcwd()]
    return TestController(workspaces, config=_load_config(args.config_file))


def format_tree(tree: TestTree, run: TestRun | None = None) -> list[str]:
    """Render the tree as indented lines, with statuses when *run* is given."""
    lines: list[str] = []

    def visit(node: Node, depth: int) -> None:
        prefix = "  " * depth
        status = ""
        if run is not None:
            outcome = run.outcomes.get(node.id)
            if outcome is not None:
                status = f"[{_STATUS_ICONS.get(outcome.status, '?')}] "
        location = f"{node.file}:{node.line}"
        lines.append(f"{prefix}{status}{node.label}  ({location})")
        for child in getattr(node, "children", {}).values():
            visit(child, depth + 1)

    for suite in tree:
        visit(suite, 0)
    return lines


def cmd_discover(args: argparse.Namespace) -> int:
    controller = _make_controller(args)
    result = asyncio.run(controller.discover_workspace())
    if not len(controller.tree):
        print("No suites found")
        return 0
    for line in format_tree(controller.tree):
        print(line)
    print()
    print(
        f"Discovered {len(controller.tree)} suite(s), "
        f"{len(result.touched)} item(s)"
    )
    return 0


async def _discover_and_run(
    controller: TestController, item_ids: list[str] | None,
) -> TestRun | None:
    await controller.discover_workspace()
    items: list[Node] | None = None
    if item_ids:
        items = []
        for item_id in item_ids:
            node = controller.find(item_id)
            if node is None:
                print(f"Error: Unknown item: {item_id}", file=sys.stderr)
                return None
            items.append(node)
    run = TestRun(on_output=lambda text: sys.stdout.write(text.replace("\r\n", "\n")))
    return await controller.run(items, run=run)


def cmd_run(args: argparse.Namespace) -> int:
    controller = _make_controller(args)
    run = asyncio.run(_discover_and_run(controller, args.item))
    if run is None:
        return 1

    print()
    for line in format_tree(controller.tree, run):
        print(line)

    if args.output:
        reporter = RunReporter(controller.tree)
        reporter.set_run(run)
        if args.history:
            reporter.write_yaml_with_history(args.output, args.output)
        else:
            reporter.write_yaml(args.output)
        print(f"Report written to {args.output}")

    return 1 if run.has_failures else 0


def cmd_lenses(args: argparse.Namespace) -> int:
    controller = _make_controller(args)
    asyncio.run(controller.discover_workspace())
    lenses = code_lenses(controller.tree, args.file)
    if not lenses:
        print(f"No test items in {args.file}")
        return 0
    for lens in lenses:
        print(f"{lens.line + 1}: {lens.title} -> {lens.command} {lens.node.id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return 1

    if args.command == "discover":
        return cmd_discover(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "lenses":
        return cmd_lenses(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
