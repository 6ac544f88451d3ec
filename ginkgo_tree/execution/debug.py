"""Debug-mode run support.

Debug runs hand a ``DebugRequest`` to a host-provided launcher, which starts
a debugger on the suite's test binary and returns a ``DebugSession``.  The
run then waits for the session to terminate instead of a process exit.
Ginkgo flags are passed to the compiled test binary with the ``ginkgo.``
prefix.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ginkgo_tree.execution.run import CancellationToken
from ginkgo_tree.execution.runner import Focus


@dataclass
class DebugRequest:
    """Everything a launcher needs to start a debug session."""

    cwd: str
    args: list[str]
    build_tags: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    report_path: str = ""


class DebugSession:
    """A running debug session as exposed by the host."""

    async def wait_terminated(self) -> int | None:
        """Resolve with the debuggee's exit code once the session ends."""
        raise NotImplementedError

    def stop(self) -> None:
        """Ask the host to stop the session."""
        raise NotImplementedError


DebugLauncher = Callable[[DebugRequest], Awaitable[DebugSession]]


def build_debug_args(report_path: str, focus: Focus) -> list[str]:
    """Test-binary arguments equivalent to a focused ``ginkgo run``."""
    args = [f"-ginkgo.json-report={report_path}"]
    if focus.focus_file:
        args.append(f"-ginkgo.focus-file={focus.focus_file}")
    elif focus.focus:
        args.append(f"-ginkgo.focus={focus.focus}")
    return args


async def wait_for_session(
    session: DebugSession, token: CancellationToken,
) -> int | None:
    """Wait for *session* to end, or for *token* to be cancelled.

    Cancellation asks the session to stop and returns immediately with
    ``None`` rather than waiting for the host to confirm termination.
    """
    cancelled = asyncio.Event()

    def _on_cancel() -> None:
        try:
            session.stop()
        finally:
            cancelled.set()

    unregister = token.on_cancel(_on_cancel)

    terminated = asyncio.ensure_future(session.wait_terminated())
    cancel_wait = asyncio.ensure_future(cancelled.wait())
    try:
        done, pending = await asyncio.wait(
            {terminated, cancel_wait}, return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        unregister()
    for task in pending:
        task.cancel()

    if terminated in done:
        try:
            return terminated.result()
        except Exception as e:
            print(f"Debug: session ended with error: {e}", file=sys.stderr)
    return None
