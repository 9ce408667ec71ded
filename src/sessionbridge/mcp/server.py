"""MCP server that hosts the bridge and answers completion-status queries."""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from datetime import datetime

from mcp.server.fastmcp import FastMCP

from sessionbridge.bridge import Bridge
from sessionbridge.completion.coordinator import CompletionCoordinator

coordinator: CompletionCoordinator | None = None


@contextlib.asynccontextmanager
async def bridge_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Run the bridge alongside the MCP server for the server's lifetime."""
    global coordinator
    bridge = Bridge.from_config()
    if bridge is None:
        yield {}
        return

    coordinator = bridge.coordinator
    task = asyncio.create_task(bridge.run())
    try:
        yield {}
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        coordinator = None


mcp = FastMCP("sessionbridge", lifespan=bridge_lifespan)

NOT_RUNNING = "Bridge is not running. Configure it with `sessionbridge config init`."


def _iso(timestamp: float) -> str | None:
    return datetime.fromtimestamp(timestamp).isoformat() if timestamp else None


@mcp.tool()
async def session_status(session_id: str) -> dict | str:
    """Report whether an OpenCode session has finished producing output.

    Status is one of FINALIZING, STABILIZING, BUSY, COMPLETED (notified),
    IDLE (quiet), QUIET (unconfirmed) or SKIPPED (subagent), with a
    confidence of high, medium or low.

    Args:
        session_id: The OpenCode session ID (e.g. "ses_...")
    """
    if coordinator is None:
        return NOT_RUNNING
    try:
        report = await coordinator.evaluate(session_id)
    except Exception as e:
        return f"Status unavailable for {session_id}: {e}"
    return report.model_dump()


@mcp.tool()
def tracked_sessions() -> list[dict] | str:
    """List every session the bridge has seen since it started."""
    if coordinator is None:
        return NOT_RUNNING
    return [
        {
            "session_id": s.session_id,
            "idle": s.idle,
            "timer_pending": s.timer_pending,
            "in_flight": s.in_flight,
            "notified": s.last_notified_fingerprint is not None and not s.skipped_as_subagent,
            "skipped_as_subagent": s.skipped_as_subagent,
            "last_activity_at": _iso(s.last_activity_at),
            "empty_retry_count": s.empty_retry_count,
        }
        for s in coordinator.tracked_sessions()
    ]
