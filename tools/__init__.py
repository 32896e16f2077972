"""
Tool handlers.

Each handler glues one upstream client to the core and renders markdown.
Handlers never raise: failures come back as a ToolResponse with
``is_error`` set, which the server turns into an MCP error result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from core.errors import StructuredError

__all__ = ["ToolResponse", "Progress", "report", "error_response"]

logger = logging.getLogger(__name__)

Progress = Callable[[str], Awaitable[Any]]


@dataclass
class ToolResponse:
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_error: bool = False


async def report(progress: Optional[Progress], message: str) -> None:
    """Send a progress message; a failing reporter never fails the tool."""
    logger.info(message)
    if progress is None:
        return
    try:
        await progress(message)
    except Exception as e:
        logger.debug(f"Progress reporter failed: {e}")


def error_response(
    tool: str,
    error: StructuredError,
    metadata: Optional[Dict[str, Any]] = None,
    tip: Optional[str] = None,
) -> ToolResponse:
    """Markdown error body for a failed tool call."""
    lines = [f"# ❌ {tool}: Failed", "", f"**{error.code.value}:** {error.message}"]
    if error.retryable:
        lines += ["", "💡 This error may be temporary. Try again in a moment."]
    if tip:
        lines += ["", f"**Tip:** {tip}"]

    meta = dict(metadata or {})
    meta["error_code"] = error.code.value
    return ToolResponse(content="\n".join(lines), metadata=meta, is_error=True)
