"""Built-in function tools - Echo, Current Time, Timer.

Registered in the static tool registry at startup. Each tool receives the
node's mapped inputs and its InvocationContext.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.logging import get_logger
from services.execution.models import InvocationContext

logger = get_logger(__name__)

UNIT_SECONDS = {
    'seconds': 1,
    'minutes': 60,
    'hours': 3600,
}


async def tool_echo(inputs: Dict[str, Any], context: InvocationContext) -> Dict[str, Any]:
    """Return the node inputs unchanged."""
    return dict(inputs)


async def tool_current_time(inputs: Dict[str, Any], context: InvocationContext) -> Dict[str, Any]:
    """Current time in the requested timezone (defaults to UTC).

    Args:
        inputs: Optional ``timezone`` (IANA name)
        context: Invocation context

    Returns:
        Dict with ``timestamp`` (ISO 8601), ``timezone`` and ``unix``
    """
    tz_name = inputs.get('timezone') or 'UTC'
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    now = datetime.now(timezone.utc)
    return {
        "timestamp": now.astimezone(tz).isoformat(),
        "timezone": tz_name,
        "unix": int(now.timestamp()),
    }


async def tool_timer(inputs: Dict[str, Any], context: InvocationContext) -> Dict[str, Any]:
    """Wait for ``duration`` ``unit`` and report the elapsed time.

    The wait is a plain asyncio sleep, so an execution timeout or cancel
    interrupts it.
    """
    duration = float(inputs.get('duration', 1))
    unit = inputs.get('unit', 'seconds')
    if unit not in UNIT_SECONDS:
        raise ValueError(f"Unsupported unit: {unit}")
    if duration < 0:
        raise ValueError("duration must be >= 0")

    wait_seconds = duration * UNIT_SECONDS[unit]
    logger.info("[Timer] Starting wait", node_id=context.node_id,
                execution_id=context.execution_id, wait_seconds=wait_seconds)

    start_time = time.monotonic()
    await asyncio.sleep(wait_seconds)
    elapsed_ms = int((time.monotonic() - start_time) * 1000)

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "elapsed_ms": elapsed_ms,
        "duration": duration,
        "unit": unit,
        "message": f"Timer completed after {duration:g} {unit}",
    }


BUILTIN_TOOLS = {
    'echo': ("Echo", tool_echo, "Returns its inputs unchanged"),
    'current_time': ("Current Time", tool_current_time, "Current time in a timezone"),
    'timer': ("Timer", tool_timer, "Waits for a duration"),
}
