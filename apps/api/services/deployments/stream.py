from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator, Awaitable, Callable, Optional

from .errors import DeploymentNotFoundError
from .service import DeploymentRegistry
from .types import TERMINAL_STATUSES, DeployEvent, EventType, LogLine
from .util import now_ms


def _event(kind: EventType, data: str, timestamp: Optional[int] = None) -> DeployEvent:
    return {"type": kind, "data": data, "timestamp": now_ms() if timestamp is None else timestamp}


def line_event(line: LogLine) -> DeployEvent:
    return _event(line.event_type, line.text, line.timestamp)


async def deployment_events(
    registry: DeploymentRegistry,
    deploy_id: str,
    *,
    interval: float = 0.5,
    heartbeat: float = 0.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[Optional[DeployEvent]]:
    """
    Tail one deployment's log.

    Yields `status: connected` first, then every log line in append order,
    then one `complete` event carrying the terminal status. Each call keeps
    its own cursor. `None` is yielded as an idle heartbeat tick when
    `heartbeat` > 0. Ends quietly if the deployment is cleaned up meanwhile.

    Callers validate the id up front; an unknown id here simply ends the stream.
    """
    cursor = 0
    last_activity = time.monotonic()

    yield _event("status", "connected")

    while True:
        if is_disconnected is not None and await is_disconnected():
            return

        try:
            deployment = registry.get(deploy_id)
        except DeploymentNotFoundError:
            return

        lines, status = deployment.read(cursor)
        for line in lines:
            yield line_event(line)
        cursor += len(lines)

        if status in TERMINAL_STATUSES:
            yield _event("complete", status)
            return

        now = time.monotonic()
        if lines:
            last_activity = now
        elif heartbeat > 0 and now - last_activity >= heartbeat:
            last_activity = now
            yield None

        await asyncio.sleep(interval)
