"""Progress records reported by the executor for each node.

For a single node the statuses arrive strictly in the order
``running`` -> zero or more ``streaming`` -> exactly one of
``completed`` / ``error`` / ``cancelled``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from nodeflow.graph.models import ResultPayload


class NodeStatus(StrEnum):
    """Lifecycle status of a node within one run."""

    RUNNING = "running"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.ERROR, NodeStatus.CANCELLED)


@dataclass(frozen=True)
class NodeProgress:
    """A single progress update for one node."""

    node_id: str
    node_name: str
    status: NodeStatus
    result: ResultPayload | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "status": self.status.value,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data


# Sinks may be plain callables or coroutine functions
ProgressCallback = Callable[[NodeProgress], Awaitable[None] | None]
ChunkCallback = Callable[[ResultPayload], Awaitable[None] | None]


async def notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sink that may be a plain function or a coroutine function."""
    if callback is None:
        return
    result = callback(*args)
    if asyncio.iscoroutine(result) or asyncio.isfuture(result):
        await result
