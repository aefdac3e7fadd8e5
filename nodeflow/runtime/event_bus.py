"""
Event Bus - fan-out of run and node events to observers.

Observers (UI bridges, bulk runners, audit logs) subscribe here instead of
being threaded through the executor's callbacks. Listeners are called one
after another in subscription order, so every listener sees the events of
a run in the order they happened.
"""

import asyncio
import itertools
import logging
import time
from collections import Counter, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from nodeflow.graph.progress import NodeProgress, NodeStatus, notify

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Kinds of events published during a run."""

    EXECUTION_STARTED = "execution_started"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"

    NODE_RUNNING = "node_running"
    NODE_STREAMING = "node_streaming"
    NODE_COMPLETED = "node_completed"
    NODE_ERROR = "node_error"
    NODE_CANCELLED = "node_cancelled"


NODE_EVENT_TYPES = {status: EventType(f"node_{status.value}") for status in NodeStatus}


@dataclass
class WorkflowEvent:
    """One published event; ``data`` holds the kind-specific payload."""

    type: EventType
    flow_id: str
    execution_id: str | None = None
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "flowId": self.flow_id,
            "executionId": self.execution_id,
            "nodeId": self.node_id,
            "data": self.data,
            "createdAt": self.created_at,
        }


# Listeners may be plain callables or coroutine functions
Listener = Callable[[WorkflowEvent], Any]


@dataclass
class Subscription:
    id: str
    event_types: frozenset[EventType]
    listener: Listener
    flow_id: str | None = None
    node_id: str | None = None
    execution_id: str | None = None

    def accepts(self, event: WorkflowEvent) -> bool:
        if event.type not in self.event_types:
            return False
        for wanted, actual in (
            (self.flow_id, event.flow_id),
            (self.node_id, event.node_id),
            (self.execution_id, event.execution_id),
        ):
            if wanted is not None and wanted != actual:
                return False
        return True


class EventBus:
    """
    Publish/subscribe hub for workflow runs, with a bounded history.

    Example:
        bus = EventBus()
        bus.subscribe([EventType.NODE_COMPLETED], lambda e: print(e.data["nodeName"]))
        executor = WorkflowExecutor(dispatcher, event_bus=bus)
    """

    def __init__(self, max_history: int = 1000):
        self._subscriptions: dict[str, Subscription] = {}
        self._history: deque[WorkflowEvent] = deque(maxlen=max_history)
        self._ids = itertools.count(1)

    def subscribe(
        self,
        event_types: Iterable[EventType],
        listener: Listener,
        *,
        flow_id: str | None = None,
        node_id: str | None = None,
        execution_id: str | None = None,
    ) -> str:
        """Register a listener; returns the id to pass to ``unsubscribe``."""
        sub_id = f"sub_{next(self._ids)}"
        self._subscriptions[sub_id] = Subscription(
            sub_id, frozenset(event_types), listener, flow_id, node_id, execution_id
        )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscriptions.pop(subscription_id, None) is not None

    async def publish(self, event: WorkflowEvent) -> None:
        """Record the event, then deliver it to every matching listener."""
        self._history.append(event)
        for subscription in list(self._subscriptions.values()):
            if not subscription.accepts(event):
                continue
            try:
                await notify(subscription.listener, event)
            except Exception:
                # A broken observer must not take the run down with it
                logger.exception(f"Listener {subscription.id} failed on {event.type}")

    # === RUN EVENTS ===

    async def emit_execution_started(
        self, flow_id: str, execution_id: str, node_ids: list[str]
    ) -> None:
        await self.publish(
            WorkflowEvent(
                EventType.EXECUTION_STARTED, flow_id, execution_id, data={"nodeIds": node_ids}
            )
        )

    async def emit_execution_completed(
        self, flow_id: str, execution_id: str, result_names: list[str]
    ) -> None:
        await self.publish(
            WorkflowEvent(
                EventType.EXECUTION_COMPLETED, flow_id, execution_id, data={"results": result_names}
            )
        )

    async def emit_execution_failed(
        self, flow_id: str, execution_id: str, error: str, node_id: str | None = None
    ) -> None:
        await self.publish(
            WorkflowEvent(
                EventType.EXECUTION_FAILED, flow_id, execution_id, node_id, data={"error": error}
            )
        )

    async def emit_node_progress(
        self, flow_id: str, execution_id: str, progress: NodeProgress
    ) -> None:
        await self.publish(
            WorkflowEvent(
                NODE_EVENT_TYPES[progress.status],
                flow_id,
                execution_id,
                progress.node_id,
                data=progress.to_dict(),
            )
        )

    # === INSPECTION ===

    def history(
        self,
        event_type: EventType | None = None,
        *,
        flow_id: str | None = None,
        execution_id: str | None = None,
    ) -> list[WorkflowEvent]:
        """Recorded events in publication order, optionally filtered."""
        return [
            event
            for event in self._history
            if (event_type is None or event.type == event_type)
            and (flow_id is None or event.flow_id == flow_id)
            and (execution_id is None or event.execution_id == execution_id)
        ]

    def stats(self) -> dict[str, Any]:
        return {
            "total_events": len(self._history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": dict(Counter(event.type.value for event in self._history)),
        }

    async def wait_for(
        self,
        event_type: EventType,
        *,
        flow_id: str | None = None,
        node_id: str | None = None,
        execution_id: str | None = None,
        timeout: float | None = None,
    ) -> WorkflowEvent | None:
        """Wait for the next matching event; None on timeout."""
        future: asyncio.Future[WorkflowEvent] = asyncio.get_running_loop().create_future()

        def resolve(event: WorkflowEvent) -> None:
            if not future.done():
                future.set_result(event)

        sub_id = self.subscribe(
            [event_type], resolve, flow_id=flow_id, node_id=node_id, execution_id=execution_id
        )
        try:
            return await asyncio.wait_for(future, timeout)
        except TimeoutError:
            return None
        finally:
            self.unsubscribe(sub_id)
