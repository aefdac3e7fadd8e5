"""
Tests for the event bus: subscriptions, filtering, history and waiting.
"""

import asyncio

import pytest

from nodeflow.graph.models import ResultPayload
from nodeflow.graph.progress import NodeProgress, NodeStatus
from nodeflow.runtime.event_bus import EventBus, EventType, WorkflowEvent


@pytest.mark.asyncio
async def test_subscriber_receives_matching_events():
    bus = EventBus()
    received = []

    async def listener(event):
        received.append(event)

    bus.subscribe([EventType.NODE_COMPLETED], listener)

    await bus.emit_node_progress(
        "flow", "exec", NodeProgress("1", "Input", NodeStatus.COMPLETED, ResultPayload("hi"))
    )
    await bus.emit_node_progress("flow", "exec", NodeProgress("1", "Input", NodeStatus.RUNNING))

    assert len(received) == 1
    event = received[0]
    assert event.node_id == "1"
    assert event.data["nodeName"] == "Input"
    assert event.data["result"] == {"text": "hi", "attachments": []}


@pytest.mark.asyncio
async def test_plain_callables_are_accepted_as_listeners():
    bus = EventBus()
    seen = []

    bus.subscribe([EventType.EXECUTION_STARTED], seen.append)
    await bus.emit_execution_started("f", "e", ["1", "2"])

    assert [e.data["nodeIds"] for e in seen] == [["1", "2"]]


@pytest.mark.asyncio
async def test_filters_by_flow_node_and_execution():
    bus = EventBus()
    received = []

    bus.subscribe(
        list(EventType),
        received.append,
        flow_id="f1",
        node_id="n1",
        execution_id="e1",
    )

    await bus.publish(WorkflowEvent(EventType.NODE_RUNNING, "f1", "e1", "n1"))
    await bus.publish(WorkflowEvent(EventType.NODE_RUNNING, "f2", "e1", "n1"))
    await bus.publish(WorkflowEvent(EventType.NODE_RUNNING, "f1", "e2", "n1"))
    await bus.publish(WorkflowEvent(EventType.NODE_RUNNING, "f1", "e1", "n2"))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    sub_id = bus.subscribe([EventType.EXECUTION_STARTED], received.append)
    assert bus.unsubscribe(sub_id) is True
    assert bus.unsubscribe(sub_id) is False

    await bus.emit_execution_started("f", "e", ["1"])

    assert received == []


@pytest.mark.asyncio
async def test_listeners_run_in_subscription_order():
    bus = EventBus()
    order = []

    async def first(event):
        await asyncio.sleep(0.01)
        order.append("first")

    bus.subscribe([EventType.EXECUTION_COMPLETED], first)
    bus.subscribe([EventType.EXECUTION_COMPLETED], lambda e: order.append("second"))

    await bus.emit_execution_completed("f", "e", ["A"])

    assert order == ["first", "second"]


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_publish():
    bus = EventBus()
    received = []

    async def broken(event):
        raise RuntimeError("subscriber bug")

    bus.subscribe([EventType.EXECUTION_FAILED], broken)
    bus.subscribe([EventType.EXECUTION_FAILED], received.append)

    await bus.emit_execution_failed("f", "e", "boom", node_id="3")

    assert len(received) == 1
    assert received[0].data == {"error": "boom"}
    assert received[0].node_id == "3"


@pytest.mark.asyncio
async def test_history_and_stats():
    bus = EventBus(max_history=3)

    for i in range(5):
        await bus.emit_execution_completed("f", f"e{i}", [])

    assert [e.execution_id for e in bus.history()] == ["e2", "e3", "e4"]
    assert [e.execution_id for e in bus.history(execution_id="e3")] == ["e3"]
    assert bus.history(EventType.EXECUTION_STARTED) == []

    stats = bus.stats()
    assert stats["total_events"] == 3
    assert stats["subscriptions"] == 0
    assert stats["events_by_type"] == {"execution_completed": 3}


@pytest.mark.asyncio
async def test_wait_for_event():
    bus = EventBus()

    waiter = asyncio.create_task(bus.wait_for(EventType.NODE_ERROR, node_id="2", timeout=5))
    await asyncio.sleep(0)
    await bus.emit_node_progress("f", "e", NodeProgress("1", "A", NodeStatus.ERROR, error="no"))
    await bus.emit_node_progress("f", "e", NodeProgress("2", "B", NodeStatus.ERROR, error="x"))

    event = await waiter
    assert event is not None
    assert event.data["error"] == "x"
    assert bus.stats()["subscriptions"] == 0


@pytest.mark.asyncio
async def test_wait_for_times_out():
    bus = EventBus()

    assert await bus.wait_for(EventType.EXECUTION_COMPLETED, timeout=0.01) is None
    assert bus.stats()["subscriptions"] == 0


def test_event_to_dict():
    event = WorkflowEvent(EventType.NODE_CANCELLED, "f", "e", "n", data={"a": 1})

    data = event.to_dict()

    assert data["type"] == "node_cancelled"
    assert data["nodeId"] == "n"
    assert data["data"] == {"a": 1}
    assert "createdAt" in data
