"""Runtime support: the event bus that mirrors run and node progress."""

from nodeflow.runtime.event_bus import EventBus, EventType, WorkflowEvent

__all__ = ["EventBus", "EventType", "WorkflowEvent"]
