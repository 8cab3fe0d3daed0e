"""Event bus feeding Server-Sent Event streams of deployment progress."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

TERMINAL_EVENT_TYPES = ("deployment_finished",)


@dataclass
class Event:
    """An SSE event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def payload(self) -> dict[str, Any]:
        return {**self.data, "timestamp": self.timestamp.isoformat()}

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES


class EventBus:
    """Per-deployment event queues."""

    def __init__(self):
        self._subscribers: dict[UUID, list[asyncio.Queue[Event]]] = {}

    def subscribe(self, deployment_id: UUID) -> asyncio.Queue[Event]:
        """Subscribe to events for a deployment."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.setdefault(deployment_id, []).append(queue)
        return queue

    def unsubscribe(self, deployment_id: UUID, queue: asyncio.Queue[Event]) -> None:
        """Unsubscribe from deployment events."""
        queues = self._subscribers.get(deployment_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(deployment_id, None)

    async def publish(self, deployment_id: UUID, event: Event) -> None:
        """Publish an event for a deployment."""
        for queue in self._subscribers.get(deployment_id, []):
            await queue.put(event)

    async def publish_transition(
        self,
        deployment_id: UUID,
        from_state: str | None,
        to_state: str,
        error: dict[str, Any] | None = None,
    ) -> None:
        """Publish a state transition event."""
        await self.publish(
            deployment_id,
            Event(
                event_type="state_changed",
                data={"from_state": from_state, "to_state": to_state, "error": error},
            ),
        )

    async def publish_finished(self, deployment_id: UUID, state: str) -> None:
        """Publish the terminal event that ends a stream."""
        await self.publish(
            deployment_id,
            Event(event_type="deployment_finished", data={"state": state}),
        )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
