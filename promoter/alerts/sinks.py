"""Alert sinks: transports that deliver alert events."""

from abc import ABC, abstractmethod

import httpx

from promoter.core.events import EventBus
from promoter.core.exceptions import TransportError
from promoter.models.deployment import AlertEvent
from promoter.utils.logging import get_logger


class AlertSink(ABC):
    """A notification transport (email, chat, webhook...)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Sink identifier."""

    @abstractmethod
    async def send(self, event: AlertEvent) -> None:
        """Deliver one event.

        Raises:
            TransportError: If delivery failed.
        """

    async def close(self) -> None:
        """Release network resources."""


class LoggingAlertSink(AlertSink):
    """Writes every event to the structured log."""

    def __init__(self):
        self.logger = get_logger("alerts.log")

    @property
    def name(self) -> str:
        return "log"

    async def send(self, event: AlertEvent) -> None:
        if event.error:
            self.logger.warning("alert.deployment_failed", **event.summary())
        else:
            self.logger.info("alert.state_changed", **event.summary())


class EventBusAlertSink(AlertSink):
    """Forwards events to the SSE event bus."""

    def __init__(self, events: EventBus):
        self.events = events

    @property
    def name(self) -> str:
        return "event_bus"

    async def send(self, event: AlertEvent) -> None:
        await self.events.publish_transition(
            event.deployment_id,
            event.from_state.value if event.from_state else None,
            event.to_state.value,
            error=event.error.model_dump(mode="json") if event.error else None,
        )
        if event.to_state.is_terminal:
            await self.events.publish_finished(event.deployment_id, event.to_state.value)


class WebhookAlertSink(AlertSink):
    """POSTs the JSON-encoded event to a URL."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return "webhook"

    async def send(self, event: AlertEvent) -> None:
        try:
            response = await self._client.post(
                self.url,
                content=event.model_dump_json(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(self.name, str(e)) from e

    async def close(self) -> None:
        await self._client.aclose()
