"""Fire-and-forget alert dispatch."""

import asyncio

from promoter.alerts.sinks import AlertSink
from promoter.core.exceptions import TransportError
from promoter.models.deployment import AlertEvent
from promoter.utils.logging import get_logger


class AlertDispatcher:
    """Fans alert events out to every sink without blocking the caller.

    Each delivery runs as its own task. Delivery failures are logged and
    dropped; they never reach the orchestrator.
    """

    def __init__(self, sinks: list[AlertSink] | None = None):
        self.sinks: list[AlertSink] = list(sinks or [])
        self.logger = get_logger("alerts")
        self._pending: set[asyncio.Task[None]] = set()
        self.dropped = 0

    def add_sink(self, sink: AlertSink) -> None:
        self.sinks.append(sink)

    def notify(self, event: AlertEvent) -> None:
        """Schedule delivery of ``event`` to all sinks and return immediately."""
        for sink in self.sinks:
            task = asyncio.create_task(self._deliver(sink, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for outstanding deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, sink: AlertSink, event: AlertEvent) -> None:
        try:
            await sink.send(event)
        except TransportError as e:
            self.dropped += 1
            self.logger.warning(
                "alerts.delivery_failed",
                sink=sink.name,
                deployment_id=str(event.deployment_id),
                error=e.message,
            )
        except Exception as e:
            self.dropped += 1
            self.logger.error(
                "alerts.sink_error",
                sink=sink.name,
                deployment_id=str(event.deployment_id),
                error=str(e),
                exc_info=True,
            )

    async def close(self) -> None:
        """Flush outstanding deliveries and close every sink."""
        await self.drain()
        for sink in self.sinks:
            await sink.close()
