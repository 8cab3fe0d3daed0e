"""Alert dispatch."""

from promoter.alerts.dispatcher import AlertDispatcher
from promoter.alerts.sinks import (
    AlertSink,
    EventBusAlertSink,
    LoggingAlertSink,
    WebhookAlertSink,
)

__all__ = [
    "AlertDispatcher",
    "AlertSink",
    "EventBusAlertSink",
    "LoggingAlertSink",
    "WebhookAlertSink",
]
