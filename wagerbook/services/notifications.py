"""
Lifecycle notification sinks.

Public API:
  LoggingNotificationSink   → logs each event at INFO
  InMemoryNotificationSink  → keeps events in a list (tests, replay)
  FanoutNotificationSink    → forwards to several sinks
  deliver(sink, event)      → publish without letting a sink failure
                              reach the operation that produced the event
"""

import logging
from typing import List, Sequence

from wagerbook.core.interfaces import LedgerEvent, NotificationSink

logger = logging.getLogger(__name__)


class LoggingNotificationSink(NotificationSink):
    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def publish(self, event: LedgerEvent) -> None:
        self.log.info("event %s(%d)", event.name, event.index)


class InMemoryNotificationSink(NotificationSink):
    def __init__(self):
        self.events: List[LedgerEvent] = []

    def publish(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]


class FanoutNotificationSink(NotificationSink):
    def __init__(self, sinks: Sequence[NotificationSink]):
        self.sinks = list(sinks)

    def publish(self, event: LedgerEvent) -> None:
        for sink in self.sinks:
            deliver(sink, event)


def deliver(sink: NotificationSink, event: LedgerEvent) -> None:
    """
    Publish ``event`` to ``sink``.

    The operation that emitted the event has already committed, so a
    delivery failure is logged and does not propagate.
    """
    try:
        sink.publish(event)
    except Exception as exc:
        logger.error(
            "Notification sink %s failed for %s(%d): %s",
            type(sink).__name__, event.name, event.index, exc, exc_info=True,
        )
