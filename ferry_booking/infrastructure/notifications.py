# ferry_booking/infrastructure/notifications.py

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from ferry_booking.domain.enums import NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationType
    booking_id: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationDeliveryError(Exception):
    """Raised by a sink that could not hand off an event."""


class NotificationSink(Protocol):
    def emit(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationSink:
    def emit(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification %s for booking %s: %s",
            event.type.value,
            event.booking_id,
            event.payload,
        )


class SimulatedNotificationSink:
    """
    Mimics an unreliable outbound channel: delivers with probability
    ``success_rate`` and raises NotificationDeliveryError otherwise.
    """

    def __init__(
        self,
        success_rate: float = 0.95,
        rng: Optional[random.Random] = None,
        delegate: Optional[NotificationSink] = None,
    ):
        self.success_rate = success_rate
        self._rng = rng or random.Random()
        self._delegate = delegate or LoggingNotificationSink()

    def emit(self, event: NotificationEvent) -> None:
        if self._rng.random() >= self.success_rate:
            raise NotificationDeliveryError(
                f"Simulated delivery failure for {event.type.value}"
            )
        self._delegate.emit(event)


class NotificationDispatcher:
    """
    Hands events to the sink after the triggering transaction committed.
    Sink failures are logged and dropped; they never reach the caller.
    """

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink or LoggingNotificationSink()

    def publish(self, events: Iterable[NotificationEvent]) -> int:
        delivered = 0
        for event in events:
            try:
                self.sink.emit(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Notification %s for booking %s was not delivered",
                    event.type.value,
                    event.booking_id,
                )
        return delivered
