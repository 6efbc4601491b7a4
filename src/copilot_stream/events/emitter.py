"""Event emitter for publishing session events."""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from copilot_stream.events.models import SessionEvent
from copilot_stream.events.types import SessionEventType
from copilot_stream.utils.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[SessionEvent], Any]


def pattern_matches(pattern: str, event_type: str) -> bool:
    """
    Check an event type against a subscription pattern.

    "*" matches everything, "turn.*" matches every "turn." event, anything
    else must match exactly.
    """
    if pattern in ("*", event_type):
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return False


@dataclass
class Subscription:
    id: str
    pattern: str
    handler: EventHandler


class EventEmitter:
    """
    Publish session events to subscribers.

    Design Pattern: Observer Pattern

    The accumulator and the connection manager publish turn and
    connectivity changes; front ends subscribe by pattern. Handlers run in
    subscription order, synchronously, and a failing handler never stops
    the others.
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._next_id = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, pattern: str, handler: EventHandler) -> str:
        """
        Subscribe to events matching pattern.

        Args:
            pattern: Event type pattern (e.g., "turn.*", "connection.failed")
            handler: Callback; coroutine functions are scheduled on the loop

        Returns:
            Subscription ID for unsubscribing
        """
        self._next_id += 1
        subscription = Subscription(id=f"sub_{self._next_id}", pattern=pattern, handler=handler)
        self._subscriptions.append(subscription)
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Unsubscribe a handler by subscription ID."""
        for index, subscription in enumerate(self._subscriptions):
            if subscription.id == subscription_id:
                del self._subscriptions[index]
                return True
        return False

    def publish(self, event_type: SessionEventType, **data: Any) -> SessionEvent:
        """Create an event and emit it."""
        event = SessionEvent.create(event_type, **data)
        self.emit(event)
        return event

    def emit(self, event: SessionEvent) -> None:
        """Emit event synchronously to all matching handlers."""
        # Snapshot so handlers may unsubscribe while being called
        matching = [
            s for s in self._subscriptions
            if pattern_matches(s.pattern, event.event_type.value)
        ]
        for subscription in matching:
            try:
                result = subscription.handler(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result)
            except Exception as e:
                logger.error(
                    f"Event handler error: {e}",
                    event_type=event.event_type.value,
                    subscription=subscription.id,
                    exc_info=True,
                )

    def _schedule(self, coro: Any) -> None:
        try:
            asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("Async event handler skipped, no running event loop")
