"""
Event system for ledger lifecycle events.

Provides a simple pub/sub mechanism for Staked / Withdrawn / RewardsClaimed
and administration events. The ledger only publishes events of operations
that committed.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Callable, Any, Optional
import json
import logging

logger = logging.getLogger(__name__)


@dataclass
class LedgerEvent:
    """
    A ledger event.

    Attributes:
        event_type: Event name (see stakeproto.types.common.EventType)
        user: Address the event concerns (None for global events)
        timestamp: Ledger time when the operation ran
        data: Event arguments
    """
    event_type: str
    user: Optional[str]
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_row(self):
        return (self.event_type, self.user, self.timestamp, json.dumps(self.data))

    @classmethod
    def from_row(cls, row) -> 'LedgerEvent':
        _, event_type, user, timestamp, data = row
        return cls(event_type=event_type, user=user, timestamp=timestamp, data=json.loads(data))

    def to_dict(self) -> dict:
        return {
            "event": self.event_type,
            "user": self.user,
            "timestamp": self.timestamp,
            **self.data,
        }


class EventBus:
    """
    Simple event bus for ledger events.

    Events are delivered synchronously in the same thread.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., 'Staked', 'Withdrawn')
            callback: Function to call when event is emitted
        """
        if event_type not in self.listeners:
            self.listeners[event_type] = []

        self.listeners[event_type].append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event_type: Event name
            **data: Event data as keyword arguments
        """
        try:
            from stakeledger.observability.metrics import events_total
            events_total.labels(event_type=event_type).inc()
        except Exception as e:
            logger.debug(f"Failed to update event metric: {e}")

        listeners = self.listeners.get(event_type, [])

        if not listeners:
            logger.debug(f"No listeners for event: {event_type}")
            return

        logger.debug(f"Emitting event: {event_type} to {len(listeners)} listener(s)")

        # Observers must not be able to undo a committed operation
        for callback in listeners:
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def publish(self, event: LedgerEvent) -> None:
        self.emit(event.event_type, user=event.user, timestamp=event.timestamp, **event.data)

    def clear(self, event_type: str = None) -> None:
        """
        Clear all listeners for an event type, or all listeners if no type specified.
        """
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


# Global event bus instance
event_bus = EventBus()
