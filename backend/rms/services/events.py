"""Post-commit domain events.

Engines publish only after their transaction has committed. Subscribers
(realtime broadcast, guest notifications) run synchronously in ``publish``;
a failing subscriber is logged and counted but never undoes the committed
change.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Domain event names"""
    # Kitchen events
    KITCHEN_ORDER_ROUTED = "kitchen_order.routed"
    KITCHEN_ORDER_BUMPED = "kitchen_order.bumped"
    KITCHEN_ORDER_READY = "kitchen_order.ready"
    KITCHEN_ITEM_UPDATED = "kitchen_item.updated"

    # Table events
    TABLE_COMBINED = "table.combined"
    TABLE_SEPARATED = "table.separated"
    TABLE_STATUS_CHANGED = "table.status_changed"

    # Waitlist events
    WAITLIST_JOINED = "waitlist.joined"
    WAITLIST_NOTIFIED = "waitlist.notified"
    WAITLIST_SEATED = "waitlist.seated"
    WAITLIST_CANCELLED = "waitlist.cancelled"

    # Order events
    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_DISCOUNT_APPLIED = "order.discount_applied"

    # Payment events
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"


@dataclass
class DomainEvent:
    """A committed state change."""
    type: EventType
    data: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.type.value,
            "data": self.data,
            "timestamp": self.occurred_at.isoformat(),
        }


EventHandler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def publish(self, event: DomainEvent) -> int:
        """Deliver ``event`` to every subscriber.

        Returns:
            Number of subscribers that raised.
        """
        failures = 0
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    "Event handler %s failed for %s",
                    getattr(handler, "__name__", repr(handler)),
                    event.type.value,
                )
        return failures

    def emit(self, event_type: EventType, **data: Any) -> int:
        return self.publish(DomainEvent(type=event_type, data=data))


# Process-wide bus wired in rms.main
event_bus = EventBus()
