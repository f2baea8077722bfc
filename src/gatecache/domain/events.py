"""Domain events consumed by the cache layer.

Events are emitted by the rental application when bookings or cars change.
The cache subscribes to them and invalidates every cache domain that lists the
event name in its `CacheConfig.invalidation_events`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Final, Optional

BOOKING_CREATED: Final = "booking.created"
BOOKING_CANCELLED: Final = "booking.cancelled"
CAR_CREATED: Final = "car.created"
CAR_UPDATED: Final = "car.updated"
CAR_DELETED: Final = "car.deleted"


@dataclass(frozen=True)
class DomainEvent:
    """A named business occurrence.

    Attributes:
        name: Dotted event name, e.g. ``car.updated``.
        payload: Event-specific data such as the affected car id.
        occurred_at: When the event occurred (always timezone-aware).
        correlation_id: Optional correlation ID for tracking.
    """

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Event name must not be empty")
        if not self.occurred_at.tzinfo:
            object.__setattr__(self, "occurred_at", self.occurred_at.replace(tzinfo=timezone.utc))
