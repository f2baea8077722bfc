"""Interfaces for collaborators consumed by the gating and caching core.

These interfaces define contracts for external services (authentication, the
rental database) and for violation observers, enabling dependency inversion
and better testability.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from gatecache.domain.rate_limiting.entities import RateLimitViolation


class TokenVerifier(ABC):
    """Interface for the auth collaborator that resolves bearer tokens."""

    @abstractmethod
    async def verify(self, token: str) -> str:
        """Verify a bearer token and return the user identifier it belongs to.

        Args:
            token: Raw bearer token without the ``Bearer`` prefix.

        Returns:
            str: The user identifier.

        Raises:
            Exception: Any error when the token is invalid or expired. Callers
                treat every failure as "no identity".
        """
        pass


class ViolationObserver(ABC):
    """Receives rate-limit violations for alerting or bookkeeping.

    Observers are notified after the limiter has decided; they never influence
    the decision.
    """

    @abstractmethod
    async def notify(self, violation: "RateLimitViolation") -> None:
        """Handle one violation."""
        pass


class FleetDataSource(ABC):
    """Read-only view of the rental database used by the cache warmer."""

    @abstractmethod
    async def recent_booking_car_ids(self, since: datetime) -> List[str]:
        """Car id of every booking created since ``since``.

        Cancelled and failed bookings are excluded. One entry per booking, so a
        car appears as many times as it was booked.
        """
        pass

    @abstractmethod
    async def active_car_ids(self, limit: int) -> List[str]:
        """Ids of active, visible cars, at most ``limit``."""
        pass

    @abstractmethod
    async def list_fleet(self) -> List[Dict[str, Any]]:
        """All visible cars with their category, in display order."""
        pass

    @abstractmethod
    async def get_car(self, car_id: str) -> Optional[Dict[str, Any]]:
        """One car with its category, or ``None`` when it does not exist."""
        pass

    @abstractmethod
    async def availability_records(
        self, car_id: str, start: date, end: date
    ) -> List[Dict[str, Any]]:
        """Explicit per-day availability rows (``date``, ``status``) in range."""
        pass

    @abstractmethod
    async def active_bookings(
        self, car_id: str, start: date, end: date
    ) -> List[Dict[str, Any]]:
        """Non-cancelled bookings (``start_date``, ``end_date``) overlapping the range."""
        pass
