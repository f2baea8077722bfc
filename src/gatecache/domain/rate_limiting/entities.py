"""Rate Limiting Domain Entities

Entities:
- RateLimitViolation: A denied request, kept in memory for operator visibility
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


@dataclass(frozen=True)
class RateLimitViolation:
    """Record of one denied request.

    Attributes:
        identifier: Client identity the limit was keyed on (IP or user id).
        endpoint: Request path, or the policy namespace when no request exists.
        limit: Quota that was exceeded.
        window_ms: Window length of the exceeded policy.
        headers: Rate-limit headers returned with the 429.
        timestamp: When the violation happened (UTC).
    """

    identifier: str
    endpoint: str
    limit: int
    window_ms: int
    headers: Dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "identifier": self.identifier,
            "endpoint": self.endpoint,
            "limit": self.limit,
            "window_ms": self.window_ms,
            "headers": dict(self.headers),
        }
