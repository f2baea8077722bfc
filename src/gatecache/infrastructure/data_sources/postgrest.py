"""
Rental database access over PostgREST.

The cache warmer reads cars, bookings and availability through the database's
REST interface using the service role key. Only read queries are issued.

**Security Note**: The service role key bypasses row-level security. It is sent
only in request headers and never logged.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from structlog import get_logger

from gatecache.core.config.settings import Settings, settings as default_settings
from gatecache.core.exceptions import DataSourceError
from gatecache.domain.interfaces import FleetDataSource

logger = get_logger(__name__)

CAR_WITH_CATEGORY = "*,category:categories(id,name,slug,description)"
EXCLUDED_BOOKING_STATUSES = "not.in.(cancelled,failed)"

Params = Sequence[Tuple[str, str]]


class PostgrestFleetDataSource(FleetDataSource):
    """`FleetDataSource` backed by a PostgREST endpoint.

    Args:
        config: Settings providing ``SUPABASE_URL`` and the service role key.
        client: Pre-built ``httpx.AsyncClient``; tests pass one with a mock
            transport. When omitted a client is created and owned here.
    """

    def __init__(self, config: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self._settings = config or default_settings
        self._owns_client = client is None
        self._client = client or self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        key = self._settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value()
        return httpx.AsyncClient(
            base_url=f"{self._settings.SUPABASE_URL.rstrip('/')}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Accept": "application/json",
            },
            timeout=self._settings.DATA_SOURCE_TIMEOUT,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _select(self, table: str, params: Params) -> List[Dict[str, Any]]:
        try:
            response = await self._client.get(f"/{table}", params=list(params))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("data_source_query_failed", table=table, status_code=e.response.status_code)
            raise DataSourceError(f"Failed to query {table}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("data_source_unreachable", table=table, error=str(e))
            raise DataSourceError(f"Failed to query {table}: {e}") from e
        rows = response.json()
        if not isinstance(rows, list):
            raise DataSourceError(f"Unexpected response shape from {table}")
        return rows

    async def recent_booking_car_ids(self, since: datetime) -> List[str]:
        rows = await self._select("bookings", [
            ("select", "car_id"),
            ("created_at", f"gte.{since.isoformat()}"),
            ("overall_status", EXCLUDED_BOOKING_STATUSES),
        ])
        return [str(row["car_id"]) for row in rows if row.get("car_id")]

    async def active_car_ids(self, limit: int) -> List[str]:
        rows = await self._select("cars", [
            ("select", "id"),
            ("status", "eq.active"),
            ("hidden", "eq.false"),
            ("limit", str(limit)),
        ])
        return [str(row["id"]) for row in rows]

    async def list_fleet(self) -> List[Dict[str, Any]]:
        return await self._select("cars", [
            ("select", CAR_WITH_CATEGORY),
            ("hidden", "eq.false"),
            ("order", "display_order.asc,created_at.desc"),
        ])

    async def get_car(self, car_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._select("cars", [
            ("select", CAR_WITH_CATEGORY),
            ("id", f"eq.{car_id}"),
            ("limit", "1"),
        ])
        return rows[0] if rows else None

    async def availability_records(self, car_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        return await self._select("car_availability", [
            ("select", "date,status"),
            ("car_id", f"eq.{car_id}"),
            ("date", f"gte.{start.isoformat()}"),
            ("date", f"lte.{end.isoformat()}"),
            ("order", "date.asc"),
        ])

    async def active_bookings(self, car_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        return await self._select("bookings", [
            ("select", "id,start_date,end_date,overall_status"),
            ("car_id", f"eq.{car_id}"),
            ("end_date", f"gte.{start.isoformat()}"),
            ("start_date", f"lte.{end.isoformat()}"),
            ("overall_status", EXCLUDED_BOOKING_STATUSES),
        ])
