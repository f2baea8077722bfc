"""Admin API Request and Response Schemas

This module defines Pydantic schemas for the admin cache-warming and
rate-limit monitoring endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from gatecache.domain.caching.warmer import WarmingOptions


class CacheWarmRequest(BaseModel):
    """Request schema for an on-demand warming run."""

    warm_popular_cars: bool = Field(True, description="Warm the fleet listing and popular car details")
    warm_upcoming_availability: bool = Field(True, description="Warm near-term availability of popular cars")
    popular_cars_limit: int = Field(10, ge=1, le=50, description="Number of popular cars to warm")
    availability_days: int = Field(7, ge=1, le=30, description="Days of availability to warm from today")

    def to_options(self) -> WarmingOptions:
        return WarmingOptions(**self.model_dump())


class CacheWarmResponse(BaseModel):
    """Response schema for warming operations."""

    success: bool = Field(..., description="False only when the run failed entirely")
    metrics: Optional[Dict[str, Any]] = Field(None, description="Metrics of the warming run")
    message: str = Field(..., description="Operation result message")


class MonitoringResponse(BaseModel):
    """Response schema for the violation summary."""

    summary: Dict[str, Any] = Field(..., description="Aggregated violation statistics")
    violations: List[Dict[str, Any]] = Field(..., description="Most recent matching violations")


class ClearViolationsResponse(BaseModel):
    """Response schema for clearing the violation log."""

    success: bool
    message: str
    cleared: int
