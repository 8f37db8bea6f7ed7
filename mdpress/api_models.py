"""
API response models for consistent API responses
"""
from typing import List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field
from datetime import datetime, timezone
import math

T = TypeVar('T')


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ApiResponse(BaseModel, Generic[T]):
    """Generic API response wrapper"""
    success: bool = Field(..., description="Whether the request was successful")
    data: Optional[T] = Field(None, description="Response data")
    message: Optional[str] = Field(None, description="Response message")
    timestamp: datetime = Field(default_factory=_now, description="Response timestamp")
    request_id: Optional[str] = Field(None, description="Request tracking ID")


class ErrorResponse(BaseModel):
    """Error response model"""
    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_now, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request tracking ID")


class PaginatedResponse(BaseModel, Generic[T]):
    """Page-numbered response wrapper"""
    items: List[T] = Field(..., description="List of items")
    total: int = Field(..., description="Total number of matching items")
    page: int = Field(1, description="Current page, 1-based")
    limit: int = Field(..., description="Items per page")
    total_pages: int = Field(0, description="Number of pages")
    has_more: bool = Field(False, description="Whether there are more pages")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Health status (healthy, unhealthy)")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=_now, description="Health check timestamp")
    checks: dict = Field(default_factory=dict, description="Individual health check results")
    uptime_seconds: Optional[float] = Field(None, description="Application uptime in seconds")


class MetricsResponse(BaseModel):
    """Metrics response"""
    performance: dict = Field(..., description="Performance metrics")
    timestamp: datetime = Field(default_factory=_now, description="Metrics timestamp")


class MessageResponse(BaseModel):
    message: str


# Factory functions for creating consistent responses

def success_response(data: T, message: Optional[str] = None, request_id: Optional[str] = None) -> ApiResponse[T]:
    """Create a successful API response"""
    return ApiResponse(
        success=True,
        data=data,
        message=message,
        request_id=request_id
    )


def error_response(
    error_code: str,
    message: str,
    details: Optional[dict] = None,
    request_id: Optional[str] = None
) -> ErrorResponse:
    """Create an error response"""
    return ErrorResponse(
        error=error_code,
        message=message,
        details=details,
        request_id=request_id
    )


def paginated_response(
    items: List[T],
    total: int,
    page: int,
    limit: int,
) -> PaginatedResponse[T]:
    """Create a page-numbered response"""
    total_pages = math.ceil(total / limit) if total and limit else 0
    return PaginatedResponse(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_more=page < total_pages
    )
