"""Data models for the transit route collector."""

from .route import (
    CollectedRoute,
    ElementInfo,
    PaginationState,
    ResponseEvent,
    ResponseKind,
    RouteAdditionalInfo,
    ScheduleFragment,
)

__all__ = [
    "CollectedRoute",
    "ElementInfo",
    "PaginationState",
    "ResponseEvent",
    "ResponseKind",
    "RouteAdditionalInfo",
    "ScheduleFragment",
]
