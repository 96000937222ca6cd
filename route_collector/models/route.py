"""Data structures exchanged between the collector components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set


class ResponseKind(str, Enum):
    """Response streams recognised by the network observer."""

    SCHEDULE = "schedule"
    DETAIL = "detail"


@dataclass
class ResponseEvent:
    """A captured API response waiting in the correlator mailbox."""

    kind: ResponseKind
    url: str
    payload: Any
    status: int = 200


@dataclass
class ScheduleFragment:
    """Schedule summary buffered until the matching route detail arrives."""

    interval: Optional[str] = None
    hours: Optional[str] = None


@dataclass
class RouteAdditionalInfo:
    """Derived fields injected into the persisted route document."""

    name: Optional[str]
    route: Optional[str]
    interval: Optional[str] = None
    hours: Optional[str] = None

    @classmethod
    def from_route_item(cls, route_item: Dict[str, Any]) -> "RouteAdditionalInfo":
        from_name = route_item.get("from_name")
        to_name = route_item.get("to_name")
        return cls(
            name=f"{route_item.get('name')} - {from_name} → {to_name}",
            route=f"{from_name} → {to_name}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CollectedRoute:
    """Summary entry recorded for every persisted route detail event."""

    id: str
    url: str
    status: int
    name: Optional[str]
    file_name: str
    timestamp: str
    interval: Optional[str] = None
    hours: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ElementInfo:
    """Snapshot of a DOM element taken through the page navigator."""

    selector: str
    index: int
    text: str = ""
    href: str = ""
    active: bool = False
    disabled: bool = False


@dataclass
class PaginationState:
    """Pages already walked and the page currently displayed."""

    current_page: int = 1
    visited_pages: Set[int] = field(default_factory=set)
