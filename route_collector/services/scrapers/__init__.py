"""Browser-driven scrapers for sites without official APIs."""

from .discovery import DiscoveryLoop, SelectorProbe
from .navigator import PageNavigator
from .pagination import PaginationWalker, WalkerPhase
from .response_observer import ResponseObserver
from .route_collector import CollectionSummary, CollectorSession

__all__ = [
    "CollectionSummary",
    "CollectorSession",
    "DiscoveryLoop",
    "PageNavigator",
    "PaginationWalker",
    "ResponseObserver",
    "SelectorProbe",
    "WalkerPhase",
]
