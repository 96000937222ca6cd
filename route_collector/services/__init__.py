"""Services for route correlation, geometry conversion and persistence."""

from .collection_service import CollectionAlreadyRunning, CollectionManager, collection_manager
from .correlator import ResponseCorrelator
from .geometry import GeometryCodec
from .record_store import RecordStore

__all__ = [
    "CollectionAlreadyRunning",
    "CollectionManager",
    "GeometryCodec",
    "RecordStore",
    "ResponseCorrelator",
    "collection_manager",
]
