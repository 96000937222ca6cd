"""API routes controlling route collection sessions."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..logging_utils import log_channel
from ..services.collection_service import CollectionAlreadyRunning, collection_manager

router = APIRouter()


class CollectionRequest(BaseModel):
    """Request payload for starting a collection session."""

    city: str = Field(..., description="City slug as used by the transit site (e.g. 'samarkand').")
    query: Optional[str] = Field(default=None, description="Override the search query typed on the site.")


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_collection(request: CollectionRequest) -> Dict[str, Any]:
    """Start collecting routes for a city."""
    try:
        return await collection_manager.start(request.city, request.query)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except CollectionAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/current")
async def get_collection_status() -> Dict[str, Any]:
    """Status of the current (or last) collection session."""
    return collection_manager.status()


@router.delete("/current")
async def stop_collection() -> Dict[str, Any]:
    """Stop the running collection session, if any."""
    stopped = await collection_manager.stop()
    return {"stopped": stopped}


@router.get("/logs")
async def get_collection_logs(
    after: int = Query(0, ge=0, description="Return entries with a sequence number greater than this."),
    limit: int = Query(200, ge=1, le=1000),
) -> Dict[str, Any]:
    """Progress and error messages emitted by the collector."""
    entries = log_channel.entries(after=after, limit=limit)
    last_seq = entries[-1]["seq"] if entries else after
    return {"entries": entries, "count": len(entries), "last_seq": last_seq}
