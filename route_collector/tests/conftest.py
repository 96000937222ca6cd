"""Shared fixtures and payload builders for collector tests."""

from __future__ import annotations

from datetime import timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from route_collector.services.correlator import ResponseCorrelator
from route_collector.services.geometry import GeometryCodec
from route_collector.services.record_store import RecordStore

SCHEDULE_URL = "https://routing.api.2gis.com/ctx/search_schedule/routes/{route_id}?key=demo"
DETAIL_URL = "https://catalog.api.2gis.com/3.0/items/byid?id={route_id}&key=demo"


def make_detail(
    route_id: str = "1001",
    name: str = "12",
    *,
    directions: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    if directions is None:
        directions = [
            {
                "type": "forward",
                "platforms": [
                    {"name": "Registan", "station_id": "st-1", "geometry": {"centroid": "POINT(66.975 39.655)"}},
                    {"name": "Siab Bazaar", "station_id": "st-2", "geometry": {"centroid": "POINT(66.981 39.662)"}},
                    {"name": "No geometry", "station_id": "st-3"},
                ],
                "geometry": {
                    "immersion": [
                        {"selection": "LINESTRING(66.975 39.655, 66.978 39.658, 66.981 39.662)"},
                    ]
                },
            },
            {
                "type": "backward",
                "platforms": [
                    {"name": "Airport", "station_id": "st-9", "geometry": {"centroid": "POINT(66.99 39.70)"}},
                ],
                "geometry": {
                    "immersion": [
                        {"selection": "LINESTRING(66.99 39.70, 66.975 39.655)"},
                    ]
                },
            },
        ]
    return {
        "meta": {"code": 200},
        "result": {
            "total": 1,
            "items": [
                {
                    "id": route_id,
                    "type": "route",
                    "name": name,
                    "from_name": "Registan",
                    "to_name": "Airport",
                    "directions": directions,
                }
            ],
        },
    }


def make_schedule(period: int = 15, start: int = 6 * 3600, finish: int = 22 * 3600 + 30 * 60) -> Dict[str, Any]:
    return {
        "responses": [
            {"status": "error", "schedules": []},
            {
                "status": "ok",
                "schedules": [
                    {
                        "schedule": {
                            "type": "interval_trip",
                            "period": period,
                            "work_hours": {"start_time": start, "finish_time": finish},
                        }
                    }
                ],
            },
        ]
    }


@pytest.fixture
def store(tmp_path) -> RecordStore:
    return RecordStore(tmp_path / "routes")


@pytest.fixture
def codec() -> GeometryCodec:
    return GeometryCodec(forward_label="outbound", return_label="return")


@pytest.fixture
def correlator(store, codec) -> ResponseCorrelator:
    return ResponseCorrelator("Samarkand", store=store, codec=codec, tz=timezone.utc, mailbox_size=16)


@pytest_asyncio.fixture
async def client():
    """HTTP client bound to the FastAPI app without starting a server."""
    from route_collector.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
