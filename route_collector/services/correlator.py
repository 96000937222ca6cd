"""Correlation of schedule and route-detail API responses into route records."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config import settings
from ..models import (
    CollectedRoute,
    ResponseEvent,
    ResponseKind,
    RouteAdditionalInfo,
    ScheduleFragment,
)
from .geometry import GeometryCodec, find_route_item
from .record_store import RecordStore

logger = logging.getLogger(__name__)

_ROUTE_ID_RE = re.compile(r"routes/(\d+)")

# Returns interval/hours read from the rendered route page, if any.
FallbackProvider = Callable[[Dict[str, Any]], Awaitable[Optional[ScheduleFragment]]]


class MalformedPayload(ValueError):
    """Raised when an API payload does not have the expected shape."""


def _coerce_payload(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        payload = json.loads(payload)
    if not isinstance(payload, dict):
        raise MalformedPayload(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def route_id_from_url(url: str) -> Optional[str]:
    """Extract the route identifier from a schedule API URL."""
    match = _ROUTE_ID_RE.search(url or "")
    return match.group(1) if match else None


def select_interval_schedule(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the first ``ok`` interval-trip schedule carrying a period and work hours."""
    responses = payload.get("responses")
    if not isinstance(responses, list):
        raise MalformedPayload("schedule payload has no 'responses' list")

    for entry in responses:
        if not isinstance(entry, dict) or entry.get("status") != "ok":
            continue
        schedules = entry.get("schedules")
        if not isinstance(schedules, list) or not schedules:
            continue
        schedule = (schedules[0] or {}).get("schedule") or {}
        if (
            schedule.get("type") == "interval_trip"
            and schedule.get("period")
            and schedule.get("work_hours")
        ):
            return schedule
    return None


def format_work_hours(work_hours: Dict[str, Any], tz: Optional[tzinfo] = None) -> str:
    """Render epoch-second start/finish fields as ``HH:MM–HH:MM`` wall-clock time."""
    start = datetime.fromtimestamp(int(work_hours["start_time"]), tz=tz)
    finish = datetime.fromtimestamp(int(work_hours["finish_time"]), tz=tz)
    return f"{start:%H:%M}–{finish:%H:%M}"


def format_interval(period: Any) -> str:
    return f"every {period} minutes"


class ResponseCorrelator:
    """Merge schedule and detail responses for the same route into one record.

    The network observer only posts events into a bounded mailbox through
    :meth:`submit`; :meth:`drain` is the single consumer and the only code that
    touches the pending-schedule map. Within a drained batch schedule events are
    applied before detail events, so the merged record does not depend on which
    response reached the browser first.
    """

    def __init__(
        self,
        city: str,
        store: Optional[RecordStore] = None,
        codec: Optional[GeometryCodec] = None,
        *,
        mailbox_size: Optional[int] = None,
        tz: Optional[tzinfo] = None,
        fallback_provider: Optional[FallbackProvider] = None,
    ) -> None:
        self.city = city.strip().lower()
        self.store = store or RecordStore()
        self.codec = codec or GeometryCodec()
        self.tz = tz if tz is not None else settings.schedule_timezone
        self.fallback_provider = fallback_provider
        self.collected_routes: List[CollectedRoute] = []
        self._pending: Dict[str, ScheduleFragment] = {}
        size = mailbox_size if mailbox_size is not None else settings.collector_mailbox_size
        self._mailbox: asyncio.Queue[ResponseEvent] = asyncio.Queue(maxsize=max(1, size))
        self._mailbox_warning_emitted = False

    # Mailbox ----------------------------------------------------------------------

    def submit(self, event: ResponseEvent) -> bool:
        """Queue an event without blocking; returns False if the mailbox is full."""
        try:
            self._mailbox.put_nowait(event)
        except asyncio.QueueFull:
            if not self._mailbox_warning_emitted:
                self._mailbox_warning_emitted = True
                logger.warning("Correlator mailbox is full; dropping %s response %s", event.kind.value, event.url)
            return False
        return True

    async def drain(self) -> int:
        """Process every queued event; returns the number of events consumed."""
        batch: List[ResponseEvent] = []
        while True:
            try:
                batch.append(self._mailbox.get_nowait())
            except asyncio.QueueEmpty:
                break

        for event in batch:
            if event.kind is ResponseKind.SCHEDULE:
                try:
                    self.handle_schedule(event.url, event.payload)
                except Exception as exc:  # pylint: disable=broad-except
                    logger.error("Unhandled error in schedule response %s: %s", event.url, exc, exc_info=True)
        for event in batch:
            if event.kind is ResponseKind.DETAIL:
                try:
                    await self.handle_detail(event.url, event.payload, status=event.status)
                except Exception as exc:  # pylint: disable=broad-except
                    logger.error("Unhandled error in detail response %s: %s", event.url, exc, exc_info=True)

        self._mailbox_warning_emitted = False
        return len(batch)

    # Stream handlers -----------------------------------------------------------------

    def handle_schedule(self, url: str, payload: Any) -> Optional[ScheduleFragment]:
        """Buffer the schedule fragment for the route named in ``url``."""
        route_id = route_id_from_url(url)
        if route_id is None:
            logger.debug("Schedule response without route id: %s", url)
            return None

        try:
            schedule = select_interval_schedule(_coerce_payload(payload))
            if schedule is None:
                logger.debug("No interval schedule for route %s", route_id)
                return None
            fragment = ScheduleFragment(
                interval=format_interval(schedule["period"]),
                hours=format_work_hours(schedule["work_hours"], self.tz),
            )
        except (ValueError, KeyError, TypeError, AttributeError, OverflowError, OSError) as exc:
            logger.error("Failed to parse schedule payload from %s: %s", url, exc)
            return None

        if route_id in self._pending:
            logger.debug("Replacing unconsumed schedule for route %s", route_id)
        self._pending[route_id] = fragment
        return fragment

    async def handle_detail(self, url: str, payload: Any, status: int = 200) -> Optional[CollectedRoute]:
        """Merge a route detail payload with its buffered schedule and persist it."""
        try:
            document = _coerce_payload(payload)
            route_item = find_route_item(document)
        except (ValueError, TypeError) as exc:
            logger.error("Failed to parse route detail payload from %s: %s", url, exc)
            return None

        if route_item is None or route_item.get("id") is None:
            logger.debug("Detail response without a route item: %s", url)
            return None

        route_id = str(route_item["id"])
        fragment = self._pending.pop(route_id, None)
        info = await self._build_additional_info(route_item, fragment)

        enriched = dict(document)
        enriched["additional_info"] = info.to_dict()
        base_name = RecordStore.safe_name(route_item.get("name"))

        try:
            feature_collection = self.codec.to_feature_collection(enriched)
            self.store.save(self.city, enriched, feature_collection, base_name)
        except (OSError, TypeError, ValueError, AttributeError, KeyError) as exc:
            logger.error("Failed to save route %s: %s", route_id, exc)
            return None

        collected = CollectedRoute(
            id=route_id,
            url=url,
            status=status,
            name=info.name,
            file_name=f"{base_name}{RecordStore.JSON_SUFFIX}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            interval=info.interval,
            hours=info.hours,
        )
        self.collected_routes.append(collected)
        return collected

    async def _build_additional_info(
        self,
        route_item: Dict[str, Any],
        fragment: Optional[ScheduleFragment],
    ) -> RouteAdditionalInfo:
        info = RouteAdditionalInfo.from_route_item(route_item)
        fragment = fragment or ScheduleFragment()

        fallback: Optional[ScheduleFragment] = None
        if self.fallback_provider is not None and not (fragment.interval and fragment.hours):
            try:
                fallback = await self.fallback_provider(route_item)
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Page fallback for route %s failed: %s", route_item.get("id"), exc)
        fallback = fallback or ScheduleFragment()

        info.interval = fragment.interval or fallback.interval or None
        info.hours = fragment.hours or fallback.hours or None
        return info

    # Reporting -----------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_route_ids(self) -> List[str]:
        return list(self._pending)

    def discard_pending(self) -> int:
        """Drop schedule fragments that never met a detail response."""
        count = len(self._pending)
        if count:
            logger.debug("Dropping %d unconsumed schedule fragment(s)", count)
        self._pending.clear()
        return count
