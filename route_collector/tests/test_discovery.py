"""Tests for route candidate discovery and the click-and-wait cycle."""

from __future__ import annotations

import asyncio
import json
from typing import Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from route_collector.models import ElementInfo, ResponseEvent, ResponseKind
from route_collector.services.scrapers.discovery import (
    DEFAULT_PROBES,
    DiscoveryLoop,
    SelectorProbe,
    looks_like_route,
)
from route_collector.services.scrapers.response_observer import ResponseObserver

from .conftest import DETAIL_URL, SCHEDULE_URL, make_detail, make_schedule

RESULTS_URL = "https://2gis.uz/samarkand/search/Маршруты автобусов"


def _detail_event(route_id: str, name: str) -> ResponseEvent:
    return ResponseEvent(
        ResponseKind.DETAIL,
        DETAIL_URL.format(route_id=route_id),
        json.dumps(make_detail(route_id=route_id, name=name)),
    )


def _schedule_event(route_id: str, period: int = 15) -> ResponseEvent:
    return ResponseEvent(
        ResponseKind.SCHEDULE,
        SCHEDULE_URL.format(route_id=route_id),
        json.dumps(make_schedule(period=period)),
    )


class _FakeNavigator:
    """Results page whose clicks fire API responses through the observer."""

    timeout_seconds = 0.05

    def __init__(
        self,
        observer: ResponseObserver,
        elements: Dict[str, List[ElementInfo]],
        responses: Dict[int, List[ResponseEvent]],
        *,
        failing_clicks: Optional[set] = None,
    ) -> None:
        self.observer = observer
        self.elements = elements
        self.responses = responses
        self.failing_clicks = failing_clicks or set()
        self.url = RESULTS_URL
        self.queried: List[str] = []
        self.clicked: List[int] = []
        self.tab_clicks = 0
        self.back_calls = 0

    async def query_elements(self, selector: str) -> List[ElementInfo]:
        self.queried.append(selector)
        return list(self.elements.get(selector, []))

    def expect_response(self, kind: ResponseKind) -> asyncio.Future:
        return self.observer.expect(kind)

    async def click_nth(self, selector: str, index: int) -> bool:
        if index in self.failing_clicks:
            raise PlaywrightError("Element is not attached to the DOM")
        self.clicked.append(index)
        self.url = f"https://2gis.uz/samarkand/routes/{index}"
        loop = asyncio.get_running_loop()
        for event in self.responses.get(index, []):
            loop.call_soon(self.observer.publish, event)
        return True

    async def click(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        self.tab_clicks += 1
        raise PlaywrightError("Timeout 10ms exceeded")

    async def scroll_to_bottom(self) -> None:
        return None

    async def wait_for_settle(self) -> None:
        await asyncio.sleep(0)

    async def go_back(self) -> None:
        self.back_calls += 1
        self.url = RESULTS_URL


def _cards(selector: str, *texts: str) -> List[ElementInfo]:
    return [ElementInfo(selector=selector, index=index, text=text) for index, text in enumerate(texts)]


def test_looks_like_route():
    assert looks_like_route(ElementInfo(selector="a", index=0, text="автобус 12"))
    assert looks_like_route(ElementInfo(selector="a", index=0, text="Маршрутка 45"))
    assert looks_like_route(ElementInfo(selector="a", index=0, text=" 101 "))
    assert looks_like_route(ElementInfo(selector="a", index=0, text="Cafe", href="/samarkand/route/12"))
    assert not looks_like_route(ElementInfo(selector="a", index=0, text="Bakery on the corner"))
    assert not looks_like_route(ElementInfo(selector="a", index=0, text="12 Main street"))


@pytest.mark.asyncio
async def test_first_matching_probe_wins(correlator):
    observer = ResponseObserver(correlator)
    first, second, third = (probe.selector for probe in DEFAULT_PROBES[:3])
    navigator = _FakeNavigator(
        observer,
        {
            first: _cards(first, "Bakery", "Pharmacy"),
            second: _cards(second, "12", "Т 5"),
            third: _cards(third, "40"),
        },
        {},
    )

    candidates = await DiscoveryLoop(navigator, correlator).find_candidates()

    assert [c.text for c in candidates] == ["12", "Т 5"]
    assert navigator.queried == [first, second]


@pytest.mark.asyncio
async def test_probe_returns_none_without_matches():
    class _Empty:
        async def query_elements(self, selector):
            return _cards(selector, "Bakery")

    assert await SelectorProbe(".minicard").probe(_Empty()) is None


@pytest.mark.asyncio
async def test_run_page_collects_each_route(correlator, store):
    observer = ResponseObserver(correlator)
    selector = DEFAULT_PROBES[0].selector
    navigator = _FakeNavigator(
        observer,
        {selector: _cards(selector, "12", "40")},
        {
            # Detail reaches the browser before the schedule for the first route.
            0: [_detail_event("1001", "12"), _schedule_event("1001", period=10)],
            1: [_schedule_event("2002", period=20), _detail_event("2002", "40")],
        },
    )
    loop = DiscoveryLoop(navigator, correlator, schedule_tab_attempts=3, schedule_tab_timeout_ms=10)

    attempted = await loop.run_page()

    assert attempted == 2
    assert navigator.clicked == [0, 1]
    assert navigator.tab_clicks == 6
    assert navigator.back_calls == 2
    assert [route.id for route in correlator.collected_routes] == ["1001", "2002"]
    assert [route.interval for route in correlator.collected_routes] == ["every 10 minutes", "every 20 minutes"]
    assert correlator.pending_count == 0

    saved = json.loads((store.city_dir("samarkand") / "12.json").read_text(encoding="utf-8"))
    assert saved["additional_info"]["hours"] == "06:00–22:30"


@pytest.mark.asyncio
async def test_missing_schedule_is_tolerated(correlator):
    observer = ResponseObserver(correlator)
    selector = DEFAULT_PROBES[0].selector
    navigator = _FakeNavigator(observer, {selector: _cards(selector, "12")}, {0: [_detail_event("1001", "12")]})

    await DiscoveryLoop(navigator, correlator, schedule_tab_attempts=1).run_page()

    assert len(correlator.collected_routes) == 1
    assert correlator.collected_routes[0].interval is None


@pytest.mark.asyncio
async def test_failing_candidate_does_not_stop_the_page(correlator):
    observer = ResponseObserver(correlator)
    selector = DEFAULT_PROBES[0].selector
    navigator = _FakeNavigator(
        observer,
        {selector: _cards(selector, "12", "40", "77")},
        {
            # No detail response arrives for the second candidate.
            1: [],
            2: [_detail_event("3003", "77")],
        },
        failing_clicks={0},
    )

    attempted = await DiscoveryLoop(navigator, correlator, schedule_tab_attempts=0).run_page()

    assert attempted == 3
    assert navigator.clicked == [1, 2]
    assert [route.id for route in correlator.collected_routes] == ["3003"]


@pytest.mark.asyncio
async def test_closed_session_stops_discovery(correlator):
    observer = ResponseObserver(correlator)
    selector = DEFAULT_PROBES[0].selector
    navigator = _FakeNavigator(observer, {selector: _cards(selector, "12", "40")}, {})

    attempted = await DiscoveryLoop(navigator, correlator, is_closed=lambda: True).run_page()

    assert attempted == 0
    assert navigator.clicked == []


@pytest.mark.asyncio
async def test_no_go_back_when_still_on_results(correlator):
    observer = ResponseObserver(correlator)
    selector = DEFAULT_PROBES[0].selector
    navigator = _FakeNavigator(observer, {selector: _cards(selector, "12")}, {0: [_detail_event("1001", "12")]})

    async def click_in_place(selector, index):
        loop = asyncio.get_running_loop()
        loop.call_soon(observer.publish, _detail_event("1001", "12"))
        return True

    navigator.click_nth = click_in_place

    await DiscoveryLoop(navigator, correlator, schedule_tab_attempts=0).run_page()

    assert navigator.back_calls == 0
    assert len(correlator.collected_routes) == 1
