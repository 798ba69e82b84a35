from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from urllib.parse import urlencode

from eututka.config import Settings


class MockURL:
    def __init__(self, url: str):
        self._url = url

    def copy_with(self, params: Optional[Dict[str, Any]] = None) -> "MockURL":
        if not params:
            return MockURL(self._url)
        base, _, _ = self._url.partition("?")
        return MockURL(f"{base}?{urlencode(params, doseq=True)}")

    def __str__(self) -> str:
        return self._url


class MockRequest:
    def __init__(self, url: str):
        self.url = MockURL(url)


class MockAsyncResponse:
    def __init__(
        self,
        json_data: Any = None,
        *,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        request_url: Optional[str] = None,
        status_code: int = 200,
    ) -> None:
        self._json = json_data
        self.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")
        self.headers = headers or {}
        self.request = MockRequest(request_url or "https://example.com/mock")
        self.status_code = status_code

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._json


MockOutcome = Union[MockAsyncResponse, Exception]


class MockAsyncClient:
    """Stand-in for httpx.AsyncClient that replays queued responses.

    Exceptions in the queue are raised instead of returned. Every call is
    recorded in ``calls`` as (method, url, kwargs).
    """

    def __init__(self, responses: Iterable[MockOutcome], delay: float = 0.0) -> None:
        self._responses: List[MockOutcome] = list(responses)
        self.delay = delay
        self.calls: List[tuple] = []
        self.is_closed = False

    async def __aenter__(self) -> "MockAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _respond(self, method: str, url: str, **kwargs) -> MockAsyncResponse:
        self.calls.append((method, url, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._responses:
            raise AssertionError("No more mock responses available")
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        outcome.request = MockRequest(url if isinstance(url, str) else str(url))
        return outcome

    async def get(self, url: str, *, params: Optional[Dict[str, Any]] = None, **kwargs) -> MockAsyncResponse:
        return await self._respond("GET", url, params=params, **kwargs)

    async def post(self, url: str, **kwargs) -> MockAsyncResponse:
        return await self._respond("POST", url, **kwargs)

    async def aclose(self) -> None:
        self.is_closed = True


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def run(coro):
    """Helper to run async functions in synchronous tests."""
    return asyncio.run(coro)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, **overrides)


def eurostat_body(
    geo: Sequence[str],
    time: Sequence[str],
    values: Dict[str, Any],
    *,
    size: Optional[List[int]] = None,
    with_shape: bool = True,
) -> Dict[str, Any]:
    """JSON-stat body with dimensions [freq, unit, geo, time]."""
    body: Dict[str, Any] = {
        "version": "2.0",
        "class": "dataset",
        "value": values,
        "dimension": {
            "freq": {"category": {"index": {"A": 0}}},
            "unit": {"category": {"index": {"PC": 0}}},
            "geo": {"category": {"index": {code: i for i, code in enumerate(geo)}}},
            "time": {"category": {"index": {label: i for i, label in enumerate(time)}}},
        },
        "extension": {"datasetId": "test"},
    }
    if with_shape:
        body["id"] = ["freq", "unit", "geo", "time"]
        body["size"] = size or [1, 1, len(geo), len(time)]
    return body


def oecd_body(
    countries: Sequence[str],
    periods: Sequence[str],
    observations: Dict[str, List[Any]],
    *,
    country_dim: str = "LOCATION",
    time_dim: str = "TIME_PERIOD",
) -> Dict[str, Any]:
    """SDMX-JSON body with observation dimensions [country, measure, time]."""
    dimensions = [
        {"id": country_dim, "values": [{"id": code} for code in countries]},
        {"id": "MEASURE", "values": [{"id": "T"}]},
    ]
    if time_dim:
        dimensions.append({"id": time_dim, "values": [{"id": period} for period in periods]})
    return {
        "header": {"id": "test"},
        "dataSets": [{"action": "Information", "observations": observations}],
        "structure": {"dimensions": {"observation": dimensions}},
    }


def sparql_body(bindings: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"head": {"vars": []}, "results": {"bindings": bindings}}


def literal(value: str) -> Dict[str, str]:
    return {"type": "literal", "value": value}


def uri(value: str) -> Dict[str, str]:
    return {"type": "uri", "value": value}
