"""Base provider class with common HTTP and error handling logic."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import Settings
from ..exceptions import EmptyResultError, UnknownIndicatorError, UpstreamError
from ..models import FetchResult, QueryOptions

logger = logging.getLogger(__name__)


def log_request(
    provider: str,
    dataset: str,
    cache: str,
    status: Optional[int] = None,
    latency_ms: float = 0.0,
) -> None:
    """Emit the one-line request trace shared by providers and the client."""
    logger.info(
        f"provider={provider} dataset={dataset} cache={cache} "
        f"status={status if status is not None else '-'} latency_ms={latency_ms:.0f}"
    )


class BaseProvider(ABC):
    """Base class for all data providers.

    Provides common functionality:
    - Allow-list validation before any network call
    - Single-attempt GET/POST with error classification
    - Structured request logging with latency

    Retries are not done here. A failed request is answered from the stale
    cache by the client, or the error propagates.

    Subclasses implement:
    - provider_name property (required)
    - known_codes (the allow-list)
    - fetch
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings
        self.timeout = settings.request_timeout or self.DEFAULT_TIMEOUT

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the canonical provider name ('eurostat', 'oecd', 'sparql')."""
        pass

    @abstractmethod
    def known_codes(self) -> List[str]:
        """Dataset or template codes this provider accepts."""
        pass

    @abstractmethod
    async def fetch(self, dataset: str, options: Optional[QueryOptions] = None) -> FetchResult:
        """Fetch one dataset and return its raw payload with provider metadata."""
        pass

    def ensure_known(self, dataset: str) -> None:
        if dataset not in self.known_codes():
            raise UnknownIndicatorError(dataset, self.provider_name)

    @property
    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.settings.user_agent,
        }

    async def _get(
        self,
        url: str,
        dataset: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Issue one GET and return the decoded JSON body.

        Raises:
            UpstreamError: non-2xx status (unfollowed 3xx included), timeout or
                transport failure
            EmptyResultError: 2xx body that is not JSON
        """
        return await self._send("GET", url, dataset, params=params, headers=headers)

    async def _post(
        self,
        url: str,
        dataset: str,
        content: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Issue one POST and return the decoded JSON body."""
        return await self._send("POST", url, dataset, content=content, headers=headers)

    async def _send(
        self,
        method: str,
        url: str,
        dataset: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        request_headers = {**self.default_headers, **(headers or {})}
        started = time.perf_counter()
        try:
            if method == "POST":
                response = await self.client.post(
                    url, content=content, headers=request_headers, timeout=self.timeout
                )
            else:
                response = await self.client.get(
                    url, params=params, headers=request_headers, timeout=self.timeout
                )
        except httpx.TimeoutException as e:
            log_request(self.provider_name, dataset, "miss", None, self._elapsed_ms(started))
            raise UpstreamError(
                f"{self.provider_name} request timed out after {self.timeout}s",
                self.provider_name,
                details={"dataset": dataset, "reason": str(e)},
            ) from e
        except httpx.HTTPError as e:
            log_request(self.provider_name, dataset, "miss", None, self._elapsed_ms(started))
            raise UpstreamError(
                f"{self.provider_name} request failed: {e}",
                self.provider_name,
                details={"dataset": dataset},
            ) from e

        log_request(self.provider_name, dataset, "miss", response.status_code, self._elapsed_ms(started))

        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                f"{self.provider_name} returned {response.status_code}: {self._provider_message(response)}",
                self.provider_name,
                status_code=response.status_code,
                details={"dataset": dataset},
            )

        return self._parse_json_safe(response, dataset)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def _parse_json_safe(self, response: httpx.Response, dataset: str) -> Dict[str, Any]:
        """Parse a JSON object body.

        Raises:
            EmptyResultError: body is not JSON or not an object
        """
        try:
            body = response.json()
        except ValueError as e:
            raise EmptyResultError(
                f"{self.provider_name} returned a non-JSON body for {dataset}",
                self.provider_name,
                details={"dataset": dataset},
            ) from e
        if not isinstance(body, dict):
            raise EmptyResultError(
                f"{self.provider_name} returned an unexpected body for {dataset}",
                self.provider_name,
                details={"dataset": dataset},
            )
        return body

    @staticmethod
    def _provider_message(response: httpx.Response) -> str:
        """Pull the provider's error label out of the body, else the raw text."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, list) and error:
                error = error[0]
            if isinstance(error, dict):
                label = error.get("label") or error.get("message")
                if label:
                    return str(label)
            elif isinstance(error, str):
                return error

        text = getattr(response, "text", "") or ""
        return text[:200]

    def _require_fields(self, body: Dict[str, Any], dataset: str, fields: Iterable[str]) -> None:
        missing = [name for name in fields if not body.get(name)]
        if missing:
            raise EmptyResultError(
                f"{self.provider_name} response for {dataset} is missing {', '.join(missing)}",
                self.provider_name,
                details={"dataset": dataset, "missing": missing},
            )
