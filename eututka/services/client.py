"""
DataSourceClient

Explicitly constructed entry point of the data layer. Each instance owns its
HTTP client, fetch cache, providers, normalizer and fallback policy; nothing
is shared between instances.

Fetch flow for one (provider, dataset, params) key:
1. fresh cache entry -> served (cache=hit)
2. otherwise one live request; concurrent callers of the same key share
   the in-flight task when coalescing is enabled (cache=coalesced)
3. success -> stored in the cache
4. fallback-eligible failure -> the policy may serve the last stored payload,
   marked stale; otherwise the error propagates
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

import httpx

from ..config import Settings
from ..exceptions import DataProviderError, EmptyResultError, UnknownIndicatorError
from ..models import (
    Concept,
    FetchResult,
    IndicatorInfo,
    IndicatorLoad,
    IndicatorRef,
    LoadResult,
    ProviderHealth,
    QueryOptions,
    UniformRecord,
)
from ..providers.base import BaseProvider, log_request
from ..providers.eurostat import EurostatProvider
from ..providers.oecd import OECDProvider
from ..providers.sparql import SparqlProvider
from .cache import CacheKey, FetchCache
from .fallback import FallbackPolicy
from .filtering import FilterSpec, apply_filters
from .formatting import OECD_TOPICS, indicator_name, indicator_unit, topic_for_indicator
from .http_pool import create_http_client
from .normalizer import ResponseNormalizer
from .placeholder import placeholder_records

logger = logging.getLogger(__name__)


class DataSourceClient:
    """Fetches, caches and normalizes statistics from every configured provider.

    Usage:
        async with DataSourceClient(settings) as client:
            result = await client.load_all()
    """

    # Indicators loaded when the caller does not name any
    DEFAULT_EUROSTAT_LOAD = ("cei_srm030", "cei_wm011", "cei_pc020", "cei_cie011")
    DEFAULT_OECD_LOAD = ("MUNW", "WASTE_TREAT")
    # Small datasets used by check_providers when they are allow-listed
    HEALTH_CHECK_DATASETS = {"eurostat": "cei_srm030", "oecd": "MUNW"}

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[FetchCache] = None,
    ) -> None:
        self.settings = settings or Settings()
        self._owns_http_client = http_client is None
        self.http_client = http_client or create_http_client(self.settings)
        self.cache = cache or FetchCache(self.settings.cache_ttls)
        self.policy = FallbackPolicy.from_name(self.settings.fallback_policy)
        self.normalizer = ResponseNormalizer(self.settings.year_cutoff)
        self.providers: Dict[str, BaseProvider] = {
            "eurostat": EurostatProvider(self.http_client, self.settings),
            "oecd": OECDProvider(self.http_client, self.settings),
            "sparql": SparqlProvider(self.http_client, self.settings),
        }
        self._inflight: Dict[CacheKey, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "DataSourceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.aclose()
        return False

    def provider(self, name: str) -> BaseProvider:
        adapter = self.providers.get(name)
        if adapter is None:
            raise UnknownIndicatorError(name, details={"reason": "unknown provider"})
        return adapter

    # ------------------------------------------------------------------
    # Single fetch
    # ------------------------------------------------------------------

    async def fetch(
        self,
        provider: str,
        dataset: str,
        options: Optional[QueryOptions] = None,
    ) -> FetchResult:
        """Return the raw payload for one dataset, from cache or live."""
        adapter = self.provider(provider)
        adapter.ensure_known(dataset)
        options = options or QueryOptions()

        key = self.cache.make_key(provider, dataset, options.cache_params())
        entry = self.cache.get(key)
        if entry is not None:
            log_request(provider, dataset, "hit")
            return entry.payload.with_cache_state("hit")

        try:
            return await self._fetch_live(adapter, key, dataset, options)
        except Exception as e:
            stale = self.policy.resolve(e, self.cache.get_stale(key))
            self.cache.record_stale_served()
            log_request(provider, dataset, "stale")
            return stale.payload.as_stale()

    async def _fetch_live(
        self,
        adapter: BaseProvider,
        key: CacheKey,
        dataset: str,
        options: QueryOptions,
    ) -> FetchResult:
        if self.settings.coalesce_requests:
            shared = self._inflight.get(key)
            if shared is not None:
                log_request(adapter.provider_name, dataset, "coalesced")
                result = await asyncio.shield(shared)
                return result.with_cache_state("coalesced")

        task = asyncio.ensure_future(self._fetch_and_store(adapter, key, dataset, options))
        self._tasks.add(task)
        if self.settings.coalesce_requests:
            self._inflight[key] = task

        def _forget(done: asyncio.Task) -> None:
            self._tasks.discard(done)
            if self._inflight.get(key) is done:
                del self._inflight[key]

        task.add_done_callback(_forget)
        # Shielded so one cancelled waiter does not cancel the request for the others
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self,
        adapter: BaseProvider,
        key: CacheKey,
        dataset: str,
        options: QueryOptions,
    ) -> FetchResult:
        result = await adapter.fetch(dataset, options)
        self.cache.put(key, result)
        return result

    # ------------------------------------------------------------------
    # Normalized loads
    # ------------------------------------------------------------------

    async def load_indicator(
        self,
        provider: str,
        code: str,
        options: Optional[QueryOptions] = None,
    ) -> List[UniformRecord]:
        records, _ = await self._load_records(provider, code, options)
        return records

    async def _load_records(
        self,
        provider: str,
        code: str,
        options: Optional[QueryOptions],
    ) -> Tuple[List[UniformRecord], str]:
        """Normalized records plus the provenance of the payload they came from."""
        result = await self.fetch(provider, code, options)
        provenance = "stale" if result.providerMeta.stale else "live"
        return self.normalizer.normalize(result, code, provenance), provenance

    async def _load_one(
        self,
        ref: IndicatorRef,
        options: QueryOptions,
    ) -> Tuple[List[UniformRecord], IndicatorLoad]:
        try:
            records, provenance = await self._load_records(ref.provider, ref.code, options)
        except DataProviderError as e:
            logger.warning(f"Failed to load {ref.provider}/{ref.code}: {e.message}")
            return [], IndicatorLoad(provider=ref.provider, indicator=ref.code, error=e.to_dict())

        return records, IndicatorLoad(
            provider=ref.provider,
            indicator=ref.code,
            records=len(records),
            provenance=provenance,
        )

    def _refs(
        self,
        eurostat: Optional[Sequence[str]],
        oecd: Optional[Sequence[str]],
        sparql: Optional[Sequence[str]],
    ) -> List[IndicatorRef]:
        if eurostat is None:
            eurostat = [code for code in self.DEFAULT_EUROSTAT_LOAD if code in self.settings.eurostat_indicators]
        if oecd is None:
            oecd = [code for code in self.DEFAULT_OECD_LOAD if code in self.settings.oecd_datasets]

        refs = [IndicatorRef(provider="eurostat", code=code) for code in eurostat]
        refs += [IndicatorRef(provider="oecd", code=code) for code in oecd]
        refs += [IndicatorRef(provider="sparql", code=code) for code in (sparql or [])]

        # Unknown codes are a caller error: fail before any request goes out
        for ref in refs:
            self.provider(ref.provider).ensure_known(ref.code)
        return refs

    async def load_all(
        self,
        eurostat: Optional[Sequence[str]] = None,
        oecd: Optional[Sequence[str]] = None,
        sparql: Optional[Sequence[str]] = None,
        options: Optional[QueryOptions] = None,
        filters: Optional[FilterSpec] = None,
    ) -> LoadResult:
        """Load every requested indicator concurrently and merge the records.

        Status is ``ok`` when every indicator loaded, ``partial`` when some
        failed, and ``no_data`` when nothing could be obtained at all.
        """
        refs = self._refs(eurostat, oecd, sparql)
        options = options or QueryOptions()

        sparql_extra = {}
        if filters is not None and filters.dateFrom:
            sparql_extra["dateFrom"] = filters.dateFrom
        if filters is not None and filters.dateTo:
            sparql_extra["dateTo"] = filters.dateTo
        sparql_options = QueryOptions(extra=sparql_extra)

        outcomes = await asyncio.gather(
            *(self._load_one(ref, sparql_options if ref.provider == "sparql" else options) for ref in refs)
        )

        records: List[UniformRecord] = []
        loads: List[IndicatorLoad] = []
        for ref_records, load in outcomes:
            records.extend(ref_records)
            loads.append(load)

        failed = sum(1 for load in loads if load.error)
        if not records:
            status = "no_data"
        elif failed:
            status = "partial"
        else:
            status = "ok"
        is_live = status != "no_data" and all(load.provenance != "stale" for load in loads)

        if status == "no_data":
            logger.warning(f"No data obtained for {len(refs)} indicators ({failed} failed)")
            if self.settings.allow_placeholder_data:
                records = placeholder_records(refs)

        return LoadResult(
            records=apply_filters(records, filters),
            status=status,
            isLive=is_live,
            loads=loads,
        )

    async def search_concepts(self, text: str, language: str = "en") -> List[Concept]:
        """Look up EuroVoc concepts whose preferred label contains text."""
        options = QueryOptions(extra={"text": text, "language": language})
        try:
            result = await self.fetch("sparql", "eurovoc_concepts", options)
        except EmptyResultError:
            return []
        return self.normalizer.normalize_concepts(result)

    def list_indicators(self) -> List[IndicatorInfo]:
        indicators = [
            IndicatorInfo(
                provider="eurostat",
                code=code,
                name=indicator_name(code),
                unit=indicator_unit(code),
                topic=topic_for_indicator(code),
            )
            for code in self.settings.eurostat_indicators
        ]
        indicators += [
            IndicatorInfo(
                provider="oecd",
                code=code,
                name=indicator_name(code),
                topic=OECD_TOPICS.get(code, ("environment", ""))[0],
            )
            for code in self.settings.oecd_datasets
        ]
        return indicators

    # ------------------------------------------------------------------
    # Provider health
    # ------------------------------------------------------------------

    async def check_providers(self) -> Dict[str, ProviderHealth]:
        """Send one small uncached request to each statistics provider.

        healthy means data came back, degraded means the provider answered
        without usable data, error means the request failed or there is no
        dataset configured to check with.
        """
        checks = [
            ("eurostat", self.settings.eurostat_base_url, QueryOptions(startYear=2020, endYear=2020)),
            ("oecd", self.settings.oecd_base_url, QueryOptions(countries=["EU27_2020"], startYear=2022, endYear=2023)),
        ]
        results = await asyncio.gather(
            *(self._check_provider(name, endpoint, options) for name, endpoint, options in checks)
        )
        return {health.provider: health for health in results}

    async def _check_provider(self, name: str, endpoint: str, options: QueryOptions) -> ProviderHealth:
        adapter = self.providers[name]
        codes = adapter.known_codes()
        if not codes:
            return ProviderHealth(provider=name, status="error", endpoint=endpoint, error="no datasets configured")

        preferred = self.HEALTH_CHECK_DATASETS[name]
        dataset = preferred if preferred in codes else codes[0]
        try:
            await adapter.fetch(dataset, options)
        except EmptyResultError as e:
            status, error = "degraded", e.message
        except DataProviderError as e:
            status, error = "error", e.message
        else:
            status, error = "healthy", None

        if error:
            logger.warning(f"{name} health check {status}: {error}")
        return ProviderHealth(provider=name, status=status, endpoint=endpoint, dataset=dataset, error=error)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel_pending(self) -> int:
        """Cancel every in-flight fetch; returns how many were cancelled."""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        self._inflight.clear()
        if pending:
            logger.info(f"Cancelled {len(pending)} in-flight fetches")
        return len(pending)

    async def aclose(self) -> None:
        self.cancel_pending()
        if self._owns_http_client:
            await self.http_client.aclose()
