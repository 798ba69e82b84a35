from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Union

from ..models import FetchResult, OecdPayload, ProviderMeta, QueryOptions
from .base import BaseProvider

logger = logging.getLogger(__name__)


class OECDProvider(BaseProvider):
    """OECD SDMX-JSON provider for the environmental datasets.

    Uses the legacy stats.oecd.org REST path:
    GetData/{dataset}/all/{COUNTRY+COUNTRY}/all?startTime=..&endTime=..&format=json
    """

    # Dataset names that differ on the wire
    WIRE_CODES: Dict[str, str] = {
        "CIRCULAR_ECONOMY": "CE",
    }

    DEFAULT_COUNTRIES: List[str] = ["OECD", "EU27_2020"]
    DEFAULT_START_YEAR = 2018
    DEFAULT_END_YEAR = 2022

    DATA_EXPLORER_URL = "https://data-explorer.oecd.org/?q={dataset}"

    @property
    def provider_name(self) -> str:
        return "oecd"

    def known_codes(self) -> List[str]:
        return list(self.settings.oecd_datasets)

    @classmethod
    def wire_code(cls, dataset: str) -> str:
        return cls.WIRE_CODES.get(dataset, dataset)

    @classmethod
    def source_url(cls, dataset: str) -> str:
        return cls.DATA_EXPLORER_URL.format(dataset=cls.wire_code(dataset))

    def build_url(self, dataset: str, options: QueryOptions) -> str:
        countries = options.countries or self.DEFAULT_COUNTRIES
        filter_expr = f"all/{'+'.join(countries)}/all"
        return f"{self.settings.oecd_base_url.rstrip('/')}/{self.wire_code(dataset)}/{filter_expr}"

    def build_params(self, options: QueryOptions) -> Dict[str, str]:
        start = options.startYear if options.startYear is not None else self.DEFAULT_START_YEAR
        end = options.endYear if options.endYear is not None else self.DEFAULT_END_YEAR
        params = {
            "startTime": str(start),
            "endTime": str(end),
            "format": "json",
        }
        params.update(options.extra)
        return params

    async def fetch(self, dataset: str, options: Optional[QueryOptions] = None) -> FetchResult:
        self.ensure_known(dataset)
        options = options or QueryOptions()

        url = self.build_url(dataset, options)
        body = await self._get(url, dataset, params=self.build_params(options))
        self._require_fields(body, dataset, ("dataSets",))

        return FetchResult(
            raw=OecdPayload(body=body),
            providerMeta=ProviderMeta(
                provider="oecd",
                dataset=dataset,
                url=url,
                params=options.cache_params(),
            ),
        )

    async def fetch_many(
        self,
        datasets: Sequence[str],
        options: Optional[QueryOptions] = None,
        concurrent: bool = True,
    ) -> Dict[str, Union[FetchResult, Exception]]:
        """Fetch several datasets, keyed by dataset code.

        Failures are returned in place of the result so one dataset cannot
        sink the batch. ``concurrent=False`` issues the requests one after
        another.
        """
        results: Dict[str, Union[FetchResult, Exception]] = {}

        if concurrent:
            outcomes = await asyncio.gather(
                *(self.fetch(dataset, options) for dataset in datasets),
                return_exceptions=True,
            )
            for dataset, outcome in zip(datasets, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.warning(f"OECD dataset {dataset} failed: {outcome}")
                results[dataset] = outcome
            return results

        for dataset in datasets:
            try:
                results[dataset] = await self.fetch(dataset, options)
            except Exception as e:
                logger.warning(f"OECD dataset {dataset} failed: {e}")
                results[dataset] = e
        return results
