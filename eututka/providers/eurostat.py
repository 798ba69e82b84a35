from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..models import EurostatPayload, FetchResult, ProviderMeta, QueryOptions
from .base import BaseProvider

logger = logging.getLogger(__name__)


class EurostatProvider(BaseProvider):
    """Eurostat dissemination API provider for the circular economy indicators.

    Returns the JSON-stat body untouched; the normalizer does the cube decoding.
    """

    DATA_BROWSER_URL = "https://ec.europa.eu/eurostat/databrowser/view/{dataset}/default/table?lang=en"

    @property
    def provider_name(self) -> str:
        return "eurostat"

    def known_codes(self) -> List[str]:
        return list(self.settings.eurostat_indicators)

    def dataset_url(self, dataset: str) -> str:
        return f"{self.settings.eurostat_base_url.rstrip('/')}/{dataset}"

    @classmethod
    def source_url(cls, dataset: str) -> str:
        """Deep link to the dataset in the Eurostat data browser."""
        return cls.DATA_BROWSER_URL.format(dataset=dataset)

    def build_params(self, options: QueryOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {"format": "JSON", "lang": "EN"}
        if options.countries:
            # httpx repeats list values: geo=FI&geo=DE
            params["geo"] = list(options.countries)
        if options.startYear is not None:
            params["sinceTimePeriod"] = str(options.startYear)
        if options.endYear is not None:
            params["untilTimePeriod"] = str(options.endYear)
        params.update(options.extra)
        return params

    async def fetch(self, dataset: str, options: Optional[QueryOptions] = None) -> FetchResult:
        self.ensure_known(dataset)
        options = options or QueryOptions()

        url = self.dataset_url(dataset)
        params = self.build_params(options)
        body = await self._get(url, dataset, params=params)
        self._require_fields(body, dataset, ("value", "dimension"))

        return FetchResult(
            raw=EurostatPayload(body=body),
            providerMeta=ProviderMeta(
                provider="eurostat",
                dataset=dataset,
                url=url,
                params=options.cache_params(),
            ),
        )
