from __future__ import annotations

import math
from datetime import date as _date
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


ProviderName = Literal["eurostat", "oecd", "sparql"]
RecordSource = Literal["eurostat", "oecd", "eurlex"]
Provenance = Literal["live", "stale", "placeholder"]
ComplianceFlag = Literal["compliant", "pending"]
CacheState = Literal["hit", "miss", "stale", "coalesced"]


class UniformRecord(BaseModel):
    """Normalized output unit shared by every provider.

    Records are immutable: they are built once per fetch cycle and discarded
    with the cache entry that produced them.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    country: str
    countryName: str
    indicatorCode: str
    indicatorName: str
    title: str
    topic: str
    topicName: str
    sector: str
    value: Optional[float] = None
    formattedValue: str = ""
    complianceFlag: ComplianceFlag = "compliant"
    source: RecordSource
    sourceUrl: Optional[str] = None
    provenance: Provenance = "live"

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            _date.fromisoformat(v)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}") from exc
        if len(v) != 10:
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}")
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    @property
    def year(self) -> int:
        return int(self.date[:4])

    def search_text(self) -> str:
        """Concatenation matched by free-text search."""
        return " ".join([self.title, self.countryName, self.indicatorName, self.topicName]).lower()


class ProviderMeta(BaseModel):
    provider: ProviderName
    dataset: str
    url: str
    fetchedAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stale: bool = False
    cache: CacheState = "miss"
    params: Dict[str, Any] = Field(default_factory=dict)


class EurostatPayload(BaseModel):
    """Eurostat JSON-stat / SDMX-JSON body: value, dimension, id, size, extension."""

    kind: Literal["eurostat"] = "eurostat"
    body: Dict[str, Any]


class OecdPayload(BaseModel):
    """OECD SDMX-JSON body: dataSets[].observations and structure.dimensions."""

    kind: Literal["oecd"] = "oecd"
    body: Dict[str, Any]


class SparqlPayload(BaseModel):
    """SPARQL JSON results body produced by a named query template."""

    kind: Literal["sparql"] = "sparql"
    template: str
    body: Dict[str, Any]

    @property
    def bindings(self) -> List[Dict[str, Any]]:
        return (self.body.get("results") or {}).get("bindings") or []


RawPayload = Annotated[
    Union[EurostatPayload, OecdPayload, SparqlPayload],
    Field(discriminator="kind"),
]


class FetchResult(BaseModel):
    """Identical return shape for every source adapter."""

    raw: RawPayload
    providerMeta: ProviderMeta

    def as_stale(self) -> "FetchResult":
        meta = self.providerMeta.model_copy(update={"stale": True, "cache": "stale"})
        return self.model_copy(update={"providerMeta": meta})

    def with_cache_state(self, state: CacheState) -> "FetchResult":
        meta = self.providerMeta.model_copy(update={"cache": state})
        return self.model_copy(update={"providerMeta": meta})


class QueryOptions(BaseModel):
    """Optional query parameters shared by the adapters."""

    countries: List[str] = Field(default_factory=list)
    startYear: Optional[int] = None
    endYear: Optional[int] = None
    extra: Dict[str, str] = Field(default_factory=dict)

    def cache_params(self) -> Dict[str, Any]:
        return {
            "countries": sorted(self.countries),
            "startYear": self.startYear,
            "endYear": self.endYear,
            "extra": dict(sorted(self.extra.items())),
        }


class IndicatorRef(BaseModel):
    provider: ProviderName
    code: str


class IndicatorInfo(BaseModel):
    provider: ProviderName
    code: str
    name: str
    unit: Optional[str] = None
    topic: str


class IndicatorLoad(BaseModel):
    """Outcome of loading one indicator inside a fan-out."""

    provider: ProviderName
    indicator: str
    records: int = 0
    provenance: Optional[Provenance] = None
    error: Optional[Dict[str, Any]] = None


class Page(BaseModel):
    items: List[UniformRecord]
    page: int
    pageSize: int
    total: int
    totalPages: int


class LoadResult(BaseModel):
    records: List[UniformRecord] = Field(default_factory=list)
    status: Literal["ok", "partial", "no_data"] = "ok"
    isLive: bool = True
    loads: List[IndicatorLoad] = Field(default_factory=list)

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [load.error for load in self.loads if load.error]


class Concept(BaseModel):
    """EuroVoc thesaurus concept."""

    uri: str
    label: str
    broader: Optional[str] = None
    related: Optional[str] = None


class RecordsResponse(BaseModel):
    status: Literal["ok", "partial", "no_data"]
    isLive: bool
    page: Page
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class KpiSummary(BaseModel):
    """Headline figures for one indicator series (one country)."""

    indicatorCode: str
    country: str
    latest: float
    previous: float
    average: float
    changePercent: float
    change: str
    trend: Literal["positive", "negative", "neutral"]
    latestDate: str
    formattedLatest: str
    formattedAverage: str
    observations: int


class ProviderHealth(BaseModel):
    provider: ProviderName
    status: Literal["healthy", "degraded", "error"]
    endpoint: str
    checkedAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    dataset: Optional[str] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    cache: Dict[str, Any]
    providers: Optional[Dict[str, ProviderHealth]] = None
