from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_EUROSTAT_INDICATORS: List[str] = [
    "cei_srm030",
    "cei_wm011",
    "cei_pc020",
    "cei_cie011",
    "cei_gsr010",
]

DEFAULT_OECD_DATASETS: List[str] = [
    "MUNW",
    "WASTE_TREAT",
    "MATERIAL_RESOURCES",
    "GREEN_GROWTH",
    "CIRCULAR_ECONOMY",
    "RECYCLING",
]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Upstream endpoints. Point these at a proxy host for CORS-bypass deployments.
    eurostat_base_url: str = Field(
        default="https://ec.europa.eu/eurostat/api/dissemination/statistics/1.0/data",
        alias="EUROSTAT_BASE_URL",
    )
    oecd_base_url: str = Field(
        default="https://stats.oecd.org/restsdmx/sdmx.ashx/GetData",
        alias="OECD_BASE_URL",
    )
    eurostat_sparql_url: str = Field(
        default="https://ec.europa.eu/eurostat/api/dissemination/sparql",
        alias="EUROSTAT_SPARQL_URL",
    )
    publications_sparql_url: str = Field(
        default="https://publications.europa.eu/webapi/rdf/sparql",
        alias="PUBLICATIONS_SPARQL_URL",
        description="EUR-Lex and EuroVoc triple store",
    )

    # Cache TTLs in seconds
    eurostat_cache_ttl: int = Field(default=30 * 60, alias="EUROSTAT_CACHE_TTL")
    oecd_cache_ttl: int = Field(default=60 * 60, alias="OECD_CACHE_TTL")
    sparql_cache_ttl: int = Field(default=30 * 60, alias="SPARQL_CACHE_TTL")

    year_cutoff: int = Field(
        default=2018,
        alias="YEAR_CUTOFF",
        description="Observations from earlier years are dropped during normalization",
    )
    eurostat_indicators: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EUROSTAT_INDICATORS),
        alias="EUROSTAT_INDICATORS",
    )
    oecd_datasets: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_OECD_DATASETS),
        alias="OECD_DATASETS",
    )

    request_timeout: float = Field(default=30.0, alias="REQUEST_TIMEOUT")
    user_agent: str = Field(default="EU-Tutka/1.0", alias="USER_AGENT")

    fallback_policy: str = Field(
        default="use_stale_if_present",
        alias="FALLBACK_POLICY",
        description="use_stale_if_present or reject",
    )
    coalesce_requests: bool = Field(
        default=True,
        alias="COALESCE_REQUESTS",
        description="Share one in-flight request between concurrent callers of the same key",
    )
    allow_placeholder_data: bool = Field(
        default=False,
        alias="ALLOW_PLACEHOLDER_DATA",
        description="Substitute labelled illustrative records when no live data is available",
    )

    page_size: int = Field(default=10, alias="PAGE_SIZE")
    allowed_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: [], alias="ALLOWED_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,  # Treat empty strings as not set
        populate_by_name=True,
    )

    @field_validator("eurostat_indicators", "oecd_datasets", "allowed_origins", mode="before")
    @classmethod
    def parse_list(cls, v):
        """Parse comma-separated strings into lists."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v or []

    @model_validator(mode="after")
    def validate_positive_values(self):
        for name in ("eurostat_cache_ttl", "oecd_cache_ttl", "sparql_cache_ttl", "page_size"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.fallback_policy not in ("use_stale_if_present", "reject"):
            raise ValueError(
                f"FALLBACK_POLICY must be 'use_stale_if_present' or 'reject', got {self.fallback_policy!r}"
            )
        return self

    @property
    def cache_ttls(self) -> dict:
        return {
            "eurostat": self.eurostat_cache_ttl,
            "oecd": self.oecd_cache_ttl,
            "sparql": self.sparql_cache_ttl,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
