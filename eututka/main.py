from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .exceptions import (
    EmptyResultError,
    EuTutkaError,
    InvalidQueryError,
    NormalizationError,
    UnknownIndicatorError,
    UpstreamError,
    get_error_response,
)
from .models import HealthResponse, KpiSummary, QueryOptions, RecordsResponse
from .services.client import DataSourceClient
from .services.filtering import ALL, FilterSpec, paginate
from .services.kpi import kpi_summary

logger = logging.getLogger("eututka")


def error_status(error: Exception) -> int:
    """HTTP status for an error that escaped the data layer."""
    if isinstance(error, UnknownIndicatorError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, InvalidQueryError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NormalizationError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, (UpstreamError, EmptyResultError)):
        # Only reaches here when no cached payload could stand in
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _split(value: Optional[str]) -> Union[str, List[str]]:
    """Comma-separated query value -> list, or the "all" wildcard."""
    if not value:
        return ALL
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or ALL


def _resolve_indicators(
    value: Optional[str],
    client: DataSourceClient,
) -> Tuple[Optional[List[str]], Optional[List[str]], Optional[List[str]]]:
    """Split "provider/code" (or bare code) selections per provider.

    Returns (None, None, None) when nothing was selected, which loads the defaults.
    """
    if not value:
        return None, None, None

    selected: Dict[str, List[str]] = {"eurostat": [], "oecd": [], "sparql": []}
    for item in (part.strip() for part in value.split(",")):
        if not item:
            continue
        if "/" in item:
            provider, code = item.split("/", 1)
            client.provider(provider).ensure_known(code)
            selected[provider].append(code)
            continue
        for provider, adapter in client.providers.items():
            if item in adapter.known_codes():
                selected[provider].append(item)
                break
        else:
            raise UnknownIndicatorError(item)

    return selected["eurostat"], selected["oecd"], selected["sparql"]


def get_client(request: Request) -> DataSourceClient:
    return request.app.state.data_client


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[DataSourceClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the data client on startup and close it on shutdown."""
        owns_client = client is None
        app.state.data_client = client or DataSourceClient(settings)
        logger.info(
            f"EU-Tutka data API ready: {len(settings.eurostat_indicators)} Eurostat indicators, "
            f"{len(settings.oecd_datasets)} OECD datasets"
        )

        yield

        if owns_client:
            await app.state.data_client.aclose()
        else:
            app.state.data_client.cancel_pending()

    app = FastAPI(title="EU-Tutka Data API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins if settings.allowed_origins else ["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EuTutkaError)
    async def eututka_error_handler(request: Request, exc: EuTutkaError) -> JSONResponse:
        code = error_status(exc)
        if code >= 500:
            logger.error(f"{request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=code, content=get_error_response(exc))

    @app.get("/api/health", response_model=HealthResponse)
    async def health(
        checkProviders: bool = False,
        data_client: DataSourceClient = Depends(get_client),
    ) -> HealthResponse:
        """Service status; with checkProviders, also one live request per provider."""
        providers = await data_client.check_providers() if checkProviders else None
        overall = "ok"
        if providers and any(health.status != "healthy" for health in providers.values()):
            overall = "degraded"
        return HealthResponse(
            status=overall,
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=settings.environment or "development",
            cache=data_client.cache.get_stats(),
            providers=providers,
        )

    @app.get("/api/indicators")
    async def indicators(data_client: DataSourceClient = Depends(get_client)) -> Dict[str, Any]:
        listing: Dict[str, List[Dict[str, Any]]] = {"eurostat": [], "oecd": []}
        for info in data_client.list_indicators():
            listing[info.provider].append(info.model_dump())
        return listing

    @app.get("/api/records", response_model=RecordsResponse)
    async def records(
        dateFrom: Optional[date] = None,
        dateTo: Optional[date] = None,
        countries: Optional[str] = None,
        topics: Optional[str] = None,
        sectors: Optional[str] = None,
        complianceFlag: str = ALL,
        q: str = "",
        page: int = Query(1, ge=1),
        pageSize: Optional[int] = Query(None, ge=1, le=100),
        indicators: Optional[str] = None,
        data_client: DataSourceClient = Depends(get_client),
    ) -> RecordsResponse:
        """Load the selected indicators, then filter and paginate the merged records."""
        eurostat, oecd, sparql = _resolve_indicators(indicators, data_client)
        filters = FilterSpec(
            dateFrom=dateFrom.isoformat() if dateFrom else None,
            dateTo=dateTo.isoformat() if dateTo else None,
            countries=_split(countries),
            topics=_split(topics),
            sectors=_split(sectors),
            complianceFlag=complianceFlag,
            searchText=q,
        )

        result = await data_client.load_all(eurostat=eurostat, oecd=oecd, sparql=sparql, filters=filters)
        return RecordsResponse(
            status=result.status,
            isLive=result.isLive,
            page=paginate(result.records, page, pageSize or settings.page_size),
            errors=result.errors,
        )

    @app.get("/api/records/{provider}/{indicator}")
    async def indicator_records(
        provider: str,
        indicator: str,
        countries: Optional[str] = None,
        startYear: Optional[int] = None,
        endYear: Optional[int] = None,
        data_client: DataSourceClient = Depends(get_client),
    ) -> Dict[str, Any]:
        selection = _split(countries)
        options = QueryOptions(
            countries=[] if selection == ALL else selection,
            startYear=startYear,
            endYear=endYear,
        )
        loaded = await data_client.load_indicator(provider, indicator, options)
        return {
            "provider": provider,
            "indicator": indicator,
            "count": len(loaded),
            "records": [record.model_dump() for record in loaded],
        }

    @app.get("/api/kpis/{provider}/{indicator}")
    async def indicator_kpis(
        provider: str,
        indicator: str,
        countries: Optional[str] = None,
        data_client: DataSourceClient = Depends(get_client),
    ) -> Dict[str, Any]:
        selection = _split(countries)
        options = QueryOptions(countries=[] if selection == ALL else selection)
        loaded = await data_client.load_indicator(provider, indicator, options)
        summaries: List[KpiSummary] = kpi_summary(loaded)
        return {
            "provider": provider,
            "indicator": indicator,
            "kpis": [summary.model_dump() for summary in summaries],
        }

    @app.get("/api/concepts")
    async def concepts(
        q: str = Query(..., min_length=1, max_length=200),
        lang: str = Query("en", pattern=r"^[a-zA-Z]{2,3}$"),
        data_client: DataSourceClient = Depends(get_client),
    ) -> Dict[str, Any]:
        found = await data_client.search_concepts(q, lang)
        return {"query": q, "language": lang, "concepts": [concept.model_dump() for concept in found]}

    @app.get("/api/cache/stats")
    async def cache_stats(data_client: DataSourceClient = Depends(get_client)) -> Dict[str, Any]:
        return data_client.cache.get_stats()

    @app.post("/api/cache/clear")
    async def cache_clear(data_client: DataSourceClient = Depends(get_client)) -> Dict[str, str]:
        data_client.cache.clear()
        logger.info("Fetch cache cleared")
        return {"message": "Cache cleared"}

    return app


app = create_app()
