"""
Response normalizer

Turns a provider FetchResult into an ordered list of UniformRecord.

Eurostat bodies are JSON-stat cubes: ``value`` maps a linear index (or a
colon-delimited index tuple) to an observation, and ``id``/``size`` give the
dimension order and extent. Linear indices decompose row-major, with the
last dimension (time) varying fastest.

OECD bodies are SDMX-JSON: ``dataSets[0].observations`` maps colon-delimited
keys onto ``structure.dimensions.observation`` by position. Series-keyed
bodies (``dataSets[0].series``) are also read; the series key maps onto
``structure.dimensions.series``.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..exceptions import NormalizationError
from ..models import (
    Concept,
    EurostatPayload,
    FetchResult,
    OecdPayload,
    SparqlPayload,
    UniformRecord,
)
from ..providers.eurostat import EurostatProvider
from ..providers.oecd import OECDProvider
from ..utils.geographies import canonicalize_country_code, country_name
from .formatting import (
    OECD_TOPICS,
    compliance_flag,
    detect_sector,
    detect_topic,
    format_value,
    indicator_name,
    topic_for_indicator,
    topic_name,
)

logger = logging.getLogger(__name__)

DEFAULT_YEAR_CUTOFF = 2018

EUROSTAT_SECTOR = "circular-economy"
OECD_SECTOR = "environment"

GEO_DIMENSIONS = ("geo",)
TIME_DIMENSIONS = ("time", "TIME_PERIOD")
OECD_COUNTRY_DIMENSIONS = ("REF_AREA", "COU", "LOCATION", "COUNTRY", "GEO")
OECD_TIME_DIMENSIONS = ("TIME_PERIOD", "TIME", "YEAR")

_YEAR = re.compile(r"^(\d{4})$")
_MONTH = re.compile(r"^(\d{4})-?M?(\d{2})$")
_QUARTER = re.compile(r"^(\d{4})-?Q([1-4])$")
_DAY = re.compile(r"^(\d{4}-\d{2}-\d{2})")
_GEO_URI = re.compile(r"geo/([A-Z]{2})")


def period_to_date(period: Any) -> Optional[str]:
    """Map a period label to the ISO date of its middle.

    ``2022`` -> ``2022-06-15``, ``2022-03``/``2022M03`` -> ``2022-03-15``,
    ``2022-Q2``/``2022Q2`` -> ``2022-05-15``. Full dates (with or without a
    time part) are truncated to ``YYYY-MM-DD``. Anything else gives None.
    """
    if period is None:
        return None
    label = str(period).strip()

    match = _YEAR.match(label)
    if match:
        return f"{match.group(1)}-06-15"

    match = _QUARTER.match(label)
    if match:
        month = (int(match.group(2)) - 1) * 3 + 2
        return f"{match.group(1)}-{month:02d}-15"

    match = _MONTH.match(label)
    if match:
        if not 1 <= int(match.group(2)) <= 12:
            return None
        return f"{match.group(1)}-{match.group(2)}-15"

    match = _DAY.match(label)
    if match:
        try:
            return date.fromisoformat(match.group(1)).isoformat()
        except ValueError:
            return None

    return None


def _finite_number(value: Any) -> Optional[float]:
    """Coerce an observation to float; None when missing or not finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def extract_country_code(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    match = _GEO_URI.search(uri)
    return match.group(1) if match else None


class ResponseNormalizer:
    """Dispatches a FetchResult to the parser for its payload variant."""

    def __init__(self, year_cutoff: int = DEFAULT_YEAR_CUTOFF) -> None:
        self.year_cutoff = year_cutoff

    def normalize(
        self,
        result: FetchResult,
        indicator_code: Optional[str] = None,
        provenance: str = "live",
    ) -> List[UniformRecord]:
        code = indicator_code or result.providerMeta.dataset
        raw = result.raw

        if isinstance(raw, EurostatPayload):
            records = self.normalize_eurostat(raw.body, code, provenance)
        elif isinstance(raw, OecdPayload):
            records = self.normalize_oecd(raw.body, code, provenance)
        elif isinstance(raw, SparqlPayload):
            records = self.normalize_sparql(raw, provenance)
        else:
            raise NormalizationError(f"Unsupported payload: {type(raw).__name__}")

        logger.info(f"Normalized {len(records)} records from {result.providerMeta.provider}/{code}")
        return records

    # ------------------------------------------------------------------
    # Eurostat
    # ------------------------------------------------------------------

    @staticmethod
    def _category_index(body: Dict[str, Any], dimension: str) -> Optional[Dict[int, str]]:
        """Position -> category code for one dimension, or None if absent."""
        dim = (body.get("dimension") or {}).get(dimension)
        if not isinstance(dim, dict):
            return None
        index = (dim.get("category") or {}).get("index")
        if index is None:
            return None
        if isinstance(index, list):
            return {pos: str(code) for pos, code in enumerate(index)}
        if isinstance(index, dict):
            try:
                return {int(pos): str(code) for code, pos in index.items()}
            except (TypeError, ValueError) as e:
                raise NormalizationError(
                    f"Dimension {dimension} has a non-integer category index",
                    "eurostat",
                ) from e
        raise NormalizationError(f"Dimension {dimension} has an unreadable category index", "eurostat")

    def _eurostat_shape(self, body: Dict[str, Any], code: str) -> Tuple[List[str], List[int]]:
        dimension = body.get("dimension") or {}
        ids = body.get("id") or dimension.get("id")
        sizes = body.get("size") or dimension.get("size")

        if not ids or not sizes:
            geo = self._category_index(body, "geo") or {}
            time = self._category_index(body, "time") or {}
            ids = ["freq", "unit", "geo", "time"]
            sizes = [1, 1, len(geo), len(time)]

        if len(ids) != len(sizes):
            raise NormalizationError(
                f"{code}: {len(ids)} dimension ids but {len(sizes)} sizes",
                "eurostat",
                details={"id": list(ids), "size": list(sizes)},
            )

        try:
            sizes = [int(size) for size in sizes]
        except (TypeError, ValueError) as e:
            raise NormalizationError(f"{code}: non-integer dimension size", "eurostat") from e

        for dim_id, size in zip(ids, sizes):
            categories = self._category_index(body, dim_id)
            if categories is not None and len(categories) != size:
                raise NormalizationError(
                    f"{code}: dimension {dim_id} declares size {size} but has {len(categories)} categories",
                    "eurostat",
                    details={"dimension": dim_id},
                )
        return list(ids), sizes

    @staticmethod
    def _decompose(linear: int, sizes: Sequence[int]) -> List[int]:
        indices = [0] * len(sizes)
        for pos in range(len(sizes) - 1, -1, -1):
            indices[pos] = linear % sizes[pos]
            linear //= sizes[pos]
        return indices

    def _eurostat_indices(self, key: str, sizes: Sequence[int], code: str) -> List[int]:
        try:
            if ":" in key:
                indices = [int(part) for part in key.split(":")]
                if len(indices) != len(sizes) or any(
                    not 0 <= idx < size for idx, size in zip(indices, sizes)
                ):
                    raise NormalizationError(
                        f"{code}: observation key {key} does not fit dimensions {list(sizes)}",
                        "eurostat",
                    )
                return indices

            linear = int(key)
        except ValueError as e:
            raise NormalizationError(f"{code}: unreadable observation key {key!r}", "eurostat") from e

        if not 0 <= linear < math.prod(sizes):
            raise NormalizationError(
                f"{code}: linear index {linear} outside cube {list(sizes)}",
                "eurostat",
            )
        return self._decompose(linear, sizes)

    def _position(self, ids: Sequence[str], candidates: Sequence[str], code: str, provider: str) -> int:
        for name in candidates:
            if name in ids:
                return list(ids).index(name)
        raise NormalizationError(
            f"{code}: no {'/'.join(candidates)} dimension in {list(ids)}",
            provider,
        )

    def normalize_eurostat(
        self,
        body: Dict[str, Any],
        code: str,
        provenance: str = "live",
    ) -> List[UniformRecord]:
        values = body.get("value") or {}
        ids, sizes = self._eurostat_shape(body, code)
        geo_pos = self._position(ids, GEO_DIMENSIONS, code, "eurostat")
        time_pos = self._position(ids, TIME_DIMENSIONS, code, "eurostat")
        geo_labels = self._category_index(body, ids[geo_pos]) or {}
        time_labels = self._category_index(body, ids[time_pos]) or {}

        # Eurostat may send value as a dense list
        if isinstance(values, list):
            values = {str(i): v for i, v in enumerate(values)}

        observations: List[Tuple[List[int], Any]] = []
        for key, raw_value in values.items():
            indices = self._eurostat_indices(str(key), sizes, code)
            observations.append((indices, raw_value))
        observations.sort(key=lambda item: item[0])

        name = indicator_name(code)
        records: List[UniformRecord] = []
        dropped = 0
        for indices, raw_value in observations:
            if raw_value is None:
                continue

            geo = geo_labels.get(indices[geo_pos])
            period = time_labels.get(indices[time_pos])
            if geo is None or period is None:
                raise NormalizationError(
                    f"{code}: index {indices} has no geo/time category",
                    "eurostat",
                )

            value = _finite_number(raw_value)
            obs_date = period_to_date(period)
            if value is None or obs_date is None:
                dropped += 1
                continue
            if int(obs_date[:4]) < self.year_cutoff:
                continue

            place = country_name(geo)
            formatted = format_value(value, code)
            records.append(
                UniformRecord(
                    date=obs_date,
                    country=geo,
                    countryName=place,
                    indicatorCode=code,
                    indicatorName=name,
                    title=f"{place} ({period}): {name} {formatted}",
                    topic=topic_for_indicator(code),
                    topicName=name,
                    sector=EUROSTAT_SECTOR,
                    value=value,
                    formattedValue=formatted,
                    complianceFlag=compliance_flag(value, code),
                    source="eurostat",
                    sourceUrl=EurostatProvider.source_url(code),
                    provenance=provenance,
                )
            )

        if dropped:
            logger.warning(f"Dropped {dropped} unparseable observations from eurostat/{code}")
        return records

    # ------------------------------------------------------------------
    # OECD
    # ------------------------------------------------------------------

    @staticmethod
    def _dimension_values(dimensions: Sequence[Dict[str, Any]]) -> List[List[str]]:
        return [
            [str(entry.get("id")) for entry in (dim.get("values") or [])]
            for dim in dimensions
        ]

    def _oecd_observations(
        self,
        body: Dict[str, Any],
        code: str,
    ) -> Iterator[Tuple[Dict[str, str], Any]]:
        """Yield (dimension id -> category id, raw observation) pairs."""
        data_sets = body.get("dataSets") or []
        if not data_sets:
            return
        data_set = data_sets[0] or {}
        structure = (body.get("structure") or {}).get("dimensions") or {}
        obs_dims = structure.get("observation") or []
        series_dims = structure.get("series") or []

        obs_ids = [str(dim.get("id")) for dim in obs_dims]
        obs_values = self._dimension_values(obs_dims)
        series_ids = [str(dim.get("id")) for dim in series_dims]
        series_values = self._dimension_values(series_dims)

        def resolve(key: str, ids: List[str], values: List[List[str]]) -> Dict[str, str]:
            if key == "" and not ids:
                return {}
            try:
                positions = [int(part) for part in key.split(":")]
            except ValueError as e:
                raise NormalizationError(f"{code}: unreadable observation key {key!r}", "oecd") from e
            if len(positions) != len(ids):
                raise NormalizationError(
                    f"{code}: key {key} has {len(positions)} parts for {len(ids)} dimensions",
                    "oecd",
                )
            resolved = {}
            for dim_id, pos, options in zip(ids, positions, values):
                if not 0 <= pos < len(options):
                    raise NormalizationError(f"{code}: key {key} has no category for {dim_id}", "oecd")
                resolved[dim_id] = options[pos]
            return resolved

        if "series" in data_set:
            for series_key, series in (data_set.get("series") or {}).items():
                base = resolve(str(series_key), series_ids, series_values)
                for obs_key, obs in ((series or {}).get("observations") or {}).items():
                    yield {**base, **resolve(str(obs_key), obs_ids, obs_values)}, obs
        else:
            for obs_key, obs in (data_set.get("observations") or {}).items():
                yield resolve(str(obs_key), obs_ids, obs_values), obs

    def normalize_oecd(
        self,
        body: Dict[str, Any],
        code: str,
        provenance: str = "live",
    ) -> List[UniformRecord]:
        structure = (body.get("structure") or {}).get("dimensions") or {}
        dim_ids = [
            str(dim.get("id"))
            for dim in (structure.get("series") or []) + (structure.get("observation") or [])
        ]
        country_dim = dim_ids[self._position(dim_ids, OECD_COUNTRY_DIMENSIONS, code, "oecd")]
        time_dim = dim_ids[self._position(dim_ids, OECD_TIME_DIMENSIONS, code, "oecd")]

        name = indicator_name(code)
        topic, topic_label = OECD_TOPICS.get(code, ("environment", name))
        records: List[UniformRecord] = []
        dropped = 0

        for categories, obs in self._oecd_observations(body, code):
            raw_value = obs[0] if isinstance(obs, list) and obs else obs
            if raw_value is None or isinstance(raw_value, list):
                continue

            value = _finite_number(raw_value)
            period = categories.get(time_dim)
            obs_date = period_to_date(period)
            country = canonicalize_country_code(categories.get(country_dim))
            if value is None or obs_date is None or not country:
                dropped += 1
                continue
            if int(obs_date[:4]) < self.year_cutoff:
                continue

            place = country_name(country)
            formatted = format_value(value, code)
            records.append(
                UniformRecord(
                    date=obs_date,
                    country=country,
                    countryName=place,
                    indicatorCode=code,
                    indicatorName=name,
                    title=f"{place} ({code}): {formatted}",
                    topic=topic,
                    topicName=topic_label,
                    sector=OECD_SECTOR,
                    value=value,
                    formattedValue=formatted,
                    complianceFlag=compliance_flag(value, code),
                    source="oecd",
                    sourceUrl=OECDProvider.source_url(code),
                    provenance=provenance,
                )
            )

        if dropped:
            logger.warning(f"Dropped {dropped} unparseable observations from oecd/{code}")
        return records

    # ------------------------------------------------------------------
    # SPARQL
    # ------------------------------------------------------------------

    @staticmethod
    def _binding(binding: Dict[str, Any], name: str) -> Optional[str]:
        cell = binding.get(name)
        if isinstance(cell, dict):
            value = cell.get("value")
            return str(value) if value is not None else None
        return None

    def normalize_sparql(self, payload: SparqlPayload, provenance: str = "live") -> List[UniformRecord]:
        if payload.template == "eurovoc_concepts":
            raise NormalizationError(
                "EuroVoc results are concepts, not records; use normalize_concepts()",
                "sparql",
            )

        is_regulation = payload.template == "eurlex_regulations"
        uri_field = "regulation" if is_regulation else "dataset"
        fallback_title = "Unknown Regulation" if is_regulation else "Untitled"
        records: List[UniformRecord] = []
        dropped = 0

        for binding in payload.bindings:
            obs_date = period_to_date(self._binding(binding, "date"))
            if obs_date is None:
                dropped += 1
                continue

            title = self._binding(binding, "title") or fallback_title
            country = extract_country_code(self._binding(binding, "country")) or "EU"
            topic = detect_topic(title)
            records.append(
                UniformRecord(
                    date=obs_date,
                    country=country,
                    countryName=country_name(country),
                    indicatorCode=payload.template,
                    indicatorName=indicator_name(payload.template),
                    title=title,
                    topic=topic,
                    topicName=topic_name(topic),
                    sector=detect_sector(title),
                    value=None,
                    formattedValue="",
                    complianceFlag="compliant",
                    source="eurlex" if is_regulation else "eurostat",
                    sourceUrl=self._binding(binding, uri_field),
                    provenance=provenance,
                )
            )

        if dropped:
            logger.warning(f"Dropped {dropped} bindings without a date from {payload.template}")
        return records

    def normalize_concepts(self, result: FetchResult) -> List[Concept]:
        raw = result.raw
        if not isinstance(raw, SparqlPayload) or raw.template != "eurovoc_concepts":
            raise NormalizationError("Expected a eurovoc_concepts SPARQL payload", "sparql")

        concepts: List[Concept] = []
        for binding in raw.bindings:
            uri = self._binding(binding, "concept")
            label = self._binding(binding, "prefLabel")
            if not uri or not label:
                continue
            concepts.append(
                Concept(
                    uri=uri,
                    label=label,
                    broader=self._binding(binding, "broader"),
                    related=self._binding(binding, "related"),
                )
            )
        return concepts
