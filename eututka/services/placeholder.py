"""
Illustrative placeholder records

Used only when ``allow_placeholder_data`` is enabled and a load produced no
data at all. Every record is marked ``provenance="placeholder"``, carries no
source link, and has its title prefixed with ``[Illustrative]`` so it can
never be mistaken for live data.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from ..models import IndicatorRef, UniformRecord
from ..utils.geographies import country_name
from .formatting import (
    OECD_TOPICS,
    compliance_flag,
    format_value,
    indicator_name,
    topic_for_indicator,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "[Illustrative]"

DEFAULT_COUNTRIES: Sequence[str] = ("FI", "SE", "DE", "EU27_2020")
DEFAULT_YEARS: Sequence[int] = (2020, 2021, 2022)


def _illustrative_value(code: str, country_idx: int, year_idx: int) -> float:
    # Fixed, obviously synthetic progression; never derived from real data
    if code == "cei_pc020":
        return 10.0 + country_idx + 0.5 * year_idx
    if code == "cei_gsr010":
        return 100.0 + 10 * country_idx + 5 * year_idx
    return round(0.1 + 0.1 * country_idx + 0.05 * year_idx, 2)


def placeholder_records(
    indicators: Sequence[IndicatorRef],
    countries: Sequence[str] = DEFAULT_COUNTRIES,
    years: Sequence[int] = DEFAULT_YEARS,
) -> List[UniformRecord]:
    records: List[UniformRecord] = []

    for ref in indicators:
        if ref.provider == "sparql":
            continue

        name = indicator_name(ref.code)
        if ref.provider == "oecd":
            topic, topic_label = OECD_TOPICS.get(ref.code, ("environment", name))
            sector, source = "environment", "oecd"
        else:
            topic, topic_label = topic_for_indicator(ref.code), name
            sector, source = "circular-economy", "eurostat"

        for country_idx, country in enumerate(countries):
            place = country_name(country)
            for year_idx, year in enumerate(years):
                value = _illustrative_value(ref.code, country_idx, year_idx)
                formatted = format_value(value, ref.code)
                records.append(
                    UniformRecord(
                        date=f"{year}-06-15",
                        country=country,
                        countryName=place,
                        indicatorCode=ref.code,
                        indicatorName=name,
                        title=f"{PLACEHOLDER_PREFIX} {place} ({year}): {name} {formatted}",
                        topic=topic,
                        topicName=topic_label,
                        sector=sector,
                        value=value,
                        formattedValue=formatted,
                        complianceFlag=compliance_flag(value, ref.code),
                        source=source,
                        sourceUrl=None,
                        provenance="placeholder",
                    )
                )

    logger.warning(f"Substituted {len(records)} illustrative records for {len(indicators)} indicators")
    return records
