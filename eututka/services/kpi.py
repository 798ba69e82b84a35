"""Headline figures (latest value, change, average) per indicator series."""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from ..models import KpiSummary, UniformRecord
from .formatting import format_value


def _change_label(change: float) -> str:
    if change == 0:
        return "0%"
    return f"{'+' if change > 0 else ''}{change:.1f}%"


def _trend(change: float) -> str:
    if change > 0:
        return "positive"
    if change < 0:
        return "negative"
    return "neutral"


def kpi_summary(records: Iterable[UniformRecord]) -> List[KpiSummary]:
    """Summarize each (indicator, country) series.

    Records without a value are skipped. The change compares the two most
    recent observations; a single observation, or a zero previous value,
    yields no change.
    """
    series: Dict[Tuple[str, str], List[UniformRecord]] = defaultdict(list)
    for record in records:
        if record.value is not None:
            series[(record.indicatorCode, record.country)].append(record)

    summaries = []
    for (code, country), points in sorted(series.items()):
        points.sort(key=lambda record: record.date)
        values = [record.value for record in points]
        latest = values[-1]
        previous = values[-2] if len(values) > 1 else latest
        change = (latest - previous) / previous * 100 if previous != 0 else 0.0
        average = sum(values) / len(values)

        summaries.append(KpiSummary(
            indicatorCode=code,
            country=country,
            latest=latest,
            previous=previous,
            average=average,
            changePercent=round(change, 4),
            change=_change_label(change),
            trend=_trend(change),
            latestDate=points[-1].date,
            formattedLatest=format_value(latest, code),
            formattedAverage=format_value(average, code),
            observations=len(values),
        ))
    return summaries
