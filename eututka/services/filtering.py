"""Result filter and paginator for the records table."""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, field_validator

from ..models import Page, UniformRecord

ALL = "all"

Selection = Union[str, List[str]]


class FilterSpec(BaseModel):
    """Active filters; every field defaults to the "all" wildcard."""

    dateFrom: Optional[str] = None
    dateTo: Optional[str] = None
    countries: Selection = ALL
    topics: Selection = ALL
    sectors: Selection = ALL
    complianceFlag: str = ALL
    searchText: str = ""

    @field_validator("countries", "topics", "sectors", mode="before")
    @classmethod
    def collapse_wildcard(cls, v):
        """A list containing "all" (or no list at all) means no filter."""
        if v is None:
            return ALL
        if isinstance(v, str):
            return ALL if v == ALL else [v]
        values = [str(item) for item in v]
        if not values or ALL in values:
            return ALL
        return values

    @field_validator("dateFrom", "dateTo", mode="before")
    @classmethod
    def iso_date(cls, v):
        """Bounds are compared as strings, so only full YYYY-MM-DD dates are kept."""
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v.date().isoformat()
        if isinstance(v, date):
            return v.isoformat()
        try:
            return date.fromisoformat(str(v)).isoformat()
        except ValueError:
            raise ValueError(f"must be YYYY-MM-DD, got {v!r}") from None

    @field_validator("complianceFlag", mode="before")
    @classmethod
    def default_compliance(cls, v):
        return v or ALL


def _selected(value: str, selection: Selection) -> bool:
    return selection == ALL or value in selection


def matches(record: UniformRecord, spec: FilterSpec) -> bool:
    # ISO dates compare correctly as strings
    if spec.dateFrom and record.date < spec.dateFrom:
        return False
    if spec.dateTo and record.date > spec.dateTo:
        return False
    if not _selected(record.country, spec.countries):
        return False
    if not _selected(record.topic, spec.topics):
        return False
    if not _selected(record.sector, spec.sectors):
        return False
    if spec.complianceFlag != ALL and record.complianceFlag != spec.complianceFlag:
        return False
    needle = spec.searchText.strip().lower()
    if needle and needle not in record.search_text():
        return False
    return True


def apply_filters(records: Iterable[UniformRecord], spec: Optional[FilterSpec] = None) -> List[UniformRecord]:
    """Keep the records satisfying every active filter, in their original order."""
    if spec is None:
        return list(records)
    return [record for record in records if matches(record, spec)]


def paginate(records: Sequence[UniformRecord], page: int = 1, page_size: int = 10) -> Page:
    """Slice one 1-based page; out-of-range pages clamp to the first or last page."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    total = len(records)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size

    return Page(
        items=list(records[start:start + page_size]),
        page=page,
        pageSize=page_size,
        total=total,
        totalPages=total_pages,
    )
