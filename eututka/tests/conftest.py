"""
Shared pytest fixtures for the EU-Tutka tests.

No test touches the network: providers are driven through MockAsyncClient.
"""
from __future__ import annotations

import os
from typing import Any, Dict, List

import pytest

os.environ.setdefault("ENVIRONMENT", "test")

from eututka.config import Settings  # noqa: E402
from eututka.models import UniformRecord  # noqa: E402
from eututka.tests.utils import eurostat_body, make_settings  # noqa: E402


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_environment():
    """Keep provider settings from the host environment out of the tests."""
    old_env = os.environ.copy()
    os.environ["ENVIRONMENT"] = "test"
    for key in ("EUROSTAT_INDICATORS", "OECD_DATASETS", "FALLBACK_POLICY", "ALLOW_PLACEHOLDER_DATA"):
        os.environ.pop(key, None)
    yield
    os.environ.clear()
    os.environ.update(old_env)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# ============================================================================
# Data Fixtures
# ============================================================================

@pytest.fixture
def wm011_body() -> Dict[str, Any]:
    """Municipal waste recycling for FI/DE over 2022-2023."""
    return eurostat_body(
        geo=["FI", "DE"],
        time=["2022", "2023"],
        values={"0": 0.45, "1": 0.50, "2": 0.60, "3": 0.65},
    )


def _record(**overrides: Any) -> UniformRecord:
    fields = {
        "date": "2022-06-15",
        "country": "FI",
        "countryName": "Finland",
        "indicatorCode": "cei_wm011",
        "indicatorName": "Municipal Waste Recycling",
        "title": "Finland (2022): Municipal Waste Recycling 45.0%",
        "topic": "waste",
        "topicName": "Municipal Waste Recycling",
        "sector": "circular-economy",
        "value": 0.45,
        "formattedValue": "45.0%",
        "complianceFlag": "pending",
        "source": "eurostat",
    }
    fields.update(overrides)
    return UniformRecord(**fields)


@pytest.fixture
def sample_records() -> List[UniformRecord]:
    return [
        _record(),
        _record(date="2023-06-15", value=0.5, formattedValue="50.0%",
                title="Finland (2023): Municipal Waste Recycling 50.0%"),
        _record(country="DE", countryName="Germany", value=0.6, formattedValue="60.0%",
                complianceFlag="compliant", title="Germany (2022): Municipal Waste Recycling 60.0%"),
        _record(country="SE", countryName="Sweden", indicatorCode="cei_srm030",
                indicatorName="Circular Material Use Rate", topic="material",
                topicName="Circular Material Use Rate", date="2021-06-15", value=0.07,
                formattedValue="7.0%", title="Sweden (2021): Circular Material Use Rate 7.0%"),
        _record(country="OECD", countryName="OECD Average", indicatorCode="MUNW",
                indicatorName="Municipal Waste", topic="waste", topicName="Municipal Waste",
                sector="environment", source="oecd", value=520.0, formattedValue="520.00",
                complianceFlag="compliant", date="2020-06-15", title="OECD Average (MUNW): 520.00"),
    ]
