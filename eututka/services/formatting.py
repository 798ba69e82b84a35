"""Indicator labels, value formatting and coarse classification.

The same helpers serve the live normalization path and the placeholder path,
so formatted values stay comparable in the UI.
"""
from __future__ import annotations

import math
from typing import Dict, Optional, Tuple

PERCENTAGE = "percentage"
TONNES = "tonnes"
CO2_EQUIVALENT = "co2eq"

INDICATOR_NAMES: Dict[str, str] = {
    # Eurostat circular economy indicators
    "cei_srm030": "Circular Material Use Rate",
    "cei_wm011": "Municipal Waste Recycling",
    "cei_pc020": "Material Footprint",
    "cei_cie011": "Circular Economy Employment",
    "cei_gsr010": "Consumption Footprint",
    # OECD environmental datasets
    "MUNW": "Municipal Waste",
    "WASTE_TREAT": "Waste Treatment",
    "MATERIAL_RESOURCES": "Material Resources",
    "GREEN_GROWTH": "Green Growth",
    "CIRCULAR_ECONOMY": "Circular Economy",
    "RECYCLING": "Recycling Rate",
    # SPARQL listings
    "eurostat_datasets": "Eurostat Dataset",
    "eurlex_regulations": "EUR-Lex Regulation",
}

INDICATOR_UNITS: Dict[str, str] = {
    "cei_srm030": PERCENTAGE,
    "cei_wm011": PERCENTAGE,
    "cei_cie011": PERCENTAGE,
    "cei_pc020": TONNES,
    "cei_gsr010": CO2_EQUIVALENT,
}

# value > threshold -> compliant; indicators without an entry are always compliant
COMPLIANCE_THRESHOLDS: Dict[str, float] = {
    "cei_srm030": 0.5,
    "cei_wm011": 0.5,
    "cei_pc020": 0.5,
    "cei_cie011": 0.5,
    "cei_gsr010": 0.5,
}

# (topic, topic name) per OECD dataset
OECD_TOPICS: Dict[str, Tuple[str, str]] = {
    "MUNW": ("waste", "Municipal Waste"),
    "WASTE_TREAT": ("waste-treatment", "Waste Treatment"),
    "MATERIAL_RESOURCES": ("material", "Material Resources"),
    "GREEN_GROWTH": ("green-growth", "Green Growth"),
    "CIRCULAR_ECONOMY": ("circular-economy", "Circular Economy"),
    "RECYCLING": ("recycling", "Recycling Rate"),
}

TOPIC_NAMES: Dict[str, str] = {
    "waste-management": "Waste Management",
    "recycling": "Recycling & Recovery",
    "circular-economy": "Circular Economy",
    "plastics": "Plastics Strategy",
    "batteries": "Batteries & Electronics",
    "textiles": "Textiles & Fashion",
    "other": "Other",
}


def indicator_name(code: str) -> str:
    """Human-readable label; unknown codes fall back to the raw code."""
    return INDICATOR_NAMES.get(code, code)


def indicator_unit(code: str) -> Optional[str]:
    return INDICATOR_UNITS.get(code)


def format_value(value: Optional[float], indicator_code: str) -> str:
    if value is None or not math.isfinite(value):
        return "N/A"

    unit = INDICATOR_UNITS.get(indicator_code)
    if unit == PERCENTAGE:
        return f"{value * 100:.1f}%"
    if unit == TONNES:
        return f"{value:.1f} tonnes"
    if unit == CO2_EQUIVALENT:
        return f"{value:.0f} Mt CO2eq"
    return f"{value:.2f}"


def compliance_flag(value: Optional[float], indicator_code: str) -> str:
    threshold = COMPLIANCE_THRESHOLDS.get(indicator_code)
    if threshold is None or value is None:
        return "compliant"
    return "compliant" if value > threshold else "pending"


def topic_for_indicator(code: str) -> str:
    """Classify a Eurostat indicator by substring of its code."""
    if "srm" in code:
        return "material"
    if "wm" in code:
        return "waste"
    if "pc" in code:
        return "footprint"
    if "cie" in code:
        return "employment"
    return "circular-economy"


def detect_topic(title: Optional[str]) -> str:
    if not title:
        return "other"
    lower = title.lower()

    if "waste" in lower:
        return "waste-management"
    if "recycl" in lower:
        return "recycling"
    if "circular" in lower:
        return "circular-economy"
    if "plastic" in lower:
        return "plastics"
    if "battery" in lower or "batteries" in lower:
        return "batteries"
    if "textile" in lower:
        return "textiles"
    return "other"


def topic_name(topic: str) -> str:
    return TOPIC_NAMES.get(topic, "Other")


def detect_sector(title: Optional[str]) -> str:
    if not title:
        return "general"
    lower = title.lower()

    if "manufact" in lower:
        return "manufacturing"
    if "electron" in lower:
        return "electronics"
    if "energy" in lower:
        return "energy"
    if "construct" in lower:
        return "construction"
    return "general"
