from __future__ import annotations

from typing import Dict, Optional

# Canonical display names, keyed by Eurostat geo code
COUNTRY_NAMES: Dict[str, str] = {
    "AT": "Austria",
    "BE": "Belgium",
    "BG": "Bulgaria",
    "HR": "Croatia",
    "CY": "Cyprus",
    "CZ": "Czech Republic",
    "DK": "Denmark",
    "DE": "Germany",
    "EE": "Estonia",
    "ES": "Spain",
    "FI": "Finland",
    "FR": "France",
    "EL": "Greece",
    "GR": "Greece",
    "HU": "Hungary",
    "IE": "Ireland",
    "IT": "Italy",
    "LV": "Latvia",
    "LT": "Lithuania",
    "LU": "Luxembourg",
    "MT": "Malta",
    "NL": "Netherlands",
    "PL": "Poland",
    "PT": "Portugal",
    "RO": "Romania",
    "SK": "Slovakia",
    "SI": "Slovenia",
    "SE": "Sweden",
    "NO": "Norway",
    "IS": "Iceland",
    "CH": "Switzerland",
    "UK": "United Kingdom",
    "GB": "United Kingdom",
    "TR": "Turkey",
    # Non-European OECD members
    "AU": "Australia",
    "CA": "Canada",
    "CL": "Chile",
    "CO": "Colombia",
    "CR": "Costa Rica",
    "IL": "Israel",
    "JP": "Japan",
    "KR": "South Korea",
    "MX": "Mexico",
    "NZ": "New Zealand",
    "US": "United States",
    # Aggregates
    "EU": "European Union",
    "EU27_2020": "EU27",
    "EA20": "Eurozone",
    "OECD": "OECD Average",
    "OAVG": "OECD Average",
}

# OECD responses use ISO 3166-1 alpha-3; Greece and the UK map to
# Eurostat's EL and UK so both providers share one code per country
_ALPHA3_TO_ALPHA2: Dict[str, str] = {
    "AUT": "AT",
    "BEL": "BE",
    "BGR": "BG",
    "HRV": "HR",
    "CYP": "CY",
    "CZE": "CZ",
    "DNK": "DK",
    "DEU": "DE",
    "EST": "EE",
    "ESP": "ES",
    "FIN": "FI",
    "FRA": "FR",
    "GRC": "EL",
    "HUN": "HU",
    "IRL": "IE",
    "ITA": "IT",
    "LVA": "LV",
    "LTU": "LT",
    "LUX": "LU",
    "MLT": "MT",
    "NLD": "NL",
    "POL": "PL",
    "PRT": "PT",
    "ROU": "RO",
    "SVK": "SK",
    "SVN": "SI",
    "SWE": "SE",
    "NOR": "NO",
    "ISL": "IS",
    "CHE": "CH",
    "GBR": "UK",
    "TUR": "TR",
    "AUS": "AU",
    "CAN": "CA",
    "CHL": "CL",
    "COL": "CO",
    "CRI": "CR",
    "ISR": "IL",
    "JPN": "JP",
    "KOR": "KR",
    "MEX": "MX",
    "NZL": "NZ",
    "USA": "US",
}


def country_name(code: Optional[str]) -> str:
    """Resolve a geo code to its display name; unknown codes pass through."""
    if not code:
        return ""
    return COUNTRY_NAMES.get(code.upper(), code)


def canonicalize_country_code(code: Optional[str]) -> Optional[str]:
    """Map alpha-3 codes to alpha-2 and upper-case everything else."""
    if not code:
        return None
    cleaned = code.strip().upper()
    if not cleaned:
        return None
    return _ALPHA3_TO_ALPHA2.get(cleaned, cleaned)
