"""SPARQL provider for the Eurostat, EUR-Lex and EuroVoc triple stores."""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from ..exceptions import EmptyResultError, InvalidQueryError
from ..models import FetchResult, ProviderMeta, QueryOptions, SparqlPayload
from .base import BaseProvider

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f]")


def escape_literal(text: str) -> str:
    """Escape user text for use inside a double-quoted SPARQL string literal."""
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return _CONTROL_CHARS.sub("", escaped)


def _date_literal(value: str) -> str:
    # Round-trip through date so only YYYY-MM-DD ever reaches the query
    return date.fromisoformat(value).isoformat()


def _language_tag(value: str) -> str:
    tag = (value or "en").strip().lower()
    if not re.fullmatch(r"[a-z]{2,3}(-[a-z0-9]{1,8})*", tag):
        raise ValueError(f"Invalid language tag: {value!r}")
    return tag


def eurostat_datasets_query(date_from: Optional[str] = None, date_to: Optional[str] = None) -> str:
    date_filters = ""
    if date_from:
        date_filters += f'\n    FILTER (?date >= "{_date_literal(date_from)}"^^xsd:date)'
    if date_to:
        date_filters += f'\n    FILTER (?date <= "{_date_literal(date_to)}"^^xsd:date)'

    return f"""PREFIX qb: <http://purl.org/linked-data/cube#>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>
PREFIX eurostat: <http://ec.europa.eu/eurostat/resource/>

SELECT DISTINCT ?dataset ?title ?date ?theme ?country
WHERE {{
    ?dataset a qb:DataSet ;
             rdfs:label ?title ;
             eurostat:publicationDate ?date ;
             eurostat:theme ?theme ;
             eurostat:geo ?country .

    FILTER (CONTAINS(LCASE(?title), "circular economy") ||
            CONTAINS(LCASE(?title), "waste") ||
            CONTAINS(LCASE(?title), "recycling")){date_filters}
}}
ORDER BY DESC(?date)
LIMIT 100
"""


def eurlex_regulations_query(date_from: Optional[str] = None) -> str:
    since = _date_literal(date_from or "2024-01-01")
    return f"""PREFIX cdm: <http://publications.europa.eu/ontology/cdm#>
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>

SELECT DISTINCT ?regulation ?title ?date ?type WHERE {{
    ?regulation cdm:work_has_resource-type ?type .
    ?regulation cdm:work_date_document ?date .
    ?regulation cdm:resource_legal_title ?title .

    FILTER(CONTAINS(LCASE(STR(?title)), "circular") ||
           CONTAINS(LCASE(STR(?title)), "waste") ||
           CONTAINS(LCASE(STR(?title)), "recycling") ||
           CONTAINS(LCASE(STR(?title)), "environment"))

    FILTER(?date >= "{since}"^^xsd:date)
}}
ORDER BY DESC(?date)
LIMIT 100
"""


def eurovoc_concepts_query(text: str, language: str = "en") -> str:
    needle = escape_literal(text.lower())
    lang = _language_tag(language)
    return f"""PREFIX skos: <http://www.w3.org/2004/02/skos/core#>

SELECT DISTINCT ?concept ?prefLabel ?broader ?related
WHERE {{
    ?concept a skos:Concept ;
             skos:prefLabel ?prefLabel .

    FILTER(LANG(?prefLabel) = "{lang}")
    FILTER(CONTAINS(LCASE(?prefLabel), "{needle}"))
    FILTER(STRSTARTS(STR(?concept), "http://eurovoc.europa.eu/"))

    OPTIONAL {{ ?concept skos:broader ?broader }}
    OPTIONAL {{ ?concept skos:related ?related }}
}}
LIMIT 100
"""


class SparqlProvider(BaseProvider):
    """Runs named query templates against the configured SPARQL endpoints.

    Template arguments travel in ``QueryOptions.extra``:
    ``dateFrom``/``dateTo`` for the listings, ``text``/``language`` for EuroVoc.
    """

    TEMPLATES: Tuple[str, ...] = ("eurostat_datasets", "eurlex_regulations", "eurovoc_concepts")

    @property
    def provider_name(self) -> str:
        return "sparql"

    def known_codes(self) -> List[str]:
        return list(self.TEMPLATES)

    def endpoint_for(self, template: str) -> str:
        if template == "eurostat_datasets":
            return self.settings.eurostat_sparql_url
        return self.settings.publications_sparql_url

    def build_query(self, template: str, options: QueryOptions) -> str:
        self.ensure_known(template)
        extra = options.extra
        builders: Dict[str, Callable[[], str]] = {
            "eurostat_datasets": lambda: eurostat_datasets_query(extra.get("dateFrom"), extra.get("dateTo")),
            "eurlex_regulations": lambda: eurlex_regulations_query(extra.get("dateFrom")),
            "eurovoc_concepts": lambda: eurovoc_concepts_query(extra.get("text", ""), extra.get("language", "en")),
        }
        try:
            return builders[template]()
        except ValueError as e:
            raise InvalidQueryError(
                f"Invalid parameter for {template}: {e}",
                self.provider_name,
                details={"dataset": template},
            ) from e

    async def fetch(self, dataset: str, options: Optional[QueryOptions] = None) -> FetchResult:
        self.ensure_known(dataset)
        options = options or QueryOptions()

        query = self.build_query(dataset, options)
        endpoint = self.endpoint_for(dataset)
        body = await self._post(
            endpoint,
            dataset,
            content=query,
            headers={
                "Content-Type": "application/sparql-query",
                "Accept": "application/sparql-results+json",
            },
        )

        payload = SparqlPayload(template=dataset, body=body)
        if not payload.bindings:
            raise EmptyResultError(
                f"sparql response for {dataset} has no results.bindings",
                self.provider_name,
                details={"dataset": dataset},
            )

        return FetchResult(
            raw=payload,
            providerMeta=ProviderMeta(
                provider="sparql",
                dataset=dataset,
                url=endpoint,
                params=options.cache_params(),
            ),
        )
