from __future__ import annotations

import math
import unittest

from eututka.exceptions import NormalizationError
from eututka.models import EurostatPayload, FetchResult, OecdPayload, ProviderMeta, SparqlPayload
from eututka.services.normalizer import ResponseNormalizer, extract_country_code, period_to_date
from eututka.tests.utils import eurostat_body, literal, oecd_body, sparql_body, uri


def eurostat_result(body, dataset="cei_wm011") -> FetchResult:
    return FetchResult(
        raw=EurostatPayload(body=body),
        providerMeta=ProviderMeta(provider="eurostat", dataset=dataset, url="https://example.com"),
    )


def oecd_result(body, dataset="MUNW") -> FetchResult:
    return FetchResult(
        raw=OecdPayload(body=body),
        providerMeta=ProviderMeta(provider="oecd", dataset=dataset, url="https://example.com"),
    )


def sparql_result(template, bindings) -> FetchResult:
    return FetchResult(
        raw=SparqlPayload(template=template, body=sparql_body(bindings)),
        providerMeta=ProviderMeta(provider="sparql", dataset=template, url="https://example.com"),
    )


class PeriodTests(unittest.TestCase):
    def test_period_labels_map_to_mid_period_dates(self) -> None:
        cases = [
            ("2022", "2022-06-15"),
            ("2022-03", "2022-03-15"),
            ("2022M11", "2022-11-15"),
            ("2022-Q1", "2022-02-15"),
            ("2022Q4", "2022-11-15"),
            ("2024-03-01T00:00:00", "2024-03-01"),
            ("2024-02-29", "2024-02-29"),
        ]
        for label, expected in cases:
            with self.subTest(label=label):
                self.assertEqual(period_to_date(label), expected)

    def test_unparseable_periods_give_none(self) -> None:
        for label in (None, "", "latest", "2022-13", "2023-02-30", "22"):
            with self.subTest(label=label):
                self.assertIsNone(period_to_date(label))

    def test_extract_country_code_from_geo_uri(self) -> None:
        self.assertEqual(extract_country_code("http://ec.europa.eu/eurostat/resource/geo/FI"), "FI")
        self.assertIsNone(extract_country_code("http://example.com/other"))
        self.assertIsNone(extract_country_code(None))


class EurostatNormalizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = ResponseNormalizer(year_cutoff=2018)

    def test_municipal_waste_recycling_end_to_end(self) -> None:
        body = eurostat_body(
            geo=["FI", "DE"],
            time=["2022", "2023"],
            values={"0": 0.45, "1": 0.50, "2": 0.60, "3": 0.65},
        )

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")

        self.assertEqual(
            [(r.country, r.year, r.formattedValue) for r in records],
            [
                ("FI", 2022, "45.0%"),
                ("FI", 2023, "50.0%"),
                ("DE", 2022, "60.0%"),
                ("DE", 2023, "65.0%"),
            ],
        )
        first = records[0]
        self.assertEqual(first.date, "2022-06-15")
        self.assertEqual(first.countryName, "Finland")
        self.assertEqual(first.indicatorName, "Municipal Waste Recycling")
        self.assertEqual(first.topic, "waste")
        self.assertEqual(first.sector, "circular-economy")
        self.assertEqual(first.complianceFlag, "pending")
        self.assertEqual(records[2].complianceFlag, "compliant")
        self.assertEqual(first.source, "eurostat")
        self.assertEqual(first.provenance, "live")
        self.assertIn("cei_wm011", first.sourceUrl)

    def test_decodes_three_countries_by_two_years(self) -> None:
        geo = ["FI", "SE", "DK"]
        time = ["2021", "2022"]
        expected = {}
        values = {}
        for g, country in enumerate(geo):
            for t, year in enumerate(time):
                linear = g * len(time) + t
                value = round(0.1 * (linear + 1), 2)
                values[str(linear)] = value
                expected[(country, int(year))] = value

        records = self.normalizer.normalize(eurostat_result(eurostat_body(geo, time, values)), "cei_srm030")

        decoded = {(r.country, r.year): r.value for r in records}
        self.assertEqual(decoded, expected)

    def test_null_and_unparseable_values_are_skipped(self) -> None:
        body = eurostat_body(
            geo=["FI", "DE"],
            time=["2022", "2023"],
            values={"0": None, "1": "n/a", "2": float("nan"), "3": 0.65},
        )

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].country, "DE")
        self.assertTrue(all(math.isfinite(r.value) for r in records))

    def test_years_before_cutoff_are_dropped(self) -> None:
        body = eurostat_body(
            geo=["FI"],
            time=["2016", "2017", "2018", "2019"],
            values={"0": 0.1, "1": 0.2, "2": 0.3, "3": 0.4},
        )

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")
        self.assertEqual([r.year for r in records], [2018, 2019])

        later = ResponseNormalizer(year_cutoff=2019).normalize(eurostat_result(body), "cei_wm011")
        self.assertEqual([r.year for r in later], [2019])

    def test_colon_keys_are_explicit_indices(self) -> None:
        body = eurostat_body(
            geo=["FI", "DE"],
            time=["2022", "2023"],
            values={"0:0:1:1": 0.65, "0:0:0:0": 0.45},
        )

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")

        self.assertEqual([(r.country, r.year) for r in records], [("FI", 2022), ("DE", 2023)])

    def test_shape_defaults_from_category_indices(self) -> None:
        body = eurostat_body(
            geo=["FI", "DE"],
            time=["2022", "2023"],
            values={"1": 0.5, "2": 0.6},
            with_shape=False,
        )

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")

        self.assertEqual([(r.country, r.year) for r in records], [("FI", 2023), ("DE", 2022)])

    def test_shape_read_from_dimension_block(self) -> None:
        body = eurostat_body(geo=["FI", "DE"], time=["2022"], values={"1": 0.6}, with_shape=False)
        body["dimension"]["id"] = ["freq", "unit", "geo", "time"]
        body["dimension"]["size"] = [1, 1, 2, 1]

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011")

        self.assertEqual(records[0].country, "DE")

    def test_declared_size_must_match_category_index(self) -> None:
        body = eurostat_body(
            geo=["FI", "DE"],
            time=["2022", "2023"],
            values={"0": 0.45},
            size=[1, 1, 3, 2],
        )

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(eurostat_result(body), "cei_wm011")

    def test_id_and_size_lengths_must_agree(self) -> None:
        body = eurostat_body(geo=["FI"], time=["2022"], values={"0": 0.4})
        body["size"] = [1, 1, 1]

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(eurostat_result(body), "cei_wm011")

    def test_linear_index_outside_cube_raises(self) -> None:
        body = eurostat_body(geo=["FI"], time=["2022"], values={"5": 0.4})

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(eurostat_result(body), "cei_wm011")

    def test_index_without_category_raises(self) -> None:
        body = eurostat_body(geo=["FI", "DE"], time=["2022"], values={"1": 0.4}, with_shape=False)
        body["id"] = ["freq", "unit", "geo", "time"]
        body["size"] = [1, 1, 2, 1]
        body["dimension"]["geo"]["category"]["index"] = {"FI": 0, "DE": 5}

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(eurostat_result(body), "cei_wm011")

    def test_unknown_indicator_uses_raw_code_and_plain_formatting(self) -> None:
        body = eurostat_body(geo=["FI"], time=["2022"], values={"0": 3.14159})

        records = self.normalizer.normalize(eurostat_result(body, "env_new01"), "env_new01")

        self.assertEqual(records[0].indicatorName, "env_new01")
        self.assertEqual(records[0].formattedValue, "3.14")
        self.assertEqual(records[0].complianceFlag, "compliant")

    def test_stale_provenance_is_carried(self) -> None:
        body = eurostat_body(geo=["FI"], time=["2022"], values={"0": 0.45})

        records = self.normalizer.normalize(eurostat_result(body), "cei_wm011", provenance="stale")

        self.assertEqual(records[0].provenance, "stale")


class OecdNormalizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = ResponseNormalizer(year_cutoff=2018)

    def test_colon_keys_map_positionally(self) -> None:
        body = oecd_body(
            countries=["FIN", "OECD"],
            periods=["2019", "2020"],
            observations={
                "0:0:0": [480.5, None],
                "0:0:1": [470.0, None],
                "1:0:1": [530.25, "E"],
            },
        )

        records = self.normalizer.normalize(oecd_result(body), "MUNW")

        self.assertEqual(
            [(r.country, r.year, r.value) for r in records],
            [("FI", 2019, 480.5), ("FI", 2020, 470.0), ("OECD", 2020, 530.25)],
        )
        self.assertEqual(records[0].countryName, "Finland")
        self.assertEqual(records[0].topic, "waste")
        self.assertEqual(records[0].topicName, "Municipal Waste")
        self.assertEqual(records[0].sector, "environment")
        self.assertEqual(records[0].source, "oecd")
        self.assertEqual(records[0].complianceFlag, "compliant")
        self.assertEqual(records[2].countryName, "OECD Average")

    def test_greece_and_uk_use_eurostat_codes(self) -> None:
        body = oecd_body(
            ["GRC", "GBR", "USA"],
            ["2021"],
            {"0:0:0": [510.0], "1:0:0": [463.0], "2:0:0": [811.0]},
        )

        records = self.normalizer.normalize(oecd_result(body), "MUNW")

        self.assertEqual([r.country for r in records], ["EL", "UK", "US"])
        self.assertEqual([r.countryName for r in records], ["Greece", "United Kingdom", "United States"])

    def test_null_observations_are_skipped(self) -> None:
        body = oecd_body(["DEU"], ["2020"], {"0:0:0": [None, "M"]})

        self.assertEqual(self.normalizer.normalize(oecd_result(body), "MUNW"), [])

    def test_missing_time_dimension_raises(self) -> None:
        body = oecd_body(["DEU"], ["2020"], {"0:0": [1.0]}, time_dim="")

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(oecd_result(body), "MUNW")

    def test_missing_country_dimension_raises(self) -> None:
        body = oecd_body(["DEU"], ["2020"], {"0:0:0": [1.0]}, country_dim="SECTOR")

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(oecd_result(body), "MUNW")

    def test_key_with_wrong_arity_raises(self) -> None:
        body = oecd_body(["DEU"], ["2020"], {"0:0": [1.0]})

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(oecd_result(body), "MUNW")

    def test_series_keyed_bodies(self) -> None:
        body = {
            "dataSets": [
                {
                    "series": {
                        "0:0": {"observations": {"0": [12.5], "1": [13.0]}},
                        "1:0": {"observations": {"1": [9.75]}},
                    }
                }
            ],
            "structure": {
                "dimensions": {
                    "series": [
                        {"id": "REF_AREA", "values": [{"id": "SWE"}, {"id": "DNK"}]},
                        {"id": "MEASURE", "values": [{"id": "RATE"}]},
                    ],
                    "observation": [
                        {"id": "TIME_PERIOD", "values": [{"id": "2021"}, {"id": "2022"}]},
                    ],
                }
            },
        }

        records = self.normalizer.normalize(oecd_result(body, "RECYCLING"), "RECYCLING")

        self.assertEqual(
            [(r.country, r.year, r.value) for r in records],
            [("SE", 2021, 12.5), ("SE", 2022, 13.0), ("DK", 2022, 9.75)],
        )
        self.assertEqual(records[0].topic, "recycling")


class SparqlNormalizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = ResponseNormalizer()

    def test_dataset_bindings_become_catalogue_records(self) -> None:
        result = sparql_result(
            "eurostat_datasets",
            [
                {
                    "dataset": uri("http://ec.europa.eu/eurostat/resource/dataset/env_wasmun"),
                    "title": literal("Municipal waste by waste management operations"),
                    "date": literal("2024-03-01T00:00:00"),
                    "country": uri("http://ec.europa.eu/eurostat/resource/geo/FI"),
                },
                {
                    "dataset": uri("http://ec.europa.eu/eurostat/resource/dataset/cei_x"),
                    "title": literal("Circular economy indicator"),
                    "date": literal("not a date"),
                },
                {
                    "dataset": uri("http://ec.europa.eu/eurostat/resource/dataset/cei_y"),
                    "title": literal("Recycling of packaging"),
                    "date": literal("2023-11-20"),
                },
            ],
        )

        records = self.normalizer.normalize(result)

        self.assertEqual(len(records), 2)
        first, second = records
        self.assertEqual(first.date, "2024-03-01")
        self.assertEqual(first.country, "FI")
        self.assertEqual(first.topic, "waste-management")
        self.assertEqual(first.topicName, "Waste Management")
        self.assertIsNone(first.value)
        self.assertEqual(first.source, "eurostat")
        self.assertTrue(first.sourceUrl.endswith("env_wasmun"))
        self.assertEqual(second.country, "EU")
        self.assertEqual(second.topic, "recycling")

    def test_regulation_bindings(self) -> None:
        result = sparql_result(
            "eurlex_regulations",
            [
                {
                    "regulation": uri("http://publications.europa.eu/resource/cellar/abc"),
                    "title": literal("Regulation on packaging and packaging waste in manufacturing"),
                    "date": literal("2025-01-22"),
                    "type": uri("http://publications.europa.eu/resource/authority/resource-type/REG"),
                }
            ],
        )

        records = self.normalizer.normalize(result)

        self.assertEqual(records[0].source, "eurlex")
        self.assertEqual(records[0].sector, "manufacturing")
        self.assertEqual(records[0].indicatorName, "EUR-Lex Regulation")
        self.assertEqual(records[0].sourceUrl, "http://publications.europa.eu/resource/cellar/abc")

    def test_concepts(self) -> None:
        result = sparql_result(
            "eurovoc_concepts",
            [
                {
                    "concept": uri("http://eurovoc.europa.eu/5482"),
                    "prefLabel": literal("waste recycling"),
                    "broader": uri("http://eurovoc.europa.eu/2716"),
                },
                {"concept": uri("http://eurovoc.europa.eu/1"), "prefLabel": None},
            ],
        )

        concepts = self.normalizer.normalize_concepts(result)

        self.assertEqual(len(concepts), 1)
        self.assertEqual(concepts[0].label, "waste recycling")
        self.assertEqual(concepts[0].broader, "http://eurovoc.europa.eu/2716")
        self.assertIsNone(concepts[0].related)

        with self.assertRaises(NormalizationError):
            self.normalizer.normalize(result)


if __name__ == "__main__":
    unittest.main()
