# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
import xml.etree.ElementTree as ET
from types import MappingProxyType

from cortex_xml_parser import (
    Section,
    _ExtractState,
    _step,
    extract_record,
    infer_test_type,
    match_power_by_hr,
    row_values,
)
from cpet_record import Sample, TestType, compute_age
from results import ErrorKind
from xml_fixtures import SS, build_export, ramp_samples

BIKE_SUMMARY = {
    "V'O2": ("2,10", "2,60", "3,00"),
    "V'O2/kg": ("31", "39", "45"),
    "FC": ("120", "150", "180"),
    "V'E": ("50", "80", "120"),
}
BIKE_HEADERS = ("t", "Phase", "V'O2", "FC", "V'E", "v", "TT")


def _sample(hr: float, power: str) -> Sample:
    return Sample(time_s=0.0, hr=hr, vo2=1.0, ve=30.0, phase="Exercice",
                  raw=MappingProxyType({"FC": str(hr), "TT": power}))


class TestRowFold(unittest.TestCase):
    def test_index_and_merge_across(self) -> None:
        row = ET.fromstring(
            f'<Row xmlns="{SS}" xmlns:ss="{SS}">'
            "<Cell><Data>a</Data></Cell>"
            '<Cell ss:Index="4"><Data>b</Data></Cell>'
            '<Cell ss:MergeAcross="2"><Data>c</Data></Cell>'
            "<Cell><Data>d</Data></Cell>"
            "</Row>"
        )
        self.assertEqual(row_values(row), {0: "a", 3: "b", 4: "c", 7: "d"})

    def test_cell_without_data_is_empty_text(self) -> None:
        row = ET.fromstring(f'<Row xmlns="{SS}"><Cell/><Cell><Data>x</Data></Cell></Row>')
        self.assertEqual(row_values(row), {0: "", 1: "x"})

    def test_nested_data_text_is_joined(self) -> None:
        row = ET.fromstring(f'<Row xmlns="{SS}"><Cell><Data>V<B>1</B></Data></Cell></Row>')
        self.assertEqual(row_values(row), {0: "V1"})

    def test_other_prefix_binding(self) -> None:
        row = ET.fromstring(
            '<Row xmlns:x="urn:other"><Cell x:Index="3"><Data>z</Data></Cell></Row>')
        self.assertEqual(row_values(row), {2: "z"})

    def test_row_without_cells(self) -> None:
        self.assertIsNone(row_values(ET.fromstring(f'<Row xmlns="{SS}"/>')))


class TestSectionStep(unittest.TestCase):
    def test_sentinel_switches_section_without_data(self) -> None:
        state = _step(_ExtractState(), {0: "Données du patient"})
        self.assertIs(state.section, Section.PATIENT)
        self.assertEqual(state.patient, {})

    def test_unknown_rows_outside_sections_are_ignored(self) -> None:
        state = _step(_ExtractState(), {0: "Nom", 1: "Jane"})
        self.assertIs(state.section, Section.NONE)
        self.assertEqual(state.patient, {})

    def test_summary_header_row_is_skipped(self) -> None:
        state = _step(_ExtractState(section=Section.SUMMARY), {0: "Variable", 5: "V1"})
        self.assertEqual(state.thresholds["vt1"], {})


class TestExtractRecord(unittest.TestCase):
    def test_rejects_empty_and_non_text(self) -> None:
        for bad in ("", None, b"<Workbook/>", 42):
            res = extract_record(bad)
            self.assertFalse(res.ok)
            self.assertIs(res.kind, ErrorKind.MALFORMED_INPUT)
            self.assertEqual(res.message, "Contenu XML invalide ou vide")

    def test_rejects_malformed_xml(self) -> None:
        res = extract_record("<Workbook><Row>")
        self.assertFalse(res.ok)
        self.assertIs(res.kind, ErrorKind.MALFORMED_INPUT)
        self.assertTrue(res.message.startswith("XML mal formé"))

    def test_run_export(self) -> None:
        res = extract_record(build_export())
        self.assertTrue(res.ok)
        rec = res.value

        self.assertEqual(rec.patient.last_name, "Jane")
        self.assertEqual(rec.patient.first_name, "Doe")
        self.assertEqual(rec.patient.birth_date, "15/06/1990")
        self.assertEqual(rec.patient.weight, "60,0 kg")
        self.assertEqual(rec.patient.display_name, "Jane Doe")
        self.assertEqual(rec.test.started_at, "01/03/2024 10:00")

        self.assertEqual(rec.vt1.hr, "120")
        self.assertEqual(rec.vt2.hr, "150")
        self.assertEqual(rec.peak.vo2, "3,00")
        self.assertEqual(rec.vt1.speed_value, 8.0)
        self.assertEqual(rec.vt2.intensity_value(TestType.RUN), 12.0)
        self.assertEqual(rec.peak.vo2_kg_value, 45.0)

        self.assertIs(rec.test_type, TestType.RUN)
        self.assertTrue(rec.has_speed_data)
        self.assertFalse(rec.has_power_data)
        self.assertFalse(rec.power_inferred)

        self.assertEqual(len(rec.measurements), 10)
        first, last = rec.measurements[0], rec.measurements[-1]
        self.assertEqual(first.time_s, 0.0)
        self.assertEqual(last.time_s, 45.0)
        self.assertEqual(first.hr, 100.0)
        self.assertAlmostEqual(first.vo2, 1.0)
        self.assertEqual(first.phase, "Exercice")
        self.assertEqual(first.raw["v"], "")

    def test_elements_outside_rows_are_ignored(self) -> None:
        xml = build_export().replace("<Table>", "<Table><Column ss:Width=\"40\"/>")
        self.assertTrue(extract_record(xml).ok)

    def test_to_frame(self) -> None:
        df = extract_record(build_export()).value.to_frame()
        self.assertEqual(list(df.columns), ["time_s", "hr", "vo2", "ve", "phase", "power"])
        self.assertEqual(len(df), 10)
        self.assertEqual(df["hr"].iloc[-1], 145.0)

    def test_power_summary_row_means_bike(self) -> None:
        summary = dict(BIKE_SUMMARY, TT=("200", "260", "320"))
        rec = extract_record(build_export(summary=summary)).value
        self.assertIs(rec.test_type, TestType.BIKE)
        self.assertEqual(rec.vt1.power, "200")
        self.assertFalse(rec.power_inferred)

    def test_power_reconstructed_from_samples(self) -> None:
        samples = ramp_samples(10, hr_start=100, hr_step=5, power_per_bpm=2)
        rec = extract_record(build_export(summary=BIKE_SUMMARY, samples=samples,
                                          headers=BIKE_HEADERS)).value
        self.assertTrue(rec.power_inferred)
        self.assertTrue(rec.has_power_data)
        self.assertIs(rec.test_type, TestType.BIKE)
        self.assertEqual(rec.vt1.power, "240")
        self.assertEqual(rec.vt2.power, "290")
        self.assertEqual(rec.peak.power, "290")

    def test_no_power_fallback_without_threshold_hr(self) -> None:
        summary = dict(BIKE_SUMMARY, FC=("120", "150", ""))
        samples = ramp_samples(10, power_per_bpm=2)
        rec = extract_record(build_export(summary=summary, samples=samples,
                                          headers=BIKE_HEADERS)).value
        self.assertFalse(rec.power_inferred)
        self.assertEqual(rec.vt1.power, "")
        self.assertIs(rec.test_type, TestType.RUN)


class TestPowerMatch(unittest.TestCase):
    def test_nearest_hr_within_tolerance(self) -> None:
        samples = [_sample(110, "150"), _sample(124, "190"), _sample(126, "200"),
                   _sample(149, "260"), _sample(156, "300"), _sample(175, "340")]
        m = match_power_by_hr(120, 150, 180, samples)
        self.assertEqual(m.vt1, 190)
        self.assertEqual(m.vt2, 260)
        self.assertEqual(m.peak, 340)

    def test_vt1_above_tolerance_is_rejected(self) -> None:
        m = match_power_by_hr(120, 150, 180, [_sample(126, "200")])
        self.assertIsNone(m.vt1)
        self.assertEqual(m.vt2, 200)

    def test_zero_power_is_skipped(self) -> None:
        m = match_power_by_hr(120, 150, 180, [_sample(120, "0"), _sample(118, "180")])
        self.assertEqual(m.vt1, 180)

    def test_earlier_sample_wins_ties(self) -> None:
        m = match_power_by_hr(120, 150, 180, [_sample(118, "170"), _sample(122, "190")])
        self.assertEqual(m.vt1, 170)

    def test_vt2_below_vt1_hr_is_rejected(self) -> None:
        m = match_power_by_hr(120, 150, 180, [_sample(119, "180")])
        self.assertIsNone(m.vt2)


class TestInferTestType(unittest.TestCase):
    def test_signals(self) -> None:
        self.assertIs(infer_test_type(False, True), TestType.BIKE)
        self.assertIs(infer_test_type(True, False), TestType.RUN)
        self.assertIs(infer_test_type(False, False), TestType.RUN)

    def test_both_signals_prefer_run_with_valid_speed(self) -> None:
        self.assertIs(infer_test_type(True, True, "8,0", "12,0"), TestType.RUN)
        self.assertIs(infer_test_type(True, True, "0", "12"), TestType.RUN)
        self.assertIs(infer_test_type(True, True, "0", ""), TestType.BIKE)
        self.assertIs(infer_test_type(True, True, "", "-"), TestType.BIKE)


class TestComputeAge(unittest.TestCase):
    def test_age_at_test_date(self) -> None:
        self.assertEqual(compute_age("15/06/1990", "01/03/2024 10:00"), 33)
        self.assertEqual(compute_age("15/06/1990", "15/06/2024 08:00"), 34)

    def test_reference_date_when_test_date_missing(self) -> None:
        from datetime import date
        self.assertEqual(compute_age("01/01/2000", "", today=date(2020, 6, 1)), 20)

    def test_unreadable_birth_date(self) -> None:
        self.assertEqual(compute_age("", "01/03/2024"), 0)
        self.assertEqual(compute_age("1990-06-15", "01/03/2024"), 0)
        self.assertEqual(compute_age("31/02/1990", "01/03/2024"), 0)


if __name__ == "__main__":
    unittest.main()
