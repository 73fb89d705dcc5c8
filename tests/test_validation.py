# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from dataclasses import replace

from config import DEFAULT_CONFIG
from cortex_xml_parser import extract_record
from cpet_record import Patient, TestType
from results import ErrorKind, ValidationError, unwrap
from validation import validate_record
from xml_fixtures import build_export


def _record(**kwargs):
    return extract_record(build_export(**kwargs)).value


class TestValidateRecord(unittest.TestCase):
    def setUp(self) -> None:
        self.record = _record()

    def test_valid_record_passes_through(self) -> None:
        res = validate_record(self.record)
        self.assertTrue(res.ok)
        self.assertIs(res.value, self.record)

    def test_too_few_measurements(self) -> None:
        rec = replace(self.record, measurements=self.record.measurements[:5])
        res = validate_record(rec)
        self.assertFalse(res.ok)
        self.assertIs(res.kind, ErrorKind.VALIDATION_FAILURE)
        self.assertEqual(res.message, "Validation échouée")
        self.assertIn("Insuffisant de mesures: 5 (minimum: 10)", res.details)

    def test_too_many_measurements(self) -> None:
        cfg = replace(DEFAULT_CONFIG, max_data_points=5, min_measurements=1)
        res = validate_record(self.record, cfg)
        self.assertEqual(res.details, ("Trop de mesures: 10 (maximum: 5)",))

    def test_vt2_hr_must_exceed_vt1_hr(self) -> None:
        rec = replace(self.record, vt2=replace(self.record.vt2, hr="100"))
        res = validate_record(rec)
        self.assertFalse(res.ok)
        self.assertIn("V2 FC (100) doit être > V1 FC (120)", res.details)

    def test_vt2_speed_must_exceed_vt1_speed(self) -> None:
        rec = replace(self.record, vt2=replace(self.record.vt2, speed="8,0"))
        res = validate_record(rec)
        self.assertEqual(res.details, ("V2 Vitesse (8) doit être > V1 Vitesse (8)",))

    def test_invalid_and_out_of_range_numbers(self) -> None:
        rec = replace(self.record,
                      vt1=replace(self.record.vt1, hr="abc"),
                      peak=replace(self.record.peak, vo2="12,5"))
        res = validate_record(rec)
        self.assertIn('V1 FC invalide: "abc"', res.details)
        self.assertIn("VO2 Peak hors limites (0-10): 12.5", res.details)

    def test_hr_out_of_range(self) -> None:
        rec = replace(self.record, vt1=replace(self.record.vt1, hr="300"))
        res = validate_record(rec)
        self.assertIn("V1 FC hors limites (30-250): 300", res.details)

    def test_all_violations_are_collected(self) -> None:
        rec = replace(self.record,
                      patient=Patient(),
                      vt2=replace(self.record.vt2, hr="100"),
                      measurements=self.record.measurements[:3])
        res = validate_record(rec)
        self.assertEqual(res.details, (
            "Nom du patient requis mais vide",
            "Prénom du patient requis mais vide",
            "V2 FC (100) doit être > V1 FC (120)",
            "Insuffisant de mesures: 3 (minimum: 10)",
        ))

    def test_blank_name_counts_as_missing(self) -> None:
        rec = replace(self.record, patient=replace(self.record.patient, first_name="   "))
        res = validate_record(rec)
        self.assertEqual(res.details, ("Prénom du patient requis mais vide",))

    def test_bike_checks_power(self) -> None:
        rec = replace(self.record, test_type=TestType.BIKE)
        res = validate_record(rec)
        self.assertIn('V1 Puissance invalide: ""', res.details)
        self.assertIn('V2 Puissance invalide: ""', res.details)
        self.assertFalse(any("Vitesse" in d for d in res.details))

    def test_unwrap_raises_with_details(self) -> None:
        rec = replace(self.record, measurements=())
        with self.assertRaises(ValidationError) as ctx:
            unwrap(validate_record(rec))
        self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION_FAILURE)
        self.assertEqual(ctx.exception.details, ["Insuffisant de mesures: 0 (minimum: 10)"])
        self.assertIsInstance(ctx.exception, ValueError)


if __name__ == "__main__":
    unittest.main()
