"""
validation.py — physiological plausibility checks on a ParsedTest
================================================================
Every check runs; all violations come back together in one ``Err``.
"""

import logging
from typing import Any, List, Optional

from config import DEFAULT_CONFIG, ReportConfig
from cpet_record import ParsedTest, TestType
from data_tools import format_number, parse_locale_float, safe_num
from results import Err, ErrorKind, Ok, Result

log = logging.getLogger(__name__)


class _Collector:
    """Accumulates violation messages while the checks run."""

    def __init__(self):
        self.errors: List[str] = []

    def required(self, value: Any, label: str) -> None:
        if not value or str(value).strip() == "":
            self.errors.append(f"{label} requis mais vide")

    def number(self, value: Any, lo: float, hi: float, label: str) -> Optional[float]:
        num = parse_locale_float(value)
        if num is None:
            self.errors.append(f'{label} invalide: "{"" if value is None else value}"')
            return None
        if num < lo or num > hi:
            self.errors.append(f"{label} hors limites ({format_number(lo)}-{format_number(hi)}): {format_number(num)}")
            return None
        return num

    def above(self, value: Any, lower: Any, lo: float, hi: float, label: str, lower_label: str) -> None:
        num = self.number(value, lo, hi, label)
        if num is None:
            return
        ref = safe_num(lower)
        if num <= ref:
            self.errors.append(
                f"{label} ({format_number(num)}) doit être > {lower_label} ({format_number(ref)})")


def validate_record(record: ParsedTest, config: ReportConfig = None) -> Result:
    """Ok(record) when plausible, else Err(VALIDATION_FAILURE) listing every violation."""
    cfg = config or DEFAULT_CONFIG
    lim = cfg.validation
    c = _Collector()

    c.required(record.patient.last_name, "Nom du patient")
    c.required(record.patient.first_name, "Prénom du patient")

    c.number(record.vt1.hr, lim.hr_min, lim.hr_max, "V1 FC")

    if record.test_type is TestType.BIKE:
        c.number(record.vt1.power, lim.power_min, lim.power_max, "V1 Puissance")
    else:
        c.number(record.vt1.speed, lim.speed_min, lim.speed_max, "V1 Vitesse")

    c.above(record.vt2.hr, record.vt1.hr, lim.hr_min, lim.hr_max, "V2 FC", "V1 FC")

    if record.test_type is TestType.BIKE:
        c.above(record.vt2.power, record.vt1.power, lim.power_min, lim.power_max,
                "V2 Puissance", "V1 Puissance")
    else:
        c.above(record.vt2.speed, record.vt1.speed, lim.speed_min, lim.speed_max,
                "V2 Vitesse", "V1 Vitesse")

    c.number(record.peak.vo2, lim.vo2_min, lim.vo2_max, "VO2 Peak")
    c.number(record.peak.vo2_kg, lim.vo2_kg_min, lim.vo2_kg_max, "VO2 Peak/kg")

    n = len(record.measurements)
    if n < cfg.min_measurements:
        c.errors.append(f"Insuffisant de mesures: {n} (minimum: {cfg.min_measurements})")
    if n > cfg.max_data_points:
        c.errors.append(f"Trop de mesures: {n} (maximum: {cfg.max_data_points})")

    if c.errors:
        log.warning("validation failed with %d violation(s)", len(c.errors))
        return Err(ErrorKind.VALIDATION_FAILURE, "Validation échouée", tuple(c.errors))
    return Ok(record)
