# ==========================================
# 5. ORCHESTRATOR (XML → VALIDATED RECORD → ZONES)
# ==========================================
import logging
import sys
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from config import DEFAULT_CONFIG, SPORT_ENDURANCE, SPORT_TYPES, ReportConfig
from cortex_xml_parser import extract_record
from cpet_record import ParsedTest, Patient, TestType, ThresholdValues, compute_age
from data_tools import DataTools, format_number, round_half_up
from results import Err, ErrorKind, Ok, Result
from training_recommendation import Recommendation, generate_recommendation
from training_zones import ZoneRow, ZoneSegment, build_zone_segments, zone_table, zones_for
from validation import validate_record

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ReportBundle:
    """Everything the report, charts and export need from one upload."""
    record: ParsedTest
    sport_type: str
    display_name: str
    age: int
    weight: str
    fc1: float
    fc2: float
    s1: float
    s2: float
    vo2_peak: float
    vo2_kg: float
    series: pd.DataFrame
    segments: Tuple[ZoneSegment, ...]
    zones: Tuple[str, ...]
    zone_rows: Tuple[ZoneRow, ...]
    recommendation: Recommendation

    @property
    def patient(self) -> Patient:
        return self.record.patient

    @property
    def test_type(self) -> TestType:
        return self.record.test_type

    @property
    def thresholds(self) -> Dict[str, ThresholdValues]:
        return {"vt1": self.record.vt1, "vt2": self.record.vt2, "peak": self.record.peak}


def normalize_sport_type(sport_type: Optional[str]) -> str:
    return sport_type if sport_type in SPORT_TYPES else SPORT_ENDURANCE


class CPET_Orchestrator:
    def __init__(self, config: ReportConfig = None):
        self.cfg = config or DEFAULT_CONFIG

    # ---------- pipeline ----------
    def process_text(self, xml_text, sport_type: str = SPORT_ENDURANCE,
                     reference_date: Optional[date] = None) -> Result:
        extracted = extract_record(xml_text)
        if not extracted.ok:
            return extracted

        validated = validate_record(extracted.value, self.cfg)
        if not validated.ok:
            return validated

        return Ok(self.derive(validated.value, sport_type, reference_date))

    def derive(self, record: ParsedTest, sport_type: str = SPORT_ENDURANCE,
               reference_date: Optional[date] = None) -> ReportBundle:
        sport = normalize_sport_type(sport_type)
        tt = record.test_type

        fc1, fc2 = record.vt1.hr_value, record.vt2.hr_value
        s1, s2 = record.vt1.intensity_value(tt), record.vt2.intensity_value(tt)
        vo2_kg = record.peak.vo2_kg_value

        series = DataTools.smooth(DataTools.exercise_phase(record.to_frame()),
                                  self.cfg.smooth_window, self.cfg.max_plot_points)
        if not series.empty:
            series = series[np.isfinite(pd.to_numeric(series["time_s"], errors="coerce"))]
            series = series.reset_index(drop=True)

        bundle = ReportBundle(
            record=record,
            sport_type=sport,
            display_name=record.patient.display_name,
            age=compute_age(record.patient.birth_date, record.test.started_at, reference_date),
            weight=record.patient.weight or "-",
            fc1=fc1,
            fc2=fc2,
            s1=s1,
            s2=s2,
            vo2_peak=record.peak.vo2_value,
            vo2_kg=vo2_kg,
            series=series,
            segments=(),
            zones=(),
            zone_rows=(),
            recommendation=generate_recommendation(fc1, fc2, s1, vo2_kg, tt),
        )
        return self.rezone(bundle, sport)

    def rezone(self, bundle: ReportBundle, sport_type: str) -> ReportBundle:
        """Recompute the sport-type dependent parts (segments, zone table)."""
        sport = normalize_sport_type(sport_type)
        series = bundle.series
        if series.empty:
            segments: List[ZoneSegment] = []
        else:
            hr_s = pd.to_numeric(series["hr_s"], errors="coerce")
            hr = pd.to_numeric(series["hr"], errors="coerce")
            zone_hr = hr_s.where(np.isfinite(hr_s) & (hr_s != 0), hr)
            segments = build_zone_segments(series["time_s"], zone_hr, bundle.fc1, bundle.fc2,
                                           sport, self.cfg.min_segment_duration_s)

        rows = zone_table(sport, bundle.fc1, bundle.fc2, bundle.s1, bundle.s2, bundle.test_type)
        return replace(bundle, sport_type=sport, segments=tuple(segments),
                       zones=zones_for(sport), zone_rows=tuple(rows))

    # ---------- upload ----------
    def check_upload(self, filename: str, size_bytes: int) -> Result:
        if not filename:
            return Err(ErrorKind.MALFORMED_INPUT, "Aucun fichier sélectionné")
        if not filename.lower().endswith(".xml"):
            return Err(ErrorKind.MALFORMED_INPUT, "Format invalide. Fichier XML requis.")
        if size_bytes > self.cfg.max_file_size_bytes:
            return Err(ErrorKind.MALFORMED_INPUT,
                       f"Fichier trop volumineux (max {format_number(self.cfg.max_file_size_mb)}MB)")
        return Ok(filename)


def analyze(xml_text, sport_type: str = SPORT_ENDURANCE, config: ReportConfig = None,
            reference_date: Optional[date] = None) -> Result:
    """Raw XML text + sport type → Ok(ReportBundle) or Err with every diagnostic."""
    return CPET_Orchestrator(config).process_text(xml_text, sport_type, reference_date)


def check_upload(filename: str, size_bytes: int, config: ReportConfig = None) -> Result:
    return CPET_Orchestrator(config).check_upload(filename, size_bytes)


def format_error(err: Err) -> List[str]:
    head = "❌ Erreur de validation" if err.kind is ErrorKind.VALIDATION_FAILURE else "⚠️ Erreur"
    return [head, err.message] + [f"  • {d}" for d in err.details]


def format_bundle(b: ReportBundle) -> List[str]:
    unit = b.test_type.intensity_unit
    fmt = (lambda v: format_number(round_half_up(v))) if b.test_type is TestType.BIKE else (lambda v: f"{v:.1f}")
    lines = [
        f"Patient: {b.display_name} | Âge: {b.age} ans | Poids: {b.weight}",
        f"Test: {b.test_type.value} | Modèle: {b.sport_type} ({len(b.zones)} zones)",
        f"VO₂peak: {b.vo2_peak:.2f} L/min ({format_number(b.vo2_kg)} ml·kg⁻¹·min⁻¹)",
        f"V1: {format_number(b.fc1)} bpm / {fmt(b.s1)} {unit} | V2: {format_number(b.fc2)} bpm / {fmt(b.s2)} {unit}",
        "",
        "Zones:",
    ]
    lines += [f"  {r.zone}  FC {r.hr:<12} {r.intensity:<24} {r.description}" for r in b.zone_rows]
    lines += ["", f"Segments: {len(b.segments)} ({len(b.series)} points lissés)", "", "Recommandations:"]
    rec = b.recommendation
    lines += [f"  {t}" for t in (rec.analysis, rec.priority, rec.complementary, rec.high_intensity,
                                  rec.warning, rec.follow_up) if t]
    return lines


# ==========================================
# CLI ENTRY POINT
# ==========================================
def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: cpet-zones <input.xml> [endurance|other]")
        return 1

    logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] %(name)s: %(message)s")

    xml_path = Path(args[0])
    sport_type = args[1] if len(args) > 1 else SPORT_ENDURANCE

    if not xml_path.is_file():
        print(f"❌ Fichier introuvable: {xml_path}")
        return 1

    upload = check_upload(xml_path.name, xml_path.stat().st_size)
    if not upload.ok:
        print("\n".join(format_error(upload)))
        return 2

    print(f"🚀 Analyse: {xml_path}")
    result = analyze(xml_path.read_text(encoding="utf-8"), sport_type)
    if not result.ok:
        print("\n".join(format_error(result)))
        return 2

    print("\n".join(format_bundle(result.value)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
