"""
cortex_xml_parser.py — MetaSoft Studio XML (French export) → ParsedTest
=======================================================================
Reads the SpreadsheetML export of a cardiopulmonary exercise test and
returns a typed record, or an ``Err`` describing why it could not.

Usage:
    from cortex_xml_parser import extract_record
    result = extract_record(xml_text)
    if result.ok:
        record = result.value

XML structure (SpreadsheetML, one logical table of rows):
    - "Données du patient"  → Nom / Prénom / Date de Naissance / Sexe / Poids
    - "Données test"        → Heure de début
    - "Tableau Résumé"      → one row per variable (V'O2, V'O2/kg, FC, v, TT, V'E),
                              VT1 / VT2 / peak in columns 5 / 8 / 11
    - "Measurement Data"    → header row 't', units row 'h:mm:ss,ms',
                              then one row per breath (time in column 0)

Cells may skip columns (ss:Index, 1-based) and span columns
(ss:MergeAcross); trailing empty cells are omitted by the device.
"""

import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import reduce
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple

from config import (
    COL_HR,
    COL_PHASE,
    COL_POWER,
    COL_VE,
    COL_VO2,
    MEASUREMENT_HEADER_LABEL,
    MEASUREMENT_UNITS_LABEL,
    PATIENT_FIELDS,
    POWER_MATCH_HR_TOLERANCE,
    POWER_ROW,
    SECTION_MEASUREMENT,
    SECTION_PATIENT,
    SECTION_SUMMARY,
    SECTION_TEST,
    SPEED_ROW,
    SS_NS,
    SUMMARY_COLUMNS,
    SUMMARY_HEADER_LABEL,
    SUMMARY_ROWS,
    TEST_FIELDS,
)
from cpet_record import ParsedTest, Patient, Sample, TestInfo, TestType, ThresholdValues
from data_tools import format_number, parse_elapsed_time, parse_int_prefix, safe_num
from results import Err, ErrorKind, Ok, Result

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# XML HELPERS
# ═══════════════════════════════════════════════════════════════════════

def _local(tag) -> str:
    """'{urn:...}Row' → 'Row' (comments and PIs have non-str tags)."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _attr(el: ET.Element, name: str) -> Optional[str]:
    """ss:<name> attribute, tolerating a differently bound prefix."""
    value = el.attrib.get(f"{{{SS_NS}}}{name}")
    if value is not None:
        return value
    for key, v in el.attrib.items():
        if key.startswith("{") and _local(key) == name:
            return v
    return None


def _descendants(el: ET.Element, name: str) -> List[ET.Element]:
    return [d for d in el.iter() if d is not el and _local(d.tag) == name]


def _cell_text(cell: ET.Element) -> str:
    for d in cell.iter():
        if d is not cell and _local(d.tag) == "Data":
            return "".join(d.itertext())
    return ""


def _fold_cell(acc: Tuple[int, Dict[int, str]], cell: ET.Element) -> Tuple[int, Dict[int, str]]:
    col, vals = acc
    index = _attr(cell, "Index")
    if index:
        col = parse_int_prefix(index) - 1
    vals[col] = _cell_text(cell)
    merge = _attr(cell, "MergeAcross")
    if merge:
        col += parse_int_prefix(merge)
    return col + 1, vals


def row_values(row: ET.Element) -> Optional[Dict[int, str]]:
    """Sparse {column: text} for one Row, or None when it has no cells."""
    cells = _descendants(row, "Cell")
    if not cells:
        return None
    _, vals = reduce(_fold_cell, cells, (0, {}))
    return vals


def _iter_rows(root: ET.Element) -> Iterator[Dict[int, str]]:
    for row in root.iter():
        if _local(row.tag) != "Row":
            continue
        vals = row_values(row)
        if vals is not None:
            yield vals


# ═══════════════════════════════════════════════════════════════════════
# SECTION STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

class Section(Enum):
    NONE = "none"
    PATIENT = "patient"
    TEST = "test"
    SUMMARY = "summary"
    MEASUREMENT = "measurement"


SECTION_SENTINELS: Mapping[str, Section] = MappingProxyType({
    SECTION_PATIENT:     Section.PATIENT,
    SECTION_TEST:        Section.TEST,
    SECTION_SUMMARY:     Section.SUMMARY,
    SECTION_MEASUREMENT: Section.MEASUREMENT,
})


@dataclass
class _ExtractState:
    section: Section = Section.NONE
    headers: Mapping[int, str] = field(default_factory=dict)
    patient: Dict[str, str] = field(default_factory=dict)
    test: Dict[str, str] = field(default_factory=dict)
    thresholds: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {slot: {} for slot in SUMMARY_COLUMNS})
    samples: List[Sample] = field(default_factory=list)
    has_speed_data: bool = False
    has_power_data: bool = False


def _key_value(vals: Dict[int, str]) -> str:
    return vals.get(2) or vals.get(1) or ""


def _on_patient(state: _ExtractState, first: str, vals: Dict[int, str]) -> _ExtractState:
    name = PATIENT_FIELDS.get(first)
    if name:
        state.patient[name] = _key_value(vals)
    return state


def _on_test(state: _ExtractState, first: str, vals: Dict[int, str]) -> _ExtractState:
    name = TEST_FIELDS.get(first)
    if name:
        state.test[name] = _key_value(vals)
    return state


def _on_summary(state: _ExtractState, first: str, vals: Dict[int, str]) -> _ExtractState:
    if first == SUMMARY_HEADER_LABEL or first not in SUMMARY_ROWS:
        return state
    name = SUMMARY_ROWS[first]
    for slot, col in SUMMARY_COLUMNS.items():
        state.thresholds[slot][name] = vals.get(col, "")
    if first == SPEED_ROW:
        return replace(state, has_speed_data=True)
    if first == POWER_ROW:
        return replace(state, has_power_data=True)
    return state


def _make_sample(first: str, headers: Mapping[int, str], vals: Dict[int, str]) -> Sample:
    raw = {h: vals.get(i) or "" for i, h in sorted(headers.items()) if h}
    return Sample(
        time_s=parse_elapsed_time(first),
        hr=safe_num(raw.get(COL_HR)),
        vo2=safe_num(raw.get(COL_VO2)),
        ve=safe_num(raw.get(COL_VE)),
        phase=raw.get(COL_PHASE, ""),
        raw=MappingProxyType(raw),
    )


def _on_measurement(state: _ExtractState, first: str, vals: Dict[int, str]) -> _ExtractState:
    if first == MEASUREMENT_HEADER_LABEL:
        return replace(state, headers=MappingProxyType(dict(vals)))
    if first == MEASUREMENT_UNITS_LABEL:
        return state
    if ":" in first:
        state.samples.append(_make_sample(first, state.headers, vals))
    return state


_HANDLERS = MappingProxyType({
    Section.PATIENT:     _on_patient,
    Section.TEST:        _on_test,
    Section.SUMMARY:     _on_summary,
    Section.MEASUREMENT: _on_measurement,
})


def _step(state: _ExtractState, vals: Dict[int, str]) -> _ExtractState:
    first = vals.get(0) or ""
    entered = SECTION_SENTINELS.get(first)
    if entered is not None:
        return replace(state, section=entered)
    handler = _HANDLERS.get(state.section)
    return handler(state, first, vals) if handler else state


# ═══════════════════════════════════════════════════════════════════════
# POWER FALLBACK + TEST TYPE
# ═══════════════════════════════════════════════════════════════════════

class PowerMatch(NamedTuple):
    vt1: Optional[float]
    vt2: Optional[float]
    peak: Optional[float]


def match_power_by_hr(fc1: float, fc2: float, fc_peak: float, samples: List[Sample],
                      tolerance: float = POWER_MATCH_HR_TOLERANCE) -> PowerMatch:
    """
    Power at VT1 / VT2 / peak taken from the sample whose HR is closest to
    each threshold HR. Samples without positive power are ignored; VT1 must
    not exceed fc1 + tolerance, VT2 must lie in [fc1, fc2 + tolerance].
    Earlier samples win ties.
    """
    best = {"vt1": (math.inf, None), "vt2": (math.inf, None), "peak": (math.inf, None)}
    for s in samples:
        power = s.power
        if power <= 0:
            continue
        hr = s.hr
        d1, d2, dp = abs(hr - fc1), abs(hr - fc2), abs(hr - fc_peak)
        if d1 < best["vt1"][0] and hr <= fc1 + tolerance:
            best["vt1"] = (d1, power)
        if d2 < best["vt2"][0] and fc1 <= hr <= fc2 + tolerance:
            best["vt2"] = (d2, power)
        if dp < best["peak"][0]:
            best["peak"] = (dp, power)
    return PowerMatch(best["vt1"][1], best["vt2"][1], best["peak"][1])


def infer_test_type(has_speed_data: bool, has_power_data: bool,
                    vt1_speed: str = "", vt2_speed: str = "") -> TestType:
    """Bike when only power is there, run when only speed is; with both,
    run unless neither threshold speed is positive."""
    if has_power_data and not has_speed_data:
        return TestType.BIKE
    if has_power_data and has_speed_data:
        valid_speed = safe_num(vt1_speed) > 0 or safe_num(vt2_speed) > 0
        return TestType.RUN if valid_speed else TestType.BIKE
    return TestType.RUN


# ═══════════════════════════════════════════════════════════════════════
# RECORD ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════

def _build_record(state: _ExtractState) -> ParsedTest:
    thresholds = {slot: dict(values) for slot, values in state.thresholds.items()}
    samples = tuple(state.samples)
    has_power = state.has_power_data
    inferred = False

    if not has_power and any(s.has_power_cell for s in samples):
        hr1, hr2, hrp = (thresholds[slot].get("hr") for slot in ("vt1", "vt2", "peak"))
        if hr1 and hr2 and hrp:
            match = match_power_by_hr(safe_num(hr1), safe_num(hr2), safe_num(hrp), samples)
            for slot, power in match._asdict().items():
                if power is not None:
                    thresholds[slot]["power"] = format_number(power)
            if match.vt1 is not None and match.vt2 is not None:
                has_power = inferred = True
                log.info("power reconstructed from samples: VT1=%s W, VT2=%s W",
                         format_number(match.vt1), format_number(match.vt2))

    test_type = infer_test_type(state.has_speed_data, has_power,
                                thresholds["vt1"].get("speed", ""),
                                thresholds["vt2"].get("speed", ""))

    return ParsedTest(
        patient=Patient(**state.patient),
        test=TestInfo(**state.test),
        vt1=ThresholdValues(**thresholds["vt1"]),
        vt2=ThresholdValues(**thresholds["vt2"]),
        peak=ThresholdValues(**thresholds["peak"]),
        measurements=samples,
        test_type=test_type,
        has_speed_data=state.has_speed_data,
        has_power_data=has_power,
        power_inferred=inferred,
    )


# ═══════════════════════════════════════════════════════════════════════
# MAIN PARSER
# ═══════════════════════════════════════════════════════════════════════

def extract_record(xml_text) -> Result:
    """
    Parse the raw XML text of a MetaSoft export.

    Returns
    -------
    Ok(ParsedTest)
        Unvalidated record (see validation.validate_record).
    Err
        MALFORMED_INPUT for empty / non-text / unparsable XML,
        EXTRACTION_FAILURE when walking the rows fails unexpectedly.
    """
    if not xml_text or not isinstance(xml_text, str):
        return Err(ErrorKind.MALFORMED_INPUT, "Contenu XML invalide ou vide")

    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        log.warning("rejected malformed XML: %s", e)
        return Err(ErrorKind.MALFORMED_INPUT, f"XML mal formé: {e}")

    try:
        state = reduce(_step, _iter_rows(root), _ExtractState())
        record = _build_record(state)
    except Exception as e:
        log.exception("row walk failed")
        return Err(ErrorKind.EXTRACTION_FAILURE, f"Erreur lors du parsing XML: {e}")

    log.debug("extracted %d samples, test type %s", len(record.measurements), record.test_type.value)
    return Ok(record)
