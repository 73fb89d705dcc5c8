"""
Training zones — VT1/VT2-anchored heart-rate zones
═══════════════════════════════════════════════════════════
Two models:
  other     (3 zones): Z1 < VT1 ≤ Z2 < VT2 ≤ Z3
  endurance (5 zones): mid = (VT1+VT2)/2, z4max = VT2 × 1.05
    Z1  < VT1
    Z2  VT1 ... mid
    Z3  mid ... VT2
    Z4  VT2 ... z4max (inclusive)
    Z5  > z4max

Outputs:
  - zone of a single HR value
  - contiguous zone segments over a test (for chart bands)
  - zone table with HR and speed/power ranges (for the report)
"""

import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import List, Mapping, Sequence, Tuple

import numpy as np

from config import MIN_SEGMENT_DURATION_S, SPORT_OTHER, Z4_HR_FACTOR
from cpet_record import TestType
from data_tools import format_number, round_half_up

log = logging.getLogger(__name__)

ZONES_5: Tuple[str, ...] = ("Z1", "Z2", "Z3", "Z4", "Z5")
ZONES_3: Tuple[str, ...] = ("Z1", "Z2", "Z3")

ZONE_ORDINAL: Mapping[str, int] = MappingProxyType({z: i for i, z in enumerate(ZONES_5, start=1)})

# Band fill (translucent), chart fill, and document table shading
ZONE_COLORS: Mapping[str, str] = MappingProxyType({
    "Z1": "rgba(219, 234, 254, 0.75)",
    "Z2": "rgba(220, 252, 231, 0.75)",
    "Z3": "rgba(254, 249, 195, 0.75)",
    "Z4": "rgba(255, 237, 213, 0.75)",
    "Z5": "rgba(255, 228, 230, 0.75)",
})
ZONE_CHART_COLORS: Mapping[str, str] = MappingProxyType({
    "Z1": "#DBEAFE",
    "Z2": "#DCFCE7",
    "Z3": "#FEF9C3",
    "Z4": "#FFEDD5",
    "Z5": "#FFE4E6",
})
ZONE_HEX: Mapping[str, str] = MappingProxyType({
    "Z1": "DBEAFE",
    "Z2": "DCFCE7",
    "Z3": "FEF9C3",
    "Z4": "FFEDD5",
    "Z5": "FFE4E6",
    "HEADER": "1F4E8C",
    "BORDER": "94A3B8",
})
ZONE_LABELS: Mapping[str, str] = MappingProxyType({
    "Z1": "Sous V1",
    "Z2": "V1 → milieu",
    "Z3": "Milieu → V2",
    "Z4": "V2 → +5%",
    "Z5": "> V2 +5%",
})


def zone_label(zone: str) -> str:
    return ZONE_LABELS.get(zone, zone)


def zones_for(sport_type: str) -> Tuple[str, ...]:
    return ZONES_3 if sport_type == SPORT_OTHER else ZONES_5


def _bounds(fc1: float, fc2: float) -> Tuple[float, float]:
    mid = round_half_up((fc1 + fc2) / 2)
    z4max = round_half_up(fc2 * Z4_HR_FACTOR)
    return mid, z4max


# --- CLASSIFICATION ---
def zone_of_hr(hr: float, fc1: float, fc2: float, sport_type: str = "endurance") -> str:
    if sport_type == SPORT_OTHER:
        if hr < fc1:
            return "Z1"
        if hr < fc2:
            return "Z2"
        return "Z3"

    mid, z4max = _bounds(fc1, fc2)
    if hr < fc1:
        return "Z1"
    if hr < mid:
        return "Z2"
    if hr < fc2:
        return "Z3"
    if hr <= z4max:
        return "Z4"
    return "Z5"


# --- SEGMENTS ---
@dataclass(frozen=True)
class ZoneSegment:
    zone: str
    start_s: float
    end_s: float

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s


def merge_short_segments(segments: Sequence[ZoneSegment],
                         min_duration: float = MIN_SEGMENT_DURATION_S) -> List[ZoneSegment]:
    """Fold segments shorter than ``min_duration`` into the previous one.

    The first segment has no predecessor and is kept as is.
    """
    out: List[ZoneSegment] = []
    for seg in segments:
        if seg.duration_s >= min_duration or not out:
            out.append(seg)
        else:
            out[-1] = replace(out[-1], end_s=seg.end_s)
    return out


def build_zone_segments(time_s: Sequence[float], hr: Sequence[float], fc1: float, fc2: float,
                        sport_type: str = "endurance",
                        min_duration: float = MIN_SEGMENT_DURATION_S) -> List[ZoneSegment]:
    """
    Contiguous zone runs over time.

    Non-finite points are dropped and the rest sorted by time. A run ends
    where the next one starts; zero-length runs are skipped; short runs are
    then merged (see merge_short_segments).
    """
    t = np.asarray(time_s, dtype=float)
    h = np.asarray(hr, dtype=float)
    keep = np.isfinite(t) & np.isfinite(h)
    t, h = t[keep], h[keep]
    if t.size == 0:
        return []

    order = np.argsort(t, kind="stable")
    t, h = t[order], h[order]

    segs: List[ZoneSegment] = []
    cur = zone_of_hr(h[0], fc1, fc2, sport_type)
    start = t[0]
    for ti, hi in zip(t[1:], h[1:]):
        z = zone_of_hr(hi, fc1, fc2, sport_type)
        if z != cur:
            if ti > start:
                segs.append(ZoneSegment(cur, float(start), float(ti)))
            cur, start = z, ti
    if t[-1] > start:
        segs.append(ZoneSegment(cur, float(start), float(t[-1])))

    merged = merge_short_segments(segs, min_duration)
    log.debug("zone segments: %d raw → %d merged", len(segs), len(merged))
    return merged


# --- ZONE TABLE ---
@dataclass(frozen=True)
class ZoneRow:
    zone: str
    hr: str
    intensity: str
    description: str
    color: str


def _intensity_formatter(test_type: TestType):
    unit = f" {test_type.intensity_unit}"
    if test_type is TestType.BIKE:
        return lambda v: f"{int(round_half_up(v))}{unit}"
    return lambda v: f"{round_half_up(v, 1):.1f}{unit}"


def zone_table(sport_type: str, fc1: float, fc2: float, s1: float, s2: float,
               test_type: TestType = TestType.RUN) -> List[ZoneRow]:
    """HR and speed/power ranges per zone; km/h with one decimal, watts rounded."""
    fi = _intensity_formatter(test_type)
    n = format_number

    if sport_type == SPORT_OTHER:
        return [
            ZoneRow("Z1", f"< {n(fc1)}", f"< {fi(s1)}", "Sous V1 (seuil ventilatoire 1)", ZONE_COLORS["Z1"]),
            ZoneRow("Z2", f"{n(fc1)} – {n(fc2)}", f"{fi(s1)} – {fi(s2)}", "Entre V1 et V2", ZONE_COLORS["Z2"]),
            ZoneRow("Z3", f"> {n(fc2)}", f"> {fi(s2)}", "Au-dessus de V2 (seuil ventilatoire 2)", ZONE_COLORS["Z3"]),
        ]

    mid, z4fc = _bounds(fc1, fc2)
    mids = (s1 + s2) / 2
    z4s = s2 * Z4_HR_FACTOR

    return [
        ZoneRow("Z1", f"< {n(fc1)}", f"< {fi(s1)}",
                "Sous V1 (seuil ventilatoire 1)", ZONE_COLORS["Z1"]),
        ZoneRow("Z2", f"{n(fc1)} – {n(mid)}", f"{fi(s1)} – {fi(mids)}",
                "Entre V1 et le milieu (S1+S2)/2", ZONE_COLORS["Z2"]),
        ZoneRow("Z3", f"{n(mid)} – {n(fc2)}", f"{fi(mids)} – {fi(s2)}",
                "Entre le milieu et V2 (seuil ventilatoire 2)", ZONE_COLORS["Z3"]),
        ZoneRow("Z4", f"{n(fc2)} – {n(z4fc)}", f"{fi(s2)} – {fi(z4s)}",
                "Au-dessus de V2 (jusqu'à +5 %)", ZONE_COLORS["Z4"]),
        ZoneRow("Z5", f"> {n(z4fc)}", f"> {fi(z4s)}",
                "Très au-dessus de V2 (> +5 %)", ZONE_COLORS["Z5"]),
    ]
