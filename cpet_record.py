"""
cpet_record.py — typed CPET test record
=======================================
What the extractor produces and the validator checks. Threshold values stay
as the raw cell text and are coerced on demand, so a validation message can
quote exactly what the device wrote.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import pandas as pd

from config import COL_POWER
from data_tools import parse_int_prefix, safe_num


class TestType(str, Enum):
    RUN = "run"
    BIKE = "bike"

    __test__ = False  # not a pytest class

    @property
    def intensity_unit(self) -> str:
        return "W" if self is TestType.BIKE else "km/h"


@dataclass(frozen=True)
class Patient:
    last_name: str = ""
    first_name: str = ""
    birth_date: str = ""
    sex: str = ""
    weight: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip() or "Patient"


@dataclass(frozen=True)
class TestInfo:
    started_at: str = ""

    __test__ = False


@dataclass(frozen=True)
class ThresholdValues:
    """One column of the summary table (VT1, VT2 or peak), as raw text."""
    hr: str = ""
    speed: str = ""
    power: str = ""
    vo2: str = ""
    vo2_kg: str = ""
    ve: str = ""

    @property
    def hr_value(self) -> float:
        return safe_num(self.hr)

    @property
    def speed_value(self) -> float:
        return safe_num(self.speed)

    @property
    def power_value(self) -> float:
        return safe_num(self.power)

    @property
    def vo2_value(self) -> float:
        return safe_num(self.vo2)

    @property
    def vo2_kg_value(self) -> float:
        return safe_num(self.vo2_kg)

    def intensity(self, test_type: TestType) -> str:
        return self.power if test_type is TestType.BIKE else self.speed

    def intensity_value(self, test_type: TestType) -> float:
        return safe_num(self.intensity(test_type))


@dataclass(frozen=True)
class Sample:
    time_s: float
    hr: float
    vo2: float
    ve: float
    phase: str = ""
    raw: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def power(self) -> float:
        return safe_num(self.raw.get(COL_POWER))

    @property
    def has_power_cell(self) -> bool:
        return self.raw.get(COL_POWER, "") != ""


@dataclass(frozen=True)
class ParsedTest:
    patient: Patient
    test: TestInfo
    vt1: ThresholdValues
    vt2: ThresholdValues
    peak: ThresholdValues
    measurements: Tuple[Sample, ...]
    test_type: TestType = TestType.RUN
    has_speed_data: bool = False
    has_power_data: bool = False
    power_inferred: bool = False

    def to_frame(self) -> pd.DataFrame:
        """Measurements as a DataFrame (one row per sample, recorded order)."""
        return pd.DataFrame(
            {
                "time_s": [m.time_s for m in self.measurements],
                "hr": [m.hr for m in self.measurements],
                "vo2": [m.vo2 for m in self.measurements],
                "ve": [m.ve for m in self.measurements],
                "phase": [m.phase for m in self.measurements],
                "power": [m.power for m in self.measurements],
            },
            columns=["time_s", "hr", "vo2", "ve", "phase", "power"],
        )


# --- AGE ---
def _parse_dmy(text: str) -> Optional[date]:
    parts = text.split("/")
    if len(parts) != 3:
        return None
    try:
        return date(parse_int_prefix(parts[2]), parse_int_prefix(parts[1]), parse_int_prefix(parts[0]))
    except ValueError:
        return None


def compute_age(birth: str, test_started_at: str = "", today: Optional[date] = None) -> int:
    """
    Age in whole years at the test date.

    birth:           'DD/MM/YYYY'
    test_started_at: 'DD/MM/YYYY HH:MM' (falls back to ``today`` when missing)
    Returns 0 when the birth date cannot be read.
    """
    if not birth:
        return 0
    b = _parse_dmy(birth)
    if b is None:
        return 0

    ref = today or date.today()
    if test_started_at:
        t = _parse_dmy(test_started_at.split(" ")[0])
        if t is not None:
            ref = t

    age = ref.year - b.year
    if (ref.month, ref.day) < (b.month, b.day):
        age -= 1
    return age
