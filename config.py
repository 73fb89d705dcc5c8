# ==========================================
# 1. CONFIGURATION (LIMITS + DEVICE FORMAT CONSTANTS)
# ==========================================
from dataclasses import dataclass, field
from typing import Dict, Tuple

# --- SPREADSHEETML EXPORT (FRENCH CORTEX LAYOUT) ---
SS_NS = "urn:schemas-microsoft-com:office:spreadsheet"

SECTION_PATIENT = "Données du patient"
SECTION_TEST = "Données test"
SECTION_SUMMARY = "Tableau Résumé"
SECTION_MEASUREMENT = "Measurement Data"

SUMMARY_HEADER_LABEL = "Variable"
MEASUREMENT_HEADER_LABEL = "t"
MEASUREMENT_UNITS_LABEL = "h:mm:ss,ms"

# Row label → record field, for the key/value sections
PATIENT_FIELDS: Dict[str, str] = {
    "Nom":               "last_name",
    "Prénom":            "first_name",
    "Date de Naissance": "birth_date",
    "Sexe":              "sex",
    "Poids":             "weight",
}
TEST_FIELDS: Dict[str, str] = {
    "Heure de début":    "started_at",
}

# Summary row label → ThresholdValues attribute
SUMMARY_ROWS: Dict[str, str] = {
    "V'O2":    "vo2",
    "V'O2/kg": "vo2_kg",
    "FC":      "hr",
    "v":       "speed",
    "TT":      "power",
    "V'E":     "ve",
}
SPEED_ROW = "v"
POWER_ROW = "TT"

# Fixed 0-based columns of the VT1 / VT2 / peak values in the summary table.
# Device-specific, documented rather than detected.
SUMMARY_COLUMNS: Dict[str, int] = {"vt1": 5, "vt2": 8, "peak": 11}

# Measurement header names
COL_HR = "FC"
COL_VO2 = "V'O2"
COL_VE = "V'E"
COL_PHASE = "Phase"
COL_POWER = "TT"

REST_PHASE = "Repos"
RECOVERY_PHASE = "Rétablissement"

# --- DERIVATION CONSTANTS ---
POWER_MATCH_HR_TOLERANCE = 5      # bpm above target still accepted as a VT1/VT2 match
MIN_SEGMENT_DURATION_S = 15.0
SMOOTH_WINDOW = 30                # samples
MAX_PLOT_POINTS = 2000
PHASE_FALLBACK_CAP = 500
Z4_HR_FACTOR = 1.05

SPORT_ENDURANCE = "endurance"
SPORT_OTHER = "other"
SPORT_TYPES: Tuple[str, ...] = (SPORT_ENDURANCE, SPORT_OTHER)


@dataclass(frozen=True)
class ValidationLimits:
    # --- PHYSIOLOGICAL RANGES ---
    hr_min: float = 30
    hr_max: float = 250
    speed_min: float = 0       # km/h
    speed_max: float = 30
    power_min: float = 0       # W
    power_max: float = 500
    vo2_min: float = 0         # L/min
    vo2_max: float = 10
    vo2_kg_min: float = 0      # ml/kg/min
    vo2_kg_max: float = 100


@dataclass(frozen=True)
class ReportConfig:
    # --- INPUT LIMITS ---
    max_data_points: int = 10000
    min_measurements: int = 10
    max_file_size_mb: float = 50

    # --- SMOOTHING / ZONES ---
    smooth_window: int = SMOOTH_WINDOW
    max_plot_points: int = MAX_PLOT_POINTS
    min_segment_duration_s: float = MIN_SEGMENT_DURATION_S

    validation: ValidationLimits = field(default_factory=ValidationLimits)

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)


DEFAULT_CONFIG = ReportConfig()
