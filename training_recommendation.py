"""
Training recommendation from the VT1/VT2 spread and VO2peak/kg.
Spread bands: < 8, < 12, < 18, >= 18 bpm.
Fitness level: D (< 35 ml/kg/min), I (35-45), A (>= 45).
"""
from dataclasses import dataclass
from typing import Optional

from cpet_record import TestType
from data_tools import format_number, round_half_up

FOLLOW_UP = "Retest conseillé dans 8-12 semaines."
NARROW_Z2_BPM = 5

LEVEL_DECONDITIONED = "D"
LEVEL_INTERMEDIATE = "I"
LEVEL_ADVANCED = "A"


# ═══════════════════════════════════════════════════════════════
# LAYER 1: Recommendation (output)
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Recommendation:
    analysis: str
    priority: str
    complementary: str
    high_intensity: str
    warning: Optional[str]
    follow_up: str
    level: str


# ═══════════════════════════════════════════════════════════════
# LAYER 2: Classification
# ═══════════════════════════════════════════════════════════════
def fitness_level(vo2_kg: float) -> str:
    if vo2_kg < 35:
        return LEVEL_DECONDITIONED
    if vo2_kg >= 45:
        return LEVEL_ADVANCED
    return LEVEL_INTERMEDIATE


def spread_analysis(width: float) -> str:
    w = format_number(width)
    if width < 8:
        return f"Zones étroites ({w} bpm). Priorité: élargir via Z2."
    if width < 12:
        return "Zones relativement étroites. Objectif: les élargir."
    if width < 18:
        return f"Zones modérées ({w} bpm). Bonne flexibilité."
    return f"Zones bien espacées ({w} bpm). Excellente adaptation."


# ═══════════════════════════════════════════════════════════════
# LAYER 3: Guidance per level
# ═══════════════════════════════════════════════════════════════
def _guidance(level: str, fc1: float, s1: float, test_type: TestType):
    bike = test_type is TestType.BIKE
    intensity = f"{int(round_half_up(s1))} W" if bike else f"{s1:.1f} km/h"
    activity = "vélo" if bike else "course"

    if level == LEVEL_DECONDITIONED:
        easy = "pédalage léger" if bike else "marche, footing lent"
        return (
            f"Z2: 3-4×/sem (30-60 min) sous {format_number(fc1)} bpm. Construire la base aérobie.",
            f"Z1: récup active ({easy}). Régularité > intensité.",
            "Z3-5: éviter 8-12 semaines. Focus volume Z2.",
        )
    if level == LEVEL_ADVANCED:
        hills = "" if bike else "/côtes"
        return (
            f"Z2: 2-3×/sem (60-120 min) à {intensity}. Endurance lipidique.",
            f"Z3: 1-2×/sem tempo (20-40 min) ou 4×10 min progressif en {activity}.",
            f"Z4-5: 1×/sem intervalles{hills}. 48h récup après.",
        )
    return (
        "Z2: 2-3×/sem (45-90 min) allure confortable. Base aérobie.",
        "Z3: 1×/sem blocs 5-10 min (3-4×8 min) + récup courte.",
        "Z4-5: occasionnel, non prioritaire pour endurance.",
    )


# ═══════════════════════════════════════════════════════════════
# MAIN ENGINE FUNCTION
# ═══════════════════════════════════════════════════════════════
def generate_recommendation(fc1: float, fc2: float, s1: float, vo2_kg: float,
                            test_type: TestType = TestType.RUN) -> Recommendation:
    """VT1/VT2 HR, VT1 speed or power, VO2peak/kg → qualitative guidance."""
    level = fitness_level(vo2_kg)
    priority, complementary, high = _guidance(level, fc1, s1, test_type)

    z2_width = round_half_up((fc1 + fc2) / 2) - fc1
    warning = None
    if z2_width < NARROW_Z2_BPM:
        warning = (f"⚠️ Z2 étroite ({format_number(z2_width)} bpm). "
                   f"Max {format_number(fc1 + z2_width)} bpm en sortie longue.")

    return Recommendation(
        analysis=spread_analysis(fc2 - fc1),
        priority=priority,
        complementary=complementary,
        high_intensity=high,
        warning=warning,
        follow_up=FOLLOW_UP,
        level=level,
    )
