# ==========================================
# 2. DATA TOOLS (LOCALE NUMBERS + SMOOTHING)
# ==========================================
import logging
import math
import re
from typing import Any, Optional

import numpy as np
import pandas as pd

from config import (
    MAX_PLOT_POINTS,
    PHASE_FALLBACK_CAP,
    RECOVERY_PHASE,
    REST_PHASE,
    SMOOTH_WINDOW,
)

log = logging.getLogger(__name__)

# Longest leading float literal, the way a lenient cell reader sees "60.0 kg"
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


# --- NUMBER HELPERS ---
def parse_locale_float(value: Any) -> Optional[float]:
    """Parse a French-locale number: '1,58' → 1.58, '60,0 kg' → 60.0.

    Only the first comma is treated as the decimal separator. Returns None
    when no finite number can be read.
    """
    if value is None:
        return None
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
        v = float(value)
        return v if math.isfinite(v) else None
    m = _FLOAT_PREFIX.match(str(value).replace(",", ".", 1))
    if not m:
        return None
    try:
        v = float(m.group(1))
    except (ValueError, OverflowError):
        return None
    return v if math.isfinite(v) else None


def safe_num(value: Any, default: float = 0.0) -> float:
    v = parse_locale_float(value)
    return default if v is None else v


def parse_int_prefix(text: Any) -> int:
    m = _INT_PREFIX.match(str(text)) if text is not None else None
    return int(m.group(1)) if m else 0


def parse_elapsed_time(text: str) -> float:
    """Cortex time 'h:mm:ss,ms' → seconds.

    Examples: '0:00:06,200' → 6.2, '0:25:41,040' → 1541.04.
    Missing or malformed parts count as zero.
    """
    parts = str(text).split(":")
    hours = parse_int_prefix(parts[0])
    minutes = parse_int_prefix(parts[1]) if len(parts) > 1 else 0
    if len(parts) > 2:
        sec_ms = parts[2].split(",")
        seconds = parse_int_prefix(sec_ms[0])
        millis = parse_int_prefix(sec_ms[1]) if len(sec_ms) > 1 else 0
    else:
        seconds, millis = 0, 0
    return hours * 3600 + minutes * 60 + seconds + millis / 1000.0


def round_half_up(x, ndigits: int = 0):
    """Half-up rounding for scalars, numpy arrays and Series (2.5 → 3)."""
    factor = 10.0 ** ndigits
    if isinstance(x, (np.ndarray, pd.Series)):
        return np.floor(x * factor + 0.5) / factor
    return math.floor(float(x) * factor + 0.5) / factor


def format_number(x) -> str:
    """120.0 → '120', 8.5 → '8.5' (shortest text, no trailing '.0')."""
    v = float(x)
    if math.isfinite(v) and v.is_integer():
        return str(int(v))
    return repr(v)


class DataTools:
    """Time-series preparation for the report charts and zone bands."""

    CHANNELS = (("vo2", "vo2_s", 2), ("hr", "hr_s", 0), ("ve", "ve_s", 2))

    @staticmethod
    def exercise_phase(df: pd.DataFrame) -> pd.DataFrame:
        """
        Exercise-only samples with time re-based to 0 s.

        Rest ('Repos') and recovery ('Rétablissement') rows are dropped. When
        that leaves nothing, falls back to every non-rest row (first 500,
        time left as recorded).
        """
        if df is None or df.empty:
            return pd.DataFrame(columns=list(df.columns) if df is not None else [])

        phase = df["phase"].fillna("").astype(str)
        labelled = phase != ""
        not_rest = ~phase.str.contains(REST_PHASE, regex=False)
        not_recovery = ~phase.str.contains(RECOVERY_PHASE, regex=False)

        ex = df[labelled & not_rest & not_recovery]
        if ex.empty:
            log.debug("no exercise phase found, falling back to non-rest rows")
            return df[labelled & not_rest].head(PHASE_FALLBACK_CAP).reset_index(drop=True)

        out = ex.reset_index(drop=True).copy()
        t0 = pd.to_numeric(out["time_s"], errors="coerce").iloc[0]
        if not np.isfinite(t0):
            t0 = 0.0
        out["time_s"] = pd.to_numeric(out["time_s"], errors="coerce") - t0
        return out

    @staticmethod
    def smooth(df: pd.DataFrame, window: int = SMOOTH_WINDOW,
               max_points: int = MAX_PLOT_POINTS) -> pd.DataFrame:
        """
        Decimate to about ``max_points`` rows and add smoothed channels:
        - vo2_s, ve_s: centred moving average, 2 decimals
        - hr_s:        centred moving average, integer

        Fewer rows than ``window``: one global mean per channel.
        """
        if df is None or df.empty:
            out = pd.DataFrame(columns=list(df.columns) if df is not None else [])
            for _, dst, _ in DataTools.CHANNELS:
                out[dst] = pd.Series(dtype=float)
            return out

        out = df.reset_index(drop=True).copy()
        n = len(out)

        if n < window:
            for src, dst, nd in DataTools.CHANNELS:
                mean = pd.to_numeric(out[src], errors="coerce").mean()
                out[dst] = round_half_up(mean, nd) if np.isfinite(mean) else np.nan
            return out

        stride = max(1, n // max_points)
        out = out.iloc[::stride].reset_index(drop=True)

        # [i - half, i + half) around each kept row
        half = window // (2 * stride)
        span = max(1, 2 * half)
        for src, dst, nd in DataTools.CHANNELS:
            s = pd.to_numeric(out[src], errors="coerce")
            out[dst] = round_half_up(s.rolling(window=span, min_periods=1, center=True).mean(), nd)

        log.debug("smoothed %d rows → %d (stride %d, span %d)", n, len(out), stride, span)
        return out
