# groundstation_rf/core/rf_math.py
"""
Scalar RF helpers shared by the front-end modules.

All functions accept plain floats. Anything that would hit log10/sqrt with a
non-positive argument returns a floor value instead of raising.
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

T0_K = 290.0                      # IEEE reference temperature
KTB_DBM_HZ_AT_1K = -198.6         # 10log10(k * 1K * 1Hz) in dBm
KTB_DBM_HZ_AT_T0 = -174.0
MIN_DB = -300.0


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def is_finite_number(value) -> bool:
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


def db_to_linear(db: float) -> float:
    return 10.0 ** (db / 10.0)


def linear_to_db(ratio: float) -> float:
    if ratio <= 0.0:
        return MIN_DB
    return 10.0 * math.log10(ratio)


def dbm_to_watts(dbm: float) -> float:
    return 10.0 ** ((dbm - 30.0) / 10.0)


def watts_to_dbm(watts: float) -> float:
    if watts <= 0.0:
        return MIN_DB
    return 10.0 * math.log10(watts) + 30.0


def noise_factor_to_temperature(factor: float) -> float:
    """T = 290 * (F - 1), F linear."""
    return T0_K * (factor - 1.0)


def noise_temperature_to_figure_db(temp_k: float) -> float:
    return linear_to_db(1.0 + max(temp_k, 0.0) / T0_K)


def friis_noise_factor(stages: Sequence[Tuple[float, float]]) -> float:
    """
    Cascaded noise factor (linear) for [(noise_figure_db, gain_db), ...].

    F = F1 + (F2 - 1)/G1 + (F3 - 1)/(G1*G2) + ...
    The last stage's gain is irrelevant.
    """
    if not stages:
        return 1.0
    nf = np.array([db_to_linear(s[0]) for s in stages], dtype=np.float64)
    gains = np.array([db_to_linear(s[1]) for s in stages], dtype=np.float64)
    # cumulative gain in front of each stage
    preceding = np.concatenate(([1.0], np.cumprod(gains)[:-1]))
    preceding = np.where(preceding > 0.0, preceding, 1e-30)
    return float(nf[0] + np.sum((nf[1:] - 1.0) / preceding[1:]))


def thermal_noise_floor_dbm(temp_k: float, bandwidth_hz: float) -> float:
    """P = -198.6 + 10log10(T) + 10log10(B)."""
    if temp_k <= 0.0 or bandwidth_hz <= 0.0:
        return MIN_DB
    return KTB_DBM_HZ_AT_1K + 10.0 * math.log10(temp_k) + 10.0 * math.log10(bandwidth_hz)


def span_overlap_hz(c1: float, bw1: float, c2: float, bw2: float) -> float:
    """Overlap of two occupied spans (center +/- bw/2). 0 when disjoint."""
    lo = max(c1 - bw1 / 2.0, c2 - bw2 / 2.0)
    hi = min(c1 + bw1 / 2.0, c2 + bw2 / 2.0)
    return max(0.0, hi - lo)


def power_sum_dbm(levels: Iterable[float]) -> float:
    total = sum(dbm_to_watts(p) for p in levels)
    return watts_to_dbm(total)
