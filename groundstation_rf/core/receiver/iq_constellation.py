# groundstation_rf/core/receiver/iq_constellation.py
"""
IQ constellation frames for the receiver display.

Renders the ACTUAL incoming modulation (not the configured one), with
Gaussian noise scaled from C/N. While the demodulator is not locked the
constellation rotates: carrier-loop hunting on a modulation mismatch plus
the residual frequency offset.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from groundstation_rf.core.receiver.receiver import IqSignalInfo
from groundstation_rf.core.rf_math import clamp
from groundstation_rf.settings import settings

logger = logging.getLogger(__name__)

MISMATCH_ROTATION_RATE = 0.7        # rad/s
NOISE_ONLY_POINTS = 200
NOISE_ONLY_SCALE = 0.8
CN_DISPLAY_FLOOR_DB = -50.0

MODULATION_ORDER = {"BPSK": 2, "QPSK": 4, "8QAM": 8, "16QAM": 16}

_Q = 0.707
_IDEAL = {
    "BPSK": np.array([[-1.0, 0.0], [1.0, 0.0]]),
    "QPSK": np.array([[_Q, _Q], [-_Q, _Q], [-_Q, -_Q], [_Q, -_Q]]),
    "8QAM": np.array([
        [1.0, 0.0], [_Q, _Q], [0.0, 1.0], [-_Q, _Q],
        [-1.0, 0.0], [-_Q, -_Q], [0.0, -1.0], [_Q, -_Q],
    ]),
    "16QAM": np.array([[i * 0.66, q * 0.66] for i in (-1.5, -0.5, 0.5, 1.5) for q in (-1.5, -0.5, 0.5, 1.5)]),
}


def ideal_points(modulation: Optional[str]) -> np.ndarray:
    """Reference points, Nx2 (I, Q). Unknown modulations draw as QPSK."""
    return _IDEAL.get(modulation or "QPSK", _IDEAL["QPSK"]).copy()


def noise_spread(cn_db: float) -> float:
    if cn_db < -10.0:
        return 1.0
    if cn_db > 30.0:
        return 0.02
    return clamp(1.0 / math.sqrt(2.0 * 10.0 ** (cn_db / 10.0)), 0.02, 1.0)


def samples_per_point(cn_db: float) -> int:
    # more samples at low C/N so the spread is visible
    if cn_db < 5:
        return 40
    if cn_db < 10:
        return 30
    if cn_db < 15:
        return 25
    if cn_db < 20:
        return 20
    return 15


def mismatch_order_scale(actual: Optional[str], configured: str) -> float:
    ratio = MODULATION_ORDER.get(actual or "QPSK", 4) / MODULATION_ORDER.get(configured, 4)
    return 1.0 + 0.2 * math.log2(ratio) if ratio > 1 else 0.8


def box_muller(rng: np.random.Generator, n: int) -> np.ndarray:
    """n pairs of independent standard normals, Nx2."""
    u1 = 1.0 - rng.random(n)       # (0, 1], keeps log() finite
    u2 = rng.random(n)
    mag = np.sqrt(-2.0 * np.log(u1))
    return np.column_stack((mag * np.cos(2.0 * np.pi * u2), mag * np.sin(2.0 * np.pi * u2)))


def rotate(points: np.ndarray, phase: float) -> np.ndarray:
    c, s = math.cos(phase), math.sin(phase)
    return points @ np.array([[c, s], [-s, c]])


@dataclass
class ConstellationFrame:
    points: np.ndarray              # received samples, Nx2
    reference_points: np.ndarray    # ideal points after rotation, Mx2
    cn_text: str
    lock_text: str
    status_text: str = ""


class IqConstellation:
    """Stateful between frames: carrier-hunting phase and elapsed time."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng(settings.RNG_SEED)
        self.rotation_phase = 0.0
        self.elapsed_s = 0.0
        self._last_lock_text = ""

    @staticmethod
    def cn_text(info: Optional[IqSignalInfo]) -> str:
        if info is None or not info.is_powered or info.cn_ratio_db <= CN_DISPLAY_FLOOR_DB:
            return "C/N: ---"
        return f"C/N: {info.cn_ratio_db:.1f} dB"

    @staticmethod
    def lock_text(info: Optional[IqSignalInfo]) -> str:
        if info is None or not info.is_powered:
            return "OFF"
        if info.has_lock:
            return "LOCKED"
        return "CARRIER" if info.has_carrier else "NO LOCK"

    def render(self, info: IqSignalInfo, dt: Optional[float] = None) -> ConstellationFrame:
        dt = settings.IQ_FRAME_DT_S if dt is None else max(0.0, float(dt))
        self.elapsed_s += dt
        lock = self.lock_text(info)
        if lock != self._last_lock_text:
            logger.debug("[IQ] %s -> %s", self._last_lock_text or "START", lock)
            self._last_lock_text = lock
        empty = np.empty((0, 2))

        if not info.is_powered:
            return ConstellationFrame(empty, empty, self.cn_text(None), self.lock_text(None), "MODEM OFF")

        if not info.has_carrier:
            noise = box_muller(self.rng, NOISE_ONLY_POINTS) * NOISE_ONLY_SCALE
            return ConstellationFrame(noise, empty, self.cn_text(info), self.lock_text(info))

        points = ideal_points(info.actual_modulation or info.configured_modulation)
        if info.has_lock:
            # carrier recovery compensates; display is stable
            self.rotation_phase = 0.0
        else:
            if info.modulation_mismatch:
                scale = mismatch_order_scale(info.actual_modulation, info.configured_modulation)
                self.rotation_phase += MISMATCH_ROTATION_RATE * scale * dt
                points = rotate(points, self.rotation_phase)
            else:
                self.rotation_phase = 0.0
            offset_phase = 2.0 * math.pi * (info.frequency_offset_hz / 1000.0) * self.elapsed_s
            points = rotate(points, offset_phase)

        spread = noise_spread(info.cn_ratio_db)
        n = samples_per_point(info.cn_ratio_db)
        samples = np.repeat(points, n, axis=0) + box_muller(self.rng, len(points) * n) * spread
        return ConstellationFrame(samples, points, self.cn_text(info), self.lock_text(info))
