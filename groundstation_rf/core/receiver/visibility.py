# groundstation_rf/core/receiver/visibility.py
"""
Which antenna carriers a receiver modem can actually demodulate.

Pure functions: same signals + same tuning always give the same answer.
Signals carry Hz; modem tuning is in MHz as entered on the front panel.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Tuple

from groundstation_rf.core.bus.models import RfSignal
from groundstation_rf.core.rf_math import span_overlap_hz

OUTER_GATE_FRACTION = 0.5
INNER_GATE_FRACTION = 0.1


class VisibilityStatus(str, Enum):
    NO_SIGNAL = "NO SIGNAL"
    FOUND = "SIGNAL FOUND"
    DEGRADED = "SIGNAL DEGRADED"
    DENIED = "SIGNAL DENIED"


@dataclass(frozen=True)
class ModemTuning:
    antenna_id: str
    frequency: float        # MHz
    bandwidth: float        # MHz
    modulation: str
    fec: str

    @property
    def frequency_hz(self) -> float:
        return self.frequency * 1e6

    @property
    def bandwidth_hz(self) -> float:
        return self.bandwidth * 1e6


@dataclass(frozen=True)
class VisibleSignal:
    signal: RfSignal
    is_degraded: bool
    offset_hz: float


@dataclass(frozen=True)
class VisibilityResult:
    signals: Tuple[VisibleSignal, ...]
    status: VisibilityStatus

    @property
    def count(self) -> int:
        return len(self.signals)


def classify(count: int) -> VisibilityStatus:
    if count == 1:
        return VisibilityStatus.FOUND
    if count == 2:
        return VisibilityStatus.DEGRADED
    if count > 2:
        return VisibilityStatus.DENIED
    return VisibilityStatus.NO_SIGNAL


def _passes_match(sig: RfSignal, tuning: ModemTuning) -> bool:
    if sig.bandwidth > tuning.bandwidth_hz:
        return False
    if span_overlap_hz(sig.frequency, sig.bandwidth, tuning.frequency_hz, tuning.bandwidth_hz) <= 0.0:
        # touching edges do not count as overlap
        return False
    return sig.modulation == tuning.modulation and sig.fec == tuning.fec


def filter_visible_signals(signals: Iterable[RfSignal], tuning: ModemTuning) -> VisibilityResult:
    """
    1. drop carriers wider than the modem, outside its span, or with other modulation/FEC
    2. keep those within +/-50% of modem bandwidth from the tuned center
    3. mark degraded anything beyond +/-10%
    """
    center = tuning.frequency_hz
    outer = tuning.bandwidth_hz * OUTER_GATE_FRACTION
    inner = tuning.bandwidth_hz * INNER_GATE_FRACTION

    kept: List[VisibleSignal] = []
    for sig in signals:
        if not _passes_match(sig, tuning):
            continue
        offset = sig.frequency - center
        if abs(offset) > outer:
            continue
        kept.append(VisibleSignal(sig, sig.is_degraded or abs(offset) > inner, offset))
    return VisibilityResult(tuple(kept), classify(len(kept)))


def overlapping_signals(signals: Iterable[RfSignal], tuning: ModemTuning) -> List[RfSignal]:
    """Carrier-detect: anything with energy inside the tuned span, whatever its format."""
    return [
        s for s in signals
        if span_overlap_hz(s.frequency, s.bandwidth, tuning.frequency_hz, tuning.bandwidth_hz) > 0.0
    ]
