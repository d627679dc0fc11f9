# groundstation_rf/core/bus/models.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Any, List
import itertools


class SignalOrigin(str, Enum):
    TRANSMITTER = "transmitter"
    SATELLITE = "satellite"
    ANTENNA = "antenna"
    BUC = "buc"
    HPA = "hpa"
    OMT_TX = "omt_tx"
    OMT_RX = "omt_rx"
    LNB = "lnb"
    FILTER = "filter"
    COUPLER = "coupler"


class Polarization(str, Enum):
    H = "H"
    V = "V"
    LHCP = "LHCP"
    RHCP = "RHCP"


class AlarmSeverity(str, Enum):
    # "off" and "success" are panel-level states, modules only raise info/warning/error
    OFF = "off"
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_signal_ids = itertools.count(1)


def next_signal_id() -> str:
    return f"sig-{next(_signal_ids)}"


@dataclass(frozen=True)
class RfSignal:
    """
    One carrier as seen at a point in the chain. Summary values only,
    there are no samples behind it.
    """
    frequency: float            # Hz
    power: float                # dBm
    bandwidth: float            # Hz
    modulation: str = "QPSK"
    fec: str = "3/4"
    origin: SignalOrigin = SignalOrigin.SATELLITE
    polarization: Optional[Polarization] = None
    is_degraded: bool = False
    id: str = field(default_factory=next_signal_id)

    def derive(self, **changes) -> "RfSignal":
        """Copy with changes; keeps the id so a carrier can be followed stage to stage."""
        return replace(self, **changes)


# Same shape; the name documents which side of a converter the value lives on.
IfSignal = RfSignal


@dataclass(frozen=True)
class ReferenceStatus:
    is_present: bool
    is_locked: bool
    accuracy: float             # fractional frequency error
    phase_noise: float          # dBc/Hz


@dataclass(frozen=True)
class TenMhzOutput:
    is_present: bool
    is_warmed_up: bool


@dataclass(frozen=True)
class AlarmStatus:
    severity: AlarmSeverity
    message: str


@dataclass(frozen=True)
class ModuleChanged:
    module: str
    state: Any
    ts: float = 0.0


@dataclass(frozen=True)
class AlarmsRaised:
    alarms: List[AlarmStatus]
    ts: float = 0.0
