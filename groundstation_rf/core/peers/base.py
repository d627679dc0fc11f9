# groundstation_rf/core/peers/base.py
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from groundstation_rf.core.bus.models import RfSignal


@dataclass
class TxModem:
    modem_number: int
    if_signal: RfSignal
    is_powered: bool = True
    is_transmitting: bool = False
    is_faulted: bool = False
    # IF loopback: the carrier skips the BUC and lands on the RX filter bank
    is_loopback: bool = False


class Antenna:
    """
    Antenna contract seen by the front end and the receiver.
    Implementations live outside the core; the front end only reads.
    """

    antenna_id: str = "antenna"

    @property
    def is_powered(self) -> bool:
        raise NotImplementedError

    @property
    def is_loopback(self) -> bool:
        raise NotImplementedError

    @property
    def skew_deg(self) -> Optional[float]:
        """Feed polarization skew in degrees, None when unknown."""
        raise NotImplementedError

    def rx_signals(self) -> List[RfSignal]:
        """Carriers currently arriving at the feed. Must NEVER throw."""
        raise NotImplementedError

    def noise_floor(self, frequency_hz: float, bandwidth_hz: float) -> float:
        raise NotImplementedError

    def radiate(self, signals: List[RfSignal]) -> None:
        """Receives the OMT TX output once per tick."""


class Transmitter:
    """A transmitter case: a handful of modems producing IF carriers."""

    transmitter_id: str = "transmitter"

    @property
    def modems(self) -> List[TxModem]:
        raise NotImplementedError
