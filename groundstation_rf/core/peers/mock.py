# groundstation_rf/core/peers/mock.py
from __future__ import annotations
from typing import Iterable, List, Optional

from groundstation_rf.core.bus.models import Polarization, RfSignal, SignalOrigin
from groundstation_rf.core.peers.base import Antenna, Transmitter, TxModem
from groundstation_rf.core.rf_math import thermal_noise_floor_dbm


class MockAntenna(Antenna):
    """In-memory antenna: a fixed list of sky signals, no pointing model."""

    def __init__(
        self,
        antenna_id: str = "antenna-1",
        signals: Optional[Iterable[RfSignal]] = None,
        skew_deg: Optional[float] = 0.0,
        noise_temperature_k: float = 50.0,
    ):
        self.antenna_id = antenna_id
        self.signals: List[RfSignal] = list(signals or [])
        self._skew_deg = skew_deg
        self._is_powered = True
        self._is_loopback = False
        self.noise_temperature_k = noise_temperature_k
        self.radiated: List[RfSignal] = []

    @property
    def is_powered(self) -> bool:
        return self._is_powered

    @is_powered.setter
    def is_powered(self, value: bool) -> None:
        self._is_powered = bool(value)

    @property
    def is_loopback(self) -> bool:
        return self._is_loopback

    @is_loopback.setter
    def is_loopback(self, value: bool) -> None:
        self._is_loopback = bool(value)

    @property
    def skew_deg(self) -> Optional[float]:
        return self._skew_deg

    @skew_deg.setter
    def skew_deg(self, value: Optional[float]) -> None:
        self._skew_deg = value

    def rx_signals(self) -> List[RfSignal]:
        if not self._is_powered:
            return []
        return list(self.signals)

    def noise_floor(self, frequency_hz: float, bandwidth_hz: float) -> float:
        return thermal_noise_floor_dbm(self.noise_temperature_k, bandwidth_hz)

    def radiate(self, signals: List[RfSignal]) -> None:
        self.radiated = list(signals)

    def add_signal(self, sig: RfSignal) -> None:
        self.signals.append(sig)


class MockTransmitter(Transmitter):
    def __init__(self, transmitter_id: str = "tx-1", modems: Optional[Iterable[TxModem]] = None):
        self.transmitter_id = transmitter_id
        self._modems: List[TxModem] = list(modems or [])

    @property
    def modems(self) -> List[TxModem]:
        return self._modems

    def add_modem(
        self,
        frequency_hz: float = 1200e6,
        power_dbm: float = -10.0,
        bandwidth_hz: float = 10e6,
        modulation: str = "QPSK",
        fec: str = "3/4",
        is_transmitting: bool = True,
        is_loopback: bool = False,
    ) -> TxModem:
        modem = TxModem(
            modem_number=len(self._modems) + 1,
            if_signal=RfSignal(
                frequency=frequency_hz,
                power=power_dbm,
                bandwidth=bandwidth_hz,
                modulation=modulation,
                fec=fec,
                origin=SignalOrigin.TRANSMITTER,
                polarization=Polarization.H,
            ),
            is_transmitting=is_transmitting,
            is_loopback=is_loopback,
        )
        self._modems.append(modem)
        return modem
