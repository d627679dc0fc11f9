# groundstation_rf/core/receiver/receiver.py
"""
Four-modem satellite receiver.

Reads carriers straight from the connected antennas and decides, per modem,
what it can see (visibility) and what the demodulator would report (IQ info).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from groundstation_rf.core.bus.models import RfSignal
from groundstation_rf.core.peers.base import Antenna
from groundstation_rf.core.receiver.modem_presets import get_preset
from groundstation_rf.core.receiver.visibility import (
    ModemTuning,
    VisibilityResult,
    VisibilityStatus,
    filter_visible_signals,
    overlapping_signals,
)
from groundstation_rf.core.rf_math import MIN_DB, T0_K, thermal_noise_floor_dbm

logger = logging.getLogger(__name__)

MODEM_COUNT = 4

Modulation = Literal["BPSK", "QPSK", "8QAM", "16QAM"]
Fec = Literal["1/2", "2/3", "3/4", "5/6", "7/8"]

# Minimum C/N (dB) for the demodulator to hold lock
REQUIRED_CN_DB: Dict[str, float] = {
    "BPSK": 7.0,
    "QPSK": 10.0,
    "8QAM": 13.0,
    "16QAM": 16.0,
}
DEFAULT_REQUIRED_CN_DB = 10.0


class ModemConfig(BaseModel):
    """Operator-entered tuning. Every field optional so the panel can send deltas."""
    model_config = ConfigDict(extra="forbid")

    antenna_id: Optional[str] = Field(default=None, min_length=1)
    frequency: Optional[float] = Field(default=None, gt=0, le=60000, allow_inf_nan=False)   # MHz
    bandwidth: Optional[float] = Field(default=None, gt=0, le=500, allow_inf_nan=False)     # MHz
    modulation: Optional[Modulation] = None
    fec: Optional[Fec] = None


@dataclass
class ReceiverModemState:
    modem_number: int
    antenna_id: str = ""
    frequency: float = 4700.0       # MHz
    bandwidth: float = 50.0         # MHz
    modulation: str = "QPSK"
    fec: str = "3/4"
    is_powered: bool = True

    def tuning(self) -> ModemTuning:
        return ModemTuning(self.antenna_id, self.frequency, self.bandwidth, self.modulation, self.fec)


@dataclass
class ReceiverState:
    active_modem: int = 1
    modems: List[ReceiverModemState] = field(default_factory=list)


@dataclass(frozen=True)
class IqSignalInfo:
    """What the demodulator reports for one modem."""
    is_powered: bool
    has_carrier: bool
    has_lock: bool
    cn_ratio_db: float
    configured_modulation: str
    actual_modulation: Optional[str]
    frequency_offset_hz: float
    modulation_mismatch: bool
    fec_mismatch: bool


class Receiver:
    def __init__(
        self,
        antennas: Optional[Iterable[Antenna]] = None,
        front_end=None,
        receiver_id: str = "rx-1",
    ):
        self.receiver_id = receiver_id
        self.antennas: List[Antenna] = list(antennas or [])
        self.front_end = front_end
        default_antenna = self.antennas[0].antenna_id if self.antennas else ""
        self.state = ReceiverState(
            modems=[ReceiverModemState(n, antenna_id=default_antenna) for n in range(1, MODEM_COUNT + 1)]
        )

    # -------------------------------------------------
    # Modem selection / config
    # -------------------------------------------------
    def get_modem(self, modem_number: Optional[int] = None) -> Optional[ReceiverModemState]:
        n = self.state.active_modem if modem_number is None else modem_number
        for m in self.state.modems:
            if m.modem_number == n:
                return m
        return None

    @property
    def active_modem(self) -> ReceiverModemState:
        return self.get_modem()

    def set_active_modem(self, modem_number: int) -> bool:
        if self.get_modem(modem_number) is None:
            logger.warning("[RX] no modem %r", modem_number)
            return False
        self.state.active_modem = modem_number
        return True

    def handle_modem_config_change(self, data: Mapping[str, Any], modem_number: Optional[int] = None) -> bool:
        modem = self.get_modem(modem_number)
        if modem is None:
            logger.warning("[RX] config for unknown modem %r ignored", modem_number)
            return False
        try:
            cfg = ModemConfig(**dict(data))
        except ValidationError as e:
            logger.warning("[RX] modem %d config rejected: %s", modem.modem_number, e.errors())
            return False

        changes = cfg.model_dump(exclude_none=True)
        for key, value in changes.items():
            setattr(modem, key, value)
        if changes:
            logger.info("[RX] modem %d tuned: %s", modem.modem_number, changes)
        return True

    def apply_preset(self, name: str, modem_number: Optional[int] = None) -> bool:
        try:
            preset = get_preset(name)
        except KeyError:
            logger.warning("[RX] unknown preset %r", name)
            return False
        preset.pop("name", None)
        preset.pop("notes", None)
        return self.handle_modem_config_change(preset, modem_number)

    def handle_power_toggle(self, is_powered: Optional[bool] = None, modem_number: Optional[int] = None) -> None:
        modem = self.get_modem(modem_number)
        if modem is None:
            return
        modem.is_powered = (not modem.is_powered) if is_powered is None else bool(is_powered)
        logger.info("[RX] modem %d power %s", modem.modem_number, "ON" if modem.is_powered else "OFF")

    # -------------------------------------------------
    # Signal acquisition
    # -------------------------------------------------
    def connect_antenna(self, antenna: Antenna) -> None:
        if antenna not in self.antennas:
            self.antennas.append(antenna)
        for m in self.state.modems:
            if not m.antenna_id:
                m.antenna_id = antenna.antenna_id

    def _antenna_signals(self, modem: ReceiverModemState) -> List[RfSignal]:
        for ant in self.antennas:
            if ant.antenna_id == modem.antenna_id:
                return ant.rx_signals()
        return []

    def get_visible_signals(self, modem_number: Optional[int] = None) -> VisibilityResult:
        modem = self.get_modem(modem_number)
        if modem is None or not modem.is_powered:
            return VisibilityResult((), VisibilityStatus.NO_SIGNAL)
        return filter_visible_signals(self._antenna_signals(modem), modem.tuning())

    def get_modem_status(self, modem_number: Optional[int] = None) -> VisibilityStatus:
        return self.get_visible_signals(modem_number).status

    def get_led_color(self, modem_number: Optional[int] = None) -> str:
        modem = self.get_modem(modem_number)
        if modem is None or not modem.is_powered:
            return "led-off"
        result = self.get_visible_signals(modem_number)
        if result.count > 2:
            return "led-red"
        if result.count == 2 or (result.count == 1 and result.signals[0].is_degraded):
            return "led-amber"
        if result.count == 1:
            return "led-green"
        return "led-off"

    # -------------------------------------------------
    # Demodulator view
    # -------------------------------------------------
    def _noise_temperature_k(self) -> float:
        lnb = getattr(self.front_end, "lnb", None) if self.front_end is not None else None
        if lnb is not None and lnb.state.is_powered:
            return lnb.state.noise_temperature
        return T0_K

    def _lnb_frequency_error_hz(self) -> float:
        lnb = getattr(self.front_end, "lnb", None) if self.front_end is not None else None
        return lnb.state.frequency_error if lnb is not None else 0.0

    def get_iq_info(self, modem_number: Optional[int] = None) -> IqSignalInfo:
        modem = self.get_modem(modem_number)
        if modem is None or not modem.is_powered:
            configured = modem.modulation if modem is not None else "QPSK"
            return IqSignalInfo(False, False, False, MIN_DB, configured, None, 0.0, False, False)

        tuning = modem.tuning()
        signals = self._antenna_signals(modem)
        in_band = overlapping_signals(signals, tuning)
        if not in_band:
            return IqSignalInfo(True, False, False, MIN_DB, modem.modulation, None, 0.0, False, False)

        strongest = max(in_band, key=lambda s: s.power)
        noise = thermal_noise_floor_dbm(self._noise_temperature_k(), strongest.bandwidth)
        cn = strongest.power - noise

        visible = filter_visible_signals(signals, tuning)
        required = REQUIRED_CN_DB.get(modem.modulation, DEFAULT_REQUIRED_CN_DB)
        has_lock = visible.count > 0 and cn >= required

        return IqSignalInfo(
            is_powered=True,
            has_carrier=True,
            has_lock=has_lock,
            cn_ratio_db=cn,
            configured_modulation=modem.modulation,
            actual_modulation=strongest.modulation,
            frequency_offset_hz=(strongest.frequency - tuning.frequency_hz) + self._lnb_frequency_error_hz(),
            modulation_mismatch=strongest.modulation != modem.modulation,
            fec_mismatch=strongest.fec != modem.fec,
        )
