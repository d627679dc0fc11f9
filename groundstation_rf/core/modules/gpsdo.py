# groundstation_rf/core/modules/gpsdo.py
"""
GPS-disciplined 10 MHz reference.

Modes: OFF -> WARMING -> ACQUIRING -> LOCKED <-> HOLDOVER

Every other converter reads lock/warmup through get_10mhz_output() and
get_reference_status(); nothing outside this module writes GpsdoState.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from groundstation_rf.core.bus.models import ReferenceStatus, TenMhzOutput
from groundstation_rf.core.modules.base import Countdown, IntervalTimer, RfModule, StateCallback
from groundstation_rf.core.rf_math import clamp
from groundstation_rf.settings import settings

logger = logging.getLogger(__name__)

AMBIENT_C = 25.0
OVEN_SETPOINT_C = 70.0
OVEN_MIN_C = 65.0
OVEN_MAX_C = 75.0

HOLDOVER_DRIFT_US_PER_HOUR = 1.67
HOLDOVER_WARN_US = 30.0
HOLDOVER_LIMIT_US = 40.0

# warming interpolates from these toward the locked values
COLD_ACCURACY = 1000.0      # x1e-11
COLD_ALLAN = 100.0
COLD_PHASE_NOISE = -80.0
LOCKED_ACCURACY = 2.0
LOCKED_ALLAN = 2.0
LOCKED_PHASE_NOISE = -127.0

STABILITY_PERIOD_S = 5.0
WARMUP_STEP_S = 1.0
MIN_SATS = 4
MAX_SATS = 12


class GpsdoMode(str, Enum):
    OFF = "OFF"
    WARMING = "WARMING"
    ACQUIRING = "ACQUIRING"
    LOCKED = "LOCKED"
    HOLDOVER = "HOLDOVER"


@dataclass
class GpsdoState:
    is_powered: bool = True
    is_locked: bool = True
    warmup_time_remaining: float = 0.0     # s
    temperature: float = OVEN_SETPOINT_C   # oven, C
    gnss_signal_present: bool = True
    is_gnss_switch_up: bool = True
    is_gnss_acquiring_lock: bool = False
    satellite_count: int = 9
    utc_accuracy: float = 0.0              # ns
    constellation: str = "GPS"
    lock_duration: float = 0.0             # s
    frequency_accuracy: float = 0.0        # x1e-11
    allan_deviation: float = 0.0           # x1e-11
    phase_noise: float = 0.0               # dBc/Hz @ 10 Hz
    is_in_holdover: bool = False
    holdover_duration: float = 0.0         # s
    holdover_error: float = 0.0            # us
    active_10mhz_outputs: int = 2
    max_10mhz_outputs: int = 5
    output_10mhz_level: float = 0.0        # dBm
    pps_outputs_enabled: bool = False
    operating_hours: float = 6.0
    self_test_passed: bool = True
    aging_rate: float = 0.0                # ppb/year


class GpsdoModule(RfModule[GpsdoState]):
    name = "gpsdo"
    TAG = "[GPSDO]"
    WATCHED_FIELDS = (
        "is_powered", "is_locked", "warmup_time_remaining", "gnss_signal_present",
        "is_gnss_switch_up", "is_gnss_acquiring_lock", "satellite_count",
        "is_in_holdover", "holdover_error", "temperature",
    )

    def __init__(self, front_end=None, state=None, rng=None, warmup_total_s: Optional[float] = None):
        super().__init__(front_end, state, rng)
        self.warmup_total_s = float(warmup_total_s if warmup_total_s is not None else settings.gpsdo_warmup_s)
        self.acquire_delay_s = settings.GNSS_ACQUIRE_DELAY_S

        self._warmup_timer = IntervalTimer(WARMUP_STEP_S)
        self._stability_timer = IntervalTimer(STABILITY_PERIOD_S)
        self._gnss_countdown = Countdown()
        self._gnss_callback: StateCallback = None
        self._aging_accumulated = 0.0
        self._limit_logged = False

        self.on_sync()

    @classmethod
    def default_state(cls) -> GpsdoState:
        return GpsdoState()

    # -------------------------------------------------
    # Derived views
    # -------------------------------------------------
    @property
    def mode(self) -> GpsdoMode:
        st = self._state
        if not st.is_powered:
            return GpsdoMode.OFF
        if st.warmup_time_remaining > 0:
            return GpsdoMode.WARMING
        if st.is_in_holdover:
            return GpsdoMode.HOLDOVER
        if st.is_locked:
            return GpsdoMode.LOCKED
        return GpsdoMode.ACQUIRING

    def is_output_stable(self) -> bool:
        st = self._state
        return st.is_powered and st.is_locked and st.warmup_time_remaining == 0

    def get_frequency_accuracy(self) -> float:
        return self._state.frequency_accuracy * 1e-11

    def get_10mhz_output(self) -> TenMhzOutput:
        return TenMhzOutput(
            is_present=self._state.is_powered,
            is_warmed_up=self._state.is_powered and self._state.warmup_time_remaining == 0,
        )

    def get_reference_status(self) -> ReferenceStatus:
        return ReferenceStatus(
            is_present=self._state.is_powered,
            is_locked=self.is_output_stable(),
            accuracy=self.get_frequency_accuracy(),
            phase_noise=self._state.phase_noise,
        )

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        st = self._state
        if not st.is_powered:
            self._stop_timers()
            st.is_locked = False
            self._update_thermal(dt)
            self._update_signal_quality()
            return

        self._update_thermal(dt)
        self._advance_warmup(dt)
        self._advance_gnss_acquisition(dt)
        self._update_lock_status()
        self._advance_stability(dt)
        self._advance_holdover(dt)
        self._update_signal_quality()

        # locked implies powered and warm, every tick
        if st.is_locked and st.warmup_time_remaining > 0:
            st.is_locked = False

    def _update_thermal(self, dt: float) -> None:
        st = self._state
        if not st.is_powered:
            # oven insulation: very slow passive cooling
            k = 1.0 - math.exp(-1e-4 * max(dt, 0.0))
            st.temperature += (AMBIENT_C - st.temperature) * k
            return
        tau = max(self.warmup_total_s / 12.0, 1e-6)
        st.temperature += (OVEN_SETPOINT_C - st.temperature) * (1.0 - math.exp(-max(dt, 0.0) / tau))

    def _advance_warmup(self, dt: float) -> None:
        st = self._state
        if st.warmup_time_remaining <= 0:
            self._warmup_timer.stop()
            st.warmup_time_remaining = 0.0
            return
        self._warmup_timer.start()
        steps = self._warmup_timer.advance(dt)
        if steps:
            st.warmup_time_remaining = max(0.0, st.warmup_time_remaining - steps * WARMUP_STEP_S)
            if st.warmup_time_remaining == 0:
                self._warmup_timer.stop()
                logger.info("[GPSDO] oven warmed up")

    def _advance_gnss_acquisition(self, dt: float) -> None:
        if not self._gnss_countdown.advance(dt):
            return
        st = self._state
        st.gnss_signal_present = True
        st.is_gnss_acquiring_lock = False
        st.satellite_count = int(self.rng.integers(MIN_SATS, MAX_SATS + 1))
        if st.is_in_holdover:
            logger.info("[GPSDO] GNSS reacquired after %.0f s holdover (%.2f us)",
                        st.holdover_duration, st.holdover_error)
        self._reset_holdover()
        logger.info("[GPSDO] GNSS acquired, %d satellites", st.satellite_count)
        self._update_lock_status()
        cb, self._gnss_callback = self._gnss_callback, None
        self._changed(cb)

    def _update_lock_status(self) -> None:
        st = self._state
        can_lock = st.is_powered and st.is_gnss_switch_up and st.warmup_time_remaining == 0

        if st.is_locked and not st.gnss_signal_present:
            self._enter_holdover()
            return

        if can_lock:
            if not st.is_locked and st.gnss_signal_present:
                self._achieve_lock()
        else:
            st.is_locked = False
            st.lock_duration = 0.0

    def _achieve_lock(self) -> None:
        st = self._state
        st.is_locked = True
        st.lock_duration = 0.0
        st.frequency_accuracy = LOCKED_ACCURACY
        st.allan_deviation = LOCKED_ALLAN
        st.phase_noise = LOCKED_PHASE_NOISE
        self._reset_holdover()
        self._stability_timer.start()
        logger.info("[GPSDO] locked to %s", st.constellation)

    def _enter_holdover(self) -> None:
        st = self._state
        if st.is_in_holdover:
            st.is_locked = False
            return
        st.is_locked = False
        st.is_in_holdover = True
        st.is_gnss_acquiring_lock = False
        st.satellite_count = 0
        st.holdover_duration = 0.0
        st.holdover_error = 0.0
        self._aging_accumulated = 0.0
        self._limit_logged = False
        logger.info("[GPSDO] GNSS lost while locked, entering holdover")

    def _reset_holdover(self) -> None:
        st = self._state
        st.is_in_holdover = False
        st.holdover_duration = 0.0
        st.holdover_error = 0.0
        self._aging_accumulated = 0.0
        self._limit_logged = False

    def _advance_stability(self, dt: float) -> None:
        st = self._state
        self._stability_timer.start()
        fired = self._stability_timer.advance(dt)
        for _ in range(fired):
            if not st.is_locked:
                continue
            st.lock_duration += STABILITY_PERIOD_S
            st.operating_hours += STABILITY_PERIOD_S / 3600.0
            if st.gnss_signal_present and self.rng.random() < 0.2:
                step = int(self.rng.integers(-1, 2))
                st.satellite_count = int(clamp(st.satellite_count + step, MIN_SATS, MAX_SATS))

    def _advance_holdover(self, dt: float) -> None:
        st = self._state
        if not st.is_in_holdover or dt <= 0:
            return
        st.holdover_duration += dt
        st.holdover_error = HOLDOVER_DRIFT_US_PER_HOUR * st.holdover_duration / 3600.0
        # aging rate in ppb/year, accumulated per second of holdover
        self._aging_accumulated += st.aging_rate * 0.05 / (365 * 86400) * dt
        if st.holdover_error > HOLDOVER_LIMIT_US and not self._limit_logged:
            self._limit_logged = True
            logger.warning("[GPSDO] holdover error %.1f us exceeds %.0f us limit",
                           st.holdover_error, HOLDOVER_LIMIT_US)

    def _update_signal_quality(self) -> None:
        st = self._state
        if not st.is_powered:
            st.phase_noise = 0.0
            st.frequency_accuracy = 999.0
            st.allan_deviation = 99.0
            st.utc_accuracy = 0.0
            return

        if st.warmup_time_remaining > 0:
            p = clamp(1.0 - st.warmup_time_remaining / max(self.warmup_total_s, 1e-6), 0.0, 1.0)
            st.frequency_accuracy = COLD_ACCURACY * (LOCKED_ACCURACY / COLD_ACCURACY) ** p
            st.allan_deviation = COLD_ALLAN * (LOCKED_ALLAN / COLD_ALLAN) ** p
            st.phase_noise = COLD_PHASE_NOISE + (LOCKED_PHASE_NOISE - COLD_PHASE_NOISE) * p
            st.utc_accuracy = 0.0
            return

        if st.is_in_holdover:
            degradation = st.holdover_error * 0.05
            st.phase_noise = -120.0 - float(self.rng.uniform(0.0, 5.0))
            st.frequency_accuracy = LOCKED_ACCURACY + degradation + self._aging_accumulated
            st.allan_deviation = LOCKED_ALLAN + degradation
            st.utc_accuracy = 0.0
            return

        if st.is_locked:
            st.frequency_accuracy = LOCKED_ACCURACY + float(self.rng.uniform(-0.25, 0.25))
            st.allan_deviation = LOCKED_ALLAN + float(self.rng.uniform(-0.25, 0.25))
            st.phase_noise = LOCKED_PHASE_NOISE + float(self.rng.uniform(-1.0, 1.0))
            st.utc_accuracy = float(self.rng.uniform(20.0, 100.0))
            return

        # warm but free-running
        st.frequency_accuracy = 999.0
        st.allan_deviation = 99.0
        st.phase_noise = COLD_PHASE_NOISE
        st.utc_accuracy = 0.0

    def _stop_timers(self) -> None:
        self._warmup_timer.stop()
        self._stability_timer.stop()
        self._gnss_countdown.cancel()
        self._gnss_callback = None

    def on_sync(self) -> None:
        st = self._state
        st.warmup_time_remaining = clamp(st.warmup_time_remaining, 0.0, self.warmup_total_s)
        if not st.is_powered:
            self._stop_timers()
            st.is_locked = False
            return
        if st.warmup_time_remaining > 0:
            st.is_locked = False
            self._warmup_timer.start()
        self._stability_timer.start()

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_power_toggle(self, is_powered: bool, cb: StateCallback = None) -> None:
        st = self._state
        if not isinstance(is_powered, bool):
            logger.warning("[GPSDO] ignoring power toggle %r", is_powered)
            return
        st.is_powered = is_powered
        if is_powered:
            st.warmup_time_remaining = self.warmup_total_s
            st.temperature = AMBIENT_C
            st.is_locked = False
            st.lock_duration = 0.0
            st.gnss_signal_present = False
            st.satellite_count = 0
            st.allan_deviation = COLD_ALLAN
            st.frequency_accuracy = COLD_ACCURACY
            st.phase_noise = COLD_PHASE_NOISE
            self._reset_holdover()
            self._warmup_timer.start()
            self._stability_timer.start()
            if st.is_gnss_switch_up:
                self._start_acquisition(None)
            logger.info("[GPSDO] power on, warming for %.0f s", self.warmup_total_s)
        else:
            st.is_locked = False
            st.is_in_holdover = False
            st.holdover_duration = 0.0
            st.holdover_error = 0.0
            st.gnss_signal_present = False
            st.is_gnss_acquiring_lock = False
            st.satellite_count = 0
            st.lock_duration = 0.0
            self._stop_timers()
            self._update_signal_quality()
            logger.info("[GPSDO] power off")
        self._changed(cb)

    def handle_gnss_toggle(self, is_switch_up: bool, cb: StateCallback = None) -> None:
        """
        cb fires once the acquisition delay elapses in simulation time,
        not when this call returns.
        """
        st = self._state
        if not isinstance(is_switch_up, bool):
            logger.warning("[GPSDO] ignoring GNSS toggle %r", is_switch_up)
            return
        st.is_gnss_switch_up = is_switch_up

        if is_switch_up and st.is_powered:
            if not st.gnss_signal_present:
                self._start_acquisition(cb)
            elif cb is not None:
                cb(st)
        else:
            st.gnss_signal_present = False
            st.is_gnss_acquiring_lock = False
            self._gnss_countdown.cancel()
            self._gnss_callback = None
            if st.is_locked:
                self._enter_holdover()
            elif st.is_powered:
                st.satellite_count = 0
            self._update_lock_status()
        self._changed()

    def _start_acquisition(self, cb: StateCallback) -> None:
        st = self._state
        st.is_gnss_acquiring_lock = True
        self._gnss_countdown.start(self.acquire_delay_s)
        self._gnss_callback = cb
        logger.info("[GPSDO] acquiring GNSS (%.0f s)", self.acquire_delay_s)

    # -------------------------------------------------
    # Alarms
    # -------------------------------------------------
    def get_alarms(self) -> List[str]:
        st = self._state
        alarms: List[str] = []
        if not st.is_powered:
            return alarms
        if not st.is_locked and st.warmup_time_remaining == 0:
            alarms.append("GPSDO not locked")
        if not st.gnss_signal_present:
            alarms.append("GNSS signal lost")
        if st.is_in_holdover:
            alarms.append(f"GPSDO in holdover ({st.holdover_error:.1f} μs error)")
        if st.holdover_error > HOLDOVER_LIMIT_US:
            alarms.append(f"GPSDO holdover limit exceeded (>{HOLDOVER_LIMIT_US:.0f} μs)")
        elif st.holdover_error > HOLDOVER_WARN_US:
            alarms.append(f"GPSDO holdover approaching limit (>{HOLDOVER_WARN_US:.0f} μs)")
        if st.temperature > OVEN_MAX_C or st.temperature < OVEN_MIN_C:
            alarms.append(f"GPSDO oven temperature out of range ({st.temperature:.1f} °C)")
        if not st.self_test_passed:
            alarms.append("GPSDO self-test failed")
        return alarms
