# groundstation_rf/core/modules/base.py
from __future__ import annotations

import dataclasses
import logging
import math
import types
import typing
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar, Union

import numpy as np

from groundstation_rf.core.rf_math import is_finite_number
from groundstation_rf.settings import settings

logger = logging.getLogger(__name__)

S = TypeVar("S")
StateCallback = Optional[Callable[[Any], None]]


# -------------------------------------------------
# Simulated-time helpers
# -------------------------------------------------
class IntervalTimer:
    """
    Periodic timer driven by elapsed simulation time.
    advance() returns how many periods elapsed; stop() forgets any partial period.
    """

    def __init__(self, period_s: float):
        self.period_s = float(period_s)
        self._acc = 0.0
        self.running = False

    def start(self) -> None:
        if not self.running:
            self.running = True
            self._acc = 0.0

    def stop(self) -> None:
        self.running = False
        self._acc = 0.0

    def advance(self, dt: float) -> int:
        if not self.running or dt <= 0:
            return 0
        self._acc += dt
        fired = int(self._acc // self.period_s)
        self._acc -= fired * self.period_s
        return fired


class Countdown:
    """One-shot delay. advance() returns True exactly once, on expiry."""

    def __init__(self):
        self.remaining: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.remaining is not None

    def start(self, seconds: float) -> None:
        self.remaining = max(0.0, float(seconds))

    def cancel(self) -> None:
        self.remaining = None

    def advance(self, dt: float) -> bool:
        if self.remaining is None:
            return False
        self.remaining -= max(dt, 0.0)
        if self.remaining <= 0.0:
            self.remaining = None
            return True
        return False


# -------------------------------------------------
# Partial state merge
# -------------------------------------------------
_HINTS: Dict[type, Dict[str, Any]] = {}


def field_types(cls: type) -> Dict[str, Any]:
    """Resolved annotations of a state dataclass, cached per class."""
    hints = _HINTS.get(cls)
    if hints is None:
        hints = typing.get_type_hints(cls)
        _HINTS[cls] = hints
    return hints


def _coerce(tp: Any, value: Any) -> Tuple[bool, Any]:
    """Convert value to the declared type tp. Returns (ok, converted)."""
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is Union or origin is types.UnionType:
        members = [a for a in args if a is not type(None)]
        if value is None:
            return (len(members) < len(args)), None
        for member in members:
            ok, out = _coerce(member, value)
            if ok:
                return True, out
        return False, None

    if value is None:
        return False, None
    if tp is Any:
        return True, value

    if origin is list:
        if not isinstance(value, (list, tuple)):
            return False, None
        item_tp = args[0] if args else Any
        items = []
        for item in value:
            ok, out = _coerce(item_tp, item)
            if not ok:
                return False, None
            items.append(out)
        return True, items

    if not isinstance(tp, type):
        return True, value
    if issubclass(tp, bool):
        return (True, value) if isinstance(value, bool) else (False, None)
    if issubclass(tp, Enum):
        try:
            return True, tp(value.value if isinstance(value, Enum) else value)
        except ValueError:
            return False, None
    if issubclass(tp, int):
        if is_finite_number(value) and float(value).is_integer():
            return True, int(value)
        return False, None
    if issubclass(tp, float):
        return (True, float(value)) if is_finite_number(value) else (False, None)
    if issubclass(tp, str):
        return (True, value) if isinstance(value, str) else (False, None)
    if dataclasses.is_dataclass(tp):
        if isinstance(value, tp):
            return True, value
        if not isinstance(value, Mapping):
            return False, None
        hints = field_types(tp)
        kwargs = {}
        for key, item in value.items():
            if key not in hints:
                return False, None
            ok, out = _coerce(hints[key], item)
            if not ok:
                return False, None
            kwargs[key] = out
        try:
            return True, tp(**kwargs)
        except TypeError:
            # missing required fields
            return False, None
    return (True, value) if isinstance(value, tp) else (False, None)


def merge_partial(target: Any, partial: Union[Mapping[str, Any], Any, None], tag: str = "[STATE]") -> List[str]:
    """
    Merge a dict or dataclass into a state dataclass in place.

    Unknown keys, NaN/inf and values of the wrong kind are skipped with a
    warning so a bad persisted blob or UI input never breaks the module.
    Returns the names of fields that were applied.
    """
    if partial is None:
        return []
    if dataclasses.is_dataclass(partial) and not isinstance(partial, type):
        items = {f.name: getattr(partial, f.name) for f in dataclasses.fields(partial)}
    elif isinstance(partial, Mapping):
        items = dict(partial)
    else:
        logger.warning("%s ignoring state of type %s", tag, type(partial).__name__)
        return []

    hints = field_types(type(target))
    known = {f.name for f in dataclasses.fields(target)}
    applied: List[str] = []
    for key, value in items.items():
        if key not in known:
            logger.debug("%s unknown field %r ignored", tag, key)
            continue
        ok, coerced = _coerce(hints[key], value)
        if not ok:
            logger.warning("%s rejected %s=%r", tag, key, value)
            continue
        setattr(target, key, coerced)
        applied.append(key)
    return applied


def state_to_dict(state: Any) -> Dict[str, Any]:
    """Plain primitive snapshot for the persistence collaborator."""
    out: Dict[str, Any] = {}
    for f in dataclasses.fields(state):
        v = getattr(state, f.name)
        if isinstance(v, Enum):
            v = v.value
        elif isinstance(v, list):
            v = [dataclasses.asdict(x) if dataclasses.is_dataclass(x) else x for x in v]
        out[f.name] = v
    return out


# -------------------------------------------------
# Module base
# -------------------------------------------------
class RfModule(Generic[S]):
    """
    Physics core shared by all front-end modules.
    Subclasses own exactly one state dataclass and must implement
    default_state(), update(dt) and get_alarms().

    update() and handle_*() must NEVER throw.
    """

    name: str = "module"
    TAG: str = "[RFFE]"
    # fields compared by has_state_changed()
    WATCHED_FIELDS: Tuple[str, ...] = ("is_powered",)

    LOCK_DELAY_MIN_S = 2.0
    LOCK_DELAY_MAX_S = 5.0

    def __init__(self, front_end=None, state=None, rng: Optional[np.random.Generator] = None):
        self.front_end = front_end
        self.rng = rng if rng is not None else np.random.default_rng(settings.RNG_SEED)
        self._state: S = self.default_state()
        merge_partial(self._state, state, self.TAG)
        self._lock_countdown = Countdown()
        self._last_change_key: Optional[tuple] = None

    @classmethod
    def default_state(cls) -> S:
        raise NotImplementedError

    @property
    def state(self) -> S:
        return self._state

    def update(self, dt: float) -> None:
        raise NotImplementedError

    def get_alarms(self) -> List[str]:
        raise NotImplementedError

    def sync(self, partial) -> None:
        merge_partial(self._state, partial, self.TAG)
        self.on_sync()

    def on_sync(self) -> None:
        """Hook for modules with timers that must follow a loaded state."""

    # -------------------------------------------------
    # Change detection
    # -------------------------------------------------
    def change_key(self) -> tuple:
        key = []
        for name in self.WATCHED_FIELDS:
            v = getattr(self._state, name)
            if isinstance(v, float):
                v = round(v, 3) if math.isfinite(v) else v
            key.append(v)
        return tuple(key)

    def has_state_changed(self) -> bool:
        key = self.change_key()
        if key == self._last_change_key:
            return False
        self._last_change_key = key
        return True

    # -------------------------------------------------
    # Reference helpers
    # -------------------------------------------------
    def _gpsdo(self):
        return getattr(self.front_end, "gpsdo", None) if self.front_end is not None else None

    def is_ext_ref_present(self) -> bool:
        gpsdo = self._gpsdo()
        return bool(gpsdo is not None and gpsdo.get_10mhz_output().is_present)

    def is_ext_ref_warmed_up(self) -> bool:
        gpsdo = self._gpsdo()
        return bool(gpsdo is not None and gpsdo.get_10mhz_output().is_warmed_up)

    def _update_ref_lock(self, dt: float) -> None:
        """
        PLL lock to the 10 MHz reference. Takes 2-5 s of simulated time to
        acquire; drops immediately when power or reference goes away.
        """
        st = self._state
        if not (st.is_powered and self.is_ext_ref_present()):
            if st.is_ext_ref_locked:
                logger.info("%s lost reference lock", self.TAG)
            st.is_ext_ref_locked = False
            self._lock_countdown.cancel()
            return
        if st.is_ext_ref_locked:
            return
        if not self._lock_countdown.active:
            self._lock_countdown.start(self.rng.uniform(self.LOCK_DELAY_MIN_S, self.LOCK_DELAY_MAX_S))
        if self._lock_countdown.advance(dt):
            st.is_ext_ref_locked = True
            logger.info("%s locked to external reference", self.TAG)

    # -------------------------------------------------
    # Handler plumbing
    # -------------------------------------------------
    def _changed(self, cb: StateCallback = None) -> None:
        if cb is not None:
            cb(self._state)
        if self.front_end is not None and hasattr(self.front_end, "notify_module_changed"):
            self.front_end.notify_module_changed(self)

    def _checked_number(self, field_name: str, value, lo: float, hi: float) -> Optional[float]:
        if not is_finite_number(value):
            logger.warning("%s %s: ignoring non-numeric input %r", self.TAG, field_name, value)
            return None
        v = float(value)
        if v < lo or v > hi:
            logger.warning("%s %s=%s clamped to [%s, %s]", self.TAG, field_name, v, lo, hi)
        return max(lo, min(hi, v))
